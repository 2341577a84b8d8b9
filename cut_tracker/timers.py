"""Working-time intervals recorded against jobs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from .domain import JobTimeLog

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TimerLedger:
    """Append-only interval log per job.

    A job has at most one open interval. Totals are always summed from the
    closed intervals so a partially failed stop cannot make them drift.
    Callers own the transaction boundary.
    """

    def __init__(self, store, clock: Clock = datetime.utcnow) -> None:
        self._store = store
        self._clock = clock

    def logs(self, job_id: str) -> List[JobTimeLog]:
        logs = self._store.time_logs.find("job_id", job_id)
        logs.sort(key=lambda log: log.start_time)
        return logs

    def open_log(self, job_id: str) -> Optional[JobTimeLog]:
        for log in self._store.time_logs.find("job_id", job_id):
            if log.is_open:
                return log
        return None

    def start(
        self,
        job_id: str,
        *,
        user_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[JobTimeLog]:
        """Open an interval; return None if one is already open."""

        if self.open_log(job_id) is not None:
            return None
        log = JobTimeLog(
            id=str(uuid4()),
            job_id=job_id,
            start_time=at or self._clock(),
            user_id=user_id,
        )
        self._store.time_logs.add(log.id, log)
        logger.debug("Opened timer %s for job %s", log.id, job_id)
        return log

    def stop(self, job_id: str, *, at: Optional[datetime] = None) -> Optional[JobTimeLog]:
        """Close the open interval, if any, and return it."""

        log = self.open_log(job_id)
        if log is None:
            return None
        end = at or self._clock()
        log.end_time = max(end, log.start_time)
        self._store.time_logs.upsert(log.id, log)
        logger.debug("Closed timer %s for job %s", log.id, job_id)
        return log

    def total_seconds(self, job_id: str) -> int:
        total = sum(
            log.duration_seconds
            for log in self._store.time_logs.find("job_id", job_id)
            if not log.is_open
        )
        return int(round(total))


__all__ = ["TimerLedger", "Clock"]
