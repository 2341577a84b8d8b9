"""Background sweep that pauses jobs nobody has touched for a while."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from .domain import JobStatus
from .repository import RecordNotFoundError
from .timers import Clock

logger = logging.getLogger(__name__)


class InactivityReaper:
    """Pause ``in_progress`` jobs whose last update is older than ``inactivity``.

    The pause goes through :meth:`JobTrackingService.pause_job` with the sweep's
    cut-off, so a job that saw activity after the cut-off is left running.
    """

    def __init__(
        self,
        service,
        *,
        inactivity: timedelta = timedelta(minutes=30),
        interval_seconds: float = 60.0,
        clock: Optional[Clock] = None,
    ) -> None:
        if inactivity <= timedelta(0):
            raise ValueError("Inactivity threshold must be positive")
        self.service = service
        self.inactivity = inactivity
        self.interval_seconds = max(interval_seconds, 0.01)
        self._clock = clock if clock is not None else datetime.utcnow
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep(self) -> List[str]:
        """Run one pass and return the ids of the jobs that were paused."""

        cutoff = self._clock() - self.inactivity
        paused: List[str] = []
        for job in self.service.list_jobs(status=JobStatus.IN_PROGRESS):
            if job.updated_at >= cutoff:
                continue
            try:
                result = self.service.pause_job(job.id, inactive_before=cutoff)
            except RecordNotFoundError:
                continue
            if result.is_paused:
                paused.append(job.id)
        if paused:
            logger.info("Auto-paused %d job(s) after inactivity", len(paused))
        return paused

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Inactivity sweep failed")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="inactivity-reaper", daemon=True
        )
        self._thread.start()
        logger.info(
            "Inactivity reaper started (threshold %s, every %ss)",
            self.inactivity,
            self.interval_seconds,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


__all__ = ["InactivityReaper"]
