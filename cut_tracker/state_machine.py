"""Lifecycle transitions of a job.

``waiting -> in_progress -> done`` is derived from the sheet tree. ``paused``
is a manual override reachable from ``waiting`` and ``in_progress``; while it
is set, reconciliation leaves the job alone. Resuming applies whatever status
the sheet tree implies at that moment instead of jumping back to
``in_progress``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .domain import Job, JobOverride, JobStatus, JobTimeLog
from .progress import JobProgress, calculate_progress
from .timers import Clock, TimerLedger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Transition:
    """Result of a state machine call."""

    job: Job
    changed: bool
    previous_status: JobStatus
    time_log: Optional[JobTimeLog] = None


class JobStateMachine:
    """Owns every write to a job's status, timers and duration.

    Each public method runs in its own store transaction and raises
    :class:`~cut_tracker.repository.RecordNotFoundError` before writing
    anything when the job does not exist.
    """

    def __init__(
        self, store, timers: TimerLedger, clock: Clock = datetime.utcnow
    ) -> None:
        self._store = store
        self._timers = timers
        self._clock = clock

    def progress(self, job_id: str) -> JobProgress:
        materials = self._store.materials.find("job_id", job_id)
        recuts = self._store.recuts.find("job_id", job_id)
        return calculate_progress(materials, recuts)

    def _save(self, job: Job) -> None:
        self._store.jobs.upsert(job.id, job)

    def reconcile(self, job_id: str, *, touch: bool = False) -> Transition:
        """Persist the derived status unless an override is active.

        ``touch`` stamps ``updated_at`` even when the status is unchanged, which
        marks sheet activity for the inactivity reaper.
        """

        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            previous = job.status
            if job.override is not None:
                return Transition(job, False, previous)
            verdict = self.progress(job_id).status
            changed = verdict != job.derived_status
            if changed or touch:
                job.derived_status = verdict
                job.updated_at = self._clock()
                self._save(job)
            if changed:
                logger.info(
                    "Job %s reconciled from %s to %s",
                    job.number, previous.value, verdict.value,
                )
            return Transition(job, changed, previous)

    def start(self, job_id: str, *, actor: Optional[str] = None) -> Transition:
        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            previous = job.status
            if (
                job.override is None
                and job.derived_status == JobStatus.IN_PROGRESS
                and self._timers.open_log(job_id) is not None
            ):
                return Transition(job, False, previous)
            now = self._clock()
            job.override = None
            job.derived_status = JobStatus.IN_PROGRESS
            job.start_time = now
            job.end_time = None
            job.updated_at = now
            self._save(job)
            log = self._timers.start(job_id, user_id=actor, at=now)
            logger.info("Job %s started", job.number)
            return Transition(job, True, previous, log)

    def pause(
        self, job_id: str, *, inactive_before: Optional[datetime] = None
    ) -> Transition:
        """Set the pause override and close the running timer.

        With ``inactive_before`` the pause only happens if the job is still
        ``in_progress`` and was last updated before that instant, so a user
        action that lands first wins over an inactivity sweep.
        """

        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            previous = job.status
            if previous in (JobStatus.PAUSED, JobStatus.DONE):
                return Transition(job, False, previous)
            if inactive_before is not None and (
                previous != JobStatus.IN_PROGRESS or job.updated_at >= inactive_before
            ):
                return Transition(job, False, previous)
            now = self._clock()
            log = self._timers.stop(job_id, at=now)
            job.override = JobOverride.PAUSED
            job.total_duration_seconds = self._timers.total_seconds(job_id)
            job.updated_at = now
            self._save(job)
            logger.info("Job %s paused from %s", job.number, previous.value)
            return Transition(job, True, previous, log)

    def resume(self, job_id: str) -> Transition:
        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            previous = job.status
            if job.override != JobOverride.PAUSED:
                return Transition(job, False, previous)
            verdict = self.progress(job_id).status
            now = self._clock()
            job.override = None
            job.derived_status = verdict
            job.updated_at = now
            self._save(job)
            log = None
            if verdict == JobStatus.IN_PROGRESS:
                log = self._timers.start(job_id, at=now)
            logger.info("Job %s resumed as %s", job.number, verdict.value)
            return Transition(job, True, previous, log)

    def complete(self, job_id: str) -> Transition:
        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            previous = job.status
            if (
                job.override == JobOverride.COMPLETED
                and self._timers.open_log(job_id) is None
            ):
                return Transition(job, False, previous)
            now = self._clock()
            log = self._timers.stop(job_id, at=now)
            job.total_duration_seconds = self._timers.total_seconds(job_id)
            job.derived_status = self.progress(job_id).status
            job.override = JobOverride.COMPLETED
            job.end_time = now
            job.updated_at = now
            self._save(job)
            logger.info("Job %s completed", job.number)
            return Transition(job, True, previous, log)

    def start_timer(self, job_id: str, *, actor: Optional[str] = None) -> Transition:
        """Open a timer without touching the status; no-op if one is running."""

        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            log = self._timers.start(job_id, user_id=actor)
            return Transition(job, log is not None, job.status, log)

    def stop_timer(self, job_id: str) -> Transition:
        with self._store.transaction():
            job = self._store.jobs.get(job_id)
            now = self._clock()
            log = self._timers.stop(job_id, at=now)
            if log is None:
                return Transition(job, False, job.status)
            job.total_duration_seconds = self._timers.total_seconds(job_id)
            job.updated_at = now
            self._save(job)
            return Transition(job, True, job.status, log)


__all__ = ["JobStateMachine", "Transition"]
