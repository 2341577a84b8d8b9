"""Derive job progress and status from the sheet tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .domain import JobStatus, Material, RecutEntry, SheetStatus
from .ledger import count_status


@dataclass(slots=True, frozen=True)
class JobProgress:
    """Aggregate sheet counts of a job and the status they imply."""

    total_sheets: int = 0
    completed_sheets: int = 0
    skipped_sheets: int = 0

    @property
    def effective_total(self) -> int:
        return self.total_sheets - self.skipped_sheets

    @property
    def has_activity(self) -> bool:
        return self.completed_sheets > 0 or self.skipped_sheets > 0

    @property
    def percent_complete(self) -> float:
        if self.effective_total <= 0:
            return 0.0
        return round(100.0 * self.completed_sheets / self.effective_total, 1)

    @property
    def status(self) -> JobStatus:
        # A job whose every sheet is skipped has nothing left to cut but also
        # nothing cut; it stays waiting.
        if self.effective_total <= 0 or not self.has_activity:
            return JobStatus.WAITING
        if self.completed_sheets < self.effective_total:
            return JobStatus.IN_PROGRESS
        return JobStatus.DONE

    def as_dict(self) -> dict:
        return {
            "total_sheets": self.total_sheets,
            "completed_sheets": self.completed_sheets,
            "skipped_sheets": self.skipped_sheets,
            "effective_total": self.effective_total,
            "percent_complete": self.percent_complete,
            "status": self.status.value,
        }


def calculate_progress(
    materials: Iterable[Material], recuts: Iterable[RecutEntry] = ()
) -> JobProgress:
    """Fold materials and their recut entries into a :class:`JobProgress`.

    Recut sheets count in addition to the original sheets of their material.
    """

    total = completed = skipped = 0
    for track in (*materials, *recuts):
        total += track.sheet_count
        completed += count_status(track.sheet_statuses, SheetStatus.CUT)
        skipped += count_status(track.sheet_statuses, SheetStatus.SKIP)
    return JobProgress(
        total_sheets=total, completed_sheets=completed, skipped_sheets=skipped
    )


__all__ = ["JobProgress", "calculate_progress"]
