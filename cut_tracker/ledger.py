"""Per-sheet status bookkeeping shared by materials and recut entries.

Both :class:`~cut_tracker.domain.Material` and
:class:`~cut_tracker.domain.RecutEntry` carry a ``sheet_statuses`` array, a
cached ``completed_sheets`` count and a ``sheet_count`` that mirrors their
size field (``total_sheets`` or ``quantity``). The helpers below are the only
code that mutates those arrays, so the size and the cached count can never
drift from the array itself.

Writing past the end of the array grows it with pending sheets. That keeps
clients working which add sheets by simply marking a higher index; explicit
growth goes through :func:`append_sheets`. Both are capped by ``limit``, the
largest number of sheets one material or recut may hold.
"""

from __future__ import annotations

from typing import List, Optional, Union

from .domain import (
    InvalidQuantityError,
    InvalidSheetIndexError,
    Material,
    RecutEntry,
    SheetStatus,
)

SheetTrack = Union[Material, RecutEntry]


def count_status(statuses: List[SheetStatus], status: SheetStatus) -> int:
    return sum(1 for value in statuses if value == status)


def _sync(track: SheetTrack) -> None:
    track.sheet_count = len(track.sheet_statuses)
    track.completed_sheets = count_status(track.sheet_statuses, SheetStatus.CUT)


def check_size(size: int, limit: Optional[int]) -> None:
    if limit is not None and size > limit:
        raise InvalidQuantityError(f"At most {limit} sheets are allowed, got {size}")


def set_status(
    track: SheetTrack, index: int, status: SheetStatus, *, limit: Optional[int] = None
) -> bool:
    """Set the status of sheet ``index``; return False when nothing changed."""

    status = SheetStatus(status)
    if index < 0:
        raise InvalidSheetIndexError(f"Sheet index {index} is negative")
    if limit is not None and index >= max(limit, len(track.sheet_statuses)):
        raise InvalidSheetIndexError(
            f"Sheet index {index} is beyond the limit of {limit} sheets"
        )
    statuses = track.sheet_statuses
    if index < len(statuses) and statuses[index] == status:
        return False
    if index >= len(statuses):
        statuses.extend([SheetStatus.PENDING] * (index + 1 - len(statuses)))
    statuses[index] = status
    _sync(track)
    return True


def append_sheets(track: SheetTrack, count: int, *, limit: Optional[int] = None) -> None:
    if count < 1:
        raise InvalidQuantityError("Additional sheets must be a positive number")
    check_size(len(track.sheet_statuses) + count, limit)
    track.sheet_statuses.extend([SheetStatus.PENDING] * count)
    _sync(track)


def remove_sheet(track: SheetTrack, index: int) -> SheetStatus:
    """Delete sheet ``index`` and shift later sheets down."""

    statuses = track.sheet_statuses
    if index < 0 or index >= len(statuses):
        raise InvalidSheetIndexError(
            f"Sheet index {index} is out of range for {len(statuses)} sheets"
        )
    if len(statuses) == 1:
        raise InvalidQuantityError("Cannot remove the only remaining sheet")
    removed = statuses.pop(index)
    _sync(track)
    return removed


__all__ = [
    "SheetTrack",
    "count_status",
    "check_size",
    "set_status",
    "append_sheets",
    "remove_sheet",
]
