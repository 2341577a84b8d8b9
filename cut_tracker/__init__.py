"""Job tracking for a CNC sheet-cutting shop.

This package provides data models, in-memory and SQLite persistence, and the
services that track sheets, recuts, job status and working time, together with
part checklists and a small multi-location supply inventory.
"""

from .domain import (
    ChecklistItem,
    Cutlist,
    Job,
    JobStatus,
    JobTimeLog,
    Material,
    PartChecklist,
    RecutEntry,
    SheetCutLog,
    SheetStatus,
)
from .events import ChangeEvent, EventType
from .inventory import InventoryService
from .progress import JobProgress, calculate_progress
from .services import ChecklistDetails, JobDetails, JobTrackingService

__all__ = [
    "ChecklistItem",
    "Cutlist",
    "Job",
    "JobStatus",
    "JobTimeLog",
    "Material",
    "PartChecklist",
    "RecutEntry",
    "SheetCutLog",
    "SheetStatus",
    "ChangeEvent",
    "EventType",
    "InventoryService",
    "JobProgress",
    "calculate_progress",
    "ChecklistDetails",
    "JobDetails",
    "JobTrackingService",
]
