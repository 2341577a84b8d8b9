"""Core data structures for the CNC sheet-cutting job tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class JobStatus(str, Enum):
    """Externally visible lifecycle stages of a job."""

    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    DONE = "done"


class JobOverride(str, Enum):
    """Manual overrides that suspend automatic status derivation."""

    PAUSED = "paused"
    COMPLETED = "completed"


class SheetStatus(str, Enum):
    """Cutting state of a single sheet."""

    PENDING = "pending"
    CUT = "cut"
    SKIP = "skip"


class MovementType(str, Enum):
    """Kinds of stock movement recorded by the inventory service."""

    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    TRANSFER = "transfer"
    ADJUST = "adjust"
    ALLOCATE = "allocate"
    CONSUME = "consume"
    RECEIVE = "receive"


class InvalidQuantityError(ValueError):
    """Raised when a sheet, recut or stock quantity is not positive."""


class InvalidSheetIndexError(ValueError):
    """Raised when a sheet index cannot address the status array."""


class InsufficientStockError(ValueError):
    """Raised when a location does not hold enough available stock."""


@dataclass(slots=True)
class Job:
    """A cutting work order.

    ``derived_status`` is always recomputable from the sheet tree. ``override``
    wins over it while set, which is how a manual pause (or a forced
    completion) survives later reconciliation.
    """

    id: str
    number: str
    customer_name: str
    name: str
    derived_status: JobStatus = JobStatus.WAITING
    override: Optional[JobOverride] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_duration_seconds: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.derived_status == JobStatus.PAUSED:
            raise ValueError("Paused is an override, not a derived status")

    @property
    def status(self) -> JobStatus:
        if self.override == JobOverride.PAUSED:
            return JobStatus.PAUSED
        if self.override == JobOverride.COMPLETED:
            return JobStatus.DONE
        return self.derived_status

    @property
    def is_paused(self) -> bool:
        return self.override == JobOverride.PAUSED


@dataclass(slots=True)
class Cutlist:
    """Ordered grouping of materials inside a job."""

    id: str
    job_id: str
    name: str
    order_index: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class Material:
    """A supply line item of a job with one status slot per sheet."""

    id: str
    job_id: str
    cutlist_id: str
    supply_id: str
    total_sheets: int
    sheet_statuses: List[SheetStatus] = field(default_factory=list)
    completed_sheets: int = 0
    version: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.total_sheets < 1:
            raise InvalidQuantityError("A material needs at least one sheet")
        if not self.sheet_statuses:
            self.sheet_statuses = [SheetStatus.PENDING] * self.total_sheets

    @property
    def sheet_count(self) -> int:
        return self.total_sheets

    @sheet_count.setter
    def sheet_count(self, value: int) -> None:
        self.total_sheets = value


@dataclass(slots=True)
class RecutEntry:
    """Corrective batch of extra sheets layered on top of a material."""

    id: str
    job_id: str
    material_id: str
    quantity: int
    reason: Optional[str] = None
    sheet_statuses: List[SheetStatus] = field(default_factory=list)
    completed_sheets: int = 0
    user_id: Optional[str] = None
    version: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError("Recut quantity must be at least 1")
        if not self.sheet_statuses:
            self.sheet_statuses = [SheetStatus.PENDING] * self.quantity

    @property
    def sheet_count(self) -> int:
        return self.quantity

    @sheet_count.setter
    def sheet_count(self, value: int) -> None:
        self.quantity = value


@dataclass(slots=True)
class SheetCutLog:
    """Audit record of one sheet status change."""

    id: str
    job_id: str
    material_id: str
    sheet_index: int
    status: SheetStatus
    is_recut: bool = False
    recut_id: Optional[str] = None
    user_id: Optional[str] = None
    cut_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class JobTimeLog:
    """One working interval on a job; open while ``end_time`` is None."""

    id: str
    job_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    user_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass(slots=True)
class PartChecklist:
    """Preparation checklist, either attached to a job or kept as a template."""

    id: str
    name: str
    job_id: Optional[str] = None
    is_template: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if self.is_template and self.job_id is not None:
            raise ValueError("A template checklist cannot belong to a job")


@dataclass(slots=True)
class ChecklistItem:
    id: str
    checklist_id: str
    text: str
    job_id: Optional[str] = None
    sort_order: int = 0
    is_completed: bool = False
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class Supply:
    """Sheet stock or hardware item that materials are cut from."""

    id: str
    name: str
    hex_color: str = "#000000"
    piece_size: str = "sheet"
    part_number: str = ""
    description: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class Location:
    """Storage location that can hold stock of many supplies."""

    id: str
    name: str
    description: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class SupplyLocation:
    """Stock of one supply at one location, with reorder parameters."""

    id: str
    supply_id: str
    location_id: str
    on_hand_quantity: int = 0
    allocated_quantity: int = 0
    minimum_quantity: int = 0
    reorder_point: int = 0
    order_group_size: int = 1
    last_reorder_date: Optional[datetime] = None

    @property
    def available_quantity(self) -> int:
        return self.on_hand_quantity - self.allocated_quantity


@dataclass(slots=True)
class InventoryMovement:
    """Ledger row for every stock change."""

    id: str
    supply_id: str
    movement_type: MovementType
    quantity: int
    from_location_id: Optional[str] = None
    to_location_id: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    notes: str = ""
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


__all__ = [
    "JobStatus",
    "JobOverride",
    "SheetStatus",
    "MovementType",
    "InvalidQuantityError",
    "InvalidSheetIndexError",
    "InsufficientStockError",
    "Job",
    "Cutlist",
    "Material",
    "RecutEntry",
    "SheetCutLog",
    "JobTimeLog",
    "PartChecklist",
    "ChecklistItem",
    "Supply",
    "Location",
    "SupplyLocation",
    "InventoryMovement",
]
