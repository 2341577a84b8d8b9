"""Change notifications emitted after committed mutations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    JOB_CREATED = "job_created"
    JOB_UPDATED = "job_updated"
    JOB_DELETED = "job_deleted"
    JOB_STARTED = "job_started"
    JOB_PAUSED = "job_paused"
    JOB_RESUMED = "job_resumed"
    JOB_COMPLETED = "job_completed"
    JOB_TIMER_STARTED = "job_timer_started"
    JOB_TIMER_STOPPED = "job_timer_stopped"
    CUTLIST_ADDED = "cutlist_added"
    CUTLIST_DELETED = "cutlist_deleted"
    MATERIAL_ADDED = "material_added"
    MATERIAL_DELETED = "material_deleted"
    SHEET_STATUS_UPDATED = "sheet_status_updated"
    SHEETS_ADDED = "sheets_added"
    SHEET_DELETED = "sheet_deleted"
    RECUT_ADDED = "recut_added"
    RECUT_SHEET_STATUS_UPDATED = "recut_sheet_status_updated"
    RECUT_DELETED = "recut_deleted"
    CHECKLIST_CREATED = "checklist_created"
    CHECKLIST_DELETED = "checklist_deleted"
    CHECKLIST_ITEM_ADDED = "checklist_item_added"
    CHECKLIST_ITEM_UPDATED = "checklist_item_updated"
    CHECKLIST_ITEM_DELETED = "checklist_item_deleted"


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """Tagged record describing one job-visible change."""

    type: EventType
    job_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    def as_message(self) -> Dict[str, Any]:
        return {"type": self.type.value, "jobId": self.job_id, "data": self.payload}


class EventPublisher(Protocol):
    """Destination for change events; the core holds no subscriber state."""

    def publish(self, event: ChangeEvent) -> None:
        ...


class NullPublisher:
    """Publisher that drops every event."""

    def publish(self, event: ChangeEvent) -> None:
        logger.debug("Dropping event %s for job %s", event.type.value, event.job_id)


class RecordingPublisher:
    """Publisher that keeps events in memory, mostly useful for tests and demos."""

    def __init__(self) -> None:
        self.events: List[ChangeEvent] = []

    def publish(self, event: ChangeEvent) -> None:
        self.events.append(event)

    def types(self) -> List[EventType]:
        return [event.type for event in self.events]

    def clear(self) -> None:
        self.events.clear()


__all__ = [
    "EventType",
    "ChangeEvent",
    "EventPublisher",
    "NullPublisher",
    "RecordingPublisher",
]
