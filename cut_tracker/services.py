"""Service layer that implements the job tracking use-cases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from . import ledger
from .domain import (
    ChecklistItem,
    Cutlist,
    InvalidQuantityError,
    Job,
    JobStatus,
    JobTimeLog,
    Material,
    PartChecklist,
    RecutEntry,
    SheetCutLog,
    SheetStatus,
)
from .events import ChangeEvent, EventPublisher, EventType, NullPublisher
from .progress import JobProgress, calculate_progress
from .repository import (
    ConcurrentModificationError,
    InMemoryStore,
    PersistenceError,
    RecordNotFoundError,
)
from .state_machine import JobStateMachine, Transition
from .timers import Clock, TimerLedger

logger = logging.getLogger(__name__)

DEFAULT_CUTLIST_NAME = "Cutlist 1"
DEFAULT_MAX_SHEETS = 10_000


def serialize(record: Any) -> Any:
    """Turn dataclass records into JSON-friendly dictionaries."""

    if isinstance(record, Enum):
        return record.value
    if isinstance(record, datetime):
        return record.isoformat()
    if isinstance(record, (list, tuple)):
        return [serialize(value) for value in record]
    if isinstance(record, dict):
        return {key: serialize(value) for key, value in record.items()}
    if hasattr(record, "__dataclass_fields__"):
        return {item.name: serialize(getattr(record, item.name)) for item in fields(record)}
    return record


@dataclass(slots=True)
class MaterialDetails:
    """A material together with its recut entries."""

    material: Material
    recuts: List[RecutEntry] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = serialize(self.material)
        data["recuts"] = [serialize(recut) for recut in self.recuts]
        return data


@dataclass(slots=True)
class CutlistDetails:
    cutlist: Cutlist
    materials: List[MaterialDetails] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        data = serialize(self.cutlist)
        data["materials"] = [material.as_dict() for material in self.materials]
        return data


@dataclass(slots=True)
class ChecklistDetails:
    checklist: PartChecklist
    items: List[ChecklistItem] = field(default_factory=list)

    @property
    def completed_items(self) -> int:
        return sum(1 for item in self.items if item.is_completed)

    def as_dict(self) -> Dict[str, Any]:
        data = serialize(self.checklist)
        data["items"] = [serialize(item) for item in self.items]
        data["completed_items"] = self.completed_items
        return data


@dataclass(slots=True)
class JobDetails:
    """Read model of a job with its full sheet tree, timers and progress.

    Checklists ride along for display only; they never feed the status.
    """

    job: Job
    cutlists: List[CutlistDetails]
    time_logs: List[JobTimeLog]
    progress: JobProgress
    checklists: List[ChecklistDetails] = field(default_factory=list)

    @property
    def status(self) -> JobStatus:
        return self.job.status

    @property
    def materials(self) -> List[Material]:
        return [
            details.material
            for cutlist in self.cutlists
            for details in cutlist.materials
        ]

    @property
    def recuts(self) -> List[RecutEntry]:
        return [
            recut
            for cutlist in self.cutlists
            for details in cutlist.materials
            for recut in details.recuts
        ]

    def as_dict(self) -> Dict[str, Any]:
        data = serialize(self.job)
        data["status"] = self.job.status.value
        data["cutlists"] = [cutlist.as_dict() for cutlist in self.cutlists]
        data["time_logs"] = [serialize(log) for log in self.time_logs]
        data["progress"] = self.progress.as_dict()
        data["checklists"] = [checklist.as_dict() for checklist in self.checklists]
        return data


@dataclass(slots=True)
class DashboardStats:
    """Shop floor overview figures."""

    total_jobs: int
    jobs_by_status: Dict[str, int]
    active_jobs: int
    sheets_cut_today: int
    open_timers: int
    average_job_seconds: int
    average_sheet_seconds: float
    checklist_items_completed_today: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return serialize(self)


@dataclass(slots=True)
class TrackingOptions:
    """Limits applied to sheet tracking."""

    max_sheets_per_track: int = DEFAULT_MAX_SHEETS


class JobTrackingService:
    """Facade that exposes job tracking use-cases to clients.

    Every mutation runs in one store transaction. After it commits, the owning
    job is reconciled in a second transaction and exactly one change event is
    published. No-ops and failed operations publish nothing.
    """

    def __init__(
        self,
        store=None,
        *,
        publisher: Optional[EventPublisher] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store if store is not None else InMemoryStore()
        self.publisher = publisher if publisher is not None else NullPublisher()
        self._clock = clock if clock is not None else datetime.utcnow
        self.options = TrackingOptions()
        self.timers = TimerLedger(self.store, self._clock)
        self.state_machine = JobStateMachine(self.store, self.timers, self._clock)

    def update_tracking_options(self, *, max_sheets_per_track: int) -> TrackingOptions:
        self.options = TrackingOptions(max_sheets_per_track=max(max_sheets_per_track, 1))
        return self.options

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _emit(self, event_type: EventType, job_id: Optional[str], **payload: Any) -> None:
        event = ChangeEvent(event_type, job_id, serialize(payload))
        try:
            self.publisher.publish(event)
        except Exception:  # the mutation is already committed
            logger.exception("Publishing %s for job %s failed", event_type.value, job_id)

    def _settle(self, job_id: str) -> Optional[Job]:
        """Reconcile a job after a committed sheet mutation."""

        try:
            return self.state_machine.reconcile(job_id, touch=True).job
        except RecordNotFoundError:
            return None
        except PersistenceError:
            logger.exception("Reconciling job %s failed; it is retried on read", job_id)
            return None

    @staticmethod
    def _status_of(job: Optional[Job]) -> Optional[str]:
        return job.status.value if job is not None else None

    def _save_versioned(self, repo, record, expected_version: int) -> None:
        """Persist ``record`` if the stored copy still has ``expected_version``."""

        current = repo.get(record.id)
        if current.version != expected_version:
            raise ConcurrentModificationError(
                f"Record {record.id!r} changed concurrently "
                f"(expected version {expected_version}, found {current.version})"
            )
        record.version = expected_version + 1
        repo.upsert(record.id, record)

    def _record_cut(
        self,
        track,
        index: int,
        status: SheetStatus,
        *,
        material_id: str,
        recut_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> SheetCutLog:
        log = SheetCutLog(
            id=str(uuid4()),
            job_id=track.job_id,
            material_id=material_id,
            sheet_index=index,
            status=status,
            is_recut=recut_id is not None,
            recut_id=recut_id,
            user_id=actor,
            cut_at=self._clock(),
        )
        self.store.cut_logs.add(log.id, log)
        logger.debug(
            "Sheet %s of %s set to %s", index, recut_id or material_id, status.value
        )
        return log

    def _require_supply(self, supply_id: str) -> None:
        if supply_id not in self.store.supplies:
            raise RecordNotFoundError(f"Supply {supply_id!r} does not exist")

    def _new_material(
        self, job_id: str, cutlist_id: str, supply_id: str, total_sheets: int
    ) -> Material:
        now = self._clock()
        return Material(
            id=str(uuid4()),
            job_id=job_id,
            cutlist_id=cutlist_id,
            supply_id=supply_id,
            total_sheets=total_sheets,
            created_at=now,
        )

    def _load_details(self, job_id: str) -> JobDetails:
        job = self.store.jobs.get(job_id)
        cutlists = sorted(
            self.store.cutlists.find("job_id", job_id),
            key=lambda cutlist: (cutlist.order_index, cutlist.created_at),
        )
        materials = sorted(
            self.store.materials.find("job_id", job_id),
            key=lambda material: material.created_at,
        )
        recuts = sorted(
            self.store.recuts.find("job_id", job_id), key=lambda recut: recut.created_at
        )
        recuts_by_material: Dict[str, List[RecutEntry]] = {}
        for recut in recuts:
            recuts_by_material.setdefault(recut.material_id, []).append(recut)
        by_cutlist: Dict[str, List[MaterialDetails]] = {}
        for material in materials:
            by_cutlist.setdefault(material.cutlist_id, []).append(
                MaterialDetails(material, recuts_by_material.get(material.id, []))
            )
        return JobDetails(
            job=job,
            cutlists=[
                CutlistDetails(cutlist, by_cutlist.get(cutlist.id, []))
                for cutlist in cutlists
            ],
            time_logs=self.timers.logs(job_id),
            progress=calculate_progress(materials, recuts),
            checklists=[
                self._checklist_details(checklist)
                for checklist in self._job_checklists(job_id)
            ],
        )

    def _remove_material_tree(self, material_id: str) -> None:
        for log in self.store.cut_logs.find("material_id", material_id):
            self.store.cut_logs.remove(log.id)
        for recut in self.store.recuts.find("material_id", material_id):
            self.store.recuts.remove(recut.id)
        self.store.materials.remove(material_id)

    def _job_checklists(self, job_id: str) -> List[PartChecklist]:
        checklists = self.store.checklists.find("job_id", job_id)
        checklists.sort(key=lambda checklist: checklist.created_at)
        return checklists

    def _checklist_details(self, checklist: PartChecklist) -> ChecklistDetails:
        items = self.store.checklist_items.find("checklist_id", checklist.id)
        items.sort(key=lambda item: (item.sort_order, item.created_at))
        return ChecklistDetails(checklist, items)

    def _remove_checklist_tree(self, checklist_id: str) -> None:
        for item in self.store.checklist_items.find("checklist_id", checklist_id):
            self.store.checklist_items.remove(item.id)
        self.store.checklists.remove(checklist_id)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def create_job(
        self,
        customer_name: str,
        name: str,
        materials: Sequence[Tuple[str, int]] = (),
        *,
        cutlist_name: str = DEFAULT_CUTLIST_NAME,
    ) -> JobDetails:
        """Create a job with one cutlist holding ``(supply_id, sheets)`` materials."""

        customer_name = customer_name.strip()
        name = name.strip()
        if not customer_name or not name:
            raise ValueError("Customer name and job name are required")
        for supply_id, total_sheets in materials:
            if total_sheets < 1:
                raise InvalidQuantityError("A material needs at least one sheet")
            ledger.check_size(total_sheets, self.options.max_sheets_per_track)
        now = self._clock()
        job = Job(
            id=str(uuid4()),
            number=f"JOB-{uuid4().hex[:8].upper()}",
            customer_name=customer_name,
            name=name,
            created_at=now,
            updated_at=now,
        )
        cutlist = Cutlist(
            id=str(uuid4()), job_id=job.id, name=cutlist_name, created_at=now
        )
        with self.store.transaction():
            for supply_id, _ in materials:
                self._require_supply(supply_id)
            self.store.jobs.add(job.id, job)
            self.store.cutlists.add(cutlist.id, cutlist)
            for supply_id, total_sheets in materials:
                material = self._new_material(job.id, cutlist.id, supply_id, total_sheets)
                self.store.materials.add(material.id, material)
        logger.info("Created job %s for %s", job.number, customer_name)
        self._emit(
            EventType.JOB_CREATED,
            job.id,
            number=job.number,
            customer_name=job.customer_name,
            name=job.name,
        )
        return self._load_details(job.id)

    def update_job(
        self,
        job_id: str,
        *,
        customer_name: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Job:
        with self.store.transaction():
            job = self.store.jobs.get(job_id)
            changes: Dict[str, str] = {}
            if customer_name is not None and customer_name.strip() != job.customer_name:
                if not customer_name.strip():
                    raise ValueError("Customer name cannot be empty")
                job.customer_name = changes["customer_name"] = customer_name.strip()
            if name is not None and name.strip() != job.name:
                if not name.strip():
                    raise ValueError("Job name cannot be empty")
                job.name = changes["name"] = name.strip()
            if not changes:
                return job
            job.updated_at = self._clock()
            self.store.jobs.upsert(job.id, job)
        self._emit(EventType.JOB_UPDATED, job.id, **changes)
        return job

    def get_job(self, job_id: str) -> JobDetails:
        with self.store.transaction():
            self.state_machine.reconcile(job_id)
            return self._load_details(job_id)

    def list_jobs(
        self, search: Optional[str] = None, status: Optional[Any] = None
    ) -> List[Job]:
        """Return reconciled jobs, newest first.

        ``search`` matches the job number, customer name or job name without
        regard to case; ``status`` may be a :class:`JobStatus`, its value or
        ``"all"``.
        """

        wanted = None
        if status is not None and status != "all":
            wanted = JobStatus(status)
        needle = search.strip().lower() if search else ""
        jobs: List[Job] = []
        for job in self.store.jobs.list():
            try:
                job = self.state_machine.reconcile(job.id).job
            except RecordNotFoundError:
                continue
            if wanted is not None and job.status != wanted:
                continue
            if needle and not any(
                needle in value.lower()
                for value in (job.number, job.customer_name, job.name)
            ):
                continue
            jobs.append(job)
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    def delete_job(self, job_id: str) -> None:
        with self.store.transaction():
            job = self.store.jobs.get(job_id)
            for log in self.store.cut_logs.find("job_id", job_id):
                self.store.cut_logs.remove(log.id)
            for recut in self.store.recuts.find("job_id", job_id):
                self.store.recuts.remove(recut.id)
            for material in self.store.materials.find("job_id", job_id):
                self.store.materials.remove(material.id)
            for cutlist in self.store.cutlists.find("job_id", job_id):
                self.store.cutlists.remove(cutlist.id)
            for log in self.store.time_logs.find("job_id", job_id):
                self.store.time_logs.remove(log.id)
            for checklist in self.store.checklists.find("job_id", job_id):
                self._remove_checklist_tree(checklist.id)
            self.store.jobs.remove(job_id)
        logger.info("Deleted job %s", job.number)
        self._emit(EventType.JOB_DELETED, job_id, number=job.number)

    # ------------------------------------------------------------------
    # Lifecycle and timers
    # ------------------------------------------------------------------
    def _lifecycle_payload(self, transition: Transition) -> Dict[str, Any]:
        return {
            "status": transition.job.status,
            "previous_status": transition.previous_status,
            "total_duration_seconds": transition.job.total_duration_seconds,
        }

    def start_job(self, job_id: str, *, actor: Optional[str] = None) -> Job:
        transition = self.state_machine.start(job_id, actor=actor)
        if transition.changed:
            self._emit(EventType.JOB_STARTED, job_id, **self._lifecycle_payload(transition))
        return transition.job

    def pause_job(
        self, job_id: str, *, inactive_before: Optional[datetime] = None
    ) -> Job:
        transition = self.state_machine.pause(job_id, inactive_before=inactive_before)
        if transition.changed:
            self._emit(
                EventType.JOB_PAUSED,
                job_id,
                automatic=inactive_before is not None,
                **self._lifecycle_payload(transition),
            )
        return transition.job

    def resume_job(self, job_id: str) -> Job:
        transition = self.state_machine.resume(job_id)
        if transition.changed:
            self._emit(EventType.JOB_RESUMED, job_id, **self._lifecycle_payload(transition))
        return transition.job

    def complete_job(self, job_id: str) -> Job:
        transition = self.state_machine.complete(job_id)
        if transition.changed:
            self._emit(
                EventType.JOB_COMPLETED, job_id, **self._lifecycle_payload(transition)
            )
        return transition.job

    def start_timer(self, job_id: str, *, actor: Optional[str] = None) -> Optional[JobTimeLog]:
        """Open a timer on the job; returns None if one was already running."""

        transition = self.state_machine.start_timer(job_id, actor=actor)
        if transition.changed:
            self._emit(
                EventType.JOB_TIMER_STARTED,
                job_id,
                time_log_id=transition.time_log.id,
                start_time=transition.time_log.start_time,
            )
        return transition.time_log

    def stop_timer(self, job_id: str) -> Job:
        transition = self.state_machine.stop_timer(job_id)
        if transition.changed:
            self._emit(
                EventType.JOB_TIMER_STOPPED,
                job_id,
                time_log_id=transition.time_log.id,
                total_duration_seconds=transition.job.total_duration_seconds,
            )
        return transition.job

    # ------------------------------------------------------------------
    # Cutlists and materials
    # ------------------------------------------------------------------
    def add_cutlist(self, job_id: str, name: Optional[str] = None) -> Cutlist:
        with self.store.transaction():
            self.store.jobs.get(job_id)
            existing = self.store.cutlists.find("job_id", job_id)
            order_index = max((cutlist.order_index for cutlist in existing), default=-1) + 1
            cutlist = Cutlist(
                id=str(uuid4()),
                job_id=job_id,
                name=(name or "").strip() or f"Cutlist {len(existing) + 1}",
                order_index=order_index,
                created_at=self._clock(),
            )
            self.store.cutlists.add(cutlist.id, cutlist)
        self._emit(EventType.CUTLIST_ADDED, job_id, cutlist_id=cutlist.id, name=cutlist.name)
        return cutlist

    def delete_cutlist(self, cutlist_id: str) -> None:
        with self.store.transaction():
            cutlist = self.store.cutlists.get(cutlist_id)
            for material in self.store.materials.find("cutlist_id", cutlist_id):
                self._remove_material_tree(material.id)
            self.store.cutlists.remove(cutlist_id)
        job = self._settle(cutlist.job_id)
        self._emit(
            EventType.CUTLIST_DELETED,
            cutlist.job_id,
            cutlist_id=cutlist_id,
            job_status=self._status_of(job),
        )

    def add_material(
        self,
        job_id: str,
        supply_id: str,
        total_sheets: int,
        *,
        cutlist_id: Optional[str] = None,
    ) -> Material:
        """Add a material to a cutlist of the job (the last one by default)."""

        if total_sheets < 1:
            raise InvalidQuantityError("A material needs at least one sheet")
        ledger.check_size(total_sheets, self.options.max_sheets_per_track)
        with self.store.transaction():
            self.store.jobs.get(job_id)
            self._require_supply(supply_id)
            if cutlist_id is not None:
                cutlist = self.store.cutlists.get(cutlist_id)
                if cutlist.job_id != job_id:
                    raise RecordNotFoundError(
                        f"Cutlist {cutlist_id!r} does not belong to job {job_id!r}"
                    )
            else:
                cutlists = sorted(
                    self.store.cutlists.find("job_id", job_id),
                    key=lambda item: (item.order_index, item.created_at),
                )
                if cutlists:
                    cutlist = cutlists[-1]
                else:
                    cutlist = Cutlist(
                        id=str(uuid4()),
                        job_id=job_id,
                        name=DEFAULT_CUTLIST_NAME,
                        created_at=self._clock(),
                    )
                    self.store.cutlists.add(cutlist.id, cutlist)
            material = self._new_material(job_id, cutlist.id, supply_id, total_sheets)
            self.store.materials.add(material.id, material)
        job = self._settle(job_id)
        self._emit(
            EventType.MATERIAL_ADDED,
            job_id,
            material_id=material.id,
            cutlist_id=material.cutlist_id,
            supply_id=supply_id,
            total_sheets=total_sheets,
            job_status=self._status_of(job),
        )
        return material

    def delete_material(self, material_id: str) -> None:
        with self.store.transaction():
            material = self.store.materials.get(material_id)
            self._remove_material_tree(material_id)
        job = self._settle(material.job_id)
        self._emit(
            EventType.MATERIAL_DELETED,
            material.job_id,
            material_id=material_id,
            job_status=self._status_of(job),
        )

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------
    def set_sheet_status(
        self,
        material_id: str,
        sheet_index: int,
        status: SheetStatus,
        *,
        actor: Optional[str] = None,
    ) -> Material:
        """Mark one sheet; writing past the end grows the material."""

        status = SheetStatus(status)
        with self.store.transaction():
            material = self.store.materials.get(material_id)
            version = material.version
            changed = ledger.set_status(
                material, sheet_index, status, limit=self.options.max_sheets_per_track
            )
            if changed:
                self._save_versioned(self.store.materials, material, version)
                self._record_cut(
                    material, sheet_index, status, material_id=material.id, actor=actor
                )
        if not changed:
            return material
        job = self._settle(material.job_id)
        self._emit(
            EventType.SHEET_STATUS_UPDATED,
            material.job_id,
            material_id=material.id,
            sheet_index=sheet_index,
            status=status,
            completed_sheets=material.completed_sheets,
            total_sheets=material.total_sheets,
            job_status=self._status_of(job),
        )
        return material

    def add_sheets(self, material_id: str, count: int) -> Material:
        if count < 1:
            raise InvalidQuantityError("Additional sheets must be a positive number")
        with self.store.transaction():
            material = self.store.materials.get(material_id)
            version = material.version
            ledger.append_sheets(material, count, limit=self.options.max_sheets_per_track)
            self._save_versioned(self.store.materials, material, version)
        job = self._settle(material.job_id)
        self._emit(
            EventType.SHEETS_ADDED,
            material.job_id,
            material_id=material.id,
            added=count,
            total_sheets=material.total_sheets,
            job_status=self._status_of(job),
        )
        return material

    def delete_sheet(self, material_id: str, sheet_index: int) -> Material:
        with self.store.transaction():
            material = self.store.materials.get(material_id)
            version = material.version
            removed = ledger.remove_sheet(material, sheet_index)
            self._save_versioned(self.store.materials, material, version)
        job = self._settle(material.job_id)
        self._emit(
            EventType.SHEET_DELETED,
            material.job_id,
            material_id=material.id,
            sheet_index=sheet_index,
            removed_status=removed,
            total_sheets=material.total_sheets,
            job_status=self._status_of(job),
        )
        return material

    # ------------------------------------------------------------------
    # Recuts
    # ------------------------------------------------------------------
    def add_recut(
        self,
        material_id: str,
        quantity: int,
        *,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> RecutEntry:
        if quantity < 1:
            raise InvalidQuantityError("Recut quantity must be at least 1")
        ledger.check_size(quantity, self.options.max_sheets_per_track)
        with self.store.transaction():
            material = self.store.materials.get(material_id)
            recut = RecutEntry(
                id=str(uuid4()),
                job_id=material.job_id,
                material_id=material.id,
                quantity=quantity,
                reason=reason,
                user_id=actor,
                created_at=self._clock(),
            )
            self.store.recuts.add(recut.id, recut)
        logger.info("Recut of %s sheet(s) added to material %s", quantity, material_id)
        job = self._settle(recut.job_id)
        self._emit(
            EventType.RECUT_ADDED,
            recut.job_id,
            recut_id=recut.id,
            material_id=material_id,
            quantity=quantity,
            reason=reason,
            job_status=self._status_of(job),
        )
        return recut

    def set_recut_sheet_status(
        self,
        recut_id: str,
        sheet_index: int,
        status: SheetStatus,
        *,
        actor: Optional[str] = None,
    ) -> RecutEntry:
        status = SheetStatus(status)
        with self.store.transaction():
            recut = self.store.recuts.get(recut_id)
            version = recut.version
            changed = ledger.set_status(
                recut, sheet_index, status, limit=self.options.max_sheets_per_track
            )
            if changed:
                self._save_versioned(self.store.recuts, recut, version)
                self._record_cut(
                    recut,
                    sheet_index,
                    status,
                    material_id=recut.material_id,
                    recut_id=recut.id,
                    actor=actor,
                )
        if not changed:
            return recut
        job = self._settle(recut.job_id)
        self._emit(
            EventType.RECUT_SHEET_STATUS_UPDATED,
            recut.job_id,
            recut_id=recut.id,
            material_id=recut.material_id,
            sheet_index=sheet_index,
            status=status,
            completed_sheets=recut.completed_sheets,
            quantity=recut.quantity,
            job_status=self._status_of(job),
        )
        return recut

    def delete_recut(self, recut_id: str) -> None:
        """Remove a recut entry; its cut-log rows stay as audit history."""

        with self.store.transaction():
            recut = self.store.recuts.get(recut_id)
            self.store.recuts.remove(recut_id)
        job = self._settle(recut.job_id)
        self._emit(
            EventType.RECUT_DELETED,
            recut.job_id,
            recut_id=recut_id,
            material_id=recut.material_id,
            job_status=self._status_of(job),
        )

    def get_recuts(self, material_id: str) -> List[RecutEntry]:
        if material_id not in self.store.materials:
            raise RecordNotFoundError(f"Material {material_id!r} does not exist")
        recuts = self.store.recuts.find("material_id", material_id)
        recuts.sort(key=lambda recut: recut.created_at)
        return recuts

    def get_cut_logs(
        self, *, job_id: Optional[str] = None, material_id: Optional[str] = None
    ) -> List[SheetCutLog]:
        if material_id is not None:
            logs = self.store.cut_logs.find("material_id", material_id)
        elif job_id is not None:
            logs = self.store.cut_logs.find("job_id", job_id)
        else:
            logs = self.store.cut_logs.list()
        if job_id is not None:
            logs = [log for log in logs if log.job_id == job_id]
        logs.sort(key=lambda log: log.cut_at)
        return logs

    # ------------------------------------------------------------------
    # Part checklists
    # ------------------------------------------------------------------
    def create_checklist(
        self,
        name: str,
        *,
        job_id: Optional[str] = None,
        is_template: bool = False,
        template_id: Optional[str] = None,
    ) -> ChecklistDetails:
        """Create a job checklist or a template.

        With ``template_id`` the template's items are copied, uncompleted, into
        the new checklist.
        """

        name = name.strip()
        if not name:
            raise ValueError("A checklist needs a name")
        now = self._clock()
        checklist = PartChecklist(
            id=str(uuid4()),
            name=name,
            job_id=job_id,
            is_template=is_template,
            created_at=now,
        )
        with self.store.transaction():
            if job_id is not None:
                self.store.jobs.get(job_id)
            self.store.checklists.add(checklist.id, checklist)
            if template_id is not None:
                template = self.store.checklists.get(template_id)
                if not template.is_template:
                    raise ValueError(f"Checklist {template_id!r} is not a template")
                for source in self._checklist_details(template).items:
                    item = ChecklistItem(
                        id=str(uuid4()),
                        checklist_id=checklist.id,
                        text=source.text,
                        job_id=job_id,
                        sort_order=source.sort_order,
                        created_at=now,
                    )
                    self.store.checklist_items.add(item.id, item)
            details = self._checklist_details(checklist)
        self._emit(
            EventType.CHECKLIST_CREATED,
            job_id,
            checklist_id=checklist.id,
            name=checklist.name,
            is_template=is_template,
            items=len(details.items),
        )
        return details

    def list_checklists(
        self, *, job_id: Optional[str] = None, is_template: Optional[bool] = None
    ) -> List[PartChecklist]:
        """Newest first; ``job_id`` wins over ``is_template`` when both are given."""

        if job_id is not None:
            checklists = self.store.checklists.find("job_id", job_id)
        elif is_template is not None:
            checklists = self.store.checklists.find("is_template", is_template)
        else:
            checklists = self.store.checklists.list()
        checklists.sort(key=lambda checklist: checklist.created_at, reverse=True)
        return checklists

    def get_checklist(self, checklist_id: str) -> ChecklistDetails:
        with self.store.transaction():
            return self._checklist_details(self.store.checklists.get(checklist_id))

    def delete_checklist(self, checklist_id: str) -> None:
        with self.store.transaction():
            checklist = self.store.checklists.get(checklist_id)
            self._remove_checklist_tree(checklist_id)
        self._emit(EventType.CHECKLIST_DELETED, checklist.job_id, checklist_id=checklist_id)

    def add_checklist_item(
        self, checklist_id: str, text: str, *, sort_order: Optional[int] = None
    ) -> ChecklistItem:
        text = text.strip()
        if not text:
            raise ValueError("A checklist item needs text")
        with self.store.transaction():
            checklist = self.store.checklists.get(checklist_id)
            if sort_order is None:
                existing = self.store.checklist_items.find("checklist_id", checklist_id)
                sort_order = max((item.sort_order for item in existing), default=-1) + 1
            item = ChecklistItem(
                id=str(uuid4()),
                checklist_id=checklist_id,
                text=text,
                job_id=checklist.job_id,
                sort_order=sort_order,
                created_at=self._clock(),
            )
            self.store.checklist_items.add(item.id, item)
        self._emit(
            EventType.CHECKLIST_ITEM_ADDED,
            item.job_id,
            checklist_id=checklist_id,
            item_id=item.id,
            text=item.text,
        )
        return item

    def set_checklist_item(
        self, item_id: str, completed: bool, *, completed_by: Optional[str] = None
    ) -> ChecklistItem:
        """Tick or untick an item; unticking clears who completed it and when."""

        with self.store.transaction():
            item = self.store.checklist_items.get(item_id)
            if item.is_completed == completed:
                return item
            item.is_completed = completed
            item.completed_at = self._clock() if completed else None
            item.completed_by = completed_by if completed else None
            self.store.checklist_items.upsert(item.id, item)
        self._emit(
            EventType.CHECKLIST_ITEM_UPDATED,
            item.job_id,
            checklist_id=item.checklist_id,
            item_id=item.id,
            is_completed=item.is_completed,
            completed_by=item.completed_by,
        )
        return item

    def delete_checklist_item(self, item_id: str) -> None:
        with self.store.transaction():
            item = self.store.checklist_items.get(item_id)
            self.store.checklist_items.remove(item_id)
        self._emit(
            EventType.CHECKLIST_ITEM_DELETED,
            item.job_id,
            checklist_id=item.checklist_id,
            item_id=item_id,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def dashboard_stats(self) -> DashboardStats:
        jobs = self.list_jobs()
        by_status = {status.value: 0 for status in JobStatus}
        for job in jobs:
            by_status[job.status.value] += 1
        today = self._clock().date()
        cut_today = sum(
            1
            for log in self.store.cut_logs.list()
            if log.status == SheetStatus.CUT and log.cut_at.date() == today
        )
        open_timers = sum(1 for log in self.store.time_logs.list() if log.is_open)
        checked_today = sum(
            1
            for item in self.store.checklist_items.list()
            if item.completed_at is not None and item.completed_at.date() == today
        )
        durations: List[int] = []
        per_sheet: List[float] = []
        for job in jobs:
            if job.status != JobStatus.DONE or job.total_duration_seconds <= 0:
                continue
            durations.append(job.total_duration_seconds)
            completed = self.state_machine.progress(job.id).completed_sheets
            if completed:
                per_sheet.append(job.total_duration_seconds / completed)
        return DashboardStats(
            total_jobs=len(jobs),
            jobs_by_status=by_status,
            active_jobs=by_status[JobStatus.WAITING.value]
            + by_status[JobStatus.IN_PROGRESS.value],
            sheets_cut_today=cut_today,
            open_timers=open_timers,
            average_job_seconds=int(round(sum(durations) / len(durations)))
            if durations
            else 0,
            average_sheet_seconds=round(sum(per_sheet) / len(per_sheet), 1)
            if per_sheet
            else 0.0,
            checklist_items_completed_today=checked_today,
        )


__all__ = [
    "JobTrackingService",
    "JobDetails",
    "CutlistDetails",
    "MaterialDetails",
    "ChecklistDetails",
    "TrackingOptions",
    "DashboardStats",
    "serialize",
]
