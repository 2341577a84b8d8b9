import re

import pytest

from cut_tracker.domain import (
    InvalidQuantityError,
    InvalidSheetIndexError,
    JobStatus,
    SheetStatus,
)
from cut_tracker.events import EventType
from cut_tracker.repository import ConcurrentModificationError, RecordNotFoundError


def _cut_all(service, material, status=SheetStatus.CUT):
    for index in range(material.total_sheets):
        service.set_sheet_status(material.id, index, status)


def test_create_job_builds_a_waiting_job(service, supply, events):
    details = service.create_job("  Harbor Cabinets ", "Uppers", [(supply.id, 2), (supply.id, 4)])
    assert re.fullmatch(r"JOB-[0-9A-F]{8}", details.job.number)
    assert details.job.customer_name == "Harbor Cabinets"
    assert details.status == JobStatus.WAITING
    assert len(details.cutlists) == 1
    assert [m.total_sheets for m in details.materials] == [2, 4]
    assert details.progress.total_sheets == 6
    assert events.types() == [EventType.JOB_CREATED]


def test_create_job_rejects_bad_input_without_writing(service, supply, events):
    with pytest.raises(InvalidQuantityError):
        service.create_job("Acme", "Shelves", [(supply.id, 0)])
    with pytest.raises(RecordNotFoundError):
        service.create_job("Acme", "Shelves", [("no-such-supply", 2)])
    with pytest.raises(ValueError):
        service.create_job(" ", "Shelves")
    assert service.list_jobs() == []
    assert events.events == []


def test_marking_a_sheet_moves_the_job_to_in_progress(service, job, material, events):
    updated = service.set_sheet_status(material.id, 0, SheetStatus.CUT, actor="op-1")
    assert updated.completed_sheets == 1
    details = service.get_job(job.job.id)
    assert details.status == JobStatus.IN_PROGRESS
    assert details.progress.percent_complete == 33.3
    assert events.types() == [EventType.SHEET_STATUS_UPDATED]
    assert events.events[0].payload["job_status"] == "in_progress"
    [log] = service.get_cut_logs(job_id=job.job.id)
    assert (log.sheet_index, log.status, log.user_id) == (0, SheetStatus.CUT, "op-1")


def test_repeating_a_status_write_is_a_no_op(service, job, material, events):
    service.set_sheet_status(material.id, 1, SheetStatus.CUT)
    before = service.store.materials.get(material.id)
    again = service.set_sheet_status(material.id, 1, SheetStatus.CUT)
    assert again.sheet_statuses == before.sheet_statuses
    assert service.store.materials.get(material.id).version == before.version
    assert len(service.get_cut_logs(material_id=material.id)) == 1
    assert events.types() == [EventType.SHEET_STATUS_UPDATED]


def test_cached_counts_match_the_status_array(service, job, material):
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    service.set_sheet_status(material.id, 1, SheetStatus.SKIP)
    service.set_sheet_status(material.id, 0, SheetStatus.PENDING)
    service.set_sheet_status(material.id, 2, SheetStatus.CUT)
    service.add_sheets(material.id, 2)
    service.delete_sheet(material.id, 3)
    stored = service.store.materials.get(material.id)
    assert len(stored.sheet_statuses) == stored.total_sheets == 4
    assert stored.completed_sheets == stored.sheet_statuses.count(SheetStatus.CUT) == 1


def test_cutting_every_sheet_finishes_the_job(service, job, material):
    _cut_all(service, material)
    assert service.get_job(job.job.id).status == JobStatus.DONE


def test_skips_and_cuts_finish_the_job(service, job, material):
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    service.set_sheet_status(material.id, 1, SheetStatus.SKIP)
    service.set_sheet_status(material.id, 2, SheetStatus.CUT)
    assert service.get_job(job.job.id).status == JobStatus.DONE


def test_all_skipped_job_is_waiting(service, job, material):
    _cut_all(service, material, SheetStatus.SKIP)
    details = service.get_job(job.job.id)
    assert details.progress.effective_total == 0
    assert details.status == JobStatus.WAITING


def test_writing_past_the_end_grows_the_material(service, job, material):
    updated = service.set_sheet_status(material.id, 7, SheetStatus.CUT)
    assert updated.total_sheets == 8
    assert len(updated.sheet_statuses) == 8
    details = service.get_job(job.job.id)
    assert details.progress.total_sheets == 8
    assert details.status == JobStatus.IN_PROGRESS


def test_invalid_sheet_operations_leave_state_untouched(service, job, material, events):
    with pytest.raises(InvalidSheetIndexError):
        service.set_sheet_status(material.id, -1, SheetStatus.CUT)
    with pytest.raises(InvalidSheetIndexError):
        service.delete_sheet(material.id, 3)
    with pytest.raises(InvalidQuantityError):
        service.add_sheets(material.id, 0)
    stored = service.store.materials.get(material.id)
    assert stored.total_sheets == 3
    assert stored.version == 0
    assert events.events == []


def test_sheet_limit_caps_growth(service, job, material, events):
    service.update_tracking_options(max_sheets_per_track=5)
    with pytest.raises(InvalidSheetIndexError):
        service.set_sheet_status(material.id, 5_000_000, SheetStatus.CUT)
    with pytest.raises(InvalidQuantityError):
        service.add_sheets(material.id, 3)
    with pytest.raises(InvalidQuantityError):
        service.add_recut(material.id, 6)
    with pytest.raises(InvalidQuantityError):
        service.add_material(job.job.id, material.supply_id, 6)
    assert service.store.materials.get(material.id).total_sheets == 3
    assert events.events == []

    assert service.set_sheet_status(material.id, 4, SheetStatus.CUT).total_sheets == 5


def test_tracking_options_are_clamped(service):
    assert service.update_tracking_options(max_sheets_per_track=0).max_sheets_per_track == 1


def test_the_only_sheet_cannot_be_deleted(service, job, supply):
    single = service.add_material(job.job.id, supply.id, 1)
    with pytest.raises(InvalidQuantityError):
        service.delete_sheet(single.id, 0)


def test_unknown_ids_raise_not_found_without_side_effects(service, job, events):
    with pytest.raises(RecordNotFoundError):
        service.set_sheet_status("missing", 0, SheetStatus.CUT)
    with pytest.raises(RecordNotFoundError):
        service.add_recut("missing", 1)
    with pytest.raises(RecordNotFoundError):
        service.pause_job("missing")
    with pytest.raises(RecordNotFoundError):
        service.delete_job("missing")
    with pytest.raises(RecordNotFoundError):
        service.get_job("missing")
    assert service.get_cut_logs() == []
    assert events.events == []


def test_failed_mutation_rolls_back(service, job, material, events, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("log table unavailable")

    monkeypatch.setattr(service, "_record_cut", boom)
    with pytest.raises(RuntimeError):
        service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    stored = service.store.materials.get(material.id)
    assert stored.sheet_statuses == [SheetStatus.PENDING] * 3
    assert stored.version == 0
    assert events.events == []


def test_stale_versioned_save_is_rejected(service, store, job, material):
    stale = store.materials.get(material.id)
    fresh = store.materials.get(material.id)
    fresh.version += 1
    store.materials.upsert(fresh.id, fresh)
    with pytest.raises(ConcurrentModificationError):
        with store.transaction():
            service._save_versioned(store.materials, stale, stale.version)


def test_recuts_extend_the_job_until_cut(service, job, material, events):
    _cut_all(service, material)
    assert service.get_job(job.job.id).status == JobStatus.DONE

    recut = service.add_recut(material.id, 2, reason="Chipped edge", actor="op-2")
    assert recut.sheet_statuses == [SheetStatus.PENDING] * 2
    details = service.get_job(job.job.id)
    assert details.status == JobStatus.IN_PROGRESS
    assert details.progress.total_sheets == 5

    service.set_recut_sheet_status(recut.id, 0, SheetStatus.CUT)
    service.set_recut_sheet_status(recut.id, 1, SheetStatus.SKIP)
    assert service.get_job(job.job.id).status == JobStatus.DONE
    assert service.get_recuts(material.id)[0].completed_sheets == 1

    recut_logs = [log for log in service.get_cut_logs(job_id=job.job.id) if log.is_recut]
    assert {log.recut_id for log in recut_logs} == {recut.id}
    assert events.types()[-3:] == [
        EventType.RECUT_ADDED,
        EventType.RECUT_SHEET_STATUS_UPDATED,
        EventType.RECUT_SHEET_STATUS_UPDATED,
    ]


def test_deleting_a_recut_keeps_its_audit_rows(service, job, material):
    recut = service.add_recut(material.id, 1)
    service.set_recut_sheet_status(recut.id, 0, SheetStatus.CUT)
    service.delete_recut(recut.id)
    assert service.get_recuts(material.id) == []
    assert service.get_job(job.job.id).progress.total_sheets == 3
    assert any(log.recut_id == recut.id for log in service.get_cut_logs(job_id=job.job.id))


def test_recut_quantity_must_be_positive(service, job, material):
    with pytest.raises(InvalidQuantityError):
        service.add_recut(material.id, 0)
    assert service.get_recuts(material.id) == []


def test_pause_overrides_derived_status(service, job, material, clock, events):
    job_id = job.job.id
    service.start_job(job_id, actor="op-1")
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    clock.advance(seconds=30)
    paused = service.pause_job(job_id)
    assert paused.status == JobStatus.PAUSED
    assert paused.total_duration_seconds == 30

    service.set_sheet_status(material.id, 1, SheetStatus.CUT)
    service.set_sheet_status(material.id, 2, SheetStatus.CUT)
    assert service.get_job(job_id).status == JobStatus.PAUSED

    resumed = service.resume_job(job_id)
    assert resumed.status == JobStatus.DONE
    assert service.timers.open_log(job_id) is None
    assert EventType.JOB_PAUSED in events.types()
    assert events.types()[-1] == EventType.JOB_RESUMED


def test_resume_into_in_progress_opens_a_timer(service, job, material):
    job_id = job.job.id
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    service.pause_job(job_id)
    assert service.timers.open_log(job_id) is None
    resumed = service.resume_job(job_id)
    assert resumed.status == JobStatus.IN_PROGRESS
    assert service.timers.open_log(job_id) is not None


def test_pause_and_resume_are_no_ops_when_not_applicable(service, job, events):
    job_id = job.job.id
    assert service.resume_job(job_id).status == JobStatus.WAITING
    service.pause_job(job_id)
    service.pause_job(job_id)
    assert events.types() == [EventType.JOB_PAUSED]


def test_start_job_opens_one_timer(service, job, events):
    job_id = job.job.id
    started = service.start_job(job_id)
    assert started.status == JobStatus.IN_PROGRESS
    assert started.start_time is not None
    service.start_job(job_id)
    assert len(service.timers.logs(job_id)) == 1
    assert events.types() == [EventType.JOB_STARTED]


def test_started_job_without_activity_reconciles_to_waiting(service, job):
    job_id = job.job.id
    service.start_job(job_id)
    assert service.get_job(job_id).status == JobStatus.WAITING
    assert service.timers.open_log(job_id) is not None


def test_timer_sessions_add_up(service, job, clock, events):
    job_id = job.job.id
    assert service.start_timer(job_id) is not None
    clock.advance(seconds=10)
    assert service.stop_timer(job_id).total_duration_seconds == 10
    service.start_timer(job_id)
    assert service.start_timer(job_id) is None
    clock.advance(seconds=15)
    stopped = service.stop_timer(job_id)
    assert stopped.total_duration_seconds == 25
    assert len(service.get_job(job_id).time_logs) == 2
    assert service.stop_timer(job_id).total_duration_seconds == 25
    assert events.types() == [
        EventType.JOB_TIMER_STARTED,
        EventType.JOB_TIMER_STOPPED,
        EventType.JOB_TIMER_STARTED,
        EventType.JOB_TIMER_STOPPED,
    ]


def test_complete_job_is_sticky(service, job, material, clock):
    job_id = job.job.id
    service.start_job(job_id)
    clock.advance(minutes=2)
    completed = service.complete_job(job_id)
    assert completed.status == JobStatus.DONE
    assert completed.end_time == clock.now
    assert completed.total_duration_seconds == 120
    assert service.timers.open_log(job_id) is None

    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    assert service.get_job(job_id).status == JobStatus.DONE


def test_add_material_reopens_a_done_job(service, job, material, supply, events):
    _cut_all(service, material)
    events.clear()
    added = service.add_material(job.job.id, supply.id, 2)
    assert added.cutlist_id == material.cutlist_id
    assert service.get_job(job.job.id).status == JobStatus.IN_PROGRESS
    assert events.types() == [EventType.MATERIAL_ADDED]
    assert events.events[0].payload["job_status"] == "in_progress"


def test_material_must_target_a_cutlist_of_the_job(service, job, supply):
    other = service.create_job("Other", "Job")
    with pytest.raises(RecordNotFoundError):
        service.add_material(
            job.job.id, supply.id, 2, cutlist_id=other.cutlists[0].cutlist.id
        )
    with pytest.raises(InvalidQuantityError):
        service.add_material(job.job.id, supply.id, 0)


def test_delete_material_removes_its_tree(service, job, material, supply):
    other = service.add_material(job.job.id, supply.id, 1)
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    service.add_recut(material.id, 1)
    service.set_sheet_status(other.id, 0, SheetStatus.CUT)
    service.delete_material(material.id)
    assert material.id not in service.store.materials
    assert service.store.recuts.find("material_id", material.id) == []
    assert service.get_cut_logs(material_id=material.id) == []
    assert service.get_job(job.job.id).status == JobStatus.DONE


def test_cutlists(service, job, supply, events):
    cutlist = service.add_cutlist(job.job.id)
    assert cutlist.name == "Cutlist 2"
    assert cutlist.order_index == 1
    material = service.add_material(job.job.id, supply.id, 2)
    assert material.cutlist_id == cutlist.id

    service.delete_cutlist(cutlist.id)
    details = service.get_job(job.job.id)
    assert [item.cutlist.id for item in details.cutlists] == [job.cutlists[0].cutlist.id]
    assert material.id not in service.store.materials
    assert events.types() == [
        EventType.CUTLIST_ADDED,
        EventType.MATERIAL_ADDED,
        EventType.CUTLIST_DELETED,
    ]


def test_delete_job_cascades(service, store, supply, events):
    details = service.create_job("Acme", "Desk", [(supply.id, 2), (supply.id, 1)])
    job_id = details.job.id
    first = details.materials[0]
    service.start_job(job_id)
    service.set_sheet_status(first.id, 0, SheetStatus.CUT)
    recut = service.add_recut(first.id, 1)
    service.set_recut_sheet_status(recut.id, 0, SheetStatus.CUT)
    checklist = service.create_checklist("Prep", job_id=job_id)
    service.add_checklist_item(checklist.checklist.id, "Check tool calibration")
    events.clear()

    service.delete_job(job_id)

    assert job_id not in store.jobs
    for repo in (
        store.cutlists,
        store.materials,
        store.recuts,
        store.cut_logs,
        store.time_logs,
        store.checklists,
        store.checklist_items,
    ):
        assert repo.find("job_id", job_id) == []
    with pytest.raises(RecordNotFoundError):
        service.get_job(job_id)
    assert events.types() == [EventType.JOB_DELETED]


def test_update_job(service, job, events):
    updated = service.update_job(job.job.id, name="Kitchen lowers")
    assert updated.name == "Kitchen lowers"
    service.update_job(job.job.id, name="Kitchen lowers")
    assert events.types() == [EventType.JOB_UPDATED]
    with pytest.raises(ValueError):
        service.update_job(job.job.id, customer_name="  ")


def test_list_jobs_filters_and_searches(service, job, material, supply, clock):
    clock.advance(minutes=1)
    other = service.create_job("Northwind", "Reception desk", [(supply.id, 1)])
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)

    assert [j.id for j in service.list_jobs()] == [other.job.id, job.job.id]
    assert [j.id for j in service.list_jobs(search="north")] == [other.job.id]
    assert [j.id for j in service.list_jobs(search=job.job.number.lower())] == [job.job.id]
    assert [j.id for j in service.list_jobs(status="in_progress")] == [job.job.id]
    assert [j.id for j in service.list_jobs(status=JobStatus.WAITING)] == [other.job.id]
    assert len(service.list_jobs(status="all")) == 2
    with pytest.raises(ValueError):
        service.list_jobs(status="archived")


def test_dashboard_stats(service, job, material, supply, clock):
    service.create_job("Northwind", "Desk", [(supply.id, 1)])
    service.start_job(job.job.id)
    clock.advance(seconds=90)
    _cut_all(service, material)
    service.complete_job(job.job.id)

    stats = service.dashboard_stats()
    assert stats.total_jobs == 2
    assert stats.jobs_by_status == {"waiting": 1, "in_progress": 0, "paused": 0, "done": 1}
    assert stats.active_jobs == 1
    assert stats.sheets_cut_today == 3
    assert stats.open_timers == 0
    assert stats.average_job_seconds == 90
    assert stats.average_sheet_seconds == 30.0
    assert stats.as_dict()["jobs_by_status"]["done"] == 1


def test_job_details_serialize_to_plain_values(service, job, material):
    service.set_sheet_status(material.id, 0, SheetStatus.CUT)
    data = service.get_job(job.job.id).as_dict()
    assert data["status"] == "in_progress"
    assert data["progress"]["completed_sheets"] == 1
    sheets = data["cutlists"][0]["materials"][0]["sheet_statuses"]
    assert sheets == ["cut", "pending", "pending"]
    assert isinstance(data["created_at"], str)
