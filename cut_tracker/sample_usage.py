"""Demonstration script for the cut tracker."""

from __future__ import annotations

from pprint import pprint

from . import InventoryService, JobTrackingService, SheetStatus
from .events import RecordingPublisher
from .repository import InMemoryStore


def main() -> None:
    store = InMemoryStore()
    events = RecordingPublisher()
    tracker = JobTrackingService(store, publisher=events)
    inventory = InventoryService(store)

    # Stock
    birch = inventory.register_supply(
        "Baltic birch 18mm", hex_color="#d9b38c", part_number="BB-18"
    )
    mdf = inventory.register_supply("MDF 3/4", hex_color="#8b6f47", part_number="MDF-34")
    rack = inventory.register_location("Rack A", description="Main sheet rack")
    inventory.check_in(birch.id, rack.id, 12)
    inventory.check_in(mdf.id, rack.id, 4)
    inventory.set_stock_levels(mdf.id, rack.id, minimum_quantity=6, order_group_size=5)

    details = tracker.create_job(
        "Harbor Cabinets", "Kitchen uppers", [(birch.id, 3), (mdf.id, 2)]
    )
    job = details.job
    birch_material, mdf_material = details.materials
    inventory.allocate_for_job(job.id, birch.id, rack.id, 3)

    print(f"Job {job.number} created: {details.status.value}")

    template = tracker.create_checklist("Sheet goods prep", is_template=True)
    tracker.add_checklist_item(template.checklist.id, "Verify material specifications")
    tracker.add_checklist_item(template.checklist.id, "Check tool calibration")
    prep = tracker.create_checklist(
        "Kitchen uppers prep", job_id=job.id, template_id=template.checklist.id
    )
    for item in prep.items:
        tracker.set_checklist_item(item.id, True, completed_by="operator-1")
    prep = tracker.get_checklist(prep.checklist.id)
    print(f"Checklist: {prep.completed_items}/{len(prep.items)} items done")

    tracker.start_job(job.id, actor="operator-1")
    tracker.set_sheet_status(birch_material.id, 0, SheetStatus.CUT)
    tracker.set_sheet_status(birch_material.id, 1, SheetStatus.CUT)
    tracker.set_sheet_status(birch_material.id, 2, SheetStatus.SKIP)
    recut = tracker.add_recut(birch_material.id, 1, reason="Chipped edge")

    progress = tracker.get_job(job.id).progress
    print(
        f"Progress: {progress.completed_sheets}/{progress.effective_total} sheets "
        f"({progress.percent_complete}%)"
    )

    tracker.pause_job(job.id)
    print(f"After pause: {tracker.get_job(job.id).status.value}")
    tracker.resume_job(job.id)

    tracker.set_recut_sheet_status(recut.id, 0, SheetStatus.CUT)
    for index in range(mdf_material.total_sheets):
        tracker.set_sheet_status(mdf_material.id, index, SheetStatus.CUT)
    print(f"After cutting everything: {tracker.get_job(job.id).status.value}")
    tracker.complete_job(job.id)
    inventory.consume_allocation(job.id, birch.id, rack.id, 3)

    print("\nNeed to purchase")
    for suggestion in inventory.need_to_purchase():
        print(
            f" - {suggestion.supply_name} @ {suggestion.location_name}: "
            f"order {suggestion.suggested_quantity}"
        )

    print("\nEvents")
    print(", ".join(event_type.value for event_type in events.types()))

    print("\nDashboard")
    pprint(tracker.dashboard_stats().as_dict())


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
