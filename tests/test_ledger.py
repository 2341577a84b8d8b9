import pytest

from cut_tracker import ledger
from cut_tracker.domain import (
    InvalidQuantityError,
    InvalidSheetIndexError,
    Material,
    RecutEntry,
    SheetStatus,
)


def _material(total: int = 3) -> Material:
    return Material(
        id="m-1", job_id="j-1", cutlist_id="c-1", supply_id="s-1", total_sheets=total
    )


def test_new_material_starts_with_pending_sheets():
    material = _material(4)
    assert material.sheet_statuses == [SheetStatus.PENDING] * 4
    assert material.completed_sheets == 0


def test_material_requires_a_sheet():
    with pytest.raises(InvalidQuantityError):
        _material(0)


def test_set_status_counts_cut_sheets_only():
    material = _material()
    assert ledger.set_status(material, 0, SheetStatus.CUT)
    assert ledger.set_status(material, 1, SheetStatus.SKIP)
    assert material.completed_sheets == 1
    assert material.total_sheets == 3


def test_set_status_with_same_value_reports_no_change():
    material = _material()
    ledger.set_status(material, 2, SheetStatus.CUT)
    assert ledger.set_status(material, 2, "cut") is False
    assert material.completed_sheets == 1


def test_writing_past_the_end_grows_with_pending_sheets():
    material = _material(3)
    ledger.set_status(material, 7, SheetStatus.CUT)
    assert len(material.sheet_statuses) == 8
    assert material.total_sheets == 8
    assert material.sheet_statuses[3:7] == [SheetStatus.PENDING] * 4
    assert material.sheet_statuses[7] == SheetStatus.CUT
    assert material.completed_sheets == 1


def test_negative_index_is_rejected():
    material = _material()
    with pytest.raises(InvalidSheetIndexError):
        ledger.set_status(material, -1, SheetStatus.CUT)
    assert material.sheet_statuses == [SheetStatus.PENDING] * 3


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        ledger.set_status(_material(), 0, "burnt")


def test_append_sheets():
    material = _material(2)
    ledger.append_sheets(material, 3)
    assert material.total_sheets == 5
    assert len(material.sheet_statuses) == 5
    with pytest.raises(InvalidQuantityError):
        ledger.append_sheets(material, 0)


def test_remove_sheet_shifts_later_sheets_down():
    material = _material(3)
    ledger.set_status(material, 2, SheetStatus.CUT)
    removed = ledger.remove_sheet(material, 0)
    assert removed == SheetStatus.PENDING
    assert material.sheet_statuses == [SheetStatus.PENDING, SheetStatus.CUT]
    assert material.total_sheets == 2
    assert material.completed_sheets == 1


def test_remove_sheet_validates_index_and_keeps_one_sheet():
    material = _material(1)
    with pytest.raises(InvalidSheetIndexError):
        ledger.remove_sheet(material, 1)
    with pytest.raises(InvalidQuantityError):
        ledger.remove_sheet(material, 0)
    assert material.total_sheets == 1


def test_recut_entries_share_the_ledger_rules():
    recut = RecutEntry(id="r-1", job_id="j-1", material_id="m-1", quantity=2)
    ledger.set_status(recut, 0, SheetStatus.CUT)
    ledger.set_status(recut, 3, SheetStatus.CUT)
    assert recut.quantity == 4
    assert recut.completed_sheets == 2
    with pytest.raises(InvalidQuantityError):
        RecutEntry(id="r-2", job_id="j-1", material_id="m-1", quantity=0)


def test_growth_stops_at_the_sheet_limit():
    material = _material(3)
    assert ledger.set_status(material, 9, SheetStatus.CUT, limit=10)
    with pytest.raises(InvalidSheetIndexError):
        ledger.set_status(material, 10, SheetStatus.CUT, limit=10)
    with pytest.raises(InvalidQuantityError):
        ledger.append_sheets(material, 1, limit=10)
    assert len(material.sheet_statuses) == 10


def test_existing_sheets_beyond_a_lowered_limit_stay_writable():
    material = _material(6)
    assert ledger.set_status(material, 5, SheetStatus.SKIP, limit=4)
    with pytest.raises(InvalidSheetIndexError):
        ledger.set_status(material, 6, SheetStatus.CUT, limit=4)
