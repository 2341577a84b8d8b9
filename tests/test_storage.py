import pytest

from cut_tracker.domain import (
    ChecklistItem,
    Cutlist,
    Job,
    JobStatus,
    PartChecklist,
    SheetStatus,
    Supply,
)
from cut_tracker.repository import (
    DuplicateRecordError,
    InMemoryRepository,
    InMemoryStore,
    PersistenceError,
    RecordNotFoundError,
)
from cut_tracker.services import JobTrackingService
from cut_tracker.storage import ShopDatabase


@pytest.fixture
def database(tmp_path):
    db = ShopDatabase(str(tmp_path / "shop.sqlite3"))
    yield db
    db.close()


def _job(job_id: str = "job-1") -> Job:
    return Job(id=job_id, number="JOB-00000001", customer_name="Acme", name="Desk")


def test_sqlite_repository_crud(database):
    job = _job()
    database.jobs.add(job.id, job)
    assert job.id in database.jobs
    with pytest.raises(DuplicateRecordError):
        database.jobs.add(job.id, job)

    job.name = "Standing desk"
    database.jobs.upsert(job.id, job)
    assert database.jobs.get(job.id).name == "Standing desk"
    assert [item.id for item in database.jobs.list()] == [job.id]

    database.jobs.remove(job.id)
    with pytest.raises(RecordNotFoundError):
        database.jobs.get(job.id)
    with pytest.raises(RecordNotFoundError):
        database.jobs.remove(job.id)


def test_find_uses_index_columns_and_enum_values(database):
    database.jobs.add("a", _job("a"))
    database.jobs.add("b", _job("b"))
    assert {job.id for job in database.jobs.find("status", JobStatus.WAITING)} == {"a", "b"}
    assert database.jobs.find("status", "done") == []
    assert [job.id for job in database.jobs.find("customer_name", "Acme")] == ["a", "b"]


def test_deleting_a_job_row_cascades_through_foreign_keys(database):
    database.jobs.add("job-1", _job())
    database.cutlists.add("c-1", Cutlist(id="c-1", job_id="job-1", name="Cutlist 1"))
    database.jobs.remove("job-1")
    assert database.cutlists.find("job_id", "job-1") == []


def test_checklists_cascade_with_their_job_and_templates_stay(database):
    database.jobs.add("job-1", _job())
    database.checklists.add("t-1", PartChecklist(id="t-1", name="Template", is_template=True))
    database.checklists.add("k-1", PartChecklist(id="k-1", name="Prep", job_id="job-1"))
    database.checklist_items.add(
        "i-1", ChecklistItem(id="i-1", checklist_id="k-1", text="Calibrate", job_id="job-1")
    )
    database.jobs.remove("job-1")
    assert [checklist.id for checklist in database.checklists.list()] == ["t-1"]
    assert database.checklist_items.list() == []


def test_transaction_rolls_back_on_error(database):
    with pytest.raises(RuntimeError):
        with database.transaction():
            database.jobs.add("job-1", _job())
            raise RuntimeError("abort")
    assert "job-1" not in database.jobs


def test_nested_transactions_commit_once(database):
    with database.transaction():
        database.jobs.add("a", _job("a"))
        with database.transaction():
            database.jobs.add("b", _job("b"))
    assert len(database.jobs.list()) == 2


def test_unopenable_database_raises_persistence_error(tmp_path):
    with pytest.raises(PersistenceError):
        ShopDatabase(str(tmp_path / "missing" / "dir" / "shop.sqlite3"))


def test_data_survives_reopening(tmp_path):
    path = str(tmp_path / "shop.sqlite3")
    database = ShopDatabase(path)
    supply = Supply(id="s-1", name="MDF")
    database.supplies.add(supply.id, supply)
    service = JobTrackingService(database)
    details = service.create_job("Acme", "Desk", [(supply.id, 2)])
    service.set_sheet_status(details.materials[0].id, 1, SheetStatus.CUT)
    database.close()

    reopened = ShopDatabase(path)
    try:
        loaded = JobTrackingService(reopened).get_job(details.job.id)
        assert loaded.status == JobStatus.IN_PROGRESS
        assert loaded.materials[0].sheet_statuses == [SheetStatus.PENDING, SheetStatus.CUT]
    finally:
        reopened.close()


def test_in_memory_repository_returns_copies():
    repo = InMemoryRepository[Job]()
    job = _job()
    repo.add(job.id, job)
    loaded = repo.get(job.id)
    loaded.name = "Changed"
    assert repo.get(job.id).name == "Desk"


def test_in_memory_store_restores_on_error():
    store = InMemoryStore()
    store.jobs.add("a", _job("a"))
    with pytest.raises(ValueError):
        with store.transaction():
            store.jobs.remove("a")
            store.jobs.add("b", _job("b"))
            raise ValueError("abort")
    assert [job.id for job in store.jobs.list()] == ["a"]
