from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from cut_tracker.events import RecordingPublisher
from cut_tracker.inventory import InventoryService
from cut_tracker.repository import InMemoryStore
from cut_tracker.services import JobTrackingService
from cut_tracker.storage import ShopDatabase


class FakeClock:
    """Settable clock injected wherever the code asks for the current time."""

    def __init__(self, start: datetime = datetime(2024, 3, 4, 8, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        store = InMemoryStore()
    else:
        store = ShopDatabase(str(tmp_path / "shop.sqlite3"))
    yield store
    store.close()


@pytest.fixture
def service(store, events, clock) -> JobTrackingService:
    return JobTrackingService(store, publisher=events, clock=clock)


@pytest.fixture
def inventory(store, clock) -> InventoryService:
    return InventoryService(store, clock=clock)


@pytest.fixture
def supply(inventory):
    return inventory.register_supply("Baltic birch 18mm", hex_color="#d9b38c")


@pytest.fixture
def job(service, supply, events):
    details = service.create_job("Harbor Cabinets", "Kitchen uppers", [(supply.id, 3)])
    events.clear()
    return details


@pytest.fixture
def material(job):
    return job.materials[0]
