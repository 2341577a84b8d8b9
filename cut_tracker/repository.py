"""In-memory repositories and the transactional store used by the services."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import asdict
from enum import Enum
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    MutableMapping,
    Optional,
    TypeVar,
)

from .domain import (
    ChecklistItem,
    Cutlist,
    InventoryMovement,
    Job,
    JobTimeLog,
    Location,
    Material,
    PartChecklist,
    RecutEntry,
    SheetCutLog,
    Supply,
    SupplyLocation,
)

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class ConcurrentModificationError(RepositoryError):
    """Raised when a versioned record changed between read and write.

    Callers may retry the whole operation from a fresh read.
    """


class PersistenceError(RepositoryError):
    """Raised when the underlying store fails; the transaction is rolled back."""


def normalize_value(value: Any) -> Any:
    """Return the plain value stored in index columns (enum members unwrap)."""

    if isinstance(value, Enum):
        return value.value
    return value


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary.

    Records are copied on the way in and out so callers never share state
    with the store, the same way rows behave in a real database.
    """

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self._items: MutableMapping[str, T] = {}
        self._lock = lock or threading.RLock()

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __len__(self) -> int:  # pragma: no cover - convenience
        with self._lock:
            return len(self._items)

    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._items[item_id] = copy.deepcopy(item)

    def upsert(self, item_id: str, item: T) -> None:
        with self._lock:
            self._items[item_id] = copy.deepcopy(item)

    def get(self, item_id: str) -> T:
        with self._lock:
            try:
                return copy.deepcopy(self._items[item_id])
            except KeyError as exc:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        with self._lock:
            if item_id not in self._items:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            del self._items[item_id]

    def list(self) -> List[T]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    def find(self, column: str, value: Any) -> List[T]:
        """Return all records whose attribute ``column`` equals ``value``."""

        wanted = normalize_value(value)
        with self._lock:
            return [
                copy.deepcopy(item)
                for item in self._items.values()
                if normalize_value(getattr(item, column)) == wanted
            ]

    def as_dicts(self) -> Iterable[Dict]:  # pragma: no cover - convenience
        for item in self.list():
            yield asdict(item)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def snapshot(self) -> Dict[str, T]:
        with self._lock:
            return dict(self._items)

    def restore(self, items: Dict[str, T]) -> None:
        with self._lock:
            self._items = dict(items)


class InMemoryStore:
    """All job and inventory repositories behind one re-entrant lock.

    ``transaction()`` serializes writers and restores every repository to its
    state at the outermost ``transaction()`` entry if the block raises.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self.jobs = InMemoryRepository[Job](self._lock)
        self.cutlists = InMemoryRepository[Cutlist](self._lock)
        self.materials = InMemoryRepository[Material](self._lock)
        self.recuts = InMemoryRepository[RecutEntry](self._lock)
        self.cut_logs = InMemoryRepository[SheetCutLog](self._lock)
        self.time_logs = InMemoryRepository[JobTimeLog](self._lock)
        self.checklists = InMemoryRepository[PartChecklist](self._lock)
        self.checklist_items = InMemoryRepository[ChecklistItem](self._lock)
        self.supplies = InMemoryRepository[Supply](self._lock)
        self.locations = InMemoryRepository[Location](self._lock)
        self.stock = InMemoryRepository[SupplyLocation](self._lock)
        self.movements = InMemoryRepository[InventoryMovement](self._lock)

    def _repositories(self) -> List[InMemoryRepository]:
        return [
            self.jobs,
            self.cutlists,
            self.materials,
            self.recuts,
            self.cut_logs,
            self.time_logs,
            self.checklists,
            self.checklist_items,
            self.supplies,
            self.locations,
            self.stock,
            self.movements,
        ]

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            snapshots = [repo.snapshot() for repo in self._repositories()]
            self._depth = 1
            try:
                yield self
            except BaseException:
                for repo, items in zip(self._repositories(), snapshots):
                    repo.restore(items)
                raise
            finally:
                self._depth = 0

    def close(self) -> None:
        pass


__all__ = [
    "InMemoryRepository",
    "InMemoryStore",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "ConcurrentModificationError",
    "PersistenceError",
]
