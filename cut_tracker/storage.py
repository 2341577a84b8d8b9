"""SQLite-backed persistence for the cut tracker."""

from __future__ import annotations

import logging
import pickle
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

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
from .repository import (
    DuplicateRecordError,
    PersistenceError,
    RecordNotFoundError,
    normalize_value,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite.

    The record itself is stored as a pickled payload. Attributes listed in
    ``index_columns`` are mirrored into real columns so they can be filtered
    with :meth:`find`. ``parent`` declares a foreign key (column, table) that
    cascades on delete.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        lock: threading.RLock,
        table: str,
        *,
        index_columns: Sequence[str] = (),
        parent: Optional[Tuple[str, str]] = None,
    ) -> None:
        self._connection = connection
        self._lock = lock
        self._table = table
        self._columns = tuple(index_columns)
        column_defs = []
        for column in self._columns:
            if parent is not None and column == parent[0]:
                column_defs.append(
                    f"{column} TEXT REFERENCES {parent[1]}(id) ON DELETE CASCADE"
                )
            else:
                column_defs.append(f"{column} TEXT")
        columns_sql = "".join(f", {definition}" for definition in column_defs)
        self._execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            f"id TEXT PRIMARY KEY, payload BLOB NOT NULL{columns_sql})"
        )
        for column in self._columns:
            self._execute(
                f"CREATE INDEX IF NOT EXISTS ix_{table}_{column} ON {table} ({column})"
            )

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._connection.execute(sql, params)
            except sqlite3.IntegrityError as exc:
                raise PersistenceError(f"Integrity violation on {self._table}: {exc}") from exc
            except sqlite3.Error as exc:
                raise PersistenceError(f"SQLite error on {self._table}: {exc}") from exc

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        with self._lock:
            cursor = self._execute(sql, params)
            try:
                return cursor.fetchall()
            except sqlite3.Error as exc:
                raise PersistenceError(f"SQLite error on {self._table}: {exc}") from exc

    def _index_values(self, item: T) -> List[Any]:
        return [normalize_value(getattr(item, column)) for column in self._columns]

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        rows = self._query(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return bool(rows)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:  # pragma: no cover - simple delegation
        rows = self._query(f"SELECT COUNT(1) FROM {self._table}")
        return int(rows[0][0]) if rows else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._write(item_id, item)

    def upsert(self, item_id: str, item: T) -> None:
        self._write(item_id, item)

    def _write(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        names = "".join(f", {column}" for column in self._columns)
        marks = "".join(", ?" for _ in self._columns)
        updates = "".join(f", {column} = excluded.{column}" for column in self._columns)
        self._execute(
            f"INSERT INTO {self._table} (id, payload{names}) VALUES (?, ?{marks}) "
            f"ON CONFLICT(id) DO UPDATE SET payload = excluded.payload{updates}",
            (item_id, payload, *self._index_values(item)),
        )

    def get(self, item_id: str) -> T:
        rows = self._query(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        if not rows:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(rows[0][0])

    def remove(self, item_id: str) -> None:
        with self._lock:
            cursor = self._execute(f"DELETE FROM {self._table} WHERE id = ?", (item_id,))
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")

    def list(self) -> List[T]:
        rows = self._query(f"SELECT payload FROM {self._table} ORDER BY rowid")
        return [pickle.loads(row[0]) for row in rows]

    def find(self, column: str, value: Any) -> List[T]:
        wanted = normalize_value(value)
        if column not in self._columns:
            return [
                item
                for item in self.list()
                if normalize_value(getattr(item, column)) == wanted
            ]
        rows = self._query(
            f"SELECT payload FROM {self._table} WHERE {column} = ? ORDER BY rowid",
            (wanted,),
        )
        return [pickle.loads(row[0]) for row in rows]


class ShopDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates.

    The connection runs in autocommit mode; :meth:`transaction` opens an
    explicit ``BEGIN IMMEDIATE`` so concurrent writers are serialized and a
    failing block leaves no partial rows behind.
    """

    def __init__(self, path: str) -> None:
        try:
            connection = sqlite3.connect(
                path, check_same_thread=False, isolation_level=None
            )
            connection.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {path!r}: {exc}") from exc
        self._connection = connection
        self._lock = threading.RLock()
        self._depth = 0
        self.jobs = SQLiteRepository[Job](
            connection, self._lock, "jobs", index_columns=("status",)
        )
        self.cutlists = SQLiteRepository[Cutlist](
            connection, self._lock, "cutlists",
            index_columns=("job_id",), parent=("job_id", "jobs"),
        )
        self.materials = SQLiteRepository[Material](
            connection, self._lock, "materials",
            index_columns=("cutlist_id", "job_id"), parent=("cutlist_id", "cutlists"),
        )
        self.recuts = SQLiteRepository[RecutEntry](
            connection, self._lock, "recut_entries",
            index_columns=("material_id", "job_id"), parent=("material_id", "materials"),
        )
        self.cut_logs = SQLiteRepository[SheetCutLog](
            connection, self._lock, "sheet_cut_logs",
            index_columns=("material_id", "job_id"), parent=("material_id", "materials"),
        )
        self.time_logs = SQLiteRepository[JobTimeLog](
            connection, self._lock, "job_time_logs",
            index_columns=("job_id",), parent=("job_id", "jobs"),
        )
        self.checklists = SQLiteRepository[PartChecklist](
            connection, self._lock, "part_checklists",
            index_columns=("job_id",), parent=("job_id", "jobs"),
        )
        self.checklist_items = SQLiteRepository[ChecklistItem](
            connection, self._lock, "checklist_items",
            index_columns=("checklist_id", "job_id"),
            parent=("checklist_id", "part_checklists"),
        )
        self.supplies = SQLiteRepository[Supply](connection, self._lock, "supplies")
        self.locations = SQLiteRepository[Location](connection, self._lock, "locations")
        self.stock = SQLiteRepository[SupplyLocation](
            connection, self._lock, "supply_locations",
            index_columns=("supply_id", "location_id"), parent=("supply_id", "supplies"),
        )
        self.movements = SQLiteRepository[InventoryMovement](
            connection, self._lock, "inventory_movements",
            index_columns=("supply_id",), parent=("supply_id", "supplies"),
        )

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator["ShopDatabase"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            try:
                self._connection.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise PersistenceError(f"Cannot begin transaction: {exc}") from exc
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._connection.execute("ROLLBACK")
                raise
            else:
                try:
                    self._connection.execute("COMMIT")
                except sqlite3.Error as exc:
                    logger.error("Commit failed, rolling back: %s", exc)
                    self._connection.execute("ROLLBACK")
                    raise PersistenceError(f"Commit failed: {exc}") from exc
            finally:
                self._depth = 0

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "ShopDatabase":  # pragma: no cover - convenience
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:  # pragma: no cover - convenience
        self.close()


__all__ = ["SQLiteRepository", "ShopDatabase"]
