"""Multi-location supply inventory: stock movements, allocation and reorders."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from .domain import (
    InsufficientStockError,
    InvalidQuantityError,
    InventoryMovement,
    Location,
    MovementType,
    Supply,
    SupplyLocation,
)
from .repository import InMemoryStore, RecordNotFoundError
from .timers import Clock

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InventoryOptions:
    """Configuration values controlling purchase suggestions."""

    cover_allocations: bool = True
    minimum_order_group_size: int = 1


@dataclass(slots=True)
class PurchaseSuggestion:
    """Summary of required purchasing action for a supply at one location."""

    supply_id: str
    supply_name: str
    location_id: str
    location_name: str
    on_hand_quantity: int
    allocated_quantity: int
    available_quantity: int
    minimum_quantity: int
    reorder_point: int
    on_order_quantity: int
    order_group_size: int
    suggested_quantity: int


@dataclass(slots=True)
class LowStockAlert:
    supply_id: str
    supply_name: str
    location_id: str
    location_name: str
    on_hand_quantity: int
    threshold: int
    level: str


def _require_positive(quantity: int, what: str = "Quantity") -> None:
    if quantity < 1:
        raise InvalidQuantityError(f"{what} must be a positive number")


class InventoryService:
    """Facade for stock keeping across storage locations.

    Every stock change writes a :class:`InventoryMovement` in the same
    transaction as the stock row update.
    """

    def __init__(self, store=None, *, clock: Optional[Clock] = None) -> None:
        self.store = store if store is not None else InMemoryStore()
        self._clock = clock if clock is not None else datetime.utcnow
        self.options = InventoryOptions()

    def update_inventory_options(
        self, *, cover_allocations: bool, minimum_order_group_size: int
    ) -> InventoryOptions:
        self.options = InventoryOptions(
            cover_allocations=cover_allocations,
            minimum_order_group_size=max(minimum_order_group_size, 1),
        )
        return self.options

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------
    def register_supply(
        self,
        name: str,
        *,
        hex_color: str = "#000000",
        piece_size: str = "sheet",
        part_number: str = "",
        description: str = "",
    ) -> Supply:
        if not name.strip():
            raise ValueError("A supply needs a name")
        supply = Supply(
            id=str(uuid4()),
            name=name.strip(),
            hex_color=hex_color,
            piece_size=piece_size,
            part_number=part_number,
            description=description,
            created_at=self._clock(),
        )
        self.store.supplies.add(supply.id, supply)
        return supply

    def register_location(self, name: str, *, description: str = "") -> Location:
        if not name.strip():
            raise ValueError("A location needs a name")
        location = Location(
            id=str(uuid4()),
            name=name.strip(),
            description=description,
            created_at=self._clock(),
        )
        self.store.locations.add(location.id, location)
        return location

    def set_location_active(self, location_id: str, active: bool) -> Location:
        with self.store.transaction():
            location = self.store.locations.get(location_id)
            location.is_active = active
            self.store.locations.upsert(location.id, location)
        return location

    # ------------------------------------------------------------------
    # Stock rows
    # ------------------------------------------------------------------
    def _find_row(self, supply_id: str, location_id: str) -> Optional[SupplyLocation]:
        for row in self.store.stock.find("supply_id", supply_id):
            if row.location_id == location_id:
                return row
        return None

    def _row(
        self, supply_id: str, location_id: str, *, create: bool = False
    ) -> SupplyLocation:
        if supply_id not in self.store.supplies:
            raise RecordNotFoundError(f"Supply {supply_id!r} does not exist")
        location = self.store.locations.get(location_id)
        row = self._find_row(supply_id, location_id)
        if row is not None:
            return row
        if not create:
            raise RecordNotFoundError(
                f"Supply {supply_id!r} is not stocked at location {location.name!r}"
            )
        row = SupplyLocation(
            id=str(uuid4()),
            supply_id=supply_id,
            location_id=location_id,
            order_group_size=self.options.minimum_order_group_size,
        )
        self.store.stock.add(row.id, row)
        return row

    def _active_location(self, location_id: str) -> Location:
        location = self.store.locations.get(location_id)
        if not location.is_active:
            raise ValueError(f"Location {location.name!r} is inactive")
        return location

    def _record(
        self,
        supply_id: str,
        movement_type: MovementType,
        quantity: int,
        *,
        from_location_id: Optional[str] = None,
        to_location_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        notes: str = "",
        actor: Optional[str] = None,
    ) -> InventoryMovement:
        movement = InventoryMovement(
            id=str(uuid4()),
            supply_id=supply_id,
            movement_type=movement_type,
            quantity=quantity,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            user_id=actor,
            created_at=self._clock(),
        )
        self.store.movements.add(movement.id, movement)
        logger.debug(
            "%s of %s x %s recorded", movement_type.value, quantity, supply_id
        )
        return movement

    def set_stock_levels(
        self,
        supply_id: str,
        location_id: str,
        *,
        minimum_quantity: Optional[int] = None,
        reorder_point: Optional[int] = None,
        order_group_size: Optional[int] = None,
    ) -> SupplyLocation:
        for value in (minimum_quantity, reorder_point):
            if value is not None and value < 0:
                raise InvalidQuantityError("Stock levels cannot be negative")
        if order_group_size is not None:
            _require_positive(order_group_size, "Order group size")
        with self.store.transaction():
            row = self._row(supply_id, location_id, create=True)
            if minimum_quantity is not None:
                row.minimum_quantity = minimum_quantity
            if reorder_point is not None:
                row.reorder_point = reorder_point
            if order_group_size is not None:
                row.order_group_size = order_group_size
            self.store.stock.upsert(row.id, row)
        return row

    def check_in(
        self,
        supply_id: str,
        location_id: str,
        quantity: int,
        *,
        notes: str = "",
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        _require_positive(quantity)
        with self.store.transaction():
            self._active_location(location_id)
            row = self._row(supply_id, location_id, create=True)
            row.on_hand_quantity += quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.CHECK_IN,
                quantity,
                to_location_id=location_id,
                notes=notes,
                actor=actor,
            )
        return row

    def check_out(
        self,
        supply_id: str,
        location_id: str,
        quantity: int,
        *,
        notes: str = "",
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        _require_positive(quantity)
        with self.store.transaction():
            row = self._row(supply_id, location_id)
            if row.available_quantity < quantity:
                raise InsufficientStockError(
                    f"Only {row.available_quantity} available, {quantity} requested"
                )
            row.on_hand_quantity -= quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.CHECK_OUT,
                quantity,
                from_location_id=location_id,
                notes=notes,
                actor=actor,
            )
        return row

    def transfer(
        self,
        supply_id: str,
        from_location_id: str,
        to_location_id: str,
        quantity: int,
        *,
        notes: str = "",
        actor: Optional[str] = None,
    ) -> Tuple[SupplyLocation, SupplyLocation]:
        _require_positive(quantity)
        if from_location_id == to_location_id:
            raise ValueError("Source and destination locations must differ")
        with self.store.transaction():
            source = self._row(supply_id, from_location_id)
            if source.available_quantity < quantity:
                raise InsufficientStockError(
                    f"Only {source.available_quantity} available, {quantity} requested"
                )
            self._active_location(to_location_id)
            target = self._row(supply_id, to_location_id, create=True)
            source.on_hand_quantity -= quantity
            target.on_hand_quantity += quantity
            self.store.stock.upsert(source.id, source)
            self.store.stock.upsert(target.id, target)
            self._record(
                supply_id,
                MovementType.TRANSFER,
                quantity,
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                notes=notes,
                actor=actor,
            )
        return source, target

    def adjust(
        self,
        supply_id: str,
        location_id: str,
        on_hand_quantity: int,
        *,
        notes: str = "",
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        """Set the counted on-hand quantity; the movement records the delta."""

        if on_hand_quantity < 0:
            raise InvalidQuantityError("On-hand quantity cannot be negative")
        with self.store.transaction():
            row = self._row(supply_id, location_id, create=True)
            if on_hand_quantity < row.allocated_quantity:
                raise InsufficientStockError(
                    f"{row.allocated_quantity} sheet(s) are allocated at this location"
                )
            delta = on_hand_quantity - row.on_hand_quantity
            if delta == 0:
                return row
            row.on_hand_quantity = on_hand_quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.ADJUST,
                delta,
                to_location_id=location_id,
                notes=notes,
                actor=actor,
            )
        return row

    # ------------------------------------------------------------------
    # Job and purchase order touchpoints
    # ------------------------------------------------------------------
    def allocate_for_job(
        self,
        job_id: str,
        supply_id: str,
        location_id: str,
        quantity: int,
        *,
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        _require_positive(quantity)
        with self.store.transaction():
            job = self.store.jobs.get(job_id)
            row = self._row(supply_id, location_id)
            if row.available_quantity < quantity:
                raise InsufficientStockError(
                    f"Only {row.available_quantity} available, {quantity} requested"
                )
            row.allocated_quantity += quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.ALLOCATE,
                quantity,
                from_location_id=location_id,
                reference_type="job",
                reference_id=job_id,
                notes=f"Allocated for {job.number}",
                actor=actor,
            )
        logger.info("Allocated %s x %s to job %s", quantity, supply_id, job.number)
        return row

    def consume_allocation(
        self,
        job_id: str,
        supply_id: str,
        location_id: str,
        quantity: int,
        *,
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        """Take allocated sheets off the shelf once they are cut."""

        _require_positive(quantity)
        with self.store.transaction():
            row = self._row(supply_id, location_id)
            if row.allocated_quantity < quantity:
                raise InsufficientStockError(
                    f"Only {row.allocated_quantity} allocated, {quantity} requested"
                )
            row.allocated_quantity -= quantity
            row.on_hand_quantity -= quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.CONSUME,
                quantity,
                from_location_id=location_id,
                reference_type="job",
                reference_id=job_id,
                actor=actor,
            )
        return row

    def receive_purchase(
        self,
        purchase_order_id: str,
        supply_id: str,
        location_id: str,
        quantity: int,
        *,
        actor: Optional[str] = None,
    ) -> SupplyLocation:
        _require_positive(quantity)
        with self.store.transaction():
            row = self._row(supply_id, location_id, create=True)
            row.on_hand_quantity += quantity
            self.store.stock.upsert(row.id, row)
            self._record(
                supply_id,
                MovementType.RECEIVE,
                quantity,
                to_location_id=location_id,
                reference_type="purchase_order",
                reference_id=purchase_order_id,
                actor=actor,
            )
        return row

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def stock_for_supply(self, supply_id: str) -> List[SupplyLocation]:
        if supply_id not in self.store.supplies:
            raise RecordNotFoundError(f"Supply {supply_id!r} does not exist")
        return self.store.stock.find("supply_id", supply_id)

    def movements(
        self,
        supply_id: Optional[str] = None,
        *,
        reference_id: Optional[str] = None,
    ) -> List[InventoryMovement]:
        if supply_id is not None:
            movements = self.store.movements.find("supply_id", supply_id)
        else:
            movements = self.store.movements.list()
        if reference_id is not None:
            movements = [item for item in movements if item.reference_id == reference_id]
        movements.sort(key=lambda item: item.created_at, reverse=True)
        return movements

    def _named_rows(self) -> List[Tuple[SupplyLocation, Supply, Location]]:
        supplies = {supply.id: supply for supply in self.store.supplies.list()}
        locations = {location.id: location for location in self.store.locations.list()}
        rows = []
        for row in self.store.stock.list():
            supply = supplies.get(row.supply_id)
            location = locations.get(row.location_id)
            if supply is None or location is None or not location.is_active:
                continue
            rows.append((row, supply, location))
        rows.sort(key=lambda entry: (entry[1].name, entry[2].name))
        return rows

    def need_to_purchase(
        self,
        on_order: Optional[Mapping[Tuple[str, str], int]] = None,
        *,
        cover_allocations: Optional[bool] = None,
    ) -> List[PurchaseSuggestion]:
        """Suggest order quantities for rows at or below their thresholds.

        ``on_order`` maps ``(supply_id, location_id)`` to the quantity still
        outstanding on open purchase orders, which is subtracted so stock is
        not ordered twice. Quantities are rounded up to the row's order group.
        """

        outstanding: Dict[Tuple[str, str], int] = dict(on_order or {})
        cover = (
            self.options.cover_allocations
            if cover_allocations is None
            else cover_allocations
        )
        suggestions: List[PurchaseSuggestion] = []
        for row, supply, location in self._named_rows():
            available = row.available_quantity
            if available > row.minimum_quantity and available > row.reorder_point:
                continue
            threshold = max(row.minimum_quantity, row.reorder_point)
            base = max(0, threshold - available)
            if cover and row.allocated_quantity > base:
                base = row.allocated_quantity
            pending = max(0, outstanding.get((row.supply_id, row.location_id), 0))
            base = max(0, base - pending)
            group = max(1, row.order_group_size, self.options.minimum_order_group_size)
            suggested = 0 if base <= 0 else math.ceil(base / group) * group
            suggestions.append(
                PurchaseSuggestion(
                    supply_id=supply.id,
                    supply_name=supply.name,
                    location_id=location.id,
                    location_name=location.name,
                    on_hand_quantity=row.on_hand_quantity,
                    allocated_quantity=row.allocated_quantity,
                    available_quantity=available,
                    minimum_quantity=row.minimum_quantity,
                    reorder_point=row.reorder_point,
                    on_order_quantity=pending,
                    order_group_size=group,
                    suggested_quantity=suggested,
                )
            )
        return suggestions

    def low_stock_alerts(self) -> List[LowStockAlert]:
        """Rows whose on-hand stock is below the minimum or the reorder point."""

        alerts: List[LowStockAlert] = []
        for row, supply, location in self._named_rows():
            if row.on_hand_quantity < row.minimum_quantity:
                level, threshold = "below_minimum", row.minimum_quantity
            elif row.on_hand_quantity < row.reorder_point:
                level, threshold = "reorder", row.reorder_point
            else:
                continue
            alerts.append(
                LowStockAlert(
                    supply_id=supply.id,
                    supply_name=supply.name,
                    location_id=location.id,
                    location_name=location.name,
                    on_hand_quantity=row.on_hand_quantity,
                    threshold=threshold,
                    level=level,
                )
            )
        return alerts


__all__ = [
    "InventoryService",
    "InventoryOptions",
    "PurchaseSuggestion",
    "LowStockAlert",
]
