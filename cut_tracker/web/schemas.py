"""Request bodies accepted by the HTTP adapter."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..domain import SheetStatus


class MaterialIn(BaseModel):
    supply_id: str
    total_sheets: int


class JobCreate(BaseModel):
    customer_name: str
    name: str
    materials: List[MaterialIn] = Field(default_factory=list)
    cutlist_name: Optional[str] = None


class JobUpdate(BaseModel):
    customer_name: Optional[str] = None
    name: Optional[str] = None


class ActorIn(BaseModel):
    actor: Optional[str] = None


class CutlistCreate(BaseModel):
    name: Optional[str] = None


class MaterialCreate(MaterialIn):
    cutlist_id: Optional[str] = None


class SheetStatusIn(ActorIn):
    status: SheetStatus


class SheetsAdd(BaseModel):
    count: int


class RecutCreate(ActorIn):
    quantity: int
    reason: Optional[str] = None


class ChecklistCreate(BaseModel):
    name: str
    job_id: Optional[str] = None
    is_template: bool = False
    template_id: Optional[str] = None


class ChecklistItemCreate(BaseModel):
    text: str
    sort_order: Optional[int] = None


class ChecklistItemUpdate(BaseModel):
    is_completed: bool
    completed_by: Optional[str] = None


class SupplyCreate(BaseModel):
    name: str
    hex_color: str = "#000000"
    piece_size: str = "sheet"
    part_number: str = ""
    description: str = ""


class LocationCreate(BaseModel):
    name: str
    description: str = ""


class StockLevels(BaseModel):
    minimum_quantity: Optional[int] = None
    reorder_point: Optional[int] = None
    order_group_size: Optional[int] = None


class StockMovementIn(ActorIn):
    supply_id: str
    location_id: str
    quantity: int
    notes: str = ""


class TransferIn(ActorIn):
    supply_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    notes: str = ""


class AllocationIn(ActorIn):
    supply_id: str
    location_id: str
    quantity: int


__all__ = [
    "MaterialIn",
    "JobCreate",
    "JobUpdate",
    "ActorIn",
    "CutlistCreate",
    "MaterialCreate",
    "SheetStatusIn",
    "SheetsAdd",
    "RecutCreate",
    "ChecklistCreate",
    "ChecklistItemCreate",
    "ChecklistItemUpdate",
    "SupplyCreate",
    "LocationCreate",
    "StockLevels",
    "StockMovementIn",
    "TransferIn",
    "AllocationIn",
]
