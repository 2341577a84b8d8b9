"""FastAPI JSON interface for the cut tracker."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from ..config import Settings, get_settings
from ..domain import Job
from ..inventory import InventoryService
from ..logging_config import configure_logging
from ..reaper import InactivityReaper
from ..repository import (
    ConcurrentModificationError,
    DuplicateRecordError,
    PersistenceError,
    RecordNotFoundError,
)
from ..services import JobTrackingService, serialize
from ..storage import ShopDatabase
from .hub import BroadcastHub
from .schemas import (
    ActorIn,
    AllocationIn,
    ChecklistCreate,
    ChecklistItemCreate,
    ChecklistItemUpdate,
    CutlistCreate,
    JobCreate,
    JobUpdate,
    LocationCreate,
    MaterialCreate,
    RecutCreate,
    SheetsAdd,
    SheetStatusIn,
    StockLevels,
    StockMovementIn,
    SupplyCreate,
    TransferIn,
)

logger = logging.getLogger(__name__)


def job_payload(job: Job) -> Dict[str, Any]:
    data = serialize(job)
    data["status"] = job.status.value
    return data


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RecordNotFoundError)
    async def not_found(request: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(ConcurrentModificationError)
    async def conflict(request: Request, exc: ConcurrentModificationError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(DuplicateRecordError)
    async def duplicate(request: Request, exc: DuplicateRecordError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(PersistenceError)
    async def unavailable(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return _error(503, exc)

    @app.exception_handler(ValueError)
    async def invalid(request: Request, exc: ValueError) -> JSONResponse:
        return _error(400, exc)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings if settings is not None else get_settings()
    configure_logging(settings.log_level)
    database = ShopDatabase(settings.database_path)
    hub = BroadcastHub()
    service = JobTrackingService(database, publisher=hub)
    service.update_tracking_options(max_sheets_per_track=settings.max_sheets_per_track)
    inventory = InventoryService(database)
    reaper = InactivityReaper(
        service,
        inactivity=settings.inactivity,
        interval_seconds=settings.reaper_interval_seconds,
    )

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.database = database
    app.state.hub = hub
    app.state.job_service = service
    app.state.inventory_service = inventory
    app.state.reaper = reaper
    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - framework hook
        if settings.reaper_enabled:
            reaper.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        reaper.stop()
        database.close()

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "reaper": reaper.running}

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    @app.get("/api/jobs")
    async def list_jobs(
        request: Request, search: Optional[str] = None, status: Optional[str] = None
    ):
        service: JobTrackingService = request.app.state.job_service
        return [job_payload(job) for job in service.list_jobs(search=search, status=status)]

    @app.post("/api/jobs", status_code=201)
    async def create_job(request: Request, body: JobCreate):
        service: JobTrackingService = request.app.state.job_service
        options = {"cutlist_name": body.cutlist_name} if body.cutlist_name else {}
        details = service.create_job(
            body.customer_name,
            body.name,
            [(item.supply_id, item.total_sheets) for item in body.materials],
            **options,
        )
        return details.as_dict()

    @app.get("/api/jobs/{job_id}")
    async def get_job(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        return service.get_job(job_id).as_dict()

    @app.patch("/api/jobs/{job_id}")
    async def update_job(request: Request, job_id: str, body: JobUpdate):
        service: JobTrackingService = request.app.state.job_service
        job = service.update_job(
            job_id, customer_name=body.customer_name, name=body.name
        )
        return job_payload(job)

    @app.delete("/api/jobs/{job_id}", status_code=204)
    async def delete_job(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_job(job_id)
        return Response(status_code=204)

    @app.post("/api/jobs/{job_id}/start")
    async def start_job(request: Request, job_id: str, body: Optional[ActorIn] = None):
        service: JobTrackingService = request.app.state.job_service
        actor = body.actor if body else None
        return job_payload(service.start_job(job_id, actor=actor))

    @app.post("/api/jobs/{job_id}/pause")
    async def pause_job(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        return job_payload(service.pause_job(job_id))

    @app.post("/api/jobs/{job_id}/resume")
    async def resume_job(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        return job_payload(service.resume_job(job_id))

    @app.post("/api/jobs/{job_id}/complete")
    async def complete_job(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        return job_payload(service.complete_job(job_id))

    @app.post("/api/jobs/{job_id}/timer/start")
    async def start_timer(request: Request, job_id: str, body: Optional[ActorIn] = None):
        service: JobTrackingService = request.app.state.job_service
        log = service.start_timer(job_id, actor=body.actor if body else None)
        return {"started": log is not None, "time_log": serialize(log)}

    @app.post("/api/jobs/{job_id}/timer/stop")
    async def stop_timer(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        return job_payload(service.stop_timer(job_id))

    @app.get("/api/jobs/{job_id}/cut-logs")
    async def job_cut_logs(request: Request, job_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.get_job(job_id)
        return serialize(service.get_cut_logs(job_id=job_id))

    @app.get("/api/dashboard")
    async def dashboard(request: Request):
        service: JobTrackingService = request.app.state.job_service
        return service.dashboard_stats().as_dict()

    # ------------------------------------------------------------------
    # Cutlists, materials and sheets
    # ------------------------------------------------------------------
    @app.post("/api/jobs/{job_id}/cutlists", status_code=201)
    async def add_cutlist(request: Request, job_id: str, body: CutlistCreate):
        service: JobTrackingService = request.app.state.job_service
        return serialize(service.add_cutlist(job_id, body.name))

    @app.delete("/api/cutlists/{cutlist_id}", status_code=204)
    async def delete_cutlist(request: Request, cutlist_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_cutlist(cutlist_id)
        return Response(status_code=204)

    @app.post("/api/jobs/{job_id}/materials", status_code=201)
    async def add_material(request: Request, job_id: str, body: MaterialCreate):
        service: JobTrackingService = request.app.state.job_service
        material = service.add_material(
            job_id, body.supply_id, body.total_sheets, cutlist_id=body.cutlist_id
        )
        return serialize(material)

    @app.delete("/api/materials/{material_id}", status_code=204)
    async def delete_material(request: Request, material_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_material(material_id)
        return Response(status_code=204)

    @app.put("/api/materials/{material_id}/sheets/{sheet_index}")
    async def set_sheet_status(
        request: Request, material_id: str, sheet_index: int, body: SheetStatusIn
    ):
        service: JobTrackingService = request.app.state.job_service
        material = service.set_sheet_status(
            material_id, sheet_index, body.status, actor=body.actor
        )
        return serialize(material)

    @app.post("/api/materials/{material_id}/sheets")
    async def add_sheets(request: Request, material_id: str, body: SheetsAdd):
        service: JobTrackingService = request.app.state.job_service
        return serialize(service.add_sheets(material_id, body.count))

    @app.delete("/api/materials/{material_id}/sheets/{sheet_index}")
    async def delete_sheet(request: Request, material_id: str, sheet_index: int):
        service: JobTrackingService = request.app.state.job_service
        return serialize(service.delete_sheet(material_id, sheet_index))

    # ------------------------------------------------------------------
    # Recuts
    # ------------------------------------------------------------------
    @app.get("/api/materials/{material_id}/recuts")
    async def get_recuts(request: Request, material_id: str):
        service: JobTrackingService = request.app.state.job_service
        return serialize(service.get_recuts(material_id))

    @app.post("/api/materials/{material_id}/recuts", status_code=201)
    async def add_recut(request: Request, material_id: str, body: RecutCreate):
        service: JobTrackingService = request.app.state.job_service
        recut = service.add_recut(
            material_id, body.quantity, reason=body.reason, actor=body.actor
        )
        return serialize(recut)

    @app.put("/api/recuts/{recut_id}/sheets/{sheet_index}")
    async def set_recut_sheet_status(
        request: Request, recut_id: str, sheet_index: int, body: SheetStatusIn
    ):
        service: JobTrackingService = request.app.state.job_service
        recut = service.set_recut_sheet_status(
            recut_id, sheet_index, body.status, actor=body.actor
        )
        return serialize(recut)

    @app.delete("/api/recuts/{recut_id}", status_code=204)
    async def delete_recut(request: Request, recut_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_recut(recut_id)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Part checklists
    # ------------------------------------------------------------------
    @app.get("/api/checklists")
    async def list_checklists(
        request: Request, job_id: Optional[str] = None, is_template: Optional[bool] = None
    ):
        service: JobTrackingService = request.app.state.job_service
        return serialize(service.list_checklists(job_id=job_id, is_template=is_template))

    @app.post("/api/checklists", status_code=201)
    async def create_checklist(request: Request, body: ChecklistCreate):
        service: JobTrackingService = request.app.state.job_service
        details = service.create_checklist(
            body.name,
            job_id=body.job_id,
            is_template=body.is_template,
            template_id=body.template_id,
        )
        return details.as_dict()

    @app.get("/api/checklists/{checklist_id}")
    async def get_checklist(request: Request, checklist_id: str):
        service: JobTrackingService = request.app.state.job_service
        return service.get_checklist(checklist_id).as_dict()

    @app.delete("/api/checklists/{checklist_id}", status_code=204)
    async def delete_checklist(request: Request, checklist_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_checklist(checklist_id)
        return Response(status_code=204)

    @app.post("/api/checklists/{checklist_id}/items", status_code=201)
    async def add_checklist_item(
        request: Request, checklist_id: str, body: ChecklistItemCreate
    ):
        service: JobTrackingService = request.app.state.job_service
        item = service.add_checklist_item(
            checklist_id, body.text, sort_order=body.sort_order
        )
        return serialize(item)

    @app.patch("/api/checklists/items/{item_id}")
    async def set_checklist_item(request: Request, item_id: str, body: ChecklistItemUpdate):
        service: JobTrackingService = request.app.state.job_service
        item = service.set_checklist_item(
            item_id, body.is_completed, completed_by=body.completed_by
        )
        return serialize(item)

    @app.delete("/api/checklists/items/{item_id}", status_code=204)
    async def delete_checklist_item(request: Request, item_id: str):
        service: JobTrackingService = request.app.state.job_service
        service.delete_checklist_item(item_id)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    @app.get("/api/supplies")
    async def list_supplies(request: Request):
        inventory: InventoryService = request.app.state.inventory_service
        return serialize(inventory.store.supplies.list())

    @app.post("/api/supplies", status_code=201)
    async def register_supply(request: Request, body: SupplyCreate):
        inventory: InventoryService = request.app.state.inventory_service
        supply = inventory.register_supply(
            body.name,
            hex_color=body.hex_color,
            piece_size=body.piece_size,
            part_number=body.part_number,
            description=body.description,
        )
        return serialize(supply)

    @app.get("/api/supplies/{supply_id}/stock")
    async def supply_stock(request: Request, supply_id: str):
        inventory: InventoryService = request.app.state.inventory_service
        rows = inventory.stock_for_supply(supply_id)
        return [
            dict(serialize(row), available_quantity=row.available_quantity)
            for row in rows
        ]

    @app.put("/api/supplies/{supply_id}/locations/{location_id}")
    async def set_stock_levels(
        request: Request, supply_id: str, location_id: str, body: StockLevels
    ):
        inventory: InventoryService = request.app.state.inventory_service
        row = inventory.set_stock_levels(
            supply_id,
            location_id,
            minimum_quantity=body.minimum_quantity,
            reorder_point=body.reorder_point,
            order_group_size=body.order_group_size,
        )
        return serialize(row)

    @app.post("/api/locations", status_code=201)
    async def register_location(request: Request, body: LocationCreate):
        inventory: InventoryService = request.app.state.inventory_service
        location = inventory.register_location(body.name, description=body.description)
        return serialize(location)

    @app.post("/api/inventory/check-in")
    async def check_in(request: Request, body: StockMovementIn):
        inventory: InventoryService = request.app.state.inventory_service
        row = inventory.check_in(
            body.supply_id, body.location_id, body.quantity,
            notes=body.notes, actor=body.actor,
        )
        return serialize(row)

    @app.post("/api/inventory/check-out")
    async def check_out(request: Request, body: StockMovementIn):
        inventory: InventoryService = request.app.state.inventory_service
        row = inventory.check_out(
            body.supply_id, body.location_id, body.quantity,
            notes=body.notes, actor=body.actor,
        )
        return serialize(row)

    @app.post("/api/inventory/adjust")
    async def adjust(request: Request, body: StockMovementIn):
        inventory: InventoryService = request.app.state.inventory_service
        row = inventory.adjust(
            body.supply_id, body.location_id, body.quantity,
            notes=body.notes, actor=body.actor,
        )
        return serialize(row)

    @app.post("/api/inventory/transfer")
    async def transfer(request: Request, body: TransferIn):
        inventory: InventoryService = request.app.state.inventory_service
        source, target = inventory.transfer(
            body.supply_id,
            body.from_location_id,
            body.to_location_id,
            body.quantity,
            notes=body.notes,
            actor=body.actor,
        )
        return {"from": serialize(source), "to": serialize(target)}

    @app.post("/api/jobs/{job_id}/allocations")
    async def allocate(request: Request, job_id: str, body: AllocationIn):
        inventory: InventoryService = request.app.state.inventory_service
        row = inventory.allocate_for_job(
            job_id, body.supply_id, body.location_id, body.quantity, actor=body.actor
        )
        return serialize(row)

    @app.get("/api/inventory/need-to-purchase")
    async def need_to_purchase(request: Request):
        inventory: InventoryService = request.app.state.inventory_service
        return serialize(inventory.need_to_purchase())

    @app.get("/api/inventory/alerts")
    async def low_stock_alerts(request: Request):
        inventory: InventoryService = request.app.state.inventory_service
        return serialize(inventory.low_stock_alerts())

    @app.get("/api/inventory/movements")
    async def movements(request: Request, supply_id: Optional[str] = None):
        inventory: InventoryService = request.app.state.inventory_service
        return serialize(inventory.movements(supply_id))

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------
    @app.websocket("/ws")
    async def events_socket(websocket: WebSocket) -> None:
        hub: BroadcastHub = websocket.app.state.hub
        subscriber = hub.subscribe()
        await websocket.accept()

        async def forward() -> None:
            while True:
                message = await subscriber.queue.get()
                await websocket.send_json(message)

        sender = asyncio.create_task(forward())
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            hub.unsubscribe(subscriber)

    return app


__all__ = ["create_app", "register_exception_handlers", "job_payload"]
