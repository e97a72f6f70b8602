# unievent/routes/admin_events.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from unievent.core.database import get_db
from unievent.core.dependencies import get_current_admin, get_event_status_service
from unievent.controllers.admin_events_controller import (
    cancel_event,
    manual_status_update,
    pending_status_updates,
    status_service_info,
)
from unievent.schemas.event_status import (
    EventCancelOut,
    ManualUpdateResponse,
    PendingUpdatesResponse,
    StatusServiceResponse,
)
from unievent.services.event_status_service import EventStatusService

router = APIRouter(
    prefix="/admin/events",
    tags=["Admin - Events"],
    dependencies=[Depends(get_current_admin)],
)


@router.post("/update-status", response_model=ManualUpdateResponse)
async def trigger_status_update(
    service: EventStatusService = Depends(get_event_status_service),
):
    return await manual_status_update(service)


@router.get("/status-service", response_model=StatusServiceResponse)
async def get_status_service(
    service: EventStatusService = Depends(get_event_status_service),
):
    return await status_service_info(service)


@router.get("/pending-updates", response_model=PendingUpdatesResponse)
async def get_pending_updates(
    service: EventStatusService = Depends(get_event_status_service),
):
    return await pending_status_updates(service)


@router.post("/{event_id}/cancel", response_model=EventCancelOut)
async def cancel(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await cancel_event(db=db, event_id=event_id)
