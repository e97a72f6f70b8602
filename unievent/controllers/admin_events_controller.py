# unievent/controllers/admin_events_controller.py
import logging

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update as sql_update

from unievent.models.events import Event, EventStatus
from unievent.schemas.event_status import (
    EventCancelOut,
    ManualUpdateData,
    ManualUpdateResponse,
    PendingEventOut,
    PendingUpdatesData,
    PendingUpdatesResponse,
    StatusServiceData,
    StatusServiceResponse,
)
from unievent.services.event_status import utcnow
from unievent.services.event_status_service import EventStatusService

logger = logging.getLogger(__name__)

PENDING_UPDATES_LIMIT = 50


async def manual_status_update(service: EventStatusService) -> ManualUpdateResponse:
    triggered_at = utcnow()
    result = await service.trigger_update(source="manual")

    if result.error:
        message = "Event status update failed, will retry on the next tick"
    elif result.joined:
        message = "Event status update was already running; returned its result"
    else:
        message = "Event status update completed"

    return ManualUpdateResponse(
        message=message,
        data=ManualUpdateData(
            triggered_at=triggered_at,
            result=result,
            service_status=service.get_status(),
        ),
    )


async def status_service_info(service: EventStatusService) -> StatusServiceResponse:
    summary = await service.store.count_by_status()
    total = await service.store.count_all()
    return StatusServiceResponse(
        data=StatusServiceData(
            service=service.get_status(),
            event_summary=summary,
            total_events=total,
        ),
    )


async def pending_status_updates(service: EventStatusService) -> PendingUpdatesResponse:
    now = utcnow()
    threshold = service.stale_before(now)
    records = await service.store.find_candidates(now, threshold, limit=PENDING_UPDATES_LIMIT)

    events = [
        PendingEventOut(
            id=r.id,
            title=r.title,
            scheduled_at=r.scheduled_at,
            status=r.status,
            last_status_update=r.last_status_update,
        )
        for r in records
    ]
    return PendingUpdatesResponse(
        results=len(events),
        data=PendingUpdatesData(events=events, last_update_threshold=threshold),
    )


async def cancel_event(db: AsyncSession, event_id: int) -> EventCancelOut:
    # completed_at is cleared in the same statement that sets cancelled
    res = await db.execute(
        sql_update(Event)
        .where(
            Event.id == event_id,
            Event.status != EventStatus.CANCELLED.value,
        )
        .values(status=EventStatus.CANCELLED.value, completed_at=None)
        .execution_options(synchronize_session=False)
    )

    if (res.rowcount or 0) != 1:
        exists = (await db.execute(select(Event.id).where(Event.id == event_id))).scalar_one_or_none()
        if exists is None:
            raise HTTPException(status_code=404, detail="Event not found")
        raise HTTPException(status_code=409, detail="Event is already cancelled")

    await db.commit()

    ev = (
        await db.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    logger.info("Event %s cancelled", ev.id)
    return EventCancelOut.model_validate(ev)
