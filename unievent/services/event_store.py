# unievent/services/event_store.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, or_, select, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from unievent.models.events import Event, EventStatus
from unievent.services.event_status import EventStatusRecord, StatusUpdate, ensure_utc


class EventStatusStore(Protocol):
    """What the status scheduler needs from persistence."""

    async def find_candidates(
        self,
        now: datetime,
        stale_before: datetime,
        limit: Optional[int] = None,
    ) -> list[EventStatusRecord]: ...

    async def update_status_fields(self, event_id: int, update: StatusUpdate) -> bool: ...

    async def count_by_status(self) -> dict[str, int]: ...

    async def count_all(self) -> int: ...


def _to_record(ev: Event) -> EventStatusRecord:
    return EventStatusRecord(
        id=ev.id,
        title=ev.title,
        scheduled_at=ensure_utc(ev.scheduled_at),
        status=ev.status,
        completed_at=ensure_utc(ev.completed_at),
        last_status_update=ensure_utc(ev.last_status_update),
        status_update_count=ev.status_update_count or 0,
    )


class SqlAlchemyEventStore:
    """
    EventStatusStore over the async SQLAlchemy session factory.

    Every call opens its own short session so a pass never holds a
    connection or transaction across records.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_candidates(
        self,
        now: datetime,
        stale_before: datetime,
        limit: Optional[int] = None,
    ) -> list[EventStatusRecord]:
        stmt = (
            select(Event)
            .where(
                Event.status != EventStatus.CANCELLED.value,
                or_(
                    Event.last_status_update.is_(None),
                    Event.last_status_update < stale_before,
                    # stamped ahead of now after a backwards clock step
                    Event.last_status_update > now,
                ),
            )
            .order_by(Event.scheduled_at.asc(), Event.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as db:
            res = await db.execute(stmt)
            return [_to_record(ev) for ev in res.scalars().all()]

    async def update_status_fields(self, event_id: int, update: StatusUpdate) -> bool:
        # single-row UPDATE; the cancelled guard keeps a cancellation that
        # landed after our read from being overwritten
        stmt = (
            sql_update(Event)
            .where(
                Event.id == event_id,
                Event.status != EventStatus.CANCELLED.value,
            )
            .values(
                status=update.status,
                completed_at=update.completed_at,
                last_status_update=update.last_status_update,
                status_update_count=update.status_update_count,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            async with db.begin():
                res = await db.execute(stmt)
        return (res.rowcount or 0) == 1

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(Event.status, func.count(Event.id)).group_by(Event.status)
        async with self._session_factory() as db:
            res = await db.execute(stmt)
            return {status: int(count) for status, count in res.all()}

    async def count_all(self) -> int:
        async with self._session_factory() as db:
            return int((await db.execute(select(func.count(Event.id)))).scalar() or 0)
