"""
Global pytest configuration and fixtures.

Settings are read at import time, so the test environment is pinned
before anything from ``unievent`` is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.pytest_unievent.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENABLE_AUTO_STATUS_UPDATES"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from unievent.core.database import Base
from unievent.models.events import Event, EventStatus
from unievent.models.user import User  # noqa: F401  (registers the users table)
from unievent.services.event_status import EventStatusRecord, StatusUpdate

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryEventStore:
    """EventStatusStore kept in a dict, with hooks to inject failures and stalls."""

    def __init__(self, records=()):
        self.records: dict[int, EventStatusRecord] = {r.id: r for r in records}
        self.writes: list[tuple[int, StatusUpdate]] = []
        self.find_calls = 0
        self.fail_ids: set[int] = set()
        self.fail_find: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    def add(self, **kwargs) -> EventStatusRecord:
        kwargs.setdefault("id", len(self.records) + 1)
        kwargs.setdefault("status", EventStatus.UPCOMING.value)
        record = EventStatusRecord(**kwargs)
        self.records[record.id] = record
        return record

    def edit(self, event_id: int, **changes) -> EventStatusRecord:
        self.records[event_id] = dataclasses.replace(self.records[event_id], **changes)
        return self.records[event_id]

    def writes_for(self, event_id: int) -> list[StatusUpdate]:
        return [u for i, u in self.writes if i == event_id]

    async def find_candidates(self, now, stale_before, limit=None):
        self.find_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_find is not None:
            raise self.fail_find

        out = [
            r for r in sorted(self.records.values(), key=lambda r: (r.scheduled_at, r.id))
            if r.status != EventStatus.CANCELLED.value
            and (
                r.last_status_update is None
                or r.last_status_update < stale_before
                or r.last_status_update > now
            )
        ]
        return out[:limit] if limit is not None else out

    async def update_status_fields(self, event_id, update):
        await asyncio.sleep(0)
        if event_id in self.fail_ids:
            raise ConnectionError(f"write to event {event_id} failed")

        current = self.records.get(event_id)
        if current is None or current.status == EventStatus.CANCELLED.value:
            return False

        self.writes.append((event_id, update))
        self.records[event_id] = dataclasses.replace(
            current,
            status=update.status,
            completed_at=update.completed_at,
            last_status_update=update.last_status_update,
            status_update_count=update.status_update_count,
        )
        return True

    async def count_by_status(self):
        counts: dict[str, int] = {}
        for r in self.records.values():
            counts[r.status] = counts.get(r.status, 0) + 1
        return counts

    async def count_all(self):
        return len(self.records)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'unievent.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def insert_event(factory, **kwargs) -> int:
    kwargs.setdefault("title", "Campus Hackathon")
    kwargs.setdefault("status", EventStatus.UPCOMING.value)
    kwargs.setdefault("status_update_count", 0)
    async with factory() as db:
        ev = Event(**kwargs)
        db.add(ev)
        await db.commit()
        return ev.id


async def load_event(factory, event_id: int) -> Event:
    async with factory() as db:
        return await db.get(Event, event_id)
