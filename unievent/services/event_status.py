# unievent/services/event_status.py
"""
Per-event status decision.

An event is ``upcoming`` until its scheduled start, ``ongoing`` for the
completion grace window after that, and ``completed`` once the window has
elapsed. ``cancelled`` is terminal and never touched here.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from unievent.models.events import EventStatus

COMPLETION_GRACE_MINUTES = 30
COMPLETION_GRACE = timedelta(minutes=COMPLETION_GRACE_MINUTES)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (SQLite, legacy rows) are treated as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class EventStatusRecord:
    """Snapshot of the lifecycle fields of one event, as read from the store."""
    id: int
    scheduled_at: datetime
    status: str
    completed_at: Optional[datetime] = None
    last_status_update: Optional[datetime] = None
    status_update_count: int = 0
    title: Optional[str] = None


@dataclass(frozen=True)
class StatusUpdate:
    """Full set of lifecycle fields to persist for one event."""
    status: str
    completed_at: Optional[datetime]
    last_status_update: datetime
    status_update_count: int
    previous_status: str


def compute_target_status(
    scheduled_at: datetime,
    now: datetime,
    grace: timedelta = COMPLETION_GRACE,
) -> EventStatus:
    scheduled_at = ensure_utc(scheduled_at)
    now = ensure_utc(now)

    if scheduled_at > now:
        return EventStatus.UPCOMING
    if now - scheduled_at < grace:
        return EventStatus.ONGOING
    return EventStatus.COMPLETED


def plan_transition(
    record: EventStatusRecord,
    now: datetime,
    grace: timedelta = COMPLETION_GRACE,
) -> Optional[StatusUpdate]:
    """
    Returns the fields to write for ``record`` at ``now``, or None when the
    stored status is already correct (or the event is cancelled).

    Raises ValueError for a status value outside EventStatus.
    """
    current = EventStatus(record.status)
    if current is EventStatus.CANCELLED:
        return None

    target = compute_target_status(record.scheduled_at, now, grace)
    if target is current:
        return None

    now = ensure_utc(now)
    last = ensure_utc(record.last_status_update)
    # wall clock may step backwards; the audit timestamp must not
    stamp = max(now, last) if last is not None else now

    return StatusUpdate(
        status=target.value,
        completed_at=stamp if target is EventStatus.COMPLETED else None,
        last_status_update=stamp,
        status_update_count=(record.status_update_count or 0) + 1,
        previous_status=current.value,
    )
