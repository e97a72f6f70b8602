# unievent/services/event_status_service.py
"""
Event status scheduler.

Keeps every non-cancelled event's ``status`` consistent with wall-clock time
by running reconciliation passes on a repeating asyncio task and on demand.

One instance is built at startup (see ``unievent.main.lifespan``) and handed
to the admin routes through ``app.state.event_status_service``.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from unievent.models.events import EventStatus
from unievent.schemas.event_status import SchedulerStatus, StatusUpdateResult
from unievent.services.event_status import (
    COMPLETION_GRACE,
    EventStatusRecord,
    plan_transition,
    utcnow,
)
from unievent.services.event_store import EventStatusStore

logger = logging.getLogger(__name__)

# stop() gives an in-flight pass this long to finish before returning
_SHUTDOWN_GRACE_SECONDS = 10.0


class EventStatusService:
    def __init__(
        self,
        store: EventStatusStore,
        *,
        update_interval_minutes: int = 5,
        enabled: bool = True,
        staleness_minutes: int = 5,
        startup_delay_seconds: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        if isinstance(update_interval_minutes, bool) or not isinstance(update_interval_minutes, int) \
                or update_interval_minutes <= 0:
            raise ValueError(
                f"Event status update interval must be a positive whole number of minutes, "
                f"got {update_interval_minutes!r}"
            )
        if staleness_minutes <= 0:
            raise ValueError(f"Staleness threshold must be positive, got {staleness_minutes!r}")
        if startup_delay_seconds < 0:
            raise ValueError(f"Startup delay cannot be negative, got {startup_delay_seconds!r}")

        self._store = store
        self._clock = clock

        self.update_interval_minutes = update_interval_minutes
        self.enabled = bool(enabled)
        self.staleness = timedelta(minutes=staleness_minutes)
        self.startup_delay_seconds = float(startup_delay_seconds)
        self.grace = COMPLETION_GRACE

        self.is_running = False
        self.last_run: Optional[datetime] = None
        self.next_run: Optional[datetime] = None
        self.last_result: Optional[StatusUpdateResult] = None

        self._inflight: Optional[asyncio.Future] = None
        self._timer_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, store: EventStatusStore, settings) -> "EventStatusService":
        return cls(
            store,
            update_interval_minutes=settings.EVENT_STATUS_UPDATE_INTERVAL,
            enabled=settings.ENABLE_AUTO_STATUS_UPDATES,
            staleness_minutes=settings.EVENT_STATUS_STALENESS_MINUTES,
            startup_delay_seconds=settings.EVENT_STATUS_STARTUP_DELAY_SECONDS,
        )

    @property
    def store(self) -> EventStatusStore:
        return self._store

    @property
    def update_interval(self) -> timedelta:
        return timedelta(minutes=self.update_interval_minutes)

    @property
    def timer_active(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def stale_before(self, now: datetime) -> datetime:
        return now - self.staleness

    # ─────────────────────────────────────────────────────────────
    # Timer
    # ─────────────────────────────────────────────────────────────
    def start(self) -> bool:
        """
        Registers the repeating timer on the running loop. The first pass runs
        after ``startup_delay_seconds`` to catch up on anything that went stale
        while the process was down.

        Returns False (and registers nothing) when auto updates are disabled;
        ``trigger_update`` still works in that case.
        """
        if not self.enabled:
            logger.info("Auto event status updates are disabled")
            return False

        if self.timer_active:
            return True

        self._timer_task = asyncio.create_task(self._run_timer(), name="event-status-timer")
        logger.info(
            "Event status service started - auto-update every %d minutes",
            self.update_interval_minutes,
        )
        return True

    async def stop(self) -> None:
        task, self._timer_task = self._timer_task, None
        self.next_run = None

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        inflight = self._inflight
        if inflight is not None:
            await asyncio.wait([inflight], timeout=_SHUTDOWN_GRACE_SECONDS)

        logger.info("Event status service stopped")

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self.update_interval.total_seconds()

        self.next_run = self._clock() + timedelta(seconds=self.startup_delay_seconds)
        await asyncio.sleep(self.startup_delay_seconds)
        await self._tick("startup")

        next_at = loop.time() + interval
        while True:
            delay = max(0.0, next_at - loop.time())
            self.next_run = self._clock() + timedelta(seconds=delay)
            await asyncio.sleep(delay)
            await self._tick("timer")

            next_at += interval
            if next_at <= loop.time():
                # pass overran one or more ticks; skip them instead of bursting
                next_at = loop.time() + interval

    async def _tick(self, source: str) -> None:
        try:
            await self.trigger_update(source=source)
        except Exception:
            logger.exception("Event status timer tick failed")

    # ─────────────────────────────────────────────────────────────
    # Passes
    # ─────────────────────────────────────────────────────────────
    async def trigger_update(self, source: str = "manual") -> StatusUpdateResult:
        """
        Runs one reconciliation pass now.

        Single-flight: if a pass is already in progress the caller waits for
        it and gets its result back with ``joined=True``; a second pass is
        never started alongside it. The pass is shielded, so cancelling the
        caller does not abort the pass.
        """
        inflight = self._inflight
        if inflight is not None:
            logger.info("Event status update already in progress, joining it (%s)", source)
            result = await asyncio.shield(inflight)
            return result.model_copy(update={"joined": True})

        if source == "manual":
            logger.info("Manual event status update triggered")

        self.is_running = True
        fut = asyncio.ensure_future(self._run_pass(source))
        self._inflight = fut
        fut.add_done_callback(self._release)
        return await asyncio.shield(fut)

    def _release(self, fut: asyncio.Future) -> None:
        # also covers a pass cancelled before its body ever ran
        if self._inflight is fut:
            self._inflight = None
            self.is_running = False

    async def _run_pass(self, source: str) -> StatusUpdateResult:
        now = self._clock()
        result = StatusUpdateResult(started_at=now, source=source)
        self.last_run = now

        try:
            logger.info("Starting event status update at %s (%s)", now.isoformat(), source)

            candidates = await self._store.find_candidates(now, self.stale_before(now))
            result.candidates = len(candidates)

            for record in candidates:
                await self._reconcile(record, now, result)

            logger.info(
                "Event status update completed: %d events updated "
                "(ongoing=%d, completed=%d, upcoming=%d, failed=%d)",
                result.updated, result.ongoing, result.completed, result.upcoming, result.failed,
            )

            result.status_counts = await self._store.count_by_status()
            logger.info(
                "Current event status summary: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(result.status_counts.items())) or "no events",
            )
        except Exception as exc:
            logger.exception("Error in event status update")
            result.error = f"{type(exc).__name__}: {exc}"
        finally:
            result.finished_at = self._clock()
            self.last_result = result
            self.is_running = False
            self._inflight = None

        return result

    async def _reconcile(
        self,
        record: EventStatusRecord,
        now: datetime,
        result: StatusUpdateResult,
    ) -> None:
        try:
            planned = plan_transition(record, now, self.grace)
            if planned is None:
                return
            written = await self._store.update_status_fields(record.id, planned)
        except Exception:
            logger.exception("Failed to update status for event %s", record.id)
            result.failed += 1
            result.failed_event_ids.append(record.id)
            return

        if not written:
            logger.info("Event %s was cancelled or removed mid-pass, left untouched", record.id)
            return

        result.updated += 1
        if planned.status == EventStatus.UPCOMING.value:
            result.upcoming += 1
        elif planned.status == EventStatus.ONGOING.value:
            result.ongoing += 1
        elif planned.status == EventStatus.COMPLETED.value:
            result.completed += 1

        logger.info(
            "Event %s (%s) status changed: %s -> %s",
            record.id, record.title or "untitled", planned.previous_status, planned.status,
        )

    # ─────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────
    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            is_running=self.is_running,
            enabled=self.enabled,
            update_interval=f"{self.update_interval_minutes} minutes",
            last_run=self.last_run,
            next_run=self.next_run if self.timer_active else None,
        )
