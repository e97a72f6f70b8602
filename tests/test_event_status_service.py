"""
Tests for the event status scheduler (reconciliation passes, single-flight, timer)
"""

import asyncio
from datetime import timedelta

import pytest

from unievent.models.events import EventStatus
from unievent.services.event_status_service import EventStatusService

from conftest import T0, InMemoryEventStore


def make_service(store, clock, **kwargs):
    kwargs.setdefault("startup_delay_seconds", 0)
    return EventStatusService(store, clock=clock, **kwargs)


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


class TestScenarios:

    async def test_future_event_stays_upcoming_without_write(self, store, clock):
        store.add(id=1, scheduled_at=T0 + timedelta(hours=2))
        service = make_service(store, clock)

        result = await service.trigger_update()

        assert result.candidates == 1
        assert result.updated == 0
        assert store.writes == []
        assert store.records[1].status == "upcoming"
        assert store.records[1].last_status_update is None

    async def test_started_event_becomes_ongoing(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        service = make_service(store, clock)

        result = await service.trigger_update()

        record = store.records[1]
        assert record.status == "ongoing"
        assert record.last_status_update == T0
        assert record.status_update_count == 1
        assert record.completed_at is None
        assert result.updated == 1
        assert result.ongoing == 1

    async def test_event_past_grace_window_completes(self, store, clock):
        store.add(
            id=1,
            scheduled_at=T0 - timedelta(minutes=45),
            status="ongoing",
            last_status_update=T0 - timedelta(minutes=35),
            status_update_count=1,
        )
        service = make_service(store, clock)

        result = await service.trigger_update()

        record = store.records[1]
        assert record.status == "completed"
        assert record.completed_at == T0
        assert record.status_update_count == 2
        assert result.completed == 1

    async def test_cancelled_event_is_never_written(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(days=1), status="cancelled")
        before = store.records[1]
        service = make_service(store, clock)

        for _ in range(3):
            await service.trigger_update()
            clock.advance(minutes=10)

        assert store.writes == []
        assert store.records[1] == before

    async def test_rescheduled_event_is_picked_up_next_tick(self, store, clock):
        store.add(id=1, scheduled_at=T0 + timedelta(days=3))
        service = make_service(store, clock)

        await service.trigger_update()
        assert store.records[1].status == "upcoming"

        # organizer moves the event into the past between ticks
        store.edit(1, scheduled_at=T0 - timedelta(minutes=1))
        clock.advance(minutes=5)
        await service.trigger_update()

        assert store.records[1].status == "ongoing"
        assert store.records[1].status_update_count == 1

    async def test_rescheduled_far_past_goes_straight_to_completed(self, store, clock):
        store.add(id=1, scheduled_at=T0 + timedelta(days=3))
        service = make_service(store, clock)
        await service.trigger_update()

        store.edit(1, scheduled_at=T0 - timedelta(hours=2))
        clock.advance(minutes=5)
        await service.trigger_update()

        assert store.records[1].status == "completed"
        assert store.records[1].completed_at == clock.now


class TestProperties:

    async def test_second_pass_with_unchanged_targets_writes_nothing(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        store.add(id=2, scheduled_at=T0 - timedelta(hours=3))
        service = make_service(store, clock, staleness_minutes=1)

        await service.trigger_update()
        snapshot = dict(store.records)

        # make everything a candidate again; targets are unchanged
        clock.advance(minutes=2)
        result = await service.trigger_update()

        assert result.updated == 0
        assert store.records == snapshot

    async def test_timestamps_monotonic_and_completed_at_coherent(self, store, clock):
        store.add(id=1, scheduled_at=T0 + timedelta(minutes=12))
        store.add(id=2, scheduled_at=T0 + timedelta(minutes=3))
        store.add(id=3, scheduled_at=T0 - timedelta(minutes=20))
        service = make_service(store, clock)

        seen = {i: [] for i in store.records}
        for step in range(20):
            if step == 9:
                # organizer pushes event 1 back out
                store.edit(1, scheduled_at=clock.now + timedelta(minutes=10))
            await service.trigger_update()
            for i, r in store.records.items():
                assert (r.status == "completed") == (r.completed_at is not None)
                if r.last_status_update is not None:
                    seen[i].append(r.last_status_update)
            clock.advance(minutes=5)

        for stamps in seen.values():
            assert stamps == sorted(stamps)
        assert all(r.status == "completed" for r in store.records.values())

    async def test_update_count_only_grows_on_real_change(self, store, clock):
        store.add(id=1, scheduled_at=T0 + timedelta(minutes=2))
        service = make_service(store, clock)

        counts = []
        for _ in range(15):
            await service.trigger_update()
            counts.append(store.records[1].status_update_count)
            clock.advance(minutes=5)

        assert counts == sorted(counts)
        # upcoming -> ongoing -> completed
        assert counts[-1] == 2
        assert len(store.writes_for(1)) == 2

    async def test_recently_reconciled_events_are_skipped(self, store, clock):
        store.add(
            id=1,
            scheduled_at=T0 - timedelta(minutes=40),
            status="ongoing",
            last_status_update=T0 - timedelta(minutes=2),
            status_update_count=1,
        )
        service = make_service(store, clock, staleness_minutes=5)

        first = await service.trigger_update()
        assert first.candidates == 0
        assert store.records[1].status == "ongoing"

        # bounded: picked up once the threshold has passed
        clock.advance(minutes=5)
        await service.trigger_update()
        assert store.records[1].status == "completed"

    async def test_event_stamped_ahead_of_clock_is_not_hidden(self, store, clock):
        # stamped at T0+10 before the wall clock stepped back
        store.add(
            id=1,
            scheduled_at=T0 - timedelta(minutes=25),
            status="ongoing",
            last_status_update=T0 + timedelta(minutes=10),
            status_update_count=1,
        )
        service = make_service(store, clock, staleness_minutes=5)

        clock.advance(minutes=6)
        result = await service.trigger_update()

        assert result.candidates == 1
        assert result.completed == 1
        assert store.records[1].status == "completed"
        assert store.records[1].last_status_update == T0 + timedelta(minutes=10)
        assert store.records[1].completed_at == T0 + timedelta(minutes=10)


class TestFailures:

    async def test_record_failure_does_not_abort_pass(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        store.add(id=2, scheduled_at=T0 - timedelta(minutes=10))
        store.add(id=3, scheduled_at=T0 - timedelta(hours=1))
        store.fail_ids = {2}
        service = make_service(store, clock)

        result = await service.trigger_update()

        assert result.error is None
        assert result.failed == 1
        assert result.failed_event_ids == [2]
        assert result.updated == 2
        assert store.records[1].status == "ongoing"
        assert store.records[2].status == "upcoming"
        assert store.records[3].status == "completed"

        # next tick heals it
        store.fail_ids = set()
        clock.advance(minutes=1)
        again = await service.trigger_update()
        assert again.updated == 1
        assert store.records[2].status == "ongoing"

    async def test_invalid_stored_status_counts_as_failure(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10), status="ended")
        store.add(id=2, scheduled_at=T0 - timedelta(minutes=10))
        service = make_service(store, clock)

        result = await service.trigger_update()

        assert result.failed_event_ids == [1]
        assert store.records[2].status == "ongoing"

    async def test_pass_level_failure_is_reported_not_raised(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        store.fail_find = ConnectionError("database unreachable")
        service = make_service(store, clock)

        result = await service.trigger_update()

        assert result.updated == 0
        assert "database unreachable" in result.error
        assert service.is_running is False
        assert service.get_status().is_running is False

        store.fail_find = None
        recovered = await service.trigger_update()
        assert recovered.error is None
        assert recovered.updated == 1

    async def test_cancellation_landing_mid_pass_is_kept(self, clock):
        class CancelledAfterRead(InMemoryEventStore):
            async def find_candidates(self, now, stale_before, limit=None):
                found = await super().find_candidates(now, stale_before, limit)
                # an organizer cancels between the read and the write
                self.edit(1, status="cancelled")
                return found

        store = CancelledAfterRead()
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        service = make_service(store, clock)

        result = await service.trigger_update()

        assert result.candidates == 1
        assert result.updated == 0
        assert result.failed == 0
        assert store.records[1].status == "cancelled"
        assert store.records[1].status_update_count == 0
        assert store.writes == []


class TestSingleFlight:

    async def test_concurrent_trigger_joins_inflight_pass(self, store, clock):
        for i in range(1, 6):
            store.add(id=i, scheduled_at=T0 - timedelta(minutes=10 * i))
        store.gate = asyncio.Event()
        service = make_service(store, clock)

        first = asyncio.create_task(service.trigger_update())
        await _wait_for(lambda: store.find_calls == 1)
        assert service.is_running is True
        assert service.get_status().is_running is True

        second = asyncio.create_task(service.trigger_update())
        await asyncio.sleep(0.01)
        store.gate.set()

        r1, r2 = await asyncio.gather(first, second)

        assert store.find_calls == 1
        assert r1.joined is False
        assert r2.joined is True
        assert r2.updated == r1.updated == 5
        for i in range(1, 6):
            assert len(store.writes_for(i)) == 1
        assert service.is_running is False

    async def test_cancelled_caller_does_not_abort_pass(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        store.gate = asyncio.Event()
        service = make_service(store, clock)

        caller = asyncio.create_task(service.trigger_update())
        await _wait_for(lambda: store.find_calls == 1)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        store.gate.set()
        await _wait_for(lambda: not service.is_running)

        assert store.records[1].status == "ongoing"

    async def test_sequential_triggers_each_run_a_pass(self, store, clock):
        service = make_service(store, clock)

        await service.trigger_update()
        await service.trigger_update()

        assert store.find_calls == 2


class TestTimer:

    async def test_disabled_service_registers_no_timer(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        service = make_service(store, clock, enabled=False)

        assert service.start() is False
        assert service.timer_active is False
        await asyncio.sleep(0.01)
        assert store.find_calls == 0

        # manual triggers still work
        result = await service.trigger_update()
        assert result.updated == 1

    async def test_start_runs_startup_pass_and_schedules_next(self, store, clock):
        store.add(id=1, scheduled_at=T0 - timedelta(minutes=10))
        service = make_service(store, clock, update_interval_minutes=5)

        assert service.start() is True
        assert service.start() is True  # no second timer
        await _wait_for(lambda: service.last_result is not None)
        await asyncio.sleep(0.01)

        status = service.get_status()
        assert service.last_result.source == "startup"
        assert store.records[1].status == "ongoing"
        assert status.enabled is True
        assert status.update_interval == "5 minutes"
        assert status.last_run == T0
        assert abs((status.next_run - (T0 + timedelta(minutes=5))).total_seconds()) < 1

        await service.stop()
        assert service.timer_active is False
        assert service.get_status().next_run is None

    async def test_stop_before_first_tick(self, store, clock):
        service = make_service(store, clock, startup_delay_seconds=60)
        service.start()
        await asyncio.sleep(0)

        await service.stop()

        assert store.find_calls == 0
        assert service.timer_active is False

    async def test_get_status_has_no_side_effects(self, store, clock):
        service = make_service(store, clock)

        first = service.get_status()
        second = service.get_status()

        assert first == second
        assert store.find_calls == 0
        assert first.last_run is None
        assert first.is_running is False


class TestConfiguration:

    @pytest.mark.parametrize("interval", [0, -5, 2.5, "5", True])
    def test_invalid_interval_fails_fast(self, store, interval):
        with pytest.raises(ValueError):
            EventStatusService(store, update_interval_minutes=interval)

    def test_invalid_staleness_fails_fast(self, store):
        with pytest.raises(ValueError):
            EventStatusService(store, staleness_minutes=0)

    def test_from_settings(self, store):
        from unievent.core.config import Settings

        settings = Settings(
            DATABASE_URL="sqlite+aiosqlite:///:memory:",
            SECRET_KEY="x",
            EVENT_STATUS_UPDATE_INTERVAL=10,
            ENABLE_AUTO_STATUS_UPDATES=False,
            EVENT_STATUS_STALENESS_MINUTES=7,
        )
        service = EventStatusService.from_settings(store, settings)

        assert service.update_interval == timedelta(minutes=10)
        assert service.enabled is False
        assert service.staleness == timedelta(minutes=7)

    def test_settings_reject_non_positive_interval(self):
        from pydantic import ValidationError
        from unievent.core.config import Settings

        with pytest.raises(ValidationError):
            Settings(
                DATABASE_URL="sqlite+aiosqlite:///:memory:",
                SECRET_KEY="x",
                EVENT_STATUS_UPDATE_INTERVAL=0,
            )

    def test_status_enum_values(self):
        assert {s.value for s in EventStatus} == {"upcoming", "ongoing", "completed", "cancelled"}
