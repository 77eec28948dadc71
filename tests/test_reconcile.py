"""Tests for ReconciliationScheduler."""

import asyncio
import os
from datetime import datetime, time, timezone
from unittest.mock import patch

import pytest

from conftest import StubProvider
from core.reconcile import ReconciliationError, ReconciliationScheduler, seconds_until
from core.store import StoreUnavailable
from sdk.exceptions import ProviderUnavailable

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(store) -> dict:
    return {name: store.get(name) for name in store.identifiers()}


class TestReconcileOnce:
    @pytest.mark.asyncio
    async def test_upserts_whole_roster(self, store) -> None:
        provider = StubProvider({"alice": ["g1"], "bob": [], "carol": ["g2", "g3"]})
        scheduler = ReconciliationScheduler(store, provider)

        report = await scheduler.reconcile_once()

        assert report.ok
        assert sorted(report.upserted) == ["alice", "bob", "carol"]
        assert store.get("carol") == frozenset({"g2", "g3"})
        assert store.get("bob") == frozenset()

    @pytest.mark.asyncio
    async def test_overwrites_stale_groups(self, store) -> None:
        await store.upsert("alice", ["old"])
        scheduler = ReconciliationScheduler(store, StubProvider({"alice": ["new"]}))

        await scheduler.reconcile_once()

        assert store.get("alice") == frozenset({"new"})

    @pytest.mark.asyncio
    async def test_idempotent(self, store) -> None:
        scheduler = ReconciliationScheduler(store, StubProvider({"alice": ["g1"], "bob": ["g2"]}))

        await scheduler.reconcile_once()
        first = _snapshot(store)
        await scheduler.reconcile_once()

        assert _snapshot(store) == first

    @pytest.mark.asyncio
    async def test_principals_missing_upstream_are_untouched(self, store) -> None:
        await store.upsert("departed", ["legacy"])
        scheduler = ReconciliationScheduler(store, StubProvider({"alice": ["g1"]}))

        await scheduler.reconcile_once()

        assert store.get("departed") == frozenset({"legacy"})

    @pytest.mark.asyncio
    async def test_fetch_failure_writes_nothing(self, store) -> None:
        await store.upsert("alice", ["before"])
        scheduler = ReconciliationScheduler(store, StubProvider({"alice": ["after"]}, error=ProviderUnavailable(502)))

        with pytest.raises(ProviderUnavailable):
            await scheduler.reconcile_once()

        assert _snapshot(store) == {"alice": frozenset({"before"})}

    @pytest.mark.asyncio
    async def test_failed_batch_skips_and_reports(self, store) -> None:
        real_upsert_many = store.upsert_many

        async def flaky_upsert_many(items):
            items = list(items)
            if any(identifier == "bob" for identifier, _ in items):
                raise StoreUnavailable("disk full")
            return await real_upsert_many(items)

        store.upsert_many = flaky_upsert_many
        scheduler = ReconciliationScheduler(
            store, StubProvider({"alice": ["g1"], "bob": ["g2"], "carol": ["g3"]}), batch_size=1,
        )

        with pytest.raises(ReconciliationError) as exc_info:
            await scheduler.reconcile_once()

        report = exc_info.value.report
        assert sorted(report.upserted) == ["alice", "carol"]
        assert list(report.failed) == ["bob"]
        assert store.get("carol") == frozenset({"g3"})
        assert store.get("bob") is None

    @pytest.mark.asyncio
    async def test_writes_once_per_batch(self, store) -> None:
        roster = {f"user{i}": [f"g{i}"] for i in range(10)}
        scheduler = ReconciliationScheduler(store, StubProvider(roster), batch_size=4)

        with patch("core.store.os.replace", wraps=os.replace) as mock_replace:
            report = await scheduler.reconcile_once()

        assert mock_replace.call_count == 3
        assert len(report.upserted) == 10
        assert store.get("user9") == frozenset({"g9"})


class TestHarness:
    @pytest.mark.asyncio
    async def test_run_guarded_records_success(self, store) -> None:
        scheduler = ReconciliationScheduler(store, StubProvider({"alice": ["g1"]}), clock=lambda: NOW)

        report = await scheduler.run_guarded()

        assert report is not None and report.ok
        assert scheduler.last_report is report
        assert scheduler.last_error is None
        assert scheduler.last_run_at == NOW

    @pytest.mark.asyncio
    async def test_run_guarded_logs_and_swallows_fetch_failure(self, store) -> None:
        scheduler = ReconciliationScheduler(store, StubProvider(error=ProviderUnavailable(500)))

        assert await scheduler.run_guarded() is None
        assert isinstance(scheduler.last_error, ProviderUnavailable)

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_next_run(self, store) -> None:
        provider = StubProvider({"alice": ["g1"]}, error=ProviderUnavailable(500))
        scheduler = ReconciliationScheduler(store, provider)

        await scheduler.run_guarded()
        provider.error = None
        report = await scheduler.run_guarded()

        assert report is not None and report.ok
        assert scheduler.last_error is None

    @pytest.mark.asyncio
    async def test_run_guarded_enforces_max_duration(self, store) -> None:
        class SlowProvider(StubProvider):
            async def fetch_all_principals(self):
                await asyncio.sleep(5)
                return {}

        scheduler = ReconciliationScheduler(store, SlowProvider(), max_duration=0.01)

        assert await scheduler.run_guarded() is None
        assert isinstance(scheduler.last_error, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_run_forever_runs_on_cadence_until_stopped(self, store) -> None:
        provider = StubProvider({"alice": ["g1"]})
        scheduler = ReconciliationScheduler(store, provider, interval=0.01, run_on_start=True, max_duration=1)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.1)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert provider.calls >= 2
        assert store.get("alice") == frozenset({"g1"})

    @pytest.mark.asyncio
    async def test_stop_before_first_tick_skips_run(self, store) -> None:
        provider = StubProvider({"alice": ["g1"]})
        scheduler = ReconciliationScheduler(store, provider, interval=60)

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert provider.calls == 0


class TestCadence:
    def test_interval_must_be_positive(self, store) -> None:
        with pytest.raises(ValueError):
            ReconciliationScheduler(store, StubProvider(), interval=0)

    def test_batch_size_must_be_positive(self, store) -> None:
        with pytest.raises(ValueError):
            ReconciliationScheduler(store, StubProvider(), batch_size=0)

    def test_plain_interval(self, store) -> None:
        scheduler = ReconciliationScheduler(store, StubProvider(), interval=3600)
        assert scheduler.next_delay() == 3600

    def test_daily_wall_clock(self, store) -> None:
        scheduler = ReconciliationScheduler(store, StubProvider(), run_at=time(13, 30), clock=lambda: NOW)
        assert scheduler.next_delay() == 90 * 60

    def test_seconds_until_rolls_over_to_tomorrow(self) -> None:
        assert seconds_until(time(12, 0), NOW) == 24 * 60 * 60
        assert seconds_until(time(2, 0), NOW) == 14 * 60 * 60

    def test_default_max_duration_stays_under_interval(self, store) -> None:
        short = ReconciliationScheduler(store, StubProvider(), interval=100)
        daily = ReconciliationScheduler(store, StubProvider())
        assert short._max_duration == pytest.approx(90)
        assert daily._max_duration == 3600
