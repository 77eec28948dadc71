"""Periodic reconciliation of the membership store against the provider roster.

A run pulls the whole roster and upserts every principal.  Principals missing
from the roster are left as they are; deprovisioning is handled elsewhere.

Principals are written in chunks of *batch_size*, one file write per chunk.
A failed chunk does not stop the run: every chunk is attempted, the
principals of failed chunks are collected in the :class:`ReconcileReport`,
and a :class:`ReconciliationError` is raised once the run is done.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, time, timedelta, timezone
from typing import Callable

from core.logger import GroupkeeperLogger
from core.resolver import PrincipalSource
from core.store import MembershipStore, StoreUnavailable

logger = GroupkeeperLogger.get_logger("reconcile")

DEFAULT_INTERVAL: float = 24 * 60 * 60
DEFAULT_BATCH_SIZE: int = 500
_MAX_DURATION_CAP: float = 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclasses.dataclass
class ReconcileReport:
    started_at: datetime
    finished_at: datetime | None = None
    upserted: list[str] = dataclasses.field(default_factory=list)
    failed: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.upserted) + len(self.failed)


class ReconciliationError(Exception):
    """One or more principals could not be written during a run."""

    def __init__(self, report: ReconcileReport) -> None:
        self.report = report
        names = ", ".join(sorted(report.failed)[:5])
        more = "" if len(report.failed) <= 5 else f" (+{len(report.failed) - 5} more)"
        super().__init__(f"{len(report.failed)} of {report.total} principal(s) failed to update: {names}{more}")


def seconds_until(at: time, now: datetime) -> float:
    """Seconds from *now* to the next occurrence of wall-clock *at* (UTC)."""
    target = datetime.combine(now.date(), at, tzinfo=timezone.utc)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class ReconciliationScheduler:
    """Runs :meth:`reconcile_once` on a fixed cadence until :meth:`stop`.

    The cadence is either a plain *interval* in seconds or, when *run_at* is
    given, once per calendar day at that UTC wall-clock time.  Each run is
    bounded by *max_duration*; a failed or timed-out run is logged and has no
    effect on the next one.
    """

    def __init__(
        self,
        store: MembershipStore,
        provider: PrincipalSource,
        interval: float = DEFAULT_INTERVAL,
        run_at: time | None = None,
        run_on_start: bool = False,
        max_duration: float | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._store = store
        self._provider = provider
        self._interval = interval
        self._run_at = run_at
        self._run_on_start = run_on_start
        self._max_duration = max_duration if max_duration is not None else min(interval * 0.9, _MAX_DURATION_CAP)
        self._batch_size = batch_size
        self._clock = clock
        self._stopped = asyncio.Event()
        self._run_lock = asyncio.Lock()

        self.last_run_at: datetime | None = None
        self.last_report: ReconcileReport | None = None
        self.last_error: BaseException | None = None

    async def reconcile_once(self) -> ReconcileReport:
        """Pull the roster and upsert every principal.

        A failed roster fetch propagates before anything is written.

        Raises:
            ReconciliationError: If any upsert failed; carries the report.
        """
        async with self._run_lock:
            report = ReconcileReport(started_at=self._clock())
            logger.info("Reconciliation started")
            principals = await self._provider.fetch_all_principals()

            items = list(principals.items())
            for start in range(0, len(items), self._batch_size):
                chunk = items[start:start + self._batch_size]
                try:
                    await self._store.upsert_many(chunk)
                except StoreUnavailable as exc:
                    report.failed.update((identifier, str(exc)) for identifier, _ in chunk)
                    logger.error(
                        "Reconciliation batch failed",
                        extra={"batch_start": start, "batch_size": len(chunk), "error": str(exc)},
                    )
                else:
                    report.upserted.extend(identifier for identifier, _ in chunk)

            report.finished_at = self._clock()
            logger.info(
                "Reconciliation finished",
                extra={"upserted": len(report.upserted), "failed": len(report.failed), "store_size": len(self._store)},
            )
            if report.failed:
                raise ReconciliationError(report)
            return report

    async def run_guarded(self) -> ReconcileReport | None:
        """One bounded run whose failures are recorded and logged, not raised."""
        self.last_run_at = self._clock()
        try:
            report = await asyncio.wait_for(self.reconcile_once(), timeout=self._max_duration)
        except ReconciliationError as exc:
            self.last_report, self.last_error = exc.report, exc
            logger.error("Reconciliation completed with failures", extra={"error": str(exc)})
            return exc.report
        except asyncio.TimeoutError as exc:
            self.last_error = exc
            logger.error("Reconciliation exceeded its time budget", extra={"max_duration": self._max_duration})
            return None
        except Exception as exc:
            self.last_error = exc
            logger.exception("Reconciliation run abandoned", extra={"error": str(exc), "error_type": type(exc).__name__})
            return None
        self.last_report, self.last_error = report, None
        return report

    def next_delay(self) -> float:
        if self._run_at is not None:
            return seconds_until(self._run_at, self._clock())
        return self._interval

    async def run_forever(self) -> None:
        logger.info(
            "Reconciliation scheduler started",
            extra={"interval": self._interval, "run_at": self._run_at, "run_on_start": self._run_on_start},
        )
        if self._run_on_start:
            await self.run_guarded()
        while not self._stopped.is_set():
            delay = self.next_delay()
            logger.debug("Next reconciliation scheduled", extra={"delay_seconds": delay})
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=delay)
            except asyncio.TimeoutError:
                await self.run_guarded()
        logger.info("Reconciliation scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
