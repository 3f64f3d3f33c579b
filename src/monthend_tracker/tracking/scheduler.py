"""Month-end state machine: detect the last day, poll the window, finalize."""

from __future__ import annotations

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Awaitable, Callable, Protocol

from monthend_tracker.config.schema import ScheduleConfig
from monthend_tracker.errors import CycleError
from monthend_tracker.logging.context import bind_context, unbind_context
from monthend_tracker.timezone_utils import now_in, resolve_timezone
from monthend_tracker.tracking.base import DeviceRegistry, EnergyReader
from monthend_tracker.tracking.finalizer import Finalizer
from monthend_tracker.tracking.ledger import ExecutionLedger, MinuteKey, format_key
from monthend_tracker.tracking.results import BatchResult
from monthend_tracker.tracking.sync import SyncEngine
from monthend_tracker.tracking.tracker import DeviceTracker

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def is_last_day_of_month(day: date) -> bool:
    return day.day == calendar.monthrange(day.year, day.month)[1]


class Ticker(Protocol):
    """Suspension point between loop iterations."""

    async def wait(self) -> bool:
        """Wait one tick. Returns False once the ticker has been stopped."""
        ...

    def stop(self) -> None:
        ...


class IntervalTicker:
    """Fixed-delay ticker that can be interrupted by stop()."""

    def __init__(self, interval_seconds: float = 1.0) -> None:
        self._interval = interval_seconds
        self._stop_event = asyncio.Event()

    async def wait(self) -> bool:
        if self._stop_event.is_set():
            return False
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            return False  # stop_event was set
        except asyncio.TimeoutError:
            return True

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()


class MinuteAction(str, Enum):
    """What one loop iteration did."""

    IDLE = "idle"  # outside the window
    SKIPPED = "skipped"  # minute already succeeded
    SYNCED = "synced"
    FINALIZED = "finalized"
    HOUR_ROLLOVER = "hour_rollover"


@dataclass
class CycleReport:
    """Outcome of one scheduler invocation."""

    month_end: bool
    finalized: bool = False
    finalize_ok: bool = False
    stopped: bool = False
    overview: dict[str, bool] = field(default_factory=dict)


class MonthEndScheduler:
    """Top-level month-end state machine.

    Invoked once per day. On the last day of the month it polls every tick:
    window minutes before the final one run a sync, the final minute runs
    sync + finalize and ends the loop, and minute 0 ends the loop if the
    window was missed. The tracker and ledger exist only for the duration
    of one run().
    """

    def __init__(
        self,
        config: ScheduleConfig,
        registry: DeviceRegistry,
        reader: EnergyReader,
        clock: Clock | None = None,
        ticker: Ticker | None = None,
        sync_engine: SyncEngine | None = None,
        finalizer: Finalizer | None = None,
    ) -> None:
        self._config = config
        tz = resolve_timezone(config.timezone)
        self._clock = clock or (lambda: now_in(tz))
        self._ticker = ticker or IntervalTicker(config.tick_seconds)
        self._sync = sync_engine or SyncEngine(registry, reader)
        self._finalizer = finalizer or Finalizer(registry, reader)
        self._window = frozenset(config.window_minutes)
        self._final_minute = config.final_minute

    def stop(self) -> None:
        """Interrupt a running monitoring loop at its next tick."""
        self._ticker.stop()

    async def run(self) -> CycleReport:
        today = self._clock()
        if not is_last_day_of_month(today.date()):
            logger.info("MONTH-END CHECKER: %s is not the last day of the month", today.date())
            return CycleReport(month_end=False)

        logger.info("MONTH-END DETECTED: Last day of month (%s)", today.date())
        bind_context(cycle=today.strftime("%Y-%m"))
        tracker = DeviceTracker()
        ledger = ExecutionLedger()
        report = CycleReport(month_end=True)
        try:
            while True:
                now = self._clock()
                action = await self.process_minute(now, tracker, ledger)
                if action == MinuteAction.FINALIZED:
                    record = ledger.get((now.hour, now.minute))
                    report.finalized = True
                    report.finalize_ok = bool(record and record.success)
                    break
                if action == MinuteAction.HOUR_ROLLOVER:
                    break
                if not await self._ticker.wait():
                    report.stopped = True
                    logger.warning(
                        "MONITORING: Stopped before finalization; %d tracked device(s) "
                        "will not be finalized this month",
                        len(tracker),
                    )
                    break
        finally:
            unbind_context("cycle")

        report.overview = ledger.overview()
        return report

    async def process_minute(
        self, now: datetime, tracker: DeviceTracker, ledger: ExecutionLedger,
    ) -> MinuteAction:
        """Evaluate one tick at wall-clock time ``now``."""
        minute = now.minute
        if minute not in self._window:
            if minute == 0:
                logger.warning("MONITORING: Entered new hour. Exiting monitoring loop")
                if len(tracker):
                    logger.error(
                        "MONITORING: Finalization window missed with %d device(s) tracked",
                        len(tracker),
                    )
                return MinuteAction.HOUR_ROLLOVER
            return MinuteAction.IDLE

        key: MinuteKey = (now.hour, minute)
        if not ledger.should_run(key):
            return MinuteAction.SKIPPED

        if minute == self._final_minute:
            logger.info(
                "FINALIZATION: Running final processing task at %s", now.strftime("%H:%M:%S"),
            )
            success = await self._run_step(key, self._sync_and_finalize, tracker)
            ledger.record(key, success)
            logger.info(
                "FINALIZATION: Month-end tracking sequence completed. Execution overview: %s",
                ledger.overview(),
            )
            return MinuteAction.FINALIZED

        logger.info("MONITORING: Running monitoring task at %s", now.strftime("%H:%M:%S"))
        success = await self._run_step(key, self._sync.sync, tracker)
        record = ledger.record(key, success)
        if not success:
            logger.warning(
                "MONITORING: Minute %s failed (attempt %d), eligible for retry",
                format_key(key), record.attempts,
            )
        return MinuteAction.SYNCED

    async def _sync_and_finalize(self, tracker: DeviceTracker) -> BatchResult:
        try:
            sync_result = await self._sync.sync(tracker)
        except Exception:
            # Finalize what is tracked even when the last sync blew up;
            # cancellation passes straight through and persists nothing.
            await self._finalizer.finalize(tracker)
            raise
        final_result = await self._finalizer.finalize(tracker)
        return sync_result.merge(final_result, name="SYNC+FINAL")

    async def _run_step(
        self,
        key: MinuteKey,
        step: Callable[[DeviceTracker], Awaitable[BatchResult]],
        tracker: DeviceTracker,
    ) -> bool:
        label = format_key(key)
        bind_context(minute_key=label)
        try:
            result = await step(tracker)
            return result.ok
        except Exception as e:
            logger.error("MONITORING: %s", CycleError(label, e), exc_info=True)
            return False
        finally:
            unbind_context("minute_key")
