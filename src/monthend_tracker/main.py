"""Month-End Tracker entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → SQLite → device registry → usage API client →
  month-end scheduler → daily cron trigger
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path

import aiosqlite
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import ValidationError

from monthend_tracker import __version__
from monthend_tracker.config.manager import ConfigManager
from monthend_tracker.config.schema import AppConfig
from monthend_tracker.db.engine import close_db, init_db
from monthend_tracker.db.registry import SQLiteDeviceRegistry
from monthend_tracker.energy.client import UsageApiClient
from monthend_tracker.errors import PersistenceError
from monthend_tracker.logging.context import clear_context
from monthend_tracker.logging.structured import log_separator, setup_logging
from monthend_tracker.timezone_utils import resolve_timezone
from monthend_tracker.tracking.scheduler import CycleReport, MonthEndScheduler

logger = logging.getLogger(__name__)

JOB_ID = "month_end_checker"


class Application:
    """Wires the tracker's collaborators together and owns their lifetimes."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self._running = False
        self._stop_event = asyncio.Event()

        # References held for cleanup
        self._db: aiosqlite.Connection | None = None
        self._reader: UsageApiClient | None = None
        self._month_end: MonthEndScheduler | None = None
        self._job_scheduler: AsyncIOScheduler | None = None
        self._check_task: asyncio.Task | None = None

    @property
    def month_end(self) -> MonthEndScheduler | None:
        return self._month_end

    async def start(self) -> None:
        """Start all components, then block until stop() is called."""
        logger.info("Starting Month-End Tracker v%s", __version__)
        self._running = True
        self._stop_event.clear()

        # ── 1. Database + registry ───────────────────────────
        self._db = await init_db(self.config.db.path)
        registry = SQLiteDeviceRegistry(self._db)
        await self._report_stale_tracking(registry)

        # ── 2. Energy reading client ─────────────────────────
        self._reader = UsageApiClient(self.config.energy_api)

        # ── 3. Month-end state machine ───────────────────────
        self._month_end = MonthEndScheduler(self.config.schedule, registry, self._reader)

        # ── 4. Daily trigger ─────────────────────────────────
        schedule = self.config.schedule
        if schedule.enabled:
            self._job_scheduler = self._create_job_scheduler()
            self._job_scheduler.start()
            logger.info(
                "Month-end checker scheduled daily at %02d:%02d (%s)",
                schedule.trigger_hour, schedule.trigger_minute, schedule.timezone,
            )
        else:
            logger.warning("Month-end trigger disabled by configuration")

        logger.warning(
            "Tracking state is held in memory only: stopping the service during "
            "the month-end window loses that month's accumulation"
        )
        await self._stop_event.wait()

    def _create_job_scheduler(self) -> AsyncIOScheduler:
        schedule = self.config.schedule
        tz = resolve_timezone(schedule.timezone)
        scheduler = AsyncIOScheduler(timezone=tz)
        scheduler.add_job(
            self.run_check,
            CronTrigger(hour=schedule.trigger_hour, minute=schedule.trigger_minute, timezone=tz),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )
        return scheduler

    async def run_check(self) -> CycleReport | None:
        """One trigger firing: run the month-end scheduler, never raise."""
        if self._month_end is None:
            raise RuntimeError("Application not started. Call start() first.")
        log_separator(logger)
        logger.info("CRON: Running scheduled task - Month-End Checker")
        self._check_task = asyncio.current_task()
        try:
            return await self._month_end.run()
        except Exception:
            logger.exception("CRON: Error in scheduled task")
            return None
        finally:
            self._check_task = None
            clear_context()

    async def stop(self) -> None:
        """Stop immediately; in-flight tracking state is discarded."""
        if not self._running:
            return

        logger.info("Shutting down Month-End Tracker")
        self._running = False

        if self._job_scheduler is not None:
            self._job_scheduler.shutdown(wait=False)
            self._job_scheduler = None

        if self._month_end is not None:
            self._month_end.stop()

        task = self._check_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            logger.warning("SHUTDOWN: Abandoning month-end cycle in progress")
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._reader is not None:
            await self._reader.close()
            self._reader = None

        if self._db is not None:
            await close_db(self._db)
            self._db = None

        self._stop_event.set()
        logger.info("Shutdown complete")

    @staticmethod
    async def _report_stale_tracking(registry: SQLiteDeviceRegistry) -> None:
        """Warn about tracking flags left behind by an interrupted cycle."""
        try:
            stale = await registry.list_tracking_usage_records()
        except PersistenceError as e:
            logger.error("Could not check for stale tracking flags: %s", e)
            return
        if stale:
            logger.warning(
                "%d usage record(s) still flagged as tracking from an earlier cycle: %s",
                len(stale), ", ".join(str(r["id"]) for r in stale),
            )


def load_config(config_manager: ConfigManager) -> AppConfig:
    """Load and validate configuration, exiting on fatal problems."""
    try:
        config = config_manager.load()
    except ValidationError as e:
        setup_logging()
        logger.critical("ENV: Invalid configuration: %s", e)
        sys.exit(1)

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
        tz_name=config.schedule.timezone,
    )

    missing = config.missing_required()
    if missing:
        logger.critical("ENV: Required configuration missing: %s. Exiting.", ", ".join(missing))
        sys.exit(1)
    return config


def main() -> None:
    """Entry point for the service."""
    config = load_config(ConfigManager(Path("config.defaults.yaml"), Path("config.yaml")))
    app = Application(config)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
        finally:
            if app._running:
                with contextlib.suppress(Exception):
                    await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop(sig_name: str) -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(0)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        logger.info("SHUTDOWN: Terminated via %s", sig_name)
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop, sig.name)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop("SIGINT"))
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop("SIGTERM"))

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop("SIGINT")
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()
    sys.exit(0)


if __name__ == "__main__":
    main()
