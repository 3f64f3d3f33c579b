"""Shared test fixtures for Month-End Tracker."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from monthend_tracker.config.manager import ConfigManager
from monthend_tracker.config.schema import AppConfig
from monthend_tracker.db.engine import init_db
from monthend_tracker.db.registry import SQLiteDeviceRegistry
from monthend_tracker.errors import FetchError, PersistenceError
from monthend_tracker.tracking.base import ActiveDevice


class FakeRegistry:
    """In-memory DeviceRegistry with switchable failures."""

    def __init__(self, devices: list[ActiveDevice] | None = None) -> None:
        self.active: list[ActiveDevice] = list(devices or [])
        self.flags: dict[str, bool] = {}
        self.committed: dict[str, float] = {}
        self.fail_list = False
        self.fail_flag_for: set[str] = set()
        self.fail_commit_for: set[str] = set()
        self.flag_calls: list[tuple[str, bool]] = []
        self.commit_calls: list[tuple[str, float]] = []

    def deactivate(self, device_id: str) -> None:
        self.active = [d for d in self.active if d.device_id != device_id]

    async def list_active_devices(self) -> list[ActiveDevice]:
        if self.fail_list:
            raise PersistenceError("database unavailable")
        return list(self.active)

    async def set_tracking_flag(self, usage_record_id: str, is_tracking: bool) -> None:
        self.flag_calls.append((usage_record_id, is_tracking))
        if usage_record_id in self.fail_flag_for:
            raise PersistenceError(f"flag write failed for {usage_record_id}")
        self.flags[usage_record_id] = is_tracking

    async def commit_accumulated_value(self, usage_record_id: str, value: float) -> None:
        self.commit_calls.append((usage_record_id, value))
        if usage_record_id in self.fail_commit_for:
            raise PersistenceError(f"commit failed for {usage_record_id}")
        self.committed[usage_record_id] = value
        self.flags[usage_record_id] = False


class FakeReader:
    """EnergyReader returning canned readings per address."""

    def __init__(self, readings: dict[str, float] | None = None) -> None:
        self.readings: dict[str, float] = dict(readings or {})
        self.failing: set[str] = set()
        self.calls: list[str] = []

    async def read_month_energy(self, address: str) -> float:
        self.calls.append(address)
        if address in self.failing or address not in self.readings:
            raise FetchError(address, "device unreachable")
        return self.readings[address]


def make_device(
    device_id: str,
    baseline: float = 0.0,
    alias: str | None = None,
    address: str | None = None,
) -> ActiveDevice:
    return ActiveDevice(
        device_id=device_id,
        alias=alias or f"plug-{device_id}",
        usage_record_id=f"usage-{device_id}",
        address=address or f"plug-{device_id}.lan",
        baseline_consumption=baseline,
    )


@pytest.fixture
def device_factory():
    return make_device


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def fake_reader() -> FakeReader:
    return FakeReader()


@pytest.fixture
def config() -> AppConfig:
    """Provide a test configuration with credentials filled in."""
    return AppConfig(
        energy_api={
            "base_url": "http://usage.test/api",
            "username": "meter",
            "password": "secret",
        },
    )


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths and no environment."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("db:\n  path: ':memory:'\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user, environ={})
    mgr.load()
    return mgr


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def registry(db: aiosqlite.Connection) -> SQLiteDeviceRegistry:
    """Provide a device registry over a fresh database."""
    return SQLiteDeviceRegistry(db)
