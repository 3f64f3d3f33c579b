"""Tests for the sync engine."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from monthend_tracker.tracking.sync import SyncEngine
from monthend_tracker.tracking.tracker import DeviceTracker, TrackedDevice


@pytest.mark.asyncio
class TestSyncNewDevices:
    async def test_adds_active_devices_with_reading(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a", baseline=5.0)
        b = device_factory("b", baseline=0.0)
        fake_registry.active = [a, b]
        fake_reader.readings = {a.address: 20.0, b.address: 0.0}
        tracker = DeviceTracker()

        result = await SyncEngine(fake_registry, fake_reader).sync(tracker)

        assert result.ok
        assert result.success_count == 2
        assert tracker.device_ids() == ["a", "b"]
        assert tracker.get("a") == TrackedDevice.from_active(a, 20.0)
        assert tracker.get("b").last_energy_reading == 0.0
        assert fake_registry.flags == {"usage-a": True, "usage-b": True}

    async def test_read_before_flag_write(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.failing.add(a.address)
        tracker = DeviceTracker()

        result = await SyncEngine(fake_registry, fake_reader).sync(tracker)

        assert not result.ok
        assert "a" not in tracker
        assert fake_registry.flag_calls == []

    async def test_flag_write_failure_keeps_device_untracked(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        b = device_factory("b")
        fake_registry.active = [a, b]
        fake_reader.readings = {a.address: 1.0, b.address: 2.0}
        fake_registry.fail_flag_for.add("usage-a")
        tracker = DeviceTracker()

        result = await SyncEngine(fake_registry, fake_reader).sync(tracker)

        assert result.success_count == 1
        assert result.failure_count == 1
        assert "a" not in tracker
        assert "b" in tracker

    async def test_failed_device_added_on_later_sync(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.failing.add(a.address)
        fake_reader.readings = {a.address: 7.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()

        assert not (await engine.sync(tracker)).ok
        fake_reader.failing.clear()
        assert (await engine.sync(tracker)).ok
        assert tracker.get("a").last_energy_reading == 7.0

    async def test_duplicate_registry_rows_tracked_once(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a, a]
        fake_reader.readings = {a.address: 3.0}
        tracker = DeviceTracker()

        result = await SyncEngine(fake_registry, fake_reader).sync(tracker)

        assert result.ok
        assert len(tracker) == 1
        assert fake_registry.flag_calls == [("usage-a", True)]


@pytest.mark.asyncio
class TestSyncTrackedDevices:
    async def test_refreshes_reading_of_still_active_device(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a", baseline=2.0)
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 10.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_reader.readings[a.address] = 12.5
        result = await engine.sync(tracker)

        assert result.ok
        assert tracker.get("a").last_energy_reading == 12.5
        assert tracker.get("a").baseline_consumption == 2.0
        # No second flag write for an already tracked device
        assert fake_registry.flag_calls == [("usage-a", True)]

    async def test_refresh_failure_keeps_previous_reading(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 10.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_reader.failing.add(a.address)
        result = await engine.sync(tracker)

        assert not result.ok
        assert tracker.get("a").last_energy_reading == 10.0

    async def test_removes_deactivated_device_and_clears_flag(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        b = device_factory("b")
        fake_registry.active = [a, b]
        fake_reader.readings = {a.address: 1.0, b.address: 2.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.deactivate("a")
        result = await engine.sync(tracker)

        assert result.ok
        assert tracker.device_ids() == ["b"]
        assert fake_registry.flags["usage-a"] is False
        assert ("usage-a", False) in fake_registry.flag_calls

    async def test_removal_proceeds_when_flag_clear_fails(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 1.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.deactivate("a")
        fake_registry.fail_flag_for.add("usage-a")
        result = await engine.sync(tracker)

        assert "a" not in tracker
        assert result.failure_count == 1

    async def test_removal_proceeds_on_unexpected_flag_clear_error(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 1.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.deactivate("a")
        fake_registry.set_tracking_flag = AsyncMock(side_effect=ValueError("Connection closed"))
        result = await engine.sync(tracker)

        fake_registry.set_tracking_flag.assert_awaited_once_with("usage-a", False)
        assert "a" not in tracker
        assert result.failure_count == 1

    async def test_reactivated_device_is_fresh_addition(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a", baseline=1.0)
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 4.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.deactivate("a")
        await engine.sync(tracker)
        assert "a" not in tracker

        a_again = device_factory("a", baseline=3.0)
        fake_registry.active = [a_again]
        fake_reader.readings[a_again.address] = 6.0
        result = await engine.sync(tracker)

        assert result.ok
        assert tracker.get("a").baseline_consumption == 3.0
        assert fake_registry.flag_calls == [
            ("usage-a", True),
            ("usage-a", False),
            ("usage-a", True),
        ]

    async def test_inactive_pass_runs_before_new_pass(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        b = device_factory("b")
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 1.0, b.address: 2.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.active = [b]
        await engine.sync(tracker)

        assert fake_registry.flag_calls == [
            ("usage-a", True),
            ("usage-a", False),
            ("usage-b", True),
        ]
        assert tracker.device_ids() == ["b"]


@pytest.mark.asyncio
class TestSyncRegistryFailure:
    async def test_list_failure_leaves_tracker_untouched(
        self, fake_registry, fake_reader, device_factory,
    ) -> None:
        a = device_factory("a")
        fake_registry.active = [a]
        fake_reader.readings = {a.address: 1.0}
        engine = SyncEngine(fake_registry, fake_reader)
        tracker = DeviceTracker()
        await engine.sync(tracker)

        fake_registry.fail_list = True
        reads_before = len(fake_reader.calls)
        result = await engine.sync(tracker)

        assert not result.ok
        assert tracker.device_ids() == ["a"]
        assert len(fake_reader.calls) == reads_before

    async def test_empty_registry(self, fake_registry, fake_reader) -> None:
        tracker = DeviceTracker()
        result = await SyncEngine(fake_registry, fake_reader).sync(tracker)
        assert result.ok
        assert result.total == 0
        assert len(tracker) == 0
