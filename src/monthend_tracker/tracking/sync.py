"""Reconcile the device tracker against the registry's active set."""

from __future__ import annotations

import logging

from monthend_tracker.errors import FetchError, PersistenceError
from monthend_tracker.logging.context import bind_context, unbind_context
from monthend_tracker.tracking.base import ActiveDevice, DeviceRegistry, EnergyReader
from monthend_tracker.tracking.results import BatchResult, OpResult, run_batch
from monthend_tracker.tracking.tracker import DeviceTracker, TrackedDevice

logger = logging.getLogger(__name__)


class SyncEngine:
    """Keeps the tracker consistent with the registry.

    Each sync runs two sequential passes:
    1. Tracked devices: drop the ones no longer active (clearing their
       tracking flag), refresh the energy reading of the rest.
    2. Active devices not yet tracked: read energy, set the tracking flag,
       and only then start tracking them.
    """

    def __init__(self, registry: DeviceRegistry, reader: EnergyReader) -> None:
        self._registry = registry
        self._reader = reader

    async def sync(self, tracker: DeviceTracker) -> BatchResult:
        """Run one reconciliation; ok only if every device step succeeded."""
        logger.info("SYNC: Monitoring and syncing tracking data")
        try:
            active = await self._registry.list_active_devices()
        except PersistenceError as e:
            logger.error("SYNC: Could not list active devices: %s", e)
            return BatchResult.failed("SYNC")

        active_ids = {d.device_id for d in active}

        tracked_result = await run_batch(
            "SYNC[tracked]",
            tracker.snapshot(),
            lambda device: self._reconcile_tracked(tracker, device, active_ids),
        )

        # Evaluated after the first pass so a device dropped above and
        # reported again is treated as a fresh addition.
        new_devices = _unique([d for d in active if d.device_id not in tracker])
        new_result = await run_batch(
            "SYNC[new]",
            new_devices,
            lambda device: self._add_device(tracker, device),
        )

        result = tracked_result.merge(new_result, name="SYNC")
        if result.ok:
            logger.info(
                "SYNC: Monitoring and syncing completed successfully (%d tracked)",
                len(tracker),
            )
        else:
            logger.warning(
                "SYNC: Completed with %d failed device(s) (%d tracked)",
                result.failure_count, len(tracker),
            )
        return result

    async def _reconcile_tracked(
        self, tracker: DeviceTracker, device: TrackedDevice, active_ids: set[str],
    ) -> OpResult:
        bind_context(device_id=device.device_id)
        try:
            if device.device_id not in active_ids:
                return await self._drop_inactive(tracker, device)
            return await self._refresh_reading(tracker, device)
        finally:
            unbind_context("device_id")

    async def _drop_inactive(self, tracker: DeviceTracker, device: TrackedDevice) -> OpResult:
        logger.info(
            "SYNC: Device '%s' is no longer active, removing from tracking", device.alias,
        )
        try:
            await self._registry.set_tracking_flag(device.usage_record_id, False)
        except PersistenceError as e:
            logger.error(
                "SYNC: Failed to stop tracking device '%s' (usage record %s): %s",
                device.alias, device.usage_record_id, e,
            )
            return OpResult.failure(e)
        finally:
            # Inactive whatever the flag-clear outcome
            tracker.remove(device.device_id)
        return OpResult.success()

    async def _refresh_reading(self, tracker: DeviceTracker, device: TrackedDevice) -> OpResult:
        try:
            reading = await self._reader.read_month_energy(device.address)
        except FetchError as e:
            logger.error(
                "SYNC: Could not refresh energy for '%s', keeping %.3f: %s",
                device.alias, device.last_energy_reading, e,
            )
            return OpResult.failure(e)
        tracker.update_reading(device.device_id, reading)
        logger.debug("SYNC: Refreshed '%s' month energy to %.3f", device.alias, reading)
        return OpResult.success()

    async def _add_device(self, tracker: DeviceTracker, device: ActiveDevice) -> OpResult:
        bind_context(device_id=device.device_id)
        try:
            logger.info(
                "SYNC: New active device '%s' detected, adding to tracking", device.alias,
            )
            try:
                reading = await self._reader.read_month_energy(device.address)
            except FetchError as e:
                logger.error(
                    "SYNC: Could not read energy for new device '%s': %s", device.alias, e,
                )
                return OpResult.failure(e)

            try:
                await self._registry.set_tracking_flag(device.usage_record_id, True)
            except PersistenceError as e:
                logger.error(
                    "SYNC: Tracking failed for newly detected device '%s': %s",
                    device.alias, e,
                )
                return OpResult.failure(e)

            tracker.add(TrackedDevice.from_active(device, reading))
            logger.info(
                "SYNC: Successfully added device '%s' to tracking "
                "(baseline=%.3f month_energy=%.3f)",
                device.alias, device.baseline_consumption, reading,
            )
            return OpResult.success()
        finally:
            unbind_context("device_id")


def _unique(devices: list[ActiveDevice]) -> list[ActiveDevice]:
    """First occurrence of each device id, in registry order."""
    seen: set[str] = set()
    result = []
    for device in devices:
        if device.device_id not in seen:
            seen.add(device.device_id)
            result.append(device)
    return result
