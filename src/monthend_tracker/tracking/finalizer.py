"""Compute and commit each tracked device's accumulated monthly value."""

from __future__ import annotations

import logging

from monthend_tracker.errors import FetchError, PersistenceError
from monthend_tracker.logging.context import bind_context, unbind_context
from monthend_tracker.tracking.base import DeviceRegistry, EnergyReader
from monthend_tracker.tracking.results import BatchResult, OpResult, run_batch
from monthend_tracker.tracking.tracker import DeviceTracker, TrackedDevice

logger = logging.getLogger(__name__)


class Finalizer:
    """Final pass of a month-end cycle.

    For every tracked device the accumulated value is
    ``final_reading - baseline_consumption``, committed through the registry
    (which also clears the tracking flag). The tracker is emptied afterwards
    whatever the per-device outcome; nothing is retried within the cycle.
    """

    def __init__(self, registry: DeviceRegistry, reader: EnergyReader) -> None:
        self._registry = registry
        self._reader = reader

    async def finalize(self, tracker: DeviceTracker) -> BatchResult:
        logger.info("FINAL: Finalizing month-end tracking (%d devices)", len(tracker))
        try:
            result = await run_batch("FINAL", tracker.snapshot(), self._finalize_device)
        finally:
            cleared = tracker.clear()
            logger.info("FINAL: Cleared %d devices from tracking", cleared)

        if result.ok:
            logger.info("FINAL: Month-end tracking finalized and cleaned up successfully")
        else:
            logger.warning(
                "FINAL: Month-end tracking completed with %d failed device(s)",
                result.failure_count,
            )
        return result

    async def _finalize_device(self, device: TrackedDevice) -> OpResult:
        bind_context(device_id=device.device_id)
        try:
            final = device.with_reading(await self._final_reading(device))
            accumulated = final.accumulated
            if accumulated < 0:
                logger.warning(
                    "FINAL: Negative accumulated value %.3f for '%s' "
                    "(baseline=%.3f final=%.3f); storing as computed",
                    accumulated, device.alias,
                    device.baseline_consumption, final.last_energy_reading,
                )

            try:
                await self._registry.commit_accumulated_value(
                    device.usage_record_id, accumulated,
                )
            except PersistenceError as e:
                logger.error(
                    "FINAL: Error storing accumulated value %.3f for '%s': %s",
                    accumulated, device.alias, e,
                )
                return OpResult.failure(e)

            logger.info(
                "FINAL: Device '%s' processing completed "
                "(baseline=%.3f final=%.3f accumulated=%.3f)",
                device.alias, device.baseline_consumption,
                final.last_energy_reading, accumulated,
            )
            return OpResult.success()
        finally:
            unbind_context("device_id")

    async def _final_reading(self, device: TrackedDevice) -> float:
        """Fresh reading, or the last observed one if the read fails."""
        try:
            return await self._reader.read_month_energy(device.address)
        except FetchError as e:
            logger.warning(
                "FINAL: Error getting final month energy for '%s', "
                "using previously stored value %.3f: %s",
                device.alias, device.last_energy_reading, e,
            )
            return device.last_energy_reading
