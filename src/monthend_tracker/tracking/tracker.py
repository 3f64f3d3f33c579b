"""In-memory tracking state for one month-end cycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from monthend_tracker.tracking.base import ActiveDevice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedDevice:
    """Snapshot of a device under month-end observation."""

    device_id: str
    alias: str
    usage_record_id: str
    address: str
    baseline_consumption: float
    last_energy_reading: float

    @classmethod
    def from_active(cls, device: ActiveDevice, reading: float) -> TrackedDevice:
        return cls(
            device_id=device.device_id,
            alias=device.alias,
            usage_record_id=device.usage_record_id,
            address=device.address,
            baseline_consumption=device.baseline_consumption,
            last_energy_reading=reading,
        )

    def with_reading(self, reading: float) -> TrackedDevice:
        return replace(self, last_energy_reading=reading)

    @property
    def accumulated(self) -> float:
        """Consumption since the baseline snapshot; negative after a counter reset."""
        return self.last_energy_reading - self.baseline_consumption


class DeviceTracker:
    """Mapping of device id to TrackedDevice, in insertion order.

    Owned by a single scheduler invocation. Entries are replaced whole so
    the mapping is consistent at every await point of its callers.
    """

    def __init__(self) -> None:
        self._devices: dict[str, TrackedDevice] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def get(self, device_id: str) -> TrackedDevice | None:
        return self._devices.get(device_id)

    def device_ids(self) -> list[str]:
        return list(self._devices)

    def snapshot(self) -> list[TrackedDevice]:
        """Point-in-time copy, safe to iterate while the tracker changes."""
        return list(self._devices.values())

    def add(self, device: TrackedDevice) -> None:
        if device.device_id in self._devices:
            raise ValueError(f"device {device.device_id} is already tracked")
        self._devices[device.device_id] = device

    def update_reading(self, device_id: str, reading: float) -> TrackedDevice:
        updated = self._devices[device_id].with_reading(reading)
        self._devices[device_id] = updated
        return updated

    def remove(self, device_id: str) -> TrackedDevice | None:
        return self._devices.pop(device_id, None)

    def clear(self) -> int:
        """Drop every entry and return how many were dropped."""
        count = len(self._devices)
        self._devices.clear()
        logger.debug("Tracker cleared (%d devices)", count)
        return count
