"""Collaborator protocols at the boundary of the tracking core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ActiveDevice:
    """A device the registry currently reports as switched on."""

    device_id: str
    alias: str
    usage_record_id: str
    address: str
    baseline_consumption: float


@runtime_checkable
class DeviceRegistry(Protocol):
    """Source of truth for active devices and month-end usage records.

    Implementations: SQLiteDeviceRegistry.
    """

    async def list_active_devices(self) -> list[ActiveDevice]:
        """Return every currently active device with its usage snapshot."""
        ...

    async def set_tracking_flag(self, usage_record_id: str, is_tracking: bool) -> None:
        """Persist the tracking flag. Raises PersistenceError on failure."""
        ...

    async def commit_accumulated_value(self, usage_record_id: str, value: float) -> None:
        """Store the accumulated value and clear the tracking flag together.

        Raises PersistenceError on failure.
        """
        ...


@runtime_checkable
class EnergyReader(Protocol):
    """Reads cumulative month-to-date energy from a device.

    Implementations: UsageApiClient.
    """

    async def read_month_energy(self, address: str) -> float:
        """Return the current cumulative reading. Raises FetchError on failure."""
        ...
