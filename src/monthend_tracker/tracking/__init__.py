"""Month-end tracking core: tracker, sync, finalization and scheduling."""

from monthend_tracker.tracking.base import ActiveDevice, DeviceRegistry, EnergyReader
from monthend_tracker.tracking.finalizer import Finalizer
from monthend_tracker.tracking.ledger import ExecutionLedger
from monthend_tracker.tracking.scheduler import CycleReport, IntervalTicker, MonthEndScheduler
from monthend_tracker.tracking.sync import SyncEngine
from monthend_tracker.tracking.tracker import DeviceTracker, TrackedDevice

__all__ = [
    "ActiveDevice",
    "CycleReport",
    "DeviceRegistry",
    "DeviceTracker",
    "EnergyReader",
    "ExecutionLedger",
    "Finalizer",
    "IntervalTicker",
    "MonthEndScheduler",
    "SyncEngine",
    "TrackedDevice",
]
