"""Database engine and device registry for Month-End Tracker."""

from monthend_tracker.db.engine import close_db, init_db
from monthend_tracker.db.registry import SQLiteDeviceRegistry

__all__ = ["close_db", "init_db", "SQLiteDeviceRegistry"]
