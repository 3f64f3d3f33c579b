"""Device registry backed by SQLite."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from monthend_tracker.errors import PersistenceError
from monthend_tracker.tracking.base import ActiveDevice

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDeviceRegistry:
    """Data access for devices, usage records and the active-device set.

    Every aiosqlite failure surfaces as PersistenceError so callers can
    contain it per device.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    # ── Month-end operations ────────────────────────────────

    async def list_active_devices(self) -> list[ActiveDevice]:
        try:
            async with self.db.execute(
                """SELECT a.device_id, a.usage_record_id, d.ip_address, d.alias,
                          u.consumption
                   FROM active_device a
                   JOIN usage u ON a.usage_record_id = u.id
                   JOIN device d ON a.device_id = d.id
                   ORDER BY a.activated_at, a.device_id"""
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"listing active devices failed: {e}") from e

        return [
            ActiveDevice(
                device_id=row["device_id"],
                alias=row["alias"],
                usage_record_id=row["usage_record_id"],
                address=row["ip_address"],
                baseline_consumption=float(row["consumption"] or 0.0),
            )
            for row in rows
        ]

    async def set_tracking_flag(self, usage_record_id: str, is_tracking: bool) -> None:
        await self._update_usage(
            "UPDATE usage SET is_tracking_previous_month = ?, updated_at = ? WHERE id = ?",
            (1 if is_tracking else 0, _now(), usage_record_id),
            usage_record_id,
        )
        logger.info(
            "Updated tracking flag for usage record %s to %s", usage_record_id, is_tracking,
        )

    async def commit_accumulated_value(self, usage_record_id: str, value: float) -> None:
        await self._update_usage(
            """UPDATE usage
               SET previous_month_accumulated = ?, is_tracking_previous_month = 0,
                   updated_at = ?
               WHERE id = ?""",
            (value, _now(), usage_record_id),
            usage_record_id,
        )
        logger.info(
            "Stored accumulated value %.3f for usage record %s and reset tracking flag",
            value, usage_record_id,
        )

    async def _update_usage(
        self, sql: str, params: tuple[Any, ...], usage_record_id: str,
    ) -> None:
        try:
            async with self.db.execute(sql, params) as cursor:
                updated = cursor.rowcount
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(
                f"updating usage record {usage_record_id} failed: {e}"
            ) from e
        if updated == 0:
            raise PersistenceError(f"usage record {usage_record_id} not found")

    # ── Registry maintenance ────────────────────────────────

    async def add_device(self, device_id: str, alias: str, ip_address: str) -> None:
        try:
            await self.db.execute(
                "INSERT INTO device (id, alias, ip_address) VALUES (?, ?, ?)",
                (device_id, alias, ip_address),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"adding device {device_id} failed: {e}") from e

    async def create_usage_record(
        self, usage_record_id: str, device_id: str, consumption: float = 0.0,
    ) -> None:
        try:
            await self.db.execute(
                """INSERT INTO usage (id, device_id, consumption, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (usage_record_id, device_id, consumption, _now()),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(
                f"creating usage record {usage_record_id} failed: {e}"
            ) from e

    async def activate_device(self, device_id: str, usage_record_id: str) -> None:
        try:
            await self.db.execute(
                """INSERT OR REPLACE INTO active_device (device_id, usage_record_id, activated_at)
                   VALUES (?, ?, ?)""",
                (device_id, usage_record_id, _now()),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"activating device {device_id} failed: {e}") from e

    async def deactivate_device(self, device_id: str) -> None:
        try:
            await self.db.execute(
                "DELETE FROM active_device WHERE device_id = ?", (device_id,),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"deactivating device {device_id} failed: {e}") from e

    async def get_usage_record(self, usage_record_id: str) -> dict[str, Any] | None:
        try:
            async with self.db.execute(
                "SELECT * FROM usage WHERE id = ?", (usage_record_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(
                f"reading usage record {usage_record_id} failed: {e}"
            ) from e
        return dict(row) if row else None

    async def list_tracking_usage_records(self) -> list[dict[str, Any]]:
        """Usage records whose tracking flag is still set."""
        try:
            async with self.db.execute(
                "SELECT * FROM usage WHERE is_tracking_previous_month = 1 ORDER BY id"
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"listing tracking usage records failed: {e}") from e
        return [dict(r) for r in rows]
