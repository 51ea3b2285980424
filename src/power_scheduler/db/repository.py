"""Data access layer for all database operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

_RULE_FIELDS = frozenset({
    "name", "max_hours", "min_continuous_hours", "time_window_start",
    "time_window_end", "days_of_week", "is_enabled",
})

_DEVICE_FIELDS = frozenset({"name", "device_type", "room", "is_active"})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _local_ts(dt: datetime) -> str:
    """Local wall-clock timestamp in the format stored in starts_at/ends_at."""
    return dt.replace(microsecond=0).isoformat()


class Repository:
    """Centralised data access for all tables.

    Writes go through ``transaction()``, which serialises writers on the
    shared connection and commits or rolls back as a unit. Nested use from
    the same task joins the outer transaction.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db
        self._lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is not None and self._tx_owner is task:
            yield
            return
        async with self._lock:
            self._tx_owner = task
            try:
                yield
                await self.db.commit()
            except BaseException:
                await self.db.rollback()
                raise
            finally:
                self._tx_owner = None

    # ── Devices ─────────────────────────────────────────────

    async def create_device(
        self,
        external_id: str,
        name: str,
        device_type: str | None = None,
        room: str | None = None,
    ) -> int:
        async with self.transaction():
            async with self.db.execute(
                """INSERT INTO devices (external_id, name, device_type, room, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (external_id, name, device_type, room, _now()),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def get_device(self, device_id: int) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT * FROM devices WHERE id = ?", (device_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def list_devices(self, active_only: bool = False) -> list[dict[str, Any]]:
        query = "SELECT * FROM devices"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY name"
        async with self.db.execute(query) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def update_device(self, device_id: int, **fields: Any) -> None:
        unknown = set(fields) - _DEVICE_FIELDS
        if unknown:
            raise ValueError(f"Unknown device fields: {sorted(unknown)}")
        if not fields:
            return
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        assignments = ", ".join(f"{name} = ?" for name in fields)
        async with self.transaction():
            await self.db.execute(
                f"UPDATE devices SET {assignments} WHERE id = ?",
                (*fields.values(), device_id),
            )

    async def list_rule_ids_for_device(self, device_id: int) -> list[int]:
        """Ids of the device's rules that have not been deleted."""
        async with self.db.execute(
            "SELECT id FROM rules WHERE device_id = ? AND deleted_at IS NULL ORDER BY id",
            (device_id,),
        ) as cursor:
            return [row[0] for row in await cursor.fetchall()]

    async def delete_device(self, device_id: int) -> None:
        """Remove a device together with its deleted rules and their history.

        Callers must make sure no live rule still points at the device; the
        foreign key refuses the delete otherwise.
        """
        async with self.transaction():
            await self.db.execute(
                """DELETE FROM scheduled_actions WHERE rule_id IN
                   (SELECT id FROM rules WHERE device_id = ? AND deleted_at IS NOT NULL)""",
                (device_id,),
            )
            await self.db.execute(
                "DELETE FROM rules WHERE device_id = ? AND deleted_at IS NOT NULL", (device_id,),
            )
            await self.db.execute("DELETE FROM devices WHERE id = ?", (device_id,))

    # ── Rules ───────────────────────────────────────────────

    async def create_rule(
        self,
        device_id: int,
        name: str,
        max_hours: int,
        min_continuous_hours: int = 1,
        time_window_start: int | None = None,
        time_window_end: int | None = None,
        days_of_week: int = 127,
        is_enabled: bool = True,
    ) -> int:
        now = _now()
        async with self.transaction():
            async with self.db.execute(
                """INSERT INTO rules
                   (device_id, name, max_hours, min_continuous_hours, time_window_start,
                    time_window_end, days_of_week, is_enabled, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    device_id, name, max_hours, min_continuous_hours,
                    time_window_start, time_window_end, days_of_week,
                    1 if is_enabled else 0, now, now,
                ),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def get_rule(self, rule_id: int) -> dict[str, Any] | None:
        async with self.db.execute(
            """SELECT r.*, d.name AS device_name, d.is_active AS device_active
               FROM rules r JOIN devices d ON r.device_id = d.id
               WHERE r.id = ? AND r.deleted_at IS NULL""",
            (rule_id,),
        ) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def list_rules(self) -> list[dict[str, Any]]:
        async with self.db.execute(
            """SELECT r.*, d.name AS device_name, d.is_active AS device_active
               FROM rules r JOIN devices d ON r.device_id = d.id
               WHERE r.deleted_at IS NULL
               ORDER BY r.name"""
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def list_enabled_rules(self) -> list[dict[str, Any]]:
        async with self.db.execute(
            """SELECT r.*, d.is_active AS device_active
               FROM rules r JOIN devices d ON r.device_id = d.id
               WHERE r.is_enabled = 1 AND r.deleted_at IS NULL AND d.is_active = 1
               ORDER BY r.id"""
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def update_rule(self, rule_id: int, **fields: Any) -> None:
        unknown = set(fields) - _RULE_FIELDS
        if unknown:
            raise ValueError(f"Unknown rule fields: {sorted(unknown)}")
        if not fields:
            return
        if "is_enabled" in fields:
            fields["is_enabled"] = 1 if fields["is_enabled"] else 0
        assignments = ", ".join(f"{name} = ?" for name in fields)
        async with self.transaction():
            await self.db.execute(
                f"UPDATE rules SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), _now(), rule_id),
            )

    async def soft_delete_rule(self, rule_id: int) -> None:
        now = _now()
        async with self.transaction():
            await self.db.execute(
                "UPDATE rules SET deleted_at = ?, is_enabled = 0, updated_at = ? WHERE id = ?",
                (now, now, rule_id),
            )

    # ── Scheduled Actions ───────────────────────────────────

    async def count_actions_for_date(self, day: date) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM scheduled_actions WHERE scheduled_date = ?",
            (day.isoformat(),),
        ) as cursor:
            row = await cursor.fetchone()
            return row[0]  # type: ignore[index]

    async def list_actions_for_date(self, day: date) -> list[dict[str, Any]]:
        """Entries for a date with the rule and device the executor needs."""
        async with self.db.execute(
            """SELECT sa.*, r.name AS rule_name, d.id AS device_id,
                      d.name AS device_name, d.external_id AS device_external_id
               FROM scheduled_actions sa
               JOIN rules r ON sa.rule_id = r.id
               JOIN devices d ON r.device_id = d.id
               WHERE sa.scheduled_date = ?
               ORDER BY sa.start_hour, sa.rule_id""",
            (day.isoformat(),),
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def list_actions_for_rule(
        self, rule_id: int, day: date | None = None,
    ) -> list[dict[str, Any]]:
        query = "SELECT * FROM scheduled_actions WHERE rule_id = ?"
        params: list[Any] = [rule_id]
        if day is not None:
            query += " AND scheduled_date = ?"
            params.append(day.isoformat())
        query += " ORDER BY scheduled_date, start_hour"
        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def get_action(self, action_id: int) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT * FROM scheduled_actions WHERE id = ?", (action_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def insert_action(
        self,
        rule_id: int,
        day: date,
        start_hour: int,
        starts_at: datetime,
        ends_at: datetime,
        price_per_kwh: float | None = None,
    ) -> bool:
        """Insert a pending entry; a duplicate (rule, date, hour) is silently ignored.

        Returns True if a row was created.
        """
        now = _now()
        async with self.transaction():
            async with self.db.execute(
                """INSERT OR IGNORE INTO scheduled_actions
                   (rule_id, scheduled_date, start_hour, end_hour, starts_at, ends_at,
                    price_per_kwh, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)""",
                (
                    rule_id, day.isoformat(), start_hour, (start_hour + 1) % 24,
                    _local_ts(starts_at), _local_ts(ends_at), price_per_kwh, now, now,
                ),
            ) as cursor:
                created = cursor.rowcount > 0
        return created

    async def delete_future_pending(self, rule_id: int, day: date, now: datetime) -> int:
        """Delete a rule's pending entries for ``day`` that start strictly after ``now``."""
        async with self.transaction():
            async with self.db.execute(
                """DELETE FROM scheduled_actions
                   WHERE rule_id = ? AND scheduled_date = ?
                     AND status = 'pending' AND starts_at > ?""",
                (rule_id, day.isoformat(), _local_ts(now)),
            ) as cursor:
                deleted = cursor.rowcount
        return deleted

    async def cancel_future_pending(self, rule_id: int, now: datetime) -> int:
        """Cancel every pending entry of a rule that starts strictly after ``now``."""
        async with self.transaction():
            async with self.db.execute(
                """UPDATE scheduled_actions
                   SET status = 'cancelled', updated_at = ?
                   WHERE rule_id = ? AND status = 'pending' AND starts_at > ?""",
                (_now(), rule_id, _local_ts(now)),
            ) as cursor:
                cancelled = cursor.rowcount
        return cancelled

    async def mark_expired_as_missed(self, now: datetime) -> tuple[int, int]:
        """Mark overdue pending entries as missed.

        Returns (today_count, earlier_days_count). Today's entries expire once
        their exclusive end instant has passed; an hour-23 entry ends at the
        next midnight and so is never matched on its own day. Anything still
        pending from an earlier date is missed unconditionally.
        """
        today = now.date().isoformat()
        stamp = _now()
        async with self.transaction():
            async with self.db.execute(
                """UPDATE scheduled_actions
                   SET status = 'missed', updated_at = ?
                   WHERE status = 'pending' AND scheduled_date = ? AND ends_at <= ?""",
                (stamp, today, _local_ts(now)),
            ) as cursor:
                today_count = cursor.rowcount
            async with self.db.execute(
                """UPDATE scheduled_actions
                   SET status = 'missed', updated_at = ?
                   WHERE status = 'pending' AND scheduled_date < ?""",
                (stamp, today),
            ) as cursor:
                earlier_count = cursor.rowcount
        return today_count, earlier_count

    async def update_action_status(
        self, action_id: int, status: str, expected_current: list[str] | None = None,
    ) -> bool:
        """Set an entry's status. Returns False if it did not match ``expected_current``."""
        query = """UPDATE scheduled_actions
                   SET status = ?, updated_at = ?,
                       executed_at = CASE WHEN ? = 'executed' THEN ? ELSE executed_at END
                   WHERE id = ?"""
        now = _now()
        params: list[Any] = [status, now, status, now, action_id]
        if expected_current:
            query += f" AND status IN ({', '.join('?' * len(expected_current))})"
            params.extend(expected_current)
        async with self.transaction():
            async with self.db.execute(query, params) as cursor:
                updated = cursor.rowcount > 0
        return updated
