"""Tests for database engine and repository."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import aiosqlite
import pytest

from power_scheduler.db.engine import close_db, get_db, init_db
from power_scheduler.db.models import SCHEMA_VERSION
from power_scheduler.db.repository import Repository
from power_scheduler.scheduling.models import hour_end, hour_start

DAY = date(2026, 3, 2)


async def _insert(repo: Repository, rule_id: int, day: date, hour: int, price: float = 0.1) -> bool:
    return await repo.insert_action(
        rule_id, day, hour, starts_at=hour_start(day, hour), ends_at=hour_end(day, hour),
        price_per_kwh=price,
    )


async def _statuses(repo: Repository, rule_id: int, day: date | None = None) -> dict[int, str]:
    return {a["start_hour"]: a["status"] for a in await repo.list_actions_for_rule(rule_id, day)}


@pytest.mark.asyncio
class TestEngine:
    async def test_schema_version_recorded(self, db: aiosqlite.Connection) -> None:
        async with db.execute("SELECT version FROM schema_version WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        assert row[0] == SCHEMA_VERSION

    async def test_wal_and_foreign_keys(self, db: aiosqlite.Connection) -> None:
        async with db.execute("PRAGMA journal_mode") as cursor:
            assert (await cursor.fetchone())[0] == "wal"
        async with db.execute("PRAGMA foreign_keys") as cursor:
            assert (await cursor.fetchone())[0] == 1

    async def test_reopen_existing_database(self, tmp_path: Path) -> None:
        path = tmp_path / "reopen.db"
        conn = await init_db(path)
        await Repository(conn).create_device("dev-1", "Heater")
        await close_db()

        conn = await init_db(path)
        assert await get_db() is conn
        devices = await Repository(conn).list_devices()
        assert [d["external_id"] for d in devices] == ["dev-1"]
        await close_db()

    async def test_corrupt_file_is_quarantined(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.db"
        path.write_bytes(b"this is not a sqlite database" * 100)

        conn = await init_db(path)
        assert await Repository(conn).list_devices() == []
        assert list(tmp_path.glob("broken.corrupt-*.db"))
        await close_db()

    async def test_get_db_before_init_raises(self) -> None:
        await close_db()
        with pytest.raises(RuntimeError):
            await get_db()


@pytest.mark.asyncio
class TestDevicesAndRules:
    async def test_create_and_get_device(self, repo: Repository) -> None:
        device_id = await repo.create_device("plug-7", "Dishwasher", device_type="appliance", room="Kitchen")
        device = await repo.get_device(device_id)
        assert device is not None
        assert device["external_id"] == "plug-7"
        assert device["room"] == "Kitchen"
        assert device["is_active"] == 1

    async def test_duplicate_external_id_rejected(self, repo: Repository) -> None:
        await repo.create_device("plug-7", "Dishwasher")
        with pytest.raises(aiosqlite.IntegrityError):
            await repo.create_device("plug-7", "Other")

    async def test_create_rule_defaults(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "Boiler cheap hours", max_hours=3)
        rule = await repo.get_rule(rule_id)
        assert rule is not None
        assert rule["min_continuous_hours"] == 1
        assert rule["days_of_week"] == 127
        assert rule["is_enabled"] == 1
        assert rule["device_name"] == "Boiler"

    async def test_max_hours_check_constraint(self, repo: Repository, device_id: int) -> None:
        with pytest.raises(aiosqlite.IntegrityError):
            await repo.create_rule(device_id, "Too many", max_hours=25)

    async def test_list_enabled_excludes_disabled_and_deleted(self, repo: Repository, device_id: int) -> None:
        keep = await repo.create_rule(device_id, "keep", max_hours=2)
        disabled = await repo.create_rule(device_id, "off", max_hours=2, is_enabled=False)
        deleted = await repo.create_rule(device_id, "gone", max_hours=2)
        await repo.soft_delete_rule(deleted)

        enabled = [r["id"] for r in await repo.list_enabled_rules()]
        assert enabled == [keep]
        assert disabled not in enabled
        assert await repo.get_rule(deleted) is None
        assert {r["id"] for r in await repo.list_rules()} == {keep, disabled}

    async def test_update_rule(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await repo.update_rule(rule_id, max_hours=4, time_window_start=22, is_enabled=False)
        rule = await repo.get_rule(rule_id)
        assert rule["max_hours"] == 4
        assert rule["time_window_start"] == 22
        assert rule["is_enabled"] == 0

    async def test_update_rule_unknown_field(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        with pytest.raises(ValueError):
            await repo.update_rule(rule_id, device_id=99)

    async def test_update_device_and_active_filter(self, repo: Repository, device_id: int) -> None:
        other = await repo.create_device("plug-8", "Dryer")
        await repo.update_device(device_id, name="Boiler 2", is_active=False)

        device = await repo.get_device(device_id)
        assert device["name"] == "Boiler 2"
        assert device["is_active"] == 0
        assert [d["id"] for d in await repo.list_devices(active_only=True)] == [other]
        with pytest.raises(ValueError):
            await repo.update_device(device_id, external_id="new")

    async def test_inactive_device_rules_not_enabled(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await repo.update_device(device_id, is_active=False)

        assert await repo.list_enabled_rules() == []
        assert (await repo.get_rule(rule_id))["device_active"] == 0

    async def test_delete_device_removes_deleted_rules(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await _insert(repo, rule_id, DAY, 5)
        await repo.soft_delete_rule(rule_id)
        assert await repo.list_rule_ids_for_device(device_id) == []

        await repo.delete_device(device_id)

        assert await repo.get_device(device_id) is None
        assert await repo.count_actions_for_date(DAY) == 0


@pytest.mark.asyncio
class TestScheduledActions:
    async def test_insert_is_idempotent(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        assert await _insert(repo, rule_id, DAY, 3) is True
        assert await _insert(repo, rule_id, DAY, 3) is False
        assert await repo.count_actions_for_date(DAY) == 1

    async def test_hour_23_ends_next_midnight(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await _insert(repo, rule_id, DAY, 23)
        action = (await repo.list_actions_for_rule(rule_id))[0]
        assert action["end_hour"] == 0
        assert action["starts_at"] == "2026-03-02T23:00:00"
        assert action["ends_at"] == "2026-03-03T00:00:00"

    async def test_list_for_date_joins_rule_and_device(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "Boiler night", max_hours=2)
        await _insert(repo, rule_id, DAY, 4)
        await _insert(repo, rule_id, DAY, 1)

        actions = await repo.list_actions_for_date(DAY)
        assert [a["start_hour"] for a in actions] == [1, 4]
        assert actions[0]["rule_name"] == "Boiler night"
        assert actions[0]["device_external_id"] == "shelly-boiler-01"

    async def test_delete_future_pending_keeps_started_hours(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=4)
        for hour in (8, 10, 11, 14):
            await _insert(repo, rule_id, DAY, hour)
        await repo.update_action_status(
            (await repo.list_actions_for_rule(rule_id))[3]["id"], "executed",
        )

        deleted = await repo.delete_future_pending(rule_id, DAY, datetime(2026, 3, 2, 10, 0))
        # 08:00 is over, 10:00 starts exactly now, 14:00 is no longer pending
        assert deleted == 1
        assert sorted(await _statuses(repo, rule_id)) == [8, 10, 14]

    async def test_cancel_future_pending(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=4)
        await _insert(repo, rule_id, DAY, 9)
        await _insert(repo, rule_id, DAY, 15)
        await _insert(repo, rule_id, date(2026, 3, 3), 2)

        cancelled = await repo.cancel_future_pending(rule_id, datetime(2026, 3, 2, 10, 30))
        assert cancelled == 2
        assert await _statuses(repo, rule_id, DAY) == {9: "pending", 15: "cancelled"}

    async def test_mark_expired_same_day(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=4)
        for hour in (8, 9, 10, 23):
            await _insert(repo, rule_id, DAY, hour)

        today_count, earlier = await repo.mark_expired_as_missed(datetime(2026, 3, 2, 10, 0))
        assert (today_count, earlier) == (2, 0)
        assert await _statuses(repo, rule_id) == {8: "missed", 9: "missed", 10: "pending", 23: "pending"}

    async def test_hour_23_not_missed_on_its_own_day(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=1)
        await _insert(repo, rule_id, DAY, 23)

        assert await repo.mark_expired_as_missed(datetime(2026, 3, 2, 23, 59, 59)) == (0, 0)
        assert await repo.mark_expired_as_missed(datetime(2026, 3, 3, 0, 0, 5)) == (0, 1)
        assert await _statuses(repo, rule_id) == {23: "missed"}

    async def test_mark_expired_earlier_days(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await _insert(repo, rule_id, date(2026, 2, 27), 14)
        await _insert(repo, rule_id, date(2026, 3, 1), 3)

        assert await repo.mark_expired_as_missed(datetime(2026, 3, 2, 0, 30)) == (0, 2)

    async def test_update_status_with_expected_current(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        await _insert(repo, rule_id, DAY, 5)
        action_id = (await repo.list_actions_for_rule(rule_id))[0]["id"]

        assert await repo.update_action_status(action_id, "executed", expected_current=["pending"])
        action = await repo.get_action(action_id)
        assert action["status"] == "executed"
        assert action["executed_at"] is not None

        assert not await repo.update_action_status(action_id, "failed", expected_current=["pending"])
        assert (await repo.get_action(action_id))["status"] == "executed"

    async def test_transaction_rolls_back_on_error(self, repo: Repository, device_id: int) -> None:
        rule_id = await repo.create_rule(device_id, "r", max_hours=2)
        with pytest.raises(RuntimeError):
            async with repo.transaction():
                await _insert(repo, rule_id, DAY, 5)
                raise RuntimeError("boom")
        assert await repo.count_actions_for_date(DAY) == 0

    async def test_deleting_device_with_rules_is_refused(self, repo: Repository, device_id: int) -> None:
        await repo.create_rule(device_id, "r", max_hours=2)
        with pytest.raises(aiosqlite.IntegrityError):
            async with repo.transaction():
                await repo.db.execute("DELETE FROM devices WHERE id = ?", (device_id,))
