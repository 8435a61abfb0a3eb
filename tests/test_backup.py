"""
Tests for the backup codec.

Restore is destructive, so most of these check that a bad file leaves
the store exactly as it was.
"""

import json
from datetime import date

import pytest
import pytest_asyncio

from helpers import make_day_off, make_log
from ildang.backup import BackupCodec, InvalidFormatError, backup_file_name
from ildang.services.storage import (
    Collection,
    SQLiteRecordStore,
    SQLiteTransaction,
    StorageError,
)


def content(logs):
    """Logs without store-assigned keys, for comparing across restores."""
    return sorted(
        (log.date, log.location, log.amount, log.is_paid, log.is_day_off, log.memo, log.created_at)
        for log in logs
    )


@pytest.fixture
def codec(store):
    return BackupCodec(store)


@pytest_asyncio.fixture
async def seeded(store):
    await store.bulk_add(Collection.LOGS, [
        make_log("2024-06-01", location="당진 공장", amount=150000, is_paid=True),
        make_log("2024-06-02", location="당진 공장", amount=150000, memo="야간"),
        make_day_off("2024-06-03"),
    ])
    await store.update(Collection.SETTINGS, 1, {
        "user_name": "김철수",
        "bank_name": "국민은행",
        "bank_account": "123-456",
    })
    return store


def valid_backup(**overrides):
    data = {
        "version": 1,
        "timestamp": "2024-06-30T12:00:00Z",
        "logs": [
            {"id": 100, "date": "2024-07-01", "location": "B", "amount": 120000,
             "isPaid": False, "createdAt": 1719792000000},
            {"id": 200, "date": "2024-07-02", "location": "B", "amount": 120000,
             "isPaid": True, "createdAt": 1719878400000},
        ],
        "settings": {"id": 1, "userName": "박영희", "bankName": "", "bankAccount": "",
                     "accountHolder": ""},
    }
    data.update(overrides)
    return data


async def assert_unchanged(store, logs_before, settings_before):
    assert content(await store.to_list(Collection.LOGS)) == content(logs_before)
    assert await store.first(Collection.SETTINGS) == settings_before


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_contains_everything(self, codec, seeded):
        snapshot = await codec.snapshot()

        assert snapshot.version == 1
        assert len(snapshot.logs) == 3
        assert snapshot.settings.user_name == "김철수"
        assert snapshot.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_dumps_uses_camel_case(self, codec, seeded):
        data = json.loads(codec.dumps(await codec.snapshot()))

        assert data["version"] == 1
        assert set(data) == {"version", "timestamp", "logs", "settings"}
        assert data["logs"][0]["isPaid"] is True
        assert "createdAt" in data["logs"][0]
        assert data["logs"][0]["date"] == "2024-06-01"
        assert data["settings"]["userName"] == "김철수"
        assert "bankAccount" in data["settings"]

    @pytest.mark.asyncio
    async def test_dumps_keeps_korean_text(self, codec, seeded):
        assert "당진 공장" in codec.dumps(await codec.snapshot())

    def test_backup_file_name(self):
        assert backup_file_name("ildang_backup", date(2024, 6, 30)) == "ildang_backup_2024-06-30.json"


class TestRestore:

    @pytest.mark.asyncio
    async def test_round_trip(self, codec, seeded):
        """Test that export then restore reproduces the same content."""
        logs_before = await seeded.to_list(Collection.LOGS)
        settings_before = await seeded.first(Collection.SETTINGS)
        text = codec.dumps(await codec.snapshot())

        await seeded.add(Collection.LOGS, make_log("2024-08-01"))
        count = await codec.restore(text)

        assert count == 3
        assert content(await seeded.to_list(Collection.LOGS)) == content(logs_before)
        restored_settings = await seeded.first(Collection.SETTINGS)
        assert restored_settings.model_dump(exclude={"id"}) == settings_before.model_dump(exclude={"id"})

    @pytest.mark.asyncio
    async def test_restore_into_fresh_store(self, codec, seeded):
        text = codec.dumps(await codec.snapshot())

        other = SQLiteRecordStore("sqlite://")
        await other.initialize()
        try:
            assert await BackupCodec(other).restore(text) == 3
            assert await other.count(Collection.LOGS) == 3
            assert await other.count(Collection.SETTINGS) == 1
        finally:
            other.dispose()

    @pytest.mark.asyncio
    async def test_restore_assigns_fresh_keys(self, codec, store):
        await codec.restore(valid_backup())
        keys = {log.id for log in await store.to_list(Collection.LOGS)}

        assert len(keys) == 2
        assert keys.isdisjoint({100, 200})

    @pytest.mark.asyncio
    async def test_restore_keeps_creation_times(self, codec, store):
        await codec.restore(valid_backup())
        latest = await store.first(Collection.LOGS, order_by="created_at", reverse=True)
        assert latest.created_at == 1719878400000
        assert latest.is_paid is True

    @pytest.mark.asyncio
    async def test_restore_from_bytes(self, codec, store):
        count = await codec.restore(json.dumps(valid_backup()).encode("utf-8"))
        assert count == 2

    @pytest.mark.asyncio
    async def test_empty_logs_are_allowed(self, codec, seeded):
        assert await codec.restore(valid_backup(logs=[])) == 0
        assert await seeded.count(Collection.LOGS) == 0
        assert (await seeded.first(Collection.SETTINGS)).user_name == "박영희"

    @pytest.mark.asyncio
    async def test_logs_without_day_off_flag(self, codec, store):
        """Test that older backups without isDayOff restore as work days."""
        data = valid_backup()
        assert "isDayOff" not in data["logs"][0]
        await codec.restore(data)
        assert all(not log.is_day_off for log in await store.to_list(Collection.LOGS))


class TestRejectedRestore:
    """A rejected backup must leave the store untouched."""

    @pytest.mark.parametrize("data", [
        {key: value for key, value in valid_backup().items() if key != "logs"},
        {key: value for key, value in valid_backup().items() if key != "settings"},
        valid_backup(logs=None),
        valid_backup(version=2),
        {key: value for key, value in valid_backup().items() if key != "version"},
        valid_backup(logs=[{"date": "2024-07-01", "location": "B", "amount": -5}]),
        valid_backup(logs=[{"date": "not a date", "location": "B", "amount": 5}]),
        valid_backup(logs="nope"),
        [1, 2, 3],
    ], ids=[
        "missing-logs",
        "missing-settings",
        "null-logs",
        "unknown-version",
        "missing-version",
        "negative-amount",
        "bad-date",
        "logs-not-a-list",
        "not-an-object",
    ])
    @pytest.mark.asyncio
    async def test_invalid_backup_is_rejected(self, codec, seeded, data):
        logs_before = await seeded.to_list(Collection.LOGS)
        settings_before = await seeded.first(Collection.SETTINGS)

        with pytest.raises(InvalidFormatError):
            await codec.restore(data)

        await assert_unchanged(seeded, logs_before, settings_before)

    @pytest.mark.asyncio
    async def test_invalid_json(self, codec, seeded):
        logs_before = await seeded.to_list(Collection.LOGS)
        settings_before = await seeded.first(Collection.SETTINGS)

        with pytest.raises(InvalidFormatError):
            await codec.restore("{not json")

        await assert_unchanged(seeded, logs_before, settings_before)

    @pytest.mark.asyncio
    async def test_failure_during_restore_rolls_back(self, codec, seeded, monkeypatch):
        """Test that a storage failure after the clear leaves the old data in place."""
        logs_before = await seeded.to_list(Collection.LOGS)
        settings_before = await seeded.first(Collection.SETTINGS)

        original_add = SQLiteTransaction.add

        async def failing_add(self, collection, entity):
            if collection == Collection.SETTINGS:
                raise StorageError("disk full")
            return await original_add(self, collection, entity)

        monkeypatch.setattr(SQLiteTransaction, "add", failing_add)

        with pytest.raises(StorageError):
            await codec.restore(valid_backup())

        await assert_unchanged(seeded, logs_before, settings_before)

    @pytest.mark.asyncio
    async def test_parse_does_not_touch_store(self, codec, store):
        snapshot = codec.parse(valid_backup())
        assert len(snapshot.logs) == 2
        assert snapshot.settings.user_name == "박영희"
        assert await store.count(Collection.LOGS) == 0
