"""
Tests for the key/value store adapter.
"""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
import pytest

from cb.cache.kv_store import SCHEMA_VERSION, KVStore
from cb.exceptions import StorageUnavailableError, ValidationError
from cb.types import CacheEntry, StoreName


class TestKVStoreBasics:
    """Test basic get/put/delete operations."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, kv_store: KVStore) -> None:
        """Test that a stored value reads back deep-equal."""
        value = {
            "Triggers": {"Questions": [{"id": "q1", "title": "Account trigger"}]},
            "count": 3,
            "ratio": 0.5,
            "tags": ["apex", "soql"],
            "premium": False,
        }
        await kv_store.put(StoreName.KEYVAL, "apexProblemsData", value)

        assert await kv_store.get(StoreName.KEYVAL, "apexProblemsData") == value

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, kv_store: KVStore) -> None:
        assert await kv_store.get(StoreName.KEYVAL, "never-written") is None

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value(self, kv_store: KVStore) -> None:
        await kv_store.put(StoreName.KEYVAL, "k", {"version": 1})
        await kv_store.put(StoreName.KEYVAL, "k", {"version": 2})

        assert await kv_store.get(StoreName.KEYVAL, "k") == {"version": 2}
        assert await kv_store.keys(StoreName.KEYVAL) == ["k"]

    @pytest.mark.asyncio
    async def test_delete_removes_entry(self, kv_store: KVStore) -> None:
        await kv_store.put(StoreName.KEYVAL, "k", "v")
        await kv_store.delete(StoreName.KEYVAL, "k")

        assert await kv_store.get(StoreName.KEYVAL, "k") is None
        assert not await kv_store.exists(StoreName.KEYVAL, "k")

    @pytest.mark.asyncio
    async def test_delete_absent_key_is_noop(self, kv_store: KVStore) -> None:
        await kv_store.delete(StoreName.IMAGE_CACHE, "https://example.com/none.png")

    @pytest.mark.asyncio
    async def test_stores_are_independent(self, kv_store: KVStore) -> None:
        """Test that the same key in two stores holds two values."""
        await kv_store.put(StoreName.KEYVAL, "shared", "object")
        await kv_store.put(StoreName.IMAGE_CACHE, "shared", "image")

        assert await kv_store.get(StoreName.KEYVAL, "shared") == "object"
        assert await kv_store.get(StoreName.IMAGE_CACHE, "shared") == "image"

        await kv_store.delete(StoreName.KEYVAL, "shared")
        assert await kv_store.get(StoreName.IMAGE_CACHE, "shared") == "image"

    @pytest.mark.asyncio
    async def test_store_accepts_member_value_string(self, kv_store: KVStore) -> None:
        await kv_store.put("imageCache", "u", "data:image/png;base64,AA==")
        assert await kv_store.get(StoreName.IMAGE_CACHE, "u") == "data:image/png;base64,AA=="

    @pytest.mark.asyncio
    async def test_entry_and_keys(self, kv_store: KVStore) -> None:
        await kv_store.put(StoreName.KEYVAL, "b", 2)
        await kv_store.put(StoreName.KEYVAL, "a", 1)

        assert await kv_store.keys(StoreName.KEYVAL) == ["a", "b"]
        assert await kv_store.entry(StoreName.KEYVAL, "a") == CacheEntry(
            store=StoreName.KEYVAL, key="a", value=1
        )
        assert await kv_store.entry(StoreName.KEYVAL, "missing") is None


class TestKVStoreValidation:
    """Test rejection of bad stores, keys and values."""

    @pytest.mark.asyncio
    async def test_unknown_store_rejected(self, kv_store: KVStore) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await kv_store.get("keyvals", "k")
        assert exc_info.value.context["field"] == "store"

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, kv_store: KVStore) -> None:
        with pytest.raises(ValidationError):
            await kv_store.put(StoreName.KEYVAL, "", "v")

    @pytest.mark.asyncio
    async def test_non_string_key_rejected(self, kv_store: KVStore) -> None:
        with pytest.raises(ValidationError):
            await kv_store.get(StoreName.KEYVAL, 42)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_unserializable_value_rejected(self, kv_store: KVStore) -> None:
        with pytest.raises(ValidationError):
            await kv_store.put(StoreName.KEYVAL, "k", object())

        assert await kv_store.get(StoreName.KEYVAL, "k") is None


class TestKVStoreOpen:
    """Test connection setup and schema handling."""

    @pytest.mark.asyncio
    async def test_first_open_creates_schema(self, temp_dir: Path) -> None:
        db_path = temp_dir / "nested" / "dir" / "cache.db"
        store = KVStore(db_path)
        await store.open()
        await store.close()

        conn = sqlite3.connect(db_path)
        try:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        finally:
            conn.close()

        assert version == SCHEMA_VERSION
        assert tables == {"keyval", "imageCache"}

    @pytest.mark.asyncio
    async def test_concurrent_open_shares_one_connection(self, temp_dir: Path) -> None:
        store = KVStore(temp_dir / "cache.db")
        await asyncio.gather(*(store.open() for _ in range(5)))
        first = store._db

        await store.open()
        assert store.is_open
        assert store._db is first
        await store.close()

    @pytest.mark.asyncio
    async def test_operations_open_lazily(self, temp_dir: Path) -> None:
        store = KVStore(temp_dir / "lazy.db")
        assert not store.is_open

        await store.put(StoreName.KEYVAL, "k", "v")
        assert store.is_open
        await store.close()

    @pytest.mark.asyncio
    async def test_values_survive_reopen(self, temp_dir: Path) -> None:
        db_path = temp_dir / "persist.db"
        store = KVStore(db_path)
        await store.put(StoreName.KEYVAL, "k", {"kept": True})
        await store.close()

        reopened = KVStore(db_path)
        assert await reopened.get(StoreName.KEYVAL, "k") == {"kept": True}
        await reopened.close()

    @pytest.mark.asyncio
    async def test_unsupported_schema_version(self, temp_dir: Path) -> None:
        db_path = temp_dir / "future.db"
        conn = sqlite3.connect(db_path)
        conn.execute("PRAGMA user_version = 7")
        conn.commit()
        conn.close()

        store = KVStore(db_path)
        with pytest.raises(StorageUnavailableError) as exc_info:
            await store.open()

        assert exc_info.value.context["found"] == 7
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_unwritable_location(self, temp_dir: Path) -> None:
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")

        store = KVStore(blocker / "cache.db")
        with pytest.raises(StorageUnavailableError):
            await store.open()

    @pytest.mark.asyncio
    async def test_cancelled_open_closes_connection(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        captured: dict[str, Any] = {}

        async def cancelled(self: KVStore, db: aiosqlite.Connection) -> None:
            captured["db"] = db
            raise asyncio.CancelledError()

        monkeypatch.setattr(KVStore, "_create_stores", cancelled)
        store = KVStore(temp_dir / "cancelled.db")

        with pytest.raises(asyncio.CancelledError):
            await store.open()

        assert not store.is_open
        with pytest.raises(ValueError):
            await captured["db"].execute("SELECT 1")

        monkeypatch.undo()
        await store.put(StoreName.KEYVAL, "k", "v")
        assert await store.get(StoreName.KEYVAL, "k") == "v"
        await store.close()


class TestKVStoreConcurrency:
    """Test concurrent writers to the same key."""

    @pytest.mark.asyncio
    async def test_racing_writes_leave_one_value(self, kv_store: KVStore) -> None:
        a = {"writer": "A", "items": list(range(50))}
        b = {"writer": "B", "items": list(range(50, 100))}

        await asyncio.gather(
            kv_store.put(StoreName.KEYVAL, "X", a),
            kv_store.put(StoreName.KEYVAL, "X", b),
        )

        assert await kv_store.get(StoreName.KEYVAL, "X") in (a, b)
