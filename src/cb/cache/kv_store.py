"""
Key/value store adapter over a single SQLite database.

KVStore owns one aiosqlite connection to ``{CACHE_DIR}/{CACHE_DB_NAME}.db``.
Each StoreName is a table of ``key TEXT PRIMARY KEY, value TEXT NOT NULL``
holding orjson-encoded values. Tables are created once, when the file is
new, and the schema version (PRAGMA user_version) is fixed at 1.

The connection runs in autocommit mode: every put/delete is a single
statement, so a write is either fully visible or not at all, and two
racing writes to one key leave whichever committed last.

The module also keeps the process-wide shared handle and the best-effort
functions kv_get / kv_set / kv_delete that the caches are built on. Those
functions never raise: failures are logged and counted, and the caller
gets None or nothing back.
"""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
import orjson

from cb.cache.base import CacheBackend
from cb.config import get_settings, load_settings
from cb.exceptions import ConfigurationError, StorageUnavailableError, ValidationError
from cb.logging import get_logger, log_context
from cb.observability.cache_stats import get_cache_stats
from cb.types import CacheEntry, StoreName, coerce_store, validate_key

logger = get_logger(__name__)

SCHEMA_VERSION = 1


class KVStore(CacheBackend):
    """SQLite-backed key/value store partitioned by StoreName.

    The connection is opened lazily by the first operation. Concurrent
    first callers share a single open attempt.
    """

    def __init__(self, db_path: str | Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None
        self._open_lock: asyncio.Lock | None = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> None:
        """Open the database, creating the stores on first use.

        Raises:
            StorageUnavailableError: If the database cannot be opened or has
                an unexpected schema version.
        """
        if self._db is not None:
            return
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()

        async with self._open_lock:
            if self._db is not None:
                return

            db: aiosqlite.Connection | None = None
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                db = await aiosqlite.connect(self.db_path, isolation_level=None)
                await db.execute("PRAGMA journal_mode=WAL")

                async with db.execute("PRAGMA user_version") as cursor:
                    row = await cursor.fetchone()
                version = row[0] if row else 0

                if version == 0:
                    await self._create_stores(db)
                elif version != SCHEMA_VERSION:
                    raise StorageUnavailableError(
                        "Cache database has an unsupported schema version",
                        context={
                            "db_path": str(self.db_path),
                            "found": version,
                            "expected": SCHEMA_VERSION,
                        },
                    )
            except BaseException as e:
                if db is not None:
                    await db.close()
                if isinstance(e, (sqlite3.Error, OSError)):
                    raise StorageUnavailableError(
                        f"Failed to open cache database: {e}",
                        context={"db_path": str(self.db_path), "operation": "open"},
                    ) from e
                raise

            self._db = db
            logger.debug("Cache database opened", db_path=str(self.db_path))

    async def _create_stores(self, db: aiosqlite.Connection) -> None:
        await db.execute("BEGIN")
        for store in StoreName:
            await db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {store.table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
        await db.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        await db.execute("COMMIT")
        logger.info("Cache stores created", db_path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def _connection(self) -> aiosqlite.Connection:
        await self.open()
        assert self._db is not None
        return self._db

    async def get(self, store: StoreName | str, key: str) -> Any | None:
        """Retrieve a value by key.

        Returns:
            The decoded value, or None if the key was never written or was
            deleted.

        Raises:
            ValidationError: If the store or key is invalid.
            StorageUnavailableError: If the database cannot be read.
        """
        name = coerce_store(store)
        validate_key(key)
        db = await self._connection()

        try:
            async with db.execute(
                f"SELECT value FROM {name.table} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except (sqlite3.Error, ValueError) as e:
            raise StorageUnavailableError(
                f"Failed to read from store: {e}",
                context={"store": name.value, "key": key, "operation": "get"},
            ) from e

        if row is None:
            return None

        try:
            return orjson.loads(row[0])
        except orjson.JSONDecodeError as e:
            raise StorageUnavailableError(
                "Stored value is not valid JSON",
                context={"store": name.value, "key": key, "operation": "get"},
            ) from e

    async def entry(self, store: StoreName | str, key: str) -> CacheEntry | None:
        """Retrieve a key together with its store as a CacheEntry."""
        name = coerce_store(store)
        value = await self.get(name, key)
        if value is None:
            return None
        return CacheEntry(store=name, key=key, value=value)

    async def put(self, store: StoreName | str, key: str, value: Any) -> None:
        """Write a value under key, replacing any existing entry.

        Returns once SQLite has committed the write.

        Raises:
            ValidationError: If the store, key or value is invalid.
            StorageUnavailableError: If the write fails.
        """
        name = coerce_store(store)
        validate_key(key)

        try:
            payload = orjson.dumps(value).decode("utf-8")
        except orjson.JSONEncodeError as e:
            raise ValidationError(
                f"Value is not JSON-serializable: {e}",
                context={"field": "value", "store": name.value, "key": key},
            ) from e

        db = await self._connection()
        try:
            await db.execute(
                f"""
                INSERT INTO {name.table} (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, payload),
            )
        except (sqlite3.Error, ValueError) as e:
            raise StorageUnavailableError(
                f"Failed to write to store: {e}",
                context={"store": name.value, "key": key, "operation": "put"},
            ) from e

    async def delete(self, store: StoreName | str, key: str) -> None:
        """Remove an entry. Deleting an absent key is a no-op.

        Raises:
            ValidationError: If the store or key is invalid.
            StorageUnavailableError: If the delete fails.
        """
        name = coerce_store(store)
        validate_key(key)
        db = await self._connection()

        try:
            await db.execute(f"DELETE FROM {name.table} WHERE key = ?", (key,))
        except (sqlite3.Error, ValueError) as e:
            raise StorageUnavailableError(
                f"Failed to delete from store: {e}",
                context={"store": name.value, "key": key, "operation": "delete"},
            ) from e

    async def exists(self, store: StoreName | str, key: str) -> bool:
        name = coerce_store(store)
        validate_key(key)
        db = await self._connection()

        try:
            async with db.execute(
                f"SELECT 1 FROM {name.table} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except (sqlite3.Error, ValueError) as e:
            raise StorageUnavailableError(
                f"Failed to read from store: {e}",
                context={"store": name.value, "key": key, "operation": "exists"},
            ) from e
        return row is not None

    async def keys(self, store: StoreName | str) -> list[str]:
        """List all keys in a store, sorted."""
        name = coerce_store(store)
        db = await self._connection()

        try:
            async with db.execute(f"SELECT key FROM {name.table} ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        except (sqlite3.Error, ValueError) as e:
            raise StorageUnavailableError(
                f"Failed to list store: {e}",
                context={"store": name.value, "operation": "keys"},
            ) from e
        return [row[0] for row in rows]


def cache_enabled() -> bool:
    """Whether caching is switched on. Invalid configuration counts as off."""
    try:
        return load_settings().CACHE_ENABLED
    except ConfigurationError as e:
        logger.error("Invalid cache configuration, caching disabled", error=str(e))
        return False


# Process-wide shared handle. Only the functions below touch it.
_shared_store: KVStore | None = None
_opening: asyncio.Future[KVStore] | None = None


async def _open_shared_store() -> KVStore:
    global _shared_store
    store = KVStore(get_settings().db_path)
    await store.open()
    _shared_store = store
    return store


async def get_store() -> KVStore:
    """Get the shared KVStore, opening it on first use.

    Concurrent first callers await the same open. A failed open is not
    remembered, so the next call tries again.

    Raises:
        StorageUnavailableError: If the database cannot be opened.
    """
    global _opening
    if _shared_store is not None:
        return _shared_store

    if _opening is None:
        _opening = asyncio.ensure_future(_open_shared_store())
    opening = _opening

    try:
        return await asyncio.shield(opening)
    except Exception:
        if _opening is opening:
            _opening = None
        raise


async def close_store() -> None:
    """Close and forget the shared KVStore."""
    global _shared_store, _opening
    store = _shared_store
    _shared_store = None
    _opening = None
    if store is not None:
        await store.close()


def _store_label(store: StoreName | str) -> str:
    return store.value if isinstance(store, StoreName) else str(store)


def _record(store: StoreName | str, counter: str) -> None:
    try:
        name = coerce_store(store)
    except ValidationError:
        return
    get_cache_stats().record(name, counter)


async def kv_get(store: StoreName | str, key: str) -> Any | None:
    """Best-effort read from the shared store.

    Returns:
        The stored value, or None on a miss, on any failure, or when the
        cache is disabled.
    """
    if not cache_enabled():
        return None

    with log_context(store=_store_label(store)):
        try:
            db = await get_store()
            value = await db.get(store, key)
        except Exception as e:
            _record(store, "errors")
            logger.error(
                "Cache get failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        _record(store, "hits" if value is not None else "misses")
        return value


async def kv_set(store: StoreName | str, key: str, value: Any) -> None:
    """Best-effort write to the shared store. Failures are logged, not raised."""
    if not cache_enabled():
        return

    with log_context(store=_store_label(store)):
        try:
            db = await get_store()
            await db.put(store, key, value)
        except Exception as e:
            _record(store, "errors")
            logger.error(
                "Cache set failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        _record(store, "writes")
        logger.debug("Cache entry written", key=key)


async def kv_delete(store: StoreName | str, key: str) -> None:
    """Best-effort delete from the shared store. Failures are logged, not raised."""
    if not cache_enabled():
        return

    with log_context(store=_store_label(store)):
        try:
            db = await get_store()
            await db.delete(store, key)
        except Exception as e:
            _record(store, "errors")
            logger.error(
                "Cache delete failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        _record(store, "deletes")
