"""
Per-build storage of job snapshots.
"""

import asyncio
import copy
import weakref
from typing import Any, Iterable, Protocol

from checkrelay.core.logging import get_logger
from checkrelay.models.jobs import JobRecord

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Get/set persistence consumed by BuildMemory."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any | None) -> None: ...


class InMemoryKeyValueStore:
    """Process-local key-value store. Setting None removes the key."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = copy.deepcopy(value)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class BuildMemory:
    """
    One current job snapshot per build id.

    Read-modify-write operations on the same build id are serialized by a
    per-key lock; different build ids never wait on each other.
    """

    def __init__(self, store: KeyValueStore | None = None, scope: str = "checks"):
        self._store = store if store is not None else InMemoryKeyValueStore()
        self._scope = scope
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _key(self, build_id: str) -> str:
        return f"{self._scope}:{build_id}"

    def _lock(self, build_id: str) -> asyncio.Lock:
        lock = self._locks.get(build_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[build_id] = lock
        return lock

    @staticmethod
    def _load(raw: Any | None) -> list[JobRecord]:
        return [JobRecord.from_dict(item) for item in raw or []]

    @staticmethod
    def _dump(records: Iterable[JobRecord]) -> list[dict[str, Any]]:
        return [record.to_dict() for record in records]

    async def get(self, build_id: str) -> list[JobRecord]:
        """Return the current snapshot, empty if none is stored."""
        return self._load(await self._store.get(self._key(build_id)))

    async def replace(self, build_id: str, records: Iterable[JobRecord]) -> list[JobRecord]:
        """
        Store a new snapshot for a build.

        Returns:
            The snapshot it replaced, empty if none existed
        """
        async with self._lock(build_id):
            key = self._key(build_id)
            raw = await self._store.get(key)
            if raw is None:
                logger.debug(f"Creating new memory for build {build_id}")
            else:
                logger.debug(f"Updating existing memory for build {build_id}")
            await self._store.set(key, self._dump(records))
            return self._load(raw)

    async def update(self, build_id: str, records: Iterable[JobRecord]) -> None:
        """Merge records into the stored snapshot by job id."""
        async with self._lock(build_id):
            key = self._key(build_id)
            raw = await self._store.get(key)
            if raw is None:
                logger.info(f"Cannot update jobs, no memory of build {build_id}")
                return

            stored = self._load(raw)
            index = {record.job_id: i for i, record in enumerate(stored)}
            for record in records:
                if record.job_id in index:
                    stored[index[record.job_id]] = record
                else:
                    index[record.job_id] = len(stored)
                    stored.append(record)
            await self._store.set(key, self._dump(stored))

    async def delete(self, build_id: str) -> None:
        """Forget a build's snapshot."""
        async with self._lock(build_id):
            await self._store.set(self._key(build_id), None)
