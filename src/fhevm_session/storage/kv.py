"""Namespaced string cache over a pluggable persistence medium."""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageMedium(Protocol):
    async def get_item(self, name: str) -> str | None: ...

    async def set_item(self, name: str, blob: str) -> None: ...

    async def remove_item(self, name: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryStorageMedium:
    """In-memory medium, lives as long as the object."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    async def get_item(self, name: str) -> str | None:
        return self._items.get(name)

    async def set_item(self, name: str, blob: str) -> None:
        self._items[name] = blob

    async def remove_item(self, name: str) -> None:
        self._items.pop(name, None)

    async def clear(self) -> None:
        self._items.clear()


_default_medium = MemoryStorageMedium()


def get_default_medium() -> MemoryStorageMedium:
    """Process-wide medium shared by caches created without one."""
    return _default_medium


# Per event loop, keyed by (medium, namespace)
_namespace_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[tuple[int, str], asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _namespace_lock(medium: StorageMedium, storage_key: str) -> asyncio.Lock:
    locks = _namespace_locks.setdefault(asyncio.get_running_loop(), {})
    key = (id(medium), storage_key)
    if key not in locks:
        locks[key] = asyncio.Lock()
    return locks[key]


class GenericStringStorage:
    """Flat ``str -> str`` mapping stored as one JSON blob under ``storage_key``.

    None of the methods raise. Medium failures and corrupt blobs are logged
    and turned into misses or no-ops.

    Writers sharing a medium and namespace are serialized so concurrent
    sets do not drop each other's entries.
    """

    def __init__(self, storage_key: str, medium: StorageMedium | None = None) -> None:
        self.storage_key = storage_key
        self.medium = medium if medium is not None else _default_medium

    async def _load(self) -> dict[str, str]:
        stored = await self.medium.get_item(self.storage_key)
        if not stored:
            return {}
        parsed = json.loads(stored)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
        return parsed

    async def get(self, key: str) -> str | None:
        try:
            value = (await self._load()).get(key)
        except Exception as e:
            logger.warning(f"Failed to read from storage for key {self.storage_key}: {e}")
            return None
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        try:
            async with _namespace_lock(self.medium, self.storage_key):
                entries = await self._load()
                entries[key] = value
                await self.medium.set_item(self.storage_key, json.dumps(entries))
        except Exception as e:
            logger.warning(f"Failed to write to storage for key {self.storage_key}: {e}")

    async def remove(self, key: str) -> None:
        try:
            async with _namespace_lock(self.medium, self.storage_key):
                entries = await self._load()
                if key not in entries:
                    return
                del entries[key]
                await self.medium.set_item(self.storage_key, json.dumps(entries))
        except Exception as e:
            logger.warning(f"Failed to remove from storage for key {self.storage_key}: {e}")

    async def clear(self) -> None:
        try:
            async with _namespace_lock(self.medium, self.storage_key):
                await self.medium.remove_item(self.storage_key)
        except Exception as e:
            logger.warning(f"Failed to clear storage for key {self.storage_key}: {e}")
