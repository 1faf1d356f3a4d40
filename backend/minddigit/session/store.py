"""Key-value storage for rooms and players.

Rooms and players are stored as JSON-compatible dicts under namespaced keys
with a TTL refreshed on every write. Two backends implement KeyValueStore:

- InMemoryKeyValueStore: process-local, lost on restart.
- RedisKeyValueStore: remote cache shared across processes.

TieredGameStore composes an optional primary backend with an in-memory
snapshot cache. Every primary call is bounded by a timeout; a timeout or
backend failure is logged and served from the cache instead, so callers
see stale or recovered state rather than an exception.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import time
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from minddigit.logic.state import Player, Room

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()

KEY_PREFIX = "minddigit"
ROOM_KEY_PREFIX = f"{KEY_PREFIX}:room:"
PLAYER_KEY_PREFIX = f"{KEY_PREFIX}:player:"

DEFAULT_ROOM_TTL_SECONDS = 3600  # 1 hour of inactivity
DEFAULT_PLAYER_TTL_SECONDS = 1800  # 30 minutes
DEFAULT_STORE_TIMEOUT_SECONDS = 3.0
CLEANUP_INTERVAL_SECONDS = 300  # 5 minutes


class StoreError(Exception):
    """A storage backend failed to complete an operation."""


class KeyValueStore(Protocol):
    """Protocol for TTL-based storage of JSON-compatible records."""

    name: str

    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, prefix: str) -> list[str]: ...

    async def close(self) -> None: ...


class InMemoryKeyValueStore:
    """In-process store with per-key expiry.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store. Expired keys are dropped lazily on access
    and by cleanup_expired(); call start_cleanup() on app startup and
    stop_cleanup() on shutdown.
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}  # key -> (expires_at, value)
        self._cleanup_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def get_now(self, key: str) -> dict[str, Any] | None:
        """Synchronous lookup, used by the tiered store's fallback path."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    def set_now(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, copy.deepcopy(value))

    def keys_now(self, prefix: str) -> list[str]:
        now = self._clock()
        return [key for key, (expires_at, _) in self._entries.items() if key.startswith(prefix) and now < expires_at]

    async def get(self, key: str) -> dict[str, Any] | None:
        return self.get_now(key)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self.set_now(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        return self.keys_now(prefix)

    async def close(self) -> None:
        await self.stop_cleanup()

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Return count of removed entries."""
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("cleaned up expired entries", count=len(expired), remaining=len(self._entries))
        return len(expired)

    def start_cleanup(self) -> None:
        """Start the periodic cleanup background task."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        """Stop the periodic cleanup background task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:  # pragma: no cover
        """Periodically remove expired entries."""
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            self.cleanup_expired()


class RedisKeyValueStore:
    """Redis-backed store. Values are JSON strings with a native EX expiry."""

    name = "redis"

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str, timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS) -> RedisKeyValueStore:
        redis = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(redis)

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            raise StoreError(f"redis get failed for {key}") from e
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreError(f"corrupt JSON stored under {key}") from e
        if not isinstance(value, dict):
            raise StoreError(f"unexpected value type stored under {key}")
        return value

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            raise StoreError(f"redis set failed for {key}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise StoreError(f"redis delete failed for {key}") from e

    async def keys(self, prefix: str) -> list[str]:
        try:
            return [key async for key in self._redis.scan_iter(match=f"{prefix}*")]
        except RedisError as e:
            raise StoreError(f"redis scan failed for {prefix}") from e

    async def close(self) -> None:
        await self._redis.aclose()


def room_key(room_id: str) -> str:
    return f"{ROOM_KEY_PREFIX}{room_id}"


def player_key(player_id: str) -> str:
    return f"{PLAYER_KEY_PREFIX}{player_id}"


class TieredGameStore:
    """Room Store and Player Store behind one interface.

    Lookup order is primary store, then the in-memory snapshot cache. Writes
    go to the cache first and then to the primary. Primary failures never
    propagate. Fabricating a room that neither tier knows about is the
    lifecycle manager's job (recovery-on-read), not the store's.
    """

    def __init__(
        self,
        primary: KeyValueStore | None = None,
        *,
        cache: InMemoryKeyValueStore | None = None,
        room_ttl_seconds: int = DEFAULT_ROOM_TTL_SECONDS,
        player_ttl_seconds: int = DEFAULT_PLAYER_TTL_SECONDS,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        self._primary = primary
        self._cache = cache if cache is not None else InMemoryKeyValueStore()
        self._room_ttl_seconds = room_ttl_seconds
        self._player_ttl_seconds = player_ttl_seconds
        self._timeout_seconds = timeout_seconds

    @property
    def backend_name(self) -> str:
        return self._primary.name if self._primary is not None else self._cache.name

    @property
    def cache(self) -> InMemoryKeyValueStore:
        return self._cache

    async def _call_primary(self, operation: str, key: str, awaitable: Awaitable[Any]) -> tuple[bool, Any]:
        """Run a primary-store call with a timeout. Return (ok, result)."""
        try:
            return True, await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)
        except TimeoutError:
            logger.warning("store call timed out", operation=operation, key=key, timeout=self._timeout_seconds)
        except StoreError as e:
            logger.warning("store call failed", operation=operation, key=key, error=str(e))
        return False, None

    async def _get(self, key: str) -> dict[str, Any] | None:
        if self._primary is not None:
            ok, value = await self._call_primary("get", key, self._primary.get(key))
            if ok and value is not None:
                return value
        return self._cache.get_now(key)

    async def _set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._cache.set_now(key, value, ttl_seconds)
        if self._primary is not None:
            await self._call_primary("set", key, self._primary.set(key, value, ttl_seconds))

    async def get_room(self, room_id: str) -> Room | None:
        key = room_key(room_id)
        data = await self._get(key)
        if data is None:
            return None
        try:
            room = Room.model_validate(data)
        except ValidationError:
            logger.warning("discarding unreadable room record", room_id=room_id)
            return None
        self._cache.set_now(key, data, self._room_ttl_seconds)
        return room

    async def set_room(self, room: Room) -> None:
        await self._set(room_key(room.id), room.model_dump(mode="json"), self._room_ttl_seconds)

    async def delete_room(self, room_id: str) -> None:
        key = room_key(room_id)
        await self._cache.delete(key)
        if self._primary is not None:
            await self._call_primary("delete", key, self._primary.delete(key))

    async def room_ids(self) -> list[str]:
        """Return ids of every room either tier still holds."""
        keys = set(self._cache.keys_now(ROOM_KEY_PREFIX))
        if self._primary is not None:
            ok, primary_keys = await self._call_primary("keys", ROOM_KEY_PREFIX, self._primary.keys(ROOM_KEY_PREFIX))
            if ok:
                keys.update(primary_keys)
        return sorted(key.removeprefix(ROOM_KEY_PREFIX) for key in keys)

    async def get_player(self, player_id: str) -> Player | None:
        key = player_key(player_id)
        data = await self._get(key)
        if data is None:
            return None
        try:
            player = Player.model_validate(data)
        except ValidationError:
            logger.warning("discarding unreadable player record", player_id=player_id)
            return None
        self._cache.set_now(key, data, self._player_ttl_seconds)
        return player

    async def set_player(self, player: Player) -> None:
        await self._set(player_key(player.id), player.model_dump(mode="json"), self._player_ttl_seconds)

    async def close(self) -> None:
        if self._primary is not None:
            await self._primary.close()
