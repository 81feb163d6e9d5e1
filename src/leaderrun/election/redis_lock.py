"""Redis-backed lock for leader election.

The record is stored as JSON under one key. Redis gives us the two primitives
the election needs:

1. Atomic create via SET NX
2. Compare-and-set update via a Lua script that only writes when the stored
   payload still equals the payload this handle last read

Example:
    client = await get_redis("redis://localhost:6379/0")
    lock = RedisLock(client, "default", "billing-worker")
    elector = LeaderElector(ElectionConfig(identity="pod-a"), lock)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from leaderrun.election.lock import ResourceLock
from leaderrun.election.record import ElectionRecord
from leaderrun.errors import LockError, LockNotFoundError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

LOCK_PREFIX = "leaderrun:lock:"

# Only write if the stored payload is unchanged since our last read
COMPARE_AND_SET_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("set", KEYS[1], ARGV[2])
    return 1
else
    return 0
end
"""

# Module-level client shared by all locks of a process
_redis_client: Redis | None = None


async def get_redis(url: str) -> Redis:
    """Get or create the Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            decode_responses=False,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class RedisLock(ResourceLock):
    """Lock handle stored under ``{prefix}{namespace}:{name}``."""

    def __init__(
        self,
        client: Redis,
        namespace: str,
        name: str,
        key_prefix: str = LOCK_PREFIX,
    ):
        super().__init__(namespace, name)
        self.client = client
        self._key = f"{key_prefix}{namespace}:{name}"
        self._last_payload: bytes | None = None

    @property
    def key(self) -> str:
        """The Redis key holding the record."""
        return self._key

    async def get(self) -> ElectionRecord:
        try:
            payload = await self.client.get(self._key)
        except RedisError as e:
            raise LockError(str(e), lock=self.describe()) from e

        if payload is None:
            self._last_payload = None
            raise LockNotFoundError("lock not found", lock=self.describe())

        if isinstance(payload, str):
            payload = payload.encode()
        self._last_payload = payload
        return ElectionRecord.from_bytes(payload)

    async def create(self, record: ElectionRecord) -> bool:
        payload = record.to_bytes()
        try:
            if self._last_payload is not None:
                # Key exists but holds no election record; take it over atomically
                created = await self._compare_and_set(self._last_payload, payload)
            else:
                created = bool(await self.client.set(self._key, payload, nx=True))
        except RedisError as e:
            logger.warning(f"Failed to create lock {self.describe()}: {e}")
            return False

        if created:
            self._last_payload = payload
        return created

    async def update(self, record: ElectionRecord) -> bool:
        if self._last_payload is None:
            return False

        payload = record.to_bytes()
        try:
            updated = await self._compare_and_set(self._last_payload, payload)
        except RedisError as e:
            logger.warning(f"Failed to update lock {self.describe()}: {e}")
            return False

        if updated:
            self._last_payload = payload
        return updated

    async def _compare_and_set(self, expected: bytes, payload: bytes) -> bool:
        result = await cast(
            Awaitable[int],
            self.client.eval(COMPARE_AND_SET_SCRIPT, 1, self._key, expected, payload),
        )
        return bool(result)
