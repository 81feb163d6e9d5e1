"""Lock abstraction consumed by the election engine.

A lock is a named, namespaced resource holding one ElectionRecord. Every
participant owns its own lock handle; the handle remembers the version it
last read so that ``update`` can be rejected when someone else wrote in
between (optimistic concurrency). Handles never retry internally.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from leaderrun.election.record import ElectionRecord
from leaderrun.errors import LockError, LockNotFoundError


class ResourceLock(ABC):
    """Abstract lock handle."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name

    def describe(self) -> str:
        """Human readable lock name for logs."""
        return f"{self.namespace}/{self.name}"

    @abstractmethod
    async def get(self) -> ElectionRecord:
        """Read the current record.

        Raises:
            LockNotFoundError: the resource holds no record yet
            LockError: the store failed
        """
        pass

    @abstractmethod
    async def create(self, record: ElectionRecord) -> bool:
        """Create the record. Returns False if it already exists."""
        pass

    @abstractmethod
    async def update(self, record: ElectionRecord) -> bool:
        """Replace the record.

        Returns False if the stored record changed since the last ``get``.
        """
        pass


class InMemoryLockStore:
    """Process-local store shared by many InMemoryLock handles.

    Suitable for single-host deployments and tests. Each entry is
    ``(version, payload)``; the version increases on every write. Every
    operation first waits ``latency`` seconds (a bare yield at 0) so that
    concurrent participants interleave the way they do against a remote
    store; the check-and-write itself never suspends.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._entries: dict[tuple[str, str], tuple[int, bytes]] = {}

    def lock(self, namespace: str, name: str) -> InMemoryLock:
        """Create a new participant handle on this store."""
        return InMemoryLock(self, namespace, name)

    def peek(self, namespace: str, name: str) -> ElectionRecord | None:
        """Read a stored record without touching any handle's version."""
        entry = self._entries.get((namespace, name))
        if entry is None:
            return None
        return ElectionRecord.from_bytes(entry[1])

    def version(self, namespace: str, name: str) -> int:
        entry = self._entries.get((namespace, name))
        return entry[0] if entry else 0

    def put(self, namespace: str, name: str, payload: bytes) -> None:
        """Overwrite an entry directly, bypassing version checks."""
        self._entries[(namespace, name)] = (self.version(namespace, name) + 1, payload)


class InMemoryLock(ResourceLock):
    """Lock handle backed by an InMemoryLockStore."""

    def __init__(self, store: InMemoryLockStore, namespace: str, name: str):
        super().__init__(namespace, name)
        self.store = store
        self.get_error: LockError | None = None
        self._read_version: int | None = None

    @property
    def _key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    async def get(self) -> ElectionRecord:
        await asyncio.sleep(self.store.latency)
        if self.get_error is not None:
            raise self.get_error

        entry = self.store._entries.get(self._key)
        if entry is None:
            self._read_version = None
            raise LockNotFoundError("lock not found", lock=self.describe())
        self._read_version = entry[0]
        return ElectionRecord.from_bytes(entry[1])

    async def create(self, record: ElectionRecord) -> bool:
        await asyncio.sleep(self.store.latency)
        entry = self.store._entries.get(self._key)
        if entry is not None:
            # A resource holding a foreign payload is taken over, but only
            # if nobody wrote since it was read
            if entry[0] != self._read_version:
                return False
            if ElectionRecord.from_bytes(entry[1]).is_valid:
                return False

        version = (entry[0] if entry else 0) + 1
        self.store._entries[self._key] = (version, record.to_bytes())
        self._read_version = version
        return True

    async def update(self, record: ElectionRecord) -> bool:
        await asyncio.sleep(self.store.latency)
        entry = self.store._entries.get(self._key)
        if entry is None or entry[0] != self._read_version:
            return False

        version = entry[0] + 1
        self.store._entries[self._key] = (version, record.to_bytes())
        self._read_version = version
        return True
