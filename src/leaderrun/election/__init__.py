"""Lease-based leader election.

Provides:
- ElectionRecord: the versioned payload stored in the shared lock
- ResourceLock with in-memory and Redis backends
- LeaderElector: the acquire/renew engine and its notifications

Example:
    from leaderrun.election import ElectionConfig, InMemoryLockStore, LeaderElector

    store = InMemoryLockStore()
    elector = LeaderElector(ElectionConfig(identity="a"), store.lock("default", "jobs"))
    elector.callbacks.add_new_leader(lambda leader: print(leader))
    await elector.run()
"""

from leaderrun.election.config import ElectionConfig
from leaderrun.election.elector import ElectionState, LeaderElector
from leaderrun.election.events import (
    ElectionCallbacks,
    ElectionEvent,
    NewLeader,
    QueueEventSink,
    StartedLeading,
    StoppedLeading,
)
from leaderrun.election.lock import InMemoryLock, InMemoryLockStore, ResourceLock
from leaderrun.election.record import ElectionRecord, is_modified
from leaderrun.election.redis_lock import RedisLock

__all__ = [
    "ElectionCallbacks",
    "ElectionConfig",
    "ElectionEvent",
    "ElectionRecord",
    "ElectionState",
    "InMemoryLock",
    "InMemoryLockStore",
    "LeaderElector",
    "NewLeader",
    "QueueEventSink",
    "RedisLock",
    "ResourceLock",
    "StartedLeading",
    "StoppedLeading",
    "is_modified",
]
