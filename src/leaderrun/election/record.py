"""Election record persisted in the shared lock.

The record is the whole lock payload: who holds the lease, how long the holder
claims it for, when it was first acquired and last renewed, and how many times
leadership changed hands. Every create/update writes the record as one value.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

import orjson


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ElectionRecord:
    """Versioned ownership record of a lock."""

    holder_identity: str | None = None
    lease_duration_seconds: int = 0
    acquire_time: datetime | None = None
    renew_time: datetime | None = None
    leader_transitions: int = 0

    @property
    def is_valid(self) -> bool:
        """True if the record names a holder and carries both timestamps."""
        return (
            self.holder_identity is not None
            and self.acquire_time is not None
            and self.renew_time is not None
        )

    def with_changes(self, **changes: Any) -> ElectionRecord:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize record to its wire dictionary."""
        return {
            "holderIdentity": self.holder_identity,
            "leaseDurationSeconds": self.lease_duration_seconds,
            "acquireTime": self.acquire_time.isoformat() if self.acquire_time else None,
            "renewTime": self.renew_time.isoformat() if self.renew_time else None,
            "leaderTransitions": self.leader_transitions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElectionRecord:
        """Deserialize record from its wire dictionary.

        Missing keys or unparseable values produce an invalid record rather
        than an error, so a lock resource carrying some other payload reads as
        "no election record".
        """
        holder = data.get("holderIdentity")
        if holder is not None and not isinstance(holder, str):
            return cls()

        try:
            return cls(
                holder_identity=holder,
                lease_duration_seconds=int(data.get("leaseDurationSeconds") or 0),
                acquire_time=_parse_time(data.get("acquireTime")),
                renew_time=_parse_time(data.get("renewTime")),
                leader_transitions=int(data.get("leaderTransitions") or 0),
            )
        except (TypeError, ValueError):
            return cls()

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes | str) -> ElectionRecord:
        """Deserialize from JSON bytes."""
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError:
            return cls()
        if not isinstance(parsed, dict):
            return cls()
        return cls.from_dict(parsed)


def is_modified(observed: ElectionRecord | None, current: ElectionRecord) -> bool:
    """Check whether ``current`` differs from the last observed record.

    Only holder identity and the two timestamps are compared. The transition
    counter and lease duration are metadata and never refresh the observed
    time on their own.
    """
    if observed is None:
        return True

    return not (
        observed.acquire_time == current.acquire_time
        and observed.renew_time == current.renew_time
        and observed.holder_identity == current.holder_identity
    )
