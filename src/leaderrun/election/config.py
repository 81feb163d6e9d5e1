"""Election timing configuration."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_LEASE_DURATION = 15.0  # Seconds
DEFAULT_RENEW_DEADLINE = 10.0
DEFAULT_RETRY_PERIOD = 2.0

# Exponential backoff on the acquire loop made takeover far too slow once a
# few rounds had failed, so the delay stays constant.
DEFAULT_JITTER_FACTOR = 1.0


@dataclass(frozen=True)
class ElectionConfig:
    """Immutable configuration of one election participant.

    Args:
        identity: Unique holder string of this participant
        lease_duration: Seconds a lease stays valid for observers after they
            last saw it change
        renew_deadline: Seconds a leader waits for one renew round before
            giving up leadership, shorter than lease_duration
        retry_period: Seconds between acquire/renew attempts
        jitter_factor: Multiplier applied to the acquire delay after every
            round (1.0 keeps it constant)
    """

    identity: str
    lease_duration: float = DEFAULT_LEASE_DURATION
    renew_deadline: float = DEFAULT_RENEW_DEADLINE
    retry_period: float = DEFAULT_RETRY_PERIOD
    jitter_factor: float = DEFAULT_JITTER_FACTOR

    def __post_init__(self) -> None:
        if not self.identity:
            raise ValueError("identity must not be empty")
        for name in ("lease_duration", "renew_deadline", "retry_period"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.renew_deadline >= self.lease_duration:
            raise ValueError(
                f"renew_deadline ({self.renew_deadline}) must be shorter than "
                f"lease_duration ({self.lease_duration})"
            )
        if self.jitter_factor < 1.0:
            raise ValueError(f"jitter_factor must be >= 1.0, got {self.jitter_factor}")
