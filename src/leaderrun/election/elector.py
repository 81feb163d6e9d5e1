"""Lease-based leader election over a shared lock.

Every participant races to own the ElectionRecord stored behind a
ResourceLock. The winner keeps renewing the record; everybody else watches
the record change and may take over once it has not changed for a full
lease duration:

1. Acquiring: try to create or take over the record every retry period,
   forever, until it succeeds or the run is cancelled
2. Leading: renew the record; each renew round must succeed within the
   renew deadline
3. Stopped: the deadline passed, the lease was lost or the run was
   cancelled; "stopped leading" fires and ``run`` returns

Attempts that are still pending when their timer fires are abandoned and
left to finish on their own. Each attempt captures the engine epoch when it
starts and the epoch moves on when an attempt is abandoned, so an abandoned
attempt never updates the observed record. A write it already made stays in
the store: it carries our identity and a later renew time and simply expires.

Example:
    store = InMemoryLockStore()
    elector = LeaderElector(ElectionConfig(identity="a"), store.lock("default", "jobs"))
    elector.callbacks.add_started_leading(start_work)
    elector.callbacks.add_stopped_leading(stop_work)

    await elector.run()  # returns once leadership is lost
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from leaderrun.election.config import ElectionConfig
from leaderrun.election.events import ElectionCallbacks
from leaderrun.election.lock import ResourceLock
from leaderrun.election.record import ElectionRecord, is_modified, utcnow
from leaderrun.errors import LockError, LockNotFoundError


class ElectionState(str, Enum):
    """Where a run currently is."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    LEADING = "leading"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Observation:
    """Last record seen in the lock and the local time it was seen."""

    record: ElectionRecord
    time: datetime


class LeaderElector:
    """Election engine for one participant.

    Args:
        config: Identity and timing of this participant
        lock: This participant's handle on the shared lock
        logger: Logger to use (a child of this module's logger named after
            the identity if None)
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        config: ElectionConfig,
        lock: ResourceLock,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.lock = lock
        self.callbacks = ElectionCallbacks()
        self.logger = logger or logging.getLogger(__name__).getChild(config.identity)

        self._clock = clock
        self._observation: Observation | None = None
        self._reported_leader: str | None = None
        self._epoch = 0
        self._state = ElectionState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._abandoned: set[asyncio.Task[bool]] = set()

    @property
    def identity(self) -> str:
        return self.config.identity

    @property
    def state(self) -> ElectionState:
        return self._state

    @property
    def epoch(self) -> int:
        """Generation of attempts whose results are still applied."""
        return self._epoch

    @property
    def observed_record(self) -> ElectionRecord | None:
        observation = self._observation
        return observation.record if observation else None

    @property
    def observed_time(self) -> datetime | None:
        observation = self._observation
        return observation.time if observation else None

    def is_leader(self) -> bool:
        """Check if the last observed record names this participant."""
        observation = self._observation
        if observation is None:
            return False
        holder = observation.record.holder_identity
        return bool(holder) and holder == self.config.identity

    def get_leader(self) -> str | None:
        """Holder identity of the last observed record."""
        observation = self._observation
        return observation.record.holder_identity if observation else None

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Acquire leadership, then renew it until it is lost.

        Blocks until a renew round fails or misses the renew deadline, or
        until the calling task is cancelled. "Stopped leading" fires exactly
        once after "started leading", whichever way the leading loop ends.
        """
        if self._state in (ElectionState.ACQUIRING, ElectionState.LEADING):
            raise RuntimeError(f"Election for {self.identity} is already running")

        self._state = ElectionState.ACQUIRING
        self.logger.info(f"Acquiring lock {self.lock.describe()} as {self.identity}")
        try:
            await self._acquire()
        except BaseException:
            self._state = ElectionState.STOPPED
            raise

        self._state = ElectionState.LEADING
        try:
            self.logger.info(f"Started leading {self.lock.describe()}")
            self.callbacks.started_leading()
            await self._renew_loop()
        finally:
            self._epoch += 1
            self._state = ElectionState.STOPPED
            self.logger.info(f"Stopped leading {self.lock.describe()}")
            self.callbacks.stopped_leading()

    async def start(self) -> None:
        """Run the election in a background task."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Cancel the background run and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def wait(self) -> None:
        """Wait for the background run to end on its own."""
        if self._task is not None:
            await self._task

    async def _acquire(self) -> None:
        delay = self.config.retry_period
        while True:
            attempt = asyncio.create_task(self.try_acquire_or_renew())
            try:
                done, _ = await asyncio.wait({attempt}, timeout=delay)
                if attempt in done:
                    if self._succeeded(attempt):
                        return
                    # Failed attempts return immediately
                    await asyncio.sleep(delay)
                else:
                    self.logger.debug(f"Acquire attempt still pending after {delay}s")
                    self._abandon(attempt)

                delay *= self.config.jitter_factor
            except asyncio.CancelledError:
                if not attempt.done():
                    self._abandon(attempt)
                    attempt.cancel()
                raise
            finally:
                self.maybe_report_transition()

    async def _renew_loop(self) -> None:
        while True:
            renewal = asyncio.create_task(self._renew_round(self._epoch))
            try:
                done, _ = await asyncio.wait({renewal}, timeout=self.config.renew_deadline)
            except asyncio.CancelledError:
                self._abandon(renewal)
                renewal.cancel()
                raise

            if renewal not in done:
                self.logger.warning(
                    f"Failed to renew {self.lock.describe()} "
                    f"within {self.config.renew_deadline}s"
                )
                self._abandon(renewal)
                return

            if not renewal.result():
                return

            await asyncio.sleep(self.config.retry_period)

    async def _renew_round(self, epoch: int) -> bool:
        """Retry renewing until it works or the lease is gone."""
        try:
            while not await self.try_acquire_or_renew():
                if epoch != self._epoch:
                    return False
                if not self.is_leader():
                    self.maybe_report_transition()
                    self.logger.warning(
                        f"Lease on {self.lock.describe()} lost to {self.get_leader()}"
                    )
                    return False

                await asyncio.sleep(self.config.retry_period)
                if epoch != self._epoch:
                    return False
                self.maybe_report_transition()
        except Exception:
            self.logger.exception(f"Renewing {self.lock.describe()} failed")
            return False

        return True

    def _succeeded(self, attempt: asyncio.Task[bool]) -> bool:
        try:
            return attempt.result()
        except Exception:
            self.logger.exception(f"Acquiring {self.lock.describe()} failed")
            return False

    def _abandon(self, attempt: asyncio.Task[bool]) -> None:
        self._epoch += 1
        self._abandoned.add(attempt)
        attempt.add_done_callback(self._reap)

    def _reap(self, attempt: asyncio.Task[bool]) -> None:
        self._abandoned.discard(attempt)
        if not attempt.cancelled() and attempt.exception() is not None:
            self.logger.debug(f"Abandoned attempt failed: {attempt.exception()!r}")

    # -------------------------------------------------------------------------
    # Single attempt
    # -------------------------------------------------------------------------

    async def try_acquire_or_renew(self) -> bool:
        """Make one attempt to create, take over or renew the record.

        Returns True if this participant holds the lease afterwards.
        """
        epoch = self._epoch
        lease = self.config.lease_duration
        now = self._clock()
        record = ElectionRecord(
            holder_identity=self.identity,
            lease_duration_seconds=int(lease),
            acquire_time=now,
            renew_time=now,
            leader_transitions=0,
        )

        # 1. Obtain or create the record
        try:
            existing: ElectionRecord | None = await self.lock.get()
        except LockNotFoundError:
            existing = None
        except LockError as e:
            self.logger.warning(f"Failed to read lock {self.lock.describe()}: {e}")
            return False

        if existing is None or not existing.is_valid:
            if not await self.lock.create(record):
                return False
            return self._observe(record, epoch)

        # 2. Record obtained, check identity and time
        if is_modified(self.observed_record, existing):
            if not self._observe(existing, epoch):
                return False

        observed_time = self.observed_time
        if (
            existing.holder_identity
            and observed_time is not None
            and observed_time + timedelta(seconds=lease) > now
            and not self.is_leader()
        ):
            self.logger.debug(
                f"Lock {self.lock.describe()} is held by {existing.holder_identity} "
                "and has not yet expired"
            )
            return False

        # 3. Renewal keeps the acquire time, a takeover counts a transition
        if self.is_leader():
            record = record.with_changes(
                acquire_time=existing.acquire_time,
                leader_transitions=existing.leader_transitions,
            )
        else:
            record = record.with_changes(leader_transitions=existing.leader_transitions + 1)

        if not await self.lock.update(record):
            self.logger.debug(f"Lost update race on {self.lock.describe()}")
            return False

        return self._observe(record, epoch)

    def _observe(self, record: ElectionRecord, epoch: int) -> bool:
        if epoch != self._epoch:
            self.logger.debug(f"Discarding result of abandoned attempt (epoch {epoch})")
            return False
        self._observation = Observation(record=record, time=self._clock())
        return True

    def maybe_report_transition(self) -> None:
        """Fire "new leader" once per change of the observed holder."""
        observation = self._observation
        if observation is None:
            return

        holder = observation.record.holder_identity or ""
        if holder == self._reported_leader:
            return

        self._reported_leader = holder
        self.logger.info(f"New leader elected: {holder}")
        self.callbacks.new_leader(holder)
