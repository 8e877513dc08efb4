"""Retention enforcement for Telegram topic messages.

Policy per topic:
- Time expiry: delete a message ``minutes`` after it arrived.
- Count cap: keep the newest ``max_messages`` messages, evicting older ones as
  new messages arrive.

The engine is the single owner of the retention state. Every mutating
operation runs under one asyncio lock, computes its side effects (evictions,
due work) while holding it, and persists the snapshot before releasing it so
writes land in mutation order. Network calls to the gateway happen after the
lock is released.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from schemas.retention import (
    DISABLED_POLICY,
    MessageRef,
    RetentionPolicy,
    RetentionSnapshot,
    ScheduledDeletion,
    TopicKey,
    as_utc,
)
from services.retention.deletion_schedule import DeletionSchedule
from services.retention.interfaces import DeleteOutcome, MessagingGateway
from services.retention.policy_store import PolicyStore
from services.retention.snapshot_store import SnapshotStore
from services.retention.window_tracker import WindowTracker


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ArrivalResult:
    """What ``on_message_arrived`` did for one message."""

    scheduled_at: datetime | None = None
    evicted: list[MessageRef] = field(default_factory=list)
    outcomes: dict[MessageRef, DeleteOutcome] = field(default_factory=dict)


class RetentionEngine:
    """Owns policies, the deletion schedule and the message windows."""

    def __init__(
        self,
        gateway: MessagingGateway,
        store: SnapshotStore | None = None,
        *,
        snapshot: RetentionSnapshot | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._lock = asyncio.Lock()
        self._policies = PolicyStore()
        self._windows = WindowTracker()
        self._schedule = DeletionSchedule()
        self.persist_failures = 0

        if snapshot is not None:
            self._policies.load(snapshot.policies)
            self._schedule.load(snapshot.scheduled)
            self._windows.load(snapshot.windows)

    @classmethod
    def from_snapshot(
        cls,
        gateway: MessagingGateway,
        snapshot: RetentionSnapshot,
        store: SnapshotStore | None = None,
    ) -> RetentionEngine:
        return cls(gateway, store, snapshot=snapshot)

    @classmethod
    def from_store(
        cls, gateway: MessagingGateway, store: SnapshotStore
    ) -> RetentionEngine:
        """Build an engine from the stored snapshot (empty if none exists)."""
        return cls.from_snapshot(gateway, store.load(), store)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get_policy(self, key: TopicKey) -> RetentionPolicy:
        return self._policies.get_policy(key) or DISABLED_POLICY

    def window(self, key: TopicKey) -> list[MessageRef]:
        return self._windows.window(key)

    def scheduled_for(self, ref: MessageRef) -> ScheduledDeletion | None:
        return self._schedule.get(ref)

    def stats(self) -> dict[str, int]:
        return {
            "policies": len(self._policies),
            "scheduled": len(self._schedule),
            "tracked": len(self._windows),
        }

    def snapshot(self) -> RetentionSnapshot:
        return RetentionSnapshot(
            policies=self._policies.to_records(),
            scheduled=self._schedule.entries(),
            windows=self._windows.to_records(),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def apply_policy_command(
        self,
        key: TopicKey,
        minutes: int | None = None,
        max_messages: int | None = None,
    ) -> RetentionPolicy:
        """Update the topic's policy and return the effective result.

        Lowering the count cap trims the topic's window right away; disabling
        it stops tracking the topic altogether.
        """
        evicted: list[MessageRef] = []
        async with self._lock:
            policy = self._policies.set_policy(
                key, minutes=minutes, max_messages=max_messages
            )
            evicted = self._fit_window_locked(key, policy.max_messages)
            await self._persist_locked()

        logger.info(
            "Policy for topic %s is now minutes=%d max_messages=%d",
            key,
            policy.minutes,
            policy.max_messages,
        )
        for ref in evicted:
            await self._delete(ref, reason="cap lowered")
        return policy

    async def on_message_arrived(
        self, ref: MessageRef, arrival_time_utc: datetime
    ) -> ArrivalResult:
        """Schedule and/or track a new message according to its topic policy."""
        arrival_time_utc = as_utc(arrival_time_utc, "arrival_time_utc")
        result = ArrivalResult()
        async with self._lock:
            policy = self._policies.get_policy(ref.key)
            if policy is None:
                return result

            if policy.expiry is not None:
                due = arrival_time_utc + policy.expiry
                result.scheduled_at = self._schedule.schedule_at(ref, due).due_at_utc

            if policy.max_messages > 0:
                self._windows.remove(ref.key, ref)
                result.evicted = self._windows.track(ref.key, ref, policy.max_messages)
                for old in result.evicted:
                    self._schedule.cancel(old)

            await self._persist_locked()

        for old in result.evicted:
            result.outcomes[old] = await self._delete(old, reason="count cap")
        return result

    async def on_message_pinned(self, ref: MessageRef) -> bool:
        """Exclude a pinned message from any automatic deletion."""
        async with self._lock:
            cancelled = self._schedule.cancel(ref)
            unwindowed = self._windows.discard(ref)
            if cancelled or unwindowed:
                await self._persist_locked()

        if cancelled or unwindowed:
            logger.info("Pinned message %s excluded from auto-delete", ref)
        return cancelled or unwindowed

    async def sweep_due(
        self, now_utc: datetime, batch_limit: int
    ) -> list[ScheduledDeletion]:
        """Return up to ``batch_limit`` deletions due at ``now_utc`` (read-only)."""
        now_utc = as_utc(now_utc, "now_utc")
        async with self._lock:
            return self._schedule.due(now_utc, batch_limit)

    async def complete_deletion(self, ref: MessageRef) -> None:
        await self.complete_deletions([ref])

    async def complete_deletions(self, refs: Iterable[MessageRef]) -> None:
        """Drop bookkeeping for attempted deletions, persisting once per batch."""
        async with self._lock:
            changed = False
            for ref in refs:
                changed = self._schedule.cancel(ref) or changed
                changed = self._windows.discard(ref) or changed
            if changed:
                await self._persist_locked()

    async def flush(self) -> bool:
        """Persist the current state unconditionally."""
        async with self._lock:
            return await self._persist_locked()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fit_window_locked(self, key: TopicKey, cap: int) -> list[MessageRef]:
        window = self._windows.window(key)
        if cap <= 0:
            for ref in window:
                self._windows.remove(key, ref)
            return []

        overflow = window[: max(0, len(window) - cap)]
        for ref in overflow:
            self._windows.remove(key, ref)
            self._schedule.cancel(ref)
        return overflow

    async def _persist_locked(self) -> bool:
        if self._store is None:
            return True

        snapshot = self.snapshot()
        try:
            await asyncio.to_thread(self._store.save, snapshot)
        except OSError:
            self.persist_failures += 1
            logger.exception(
                "Failed to save state snapshot to %s; keeping in-memory state",
                self._store.path,
            )
            return False
        return True

    async def _delete(self, ref: MessageRef, *, reason: str) -> DeleteOutcome:
        outcome = await self._gateway.delete_message(ref.chat_id, ref.message_id)
        if outcome.ok:
            logger.debug("Deleted message %s (%s)", ref, reason)
        else:
            logger.warning("Delete of message %s (%s) concluded: %s", ref, reason, outcome)
        return outcome
