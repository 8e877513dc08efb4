"""Pending time-based deletions keyed by message identity."""

from __future__ import annotations

import heapq
from collections.abc import Iterable
from datetime import datetime

from schemas.retention import MessageRef, ScheduledDeletion, as_utc


def _order(entry: ScheduledDeletion) -> tuple[datetime, int, int]:
    return (entry.due_at_utc, entry.chat_id, entry.message_id)


class DeletionSchedule:
    """At most one scheduled deletion per ``(chat_id, message_id)``."""

    def __init__(self) -> None:
        self._entries: dict[tuple[int, int], ScheduledDeletion] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ref: object) -> bool:
        if not isinstance(ref, MessageRef | ScheduledDeletion):
            return False
        return ref.identity in self._entries

    def get(self, ref: MessageRef) -> ScheduledDeletion | None:
        return self._entries.get(ref.identity)

    def schedule_at(self, ref: MessageRef, due_at_utc: datetime) -> ScheduledDeletion:
        """Insert or replace the deletion for ``ref``'s identity."""
        entry = ScheduledDeletion.for_ref(ref, due_at_utc)
        self._entries[ref.identity] = entry
        return entry

    def cancel(self, ref: MessageRef) -> bool:
        return self._entries.pop(ref.identity, None) is not None

    def due(self, now: datetime, limit: int) -> list[ScheduledDeletion]:
        """Entries due at or before ``now``, earliest first, at most ``limit``.

        Entries are left in place; callers cancel them once processed.
        """
        now = as_utc(now, "now")
        if limit <= 0:
            return []
        candidates = (e for e in self._entries.values() if e.due_at_utc <= now)
        return heapq.nsmallest(limit, candidates, key=_order)

    def entries(self) -> list[ScheduledDeletion]:
        return sorted(self._entries.values(), key=_order)

    def load(self, entries: Iterable[ScheduledDeletion]) -> None:
        self._entries.clear()
        for entry in entries:
            self._entries[entry.identity] = entry
