"""Bounded per-topic FIFO of tracked messages for count-based retention."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from schemas.retention import MessageRef, TopicKey, WindowRecord


class WindowTracker:
    """Tracks the most recent messages of each capped topic, oldest first."""

    def __init__(self) -> None:
        self._windows: dict[TopicKey, deque[MessageRef]] = {}

    def __len__(self) -> int:
        """Total number of tracked messages across all topics."""
        return sum(len(window) for window in self._windows.values())

    def window(self, key: TopicKey) -> list[MessageRef]:
        return list(self._windows.get(key, ()))

    def track(self, key: TopicKey, ref: MessageRef, cap: int) -> list[MessageRef]:
        """Append ``ref`` and pop the oldest entries while the window exceeds ``cap``.

        Returns the evicted entries in arrival order. A ``cap`` of zero means the
        topic is not count-limited and nothing is stored.
        """
        if cap <= 0:
            return []

        window = self._windows.setdefault(key, deque())
        window.append(ref)

        evicted: list[MessageRef] = []
        while len(window) > cap:
            evicted.append(window.popleft())
        return evicted

    def remove(self, key: TopicKey, ref: MessageRef) -> bool:
        """Remove ``ref`` from the topic's window regardless of its position."""
        window = self._windows.get(key)
        if not window:
            return False

        removed = False
        for item in list(window):
            if item.identity == ref.identity:
                window.remove(item)
                removed = True
        if not window:
            del self._windows[key]
        return removed

    def discard(self, ref: MessageRef) -> bool:
        """Remove ``ref`` from every window it appears in."""
        removed = False
        for key in list(self._windows):
            removed = self.remove(key, ref) or removed
        return removed

    def items(self) -> list[tuple[TopicKey, list[MessageRef]]]:
        return [
            (key, list(window))
            for key, window in sorted(
                self._windows.items(), key=lambda kv: (kv[0].chat_id, kv[0].thread_id)
            )
            if window
        ]

    def to_records(self) -> list[WindowRecord]:
        return [
            WindowRecord(chat_id=key.chat_id, thread_id=key.thread_id, messages=refs)
            for key, refs in self.items()
        ]

    def load(self, records: Iterable[WindowRecord]) -> None:
        self._windows.clear()
        for record in records:
            if record.messages:
                self._windows[record.key] = deque(record.messages)
