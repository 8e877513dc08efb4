"""Retention core: policies, windows, deletion schedule and snapshots."""

from .deletion_schedule import DeletionSchedule
from .engine import ArrivalResult, RetentionEngine
from .interfaces import ChatMemberRole, DeleteOutcome, MessagingGateway
from .policy_store import PolicyStore
from .snapshot_store import SnapshotStore
from .window_tracker import WindowTracker


__all__ = [
    "ArrivalResult",
    "ChatMemberRole",
    "DeleteOutcome",
    "DeletionSchedule",
    "MessagingGateway",
    "PolicyStore",
    "RetentionEngine",
    "SnapshotStore",
    "WindowTracker",
]
