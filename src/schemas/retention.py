"""Retention value types and the persisted snapshot document.

All identity types are frozen so they can be used as dict keys and set
members by the in-memory stores. The snapshot document mirrors the in-memory
state one-to-one and is what ``SnapshotStore`` reads and writes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


SNAPSHOT_VERSION: int = 1


class TopicKey(BaseModel):
    """Identity of a retention scope: a chat plus its forum thread (0 = none)."""

    chat_id: int
    thread_id: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __str__(self) -> str:
        return f"{self.chat_id}:{self.thread_id}"


class MessageRef(BaseModel):
    """Reference to a single chat message.

    ``(chat_id, message_id)`` is the message identity; ``thread_id`` only
    tells which topic the message was posted in.
    """

    chat_id: int
    message_id: int
    thread_id: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def key(self) -> TopicKey:
        return TopicKey(chat_id=self.chat_id, thread_id=self.thread_id)

    @property
    def identity(self) -> tuple[int, int]:
        return (self.chat_id, self.message_id)

    def __str__(self) -> str:
        return f"{self.chat_id}/{self.message_id}"


class RetentionPolicy(BaseModel):
    """Per-topic retention rules. Zero disables the corresponding rule."""

    minutes: int = Field(default=0, ge=0)
    max_messages: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_disabled(self) -> bool:
        return self.minutes == 0 and self.max_messages == 0

    @property
    def expiry(self) -> timedelta | None:
        if self.minutes <= 0:
            return None
        return timedelta(minutes=self.minutes)


DISABLED_POLICY = RetentionPolicy()


def as_utc(value: datetime, name: str = "timestamp") -> datetime:
    """Convert an aware datetime to UTC; naive values are rejected."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {value!r}")
    return value.astimezone(UTC)


class ScheduledDeletion(BaseModel):
    """A pending time-based deletion of one message."""

    chat_id: int
    message_id: int
    thread_id: int = 0
    due_at_utc: AwareDatetime

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("due_at_utc")
    @classmethod
    def _normalize_utc(cls, v: datetime) -> datetime:
        return v.astimezone(UTC)

    @classmethod
    def for_ref(cls, ref: MessageRef, due_at_utc: datetime) -> ScheduledDeletion:
        return cls(
            chat_id=ref.chat_id,
            message_id=ref.message_id,
            thread_id=ref.thread_id,
            due_at_utc=due_at_utc,
        )

    @property
    def ref(self) -> MessageRef:
        return MessageRef(
            chat_id=self.chat_id, message_id=self.message_id, thread_id=self.thread_id
        )

    @property
    def identity(self) -> tuple[int, int]:
        return (self.chat_id, self.message_id)


# -----------------------------------------------------------------------------
# Snapshot document
# -----------------------------------------------------------------------------


class PolicyRecord(BaseModel):
    """One ``policies`` entry of the snapshot document."""

    chat_id: int
    thread_id: int = 0
    minutes: int = Field(default=0, ge=0)
    max_messages: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="forbid")

    @property
    def key(self) -> TopicKey:
        return TopicKey(chat_id=self.chat_id, thread_id=self.thread_id)

    @property
    def policy(self) -> RetentionPolicy:
        return RetentionPolicy(minutes=self.minutes, max_messages=self.max_messages)


class WindowRecord(BaseModel):
    """One ``windows`` entry: tracked messages of a topic, oldest first."""

    chat_id: int
    thread_id: int = 0
    messages: list[MessageRef] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def key(self) -> TopicKey:
        return TopicKey(chat_id=self.chat_id, thread_id=self.thread_id)


class RetentionSnapshot(BaseModel):
    """The whole persisted retention state as one document."""

    version: Literal[1] = SNAPSHOT_VERSION
    policies: list[PolicyRecord] = Field(default_factory=list)
    scheduled: list[ScheduledDeletion] = Field(default_factory=list)
    windows: list[WindowRecord] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
