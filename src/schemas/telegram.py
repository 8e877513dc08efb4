"""Telegram Bot API payload schemas (the subset the bot reads).

Unknown fields are ignored so new Bot API releases do not break parsing.
``Update.to_event`` normalizes an update into the ``InboundEvent`` the update
handler works with.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schemas.retention import MessageRef, TopicKey


GROUP_CHAT_TYPES: frozenset[str] = frozenset({"group", "supergroup"})


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: str | None = None

    model_config = ConfigDict(extra="ignore")


class TelegramChat(BaseModel):
    id: int
    type: str
    title: str | None = None
    is_forum: bool = False

    model_config = ConfigDict(extra="ignore")


class TelegramMessage(BaseModel):
    """A message, or the ``MaybeInaccessibleMessage`` of a pin notification.

    Inaccessible messages carry ``date == 0`` and nothing but the chat and id.
    """

    message_id: int
    date: int = 0
    chat: TelegramChat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    message_thread_id: int | None = None
    is_topic_message: bool = False
    is_automatic_forward: bool = False
    forward_origin: dict[str, Any] | None = None
    forward_from: dict[str, Any] | None = None
    forward_from_chat: dict[str, Any] | None = None
    text: str | None = None
    pinned_message: TelegramMessage | None = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @property
    def topic_thread_id(self) -> int:
        """Forum topic id, or 0 for the main stream.

        Reply threads in non-forum groups also carry ``message_thread_id``;
        only topic messages count as a separate retention scope.
        """
        if self.is_topic_message and self.message_thread_id:
            return self.message_thread_id
        return 0

    @property
    def is_forwarded(self) -> bool:
        return any(
            v is not None
            for v in (self.forward_origin, self.forward_from, self.forward_from_chat)
        )

    def ref(self) -> MessageRef:
        return MessageRef(
            chat_id=self.chat.id,
            message_id=self.message_id,
            thread_id=self.topic_thread_id,
        )


class TelegramUpdate(BaseModel):
    update_id: int
    message: TelegramMessage | None = None
    edited_message: TelegramMessage | None = None

    model_config = ConfigDict(extra="ignore")

    def to_event(self) -> InboundEvent | None:
        """Normalize into an inbound event, or None for update types we skip."""
        if self.message is not None:
            msg = self.message
            kind = EventKind.PINNED if msg.pinned_message else EventKind.MESSAGE
        elif self.edited_message is not None:
            msg = self.edited_message
            kind = EventKind.EDITED
        else:
            return None

        pinned_ref = msg.pinned_message.ref() if msg.pinned_message else None
        return InboundEvent(
            update_id=self.update_id,
            kind=kind,
            chat_id=msg.chat.id,
            chat_type=msg.chat.type,
            message_id=msg.message_id,
            thread_id=msg.topic_thread_id,
            timestamp_utc=datetime.fromtimestamp(msg.date, UTC) if msg.date else None,
            is_pinned_announcement=pinned_ref is not None,
            pinned_ref=pinned_ref,
            text=msg.text,
            from_user_id=msg.from_user.id if msg.from_user else None,
            is_automatic_forward=msg.is_automatic_forward,
            is_forwarded=msg.is_forwarded,
        )


class TelegramChatMember(BaseModel):
    status: str
    user: TelegramUser

    model_config = ConfigDict(extra="ignore")


class TelegramResponse(BaseModel):
    """Envelope of every Bot API response."""

    ok: bool
    result: Any = None
    description: str | None = None
    error_code: int | None = None
    parameters: dict[str, Any] | None = None

    model_config = ConfigDict(extra="ignore")


# -----------------------------------------------------------------------------
# Normalized inbound events
# -----------------------------------------------------------------------------


class EventKind(StrEnum):
    MESSAGE = "message"
    EDITED = "edited_message"
    PINNED = "pinned_message"


class InboundEvent(BaseModel):
    """One chat event as seen by the update handler."""

    update_id: int
    kind: EventKind
    chat_id: int
    chat_type: str
    message_id: int
    thread_id: int = 0
    timestamp_utc: datetime | None = None
    is_pinned_announcement: bool = False
    pinned_ref: MessageRef | None = None
    text: str | None = None
    from_user_id: int | None = None
    is_automatic_forward: bool = False
    is_forwarded: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> TopicKey:
        return TopicKey(chat_id=self.chat_id, thread_id=self.thread_id)

    @property
    def ref(self) -> MessageRef:
        return MessageRef(
            chat_id=self.chat_id, message_id=self.message_id, thread_id=self.thread_id
        )

    @property
    def is_group_chat(self) -> bool:
        return self.chat_type in GROUP_CHAT_TYPES

    @property
    def is_command(self) -> bool:
        return bool(self.text) and self.text.startswith("/")
