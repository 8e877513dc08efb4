"""Contracts between the retention engine and the messaging service.

The engine never talks to Telegram directly; it only needs the narrow
surface below, which keeps the core testable with an in-memory fake.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol


class DeleteOutcome(StrEnum):
    """Result of a single delete attempt. Every value concludes the attempt."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    ERROR = "error"

    @property
    def ok(self) -> bool:
        return self is DeleteOutcome.SUCCESS


class ChatMemberRole(StrEnum):
    OWNER = "owner"
    ADMINISTRATOR = "administrator"
    MEMBER = "member"
    OTHER = "other"

    @property
    def is_admin(self) -> bool:
        return self in (ChatMemberRole.OWNER, ChatMemberRole.ADMINISTRATOR)


class MessagingGateway(Protocol):
    """What the retention core needs from the chat service."""

    async def delete_message(self, chat_id: int, message_id: int) -> DeleteOutcome:
        """Delete one message; transport failures are reported, not raised."""
        ...

    async def get_chat_member_role(
        self, chat_id: int, user_id: int
    ) -> ChatMemberRole | None:
        """Return the member's role, or None when the lookup failed."""
        ...
