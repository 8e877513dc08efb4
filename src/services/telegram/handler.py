"""Inbound update handling: the boundary between Telegram and the engine.

Each update is handled in isolation. Exceptions raised while handling one
update are logged with the update id as correlation id and never reach the
intake loop, so one bad update cannot stop the ones behind it.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum
from typing import Literal, Protocol

from core.error_handler import StructuredLogger, set_correlation_id
from schemas.telegram import EventKind, InboundEvent, TelegramUpdate
from services.retention.engine import RetentionEngine
from services.retention.interfaces import MessagingGateway
from services.telegram.admin import is_chat_admin
from services.telegram.commands import (
    NOT_ADMIN_REPLY,
    CommandKind,
    parse_command,
    render_confirmation,
)


structured_logger = StructuredLogger(__name__)

ForwardPolicy = Literal["ignore", "retain"]


class ReplyGateway(MessagingGateway, Protocol):
    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        thread_id: int | None = None,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
    ) -> bool: ...


class Handled(StrEnum):
    """How an event was dispatched."""

    IGNORED = "ignored"
    COMMAND = "command"
    PINNED = "pinned"
    TRACKED = "tracked"
    SKIPPED = "skipped"
    FAILED = "failed"


class UpdateHandler:
    def __init__(
        self,
        engine: RetentionEngine,
        gateway: ReplyGateway,
        *,
        allowed_chat_ids: Iterable[int],
        bot_username: str | None = None,
        automatic_forward_policy: ForwardPolicy = "ignore",
        forwarded_message_policy: ForwardPolicy = "retain",
    ) -> None:
        self._engine = engine
        self._gateway = gateway
        self._allowed_chat_ids = frozenset(allowed_chat_ids)
        self._bot_username = bot_username
        self._automatic_forward_policy = automatic_forward_policy
        self._forwarded_message_policy = forwarded_message_policy

    async def handle_update(self, update: TelegramUpdate) -> Handled:
        set_correlation_id(f"update:{update.update_id}")
        try:
            event = update.to_event()
            if event is None:
                return Handled.IGNORED
            return await self.handle_event(event)
        except Exception as e:
            structured_logger.exception(
                "Update handler error", update_id=update.update_id, error=str(e)
            )
            return Handled.FAILED
        finally:
            set_correlation_id(None)

    async def handle_event(self, event: InboundEvent) -> Handled:
        if not event.is_group_chat or event.chat_id not in self._allowed_chat_ids:
            return Handled.IGNORED

        # A message arrives only once; edits never re-track it.
        if event.kind is EventKind.EDITED:
            return Handled.IGNORED

        if event.is_command:
            await self._handle_command(event)
            return Handled.COMMAND

        if event.is_pinned_announcement and event.pinned_ref is not None:
            await self._engine.on_message_pinned(event.pinned_ref)
            return Handled.PINNED

        if event.timestamp_utc is None or not self._should_retain(event):
            return Handled.SKIPPED

        await self._engine.on_message_arrived(event.ref, event.timestamp_utc)
        return Handled.TRACKED

    def _should_retain(self, event: InboundEvent) -> bool:
        if event.is_automatic_forward:
            return self._automatic_forward_policy == "retain"
        if event.is_forwarded:
            return self._forwarded_message_policy == "retain"
        return True

    async def _handle_command(self, event: InboundEvent) -> None:
        command = parse_command(event.text or "", self._bot_username)
        if command is None:
            return

        if not await is_chat_admin(self._gateway, event.chat_id, event.from_user_id):
            structured_logger.info(
                "Rejected policy command from non-admin",
                chat_id=event.chat_id,
                user_id=event.from_user_id,
            )
            await self._reply(event, NOT_ADMIN_REPLY)
            return

        if command.value is None:
            await self._reply(event, command.usage, markdown=True)
            return

        if command.kind is CommandKind.AUTODELETE:
            await self._engine.apply_policy_command(event.key, minutes=command.value)
        else:
            await self._engine.apply_policy_command(
                event.key, max_messages=command.value
            )

        await self._reply(
            event, render_confirmation(command.kind, command.value), markdown=True
        )

    async def _reply(self, event: InboundEvent, text: str, markdown: bool = False) -> None:
        await self._gateway.send_message(
            event.chat_id,
            text,
            thread_id=event.thread_id or None,
            reply_to_message_id=event.message_id,
            parse_mode="Markdown" if markdown else None,
        )
