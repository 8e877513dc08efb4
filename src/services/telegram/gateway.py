"""Telegram Bot API client.

Implements the ``MessagingGateway`` contract for the retention engine
(``delete_message`` and ``get_chat_member_role`` report failures as values)
plus the lifecycle calls the runtime needs, which raise ``TelegramApiError``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from core.exceptions import TelegramApiError
from core.security_config import mask_token
from schemas.telegram import (
    TelegramChatMember,
    TelegramResponse,
    TelegramUpdate,
    TelegramUser,
)
from services.retention.interfaces import ChatMemberRole, DeleteOutcome


logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.telegram.org"
ALLOWED_UPDATES: list[str] = ["message", "edited_message"]

_ROLE_BY_STATUS: dict[str, ChatMemberRole] = {
    "creator": ChatMemberRole.OWNER,
    "administrator": ChatMemberRole.ADMINISTRATOR,
    "member": ChatMemberRole.MEMBER,
}


def classify_delete_error(error: TelegramApiError) -> DeleteOutcome:
    """Map a failed deleteMessage call onto a delete outcome."""
    description = error.description.lower()
    if error.error_code == 403 or "can't be deleted" in description:
        return DeleteOutcome.FORBIDDEN
    if error.error_code == 400 and "not found" in description:
        return DeleteOutcome.NOT_FOUND
    return DeleteOutcome.ERROR


class TelegramGateway:
    """Async Bot API client bound to one bot token."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        try:
            response = await self._client.post(
                method, json=payload or {}, timeout=timeout or self._timeout
            )
        except httpx.HTTPError as exc:
            raise TelegramApiError(
                method, mask_token(f"{type(exc).__name__}: {exc}", self._token)
            ) from exc

        try:
            envelope = TelegramResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise TelegramApiError(
                method,
                f"Unexpected response body (HTTP {response.status_code})",
                response.status_code,
            ) from exc

        if not envelope.ok:
            raise TelegramApiError(
                method,
                envelope.description or "Unknown error",
                envelope.error_code or response.status_code,
            )
        return envelope.result

    # ------------------------------------------------------------------
    # MessagingGateway contract
    # ------------------------------------------------------------------

    async def delete_message(self, chat_id: int, message_id: int) -> DeleteOutcome:
        try:
            await self._call(
                "deleteMessage", {"chat_id": chat_id, "message_id": message_id}
            )
        except TelegramApiError as e:
            outcome = classify_delete_error(e)
            logger.warning(
                "Delete failed [%s]: %s (%s/%s)",
                e.error_code,
                e.description,
                chat_id,
                message_id,
            )
            return outcome
        return DeleteOutcome.SUCCESS

    async def get_chat_member_role(
        self, chat_id: int, user_id: int
    ) -> ChatMemberRole | None:
        try:
            result = await self._call(
                "getChatMember", {"chat_id": chat_id, "user_id": user_id}
            )
            member = TelegramChatMember.model_validate(result)
        except (TelegramApiError, ValidationError) as e:
            logger.warning("Chat member lookup failed for %s in %s: %s", user_id, chat_id, e)
            return None
        return _ROLE_BY_STATUS.get(member.status, ChatMemberRole.OTHER)

    # ------------------------------------------------------------------
    # Lifecycle and replies
    # ------------------------------------------------------------------

    async def get_me(self) -> TelegramUser:
        return TelegramUser.model_validate(await self._call("getMe"))

    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout: int = 30,
        allowed_updates: list[str] | None = None,
    ) -> list[TelegramUpdate]:
        payload: dict[str, Any] = {
            "timeout": timeout,
            "allowed_updates": allowed_updates or ALLOWED_UPDATES,
        }
        if offset is not None:
            payload["offset"] = offset
        # Long polling holds the request open for `timeout` seconds.
        result = await self._call(
            "getUpdates", payload, timeout=timeout + self._timeout
        )
        updates: list[TelegramUpdate] = []
        for raw in result or []:
            try:
                updates.append(TelegramUpdate.model_validate(raw))
            except ValidationError:
                logger.warning(
                    "Skipping unparseable update %s", raw.get("update_id", "?")
                )
        return updates

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        thread_id: int | None = None,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
    ) -> bool:
        """Send a text message; failures are logged and reported as False."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if thread_id:
            payload["message_thread_id"] = thread_id
        if reply_to_message_id is not None:
            payload["reply_parameters"] = {
                "message_id": reply_to_message_id,
                "allow_sending_without_reply": True,
            }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            await self._call("sendMessage", payload)
        except TelegramApiError as e:
            logger.warning("Reply to chat %s failed: %s", chat_id, e)
            return False
        return True

    async def set_webhook(
        self,
        url: str,
        *,
        secret_token: str | None = None,
        drop_pending_updates: bool = False,
    ) -> None:
        payload: dict[str, Any] = {
            "url": url,
            "allowed_updates": ALLOWED_UPDATES,
            "drop_pending_updates": drop_pending_updates,
            # One connection at a time keeps updates in arrival order
            "max_connections": 1,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        await self._call("setWebhook", payload)

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> None:
        await self._call(
            "deleteWebhook", {"drop_pending_updates": drop_pending_updates}
        )
