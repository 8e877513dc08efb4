"""Webhook intake for Telegram updates."""

import hmac
import logging
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from dependencies.runtime import RuntimeDep
from schemas.telegram import TelegramUpdate


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["telegram"])

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.post("/webhook")
async def telegram_webhook(
    update: TelegramUpdate,
    runtime: RuntimeDep,
    secret_token: Annotated[str | None, Header(alias=SECRET_HEADER)] = None,
) -> dict[str, bool]:
    """Receive one update pushed by Telegram and hand it to the update handler."""
    if runtime is None or runtime.handler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot is not running",
        )
    if runtime.update_mode != "webhook":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    expected = runtime.settings.WEBHOOK_SECRET
    if expected and not hmac.compare_digest(
        (secret_token or "").encode(), expected.encode()
    ):
        logger.warning("Rejected webhook call with a bad secret token")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid secret token"
        )

    async with runtime.intake_lock:
        await runtime.handler.handle_update(update)
    return {"ok": True}
