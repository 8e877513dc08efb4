"""Telegram transport: Bot API gateway, commands, update intake."""

from .gateway import TelegramGateway, classify_delete_error
from .handler import Handled, UpdateHandler
from .poller import UpdatePoller


__all__ = [
    "Handled",
    "TelegramGateway",
    "UpdateHandler",
    "UpdatePoller",
    "classify_delete_error",
]
