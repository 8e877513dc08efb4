"""Long-polling update intake (``getUpdates`` with a moving offset)."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from core.exceptions import TelegramApiError
from schemas.telegram import TelegramUpdate
from services.telegram.handler import UpdateHandler


logger = logging.getLogger(__name__)


class PollingGateway(Protocol):
    async def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout: int = 30,
        allowed_updates: list[str] | None = None,
    ) -> list[TelegramUpdate]: ...

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> None: ...


class UpdatePoller:
    """Fetches updates and hands them to the handler one at a time.

    Updates of a batch are handled sequentially so that message arrival order,
    which is the order of the count-cap windows, is preserved.
    """

    def __init__(
        self,
        gateway: PollingGateway,
        handler: UpdateHandler,
        *,
        timeout: int = 30,
        retry_seconds: float = 5.0,
        drop_pending_updates: bool = True,
    ) -> None:
        self._gateway = gateway
        self._handler = handler
        self._timeout = timeout
        self._retry_seconds = retry_seconds
        self._drop_pending_updates = drop_pending_updates
        self._offset: int | None = None
        self._stop = asyncio.Event()

    @property
    def offset(self) -> int | None:
        return self._offset

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        # Polling and a registered webhook are mutually exclusive.
        await self._gateway.delete_webhook(
            drop_pending_updates=self._drop_pending_updates
        )
        logger.info("Update polling started")

        while not self._stop.is_set():
            try:
                await self.poll_once()
            except TelegramApiError as e:
                logger.error("Telegram API Error: [%s] %s", e.error_code, e.description)
                await self._pause()
            except Exception as e:
                logger.error(f"Update polling failed: {e}", exc_info=True)
                await self._pause()

        logger.info("Update polling stopped")

    async def poll_once(self) -> int:
        """Fetch one batch and handle it; returns the number of updates."""
        updates = await self._fetch()
        for update in updates:
            # Advance first so a failing update is not redelivered forever.
            self._offset = update.update_id + 1
            await self._handler.handle_update(update)
        return len(updates)

    async def _fetch(self) -> list[TelegramUpdate]:
        fetch = asyncio.ensure_future(
            self._gateway.get_updates(offset=self._offset, timeout=self._timeout)
        )
        stop = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({fetch, stop}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            fetch.cancel()
            raise
        finally:
            stop.cancel()

        if not fetch.done():
            # Stopping: abandon the long poll; unconfirmed updates are redelivered.
            fetch.cancel()
            await asyncio.gather(fetch, return_exceptions=True)
            return []
        return fetch.result()

    async def _pause(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._retry_seconds)
        except TimeoutError:
            pass
