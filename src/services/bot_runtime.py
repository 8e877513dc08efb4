"""Bot lifecycle: wires settings, gateway, engine, intake and sweep together.

``start`` loads the persisted state and begins taking updates (long polling or
a registered webhook) and sweeping due deletions. ``stop`` halts intake and the
sweep, gives in-flight work a bounded grace period, then flushes the snapshot
one last time and closes the HTTP client.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from core.config import Settings, validate_startup_settings
from core.scheduler import SweepLoop
from services.retention.engine import RetentionEngine
from services.retention.snapshot_store import SnapshotStore
from services.telegram.gateway import TelegramGateway
from services.telegram.handler import UpdateHandler
from services.telegram.poller import UpdatePoller


logger = logging.getLogger(__name__)


class BotRuntime:
    def __init__(
        self, settings: Settings, *, gateway: TelegramGateway | None = None
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.engine: RetentionEngine | None = None
        self.handler: UpdateHandler | None = None
        self.sweeper: SweepLoop | None = None
        self.poller: UpdatePoller | None = None
        self._poll_task: asyncio.Task[None] | None = None
        # Webhook deliveries are handled one at a time, in the order received
        self.intake_lock = asyncio.Lock()
        self.running = False

    @property
    def update_mode(self) -> str:
        return self.settings.UPDATE_MODE

    async def start(self) -> None:
        settings = self.settings
        validate_startup_settings(settings)

        if self.gateway is None:
            self.gateway = TelegramGateway(
                settings.TELEGRAM_BOT_TOKEN,
                base_url=settings.TELEGRAM_API_BASE_URL,
                timeout=settings.TELEGRAM_REQUEST_TIMEOUT_SECONDS,
            )

        store = SnapshotStore(settings.STATE_PATH)
        self.engine = RetentionEngine.from_store(self.gateway, store)
        logger.info("Retention state loaded: %s", self.engine.stats())

        me = await self.gateway.get_me()
        logger.info("Bot started: @%s (%s)", me.username, me.id)

        self.handler = UpdateHandler(
            self.engine,
            self.gateway,
            allowed_chat_ids=settings.allowed_chat_ids,
            bot_username=me.username,
            automatic_forward_policy=settings.AUTOMATIC_FORWARD_POLICY,
            forwarded_message_policy=settings.FORWARDED_MESSAGE_POLICY,
        )

        self.sweeper = SweepLoop(
            self.engine,
            self.gateway,
            interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
            batch_limit=settings.SWEEP_BATCH_LIMIT,
        )
        self.sweeper.start()

        if settings.UPDATE_MODE == "webhook":
            assert settings.WEBHOOK_URL is not None
            await self.gateway.set_webhook(
                settings.WEBHOOK_URL,
                secret_token=settings.WEBHOOK_SECRET,
                drop_pending_updates=settings.DROP_PENDING_UPDATES,
            )
            logger.info("Webhook registered")
        else:
            self.poller = UpdatePoller(
                self.gateway,
                self.handler,
                timeout=settings.POLL_TIMEOUT_SECONDS,
                retry_seconds=settings.POLL_RETRY_SECONDS,
                drop_pending_updates=settings.DROP_PENDING_UPDATES,
            )
            self._poll_task = asyncio.create_task(
                self.poller.run(), name="telegram-poller"
            )

        self.running = True

    async def stop(self) -> None:
        """Stop intake and sweeping, then flush state and release the client."""
        self.running = False
        grace = self.settings.SHUTDOWN_GRACE_SECONDS

        if self.poller is not None:
            self.poller.stop()
        if self.sweeper is not None:
            self.sweeper.shutdown()

        if self._poll_task is not None:
            done, _ = await asyncio.wait({self._poll_task}, timeout=grace)
            if not done:
                logger.warning("Update poller did not stop within %ss", grace)
                self._poll_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._poll_task
            elif not self._poll_task.cancelled() and self._poll_task.exception():
                logger.error(
                    "Update poller exited with error: %s", self._poll_task.exception()
                )
            self._poll_task = None

        if self.sweeper is not None and not await self.sweeper.wait_idle(grace):
            logger.warning("Sweep tick still running after %ss", grace)

        if self.engine is not None:
            await self.engine.flush()
        if self.gateway is not None:
            await self.gateway.aclose()
        logger.info("Bot stopped")
