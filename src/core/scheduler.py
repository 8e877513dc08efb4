"""Background retention sweep using APScheduler.

One interval job turns due schedule entries into delete calls:
- every ``interval_seconds`` (default 5s) it asks the engine for at most
  ``batch_limit`` (default 50) due deletions,
- deletes each through the gateway,
- and drops the bookkeeping for every attempted item, whatever the outcome,
  persisting once per batch.

The job never runs concurrently with itself (``max_instances=1``) and missed
ticks are coalesced into one.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import (  # type: ignore[import-untyped]
    AsyncIOScheduler,
)
from apscheduler.triggers.interval import (  # type: ignore[import-untyped]
    IntervalTrigger,
)

from core.error_handler import set_correlation_id
from schemas.retention import MessageRef
from services.retention.engine import RetentionEngine
from services.retention.interfaces import DeleteOutcome, MessagingGateway


logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "retention_sweep"
DEFAULT_SWEEP_INTERVAL_SECONDS = 5.0
DEFAULT_SWEEP_BATCH_LIMIT = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class SweepReport:
    """Result of one sweep tick."""

    due: int = 0
    outcomes: dict[MessageRef, DeleteOutcome] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def deleted(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.ok)


class SweepLoop:
    """Cancellable periodic sweep with an explicit tick contract."""

    def __init__(
        self,
        engine: RetentionEngine,
        gateway: MessagingGateway,
        *,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        batch_limit: int = DEFAULT_SWEEP_BATCH_LIMIT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.engine = engine
        self.gateway = gateway
        self.interval_seconds = interval_seconds
        self.batch_limit = batch_limit
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None
        self._stopping = False
        self._ticks = itertools.count(1)
        self._current: asyncio.Task[SweepReport] | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def tick(self, now: datetime | None = None) -> SweepReport:
        """Process one batch of due deletions."""
        due = await self.engine.sweep_due(now or self._clock(), self.batch_limit)
        report = SweepReport(due=len(due))
        if not due:
            return report

        attempted: list[MessageRef] = []
        try:
            for entry in due:
                if self._stopping:
                    break
                ref = entry.ref
                # Pinned (or otherwise released) since the batch was read.
                if self.engine.scheduled_for(ref) is None:
                    continue
                attempted.append(ref)
                outcome = await self.gateway.delete_message(ref.chat_id, ref.message_id)
                report.outcomes[ref] = outcome
        finally:
            # A delete that raised still counts as attempted.
            await self.engine.complete_deletions(attempted)

        logger.info(
            "Sweep processed %d of %d due deletion(s): %d deleted",
            report.attempted,
            report.due,
            report.deleted,
        )
        return report

    async def run_tick(self) -> SweepReport | None:
        """Scheduled job: one tick, with failures logged instead of raised."""
        set_correlation_id(f"sweep:{next(self._ticks)}")
        self._current = asyncio.current_task()  # type: ignore[assignment]
        try:
            return await self.tick()
        except Exception as e:
            logger.error(f"Retention sweep failed: {e}", exc_info=True)
            return None
        finally:
            self._current = None
            set_correlation_id(None)

    def start(self) -> AsyncIOScheduler:
        """Register the sweep job and start the scheduler on the running loop."""
        self._stopping = False
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.run_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Retention sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            "Sweep scheduled every %ss, at most %d deletion(s) per tick",
            self.interval_seconds,
            self.batch_limit,
        )
        return self._scheduler

    def shutdown(self) -> None:
        """Stop scheduling ticks; a running tick stops after its current delete."""
        self._stopping = True
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Sweep scheduler shut down")
        self._scheduler = None

    async def wait_idle(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for an in-flight tick to finish."""
        task = self._current
        if task is None or task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=timeout)
        return bool(done)

