"""
Scrape Orchestrator: single-flight ingestion runs fanned out over a fixed
worker pool.
"""
import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from newsdesk.core.entities import (
    OutcomeStatus,
    OwnerScope,
    RunStatus,
    ScrapeRun,
    Source,
    SourceOutcome,
    Trigger,
)
from newsdesk.core.errors import (
    Conflict,
    OrchestratorError,
    ScrapeError,
    SystemUnavailable,
    ValidationError,
)
from newsdesk.core.schemas import ScrapeRunSummary, SourceError
from newsdesk.ingestion.base import Scraper
from newsdesk.processing.content_gateway import ContentStoreGateway
from newsdesk.processing.registry import SourceRegistry
from newsdesk.services.store import Store
from newsdesk.workflows.base import Workflow, utcnow

logger = logging.getLogger(__name__)


def final_status(outcomes: Dict[str, SourceOutcome], cancelled: bool) -> RunStatus:
    if cancelled:
        return RunStatus.CANCELLED

    attempted = [o for o in outcomes.values() if o.attempted]
    errors = [o for o in attempted if o.status is OutcomeStatus.ERROR]
    if not errors:
        return RunStatus.COMPLETED_OK
    if len(errors) == len(attempted):
        return RunStatus.FAILED
    return RunStatus.COMPLETED_WITH_ERRORS


class ScrapeOrchestrator(Workflow):
    name = "scrape"

    def __init__(
        self,
        store: Store,
        registry: SourceRegistry,
        gateway: ContentStoreGateway,
        scraper: Scraper,
        *,
        pool_width: int = 4,
        source_timeout: float = 30.0,
        stale_after: timedelta = timedelta(minutes=120),
    ):
        super().__init__(store)
        self.registry = registry
        self.gateway = gateway
        self.scraper = scraper
        self.pool_width = max(1, pool_width)
        self.source_timeout = source_timeout
        self.stale_after = stale_after

    async def trigger_scrape(
        self,
        trigger: Trigger,
        scope: Optional[OwnerScope] = None,
    ) -> ScrapeRunSummary:
        """
        Run one scrape over every active source visible to `scope`
        (every source when scope is None).

        Raises Conflict if a run is already in progress, SystemUnavailable
        if the store or scraper is wholly unreachable.
        """
        if trigger is Trigger.TEST:
            raise ValidationError("scrape runs support manual and scheduled triggers only")

        await self._expire_stale_runs()

        run = ScrapeRun(
            id=str(uuid.uuid4()),
            trigger=trigger,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
        )
        if not await self.store.start_scrape_run(run):
            logger.warning(f"[{self.name}] Rejected {trigger.value} trigger: a scrape run is already running")
            raise Conflict("a scrape run is already running")

        logger.info(f"[{self.name}] Started {trigger.value} run {run.id}")
        try:
            outcomes = await self._fan_out(run, scope)
            return await self._finalize(run, outcomes)
        except Exception as e:
            await self._abort(run, e)
            if isinstance(e, OrchestratorError):
                raise
            raise OrchestratorError("scrape run failed unexpectedly") from e

    async def cancel(self, run_id: Optional[str] = None) -> Optional[str]:
        """
        Flag the running scrape for cancellation. Workers stop picking up new
        sources; sources already in flight finish and are merged.
        Returns the flagged run id, or None if nothing is running.
        """
        flagged = await self.store.request_scrape_cancel(run_id)
        if flagged is None:
            logger.info(f"[{self.name}] Cancel requested but no run is active")
            return None

        logger.info(f"[{self.name}] Cancellation requested for run {flagged}")
        await self._audit("scrape_cancel", "ok", "cancellation requested", {"run_id": flagged})
        return flagged

    async def _expire_stale_runs(self) -> None:
        cutoff = utcnow() - self.stale_after
        for run_id in await self.store.expire_stale_scrape_runs(cutoff, "abandoned"):
            await self._audit(
                "scrape_run",
                RunStatus.FAILED.value,
                "expired stale run",
                {"run_id": run_id, "started_before": cutoff.isoformat()},
            )

    async def _fan_out(self, run: ScrapeRun, scope: Optional[OwnerScope]) -> Dict[str, SourceOutcome]:
        sources: List[Source] = [source async for source in self.registry.list_active(scope)]
        logger.info(f"[{self.name}] Run {run.id}: {len(sources)} active sources, pool width {self.pool_width}")

        queue: asyncio.Queue = asyncio.Queue()
        for source in sources:
            queue.put_nowait(source)

        outcomes: Dict[str, SourceOutcome] = {}
        workers = [
            asyncio.create_task(self._worker(run, queue, outcomes))
            for _ in range(min(self.pool_width, len(sources)))
        ]
        results = await asyncio.gather(*workers, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

        # Keep catalog order in the persisted outcome map
        return {source.id: outcomes[source.id] for source in sources if source.id in outcomes}

    async def _worker(
        self,
        run: ScrapeRun,
        queue: asyncio.Queue,
        outcomes: Dict[str, SourceOutcome],
    ) -> None:
        while True:
            try:
                source = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if await self.store.is_cancel_requested(run.id):
                outcomes[source.id] = SourceOutcome.skipped(source.name, "cancelled")
                continue

            outcomes[source.id] = await self._scrape_source(source)

    async def _scrape_source(self, source: Source) -> SourceOutcome:
        try:
            candidates = await asyncio.wait_for(self.scraper.fetch(source), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Source '{source.name}' timed out after {self.source_timeout}s")
            return SourceOutcome.error(source.name, "timeout")
        except ScrapeError as e:
            logger.warning(f"[{self.name}] Source '{source.name}' failed: {e.reason}")
            return SourceOutcome.error(source.name, e.reason)
        except SystemUnavailable:
            raise
        except Exception as e:
            logger.exception(f"[{self.name}] Source '{source.name}' failed unexpectedly: {e}")
            return SourceOutcome.error(source.name, f"unexpected error: {e}")

        try:
            result = await self.gateway.ingest(source.id, candidates)
        except SystemUnavailable:
            raise
        except Exception as e:
            logger.exception(f"[{self.name}] Ingest failed for source '{source.name}': {e}")
            return SourceOutcome.error(source.name, f"ingest failed: {e}")

        return SourceOutcome.ok(source.name, len(result.inserted))

    async def _finalize(self, run: ScrapeRun, outcomes: Dict[str, SourceOutcome]) -> ScrapeRunSummary:
        cancelled = await self.store.is_cancel_requested(run.id)
        run.status = final_status(outcomes, cancelled)
        run.per_source_outcome = outcomes
        run.completed_at = utcnow()

        if not await self.store.finalize_scrape_run(run):
            # Another instance expired this run as stale while we were working
            stored = await self.store.get_scrape_run(run.id)
            if stored is not None:
                run.status = stored.status
            logger.warning(f"[{self.name}] Run {run.id} was already finalized as {run.status.value}")

        attempted = [o for o in outcomes.values() if o.attempted]
        summary = ScrapeRunSummary(
            run_id=run.id,
            trigger=run.trigger,
            status=run.status,
            total_new_articles=sum(o.new_articles for o in attempted),
            sources_processed=len(attempted),
            per_source_errors=[
                SourceError(source=o.source_name, reason=o.reason or "unknown error")
                for o in attempted
                if o.status is OutcomeStatus.ERROR
            ],
        )

        logger.info(
            f"[{self.name}] Run {run.id} finished {run.status.value}: "
            f"{summary.total_new_articles} new articles from {summary.sources_processed} sources, "
            f"{len(summary.per_source_errors)} errors"
        )
        await self._audit(
            "scrape_run",
            run.status.value,
            f"{run.trigger.value} scrape finished",
            {
                "run_id": run.id,
                "trigger": run.trigger.value,
                "total_articles": summary.total_new_articles,
                "sources_processed": summary.sources_processed,
                "errors": [e.model_dump() for e in summary.per_source_errors],
            },
        )
        return summary

    async def _abort(self, run: ScrapeRun, error: Exception) -> None:
        logger.error(f"[{self.name}] Run {run.id} aborted: {error}")
        run.status = RunStatus.FAILED
        run.failure_reason = str(error)
        run.completed_at = utcnow()
        if not await self._write_terminal(run.id, lambda: self.store.finalize_scrape_run(run)):
            # Stale-run expiry finalizes it on a later trigger
            logger.error(f"[{self.name}] Run {run.id} left running until it goes stale")

        action = "scrape_run" if isinstance(error, SystemUnavailable) else "internal_error"
        await self._audit(action, RunStatus.FAILED.value, str(error), {"run_id": run.id, "workflow": self.name})
