"""
Newsletter Dispatcher: per-user digest assembly and batched delivery.
"""
import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Tuple

from newsdesk.core.entities import (
    DeliveryOutcome,
    DeliveryStatus,
    DigestEntry,
    NewsletterRun,
    RunStatus,
    Trigger,
    UserProfile,
)
from newsdesk.core.errors import MailerUnavailable, MailRejected, OrchestratorError, SystemUnavailable
from newsdesk.core.schemas import DryRunDiagnostics, NewsletterRunSummary
from newsdesk.delivery.base import Mailer
from newsdesk.delivery.composer import DigestComposer
from newsdesk.processing.content_gateway import ContentStoreGateway, ContentWindow
from newsdesk.processing.matcher import PersonalizationMatcher
from newsdesk.services.store import Store
from newsdesk.workflows.base import Workflow, utcnow
from newsdesk.workflows.diagnostics import DiagnosticHarness

logger = logging.getLogger(__name__)


def unique_profiles(profiles: List[UserProfile]) -> List[UserProfile]:
    """One entry per user, first occurrence wins."""
    seen = set()
    result = []
    for profile in profiles:
        if profile.user_id in seen:
            continue
        seen.add(profile.user_id)
        result.append(profile)
    return result


def delivery_status(outcomes: Dict[str, DeliveryOutcome]) -> RunStatus:
    attempted = [o for o in outcomes.values() if o.status is not DeliveryStatus.SKIPPED]
    failed = [o for o in attempted if o.status is DeliveryStatus.FAILED]
    if not failed:
        return RunStatus.COMPLETED_OK
    if len(failed) == len(attempted) and all(o.unreachable for o in failed):
        return RunStatus.FAILED
    return RunStatus.COMPLETED_WITH_ERRORS


class NewsletterDispatcher(Workflow):
    name = "newsletter"

    def __init__(
        self,
        store: Store,
        gateway: ContentStoreGateway,
        matcher: PersonalizationMatcher,
        mailer: Mailer,
        composer: DigestComposer,
        harness: DiagnosticHarness,
        *,
        window_hours: float = 24,
        batch_size: int = 10,
        rate_limit_delay: float = 1.0,
        delivery_timeout: float = 30.0,
    ):
        super().__init__(store)
        self.gateway = gateway
        self.matcher = matcher
        self.mailer = mailer
        self.composer = composer
        self.harness = harness
        self.window_hours = window_hours
        self.batch_size = max(1, batch_size)
        self.rate_limit_delay = rate_limit_delay
        self.delivery_timeout = delivery_timeout

    async def dispatch(self, trigger: Trigger) -> NewsletterRunSummary:
        if trigger is Trigger.TEST:
            return await self._dry_run()

        run = NewsletterRun(
            id=str(uuid.uuid4()),
            trigger=trigger,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
        )
        await self.store.start_newsletter_run(run)
        logger.info(f"[{self.name}] Started {trigger.value} run {run.id}")

        try:
            await self._deliver_all(run)
            if not await self.store.finalize_newsletter_run(run):
                logger.warning(f"[{self.name}] Run {run.id} was already finalized")
        except Exception as e:
            await self._abort(run, e)
            if isinstance(e, OrchestratorError):
                raise
            raise OrchestratorError("newsletter run failed unexpectedly") from e

        summary = NewsletterRunSummary(
            run_id=run.id,
            trigger=run.trigger,
            status=run.status,
            recipient_count=run.recipient_count,
            success_count=run.success_count,
            failure_count=run.failure_count,
            skipped_count=run.skipped_count,
            failures={
                user_id: outcome.reason or "unknown error"
                for user_id, outcome in run.deliveries.items()
                if outcome.status is DeliveryStatus.FAILED
            },
        )
        logger.info(
            f"[{self.name}] Run {run.id} finished {run.status.value}: "
            f"{run.success_count}/{run.recipient_count} sent, {run.skipped_count} skipped"
        )
        await self._audit(
            "newsletter_send",
            run.status.value,
            f"{run.trigger.value} newsletter finished",
            summary.model_dump(mode="json"),
        )
        return summary

    async def _window(self) -> ContentWindow:
        return await self.gateway.recent_window(utcnow() - timedelta(hours=self.window_hours))

    async def _deliver_all(self, run: NewsletterRun) -> None:
        window = await self._window()
        profiles = unique_profiles(await self.store.subscribed_profiles())
        digest_date = window.built_at.strftime("%Y-%m-%d")

        jobs: List[Tuple[UserProfile, List[DigestEntry]]] = []
        for profile in profiles:
            entries = self.matcher.digest_entries(profile, window)
            if not entries:
                run.deliveries[profile.user_id] = DeliveryOutcome(
                    profile.user_id, DeliveryStatus.SKIPPED, reason="empty digest"
                )
                continue
            jobs.append((profile, entries))

        logger.info(
            f"[{self.name}] {len(jobs)} digests to deliver, "
            f"{len(profiles) - len(jobs)} users skipped with empty digests"
        )

        # Send in batches with rate limiting
        for i in range(0, len(jobs), self.batch_size):
            batch = jobs[i:i + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._deliver_one(profile, entries, digest_date) for profile, entries in batch)
            )
            for outcome in outcomes:
                run.deliveries[outcome.user_id] = outcome

            if i + self.batch_size < len(jobs):
                await asyncio.sleep(self.rate_limit_delay)

        statuses = [o.status for o in run.deliveries.values()]
        run.success_count = statuses.count(DeliveryStatus.SENT)
        run.failure_count = statuses.count(DeliveryStatus.FAILED)
        run.skipped_count = statuses.count(DeliveryStatus.SKIPPED)
        run.recipient_count = run.success_count + run.failure_count
        run.status = delivery_status(run.deliveries)
        run.completed_at = utcnow()

    async def _deliver_one(
        self,
        profile: UserProfile,
        entries: List[DigestEntry],
        digest_date: str,
    ) -> DeliveryOutcome:
        items = tuple(entry.article_id for entry in entries)
        if not profile.email:
            return DeliveryOutcome(profile.user_id, DeliveryStatus.FAILED, reason="no email address", items=items)

        email = self.composer.compose(profile, digest_date, entries)
        try:
            await asyncio.wait_for(self.mailer.send(email), timeout=self.delivery_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Delivery to {profile.user_id} timed out")
            return DeliveryOutcome(profile.user_id, DeliveryStatus.FAILED, reason="timeout", unreachable=True, items=items)
        except MailerUnavailable as e:
            return DeliveryOutcome(profile.user_id, DeliveryStatus.FAILED, reason=f"mailer unavailable: {e}", unreachable=True, items=items)
        except MailRejected as e:
            return DeliveryOutcome(profile.user_id, DeliveryStatus.FAILED, reason=f"rejected: {e}", items=items)
        except Exception as e:
            logger.exception(f"[{self.name}] Unexpected delivery error for {profile.user_id}: {e}")
            return DeliveryOutcome(profile.user_id, DeliveryStatus.FAILED, reason=f"unexpected error: {e}", items=items)

        return DeliveryOutcome(profile.user_id, DeliveryStatus.SENT, items=items)

    async def _dry_run(self) -> NewsletterRunSummary:
        """
        Same selection and assembly as a real send, without the mailer and
        without persisting a run. Writes exactly one audit entry.
        """
        run_id = str(uuid.uuid4())
        report = await self.harness.probe()
        reachable = report.store_reachable

        would_send = 0
        assembly_errors = 0
        if reachable:
            try:
                window = await self._window()
                profiles = unique_profiles(await self.store.subscribed_profiles())
                digest_date = window.built_at.strftime("%Y-%m-%d")
                for profile in profiles:
                    entries = self.matcher.digest_entries(profile, window)
                    if not profile.email or not entries:
                        continue
                    try:
                        self.composer.compose(profile, digest_date, entries)
                    except Exception as e:
                        logger.exception(f"[{self.name}] Test assembly failed for {profile.user_id}: {e}")
                        assembly_errors += 1
                        continue
                    would_send += 1
            except SystemUnavailable as e:
                logger.error(f"[{self.name}] Store unreachable during test run: {e}")
                reachable = False

        diagnostics = DryRunDiagnostics(
            users_count=report.counts.users,
            content_count=report.counts.recent_content,
            content_topics_count=report.counts.topic_mappings,
            api_keys=report.api_key_presence,
            would_send=would_send,
            assembly_errors=assembly_errors,
            store_reachable=reachable,
            config_ok=report.config_ok,
        )
        if not reachable:
            status = RunStatus.FAILED
        elif assembly_errors:
            status = RunStatus.COMPLETED_WITH_ERRORS
        else:
            status = RunStatus.COMPLETED_OK

        logger.info(f"[{self.name}] Test run {run_id}: would send {would_send} digests")
        await self._audit(
            "newsletter_test",
            status.value,
            "test newsletter executed",
            {"run_id": run_id, **diagnostics.model_dump(mode="json")},
        )
        return NewsletterRunSummary(
            run_id=run_id,
            trigger=Trigger.TEST,
            status=status,
            recipient_count=would_send,
            diagnostics=diagnostics,
        )

    async def _abort(self, run: NewsletterRun, error: Exception) -> None:
        logger.error(f"[{self.name}] Run {run.id} aborted: {error}")
        run.status = RunStatus.FAILED
        run.completed_at = utcnow()
        if not await self._write_terminal(run.id, lambda: self.store.finalize_newsletter_run(run)):
            logger.error(f"[{self.name}] Run {run.id} left running")

        action = "newsletter_send" if isinstance(error, SystemUnavailable) else "internal_error"
        await self._audit(action, RunStatus.FAILED.value, str(error), {"run_id": run.id, "workflow": self.name})
