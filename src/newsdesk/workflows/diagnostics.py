"""
Diagnostic Harness: read-only health report over every collaborator.
"""
import logging
from datetime import timedelta

from newsdesk.core.errors import SystemUnavailable
from newsdesk.core.schemas import ApiKeyPresence, SelfTestReport, SystemCounts
from newsdesk.services.config import Config
from newsdesk.services.store import Store
from newsdesk.workflows.base import Workflow, utcnow

logger = logging.getLogger(__name__)


class DiagnosticHarness(Workflow):
    name = "diagnostics"

    def __init__(self, store: Store, config: Config):
        super().__init__(store)
        self.config = config

    async def probe(self) -> SelfTestReport:
        """
        Build the report without writing anything. Counts are capped at
        PROBE_LIMIT so the probe stays cheap on large stores.
        """
        reachable = await self.store.ping()
        counts = SystemCounts()

        if reachable:
            limit = self.config.PROBE_LIMIT
            since = utcnow() - timedelta(hours=self.config.DIGEST_WINDOW_HOURS)
            try:
                counts = SystemCounts(
                    users=await self.store.count_subscribed_profiles(limit=limit),
                    recent_content=await self.store.count_articles(since=since, limit=limit),
                    topic_mappings=await self.store.count_topic_mappings(since=since, limit=limit),
                )
            except SystemUnavailable as e:
                logger.error(f"[{self.name}] Store became unreachable during probe: {e}")
                reachable = False

        return SelfTestReport(
            config_ok=self.config.config_ok(),
            store_reachable=reachable,
            counts=counts,
            api_key_presence=ApiKeyPresence(
                mailer=self.config.mailer_key_present,
                scraper=self.config.scraper_key_present,
            ),
            checked_at=utcnow(),
        )

    async def run_self_test(self) -> SelfTestReport:
        report = await self.probe()
        healthy = report.config_ok and report.store_reachable

        logger.info(
            f"[{self.name}] Self-test: config_ok={report.config_ok}, "
            f"store_reachable={report.store_reachable}, counts={report.counts.model_dump()}"
        )
        await self._audit(
            "self_test",
            "ok" if healthy else "failed",
            "self-test executed",
            report.model_dump(mode="json"),
        )
        return report
