"""
Factory - wires collaborators and workflows together from configuration.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from newsdesk.delivery.base import Mailer
from newsdesk.delivery.composer import DigestComposer
from newsdesk.delivery.email_delivery import SmtpMailer
from newsdesk.delivery.file_delivery import FileMailer
from newsdesk.ingestion.base import Scraper
from newsdesk.ingestion.source_factory import create_scraper
from newsdesk.processing.classifier import KeywordTopicClassifier, TopicClassifier
from newsdesk.processing.content_gateway import ContentStoreGateway
from newsdesk.processing.matcher import PersonalizationMatcher
from newsdesk.processing.registry import SourceRegistry
from newsdesk.services.config import Config
from newsdesk.services.database import Database
from newsdesk.services.identity import Identity, ServiceTokenIdentity
from newsdesk.services.store import Store
from newsdesk.workflows.diagnostics import DiagnosticHarness
from newsdesk.workflows.newsletter import NewsletterDispatcher
from newsdesk.workflows.scrape import ScrapeOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Newsroom:
    """Everything a trigger surface (HTTP, CLI, scheduler) needs."""
    config: Config
    store: Store
    identity: Identity
    registry: SourceRegistry
    gateway: ContentStoreGateway
    matcher: PersonalizationMatcher
    orchestrator: ScrapeOrchestrator
    dispatcher: NewsletterDispatcher
    harness: DiagnosticHarness


def create_mailer(config: Config) -> Mailer:
    """
    Create the mail transport named by MAILER_BACKEND.

    Raises:
        ValueError: If the backend is unknown
    """
    backend = config.MAILER_BACKEND.lower()

    if backend == "smtp":
        return SmtpMailer(
            smtp_host=config.EMAIL_SMTP_HOST,
            smtp_port=config.EMAIL_SMTP_PORT,
            username=config.EMAIL_USERNAME,
            password=config.EMAIL_PASSWORD,
            sender=config.EMAIL_FROM,
            timeout=config.DELIVERY_TIMEOUT,
        )
    elif backend == "file":
        return FileMailer(
            output_dir=config.MAILER_OUTBOX_DIR,
            sender=config.EMAIL_FROM or "newsdesk@localhost",
        )
    else:
        raise ValueError(f"Unknown mailer backend: {backend}")


def create_newsroom(
    config: Config,
    *,
    store: Optional[Store] = None,
    scraper: Optional[Scraper] = None,
    mailer: Optional[Mailer] = None,
    classifier: Optional[TopicClassifier] = None,
    identity: Optional[Identity] = None,
) -> Newsroom:
    """
    Build the orchestrator from configuration. Any collaborator can be
    passed in to replace the configured default.
    """
    store = store or Database(config.DATABASE_PATH)
    scraper = scraper or create_scraper(config)
    mailer = mailer or create_mailer(config)
    classifier = classifier or KeywordTopicClassifier(config.topics)
    identity = identity or ServiceTokenIdentity(config.SERVICE_AUTH_TOKEN, config.USER_TOKENS)

    registry = SourceRegistry(store)
    gateway = ContentStoreGateway(store, classifier)
    matcher = PersonalizationMatcher(
        digest_size=config.DIGEST_SIZE,
        window_hours=config.DIGEST_WINDOW_HOURS,
        max_bonus=config.RECENCY_MAX_BONUS,
    )
    orchestrator = ScrapeOrchestrator(
        store,
        registry,
        gateway,
        scraper,
        pool_width=config.SCRAPE_POOL_WIDTH,
        source_timeout=config.SCRAPE_SOURCE_TIMEOUT,
        stale_after=timedelta(minutes=config.SCRAPE_RUN_STALE_MINUTES),
    )
    harness = DiagnosticHarness(store, config)

    preferences_url = None
    if config.API_BASE_URL:
        preferences_url = config.API_BASE_URL.rstrip("/") + "/preferences"
    dispatcher = NewsletterDispatcher(
        store,
        gateway,
        matcher,
        mailer,
        DigestComposer(config.email_colors, preferences_url),
        harness,
        window_hours=config.DIGEST_WINDOW_HOURS,
        batch_size=config.DELIVERY_BATCH_SIZE,
        rate_limit_delay=config.DELIVERY_RATE_LIMIT_DELAY,
        delivery_timeout=config.DELIVERY_TIMEOUT,
    )

    logger.info(
        f"Created newsroom: store={type(store).__name__}, scraper={type(scraper).__name__}, "
        f"mailer={getattr(mailer, 'name', type(mailer).__name__)}"
    )
    return Newsroom(
        config=config,
        store=store,
        identity=identity,
        registry=registry,
        gateway=gateway,
        matcher=matcher,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        harness=harness,
    )
