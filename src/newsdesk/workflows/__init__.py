"""
Workflows module - run orchestration for ingestion and delivery.
"""
from newsdesk.workflows.diagnostics import DiagnosticHarness
from newsdesk.workflows.factory import Newsroom, create_mailer, create_newsroom
from newsdesk.workflows.newsletter import NewsletterDispatcher
from newsdesk.workflows.scrape import ScrapeOrchestrator

__all__ = [
    "DiagnosticHarness",
    "NewsletterDispatcher",
    "Newsroom",
    "ScrapeOrchestrator",
    "create_mailer",
    "create_newsroom",
]
