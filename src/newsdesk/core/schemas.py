"""
Pydantic schemas for validated input and run summaries returned to callers.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from newsdesk.core.entities import RunStatus, SourceKind, Trigger


class SourceDefinition(BaseModel):
    """
    Pydantic schema for a source registration request
    """
    name: str = Field(..., min_length=1, max_length=200)
    url: HttpUrl
    kind: SourceKind
    feed_url: Optional[HttpUrl] = None
    category: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class SourceError(BaseModel):
    source: str
    reason: str


class ScrapeRunSummary(BaseModel):
    run_id: str
    trigger: Trigger
    status: RunStatus
    total_new_articles: int = 0
    sources_processed: int = 0
    per_source_errors: List[SourceError] = []

    @property
    def success(self) -> bool:
        return self.status is not RunStatus.FAILED

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "run_id": self.run_id,
            "status": self.status.value,
            "total_articles": self.total_new_articles,
            "sources_processed": self.sources_processed,
            "errors": [error.model_dump() for error in self.per_source_errors],
        }


class ApiKeyPresence(BaseModel):
    mailer: bool
    scraper: bool


class SystemCounts(BaseModel):
    users: int = 0
    recent_content: int = 0
    topic_mappings: int = 0


class SelfTestReport(BaseModel):
    """
    Side-effect-free health snapshot of every collaborator.
    """
    config_ok: bool
    store_reachable: bool
    counts: SystemCounts
    api_key_presence: ApiKeyPresence
    checked_at: datetime

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": self.config_ok and self.store_reachable,
            "report": self.model_dump(mode="json"),
        }


class DryRunDiagnostics(BaseModel):
    users_count: int
    content_count: int
    content_topics_count: int
    api_keys: ApiKeyPresence
    would_send: int
    assembly_errors: int = 0
    store_reachable: bool
    config_ok: bool


class NewsletterRunSummary(BaseModel):
    run_id: str
    trigger: Trigger
    status: RunStatus
    recipient_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    failures: Dict[str, str] = {}
    diagnostics: Optional[DryRunDiagnostics] = None

    @property
    def success(self) -> bool:
        return self.status is not RunStatus.FAILED

    def to_response(self) -> Dict[str, Any]:
        if self.diagnostics is not None:
            return {
                "success": self.success,
                "run_id": self.run_id,
                "summary": {
                    "users_count": self.diagnostics.users_count,
                    "content_count": self.diagnostics.content_count,
                    "content_topics_count": self.diagnostics.content_topics_count,
                    "api_keys": self.diagnostics.api_keys.model_dump(),
                    "would_send": self.diagnostics.would_send,
                    "assembly_errors": self.diagnostics.assembly_errors,
                    "store_reachable": self.diagnostics.store_reachable,
                    "config_ok": self.diagnostics.config_ok,
                },
            }
        return {
            "success": self.success,
            "run_id": self.run_id,
            "status": self.status.value,
            "recipient_count": self.recipient_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }
