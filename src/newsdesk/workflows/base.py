"""
Contains base class for orchestrator workflows
"""
import asyncio
import logging
from abc import ABC
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from newsdesk.services.store import Store

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Workflow(ABC):
    """
    Shared plumbing for workflows that record their actions in the audit trail.
    """

    name: str
    finalize_attempts: int = 3
    finalize_retry_delay: float = 0.5

    def __init__(self, store: Store):
        self.store = store

    async def _audit(
        self,
        action: str,
        status: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append to system_logs. A failed write is logged, not raised."""
        try:
            await self.store.append_log(action, status, message, details)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to write audit entry '{action}': {e}")

    async def _write_terminal(self, run_id: str, write: Callable[[], Awaitable[bool]]) -> bool:
        """
        Best-effort terminal write for an aborted run, retried with a fixed delay.
        Returns False if every attempt failed.
        """
        for attempt in range(1, self.finalize_attempts + 1):
            try:
                await write()
                return True
            except Exception as e:
                logger.error(
                    f"[{self.name}] Attempt {attempt}/{self.finalize_attempts}: "
                    f"could not finalize run {run_id}: {e}"
                )
            if attempt < self.finalize_attempts:
                await asyncio.sleep(self.finalize_retry_delay)
        return False
