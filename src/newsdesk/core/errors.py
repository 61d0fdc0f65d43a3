"""
Error taxonomy for the orchestrator.

Run-level failures are raised to the caller. Unit-level failures (one source,
one recipient) are captured inline in run summaries and never raised.
"""


class OrchestratorError(Exception):
    """Base class; also used for unexpected internal failures reported to callers."""


class Conflict(OrchestratorError):
    """A run of the same kind is already active."""


class ValidationError(OrchestratorError):
    """Malformed or duplicate input; corrected input is required."""


class Unauthorized(OrchestratorError):
    """Requester lacks ownership or scope for a mutation."""


class SystemUnavailable(OrchestratorError):
    """A required collaborator (store, mailer, scraper) is wholly unreachable."""


class ScrapeError(Exception):
    """
    Unit-level scraper failure for a single source.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MailerUnavailable(Exception):
    """The mail transport could not be reached at all."""


class MailRejected(Exception):
    """The mail transport was reached but refused this recipient or message."""
