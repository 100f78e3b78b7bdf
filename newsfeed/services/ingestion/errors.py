"""
Error taxonomy for the ingestion pipeline.

Only AllSourcesFailed is meant to reach callers of the aggregator; everything
else is contained per feed or per attempt.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AttemptErrorKind(str, Enum):
    """Why a single fetch attempt failed."""
    TIMEOUT = "timeout"
    HTTP_STATUS = "httpStatus"
    INVALID_CONTENT = "invalidContent"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FetchAttemptError:
    """A failed fetch attempt. Recorded for diagnostics, never raised."""
    kind: AttemptErrorKind
    detail: Optional[str] = None

    @classmethod
    def timeout(cls) -> "FetchAttemptError":
        return cls(AttemptErrorKind.TIMEOUT)

    @classmethod
    def http_status(cls, code: int) -> "FetchAttemptError":
        return cls(AttemptErrorKind.HTTP_STATUS, str(code))

    @classmethod
    def invalid_content(cls) -> "FetchAttemptError":
        return cls(AttemptErrorKind.INVALID_CONTENT)

    @classmethod
    def unknown(cls, message: str) -> "FetchAttemptError":
        return cls(AttemptErrorKind.UNKNOWN, message or "error")

    def __str__(self) -> str:
        if self.detail is None:
            return self.kind.value
        return f"{self.kind.value}:{self.detail}"


class IngestionError(Exception):
    """Base class for pipeline errors."""


class ParseError(IngestionError):
    """Feed content is not parseable, or structurally expected items are all invalid."""


class AllSourcesFailed(IngestionError):
    """Raised when not a single feed could be fetched and parsed."""

    MAX_LISTED_FEEDS = 5

    def __init__(self, errors: list, health: Optional[dict] = None):
        self.errors = list(errors)
        self.health = dict(health or {})  # Per-feed health of the failed run
        super().__init__(self.build_message(self.errors))

    @classmethod
    def build_message(cls, errors: list) -> str:
        entries = [
            f"{error.feed_name} ({', '.join(error.attempt_errors) or 'unknown error'})"
            for error in errors[: cls.MAX_LISTED_FEEDS]
        ]
        message = "Could not fetch from any source."
        if entries:
            message += " Diagnostics: " + "; ".join(entries)
        if len(errors) > cls.MAX_LISTED_FEEDS:
            message += "..."
        return message
