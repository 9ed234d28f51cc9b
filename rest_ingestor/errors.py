from typing import Optional


class IngestorError(Exception):
    """
    Base class for ingestion failures.

    Attributes:
        message:           Human-readable error message.
        records_processed: Records written before the failure.
        requests_made:     REST requests issued before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        records_processed: int = 0,
        requests_made: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.records_processed = records_processed
        self.requests_made = requests_made

    def with_progress(
        self, records_processed: int, requests_made: int
    ) -> "IngestorError":
        self.records_processed = records_processed
        self.requests_made = requests_made
        return self

    def __str__(self) -> str:
        return self.message


class ConfigurationError(IngestorError, ValueError):
    """Bad definition: missing layout keys, malformed or unknown directives,
    field maps that reference unknown destination columns."""


class TransportError(IngestorError):
    """Network-level failure while fetching a page."""

    def __init__(self, message: str, *, url: Optional[str] = None, **kw):
        super().__init__(message, **kw)
        self.url = url


class MalformedResponseError(IngestorError, ValueError):
    """Response body is not a JSON object, or results are not a list."""


class DirectiveError(IngestorError, ValueError):
    """A transform or verify directive failed for a single value."""
