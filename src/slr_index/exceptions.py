"""Exception hierarchy for the SLR semantic index.

Chunking and embedding raise these directly. The indexing service and the
document pipeline catch the embedding/vector-store failures and convert them
into counters or typed results, so only configuration problems escape them.
"""

from __future__ import annotations

from typing import Any


class SlrIndexError(Exception):
    """Base class for all errors raised by the semantic index.

    Attributes:
        message: Human-readable error description
        context: Optional diagnostic payload (ids, upstream response, ...)
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ConfigurationError(SlrIndexError):
    """Required configuration (e.g. the embedding API key) is missing."""


class BatchSizeError(SlrIndexError, ValueError):
    """Too many texts were passed to a single embedding call."""


class ProviderError(SlrIndexError):
    """The embedding provider answered with a non-success response.

    Attributes:
        status_code: Upstream HTTP status code
        body: Raw upstream response body
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message, {"status_code": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class VectorStoreError(SlrIndexError):
    """A vector table could not be opened, created or written."""


class NotFoundError(SlrIndexError):
    """A Study or Document id does not exist in the catalog."""


class ExtractionFailedError(SlrIndexError):
    """PDF text extraction produced no usable text."""


class NoChunksGeneratedError(SlrIndexError):
    """Chunking extracted text produced an empty chunk sequence."""
