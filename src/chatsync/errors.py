"""Exception hierarchy for chatsync."""

from __future__ import annotations


class ChatsyncError(Exception):
    """Base class for all chatsync errors."""


class ConfigurationError(ChatsyncError):
    """Raised when required configuration (secrets, sources, stores) is missing."""


class UnsupportedDocumentTypeError(ChatsyncError):
    """Signals that a document type has no normalizer; callers treat it as a skip."""

    def __init__(self, document_type: str) -> None:
        self.document_type = document_type
        super().__init__(f"Unsupported document type: {document_type}")


class EmbeddingProviderError(ChatsyncError):
    """The embedding provider failed.

    ``transient`` errors (rate limits, network) may be retried; permanent ones
    (bad input) fail the document they belong to.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class StoreUnavailableError(ChatsyncError):
    """The vector store could not complete an operation."""


class SourceUnavailableError(ChatsyncError):
    """The CMS content source could not be read."""


class InvalidWebhookSignatureError(ChatsyncError):
    """Webhook signature header is missing or does not match the body."""


class DimensionMismatchError(ChatsyncError):
    """Embedding vectors do not match the dimension the store was built with."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
