"""Error taxonomy for the chat, ingestion and retrieval paths."""


class SalvebotError(Exception):
    """Base class for all service errors."""


class GatewayError(SalvebotError):
    """An embedding or completion call failed (network, timeout, provider error)."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class AccessDenied(SalvebotError):
    """A chat request failed the access gate.

    ``reason`` is user-facing and surfaced verbatim; ``status_category`` is one
    of ``not_found``, ``forbidden`` or ``server_error``.
    """

    def __init__(self, reason: str, status_category: str = "forbidden") -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_category = status_category


class IngestionFailure(SalvebotError):
    """Terminal failure while chunking or embedding an uploaded document."""

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(f"document {document_id}: {message}")
        self.document_id = document_id
        self.message = message


class RetrievalFailure(SalvebotError):
    """A chat request could not be answered (chunk loading or a pipeline stage)."""

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"retrieval stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


class RetrievalTransientFailure(RetrievalFailure):
    """A gateway call failed during classify, rewrite, embed or generate."""


class AnalyticsFailure(SalvebotError):
    """An analytics write failed. Always logged and swallowed."""


class InvalidStatusTransition(SalvebotError):
    """A document status change other than processing->ready|error."""

    def __init__(self, document_id: str, current: str, target: str) -> None:
        super().__init__(f"document {document_id}: cannot move from {current} to {target}")
        self.document_id = document_id
        self.current = current
        self.target = target


class DocumentRejected(SalvebotError):
    """An upload failed validation (unknown chatbot, media type, size)."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
