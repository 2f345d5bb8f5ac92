"""Document domain models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from salvebot.errors import InvalidStatusTransition

DocumentStatus = Literal["processing", "ready", "error"]


def make_chunk_id(document_id: str, ordinal: int) -> str:
    """Stable chunk identifier derived from the parent document and ordinal."""
    return f"{document_id}_chunk_{ordinal}"


class Document(BaseModel):
    """Uploaded file metadata and processing status."""

    document_id: str
    tenant_id: str
    chatbot_id: str
    file_name: str
    media_type: str
    file_size: int
    uploaded_at: datetime
    status: DocumentStatus = "processing"
    chunk_ids: list[str] = Field(default_factory=list)
    error_message: str | None = None

    def mark_ready(self, chunk_ids: list[str]) -> "Document":
        """Return a copy in the ready state carrying its full chunk list."""
        if self.status != "processing":
            raise InvalidStatusTransition(self.document_id, self.status, "ready")
        if not chunk_ids:
            raise ValueError("a ready document must have at least one chunk")
        return self.model_copy(update={"status": "ready", "chunk_ids": list(chunk_ids)})

    def mark_error(self, message: str) -> "Document":
        """Return a copy in the terminal error state."""
        if self.status != "processing":
            raise InvalidStatusTransition(self.document_id, self.status, "error")
        return self.model_copy(update={"status": "error", "chunk_ids": [], "error_message": message})


class ChunkMetadata(BaseModel):
    """Approximate provenance of a chunk inside its source file."""

    page: int | None = None
    section: str | None = None


class DocumentChunk(BaseModel):
    """Retrievable segment of a document with its embedding."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    ordinal: int  # 0-based
    text: str
    embedding: list[float]
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
