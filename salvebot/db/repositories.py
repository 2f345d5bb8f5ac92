"""Repository protocol interfaces for data access.

Every record is addressed by explicit tenant/chatbot/document identifiers;
"list children of X" operations replace key-prefix scans.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from salvebot.models.chat import ChatExchange
from salvebot.models.chatbot import Chatbot
from salvebot.models.documents import Document, DocumentChunk, DocumentStatus
from salvebot.models.tenant import Tenant


class TenantRepository(Protocol):
    """Repository for tenant (business account) records."""

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        """Get tenant by ID.

        Args:
            tenant_id: Tenant ID

        Returns:
            Tenant or None if not found
        """
        ...

    async def save_tenant(self, tenant: Tenant) -> None:
        """Create or replace a tenant."""
        ...


class ChatbotRepository(Protocol):
    """Repository for chatbot records and their usage counters."""

    async def get_chatbot(self, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID regardless of owner (public chat path).

        Args:
            chatbot_id: Chatbot ID

        Returns:
            Chatbot or None if not found
        """
        ...

    async def get_owned_chatbot(self, tenant_id: str, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID only if owned by the tenant.

        Args:
            tenant_id: Owning tenant ID (enforces tenancy)
            chatbot_id: Chatbot ID

        Returns:
            Chatbot or None if missing or owned by another tenant
        """
        ...

    async def list_chatbots(self, tenant_id: str) -> list[Chatbot]:
        """List chatbots owned by a tenant."""
        ...

    async def save_chatbot(self, chatbot: Chatbot) -> None:
        """Create or replace a chatbot."""
        ...

    async def adjust_document_count(self, chatbot_id: str, delta: int) -> None:
        """Add delta to the document counter, never going below zero."""
        ...

    async def record_conversation(self, chatbot_id: str, at: datetime) -> None:
        """Increment the conversation counter and set last-active."""
        ...


class DocumentRepository(Protocol):
    """Repository for document metadata records."""

    async def create_document(self, document: Document) -> None:
        """Persist a new document (normally in processing state)."""
        ...

    async def get_document(self, tenant_id: str, document_id: str) -> Document | None:
        """Get document by ID.

        Args:
            tenant_id: Owning tenant ID (enforces tenancy)
            document_id: Document ID

        Returns:
            Document or None if missing or owned by another tenant
        """
        ...

    async def list_documents(self, chatbot_id: str) -> list[Document]:
        """List documents attached to a chatbot, oldest first."""
        ...

    async def update_document(self, document: Document) -> bool:
        """Store a status change.

        Returns:
            False if the document no longer exists

        Raises:
            InvalidStatusTransition: If the stored document already left processing
        """
        ...

    async def delete_document(self, tenant_id: str, document_id: str) -> DocumentStatus | None:
        """Delete a document record.

        Returns:
            Status of the removed record, or None if not found
        """
        ...


class ChunkRepository(Protocol):
    """Repository for embedded document chunks."""

    async def put_chunk(self, chunk: DocumentChunk) -> None:
        """Persist a single chunk. Chunks are immutable; storing an existing ID fails."""
        ...

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        """List chunks of a document ordered by ordinal."""
        ...

    async def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of a document. Returns number deleted."""
        ...


class ChatExchangeRepository(Protocol):
    """Append-only log of chat messages for analytics."""

    async def append_exchange(self, exchange: ChatExchange) -> None:
        """Append one message."""
        ...

    async def list_exchanges(self, chatbot_id: str, session_id: str) -> list[ChatExchange]:
        """List messages of a session in append order."""
        ...


class BlobStore(Protocol):
    """Raw uploaded file storage keyed by document ID."""

    async def put_blob(self, key: str, data: bytes, media_type: str) -> None:
        """Store bytes under key."""
        ...

    async def get_blob(self, key: str) -> bytes | None:
        """Fetch bytes or None if missing."""
        ...

    async def delete_blob(self, key: str) -> None:
        """Delete bytes (no-op if missing)."""
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
