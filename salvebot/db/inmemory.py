"""In-memory implementations of repository interfaces."""

import math
from datetime import datetime

from salvebot.db.repositories import RetryAfter
from salvebot.errors import InvalidStatusTransition
from salvebot.models.chat import ChatExchange
from salvebot.models.chatbot import Chatbot
from salvebot.models.documents import Document, DocumentChunk, DocumentStatus
from salvebot.models.tenant import Tenant


class InMemoryTenantRepository:
    """In-memory implementation of TenantRepository."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        """Get tenant by ID."""
        return self._tenants.get(tenant_id)

    async def save_tenant(self, tenant: Tenant) -> None:
        """Create or replace a tenant."""
        self._tenants[tenant.tenant_id] = tenant


class InMemoryChatbotRepository:
    """In-memory implementation of ChatbotRepository."""

    def __init__(self) -> None:
        self._chatbots: dict[str, Chatbot] = {}

    async def get_chatbot(self, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID."""
        chatbot = self._chatbots.get(chatbot_id)
        return chatbot.model_copy(deep=True) if chatbot else None

    async def get_owned_chatbot(self, tenant_id: str, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID if owned by tenant."""
        chatbot = self._chatbots.get(chatbot_id)

        # Enforce tenancy
        if chatbot is None or chatbot.owner_id != tenant_id:
            return None

        return chatbot.model_copy(deep=True)

    async def list_chatbots(self, tenant_id: str) -> list[Chatbot]:
        """List chatbots owned by tenant."""
        return [
            chatbot.model_copy(deep=True)
            for chatbot in self._chatbots.values()
            if chatbot.owner_id == tenant_id
        ]

    async def save_chatbot(self, chatbot: Chatbot) -> None:
        """Create or replace a chatbot."""
        self._chatbots[chatbot.chatbot_id] = chatbot.model_copy(deep=True)

    async def adjust_document_count(self, chatbot_id: str, delta: int) -> None:
        """Adjust document counter."""
        chatbot = self._chatbots.get(chatbot_id)
        if chatbot is None:
            return
        chatbot.stats.documents_count = max(0, chatbot.stats.documents_count + delta)

    async def record_conversation(self, chatbot_id: str, at: datetime) -> None:
        """Increment conversation counter and set last-active."""
        chatbot = self._chatbots.get(chatbot_id)
        if chatbot is None:
            return
        chatbot.stats.conversations_count += 1
        chatbot.stats.last_active = at


class InMemoryDocumentRepository:
    """In-memory implementation of DocumentRepository."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}

    async def create_document(self, document: Document) -> None:
        """Persist a new document."""
        self._documents[document.document_id] = document

    async def get_document(self, tenant_id: str, document_id: str) -> Document | None:
        """Get document by ID."""
        document = self._documents.get(document_id)

        # Enforce tenancy
        if document is None or document.tenant_id != tenant_id:
            return None

        return document

    async def list_documents(self, chatbot_id: str) -> list[Document]:
        """List documents of a chatbot, oldest first."""
        results = [doc for doc in self._documents.values() if doc.chatbot_id == chatbot_id]
        results.sort(key=lambda doc: doc.uploaded_at)
        return results

    async def update_document(self, document: Document) -> bool:
        """Store a status change."""
        stored = self._documents.get(document.document_id)
        if stored is None:
            return False

        if stored.status != "processing" and stored.status != document.status:
            raise InvalidStatusTransition(document.document_id, stored.status, document.status)

        self._documents[document.document_id] = document
        return True

    async def delete_document(self, tenant_id: str, document_id: str) -> DocumentStatus | None:
        """Delete a document record, returning the status it had."""
        document = self._documents.get(document_id)
        if document is None or document.tenant_id != tenant_id:
            return None

        del self._documents[document_id]
        return document.status


class InMemoryChunkRepository:
    """In-memory implementation of ChunkRepository."""

    def __init__(self) -> None:
        self._chunks: dict[str, dict[int, DocumentChunk]] = {}

    async def put_chunk(self, chunk: DocumentChunk) -> None:
        """Persist a single chunk."""
        by_ordinal = self._chunks.setdefault(chunk.document_id, {})
        if chunk.ordinal in by_ordinal:
            raise ValueError(f"Chunk {chunk.chunk_id} already exists")
        by_ordinal[chunk.ordinal] = chunk

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        """List chunks ordered by ordinal."""
        by_ordinal = self._chunks.get(document_id, {})
        return [by_ordinal[ordinal] for ordinal in sorted(by_ordinal)]

    async def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of a document."""
        removed = self._chunks.pop(document_id, {})
        return len(removed)


class InMemoryChatExchangeRepository:
    """In-memory implementation of ChatExchangeRepository."""

    def __init__(self) -> None:
        self._exchanges: list[ChatExchange] = []

    async def append_exchange(self, exchange: ChatExchange) -> None:
        """Append one message."""
        self._exchanges.append(exchange)

    async def list_exchanges(self, chatbot_id: str, session_id: str) -> list[ChatExchange]:
        """List messages of a session."""
        return [
            exchange
            for exchange in self._exchanges
            if exchange.chatbot_id == chatbot_id and exchange.session_id == session_id
        ]


class InMemoryBlobStore:
    """In-memory implementation of BlobStore."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str]] = {}

    async def put_blob(self, key: str, data: bytes, media_type: str) -> None:
        """Store bytes under key."""
        self._blobs[key] = (data, media_type)

    async def get_blob(self, key: str) -> bytes | None:
        """Fetch bytes."""
        entry = self._blobs.get(key)
        return entry[0] if entry else None

    async def delete_blob(self, key: str) -> None:
        """Delete bytes."""
        self._blobs.pop(key, None)


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using a token bucket per key.

    Each key holds up to max_requests tokens, refilled continuously at
    max_requests per window_seconds.
    """

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Bucket capacity (burst size)
            window_seconds: Time to refill an empty bucket (default 60)
        """
        self._capacity = float(max_requests)
        self._refill_per_second = max_requests / window_seconds
        self._buckets: dict[str, tuple[float, datetime]] = {}

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        tokens, last_seen = self._buckets.get(key, (self._capacity, now))

        # Refill since last request
        elapsed = max(0.0, (now - last_seen).total_seconds())
        tokens = min(self._capacity, tokens + elapsed * self._refill_per_second)

        if tokens < 1.0:
            self._buckets[key] = (tokens, now)
            seconds = math.ceil((1.0 - tokens) / self._refill_per_second)
            return RetryAfter(seconds=max(1, seconds))

        self._buckets[key] = (tokens - 1.0, now)
        return None
