"""SQL implementations of repository interfaces (async SQLAlchemy)."""

from datetime import UTC, datetime

from sqlalchemy import case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salvebot.db.models import ChatExchange as ChatExchangeDB
from salvebot.db.models import Chatbot as ChatbotDB
from salvebot.db.models import Document as DocumentDB
from salvebot.db.models import DocumentChunk as DocumentChunkDB
from salvebot.db.models import Tenant as TenantDB
from salvebot.errors import InvalidStatusTransition
from salvebot.models.chat import ChatExchange, ExchangeMetadata
from salvebot.models.chatbot import Chatbot, ChatbotSettings, ChatbotStats
from salvebot.models.documents import ChunkMetadata, Document, DocumentChunk, DocumentStatus
from salvebot.models.tenant import Tenant


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class SqlTenantRepository:
    """SQL implementation of TenantRepository."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        """Get tenant by ID."""
        async with self._sessions() as session:
            row = await session.get(TenantDB, tenant_id)

        if row is None:
            return None

        return Tenant(
            tenant_id=row.tenant_id,
            email=row.email,
            name=row.name,
            subscription_status=row.subscription_status,
            trial_end_date=_as_utc(row.trial_end_date),
        )

    async def save_tenant(self, tenant: Tenant) -> None:
        """Create or replace a tenant."""
        async with self._sessions() as session:
            await session.merge(
                TenantDB(
                    tenant_id=tenant.tenant_id,
                    email=tenant.email,
                    name=tenant.name,
                    subscription_status=tenant.subscription_status,
                    trial_end_date=tenant.trial_end_date,
                )
            )
            await session.commit()


class SqlChatbotRepository:
    """SQL implementation of ChatbotRepository."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get_chatbot(self, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID."""
        async with self._sessions() as session:
            row = await session.get(ChatbotDB, chatbot_id)

        return self._to_domain(row) if row else None

    async def get_owned_chatbot(self, tenant_id: str, chatbot_id: str) -> Chatbot | None:
        """Get chatbot by ID if owned by tenant."""
        stmt = select(ChatbotDB).where(
            ChatbotDB.chatbot_id == chatbot_id,
            ChatbotDB.owner_id == tenant_id,
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()

        return self._to_domain(row) if row else None

    async def list_chatbots(self, tenant_id: str) -> list[Chatbot]:
        """List chatbots owned by tenant."""
        stmt = select(ChatbotDB).where(ChatbotDB.owner_id == tenant_id)
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._to_domain(row) for row in rows]

    async def save_chatbot(self, chatbot: Chatbot) -> None:
        """Create or replace a chatbot."""
        async with self._sessions() as session:
            await session.merge(
                ChatbotDB(
                    chatbot_id=chatbot.chatbot_id,
                    owner_id=chatbot.owner_id,
                    name=chatbot.name,
                    domain=chatbot.domain,
                    is_active=chatbot.is_active,
                    is_verified=chatbot.is_verified,
                    settings=chatbot.settings.model_dump(mode="json"),
                    conversations_count=chatbot.stats.conversations_count,
                    documents_count=chatbot.stats.documents_count,
                    last_active=chatbot.stats.last_active,
                )
            )
            await session.commit()

    async def adjust_document_count(self, chatbot_id: str, delta: int) -> None:
        """Adjust document counter atomically, clamped at zero."""
        new_count = ChatbotDB.documents_count + delta
        stmt = (
            update(ChatbotDB)
            .where(ChatbotDB.chatbot_id == chatbot_id)
            .values(documents_count=case((new_count < 0, 0), else_=new_count))
        )
        async with self._sessions() as session:
            await session.execute(stmt)
            await session.commit()

    async def record_conversation(self, chatbot_id: str, at: datetime) -> None:
        """Increment conversation counter and set last-active atomically."""
        stmt = (
            update(ChatbotDB)
            .where(ChatbotDB.chatbot_id == chatbot_id)
            .values(conversations_count=ChatbotDB.conversations_count + 1, last_active=at)
        )
        async with self._sessions() as session:
            await session.execute(stmt)
            await session.commit()

    @staticmethod
    def _to_domain(row: ChatbotDB) -> Chatbot:
        return Chatbot(
            chatbot_id=row.chatbot_id,
            owner_id=row.owner_id,
            name=row.name,
            domain=row.domain,
            is_active=row.is_active,
            is_verified=row.is_verified,
            settings=ChatbotSettings.model_validate(row.settings or {}),
            stats=ChatbotStats(
                conversations_count=row.conversations_count,
                documents_count=row.documents_count,
                last_active=_as_utc(row.last_active),
            ),
        )


class SqlDocumentRepository:
    """SQL implementation of DocumentRepository."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def create_document(self, document: Document) -> None:
        """Persist a new document."""
        async with self._sessions() as session:
            session.add(
                DocumentDB(
                    document_id=document.document_id,
                    tenant_id=document.tenant_id,
                    chatbot_id=document.chatbot_id,
                    file_name=document.file_name,
                    media_type=document.media_type,
                    file_size=document.file_size,
                    uploaded_at=document.uploaded_at,
                    status=document.status,
                    chunk_ids=list(document.chunk_ids),
                    error_message=document.error_message,
                )
            )
            await session.commit()

    async def get_document(self, tenant_id: str, document_id: str) -> Document | None:
        """Get document by ID."""
        stmt = select(DocumentDB).where(
            DocumentDB.document_id == document_id,
            DocumentDB.tenant_id == tenant_id,
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()

        return self._to_domain(row) if row else None

    async def list_documents(self, chatbot_id: str) -> list[Document]:
        """List documents of a chatbot, oldest first."""
        stmt = (
            select(DocumentDB)
            .where(DocumentDB.chatbot_id == chatbot_id)
            .order_by(DocumentDB.uploaded_at, DocumentDB.document_id)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [self._to_domain(row) for row in rows]

    async def update_document(self, document: Document) -> bool:
        """Store a status change.

        The update only matches a row still processing (or already in the
        target status), so a concurrent delete or transition is detected.
        """
        stmt = (
            update(DocumentDB)
            .where(
                DocumentDB.document_id == document.document_id,
                DocumentDB.status.in_(("processing", document.status)),
            )
            .values(
                status=document.status,
                chunk_ids=list(document.chunk_ids),
                error_message=document.error_message,
            )
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount:
                return True

            current = await session.scalar(
                select(DocumentDB.status).where(DocumentDB.document_id == document.document_id)
            )

        if current is None:
            return False
        raise InvalidStatusTransition(document.document_id, current, document.status)

    async def delete_document(self, tenant_id: str, document_id: str) -> DocumentStatus | None:
        """Delete a document record, returning the status it had."""
        stmt = (
            delete(DocumentDB)
            .where(
                DocumentDB.document_id == document_id,
                DocumentDB.tenant_id == tenant_id,
            )
            .returning(DocumentDB.status)
        )
        async with self._sessions() as session:
            status = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()

        return status

    @staticmethod
    def _to_domain(row: DocumentDB) -> Document:
        return Document(
            document_id=row.document_id,
            tenant_id=row.tenant_id,
            chatbot_id=row.chatbot_id,
            file_name=row.file_name,
            media_type=row.media_type,
            file_size=row.file_size,
            uploaded_at=_as_utc(row.uploaded_at),
            status=row.status,
            chunk_ids=list(row.chunk_ids or []),
            error_message=row.error_message,
        )


class SqlChunkRepository:
    """SQL implementation of ChunkRepository."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def put_chunk(self, chunk: DocumentChunk) -> None:
        """Persist a single chunk. Chunks are immutable; a duplicate ID fails."""
        async with self._sessions() as session:
            session.add(
                DocumentChunkDB(
                    chunk_id=chunk.chunk_id,
                    document_id=chunk.document_id,
                    ordinal=chunk.ordinal,
                    text=chunk.text,
                    embedding=list(chunk.embedding),
                    page=chunk.metadata.page,
                    section=chunk.metadata.section,
                )
            )
            await session.commit()

    async def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        """List chunks ordered by ordinal."""
        stmt = (
            select(DocumentChunkDB)
            .where(DocumentChunkDB.document_id == document_id)
            .order_by(DocumentChunkDB.ordinal)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            DocumentChunk(
                chunk_id=row.chunk_id,
                document_id=row.document_id,
                ordinal=row.ordinal,
                text=row.text,
                embedding=list(row.embedding),
                metadata=ChunkMetadata(page=row.page, section=row.section),
            )
            for row in rows
        ]

    async def delete_chunks(self, document_id: str) -> int:
        """Delete every chunk of a document."""
        stmt = delete(DocumentChunkDB).where(DocumentChunkDB.document_id == document_id)
        async with self._sessions() as session:
            result = await session.execute(stmt)
            await session.commit()

        return int(result.rowcount or 0)


class SqlChatExchangeRepository:
    """SQL implementation of ChatExchangeRepository."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def append_exchange(self, exchange: ChatExchange) -> None:
        """Append one message."""
        async with self._sessions() as session:
            session.add(
                ChatExchangeDB(
                    exchange_id=exchange.exchange_id,
                    chatbot_id=exchange.chatbot_id,
                    session_id=exchange.session_id,
                    role=exchange.role,
                    content=exchange.content,
                    timestamp=exchange.timestamp,
                    retrieved_chunks=list(exchange.metadata.retrieved_chunks),
                    confidence=exchange.metadata.confidence,
                )
            )
            await session.commit()

    async def list_exchanges(self, chatbot_id: str, session_id: str) -> list[ChatExchange]:
        """List messages of a session."""
        stmt = (
            select(ChatExchangeDB)
            .where(
                ChatExchangeDB.chatbot_id == chatbot_id,
                ChatExchangeDB.session_id == session_id,
            )
            .order_by(ChatExchangeDB.timestamp)
        )
        async with self._sessions() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            ChatExchange(
                exchange_id=row.exchange_id,
                chatbot_id=row.chatbot_id,
                session_id=row.session_id,
                role=row.role,
                content=row.content,
                timestamp=_as_utc(row.timestamp),
                metadata=ExchangeMetadata(
                    retrieved_chunks=list(row.retrieved_chunks or []),
                    confidence=row.confidence,
                ),
            )
            for row in rows
        ]
