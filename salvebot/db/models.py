"""SQLAlchemy ORM models for tenants, chatbots, documents and chat logs."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Tenant(Base):
    """Tenant table - top-level tenancy boundary."""

    __tablename__ = "tenant"

    tenant_id: Mapped[str] = mapped_column(Text, primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    subscription_status: Mapped[str] = mapped_column(Text, nullable=False, default="inactive")
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    chatbots: Mapped[list["Chatbot"]] = relationship("Chatbot", back_populates="owner")


class Chatbot(Base):
    """Chatbot table - tenant-owned retrieval scope."""

    __tablename__ = "chatbot"
    __table_args__ = (Index("idx_chatbot_owner", "owner_id"),)

    chatbot_id: Mapped[str] = mapped_column(Text, primary_key=True)
    owner_id: Mapped[str] = mapped_column(Text, ForeignKey("tenant.tenant_id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    conversations_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    documents_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    owner: Mapped["Tenant"] = relationship("Tenant", back_populates="chatbots")
    documents: Mapped[list["Document"]] = relationship(
        "Document", back_populates="chatbot", cascade="all, delete-orphan"
    )


class Document(Base):
    """Document table - uploaded file metadata and processing status."""

    __tablename__ = "document"
    __table_args__ = (
        Index("idx_document_chatbot", "chatbot_id", "uploaded_at"),
        Index("idx_document_tenant", "tenant_id"),
    )

    document_id: Mapped[str] = mapped_column(Text, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(Text, ForeignKey("tenant.tenant_id"), nullable=False)
    chatbot_id: Mapped[str] = mapped_column(
        Text, ForeignKey("chatbot.chatbot_id", ondelete="CASCADE"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    media_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="processing")
    chunk_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    chatbot: Mapped["Chatbot"] = relationship("Chatbot", back_populates="documents")


class DocumentChunk(Base):
    """Document chunk table - embedded segments, removed with their document."""

    __tablename__ = "document_chunk"
    __table_args__ = (Index("idx_chunk_document_ordinal", "document_id", "ordinal"),)

    chunk_id: Mapped[str] = mapped_column(Text, primary_key=True)
    # No FK: chunks written before a failure stay as orphans until the
    # document is deleted
    document_id: Mapped[str] = mapped_column(Text, nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(JSON, nullable=False)
    page: Mapped[int | None] = mapped_column(Integer, nullable=True)
    section: Mapped[str | None] = mapped_column(Text, nullable=True)


class ChatExchange(Base):
    """Chat exchange table - append-only analytics log."""

    __tablename__ = "chat_exchange"
    __table_args__ = (Index("idx_exchange_session", "chatbot_id", "session_id", "timestamp"),)

    exchange_id: Mapped[str] = mapped_column(Text, primary_key=True)
    chatbot_id: Mapped[str] = mapped_column(Text, nullable=False)
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    retrieved_chunks: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
