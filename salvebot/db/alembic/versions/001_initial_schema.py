"""Initial schema: tenants, chatbots, documents, chunks, chat exchanges

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "tenant",
        sa.Column("tenant_id", sa.Text(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("subscription_status", sa.Text(), nullable=False),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "chatbot",
        sa.Column("chatbot_id", sa.Text(), primary_key=True),
        sa.Column("owner_id", sa.Text(), sa.ForeignKey("tenant.tenant_id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("conversations_count", sa.Integer(), nullable=False),
        sa.Column("documents_count", sa.Integer(), nullable=False),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_chatbot_owner", "chatbot", ["owner_id"])

    op.create_table(
        "document",
        sa.Column("document_id", sa.Text(), primary_key=True),
        sa.Column("tenant_id", sa.Text(), sa.ForeignKey("tenant.tenant_id"), nullable=False),
        sa.Column(
            "chatbot_id",
            sa.Text(),
            sa.ForeignKey("chatbot.chatbot_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("media_type", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("chunk_ids", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("idx_document_chatbot", "document", ["chatbot_id", "uploaded_at"])
    op.create_index("idx_document_tenant", "document", ["tenant_id"])

    op.create_table(
        "document_chunk",
        sa.Column("chunk_id", sa.Text(), primary_key=True),
        sa.Column("document_id", sa.Text(), nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=False),
        sa.Column("page", sa.Integer(), nullable=True),
        sa.Column("section", sa.Text(), nullable=True),
    )
    op.create_index("idx_chunk_document_ordinal", "document_chunk", ["document_id", "ordinal"])

    op.create_table(
        "chat_exchange",
        sa.Column("exchange_id", sa.Text(), primary_key=True),
        sa.Column("chatbot_id", sa.Text(), nullable=False),
        sa.Column("session_id", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("retrieved_chunks", sa.JSON(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
    )
    op.create_index(
        "idx_exchange_session", "chat_exchange", ["chatbot_id", "session_id", "timestamp"]
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_exchange_session", table_name="chat_exchange")
    op.drop_table("chat_exchange")
    op.drop_index("idx_chunk_document_ordinal", table_name="document_chunk")
    op.drop_table("document_chunk")
    op.drop_index("idx_document_tenant", table_name="document")
    op.drop_index("idx_document_chatbot", table_name="document")
    op.drop_table("document")
    op.drop_index("idx_chatbot_owner", table_name="chatbot")
    op.drop_table("chatbot")
    op.drop_table("tenant")
