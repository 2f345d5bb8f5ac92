"""Models package - re-exports for convenience."""

from salvebot.models.access import AccessDecision, DenialReason
from salvebot.models.chat import (
    ChatExchange,
    ChatRequest,
    ChatResponse,
    ChatRole,
    ExchangeMetadata,
)
from salvebot.models.chatbot import Chatbot, ChatbotSettings, ChatbotStats
from salvebot.models.common import new_id, utcnow
from salvebot.models.documents import (
    ChunkMetadata,
    Document,
    DocumentChunk,
    DocumentStatus,
    make_chunk_id,
)
from salvebot.models.tenant import SubscriptionStatus, Tenant

__all__ = [
    "AccessDecision",
    "ChatExchange",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "Chatbot",
    "ChatbotSettings",
    "ChatbotStats",
    "ChunkMetadata",
    "DenialReason",
    "Document",
    "DocumentChunk",
    "DocumentStatus",
    "ExchangeMetadata",
    "SubscriptionStatus",
    "Tenant",
    "make_chunk_id",
    "new_id",
    "utcnow",
]
