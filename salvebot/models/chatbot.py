"""Chatbot domain models."""

from datetime import datetime

from pydantic import BaseModel, Field


class ChatbotSettings(BaseModel):
    """Display and behavior settings for a chatbot widget."""

    welcome_message: str = ""
    theme: str = "light"
    position: str = "bottom-right"


class ChatbotStats(BaseModel):
    """Usage counters maintained by ingestion and analytics."""

    conversations_count: int = 0
    documents_count: int = 0
    last_active: datetime | None = None


class Chatbot(BaseModel):
    """Tenant-owned retrieval scope bound to a single domain."""

    chatbot_id: str
    owner_id: str
    name: str
    domain: str
    is_active: bool = True
    is_verified: bool = False
    settings: ChatbotSettings = Field(default_factory=ChatbotSettings)
    stats: ChatbotStats = Field(default_factory=ChatbotStats)
