"""Chat endpoint and analytics models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ChatRole = Literal["user", "assistant"]


class ChatRequest(BaseModel):
    """Visitor message posted by the widget."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=1000)
    session_id: str | None = Field(None, alias="sessionId")
    domain: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    """Answer returned to the widget."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    session_id: str = Field(..., alias="sessionId")
    confidence: float = Field(..., ge=0.0, le=1.0)


class ExchangeMetadata(BaseModel):
    """Retrieval details attached to an assistant message."""

    retrieved_chunks: list[str] = Field(default_factory=list)
    confidence: float | None = None


class ChatExchange(BaseModel):
    """One logged message of a chat session (append-only)."""

    exchange_id: str
    chatbot_id: str
    session_id: str
    role: ChatRole
    content: str
    timestamp: datetime
    metadata: ExchangeMetadata = Field(default_factory=ExchangeMetadata)
