"""Chat endpoint - POST /api/chat/{chatbot_id} (public, called by the widget)."""

from typing import Annotated

from fastapi import APIRouter, Depends

from salvebot.api.deps import get_chat_service
from salvebot.chat.service import ChatService
from salvebot.models.chat import ChatRequest, ChatResponse

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/{chatbot_id}", response_model=ChatResponse)
async def chat(
    chatbot_id: str,
    request: ChatRequest,
    service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatResponse:
    """Answer a visitor message.

    Errors:
        404/403 {"error": reason} when the access gate refuses the request
        500 {"error": "Failed to process message"} when retrieval fails
        429 with Retry-After when the client exceeds the chat quota
    """
    return await service.handle(chatbot_id, request)
