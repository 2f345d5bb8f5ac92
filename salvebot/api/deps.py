"""FastAPI dependencies resolving services from the application container."""

from fastapi import Request

from salvebot.chat.service import ChatService
from salvebot.container import ServiceContainer
from salvebot.ingestion.service import DocumentService


def get_container(request: Request) -> ServiceContainer:
    """Service container attached to the app by create_app()."""
    container: ServiceContainer = request.app.state.container
    return container


def get_chat_service(request: Request) -> ChatService:
    return get_container(request).chat


def get_document_service(request: Request) -> DocumentService:
    return get_container(request).documents
