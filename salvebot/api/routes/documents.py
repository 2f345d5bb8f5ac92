"""Document endpoints - upload, list, get and delete (tenant dashboard)."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import BaseModel

from salvebot.api.auth import get_current_tenant
from salvebot.api.deps import get_document_service
from salvebot.errors import DocumentRejected
from salvebot.ingestion.service import DocumentService
from salvebot.models.documents import Document, DocumentStatus

router = APIRouter(prefix="/api/documents", tags=["documents"])


class DocumentSummary(BaseModel):
    """Document metadata as shown on the dashboard."""

    document_id: str
    chatbot_id: str
    file_name: str
    media_type: str
    file_size: int
    uploaded_at: datetime
    status: DocumentStatus
    chunk_count: int
    error_message: str | None = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentSummary":
        return cls(
            document_id=document.document_id,
            chatbot_id=document.chatbot_id,
            file_name=document.file_name,
            media_type=document.media_type,
            file_size=document.file_size,
            uploaded_at=document.uploaded_at,
            status=document.status,
            chunk_count=len(document.chunk_ids),
            error_message=document.error_message,
        )


class UploadResponse(BaseModel):
    """Response for POST /api/documents/upload."""

    message: str
    document: DocumentSummary


class DocumentListResponse(BaseModel):
    """Response for GET /api/documents/chatbot/{chatbot_id}."""

    documents: list[DocumentSummary]


class DeleteResponse(BaseModel):
    """Response for DELETE /api/documents/{document_id}."""

    message: str


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: Annotated[UploadFile, File()],
    chatbot_id: Annotated[str, Form(alias="chatbotId", min_length=1)],
    tenant_id: Annotated[str, Depends(get_current_tenant)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> UploadResponse:
    """Upload a PDF, TXT or MD file; processing continues in the background."""
    data = await file.read()

    document = await service.upload(
        tenant_id,
        chatbot_id,
        file.filename or "upload",
        file.content_type,
        data,
    )

    return UploadResponse(
        message="File uploaded successfully. Processing started.",
        document=DocumentSummary.from_document(document),
    )


@router.get("/chatbot/{chatbot_id}", response_model=DocumentListResponse)
async def list_documents(
    chatbot_id: str,
    tenant_id: Annotated[str, Depends(get_current_tenant)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentListResponse:
    """List documents of one of the tenant's chatbots, oldest first."""
    documents = await service.list_for_chatbot(tenant_id, chatbot_id)
    return DocumentListResponse(documents=[DocumentSummary.from_document(doc) for doc in documents])


@router.get("/{document_id}", response_model=DocumentSummary)
async def get_document(
    document_id: str,
    tenant_id: Annotated[str, Depends(get_current_tenant)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentSummary:
    """Get a single document with its chunk count."""
    document = await service.get(tenant_id, document_id)
    if document is None:
        raise DocumentRejected("Document not found", status_code=status.HTTP_404_NOT_FOUND)

    return DocumentSummary.from_document(document)


@router.delete("/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str,
    tenant_id: Annotated[str, Depends(get_current_tenant)],
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DeleteResponse:
    """Delete a document together with its chunks and stored file."""
    deleted = await service.delete(tenant_id, document_id)
    if not deleted:
        raise DocumentRejected("Document not found", status_code=status.HTTP_404_NOT_FOUND)

    return DeleteResponse(message="Document deleted successfully")
