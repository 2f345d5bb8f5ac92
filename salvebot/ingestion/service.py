"""Document service - uploads, listing and deletion for tenant dashboards."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import PurePath

from pypdf.errors import PyPdfError

from salvebot.db.repositories import (
    BlobStore,
    ChatbotRepository,
    ChunkRepository,
    DocumentRepository,
)
from salvebot.errors import DocumentRejected, IngestionFailure, InvalidStatusTransition
from salvebot.ingestion.pipeline import IngestionPipeline
from salvebot.ingestion.preprocess import MARKDOWN, PDF, PLAIN_TEXT, extract_text
from salvebot.models.common import new_id, utcnow
from salvebot.models.documents import Document

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_MEDIA_TYPES = (PDF, PLAIN_TEXT, MARKDOWN)
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_EXTENSION_MEDIA_TYPES = {
    ".pdf": PDF,
    ".txt": PLAIN_TEXT,
    ".md": MARKDOWN,
    ".markdown": MARKDOWN,
}

_GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "text/x-markdown"}


def resolve_media_type(file_name: str, declared: str | None) -> str:
    """Normalize a declared content type, falling back to the file extension.

    Examples:
        ("faq.txt", "text/plain; charset=utf-8") -> "text/plain"
        ("notes.md", "application/octet-stream") -> "text/markdown"
    """
    media_type = (declared or "").split(";", 1)[0].strip().lower()
    if media_type in _GENERIC_MEDIA_TYPES:
        suffix = PurePath(file_name).suffix.lower()
        return _EXTENSION_MEDIA_TYPES.get(suffix, media_type)
    return media_type


class DocumentService:
    """Validates uploads and schedules background ingestion."""

    def __init__(
        self,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        chatbots: ChatbotRepository,
        blobs: BlobStore,
        pipeline: IngestionPipeline,
        *,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        allowed_media_types: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_MEDIA_TYPES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._documents = documents
        self._chunks = chunks
        self._chatbots = chatbots
        self._blobs = blobs
        self._pipeline = pipeline
        self._max_upload_bytes = max_upload_bytes
        self._allowed_media_types = frozenset(allowed_media_types)
        self._clock = clock
        self._tasks: set[asyncio.Task[None]] = set()

    async def upload(
        self,
        tenant_id: str,
        chatbot_id: str,
        file_name: str,
        media_type: str | None,
        data: bytes,
    ) -> Document:
        """Store an uploaded file and schedule its ingestion.

        Returns:
            The new document in processing state

        Raises:
            DocumentRejected: Unknown chatbot (404), unsupported type or
                oversized file (400)
        """
        chatbot = await self._chatbots.get_owned_chatbot(tenant_id, chatbot_id)
        if chatbot is None:
            raise DocumentRejected("Chatbot not found", status_code=404)

        resolved_type = resolve_media_type(file_name, media_type)
        if resolved_type not in self._allowed_media_types:
            raise DocumentRejected("Invalid file type. Only PDF, TXT, and MD files are allowed.")

        if len(data) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise DocumentRejected(f"File too large. Maximum size is {limit_mb}MB.")

        document = Document(
            document_id=new_id(),
            tenant_id=tenant_id,
            chatbot_id=chatbot.chatbot_id,
            file_name=file_name,
            media_type=resolved_type,
            file_size=len(data),
            uploaded_at=self._clock(),
        )

        await self._blobs.put_blob(document.document_id, data, resolved_type)
        await self._documents.create_document(document)

        task = asyncio.create_task(self._process(document, data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Accepted document {document.document_id} for chatbot {chatbot_id}")
        return document

    async def list_for_chatbot(self, tenant_id: str, chatbot_id: str) -> list[Document]:
        """List a tenant's documents for one of its chatbots.

        Raises:
            DocumentRejected: If the chatbot is missing or owned by another tenant
        """
        chatbot = await self._chatbots.get_owned_chatbot(tenant_id, chatbot_id)
        if chatbot is None:
            raise DocumentRejected("Chatbot not found", status_code=404)

        return await self._documents.list_documents(chatbot_id)

    async def get(self, tenant_id: str, document_id: str) -> Document | None:
        """Get one of the tenant's documents."""
        return await self._documents.get_document(tenant_id, document_id)

    async def delete(self, tenant_id: str, document_id: str) -> bool:
        """Delete a document with its chunks and stored file.

        Chunks are removed by document regardless of status, so orphans left
        by a failed ingestion go too. The record goes first; an ingestion
        still running then finds it missing and drops its own chunks.

        Returns:
            False if the document does not exist for this tenant
        """
        document = await self._documents.get_document(tenant_id, document_id)
        if document is None:
            return False

        # Counter follows the status the record had when it was removed
        removed_status = await self._documents.delete_document(tenant_id, document_id)
        removed_chunks = await self._chunks.delete_chunks(document_id)
        await self._blobs.delete_blob(document_id)

        if removed_status == "ready":
            await self._chatbots.adjust_document_count(document.chatbot_id, -1)

        logger.info(f"Deleted document {document_id} ({removed_chunks} chunks)")
        return True

    async def drain(self) -> None:
        """Wait for every scheduled ingestion to finish."""
        while pending := [task for task in self._tasks if not task.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _process(self, document: Document, data: bytes) -> None:
        try:
            raw_text = await asyncio.to_thread(extract_text, data, document.media_type)
        except PyPdfError as e:
            logger.warning(f"Text extraction failed for document {document.document_id}: {e}")
            await self._pipeline.fail(document, f"Could not read file: {e}")
            return

        try:
            await self._pipeline.ingest(document, raw_text)
        except IngestionFailure as e:
            logger.warning(f"Ingestion failed for document {document.document_id}: {e.message}")
        except Exception:
            # Background task: log and mark the document failed
            logger.exception(f"Unexpected error ingesting document {document.document_id}")
            try:
                await self._pipeline.fail(document, "Processing failed")
            except InvalidStatusTransition:
                logger.warning(f"Document {document.document_id} already left processing")
