"""Document ingestion - turn extracted text into embedded, retrievable chunks."""

import asyncio
import logging
import time

from salvebot.db.repositories import ChatbotRepository, ChunkRepository, DocumentRepository
from salvebot.errors import GatewayError, IngestionFailure, InvalidStatusTransition
from salvebot.ingestion.chunker import DEFAULT_MAX_CHARS, DEFAULT_OVERLAP, split_text
from salvebot.ingestion.preprocess import approximate_page, clean_text, extract_section
from salvebot.llm.gateway import Gateway
from salvebot.models.documents import ChunkMetadata, Document, DocumentChunk, make_chunk_id
from salvebot.utils.logging import StructuredPipelineLogger
from salvebot.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Chunks, embeds and persists one document at a time.

    Distinct documents may be ingested concurrently; nothing here is shared
    between calls except the injected collaborators.
    """

    def __init__(
        self,
        gateway: Gateway,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        chatbots: ChatbotRepository,
        *,
        max_chars: int = DEFAULT_MAX_CHARS,
        overlap: int = DEFAULT_OVERLAP,
        batch_size: int = 5,
        embedding_dimensions: int | None = None,
        metrics: PrometheusPipelineMetrics | None = None,
        stage_logger: StructuredPipelineLogger | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            gateway: Embedding gateway
            documents: Document repository (status updates)
            chunks: Chunk repository
            chatbots: Chatbot repository (document counter)
            max_chars: Maximum segment length
            overlap: Overlap between consecutive segments
            batch_size: Segments embedded concurrently per batch
            embedding_dimensions: Required vector length; None only requires
                every vector of a document to have the same length
            metrics: Metrics sink
            stage_logger: Structured stage logger
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self._gateway = gateway
        self._documents = documents
        self._chunks = chunks
        self._chatbots = chatbots
        self._max_chars = max_chars
        self._overlap = overlap
        self._batch_size = batch_size
        self._dimensions = embedding_dimensions
        self._metrics = metrics or PrometheusPipelineMetrics()
        self._stage_logger = stage_logger or StructuredPipelineLogger()

    async def ingest(self, document: Document, raw_text: str) -> list[DocumentChunk]:
        """Ingest a document that is still processing.

        On success the document becomes ready with its full chunk list and the
        owning chatbot's document counter is incremented. Chunks already
        written before a failure are left in place; they are removed together
        with the document.

        Returns:
            Stored chunks in ordinal order

        Raises:
            IngestionFailure: If no segments were produced or any embedding
                failed (the document is marked error first)
            InvalidStatusTransition: If the document already left processing
        """
        if document.status != "processing":
            raise InvalidStatusTransition(document.document_id, document.status, "ready")

        started = time.perf_counter()
        try:
            segments = split_text(
                clean_text(raw_text, document.media_type),
                max_chars=self._max_chars,
                overlap=self._overlap,
            )
            if not segments:
                raise IngestionFailure(document.document_id, "No text content found in document")

            stored = await self._embed_and_store(document, segments)
        except IngestionFailure as e:
            await self.fail(document, e.message, started=started)
            raise

        # Increment precedes the ready update; undone if nothing was updated
        await self._chatbots.adjust_document_count(document.chatbot_id, 1)
        updated = False
        try:
            updated = await self._documents.update_document(
                document.mark_ready([chunk.chunk_id for chunk in stored])
            )
        finally:
            if not updated:
                await self._chatbots.adjust_document_count(document.chatbot_id, -1)

        # Deleted while processing: drop what was written
        if not updated:
            await self._chunks.delete_chunks(document.document_id)
            logger.info(f"Document {document.document_id} was deleted during ingestion")
            return []

        self._metrics.record_ingestion("ready")
        self._stage_logger.log_stage(
            "ingestion",
            "complete",
            "success",
            (time.perf_counter() - started) * 1000,
            chatbot_id=document.chatbot_id,
            document_id=document.document_id,
            chunk_count=len(stored),
        )
        return stored

    async def fail(self, document: Document, message: str, *, started: float | None = None) -> None:
        """Mark a processing document as failed with a message."""
        latency_ms = (time.perf_counter() - started) * 1000 if started is not None else 0.0

        await self._documents.update_document(document.mark_error(message))

        self._metrics.record_ingestion("error")
        self._stage_logger.log_stage(
            "ingestion",
            "complete",
            "error",
            latency_ms,
            chatbot_id=document.chatbot_id,
            document_id=document.document_id,
            error_reason=message,
        )

    async def _embed_and_store(self, document: Document, segments: list[str]) -> list[DocumentChunk]:
        stored: list[DocumentChunk] = []
        expected = self._dimensions

        for start in range(0, len(segments), self._batch_size):
            batch = segments[start : start + self._batch_size]
            # gather preserves argument order, so ordinals follow the segments
            vectors = await asyncio.gather(*(self._embed(document, text) for text in batch))

            for offset, (text, vector) in enumerate(zip(batch, vectors, strict=True)):
                if expected is None:
                    expected = len(vector)
                if len(vector) != expected:
                    raise IngestionFailure(
                        document.document_id,
                        f"Embedding has {len(vector)} dimensions, expected {expected}",
                    )

                ordinal = start + offset
                chunk = DocumentChunk(
                    chunk_id=make_chunk_id(document.document_id, ordinal),
                    document_id=document.document_id,
                    ordinal=ordinal,
                    text=text,
                    embedding=vector,
                    metadata=ChunkMetadata(
                        page=approximate_page(ordinal),
                        section=extract_section(text),
                    ),
                )
                await self._chunks.put_chunk(chunk)
                stored.append(chunk)

        return stored

    async def _embed(self, document: Document, text: str) -> list[float]:
        try:
            return await self._gateway.embed(text)
        except GatewayError as e:
            raise IngestionFailure(document.document_id, f"Embedding failed: {e}") from e
