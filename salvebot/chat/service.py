"""Chat service - access gate, scoped chunk loading and grounded answering."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from salvebot.access.gate import AccessGate
from salvebot.analytics.recorder import AnalyticsRecorder
from salvebot.db.repositories import ChunkRepository, DocumentRepository
from salvebot.errors import AccessDenied, RetrievalFailure
from salvebot.models.access import DenialReason
from salvebot.models.chat import ChatExchange, ChatRequest, ChatResponse, ExchangeMetadata
from salvebot.models.common import new_id, utcnow
from salvebot.models.documents import DocumentChunk
from salvebot.rag.pipeline import RetrievalPipeline
from salvebot.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


class ChatService:
    """Handles one visitor message end to end."""

    def __init__(
        self,
        gate: AccessGate,
        documents: DocumentRepository,
        chunks: ChunkRepository,
        pipeline: RetrievalPipeline,
        recorder: AnalyticsRecorder,
        *,
        metrics: PrometheusPipelineMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._gate = gate
        self._documents = documents
        self._chunks = chunks
        self._pipeline = pipeline
        self._recorder = recorder
        self._metrics = metrics or PrometheusPipelineMetrics()
        self._clock = clock

    async def handle(self, chatbot_id: str, request: ChatRequest) -> ChatResponse:
        """Answer a visitor message for a chatbot.

        Raises:
            AccessDenied: If the access gate refuses the request
            RetrievalFailure: If chunks could not be loaded or a pipeline stage
                failed (RetrievalTransientFailure for gateway errors)
        """
        decision = await self._gate.authorize(chatbot_id, request.domain)
        if not decision.allowed or decision.chatbot is None:
            reason = decision.reason or DenialReason.verification_failed
            self._metrics.record_chat("denied")
            self._metrics.record_denial(reason.value)
            logger.info(f"Chat request for chatbot {chatbot_id} denied: {reason.value}")
            raise AccessDenied(reason.value, reason.status_category)

        chatbot = decision.chatbot
        try:
            try:
                available = await self.load_chunks(chatbot.chatbot_id)
            except SQLAlchemyError as e:
                raise RetrievalFailure("load_chunks", e) from e

            result = await self._pipeline.answer(request.message, available, chatbot.settings)
        except RetrievalFailure as e:
            self._metrics.record_chat("failed")
            logger.error(f"Chat pipeline failed for chatbot {chatbot_id} at {e.stage}: {e.cause}")
            raise

        session_id = request.session_id or new_id()
        self._recorder.record(
            ChatExchange(
                exchange_id=new_id(),
                chatbot_id=chatbot.chatbot_id,
                session_id=session_id,
                role="user",
                content=request.message,
                timestamp=self._clock(),
            )
        )
        answered_at = self._clock()
        self._recorder.record(
            ChatExchange(
                exchange_id=new_id(),
                chatbot_id=chatbot.chatbot_id,
                session_id=session_id,
                role="assistant",
                content=result.response,
                timestamp=answered_at,
                metadata=ExchangeMetadata(
                    retrieved_chunks=result.used_chunk_ids,
                    confidence=result.confidence,
                ),
            )
        )
        self._recorder.record_conversation(chatbot.chatbot_id, answered_at)

        self._metrics.record_chat("answered" if result.used_chunk_ids else "fallback")
        return ChatResponse(
            response=result.response,
            session_id=session_id,
            confidence=result.confidence,
        )

    async def load_chunks(self, chatbot_id: str) -> list[DocumentChunk]:
        """Load chunks of the chatbot's ready documents, in document then ordinal order.

        Only documents attached to this chatbot are read; processing and
        failed documents contribute nothing.
        """
        documents = await self._documents.list_documents(chatbot_id)
        ready = [doc for doc in documents if doc.status == "ready" and doc.chatbot_id == chatbot_id]

        per_document = await asyncio.gather(
            *(self._chunks.list_chunks(doc.document_id) for doc in ready)
        )

        chunks: list[DocumentChunk] = []
        for doc, doc_chunks in zip(ready, per_document, strict=True):
            allowed_ids = set(doc.chunk_ids)
            chunks.extend(chunk for chunk in doc_chunks if chunk.chunk_id in allowed_ids)
        return chunks
