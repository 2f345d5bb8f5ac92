"""Retrieval-augmented answer pipeline.

Stages run strictly in sequence, each taking and returning an immutable
RetrievalState:

    classify -> rewrite (HyDE, questions only) -> embed -> rank -> assemble -> generate

Gateway failures in any stage surface as RetrievalTransientFailure; nothing is
retried within a request. A query embedding whose size differs from the stored
chunks fails the rank stage with RetrievalFailure.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import Literal

from salvebot.errors import GatewayError, RetrievalFailure, RetrievalTransientFailure
from salvebot.llm.gateway import Gateway
from salvebot.llm.prompts import (
    CLASSIFY_SYSTEM_PROMPT,
    HYDE_SYSTEM_PROMPT,
    build_answer_system_prompt,
)
from salvebot.models.chatbot import ChatbotSettings
from salvebot.models.documents import DocumentChunk
from salvebot.rag.similarity import cosine_similarity
from salvebot.utils.logging import StructuredPipelineLogger

logger = logging.getLogger(__name__)

Classification = Literal["question", "statement", "other"]

DEFAULT_TOP_K = 10

NO_CONTENT_RESPONSE = (
    "I'm sorry, but I don't have access to any information to help answer your "
    "question. Please contact support for assistance."
)
EMPTY_ANSWER_RESPONSE = "I apologize, but I cannot provide an answer at this time."

_CLASSIFICATIONS: frozenset[str] = frozenset({"question", "statement", "other"})


@dataclass(frozen=True)
class RankedChunk:
    """A chunk with its similarity to the retrieval query."""

    chunk: DocumentChunk
    similarity: float


@dataclass(frozen=True)
class RetrievalState:
    """Pipeline state passed between stages."""

    message: str
    chunks: tuple[DocumentChunk, ...]
    settings: ChatbotSettings | None = None
    classification: Classification | None = None
    query_text: str | None = None
    query_embedding: tuple[float, ...] | None = None
    ranked: tuple[RankedChunk, ...] = ()
    context: str = ""
    response: str | None = None


@dataclass(frozen=True)
class RetrievalResult:
    """Final answer with the chunks it was grounded on."""

    response: str
    used_chunk_ids: list[str]
    confidence: float
    classification: Classification | None = None


def parse_classification(raw: str) -> Classification:
    """Map raw model output to a classification; anything unknown is 'other'."""
    label = raw.strip().lower().strip(".!\"'")
    if label in _CLASSIFICATIONS:
        return label  # type: ignore[return-value]
    return "other"


def rank_chunks(
    query_embedding: Sequence[float],
    chunks: Sequence[DocumentChunk],
    top_k: int = DEFAULT_TOP_K,
) -> list[RankedChunk]:
    """Rank chunks by cosine similarity, highest first.

    The sort is stable, so equal similarities keep the original chunk order.
    """
    scored = [
        RankedChunk(chunk=chunk, similarity=cosine_similarity(query_embedding, chunk.embedding))
        for chunk in chunks
    ]
    scored.sort(key=lambda ranked: -ranked.similarity)
    return scored[:top_k]


def assemble_context(ranked: Sequence[RankedChunk]) -> str:
    """Join chunk texts in rank order, separated by blank lines."""
    return "\n\n".join(item.chunk.text for item in ranked)


Stage = Callable[[RetrievalState], Awaitable[RetrievalState]]


class RetrievalPipeline:
    """Answers a visitor message from a chatbot's embedded chunks."""

    def __init__(
        self,
        gateway: Gateway,
        *,
        top_k: int = DEFAULT_TOP_K,
        utility_model: str | None = None,
        hyde_min_query_chars: int = 0,
        confidence: float = 0.8,
        stage_logger: StructuredPipelineLogger | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            gateway: Embedding/completion gateway
            top_k: Number of chunks used as context
            utility_model: Model for classification and query rewriting
                (None uses the gateway default)
            hyde_min_query_chars: Questions shorter than this skip the
                hypothetical-answer rewrite (0 rewrites every question)
            confidence: Confidence reported for grounded answers
            stage_logger: Structured stage logger
        """
        self._gateway = gateway
        self._top_k = top_k
        self._utility_model = utility_model
        self._hyde_min_query_chars = hyde_min_query_chars
        self._confidence = confidence
        self._stage_logger = stage_logger or StructuredPipelineLogger()

        self._stages: list[tuple[str, Stage]] = [
            ("classify", self.classify),
            ("rewrite", self.rewrite),
            ("embed", self.embed),
            ("rank", self.rank),
            ("assemble", self.assemble),
            ("generate", self.generate),
        ]

    async def answer(
        self,
        message: str,
        available_chunks: Sequence[DocumentChunk],
        chatbot_settings: ChatbotSettings | None = None,
    ) -> RetrievalResult:
        """Produce a grounded answer.

        With no chunks available no gateway call is made and a fixed fallback
        with zero confidence is returned.

        Raises:
            RetrievalTransientFailure: If a gateway call fails
            RetrievalFailure: If the query and chunk embeddings differ in size
        """
        if not available_chunks:
            return RetrievalResult(response=NO_CONTENT_RESPONSE, used_chunk_ids=[], confidence=0.0)

        state = RetrievalState(
            message=message,
            chunks=tuple(available_chunks),
            settings=chatbot_settings,
        )

        for name, stage in self._stages:
            state = await self._run_stage(name, stage, state)

        used_ids = [item.chunk.chunk_id for item in state.ranked]
        return RetrievalResult(
            response=state.response or EMPTY_ANSWER_RESPONSE,
            used_chunk_ids=used_ids,
            confidence=self._confidence if used_ids else 0.0,
            classification=state.classification,
        )

    async def _run_stage(self, name: str, stage: Stage, state: RetrievalState) -> RetrievalState:
        started = time.perf_counter()
        try:
            result = await stage(state)
        except GatewayError as e:
            latency_ms = (time.perf_counter() - started) * 1000
            self._stage_logger.log_stage("retrieval", name, "error", latency_ms, error_reason=str(e))
            raise RetrievalTransientFailure(name, e) from e
        except RetrievalFailure as e:
            latency_ms = (time.perf_counter() - started) * 1000
            self._stage_logger.log_stage("retrieval", name, "error", latency_ms, error_reason=str(e.cause))
            raise

        latency_ms = (time.perf_counter() - started) * 1000
        self._stage_logger.log_stage("retrieval", name, "success", latency_ms)
        return result

    async def classify(self, state: RetrievalState) -> RetrievalState:
        """Classify the message with one constrained completion."""
        raw = await self._gateway.complete(
            CLASSIFY_SYSTEM_PROMPT,
            state.message,
            max_tokens=10,
            temperature=0.0,
            model=self._utility_model,
        )
        return replace(state, classification=parse_classification(raw))

    async def rewrite(self, state: RetrievalState) -> RetrievalState:
        """Replace a question with a hypothetical answer for retrieval (HyDE)."""
        if state.classification != "question":
            return replace(state, query_text=state.message)

        if len(state.message.strip()) < self._hyde_min_query_chars:
            return replace(state, query_text=state.message)

        hypothetical = await self._gateway.complete(
            HYDE_SYSTEM_PROMPT,
            state.message,
            max_tokens=150,
            temperature=0.7,
            model=self._utility_model,
        )
        return replace(state, query_text=hypothetical.strip() or state.message)

    async def embed(self, state: RetrievalState) -> RetrievalState:
        """Embed the retrieval query."""
        vector = await self._gateway.embed(state.query_text or state.message)
        return replace(state, query_embedding=tuple(vector))

    async def rank(self, state: RetrievalState) -> RetrievalState:
        """Keep the top-K chunks by similarity."""
        query = state.query_embedding or ()
        mismatched = {len(chunk.embedding) for chunk in state.chunks} - {len(query)}
        if mismatched:
            # Chunks embedded with a different model or dimension setting
            raise RetrievalFailure(
                "rank",
                ValueError(
                    f"query embedding has {len(query)} dimensions, "
                    f"chunks have {sorted(mismatched)}"
                ),
            )

        ranked = rank_chunks(query, state.chunks, self._top_k)
        return replace(state, ranked=tuple(ranked))

    async def assemble(self, state: RetrievalState) -> RetrievalState:
        """Build the context block from ranked chunks."""
        return replace(state, context=assemble_context(state.ranked))

    async def generate(self, state: RetrievalState) -> RetrievalState:
        """Ask for an answer bound to the assembled context."""
        response = await self._gateway.complete(
            build_answer_system_prompt(state.context, state.settings),
            state.message,
            max_tokens=500,
            temperature=0.7,
        )
        return replace(state, response=response.strip() or EMPTY_ANSWER_RESPONSE)
