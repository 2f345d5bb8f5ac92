"""Unit tests for the retrieval-augmented answer pipeline.

A scripted gateway returns hand-crafted embeddings so ranking is exact.
"""

from typing import Any

import pytest

from salvebot.errors import GatewayError, RetrievalFailure, RetrievalTransientFailure
from salvebot.llm.prompts import CLASSIFY_SYSTEM_PROMPT, HYDE_SYSTEM_PROMPT
from salvebot.models.chatbot import ChatbotSettings
from salvebot.models.documents import DocumentChunk
from salvebot.rag.pipeline import (
    EMPTY_ANSWER_RESPONSE,
    NO_CONTENT_RESPONSE,
    RetrievalPipeline,
    assemble_context,
    parse_classification,
    rank_chunks,
)

REFUND_QUESTION = "What is the refund window?"


class ScriptedGateway:
    """Gateway returning fixed embeddings and completions, recording every call."""

    def __init__(
        self,
        embeddings: dict[str, list[float]],
        *,
        classification: str = "question",
        hypothetical: str = "",
        answer: str = "Refunds are accepted within 30 days.",
        fail_on: str | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.classification = classification
        self.hypothetical = hypothetical
        self.answer = answer
        self.fail_on = fail_on
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(("embed", {"text": text}))
        if self.fail_on == "embed":
            raise GatewayError("embed", "connection reset")
        return self.embeddings[text]

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> str:
        if system_prompt == CLASSIFY_SYSTEM_PROMPT:
            kind = "classify"
        elif system_prompt == HYDE_SYSTEM_PROMPT:
            kind = "rewrite"
        else:
            kind = "generate"

        self.calls.append(
            (
                kind,
                {
                    "system_prompt": system_prompt,
                    "user_prompt": user_prompt,
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "model": model,
                },
            )
        )

        if self.fail_on == kind:
            raise GatewayError("complete", "timeout")

        if kind == "classify":
            return self.classification
        if kind == "rewrite":
            return self.hypothetical
        return self.answer

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]

    def call(self, kind: str) -> dict[str, Any]:
        return next(args for name, args in self.calls if name == kind)


def _chunk(ordinal: int, text: str, embedding: list[float]) -> DocumentChunk:
    return DocumentChunk(
        chunk_id=f"doc-1_chunk_{ordinal}",
        document_id="doc-1",
        ordinal=ordinal,
        text=text,
        embedding=embedding,
    )


@pytest.fixture
def refund_chunks() -> list[DocumentChunk]:
    """Chunks where the refund policy is the best match for a refund question."""
    return [
        _chunk(0, "We ship worldwide within 5 business days.", [0.0, 1.0, 0.0]),
        _chunk(1, "Refunds are accepted within 30 days of purchase.", [1.0, 0.0, 0.0]),
        _chunk(2, "Returns and refunds are handled by support.", [0.7, 0.7, 0.0]),
        _chunk(3, "Our office is closed on holidays.", [0.0, 0.0, 1.0]),
    ]


@pytest.mark.asyncio
async def test_refund_question_ranks_refund_policy_first(
    refund_chunks: list[DocumentChunk],
) -> None:
    """Test that the most similar chunk leads the context and the used ids."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.1, 0.0]})
    pipeline = RetrievalPipeline(gateway, top_k=2)

    result = await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert result.used_chunk_ids == ["doc-1_chunk_1", "doc-1_chunk_2"]
    assert result.response == "Refunds are accepted within 30 days."
    assert result.confidence == pytest.approx(0.8)
    assert result.classification == "question"

    system_prompt = gateway.call("generate")["system_prompt"]
    assert system_prompt.endswith(
        "Refunds are accepted within 30 days of purchase.\n\n"
        "Returns and refunds are handled by support."
    )
    assert "We ship worldwide" not in system_prompt


@pytest.mark.asyncio
async def test_stages_run_in_order_with_expected_parameters(
    refund_chunks: list[DocumentChunk],
) -> None:
    """Test the stage sequence and the completion parameters of each call."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]})
    pipeline = RetrievalPipeline(gateway, utility_model="small-model")

    await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert gateway.kinds() == ["classify", "rewrite", "embed", "generate"]

    classify = gateway.call("classify")
    assert classify["max_tokens"] == 10
    assert classify["temperature"] == 0.0
    assert classify["model"] == "small-model"

    rewrite = gateway.call("rewrite")
    assert rewrite["max_tokens"] == 150
    assert rewrite["temperature"] == 0.7

    generate = gateway.call("generate")
    assert generate["max_tokens"] == 500
    assert generate["temperature"] == 0.7
    assert generate["user_prompt"] == REFUND_QUESTION


@pytest.mark.asyncio
async def test_question_is_rewritten_into_hypothetical_answer(
    refund_chunks: list[DocumentChunk],
) -> None:
    """Test that the hypothetical answer, not the question, is embedded."""
    hypothetical = "You can get a refund within 30 days."
    gateway = ScriptedGateway({hypothetical: [1.0, 0.0, 0.0]}, hypothetical=hypothetical)
    pipeline = RetrievalPipeline(gateway, top_k=1)

    result = await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert gateway.call("embed")["text"] == hypothetical
    assert result.used_chunk_ids == ["doc-1_chunk_1"]


@pytest.mark.asyncio
async def test_empty_rewrite_falls_back_to_question(refund_chunks: list[DocumentChunk]) -> None:
    """Test that a blank hypothetical answer is replaced by the question."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]}, hypothetical="   ")
    pipeline = RetrievalPipeline(gateway)

    await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert gateway.call("embed")["text"] == REFUND_QUESTION


@pytest.mark.asyncio
@pytest.mark.parametrize("classification", ["statement", "other", "no idea"])
async def test_non_questions_skip_rewrite(
    classification: str, refund_chunks: list[DocumentChunk]
) -> None:
    """Test that only questions get a hypothetical-answer rewrite."""
    message = "I want my money back"
    gateway = ScriptedGateway({message: [1.0, 0.0, 0.0]}, classification=classification)
    pipeline = RetrievalPipeline(gateway)

    await pipeline.answer(message, refund_chunks)

    assert "rewrite" not in gateway.kinds()
    assert gateway.call("embed")["text"] == message


@pytest.mark.asyncio
async def test_short_questions_skip_rewrite_when_threshold_set(
    refund_chunks: list[DocumentChunk],
) -> None:
    """Test that questions shorter than the threshold are embedded directly."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]})
    pipeline = RetrievalPipeline(gateway, hyde_min_query_chars=100)

    await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert gateway.kinds() == ["classify", "embed", "generate"]


@pytest.mark.asyncio
async def test_no_chunks_returns_fallback_without_gateway_calls() -> None:
    """Test the fixed fallback when the chatbot has no content."""
    gateway = ScriptedGateway({})
    pipeline = RetrievalPipeline(gateway)

    result = await pipeline.answer(REFUND_QUESTION, [])

    assert result.response == NO_CONTENT_RESPONSE
    assert result.used_chunk_ids == []
    assert result.confidence == 0.0
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_empty_generation_returns_apology(refund_chunks: list[DocumentChunk]) -> None:
    """Test that an empty completion is replaced by the fixed apology."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]}, answer="")
    pipeline = RetrievalPipeline(gateway)

    result = await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert result.response == EMPTY_ANSWER_RESPONSE


@pytest.mark.asyncio
async def test_welcome_message_is_part_of_answer_prompt(
    refund_chunks: list[DocumentChunk],
) -> None:
    """Test that chatbot settings flow into the generation prompt."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]})
    pipeline = RetrievalPipeline(gateway)

    await pipeline.answer(
        REFUND_QUESTION,
        refund_chunks,
        ChatbotSettings(welcome_message="Welcome to Acme!"),
    )

    assert "Welcome to Acme!" in gateway.call("generate")["system_prompt"]


@pytest.mark.asyncio
@pytest.mark.parametrize("stage", ["classify", "rewrite", "embed", "generate"])
async def test_gateway_failure_names_the_stage(
    stage: str, refund_chunks: list[DocumentChunk]
) -> None:
    """Test that gateway errors surface as transient failures with their stage."""
    gateway = ScriptedGateway({REFUND_QUESTION: [1.0, 0.0, 0.0]}, fail_on=stage)
    pipeline = RetrievalPipeline(gateway)

    with pytest.raises(RetrievalTransientFailure) as exc_info:
        await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert exc_info.value.stage == stage
    assert isinstance(exc_info.value.cause, GatewayError)


@pytest.mark.asyncio
async def test_query_and_chunk_sizes_must_match(refund_chunks: list[DocumentChunk]) -> None:
    """Test that chunks embedded at another size fail ranking before generation."""
    gateway = ScriptedGateway(
        {"Refunds are accepted within 30 days.": [1.0, 0.0, 0.0, 0.0]},
        hypothetical="Refunds are accepted within 30 days.",
    )
    pipeline = RetrievalPipeline(gateway)

    with pytest.raises(RetrievalFailure) as exc_info:
        await pipeline.answer(REFUND_QUESTION, refund_chunks)

    assert exc_info.value.stage == "rank"
    assert not isinstance(exc_info.value, RetrievalTransientFailure)
    assert "generate" not in gateway.kinds()


def test_rank_chunks_keeps_original_order_on_ties() -> None:
    """Test that equal similarities preserve chunk order."""
    chunks = [_chunk(i, f"chunk {i}", [1.0, 0.0]) for i in range(5)]

    ranked = rank_chunks([1.0, 0.0], chunks, top_k=3)

    assert [item.chunk.ordinal for item in ranked] == [0, 1, 2]
    assert all(item.similarity == pytest.approx(1.0) for item in ranked)


def test_rank_chunks_sorts_descending_and_truncates() -> None:
    """Test descending order and the top-K cut."""
    chunks = [
        _chunk(0, "low", [0.0, 1.0]),
        _chunk(1, "high", [1.0, 0.0]),
        _chunk(2, "mid", [1.0, 1.0]),
    ]

    ranked = rank_chunks([1.0, 0.0], chunks, top_k=2)

    assert [item.chunk.text for item in ranked] == ["high", "mid"]


def test_assemble_context_joins_with_blank_lines() -> None:
    """Test that context passages are separated by blank lines in rank order."""
    ranked = rank_chunks([1.0, 0.0], [_chunk(0, "b", [0.5, 0.5]), _chunk(1, "a", [1.0, 0.0])])

    assert assemble_context(ranked) == "a\n\nb"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("question", "question"),
        (" Question.\n", "question"),
        ("STATEMENT", "statement"),
        ("other", "other"),
        ("It is a question", "other"),
        ("", "other"),
    ],
)
def test_parse_classification(raw: str, expected: str) -> None:
    """Test that classifier output is normalized and unknowns become 'other'."""
    assert parse_classification(raw) == expected
