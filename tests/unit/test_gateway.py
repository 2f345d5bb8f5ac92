"""Tests for the embedding/completion gateway.

All tests are deterministic and do not make real network calls.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from salvebot.config import Settings
from salvebot.errors import GatewayError
from salvebot.llm.gateway import DeterministicStubGateway, OpenAIGateway, get_gateway
from salvebot.llm.prompts import (
    CLASSIFY_SYSTEM_PROMPT,
    HYDE_SYSTEM_PROMPT,
    build_answer_system_prompt,
)
from salvebot.rag.similarity import cosine_similarity


@pytest.fixture
def openai_gateway() -> OpenAIGateway:
    """OpenAI gateway with its client replaced by mocks."""
    gateway = OpenAIGateway(api_key="sk-test", chat_model="gpt-4o", embedding_model="embed-small")
    gateway.client = MagicMock()
    return gateway


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.mark.asyncio
async def test_openai_embed_returns_vector(openai_gateway: OpenAIGateway) -> None:
    """Test that the embedding of the first result is returned."""
    openai_gateway.client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])])
    )

    vector = await openai_gateway.embed("refund policy")

    assert vector == [0.1, 0.2, 0.3]
    openai_gateway.client.embeddings.create.assert_awaited_once_with(
        model="embed-small", input="refund policy"
    )


@pytest.mark.asyncio
async def test_openai_complete_sends_system_and_user_messages(openai_gateway: OpenAIGateway) -> None:
    """Test the completion request shape and the model override."""
    openai_gateway.client.chat.completions.create = AsyncMock(return_value=_completion("question"))

    text = await openai_gateway.complete(
        "system text", "user text", max_tokens=10, temperature=0.0, model="gpt-4o-mini"
    )

    assert text == "question"
    kwargs = openai_gateway.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "user text"},
    ]
    assert kwargs["max_tokens"] == 10
    assert kwargs["temperature"] == 0.0


@pytest.mark.asyncio
async def test_openai_complete_defaults_to_chat_model(openai_gateway: OpenAIGateway) -> None:
    """Test that the configured chat model is used without an override."""
    openai_gateway.client.chat.completions.create = AsyncMock(return_value=_completion("ok"))

    await openai_gateway.complete("s", "u", max_tokens=500, temperature=0.7)

    assert openai_gateway.client.chat.completions.create.await_args.kwargs["model"] == "gpt-4o"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [SimpleNamespace(choices=[]), _completion(None)],
)
async def test_openai_complete_empty_output_is_empty_string(
    openai_gateway: OpenAIGateway, response: SimpleNamespace
) -> None:
    """Test that missing choices or content yield an empty string."""
    openai_gateway.client.chat.completions.create = AsyncMock(return_value=response)

    assert await openai_gateway.complete("s", "u", max_tokens=500, temperature=0.7) == ""


@pytest.mark.asyncio
async def test_openai_errors_become_gateway_errors(openai_gateway: OpenAIGateway) -> None:
    """Test that provider failures are wrapped with the operation name."""
    openai_gateway.client.embeddings.create = AsyncMock(side_effect=OpenAIError("boom"))
    openai_gateway.client.chat.completions.create = AsyncMock(side_effect=OpenAIError("boom"))

    with pytest.raises(GatewayError) as embed_error:
        await openai_gateway.embed("text")
    assert embed_error.value.operation == "embed"

    with pytest.raises(GatewayError) as complete_error:
        await openai_gateway.complete("s", "u", max_tokens=10, temperature=0.0)
    assert complete_error.value.operation == "complete"


def test_get_gateway_without_key_returns_stub() -> None:
    """Test factory falls back to the stub without an API key."""
    gateway = get_gateway(Settings(openai_api_key=None, embedding_dimensions=32))

    assert isinstance(gateway, DeterministicStubGateway)
    assert gateway.dimensions == 32


def test_get_gateway_with_key_returns_openai() -> None:
    """Test factory returns the OpenAI gateway when a key is configured."""
    settings = Settings(openai_api_key="sk-test", openai_chat_model="gpt-4o")

    gateway = get_gateway(settings)

    assert isinstance(gateway, OpenAIGateway)
    assert gateway.chat_model == "gpt-4o"
    assert gateway.embedding_model == settings.openai_embedding_model


@pytest.mark.asyncio
async def test_stub_embeddings_are_deterministic_and_normalized() -> None:
    """Test stub vectors: fixed size, unit length, repeatable."""
    stub = DeterministicStubGateway(dimensions=64)

    first = await stub.embed("Refunds within 30 days")
    second = await stub.embed("Refunds within 30 days")

    assert first == second
    assert len(first) == 64
    assert sum(v * v for v in first) == pytest.approx(1.0)
    assert await stub.embed("") == [0.0] * 64


@pytest.mark.asyncio
async def test_stub_embeddings_reflect_shared_vocabulary() -> None:
    """Test that overlapping texts are more similar than unrelated ones."""
    stub = DeterministicStubGateway(dimensions=256)

    query = await stub.embed("what is the refund window")
    related = await stub.embed("the refund window is 30 days")
    unrelated = await stub.embed("shipping takes five business days")

    assert cosine_similarity(query, related) > cosine_similarity(query, unrelated)


@pytest.mark.asyncio
async def test_stub_completions_follow_prompt_type() -> None:
    """Test stub classification, rewrite echo and first-passage answers."""
    stub = DeterministicStubGateway()

    async def complete(system_prompt: str, user_prompt: str) -> str:
        return await stub.complete(system_prompt, user_prompt, max_tokens=100, temperature=0.0)

    assert await complete(CLASSIFY_SYSTEM_PROMPT, "Do you ship?") == "question"
    assert await complete(CLASSIFY_SYSTEM_PROMPT, "I need help") == "statement"
    assert await complete(HYDE_SYSTEM_PROMPT, "Do you ship?") == "Do you ship?"

    prompt = build_answer_system_prompt("first passage\n\nsecond passage")
    assert await complete(prompt, "Do you ship?") == "first passage"
