"""Embedding/completion gateway with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is configured (local runs and tests).
"""

import hashlib
import logging
import math
import re
import time
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from salvebot.config import Settings, get_settings
from salvebot.errors import GatewayError
from salvebot.llm.prompts import CLASSIFY_SYSTEM_PROMPT, CONTEXT_MARKER, HYDE_SYSTEM_PROMPT
from salvebot.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")


class Gateway(Protocol):
    """Protocol for embedding/completion providers.

    Implementations raise GatewayError on any provider or transport failure.
    """

    async def embed(self, text: str) -> list[float]:
        """Convert text to a fixed-length vector."""
        ...

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> str:
        """Run one chat completion and return its text (may be empty)."""
        ...


class DeterministicStubGateway:
    """Deterministic stub gateway for testing (no API key required).

    Embeddings are hashed bags of words, so texts sharing vocabulary land close
    together. Completions follow the prompt type: a keyword classification, an
    echo for query rewriting, and the first context passage for answers.
    """

    def __init__(self, dimensions: int = 256) -> None:
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        """Generate a normalized hashed bag-of-words vector."""
        vector = [0.0] * self.dimensions
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self.dimensions] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            return vector
        return [v / norm for v in vector]

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> str:
        """Generate a deterministic stub completion."""
        if system_prompt == CLASSIFY_SYSTEM_PROMPT:
            return "question" if user_prompt.rstrip().endswith("?") else "statement"

        if system_prompt == HYDE_SYSTEM_PROMPT:
            return user_prompt

        _, _, context = system_prompt.partition(CONTEXT_MARKER)
        passages = [p.strip() for p in context.split("\n\n") if p.strip()]
        if not passages:
            return "I'm sorry, I don't have enough information to answer that."
        return passages[0]


class OpenAIGateway:
    """OpenAI-backed gateway for embeddings and completions."""

    def __init__(
        self,
        api_key: str,
        *,
        chat_model: str = "gpt-4o",
        embedding_model: str = "text-embedding-3-small",
        metrics: PrometheusPipelineMetrics | None = None,
    ):
        """Initialize OpenAI gateway.

        Args:
            api_key: OpenAI API key (read from settings)
            chat_model: Default completion model
            embedding_model: Embedding model (must match the corpus dimensionality)
            metrics: Latency metrics sink
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self.metrics = metrics or PrometheusPipelineMetrics()

    async def embed(self, text: str) -> list[float]:
        """Embed text with the configured embedding model."""
        started = time.perf_counter()
        try:
            response = await self.client.embeddings.create(model=self.embedding_model, input=text)
        except OpenAIError as e:
            self._observe("embed", "error", started)
            logger.error(f"OpenAI embedding call failed: {e}")
            raise GatewayError("embed", str(e)) from e

        self._observe("embed", "success", started)
        return list(response.data[0].embedding)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> str:
        """Run a chat completion with a system and a user message."""
        started = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=model or self.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as e:
            self._observe("complete", "error", started)
            logger.error(f"OpenAI completion call failed: {e}")
            raise GatewayError("complete", str(e)) from e

        self._observe("complete", "success", started)

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _observe(self, operation: str, outcome: str, started: float) -> None:
        latency_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_gateway_latency(operation, outcome, latency_ms)


def get_gateway(settings: Settings | None = None) -> Gateway:
    """Factory function to get appropriate gateway based on config.

    Returns:
        OpenAIGateway if API key is configured, DeterministicStubGateway otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI gateway for embeddings and completions")
        return OpenAIGateway(
            api_key=api_key.get_secret_value(),
            chat_model=settings.openai_chat_model,
            embedding_model=settings.openai_embedding_model,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub gateway")
    return DeterministicStubGateway(dimensions=settings.embedding_dimensions)
