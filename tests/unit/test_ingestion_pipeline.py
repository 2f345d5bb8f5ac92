"""Unit tests for the ingestion pipeline."""

import asyncio

import pytest

from salvebot.db.inmemory import (
    InMemoryChatbotRepository,
    InMemoryChunkRepository,
    InMemoryDocumentRepository,
)
from salvebot.errors import GatewayError, IngestionFailure, InvalidStatusTransition
from salvebot.ingestion.chunker import split_text
from salvebot.ingestion.pipeline import IngestionPipeline
from salvebot.llm.gateway import DeterministicStubGateway
from salvebot.models.chatbot import Chatbot
from salvebot.models.common import utcnow
from salvebot.models.documents import Document

DIMENSIONS = 16

FAQ_TEXT = "\n\n".join(f"Topic {i}:\nAnswer {i} explains topic {i} in detail." for i in range(20))


class FlakyGateway(DeterministicStubGateway):
    """Stub gateway that fails on the n-th embedding call."""

    def __init__(self, fail_at_call: int) -> None:
        super().__init__(dimensions=DIMENSIONS)
        self.fail_at_call = fail_at_call
        self.embed_calls = 0

    async def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        if self.embed_calls == self.fail_at_call:
            raise GatewayError("embed", "rate limited")
        return await super().embed(text)


class ShortVectorGateway(DeterministicStubGateway):
    """Stub gateway producing vectors of the wrong size."""

    async def embed(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0]


class JitteryGateway(DeterministicStubGateway):
    """Stub gateway whose later calls complete first."""

    def __init__(self) -> None:
        super().__init__(dimensions=DIMENSIONS)
        self.remaining = 100

    async def embed(self, text: str) -> list[float]:
        self.remaining -= 1
        await asyncio.sleep(self.remaining / 10000)
        return await super().embed(text)


class Stores:
    def __init__(self) -> None:
        self.documents = InMemoryDocumentRepository()
        self.chunks = InMemoryChunkRepository()
        self.chatbots = InMemoryChatbotRepository()


@pytest.fixture
def stores() -> Stores:
    return Stores()


async def _processing_document(stores: Stores, document_id: str = "doc-1") -> Document:
    await stores.chatbots.save_chatbot(
        Chatbot(chatbot_id="bot-1", owner_id="tenant-1", name="Support", domain="acme.com")
    )
    document = Document(
        document_id=document_id,
        tenant_id="tenant-1",
        chatbot_id="bot-1",
        file_name="faq.txt",
        media_type="text/plain",
        file_size=len(FAQ_TEXT),
        uploaded_at=utcnow(),
    )
    await stores.documents.create_document(document)
    return document


def _pipeline(stores: Stores, gateway: DeterministicStubGateway, **kwargs: int) -> IngestionPipeline:
    return IngestionPipeline(
        gateway,
        stores.documents,
        stores.chunks,
        stores.chatbots,
        max_chars=kwargs.get("max_chars", 120),
        overlap=kwargs.get("overlap", 30),
        batch_size=kwargs.get("batch_size", 5),
        embedding_dimensions=DIMENSIONS,
    )


@pytest.mark.asyncio
async def test_ingest_marks_document_ready_with_ordered_chunks(stores: Stores) -> None:
    """Test that all segments are embedded, stored and listed on the document."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS))

    chunks = await pipeline.ingest(document, FAQ_TEXT)

    expected_segments = split_text(FAQ_TEXT, max_chars=120, overlap=30)
    assert len(expected_segments) > 5
    assert [chunk.text for chunk in chunks] == expected_segments
    assert [chunk.ordinal for chunk in chunks] == list(range(len(expected_segments)))
    assert [chunk.chunk_id for chunk in chunks] == [
        f"doc-1_chunk_{i}" for i in range(len(expected_segments))
    ]
    assert all(len(chunk.embedding) == DIMENSIONS for chunk in chunks)

    stored = await stores.documents.get_document("tenant-1", "doc-1")
    assert stored is not None
    assert stored.status == "ready"
    assert stored.chunk_ids == [chunk.chunk_id for chunk in chunks]
    assert await stores.chunks.list_chunks("doc-1") == chunks

    chatbot = await stores.chatbots.get_chatbot("bot-1")
    assert chatbot is not None
    assert chatbot.stats.documents_count == 1


@pytest.mark.asyncio
async def test_chunk_metadata_has_page_and_section(stores: Stores) -> None:
    """Test approximate page numbers and header detection."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS))

    chunks = await pipeline.ingest(document, FAQ_TEXT)

    assert [chunk.metadata.page for chunk in chunks] == [i // 5 + 1 for i in range(len(chunks))]
    assert chunks[0].metadata.section == "Topic 0:"


@pytest.mark.asyncio
async def test_concurrent_batches_preserve_order(stores: Stores) -> None:
    """Test that out-of-order embedding completion keeps ordinal order."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, JitteryGateway(), batch_size=4)

    chunks = await pipeline.ingest(document, FAQ_TEXT)

    assert [chunk.text for chunk in chunks] == split_text(FAQ_TEXT, max_chars=120, overlap=30)


@pytest.mark.asyncio
async def test_embedding_failure_marks_document_error(stores: Stores) -> None:
    """Test that a failed embedding fails the document and leaves earlier chunks orphaned."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, FlakyGateway(fail_at_call=3), batch_size=2)

    with pytest.raises(IngestionFailure) as exc_info:
        await pipeline.ingest(document, FAQ_TEXT)

    assert exc_info.value.document_id == "doc-1"

    stored = await stores.documents.get_document("tenant-1", "doc-1")
    assert stored is not None
    assert stored.status == "error"
    assert stored.chunk_ids == []
    assert stored.error_message is not None
    assert "Embedding failed" in stored.error_message

    # First batch was persisted before the failure
    assert len(await stores.chunks.list_chunks("doc-1")) == 2

    chatbot = await stores.chatbots.get_chatbot("bot-1")
    assert chatbot is not None
    assert chatbot.stats.documents_count == 0


@pytest.mark.asyncio
async def test_dimension_mismatch_fails_ingestion(stores: Stores) -> None:
    """Test that vectors of the wrong size are rejected."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, ShortVectorGateway(dimensions=DIMENSIONS))

    with pytest.raises(IngestionFailure, match="dimensions"):
        await pipeline.ingest(document, FAQ_TEXT)

    stored = await stores.documents.get_document("tenant-1", "doc-1")
    assert stored is not None
    assert stored.status == "error"


@pytest.mark.asyncio
async def test_text_without_content_fails_ingestion(stores: Stores) -> None:
    """Test that zero segments is an ingestion failure."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS))

    with pytest.raises(IngestionFailure, match="No text content"):
        await pipeline.ingest(document, "   \n\n  ")

    stored = await stores.documents.get_document("tenant-1", "doc-1")
    assert stored is not None
    assert stored.status == "error"


@pytest.mark.asyncio
async def test_ingest_rejects_document_not_processing(stores: Stores) -> None:
    """Test that a terminal document cannot be ingested again."""
    document = await _processing_document(stores)
    pipeline = _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS))
    await pipeline.ingest(document, FAQ_TEXT)

    ready = await stores.documents.get_document("tenant-1", "doc-1")
    assert ready is not None

    with pytest.raises(InvalidStatusTransition):
        await pipeline.ingest(ready, FAQ_TEXT)


@pytest.mark.asyncio
async def test_document_deleted_during_ingestion_leaves_nothing(stores: Stores) -> None:
    """Test that chunks are dropped and counters untouched if the document vanished."""
    document = await _processing_document(stores)

    class DeletingGateway(DeterministicStubGateway):
        async def embed(self, text: str) -> list[float]:
            await stores.documents.delete_document("tenant-1", "doc-1")
            return await super().embed(text)

    pipeline = _pipeline(stores, DeletingGateway(dimensions=DIMENSIONS))

    chunks = await pipeline.ingest(document, FAQ_TEXT)

    assert chunks == []
    assert await stores.chunks.list_chunks("doc-1") == []
    chatbot = await stores.chatbots.get_chatbot("bot-1")
    assert chatbot is not None
    assert chatbot.stats.documents_count == 0


@pytest.mark.asyncio
async def test_documents_ingest_concurrently(stores: Stores) -> None:
    """Test that several documents can be ingested at the same time."""
    first = await _processing_document(stores, "doc-a")
    second = await _processing_document(stores, "doc-b")
    pipeline = _pipeline(stores, JitteryGateway())

    await asyncio.gather(pipeline.ingest(first, FAQ_TEXT), pipeline.ingest(second, FAQ_TEXT))

    for document_id in ("doc-a", "doc-b"):
        stored = await stores.documents.get_document("tenant-1", document_id)
        assert stored is not None
        assert stored.status == "ready"

    chatbot = await stores.chatbots.get_chatbot("bot-1")
    assert chatbot is not None
    assert chatbot.stats.documents_count == 2


def test_batch_size_must_be_positive(stores: Stores) -> None:
    """Test constructor validation."""
    with pytest.raises(ValueError):
        _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS), batch_size=0)


@pytest.mark.asyncio
async def test_stored_chunks_cannot_be_replaced(stores: Stores) -> None:
    """Test that a chunk ordinal is written once."""
    document = await _processing_document(stores)
    chunks = await _pipeline(stores, DeterministicStubGateway(dimensions=DIMENSIONS)).ingest(
        document, FAQ_TEXT
    )

    with pytest.raises(ValueError, match="already exists"):
        await stores.chunks.put_chunk(chunks[0].model_copy(update={"text": "replacement"}))

    assert (await stores.chunks.list_chunks("doc-1"))[0].text == chunks[0].text
