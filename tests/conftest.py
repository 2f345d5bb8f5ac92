"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from salvebot.config import Settings
from salvebot.container import Repositories, ServiceContainer, build_container
from salvebot.db.engine import create_schema
from salvebot.db.inmemory import (
    InMemoryBlobStore,
    InMemoryChatbotRepository,
    InMemoryChatExchangeRepository,
    InMemoryChunkRepository,
    InMemoryDocumentRepository,
    InMemoryTenantRepository,
)
from salvebot.llm.gateway import DeterministicStubGateway
from salvebot.main import create_app
from salvebot.models.chatbot import Chatbot
from salvebot.models.common import new_id, utcnow
from salvebot.models.documents import Document
from salvebot.models.tenant import Tenant

TEST_DIMENSIONS = 64

TENANT_ID = "tenant-acme"
CHATBOT_ID = "bot-acme"
DOMAIN = "acme.com"

OTHER_TENANT_ID = "tenant-globex"
OTHER_CHATBOT_ID = "bot-globex"
OTHER_DOMAIN = "globex.com"

IngestText = Callable[..., Awaitable[Document]]


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's service endpoints."""
    return Settings(
        storage_backend="memory",
        database_url=None,
        blob_dir=None,
        redis_url=None,
        openai_api_key=None,
        embedding_dimensions=TEST_DIMENSIONS,
    )


@pytest.fixture
def gateway() -> DeterministicStubGateway:
    """Deterministic gateway matching the test embedding size."""
    return DeterministicStubGateway(dimensions=TEST_DIMENSIONS)


@pytest.fixture
def repositories() -> Repositories:
    """Empty in-memory repositories."""
    return Repositories(
        tenants=InMemoryTenantRepository(),
        chatbots=InMemoryChatbotRepository(),
        documents=InMemoryDocumentRepository(),
        chunks=InMemoryChunkRepository(),
        exchanges=InMemoryChatExchangeRepository(),
        blobs=InMemoryBlobStore(),
    )


@pytest_asyncio.fixture
async def seeded_repositories(repositories: Repositories) -> Repositories:
    """Two tenants, each with one active, verified chatbot."""
    await repositories.tenants.save_tenant(
        Tenant(tenant_id=TENANT_ID, email="owner@acme.com", name="Acme", subscription_status="active")
    )
    await repositories.chatbots.save_chatbot(
        Chatbot(
            chatbot_id=CHATBOT_ID,
            owner_id=TENANT_ID,
            name="Acme Support",
            domain=DOMAIN,
            is_active=True,
            is_verified=True,
        )
    )

    await repositories.tenants.save_tenant(
        Tenant(
            tenant_id=OTHER_TENANT_ID,
            email="owner@globex.com",
            name="Globex",
            subscription_status="active",
        )
    )
    await repositories.chatbots.save_chatbot(
        Chatbot(
            chatbot_id=OTHER_CHATBOT_ID,
            owner_id=OTHER_TENANT_ID,
            name="Globex Help",
            domain=OTHER_DOMAIN,
            is_active=True,
            is_verified=True,
        )
    )
    return repositories


@pytest.fixture
def container(
    settings: Settings,
    seeded_repositories: Repositories,
    gateway: DeterministicStubGateway,
) -> ServiceContainer:
    """Service container over seeded in-memory stores, without rate limits."""
    return build_container(
        settings,
        repositories=seeded_repositories,
        gateway=gateway,
        rate_limiters={},
    )


@pytest.fixture
def ingest_text(container: ServiceContainer) -> IngestText:
    """Create a processing document and run it through the ingestion pipeline."""

    async def _ingest(
        text: str,
        *,
        tenant_id: str = TENANT_ID,
        chatbot_id: str = CHATBOT_ID,
        file_name: str = "faq.txt",
    ) -> Document:
        document = Document(
            document_id=new_id(),
            tenant_id=tenant_id,
            chatbot_id=chatbot_id,
            file_name=file_name,
            media_type="text/plain",
            file_size=len(text.encode("utf-8")),
            uploaded_at=utcnow(),
        )
        await container.repositories.documents.create_document(document)
        await container.ingestion.ingest(document, text)

        stored = await container.repositories.documents.get_document(tenant_id, document.document_id)
        assert stored is not None
        return stored

    return _ingest


@pytest_asyncio.fixture
async def app_client(
    settings: Settings, container: ServiceContainer
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to an app built around the test container.

    ASGITransport does not run the lifespan, so the analytics worker is
    started and stopped here.
    """
    app = create_app(settings, container)
    container.recorder.start()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    await container.shutdown()


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema created.

    A file is used so that concurrent sessions see the same database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'salvebot.db'}",
        poolclass=NullPool,
        echo=False,
    )
    await create_schema(engine)

    yield engine

    await engine.dispose()
