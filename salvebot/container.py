"""Service wiring - builds repositories, gateway, pipelines and services from settings."""

import logging
from dataclasses import dataclass, field

import redis
from sqlalchemy.ext.asyncio import AsyncEngine

from salvebot.access.gate import AccessGate
from salvebot.analytics.recorder import AnalyticsRecorder
from salvebot.chat.service import ChatService
from salvebot.config import Settings, get_settings
from salvebot.db.engine import create_async_engine_from_settings, create_session_factory
from salvebot.db.inmemory import (
    InMemoryBlobStore,
    InMemoryChatbotRepository,
    InMemoryChatExchangeRepository,
    InMemoryChunkRepository,
    InMemoryDocumentRepository,
    InMemoryRateLimiter,
    InMemoryTenantRepository,
)
from salvebot.db.repositories import (
    BlobStore,
    ChatbotRepository,
    ChatExchangeRepository,
    ChunkRepository,
    DocumentRepository,
    RateLimiter,
    TenantRepository,
)
from salvebot.db.sql_repositories import (
    SqlChatbotRepository,
    SqlChatExchangeRepository,
    SqlChunkRepository,
    SqlDocumentRepository,
    SqlTenantRepository,
)
from salvebot.ingestion.pipeline import IngestionPipeline
from salvebot.ingestion.service import DocumentService
from salvebot.llm.gateway import Gateway, get_gateway
from salvebot.middleware.ratelimit import API_BUCKET, CHAT_BUCKET, UPLOAD_BUCKET
from salvebot.ratelimit import RedisRateLimiter
from salvebot.rag.pipeline import RetrievalPipeline
from salvebot.storage.blobs import LocalBlobStore
from salvebot.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    """Persistence collaborators shared by every service."""

    tenants: TenantRepository
    chatbots: ChatbotRepository
    documents: DocumentRepository
    chunks: ChunkRepository
    exchanges: ChatExchangeRepository
    blobs: BlobStore
    engine: AsyncEngine | None = None


@dataclass
class ServiceContainer:
    """Everything the API layer needs, built once per application."""

    settings: Settings
    repositories: Repositories
    gateway: Gateway
    gate: AccessGate
    retrieval: RetrievalPipeline
    ingestion: IngestionPipeline
    recorder: AnalyticsRecorder
    documents: DocumentService
    chat: ChatService
    rate_limiters: dict[str, RateLimiter] = field(default_factory=dict)

    async def startup(self) -> None:
        """Start background workers."""
        self.recorder.start()

    async def shutdown(self) -> None:
        """Finish scheduled work, flush analytics and release connections."""
        await self.documents.drain()
        await self.recorder.stop()

        if self.repositories.engine is not None:
            await self.repositories.engine.dispose()


def build_repositories(settings: Settings) -> Repositories:
    """Create repositories for the configured storage backend."""
    blobs: BlobStore = LocalBlobStore(settings.blob_dir) if settings.blob_dir else InMemoryBlobStore()

    if settings.storage_backend == "sql":
        engine = create_async_engine_from_settings(settings)
        sessions = create_session_factory(engine)
        return Repositories(
            tenants=SqlTenantRepository(sessions),
            chatbots=SqlChatbotRepository(sessions),
            documents=SqlDocumentRepository(sessions),
            chunks=SqlChunkRepository(sessions),
            exchanges=SqlChatExchangeRepository(sessions),
            blobs=blobs,
            engine=engine,
        )

    return Repositories(
        tenants=InMemoryTenantRepository(),
        chatbots=InMemoryChatbotRepository(),
        documents=InMemoryDocumentRepository(),
        chunks=InMemoryChunkRepository(),
        exchanges=InMemoryChatExchangeRepository(),
        blobs=blobs,
    )


def build_rate_limiters(settings: Settings) -> dict[str, RateLimiter]:
    """Create one limiter per bucket; Redis-backed when REDIS_URL is set."""
    quotas = {
        CHAT_BUCKET: settings.chat_requests_per_min,
        UPLOAD_BUCKET: settings.upload_requests_per_min,
        API_BUCKET: settings.api_requests_per_min,
    }

    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        return {bucket: RedisRateLimiter(client, quota) for bucket, quota in quotas.items()}

    return {bucket: InMemoryRateLimiter(quota) for bucket, quota in quotas.items()}


def build_container(
    settings: Settings | None = None,
    *,
    repositories: Repositories | None = None,
    gateway: Gateway | None = None,
    rate_limiters: dict[str, RateLimiter] | None = None,
) -> ServiceContainer:
    """Wire the application services.

    Every collaborator can be overridden, which is how tests inject in-memory
    stores, fake gateways and tight rate limits.
    """
    settings = settings or get_settings()
    repos = repositories or build_repositories(settings)
    gateway = gateway or get_gateway(settings)
    metrics = PrometheusPipelineMetrics()

    gate = AccessGate(repos.chatbots, repos.tenants)
    retrieval = RetrievalPipeline(
        gateway,
        top_k=settings.retrieval_top_k,
        utility_model=settings.openai_utility_model,
        hyde_min_query_chars=settings.hyde_min_query_chars,
        confidence=settings.answer_confidence,
    )
    ingestion = IngestionPipeline(
        gateway,
        repos.documents,
        repos.chunks,
        repos.chatbots,
        max_chars=settings.chunk_size,
        overlap=settings.chunk_overlap,
        batch_size=settings.embedding_batch_size,
        embedding_dimensions=settings.embedding_dimensions,
        metrics=metrics,
    )
    recorder = AnalyticsRecorder(
        repos.exchanges,
        repos.chatbots,
        max_queue_size=settings.analytics_queue_size,
        metrics=metrics,
    )
    documents = DocumentService(
        repos.documents,
        repos.chunks,
        repos.chatbots,
        repos.blobs,
        ingestion,
        max_upload_bytes=settings.max_upload_bytes,
        allowed_media_types=settings.allowed_media_types,
    )
    chat = ChatService(gate, repos.documents, repos.chunks, retrieval, recorder, metrics=metrics)

    logger.info(f"Service container ready (storage={settings.storage_backend})")

    return ServiceContainer(
        settings=settings,
        repositories=repos,
        gateway=gateway,
        gate=gate,
        retrieval=retrieval,
        ingestion=ingestion,
        recorder=recorder,
        documents=documents,
        chat=chat,
        rate_limiters=rate_limiters if rate_limiters is not None else build_rate_limiters(settings),
    )
