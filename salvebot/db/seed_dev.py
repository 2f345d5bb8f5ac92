"""Dev seeding helper for stub authentication and local widget testing."""

import asyncio
import logging

from salvebot.config import get_settings
from salvebot.db.engine import (
    create_async_engine_from_settings,
    create_schema,
    create_session_factory,
)
from salvebot.db.repositories import ChatbotRepository, TenantRepository
from salvebot.db.sql_repositories import SqlChatbotRepository, SqlTenantRepository
from salvebot.models.chatbot import Chatbot, ChatbotSettings
from salvebot.models.tenant import Tenant

logger = logging.getLogger(__name__)

# Fixed IDs: use "Authorization: Bearer dev-tenant" with the stub auth
DEV_TENANT_ID = "dev-tenant"
DEV_CHATBOT_ID = "dev-chatbot"
DEV_DOMAIN = "localhost"


async def seed_dev_tenant_and_chatbot(
    tenants: TenantRepository, chatbots: ChatbotRepository
) -> None:
    """Seed a trial tenant with one active, verified chatbot.

    Idempotent: existing records are left untouched.
    """
    if await tenants.get_tenant(DEV_TENANT_ID) is None:
        logger.info(f"Creating dev tenant {DEV_TENANT_ID}")
        await tenants.save_tenant(
            Tenant(
                tenant_id=DEV_TENANT_ID,
                email="dev@example.com",
                name="Dev Business",
                subscription_status="trial",
            )
        )
    else:
        logger.info(f"Dev tenant {DEV_TENANT_ID} already exists")

    if await chatbots.get_chatbot(DEV_CHATBOT_ID) is None:
        logger.info(f"Creating dev chatbot {DEV_CHATBOT_ID} for domain {DEV_DOMAIN}")
        await chatbots.save_chatbot(
            Chatbot(
                chatbot_id=DEV_CHATBOT_ID,
                owner_id=DEV_TENANT_ID,
                name="Dev Chatbot",
                domain=DEV_DOMAIN,
                is_active=True,
                is_verified=True,
                settings=ChatbotSettings(welcome_message="Hi! How can I help you today?"),
            )
        )
    else:
        logger.info(f"Dev chatbot {DEV_CHATBOT_ID} already exists")


async def main() -> None:
    """Create the schema in DATABASE_URL and seed it."""
    settings = get_settings()
    engine = create_async_engine_from_settings(settings)
    try:
        await create_schema(engine)
        sessions = create_session_factory(engine)
        await seed_dev_tenant_and_chatbot(SqlTenantRepository(sessions), SqlChatbotRepository(sessions))
    finally:
        await engine.dispose()

    logger.info("Dev seeding complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
