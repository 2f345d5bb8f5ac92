"""Access gate - authorizes a chat request before any retrieval work.

Checks run in a fixed order and stop at the first failure so callers get a
predictable reason:

1. chatbot exists
2. chatbot is active
3. chatbot domain is verified
4. requesting domain matches the chatbot domain
5. owning tenant exists with an active or trial subscription
6. trial (if any) has not ended

The gate is read-only and evaluated on every request; decisions are never
cached because verification and subscription state can change at any time.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from urllib.parse import urlsplit

from sqlalchemy.exc import SQLAlchemyError

from salvebot.db.repositories import ChatbotRepository, TenantRepository
from salvebot.models.access import AccessDecision, DenialReason
from salvebot.models.common import utcnow
from salvebot.models.tenant import Tenant

logger = logging.getLogger(__name__)

ALLOWED_SUBSCRIPTIONS = frozenset({"active", "trial"})


def normalize_domain(value: str) -> str | None:
    """Reduce a URL or bare domain to its lowercase hostname.

    Examples:
        "https://Acme.com/pricing" -> "acme.com"
        "acme.com:8080" -> "acme.com"

    Returns:
        Hostname, or None if nothing parseable remains
    """
    candidate = value.strip()
    if not candidate:
        return None

    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        hostname = urlsplit(candidate).hostname
    except ValueError:
        return None

    if not hostname:
        return None

    return hostname.rstrip(".") or None


def trial_expired(tenant: Tenant, now: datetime) -> bool:
    """True if the tenant is on a trial whose end date has passed.

    A trial without an end date never expires.
    """
    if tenant.subscription_status != "trial" or tenant.trial_end_date is None:
        return False

    trial_end = tenant.trial_end_date
    if trial_end.tzinfo is None:
        trial_end = trial_end.replace(tzinfo=UTC)

    return trial_end < now


class AccessGate:
    """Authorizes chat requests against chatbot, domain and subscription state."""

    def __init__(
        self,
        chatbots: ChatbotRepository,
        tenants: TenantRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._chatbots = chatbots
        self._tenants = tenants
        self._clock = clock

    async def authorize(self, chatbot_id: str, requesting_domain: str) -> AccessDecision:
        """Decide whether a chat request may proceed.

        Args:
            chatbot_id: Chatbot ID from the request path
            requesting_domain: Domain (or URL) the widget is embedded on

        Returns:
            AccessDecision carrying the resolved chatbot on success or the
            first failing reason otherwise
        """
        try:
            return await self._evaluate(chatbot_id, requesting_domain)
        except SQLAlchemyError as e:
            logger.error(f"Access verification failed for chatbot {chatbot_id}: {e}")
            return AccessDecision.deny(DenialReason.verification_failed)

    async def _evaluate(self, chatbot_id: str, requesting_domain: str) -> AccessDecision:
        chatbot = await self._chatbots.get_chatbot(chatbot_id)
        if chatbot is None:
            return AccessDecision.deny(DenialReason.chatbot_not_found)

        if not chatbot.is_active:
            return AccessDecision.deny(DenialReason.chatbot_inactive)

        if not chatbot.is_verified:
            return AccessDecision.deny(DenialReason.domain_not_verified)

        request_host = normalize_domain(requesting_domain)
        chatbot_host = normalize_domain(chatbot.domain)
        if request_host is None or request_host != chatbot_host:
            return AccessDecision.deny(DenialReason.domain_mismatch)

        tenant = await self._tenants.get_tenant(chatbot.owner_id)
        if tenant is None:
            return AccessDecision.deny(DenialReason.account_not_found)

        if tenant.subscription_status not in ALLOWED_SUBSCRIPTIONS:
            return AccessDecision.deny(DenialReason.subscription_required)

        if trial_expired(tenant, self._clock()):
            return AccessDecision.deny(DenialReason.trial_expired)

        return AccessDecision.allow(chatbot)
