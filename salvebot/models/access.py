"""Access gate decision model."""

from enum import Enum

from pydantic import BaseModel

from salvebot.models.chatbot import Chatbot


class DenialReason(str, Enum):
    """User-facing reasons a chat request can be refused."""

    chatbot_not_found = "Chatbot not found"
    chatbot_inactive = "Chatbot is not active"
    domain_not_verified = "Domain not verified"
    domain_mismatch = "Domain mismatch"
    account_not_found = "Account not found"
    subscription_required = "Subscription required"
    trial_expired = "Trial expired"
    verification_failed = "Verification failed"

    @property
    def status_category(self) -> str:
        """HTTP-style category used when the denial is surfaced."""
        if self is DenialReason.chatbot_not_found:
            return "not_found"
        if self is DenialReason.verification_failed:
            return "server_error"
        return "forbidden"


class AccessDecision(BaseModel):
    """Result of authorizing one chat request. Never cached."""

    allowed: bool
    reason: DenialReason | None = None
    chatbot: Chatbot | None = None

    @classmethod
    def allow(cls, chatbot: Chatbot) -> "AccessDecision":
        return cls(allowed=True, chatbot=chatbot)

    @classmethod
    def deny(cls, reason: DenialReason) -> "AccessDecision":
        return cls(allowed=False, reason=reason)
