"""Tenant (business account) domain model."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

SubscriptionStatus = Literal["active", "inactive", "trial", "cancelled"]


class Tenant(BaseModel):
    """Business account that owns chatbots and documents.

    Only the fields the access gate reads are modelled; billing and signup
    state are managed elsewhere.
    """

    tenant_id: str
    email: str
    name: str
    subscription_status: SubscriptionStatus = "inactive"
    trial_end_date: datetime | None = None
