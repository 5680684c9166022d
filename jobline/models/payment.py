"""Payment gating settings, decisions, entitlements and transactions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from jobline.models.base import StoredModel


class PaymentSettings(StoredModel):
    """Stored at ``config/paymentSettings``; defaults disable all gating."""

    master_switch: bool = False
    enable_poster_payment: bool = False
    enable_viewer_payment: bool = False
    post_job_price: float = 10
    subscription_price: float = 15
    single_contact_price: float = 5


class GatedAction(str, Enum):
    POST_JOB = "post_job"
    VIEW_CONTACT = "view_contact"


class PaymentDecision(str, Enum):
    ALLOWED_NO_PAYMENT = "allowed_no_payment_required"
    ALLOWED_ENTITLED = "allowed_already_entitled"
    CHALLENGE = "challenge_required"
    DENIED = "denied"

    @property
    def allowed(self) -> bool:
        return self in (PaymentDecision.ALLOWED_NO_PAYMENT, PaymentDecision.ALLOWED_ENTITLED)


@dataclass(frozen=True)
class EntitlementFacts:
    """What is already known about the caller before any charge."""

    has_phone: bool = True
    is_owner: bool = False
    has_unlock: bool = False
    has_active_subscription: bool = False
    is_admin: bool = False

    @property
    def entitled(self) -> bool:
        return self.is_owner or self.has_unlock or self.has_active_subscription or self.is_admin


class EntitlementKind(str, Enum):
    SINGLE = "single"
    SUBSCRIPTION = "subscription"


class Entitlement(StoredModel):
    """The right granted by a successful charge."""

    kind: EntitlementKind
    job_id: Optional[str] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class SubscriptionWindow(StoredModel):
    active: bool = False
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class CallerProfile(StoredModel):
    """The parts of a web-app user document the phone line cares about."""

    id: str = ""
    phone_number: str = ""
    role: str = "user"
    unlocked_jobs: list[str] = Field(default_factory=list)
    subscription: Optional[SubscriptionWindow] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def has_active_subscription(self, now: datetime) -> bool:
        sub = self.subscription
        return bool(sub and sub.active and sub.expires_at and sub.expires_at > now)


class Transaction(StoredModel):
    """Immutable record of a successful charge."""

    id: str = ""
    phone: str
    job_id: Optional[str] = None
    type: str
    amount: float
    timestamp: datetime
    source: str = "phone-ivr"
    idempotency_key: str = ""
