"""Data models for the phone line."""

from .contact import ContactMessage
from .job import (
    DateType,
    Difficulty,
    JobFilterCriteria,
    JobPostingDraft,
    JobRecord,
    JobStat,
    PaymentKind,
    PaymentType,
    Suitability,
)
from .payment import (
    CallerProfile,
    Entitlement,
    EntitlementFacts,
    EntitlementKind,
    GatedAction,
    PaymentDecision,
    PaymentSettings,
    Transaction,
)
from .subscription import SubscriptionRecord

__all__ = [
    "CallerProfile",
    "ContactMessage",
    "DateType",
    "Difficulty",
    "Entitlement",
    "EntitlementFacts",
    "EntitlementKind",
    "GatedAction",
    "JobFilterCriteria",
    "JobPostingDraft",
    "JobRecord",
    "JobStat",
    "PaymentDecision",
    "PaymentKind",
    "PaymentSettings",
    "PaymentType",
    "SubscriptionRecord",
    "Suitability",
    "Transaction",
]
