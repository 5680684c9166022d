"""Pydantic model for locally stored alert (tzintuk) subscriptions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, model_validator

from jobline.models.base import StoredModel
from jobline.models.job import JobFilterCriteria


class SubscriptionRecord(StoredModel):
    """One caller's alert subscription.

    ``active=False`` is a permanent cancellation and supersedes any pause,
    so a cancelled record never carries ``pause_until``.
    """

    id: str = ""
    phone: str
    active: bool = Field(default=True, alias="isActive")
    pause_until: Optional[datetime] = None
    filters: JobFilterCriteria = Field(default_factory=JobFilterCriteria)
    has_filters: bool = False
    night_mode_allowed: bool = False
    created_at: Optional[datetime] = None
    consent_given: bool = True
    consent_date: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    unsubscribe_reason: str = ""
    source: str = "phone-ivr"

    @model_validator(mode="after")
    def _cancel_supersedes_pause(self) -> "SubscriptionRecord":
        if not self.active and self.pause_until is not None:
            raise ValueError("a cancelled subscription cannot also be paused")
        return self

    def is_paused(self, now: datetime) -> bool:
        return self.pause_until is not None and self.pause_until > now
