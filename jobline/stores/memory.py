"""In-process JobBoardStore for local development and tests.

Everything lives in dicts guarded by one asyncio.Lock; data is lost when
the process exits.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from jobline.errors import StoreError
from jobline.models import (
    CallerProfile,
    ContactMessage,
    Entitlement,
    EntitlementKind,
    JobPostingDraft,
    JobRecord,
    JobStat,
    PaymentSettings,
    SubscriptionRecord,
    Transaction,
)
from jobline.models.payment import SubscriptionWindow

from .base import DEFAULT_QUERY_LIMIT, JobBoardStore, phone_user_id

log = logging.getLogger("jobline.stores.memory")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _new_id() -> str:
    return secrets.token_urlsafe(15)


class MemoryStore(JobBoardStore):
    """JobBoardStore kept in memory.

    Args:
        last_serial: the highest serial number already handed out; the
            next created job gets ``last_serial + 1``.
        payment_settings: stored settings, or None to behave as if the
            settings document does not exist.
    """

    def __init__(
        self,
        last_serial: int = 0,
        payment_settings: Optional[PaymentSettings] = None,
    ) -> None:
        self._lock = asyncio.Lock()
        self._last_serial = last_serial
        self._payment_settings = payment_settings

        self.jobs: dict[str, JobRecord] = {}
        self.subscriptions: dict[str, SubscriptionRecord] = {}
        self.profiles: dict[str, CallerProfile] = {}
        self.transactions: dict[str, Transaction] = {}
        self.contact_messages: dict[str, ContactMessage] = {}
        self._idempotency: dict[str, Any] = {}

    # ── Seeding helpers ───────────────────────────────────────

    def add_job(self, record: JobRecord) -> str:
        job_id = record.id or _new_id()
        self.jobs[job_id] = record.model_copy(update={"id": job_id})
        return job_id

    def add_profile(self, profile: CallerProfile) -> None:
        self.profiles[profile.id or phone_user_id(profile.phone_number)] = profile

    def set_payment_settings(self, payment_settings: Optional[PaymentSettings]) -> None:
        self._payment_settings = payment_settings

    # ── Jobs ──────────────────────────────────────────────────

    async def create_job(
        self,
        draft: JobPostingDraft,
        *,
        posted_at: Optional[datetime] = None,
        idempotency_key: str = "",
    ) -> tuple[str, int]:
        async with self._lock:
            if idempotency_key and idempotency_key in self._idempotency:
                log.info("create_job replayed for key %s", idempotency_key)
                return self._idempotency[idempotency_key]

            serial = self._last_serial + 1
            # Yield inside the critical section; the lock keeps it serial.
            await asyncio.sleep(0)
            self._last_serial = serial

            record = draft.build_record(serial, posted_at or datetime.now(timezone.utc))
            job_id = self.add_job(record)
            result = (job_id, serial)
            if idempotency_key:
                self._idempotency[idempotency_key] = result

        log.info("Job %s created with serial %d", job_id, serial)
        return result

    async def increment_job_stat(self, job_id: str, stat: JobStat) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job is None:
                log.warning("increment_job_stat: no job %s", job_id)
                return
            field = {
                JobStat.VIEWS: "views",
                JobStat.CONTACT_ATTEMPTS: "contact_attempts",
                JobStat.APPLICATIONS: "applications",
            }[stat]
            self.jobs[job_id] = job.model_copy(update={field: getattr(job, field) + 1})

    async def query_jobs(self, limit: int = DEFAULT_QUERY_LIMIT) -> list[JobRecord]:
        published = [job for job in self.jobs.values() if job.is_posted]
        published.sort(key=lambda job: job.posted_date or _EPOCH, reverse=True)
        return [job.model_copy(deep=True) for job in published[:limit]]

    # ── Alert subscriptions ───────────────────────────────────

    async def create_subscription(
        self, record: SubscriptionRecord, *, idempotency_key: str = ""
    ) -> str:
        async with self._lock:
            if idempotency_key and idempotency_key in self._idempotency:
                return self._idempotency[idempotency_key]
            sub_id = _new_id()
            self.subscriptions[sub_id] = record.model_copy(update={"id": sub_id}, deep=True)
            if idempotency_key:
                self._idempotency[idempotency_key] = sub_id
        return sub_id

    async def find_active_subscription(self, phone: str) -> Optional[SubscriptionRecord]:
        for record in self.subscriptions.values():
            if record.phone == phone and record.active:
                return record.model_copy(deep=True)
        return None

    async def update_subscription(
        self, subscription_id: str, patch: dict[str, Any]
    ) -> SubscriptionRecord:
        async with self._lock:
            current = self.subscriptions.get(subscription_id)
            if current is None:
                raise StoreError(f"no subscription {subscription_id}")
            merged = SubscriptionRecord.model_validate({**current.model_dump(), **patch})
            self.subscriptions[subscription_id] = merged
        return merged.model_copy(deep=True)

    async def delete_subscription(self, subscription_id: str) -> None:
        async with self._lock:
            self.subscriptions.pop(subscription_id, None)
            for key in [k for k, v in self._idempotency.items() if v == subscription_id]:
                del self._idempotency[key]

    # ── Payments ──────────────────────────────────────────────

    async def get_payment_settings(self) -> Optional[PaymentSettings]:
        return self._payment_settings

    async def get_caller_profile(self, phone: str) -> Optional[CallerProfile]:
        for profile in self.profiles.values():
            if profile.phone_number == phone:
                return profile.model_copy(deep=True)
        return None

    async def grant_entitlement(self, phone: str, entitlement: Entitlement) -> None:
        async with self._lock:
            key = next(
                (k for k, p in self.profiles.items() if p.phone_number == phone),
                phone_user_id(phone),
            )
            profile = self.profiles.get(key) or CallerProfile(id=key, phone_number=phone)
            if entitlement.kind == EntitlementKind.SUBSCRIPTION:
                profile = profile.model_copy(update={
                    "subscription": SubscriptionWindow(
                        active=True,
                        started_at=entitlement.started_at,
                        expires_at=entitlement.expires_at,
                    ),
                })
            elif entitlement.job_id and entitlement.job_id not in profile.unlocked_jobs:
                profile = profile.model_copy(
                    update={"unlocked_jobs": [*profile.unlocked_jobs, entitlement.job_id]}
                )
            self.profiles[key] = profile

    async def record_transaction(
        self, transaction: Transaction, *, idempotency_key: str = ""
    ) -> str:
        async with self._lock:
            if idempotency_key and idempotency_key in self._idempotency:
                return self._idempotency[idempotency_key]
            tx_id = _new_id()
            self.transactions[tx_id] = transaction.model_copy(
                update={"id": tx_id, "idempotency_key": idempotency_key}
            )
            if idempotency_key:
                self._idempotency[idempotency_key] = tx_id
        return tx_id

    # ── Contact ───────────────────────────────────────────────

    async def save_contact_message(self, message: ContactMessage) -> str:
        msg_id = _new_id()
        self.contact_messages[msg_id] = message.model_copy(update={"id": msg_id})
        return msg_id
