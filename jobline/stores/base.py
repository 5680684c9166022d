"""Abstract base class for the job-board backing store.

The store is shared with the web application: jobs, alert subscriptions,
payment settings, user entitlements and transactions all live there.  The
phone line only ever reads, appends and patches; nothing is deleted.

Every concrete store must be safe to use from many calls at once.  The one
operation that needs strict serialisation is the job serial counter inside
``create_job``.  Stat increments are best-effort.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from jobline.models import (
    CallerProfile,
    ContactMessage,
    Entitlement,
    EntitlementFacts,
    JobPostingDraft,
    JobRecord,
    JobStat,
    PaymentSettings,
    SubscriptionRecord,
    Transaction,
)

# Published jobs fetched per search, before any filtering
DEFAULT_QUERY_LIMIT = 20


def phone_user_id(phone: str) -> str:
    """Document id of the profile created for a phone-only caller."""
    return f"phone-user-{phone}"


class JobBoardStore(ABC):
    """Abstract backing store.

    Raises:
        StoreError: from every write when the backend fails.  Reads used
            for informational purposes may also raise it; callers decide
            whether that is fatal.
    """

    # ── Jobs ──────────────────────────────────────────────────

    @abstractmethod
    async def create_job(
        self,
        draft: JobPostingDraft,
        *,
        posted_at: Optional[datetime] = None,
        idempotency_key: str = "",
    ) -> tuple[str, int]:
        """Assign the next serial number and persist a published job.

        The counter increment and the write happen atomically.  Repeating
        a call with the same ``idempotency_key`` returns the first result
        without writing again.

        Returns:
            ``(job_id, serial_number)``.
        """

    @abstractmethod
    async def increment_job_stat(self, job_id: str, stat: JobStat) -> None:
        """Add one to a job's ``views``/``contactAttempts``/``applications``."""

    @abstractmethod
    async def query_jobs(self, limit: int = DEFAULT_QUERY_LIMIT) -> list[JobRecord]:
        """Return published jobs, most recently posted first."""

    # ── Alert subscriptions ───────────────────────────────────

    @abstractmethod
    async def create_subscription(
        self, record: SubscriptionRecord, *, idempotency_key: str = ""
    ) -> str:
        """Persist a new subscription record and return its id."""

    @abstractmethod
    async def find_active_subscription(self, phone: str) -> Optional[SubscriptionRecord]:
        """Return the caller's record with ``isActive`` set, paused or not."""

    @abstractmethod
    async def update_subscription(
        self, subscription_id: str, patch: dict[str, Any]
    ) -> SubscriptionRecord:
        """Apply ``patch`` (snake_case field names) and return the result.

        The merged record is validated before anything is written, so a
        patch that would leave a cancelled record paused is rejected with
        ``ValueError``.  An unknown id raises StoreError.
        """

    @abstractmethod
    async def delete_subscription(self, subscription_id: str) -> None:
        """Remove a subscription record; an unknown id is not an error."""

    # ── Payments ──────────────────────────────────────────────

    @abstractmethod
    async def get_payment_settings(self) -> Optional[PaymentSettings]:
        """Return the stored settings, or None when none were ever saved."""

    @abstractmethod
    async def get_caller_profile(self, phone: str) -> Optional[CallerProfile]:
        """Look up the web-app user whose ``phoneNumber`` matches."""

    @abstractmethod
    async def grant_entitlement(self, phone: str, entitlement: Entitlement) -> None:
        """Append a job unlock or set the subscription window.

        A profile is created for the phone when none exists yet.
        """

    @abstractmethod
    async def record_transaction(
        self, transaction: Transaction, *, idempotency_key: str = ""
    ) -> str:
        """Append an immutable transaction record and return its id."""

    async def entitlement_facts(
        self, phone: str, job: JobRecord, now: Optional[datetime] = None
    ) -> EntitlementFacts:
        """Gather what the payment gate needs to know about the caller."""
        if not phone:
            return EntitlementFacts(has_phone=False)
        now = now or datetime.now(timezone.utc)
        is_owner = bool(job.posted_by and job.posted_by.id == phone_user_id(phone))
        profile = await self.get_caller_profile(phone)
        if profile is None:
            return EntitlementFacts(is_owner=is_owner)
        return EntitlementFacts(
            is_owner=is_owner,
            has_unlock=job.id in profile.unlocked_jobs,
            has_active_subscription=profile.has_active_subscription(now),
            is_admin=profile.is_admin,
        )

    async def check_user_entitlement(self, phone: str, job: JobRecord) -> bool:
        facts = await self.entitlement_facts(phone, job)
        return facts.entitled

    # ── Contact ───────────────────────────────────────────────

    @abstractmethod
    async def save_contact_message(self, message: ContactMessage) -> str:
        """Persist a voice message left by a caller and return its id."""

    async def close(self) -> None:
        """Release backend resources."""
