"""Payment Gate: decides whether a gated action needs a charge, and runs it.

``decide`` is a pure function over the stored settings and what is known
about the caller.  ``PaymentGate`` wraps it with the spoken challenge
(price, accept/cancel), the charge itself, and the writes that follow a
successful charge: the entitlement (single unlock or 30-day subscription)
and an immutable transaction record.  A failed charge changes nothing.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

from jobline.audio import Audio
from jobline.collector import FieldCollector
from jobline.errors import Cancelled, PaymentError, StoreError
from jobline.models import (
    Entitlement,
    EntitlementFacts,
    EntitlementKind,
    GatedAction,
    JobRecord,
    PaymentDecision,
    PaymentSettings,
    Transaction,
)
from jobline.prompts import ReadRequest, audio, number, prompt
from jobline.session import CallSession, redact_pii

log = logging.getLogger("jobline.payment")

SUBSCRIPTION_DAYS = 30


def decide(
    settings: PaymentSettings, facts: EntitlementFacts, action: GatedAction
) -> PaymentDecision:
    """Allow, challenge or deny one gated action.

    Gating off (master or the action's own flag) allows without payment.
    Any existing entitlement allows.  A caller who would have to pay but
    has no caller ID cannot be charged and is denied.
    """
    flag = (
        settings.enable_poster_payment
        if action == GatedAction.POST_JOB
        else settings.enable_viewer_payment
    )
    if not settings.master_switch or not flag:
        return PaymentDecision.ALLOWED_NO_PAYMENT
    if facts.entitled:
        return PaymentDecision.ALLOWED_ENTITLED
    if not facts.has_phone:
        return PaymentDecision.DENIED
    return PaymentDecision.CHALLENGE


class PaymentProcessor(ABC):
    """The external charge.  Implementations must be idempotent per key."""

    @abstractmethod
    async def charge(self, phone: str, amount: float, *, idempotency_key: str) -> bool:
        """Charge ``amount``; True on success, False when declined.

        Raises:
            PaymentError: the charge could not be attempted at all.
        """


class SimulatedProcessor(PaymentProcessor):
    """Stand-in processor: every charge succeeds, once per key."""

    def __init__(self) -> None:
        self.charges: dict[str, float] = {}

    async def charge(self, phone: str, amount: float, *, idempotency_key: str) -> bool:
        if idempotency_key in self.charges:
            log.info("Charge %s already processed", idempotency_key)
            return True
        self.charges[idempotency_key] = amount
        log.info("Simulated charge of %s for %s", amount, redact_pii(phone))
        return True


class PaymentGate:
    """Payment challenges for one call."""

    def __init__(self, session: CallSession) -> None:
        self._session = session
        self._collector = FieldCollector(session)
        self._processor: PaymentProcessor = session.payment_processor or SimulatedProcessor()

    async def load_settings(self) -> PaymentSettings:
        """Stored settings, or the all-disabled defaults."""
        try:
            stored = await self._session.store.get_payment_settings()
        except StoreError:
            log.exception("Could not load payment settings, gating disabled for this call")
            stored = None
        return stored or PaymentSettings()

    def _emit(self, action: GatedAction, outcome: str, **data) -> None:
        self._session.events.emit(
            "payment", self._session.state, {"action": action.value, "outcome": outcome, **data}
        )

    # ── Poster ─────────────────────────────────────────────────

    async def poster_payment(self) -> bool:
        """True when the caller may publish (free, entitled or paid)."""
        session = self._session
        settings = await self.load_settings()
        facts = EntitlementFacts(has_phone=bool(session.caller_phone))
        decision = decide(settings, facts, GatedAction.POST_JOB)
        self._emit(GatedAction.POST_JOB, decision.value)

        if decision.allowed:
            return True
        if decision == PaymentDecision.DENIED:
            await session.announce(prompt(audio(Audio.PHONE_NOT_IDENTIFIED)))
            return False

        await session.announce(prompt(
            audio(Audio.PAYMENT_INTRO_POSTER),
            audio(Audio.POST_JOB_PRICE_DETAILS),
            number(settings.post_job_price),
            audio(Audio.SHEKELS),
            audio(Audio.POST_PAYMENT_BENEFITS),
        ))
        choice = await session.read(
            prompt(audio(Audio.TO_CONTINUE_PAYMENT_PRESS_1), audio(Audio.TO_CANCEL_PRESS_2)),
            ReadRequest.digit("payment_choice"),
        )
        if choice != "1":
            log.info("Poster declined payment")
            self._emit(GatedAction.POST_JOB, "declined")
            await session.announce(prompt(audio(Audio.PAYMENT_CANCELLED_BY_USER)))
            return False

        paid = await self._charge(
            GatedAction.POST_JOB, settings.post_job_price, tx_type="post_job"
        )
        if paid:
            await session.announce(prompt(audio(Audio.PAYMENT_SUCCESSFUL_POSTER)))
        return paid

    # ── Viewer ─────────────────────────────────────────────────

    async def viewer_payment(self, job: JobRecord) -> str:
        """Gate a job's contact details.

        Returns ``"allowed"`` (free or already entitled), ``"subscription"``
        or ``"single"`` after a successful charge, or ``"cancelled"``.
        """
        session = self._session
        settings = await self.load_settings()
        try:
            facts = await session.store.entitlement_facts(session.caller_phone, job, session.now())
        except StoreError:
            log.exception("Entitlement lookup failed, treating caller as not entitled")
            facts = EntitlementFacts(has_phone=bool(session.caller_phone))
        decision = decide(settings, facts, GatedAction.VIEW_CONTACT)
        self._emit(GatedAction.VIEW_CONTACT, decision.value, job_id=job.id)

        if decision.allowed:
            return "allowed"
        if decision == PaymentDecision.DENIED:
            await session.announce(prompt(audio(Audio.PHONE_NOT_IDENTIFIED)))
            return "cancelled"

        await session.announce(prompt(
            audio(Audio.PAYMENT_INTRO_VIEWER),
            audio(Audio.SUBSCRIPTION_OPTION_FULL),
            number(settings.subscription_price),
            audio(Audio.SHEKELS_PER_MONTH),
            audio(Audio.SINGLE_PAYMENT_OPTION_FULL),
            number(settings.single_contact_price),
            audio(Audio.SHEKELS),
        ))
        try:
            kind: Optional[EntitlementKind] = await self._collector.choose(
                prompt(audio(Audio.PAYMENT_CHOICE_PROMPT)),
                "payment_type",
                {"1": EntitlementKind.SUBSCRIPTION, "2": EntitlementKind.SINGLE},
                fallback=None,
            )
        except Cancelled:
            kind = None
        if kind is None:
            self._emit(GatedAction.VIEW_CONTACT, "declined", job_id=job.id)
            await session.announce(prompt(audio(Audio.PAYMENT_CANCELLED_BY_USER)))
            return "cancelled"

        amount = (
            settings.subscription_price
            if kind == EntitlementKind.SUBSCRIPTION
            else settings.single_contact_price
        )
        paid = await self._charge(
            GatedAction.VIEW_CONTACT, amount, tx_type=kind.value, job=job, entitlement_kind=kind
        )
        if not paid:
            return "cancelled"
        await session.announce(prompt(audio(Audio.PAYMENT_SUCCESSFUL_VIEWER)))
        return kind.value

    # ── Charge ─────────────────────────────────────────────────

    async def _charge(
        self,
        action: GatedAction,
        amount: float,
        *,
        tx_type: str,
        job: Optional[JobRecord] = None,
        entitlement_kind: Optional[EntitlementKind] = None,
    ) -> bool:
        """Charge once, then persist the entitlement and the transaction.

        Raises:
            StoreError: the charge succeeded but recording it failed.
        """
        session = self._session
        key = session.idempotency_key(f"charge-{action.value}")
        await session.announce(prompt(audio(Audio.PAYMENT_INSTRUCTIONS)))

        try:
            ok = await self._processor.charge(session.caller_phone, amount, idempotency_key=key)
        except PaymentError:
            log.exception("Charge could not be attempted (key=%s)", key)
            ok = False

        if not ok:
            self._emit(action, "failed", amount=amount)
            await session.announce(prompt(audio(Audio.PAYMENT_FAILED)))
            return False

        now = session.now()
        if entitlement_kind == EntitlementKind.SUBSCRIPTION:
            await session.store.grant_entitlement(session.caller_phone, Entitlement(
                kind=entitlement_kind,
                started_at=now,
                expires_at=now + timedelta(days=SUBSCRIPTION_DAYS),
            ))
        elif entitlement_kind == EntitlementKind.SINGLE and job is not None:
            await session.store.grant_entitlement(session.caller_phone, Entitlement(
                kind=entitlement_kind, job_id=job.id, started_at=now,
            ))

        await session.store.record_transaction(
            Transaction(
                phone=session.caller_phone,
                job_id=job.id if job is not None and entitlement_kind == EntitlementKind.SINGLE else None,
                type=tx_type,
                amount=amount,
                timestamp=now,
            ),
            idempotency_key=key,
        )
        self._emit(action, "paid", amount=amount, key=key)
        log.info("Payment of %s recorded (key=%s)", amount, key)
        return True
