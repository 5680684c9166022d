"""Job Composer: the step-by-step posting wizard.

Steps run in a fixed order and none can be skipped: title, area,
difficulty, date, payment kind and amount, suitability, minimum age,
contact phone.  A spoken summary then asks confirm / edit; "edit" throws
the draft away and starts over from the title.  Only a confirmed (and, if
required, paid) draft is written, together with its serial number.
"""

from __future__ import annotations

import logging
from typing import Optional
from zoneinfo import ZoneInfo

from jobline.audio import POSTING_AREAS, UNSPECIFIED_AREA, Audio
from jobline.collector import DEFAULT_MAX_ATTEMPTS, FALLBACK_TITLE, parse_phone
from jobline.errors import StoreError
from jobline.formatting import format_job, phone_readout
from jobline.models import DateType, Difficulty, JobPostingDraft, PaymentType, Suitability
from jobline.payment import PaymentGate
from jobline.prompts import ReadRequest, audio, number, prompt, text

from .base import Flow, MenuState

log = logging.getLogger("jobline.flows.post_job")

DIFFICULTIES = {"1": Difficulty.EASY, "2": Difficulty.MEDIUM, "3": Difficulty.HARD}
DATE_TYPES = {"1": DateType.TODAY, "2": DateType.COMING_WEEK, "3": DateType.FLEXIBLE}
PAYMENT_TYPES = {"1": PaymentType.HOURLY, "2": PaymentType.GLOBAL}
SUITABILITY_CHOICES = {"1": "1", "2": "2", "3": "3"}
PHONE_CHOICES = {"1": "caller", "2": "custom"}

CONFIRM = "1"
EDIT = "2"

DRAFT_SLOT = "job_draft"
# Create-job key of a cleared publish; kept until the job is written
PUBLISH_KEY_SLOT = "publish_key"
PUBLISH_ATTEMPTS = 3


class PostJobFlow(Flow):
    state = MenuState.POST

    async def run(self) -> MenuState:
        session = self.session
        try:
            draft = await self._compose()
            if draft is None:
                await session.announce(prompt(audio(Audio.PUBLISH_CANCELLED)))
                return MenuState.MAIN
            return await self._publish(draft)
        finally:
            # Nothing collected here outlives the flow
            session.discard_fields("job_")

    async def _compose(self) -> Optional[JobPostingDraft]:
        """Collect and confirm a draft; None when the caller gives up editing."""
        rounds = self.session.settings.max_compose_rounds
        for round_number in range(1, rounds + 1):
            draft = await self._collect_draft()
            self.session.fields[DRAFT_SLOT] = draft

            decision = await self._confirm(draft)
            if decision == CONFIRM:
                return draft
            log.info("Caller chose to edit the draft (round %d/%d)", round_number, rounds)
            self.session.discard_fields("job_")
        return None

    async def _collect_draft(self) -> JobPostingDraft:
        collector = self.collector
        session = self.session

        title = await collector.collect(
            prompt(audio(Audio.POST_JOB_INTRO)),
            ReadRequest.speech("job_title"),
            fallback=FALLBACK_TITLE,
            validate=lambda raw: raw.strip() or None,
            error_prompt=prompt(audio(Audio.NO_NAME_TRY_AGAIN)),
            confirm=lambda value: prompt(
                audio(Audio.JOB_TITLE_RECORDED), text(value), audio(Audio.CONFIRM_OR_RERECORD)
            ),
        )
        area = await collector.choose(
            prompt(audio(Audio.SELECT_JOB_AREA)), "job_area", POSTING_AREAS,
            fallback=UNSPECIFIED_AREA,
        )
        difficulty = await collector.choose(
            prompt(audio(Audio.DIFFICULTY_OPTIONS)), "job_difficulty", DIFFICULTIES,
            fallback=Difficulty.MEDIUM,
        )
        date_type = await collector.choose(
            prompt(audio(Audio.DATE_SELECTION_PROMPT)), "job_date", DATE_TYPES,
            fallback=DateType.FLEXIBLE,
        )
        payment_type = await collector.choose(
            prompt(audio(Audio.PAYMENT_TYPE_SELECT)), "job_payment_type", PAYMENT_TYPES,
            fallback=PaymentType.GLOBAL,
        )
        amount_prompt = (
            Audio.ENTER_HOURLY_RATE if payment_type == PaymentType.HOURLY else Audio.ENTER_GLOBAL_AMOUNT
        )
        amount = await collector.number(prompt(audio(amount_prompt)), "job_amount")
        suitability_choice = await collector.choose(
            prompt(audio(Audio.SUITABILITY_SELECT)), "job_suitability", SUITABILITY_CHOICES,
            fallback="3",
        )
        min_age = await collector.number(prompt(audio(Audio.ENTER_MINIMUM_AGE)), "job_min_age", max_digits=2)
        contact_phone = await self._contact_phone()

        return JobPostingDraft(
            title=title,
            area=area,
            difficulty=difficulty.value,
            date_type=date_type,
            specific_date=session.today() if date_type == DateType.TODAY else None,
            payment_type=payment_type,
            amount=amount,
            suitability=Suitability.from_choice(suitability_choice),
            min_age=min_age,
            contact_phone=contact_phone,
            poster_phone=session.caller_phone,
        )

    async def _contact_phone(self) -> str:
        """Caller ID, or a typed number; blank input keeps the caller ID."""
        caller = self.session.caller_phone
        choice = "custom"
        if caller:
            choice = await self.collector.choose(
                prompt(audio(Audio.PHONE_NUMBER_OPTIONS)), "job_phone_choice", PHONE_CHOICES,
                fallback="caller",
            )
        if choice == "caller":
            self.session.record_field("job_contact_phone", caller)
            return caller

        def validate(raw: str) -> Optional[str]:
            if not raw.strip() and caller:
                return caller
            return parse_phone(raw)

        return await self.collector.collect(
            prompt(audio(Audio.ENTER_PHONE_NUMBER)),
            ReadRequest.number("job_contact_phone", max_digits=10),
            fallback=caller,
            validate=validate,
        )

    def _summary(self, draft: JobPostingDraft):
        preview = draft.build_record(0, self.session.now()).model_copy(update={"posted_date": None})
        return prompt(
            audio(Audio.CONFIRM_JOB_DETAILS),
            format_job(
                preview,
                now=self.session.now(),
                tz=ZoneInfo(self.session.settings.timezone),
                detailed=True,
            ),
            prompt(audio(Audio.PHONE_NUMBER_CONTACT), phone_readout(draft.contact_phone))
            if draft.contact_phone else None,
            audio(Audio.CONFIRM_OR_EDIT),
        )

    async def _confirm(self, draft: JobPostingDraft) -> str:
        """Play the summary; returns CONFIRM or EDIT.  ``*`` cancels."""
        return await self.collector.choose(
            self._summary(draft), "job_confirm", {CONFIRM: CONFIRM, EDIT: EDIT},
            fallback=EDIT, max_attempts=DEFAULT_MAX_ATTEMPTS,
        )

    async def _publish(self, draft: JobPostingDraft) -> MenuState:
        session = self.session
        key = session.fields.get(PUBLISH_KEY_SLOT)
        if key is None:
            try:
                allowed = await PaymentGate(session).poster_payment()
            except StoreError:
                log.exception("Recording poster payment failed (call_id=%s)", session.call_id)
                session.events.emit("store_error", self.state.value, {"op": "record_payment"})
                await session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
                return MenuState.MAIN
            if not allowed:
                await session.announce(prompt(audio(Audio.PUBLISH_CANCELLED)))
                return MenuState.MAIN
            # The cleared payment stays bound to this key until a job lands
            key = session.fields[PUBLISH_KEY_SLOT] = session.idempotency_key("create-job")
        else:
            log.info("Reusing cleared publish %s; no new charge", key)

        for attempt in range(1, PUBLISH_ATTEMPTS + 1):
            try:
                job_id, serial = await session.store.create_job(
                    draft, posted_at=session.now(), idempotency_key=key
                )
                break
            except StoreError:
                log.warning("Publishing job failed (key=%s, attempt %d/%d)",
                            key, attempt, PUBLISH_ATTEMPTS, exc_info=True)
        else:
            log.error("Job not published after %d attempts; payment kept on key %s",
                      PUBLISH_ATTEMPTS, key)
            session.events.emit(
                "store_error", self.state.value, {"op": "create_job", "key": key}
            )
            await session.announce(prompt(audio(Audio.PUBLISH_ERROR)))
            return MenuState.MAIN

        del session.fields[PUBLISH_KEY_SLOT]
        log.info("Job %s published from the phone line with serial %d", job_id, serial)
        session.events.emit("field", self.state.value, {"slot": "job_serial", "value": str(serial)})
        await session.announce(prompt(audio(Audio.JOB_PUBLISHED_SUCCESS), number(serial)))
        return MenuState.MAIN
