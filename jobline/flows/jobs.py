"""Browse jobs: filter menu, then one posting per interaction."""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from jobline.audio import Audio
from jobline.collector import DEFAULT_MAX_ATTEMPTS
from jobline.errors import StoreError
from jobline.formatting import format_job, phone_readout
from jobline.models import JobFilterCriteria, JobRecord, JobStat
from jobline.payment import PaymentGate
from jobline.prompts import CANCEL_DIGIT, ReadRequest, audio, number, prompt
from jobline.query import JobQueryEngine

from .base import Flow, MenuState
from .filters import collect_ages, collect_area, collect_payment

log = logging.getLogger("jobline.flows.jobs")

FILTER_ALL = "all"
FILTER_AREA = "area"
FILTER_SALARY = "salary"
FILTER_AGE = "age"

FILTER_MENU = {"1": FILTER_ALL, "2": FILTER_AREA, "3": FILTER_SALARY, "4": FILTER_AGE}

# Per-job actions
DETAILS = "1"
NEXT = "2"
BACK_TO_FILTERS = "3"

# Detail actions
HEAR_CONTACT = "1"


class JobsFlow(Flow):
    state = MenuState.JOBS

    def __init__(self, session) -> None:
        super().__init__(session)
        self._tz = ZoneInfo(session.settings.timezone)
        self._engine = JobQueryEngine(session.store, self._tz)

    async def run(self) -> MenuState:
        while True:
            criteria = await self._filter_menu()
            try:
                jobs = await self._engine.search(criteria, self.session.today())
            except StoreError:
                log.exception("Job search failed (call_id=%s)", self.session.call_id)
                self.session.events.emit("store_error", self.state.value, {"op": "query_jobs"})
                await self.session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
                return MenuState.MAIN

            if not jobs:
                await self.session.announce(prompt(audio(Audio.NO_JOBS_FOUND)))
                return MenuState.MAIN

            await self.session.announce(
                prompt(audio(Audio.FOUND_JOBS), number(len(jobs)), audio(Audio.JOBS_PLURAL))
            )
            outcome = await self._present(jobs)
            if outcome == BACK_TO_FILTERS:
                continue
            if outcome == CANCEL_DIGIT:
                return MenuState.MAIN

            await self.session.announce(prompt(audio(Audio.ALL_JOBS_DONE)))
            return MenuState.MAIN

    async def _filter_menu(self) -> JobFilterCriteria:
        """Which jobs to hear.  ``*`` raises Cancelled (back to main)."""
        choice = await self.collector.choose(
            prompt(audio(Audio.JOBS_MENU_OPTIONS)), "jobs_filter", FILTER_MENU, fallback=FILTER_ALL
        )
        if choice == FILTER_AREA:
            return JobFilterCriteria(area=await collect_area(self.collector))
        if choice == FILTER_SALARY:
            return JobFilterCriteria(**await collect_payment(self.collector))
        if choice == FILTER_AGE:
            return JobFilterCriteria(**await collect_ages(self.collector))
        return JobFilterCriteria()

    async def _present(self, jobs: list[JobRecord]) -> str:
        """Read jobs one by one; returns NEXT when all were heard."""
        now = self.session.now()
        for index, job in enumerate(jobs, start=1):
            readout = prompt(
                audio(Audio.JOB_NUMBER),
                number(index),
                format_job(job, now=now, tz=self._tz),
                audio(Audio.JOB_NAVIGATION),
            )
            for attempt in range(1, DEFAULT_MAX_ATTEMPTS + 1):
                action = await self.session.read(readout, ReadRequest.digit("job_action"))
                if action in (DETAILS, NEXT, BACK_TO_FILTERS, CANCEL_DIGIT):
                    break
                if attempt < DEFAULT_MAX_ATTEMPTS:
                    await self.session.announce(prompt(audio(Audio.INVALID_CHOICE_TRY_AGAIN)))
            else:
                action = NEXT

            if action in (CANCEL_DIGIT, BACK_TO_FILTERS):
                return action
            if action == DETAILS and await self._details(job, now) == CANCEL_DIGIT:
                return CANCEL_DIGIT
        return NEXT

    async def _details(self, job: JobRecord, now: datetime) -> str:
        """Full readout; counts one view and at most one contact attempt.

        Returns ``*`` when the caller asked for the main menu.
        """
        await self._bump(job, JobStat.VIEWS)
        choice = await self.session.read(
            prompt(format_job(job, now=now, tz=self._tz, detailed=True), audio(Audio.JOB_DETAILS_OPTIONS)),
            ReadRequest.digit("detail_action"),
        )
        if choice != HEAR_CONTACT or not job.contact_phone:
            return choice

        try:
            outcome = await PaymentGate(self.session).viewer_payment(job)
        except StoreError:
            log.exception("Recording viewer payment failed (call_id=%s)", self.session.call_id)
            await self.session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
            return choice
        if outcome == "cancelled":
            return choice

        await self._bump(job, JobStat.CONTACT_ATTEMPTS)
        await self.session.announce(prompt(
            audio(Audio.CONTACT_DETAILS_INTRO),
            audio(Audio.PHONE_NUMBER_CONTACT),
            phone_readout(job.contact_phone),
        ))
        return choice

    async def _bump(self, job: JobRecord, stat: JobStat) -> None:
        try:
            await self.session.store.increment_job_stat(job.id, stat)
        except StoreError:
            log.warning("Could not increment %s on job %s", stat.value, job.id)
