"""Subscription Manager: alert (tzintuk) enrollment and management.

Membership lives on the provider's side.  This flow only reads it (via the
directory client) and hands the caller to the provider's own extensions
to join or leave a list.  Locally it keeps optional filter preferences
in a SubscriptionRecord, which narrows which broadcasts count as a match
but delivers nothing by itself.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from jobline.audio import Audio, city_audio
from jobline.directory import AlertList
from jobline.errors import DirectoryError, StoreError
from jobline.models import JobFilterCriteria, SubscriptionRecord
from jobline.prompts import ReadRequest, audio, prompt, text

from .base import Flow, MenuState
from .filters import collect_ages, collect_area, collect_payment

log = logging.getLogger("jobline.flows.subscribe")

BASIC = "basic"
FILTERED = "filtered"
COMBINED = "combined"

SUBSCRIPTION_TYPES = {"1": BASIC, "2": FILTERED, "3": COMBINED}
FILTER_KINDS = {"1": "area", "2": "salary", "3": "age"}
NIGHT_MODE = {"1": True, "2": False}

MANAGE = "1"
CONFIRM = "1"


class SubscribeFlow(Flow):
    state = MenuState.SUBSCRIBE

    async def run(self) -> MenuState:
        session = self.session
        if not session.caller_phone:
            await session.announce(prompt(audio(Audio.PHONE_NOT_IDENTIFIED)))
            return MenuState.MAIN

        try:
            existing = await self._memberships()
            if existing is not None:
                return await self._manage_existing(existing)
            return await self._subscribe_new()
        finally:
            session.discard_fields("subscribe_")

    async def _memberships(self) -> Optional[list[AlertList]]:
        """Lists the caller is on, or None for a new subscriber.

        The provider directory is authoritative.  When it cannot be
        reached, a local active record still marks the caller as
        subscribed (with no list names to announce).
        """
        session = self.session
        directory = session.directory
        if directory is not None and directory.configured:
            try:
                lists = await directory.lists_for_phone(session.caller_phone)
                return lists or None
            except DirectoryError:
                log.warning("Directory lookup failed, falling back to local records", exc_info=True)

        try:
            record = await session.store.find_active_subscription(session.caller_phone)
        except StoreError:
            log.warning("Local subscription lookup failed", exc_info=True)
            return None
        return [] if record is not None else None

    # ── Existing subscriber ────────────────────────────────────

    async def _manage_existing(self, lists: list[AlertList]) -> MenuState:
        session = self.session
        names = []
        for alert_list in lists:
            spoken = alert_list.spoken_name
            city_file = city_audio(spoken)
            names.append(audio(city_file) if city_file else text(spoken))
        await session.announce(prompt(audio(Audio.ALERTS_ALREADY_ACTIVE), tuple(names)))

        action = await session.read(
            prompt(audio(Audio.ALERTS_MANAGE_OPTIONS)), ReadRequest.digit("subscribe_manage")
        )
        if action != MANAGE:
            return MenuState.MAIN

        confirm = await session.read(
            prompt(audio(Audio.ALERTS_UNSUBSCRIBE_CONFIRM)), ReadRequest.digit("subscribe_manage_confirm")
        )
        if confirm != CONFIRM:
            return MenuState.MAIN

        destination = next(
            (alert_list.ext_path for alert_list in lists if alert_list.ext_path),
            session.settings.tzintuk_manage_extension,
        )
        await session.transfer(destination)
        return MenuState.END

    # ── New subscriber ─────────────────────────────────────────

    async def _subscribe_new(self) -> MenuState:
        session = self.session
        await session.announce(prompt(audio(Audio.ALERTS_INTRO)))
        kind = await self.collector.choose(
            prompt(audio(Audio.ALERTS_SUBSCRIBE_OPTIONS)), "subscribe_type", SUBSCRIPTION_TYPES,
            fallback=None,
        )
        if kind is None:
            return MenuState.MAIN

        if kind == FILTERED:
            filters = await self._collect_filters()
            night_mode = await self._night_mode()
            if not await self._save(filters, night_mode):
                return MenuState.MAIN
            await session.announce(prompt(
                audio(Audio.ALERTS_SUBSCRIBED_FILTERED),
                audio(Audio.NIGHT_MODE_ENABLED) if night_mode else None,
            ))
        elif kind == COMBINED:
            if not await self._save(JobFilterCriteria(), night_mode=True):
                return MenuState.MAIN
            await session.announce(prompt(audio(Audio.NIGHT_MODE_ENABLED)))
        else:
            await session.announce(prompt(audio(Audio.ALERTS_SUBSCRIBED)))

        await session.announce(prompt(audio(Audio.ALERTS_LEGAL_NOTICE)))
        # The provider's own registration adds the caller to the broadcast list
        await session.transfer(session.settings.tzintuk_register_extension)
        return MenuState.END

    async def _collect_filters(self) -> JobFilterCriteria:
        kind = await self.collector.choose(
            prompt(audio(Audio.ALERTS_FILTER_OPTIONS)), "subscribe_filter_kind", FILTER_KINDS,
            fallback="area",
        )
        values: dict[str, Any]
        if kind == "salary":
            values = await collect_payment(self.collector)
        elif kind == "age":
            values = await collect_ages(self.collector)
        else:
            values = {"area": await collect_area(self.collector, slot="subscribe_area")}
        filters = JobFilterCriteria(**values)
        self.session.record_field("subscribe_filters", filters.model_dump(exclude_none=True))
        return filters

    async def _night_mode(self) -> bool:
        """Night-mode opt-in; ``*`` raises Cancelled and drops everything."""
        return await self.collector.choose(
            prompt(audio(Audio.NIGHT_MODE_QUESTION)), "subscribe_night_mode", NIGHT_MODE,
            fallback=False,
        )

    async def _save(self, filters: JobFilterCriteria, night_mode: bool) -> bool:
        """Write the record inactive, then activate it once it exists."""
        session = self.session
        now = session.now()
        record = SubscriptionRecord(
            phone=session.caller_phone,
            active=False,
            filters=filters,
            has_filters=not filters.is_empty,
            night_mode_allowed=night_mode,
            created_at=now,
            consent_given=True,
            consent_date=now,
        )
        sub_id = None
        try:
            sub_id = await session.store.create_subscription(
                record, idempotency_key=session.idempotency_key("create-subscription")
            )
            await session.store.update_subscription(sub_id, {"active": True})
        except StoreError:
            log.exception("Saving subscription failed (call_id=%s)", session.call_id)
            session.events.emit("store_error", self.state.value, {"op": "create_subscription"})
            if sub_id is not None:
                await self._discard(sub_id)
            await session.announce(prompt(audio(Audio.REGISTRATION_ERROR)))
            return False

        log.info("Subscription %s saved (filters=%s, night=%s)", sub_id, record.has_filters, night_mode)
        return True

    async def _discard(self, sub_id: str) -> None:
        """Remove a record that was created but never activated."""
        try:
            await self.session.store.delete_subscription(sub_id)
        except StoreError:
            log.exception("Inactive subscription %s left behind (call_id=%s)",
                          sub_id, self.session.call_id)
            self.session.events.emit(
                "store_error", self.state.value, {"op": "delete_subscription", "id": sub_id}
            )
