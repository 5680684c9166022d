"""Unsubscribe / pause entry point for locally stored alert subscriptions.

Cancelling is permanent and never leaves a pause behind; pausing sets a
future ``pauseUntil`` and leaves the active flag alone.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from jobline.audio import Audio
from jobline.errors import StoreError
from jobline.prompts import ReadRequest, audio, prompt

from .base import Flow, MenuState

log = logging.getLogger("jobline.flows.unsubscribe")

CANCEL_PERMANENTLY = "1"
PAUSE_DAYS = {"2": 30, "3": 7}
UNSUBSCRIBE_REASON = "user_request_ivr"


class UnsubscribeFlow(Flow):
    state = MenuState.UNSUBSCRIBE

    async def run(self) -> MenuState:
        session = self.session
        if not session.caller_phone:
            await session.announce(prompt(audio(Audio.PHONE_NOT_IDENTIFIED)))
            return MenuState.MAIN

        try:
            record = await session.store.find_active_subscription(session.caller_phone)
        except StoreError:
            log.exception("Subscription lookup failed (call_id=%s)", session.call_id)
            await session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
            return MenuState.MAIN

        if record is None:
            await session.announce(prompt(audio(Audio.NOT_SUBSCRIBED)))
            return MenuState.MAIN

        choice = await session.read(
            prompt(audio(Audio.UNSUBSCRIBE_MENU)), ReadRequest.digit("unsubscribe_action")
        )
        now = session.now()
        if choice == CANCEL_PERMANENTLY:
            patch = {
                "active": False,
                "pause_until": None,
                "unsubscribed_at": now,
                "unsubscribe_reason": UNSUBSCRIBE_REASON,
            }
            done = Audio.UNSUBSCRIBED_SUCCESSFULLY
        elif choice in PAUSE_DAYS:
            patch = {"pause_until": now + timedelta(days=PAUSE_DAYS[choice])}
            done = Audio.PAUSED_SUCCESSFULLY
        else:
            return MenuState.MAIN

        try:
            await session.store.update_subscription(record.id, patch)
        except StoreError:
            log.exception("Updating subscription %s failed", record.id)
            session.events.emit("store_error", self.state.value, {"op": "update_subscription"})
            await session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
            return MenuState.MAIN

        log.info("Subscription %s updated: %s", record.id, sorted(patch))
        await session.announce(prompt(audio(done)))
        return MenuState.MAIN
