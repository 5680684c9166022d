"""Contact line: leave a voice message or hear the website details."""

from __future__ import annotations

import logging

from jobline.audio import Audio
from jobline.errors import StoreError
from jobline.models import ContactMessage
from jobline.prompts import ReadRequest, audio, prompt, text

from .base import Flow, MenuState

log = logging.getLogger("jobline.flows.contact")

LEAVE_MESSAGE = "1"
HEAR_DETAILS = "2"
UNKNOWN_CALLER = "לא ידוע"


class ContactFlow(Flow):
    state = MenuState.CONTACT

    async def run(self) -> MenuState:
        session = self.session
        choice = await session.read(prompt(audio(Audio.CONTACT_MENU)), ReadRequest.digit("contact_choice"))

        if choice == LEAVE_MESSAGE:
            await self._leave_message()
        elif choice == HEAR_DETAILS:
            await session.announce(prompt(
                audio(Audio.CONTACT_DETAILS_INTRO),
                text(f"אתר האינטרנט: {session.settings.website_name}"),
            ))
        return MenuState.MAIN

    async def _leave_message(self) -> None:
        session = self.session
        recording = await session.read(
            prompt(audio(Audio.LEAVE_MESSAGE_INTRO)), ReadRequest.recording("contact_message")
        )
        if not recording:
            return
        try:
            await session.store.save_contact_message(ContactMessage(
                phone=session.caller_phone or UNKNOWN_CALLER,
                message_ref=recording,
                created_at=session.now(),
            ))
        except StoreError:
            log.exception("Saving contact message failed (call_id=%s)", session.call_id)
            await session.announce(prompt(audio(Audio.SYSTEM_ERROR_TRY_LATER)))
            return
        await session.announce(prompt(audio(Audio.MESSAGE_SAVED_THANKS)))
