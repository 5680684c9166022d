"""Menu Router: the top-level state machine of a call.

States are the menu extensions (main, jobs, post, subscribe, contact,
unsubscribe) plus END.  ``main`` reads one digit and dispatches; every
other state is a Flow that runs to completion and names the next state.
Invalid main-menu input loops back to ``main`` with a per-call counter;
past the cap the call ends with a goodbye.

Failure handling at this boundary:

  Cancelled   the caller pressed ``*`` inside a flow: back to main
  CallEnded   hang-up or inactivity timeout: stop, say nothing
  anything    logged with traceback, generic error prompt, hang up
"""

from __future__ import annotations

import logging

from jobline.audio import Audio
from jobline.errors import CallEnded, Cancelled
from jobline.events import remove_event_sink
from jobline.flows import FLOWS, MenuState
from jobline.prompts import CANCEL_DIGIT, ReadRequest, audio, prompt
from jobline.session import CallSession, redact_pii, register_session, unregister_session

log = logging.getLogger("jobline.router")

MAIN_MENU = {
    "1": MenuState.JOBS,
    "2": MenuState.POST,
    "3": MenuState.SUBSCRIBE,
    "4": MenuState.CONTACT,
    "5": MenuState.UNSUBSCRIBE,
}


def entry_state_for(extension: str) -> MenuState:
    """Map a dialed extension path to the state the call starts in.

    ``""``, ``/`` and ``main`` start at the main menu; ``/yemot/jobs`` or
    just ``jobs`` start in the jobs flow.  Unknown paths fall back to main.
    """
    last = extension.strip("/").rsplit("/", 1)[-1].lower()
    try:
        state = MenuState(last)
    except ValueError:
        return MenuState.MAIN
    return MenuState.MAIN if state == MenuState.END else state


class MenuRouter:
    """Drives one call from its entry state until END."""

    def __init__(self, session: CallSession) -> None:
        self.session = session
        self.invalid_attempts = 0
        self._welcomed = False

    async def run(self) -> None:
        session = self.session
        state = entry_state_for(session.extension)
        log.info(
            "Call %s from %s starts in %s",
            session.call_id, redact_pii(session.caller_phone), state.value,
        )
        try:
            while state != MenuState.END and not session.is_done:
                session.enter_state(state.value)
                if state == MenuState.MAIN:
                    state = await self._main_menu()
                    continue
                try:
                    state = await FLOWS[state](session).run()
                except Cancelled:
                    log.info("Flow %s cancelled by caller", state.value)
                    state = MenuState.MAIN
        except CallEnded:
            log.info("Call %s ended by the caller in %s", session.call_id, session.state)
        except Exception as exc:
            log.exception("Unhandled error in call %s (state=%s)", session.call_id, session.state)
            session.events.emit("error", session.state, {"error": type(exc).__name__})
            await self._fail()
        else:
            session.enter_state(MenuState.END.value)

    async def _main_menu(self) -> MenuState:
        session = self.session
        greeting = None if self._welcomed else audio(Audio.WELCOME)
        self._welcomed = True
        choice = await session.read(
            prompt(greeting, audio(Audio.MAIN_MENU_OPTIONS)), ReadRequest.digit("menu_choice")
        )
        if choice in MAIN_MENU:
            self.invalid_attempts = 0
            return MAIN_MENU[choice]

        # ``*`` replays the menu quietly but still counts toward the cap
        self.invalid_attempts += 1
        log.info(
            "Invalid main-menu input %r (%d/%d)",
            choice, self.invalid_attempts, session.settings.max_invalid_menu_attempts,
        )
        if self.invalid_attempts >= session.settings.max_invalid_menu_attempts:
            await session.announce(prompt(audio(Audio.GOODBYE)))
            await session.hangup()
            return MenuState.END
        if choice != CANCEL_DIGIT:
            await session.announce(prompt(audio(Audio.INVALID_CHOICE_TRY_AGAIN)))
        return MenuState.MAIN

    async def _fail(self) -> None:
        """Generic error prompt and hang-up; never reads internals aloud."""
        session = self.session
        if session.is_done:
            return
        try:
            await session.announce(prompt(audio(Audio.SYSTEM_ERROR)))
            await session.hangup()
        except Exception:
            log.exception("Could not play the error prompt for call %s", session.call_id)


async def run_call(session: CallSession) -> None:
    """Run a call's dialog in its own task, with registry bookkeeping."""
    register_session(session)
    try:
        await MenuRouter(session).run()
    finally:
        unregister_session(session.call_id)
        remove_event_sink(session.call_id)
        await session.channel.close()
