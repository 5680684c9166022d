"""Per-call session context: identity, collected fields, attempt counters.

Each inbound call gets one CallSession, owned by the single asyncio task
that runs the call's dialog.  The session is the only way flows reach the
caller (``read``/``announce``/``transfer``/``hangup``) and it carries the
shared collaborators (store, directory client, payment processor) so that
flows take one argument.  Nothing here is ever persisted.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from jobline.channels.base import CallChannel
from jobline.config import Settings, settings as default_settings
from jobline.directory import YemotDirectoryClient
from jobline.errors import CallEnded
from jobline.events import CallEventSink
from jobline.prompts import PromptSpec, ReadRequest
from jobline.stores.base import JobBoardStore

log = logging.getLogger("jobline.session")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


# ── Session registry ─────────────────────────────────────────────

_active_sessions: dict[str, "CallSession"] = {}


def register_session(session: "CallSession") -> str:
    """Register a session under its call id and return the id."""
    _active_sessions[session.call_id] = session
    log.info("Session registered: %s", session.call_id)
    return session.call_id


def unregister_session(call_id: str) -> None:
    """Remove a session from the registry."""
    _active_sessions.pop(call_id, None)
    log.info("Session unregistered: %s", call_id)


def get_active_sessions() -> dict[str, "CallSession"]:
    """Return all active sessions."""
    return _active_sessions


def get_session(call_id: str) -> "CallSession | None":
    """Look up a session by call id."""
    return _active_sessions.get(call_id)


class CallSession:
    """One phone call's dialog context.

    Typical lifecycle::

        session = CallSession(channel, store, call_id=..., caller_phone=...)
        register_session(session)
        try:
            await MenuRouter(session).run()
        finally:
            unregister_session(session.call_id)
    """

    def __init__(
        self,
        channel: CallChannel,
        store: JobBoardStore,
        *,
        call_id: str,
        caller_phone: str = "",
        extension: str = "",
        directory: Optional[YemotDirectoryClient] = None,
        payment_processor: Optional[Any] = None,
        config: Optional[Settings] = None,
        events: Optional[CallEventSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.channel = channel
        self.store = store
        self.directory = directory
        self.payment_processor = payment_processor
        self.settings = config or default_settings

        self.call_id = call_id
        self.caller_phone = caller_phone
        self.extension = extension

        # Typed values collected so far, keyed by slot
        self.fields: dict[str, Any] = {}
        # Per-field retry counters; reset when a field is collected
        self.attempts: dict[str, int] = {}
        self.state = "main"

        self.events = events or CallEventSink(call_id)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._key_attempts: dict[str, int] = {}
        self._started_at = time.time()
        self._done = False

    # ── Identity and time ──────────────────────────────────────

    @property
    def is_done(self) -> bool:
        return self._done

    @property
    def started_at(self) -> float:
        return self._started_at

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        """The current date in the service's configured timezone."""
        return self.now().astimezone(ZoneInfo(self.settings.timezone)).date()

    # ── Transport operations ───────────────────────────────────

    async def read(self, prompts: PromptSpec, request: ReadRequest) -> str:
        """Play ``prompts`` and capture one value.

        Raises CallEnded when the caller hangs up or goes silent.
        """
        if self._done:
            raise CallEnded(self.call_id)
        self.events.emit("read", self.state, {
            "slot": request.slot,
            "mode": request.mode.value,
            "prompts": [f"{s.kind.value}:{s.data}" for s in prompts],
        })
        try:
            value = await self.channel.read(prompts, request)
        except CallEnded as exc:
            self._done = True
            self.events.emit("hangup", self.state, {"reason": type(exc).__name__})
            raise
        self.events.emit("input", self.state, {"slot": request.slot, "value": value})
        return value

    async def announce(self, prompts: PromptSpec) -> None:
        self.events.emit("announce", self.state, {
            "prompts": [f"{s.kind.value}:{s.data}" for s in prompts],
        })
        await self.channel.announce(prompts)

    async def transfer(self, destination: str) -> None:
        self.events.emit("transfer", self.state, {"destination": destination})
        log.info("Call %s transferred to %s", self.call_id, destination)
        self._done = True
        await self.channel.transfer(destination)

    async def hangup(self) -> None:
        self.events.emit("hangup", self.state, {"reason": "flow"})
        self._done = True
        await self.channel.hangup()

    # ── Dialog bookkeeping ─────────────────────────────────────

    def enter_state(self, state: str) -> None:
        if state != self.state:
            self.events.emit("transition", self.state, {"to": state})
        self.state = state

    def record_field(self, slot: str, value: Any) -> None:
        self.fields[slot] = value
        self.attempts.pop(slot, None)
        self.events.emit("field", self.state, {"slot": slot, "value": str(value)})

    def discard_fields(self, *prefixes: str) -> None:
        """Drop collected fields whose slot starts with any prefix (all if none)."""
        for slot in list(self.fields):
            if not prefixes or slot.startswith(prefixes):
                del self.fields[slot]

    def idempotency_key(self, step: str) -> str:
        """Key for one attempt at an external write: ``call-id:step:attempt``.

        Each call starts a new attempt; reuse the returned key for any
        retry of that same attempt.
        """
        attempt = self._key_attempts.get(step, 0) + 1
        self._key_attempts[step] = attempt
        return f"{self.call_id}:{step}:{attempt}"

    def summary(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "caller": redact_pii(self.caller_phone),
            "extension": self.extension,
            "state": self.state,
            "started_at": self._started_at,
            "fields": sorted(self.fields),
            "done": self._done,
        }
