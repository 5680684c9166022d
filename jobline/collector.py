"""Field Collector: bounded prompt/read/validate/confirm loop.

Telephony input is noisy.  An empty tap, a misheard recording or an
out-of-range number must never end a call, so every collection here
returns a usable value: the first valid answer, or the documented
fallback once the attempts run out.  The only ways out of ``collect``
other than a value are ``Cancelled`` (the caller pressed ``*`` on a read
that honours it) and ``CallEnded`` (hang-up or silence).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from jobline.audio import Audio
from jobline.errors import Cancelled
from jobline.prompts import CANCEL_DIGIT, PromptSpec, ReadRequest, audio, prompt
from jobline.session import CallSession

log = logging.getLogger("jobline.collector")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
FALLBACK_TITLE = "עבודה מהטלפון"


@dataclass(frozen=True)
class NumberPolicy:
    """How one numeric field is parsed and what it falls back to."""

    default: int
    minimum: int = 0
    maximum: int = 99999


# Every numeric field the dialogs collect, with its bounds and default.
NUMBER_POLICIES: dict[str, NumberPolicy] = {
    "job_amount": NumberPolicy(default=50, minimum=1, maximum=99999),
    "job_min_age": NumberPolicy(default=16, minimum=0, maximum=120),
    "filter_min_salary": NumberPolicy(default=0, minimum=0, maximum=9999),
    "filter_max_salary": NumberPolicy(default=9999, minimum=0, maximum=9999),
    "filter_min_age": NumberPolicy(default=0, minimum=0, maximum=120),
    "filter_max_age": NumberPolicy(default=120, minimum=0, maximum=120),
}


def parse_number(raw: str, policy: NumberPolicy) -> Optional[int]:
    """Return the integer in ``raw`` if it lies within the policy bounds."""
    digits = re.sub(r"\D", "", raw or "")
    if not digits:
        return None
    value = int(digits)
    if value < policy.minimum or value > policy.maximum:
        return None
    return value


def parse_phone(raw: str) -> Optional[str]:
    """Accept a 9-10 digit local number."""
    digits = re.sub(r"\D", "", raw or "")
    if 9 <= len(digits) <= 10 and digits.startswith("0"):
        return digits
    return None


class FieldCollector:
    """Collects values for one call session."""

    def __init__(self, session: CallSession) -> None:
        self._session = session

    async def collect(
        self,
        prompts: PromptSpec,
        request: ReadRequest,
        *,
        fallback: T,
        validate: Optional[Callable[[str], Optional[T]]] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        error_prompt: Optional[PromptSpec] = None,
        retry_prompts: Optional[PromptSpec] = None,
        confirm: Optional[Callable[[T], PromptSpec]] = None,
    ) -> T:
        """Read until a valid (and, with ``confirm``, confirmed) value.

        ``validate`` maps the raw input to a value, or None when invalid;
        without it any non-empty input is accepted.  ``confirm`` builds a
        playback prompt for a candidate value; the caller presses 1 to
        accept, anything else starts over.  Each pass through the loop is
        one attempt, whichever step rejected it.

        Raises:
            Cancelled: ``*`` on a read with ``allow_cancel``.
            CallEnded: hang-up or inactivity timeout.
        """
        session = self._session
        slot = request.slot
        error_prompt = error_prompt if error_prompt is not None else prompt(
            audio(Audio.INVALID_CHOICE_TRY_AGAIN)
        )

        for attempt in range(1, max_attempts + 1):
            session.attempts[slot] = attempt
            current = prompts if attempt == 1 or retry_prompts is None else retry_prompts
            raw = await session.read(current, request)

            if raw == CANCEL_DIGIT and request.allow_cancel:
                log.info("Caller cancelled at %s (call_id=%s)", slot, session.call_id)
                raise Cancelled(slot)

            value = validate(raw) if validate is not None else (raw or None)
            if value is None:
                log.info("Invalid input for %s (attempt %d/%d)", slot, attempt, max_attempts)
                if attempt < max_attempts:
                    await session.announce(error_prompt)
                continue

            if confirm is not None:
                answer = await session.read(
                    confirm(value), ReadRequest.digit(f"{slot}_confirm", allow_cancel=request.allow_cancel)
                )
                if answer == CANCEL_DIGIT and request.allow_cancel:
                    raise Cancelled(slot)
                if answer != "1":
                    continue

            session.record_field(slot, value)
            return value

        log.info("Attempts exhausted for %s, using fallback %r", slot, fallback)
        session.events.emit("fallback", session.state, {"slot": slot, "value": str(fallback)})
        session.record_field(slot, fallback)
        return fallback

    async def choose(
        self,
        prompts: PromptSpec,
        slot: str,
        choices: Mapping[str, T],
        *,
        fallback: T,
        allow_cancel: bool = True,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> T:
        """Closed-set single-digit choice."""
        return await self.collect(
            prompts,
            ReadRequest.digit(slot, allow_cancel=allow_cancel),
            fallback=fallback,
            validate=choices.get,
            max_attempts=max_attempts,
        )

    async def number(
        self,
        prompts: PromptSpec,
        slot: str,
        *,
        policy: Optional[NumberPolicy] = None,
        max_digits: int = 5,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        optional: bool = False,
    ) -> Optional[int]:
        """Numeric entry, validated against the slot's policy.

        Falls back to the policy default, or to None for ``optional``
        fields where no answer means no constraint.
        """
        policy = policy or NUMBER_POLICIES[slot]
        return await self.collect(
            prompts,
            ReadRequest.number(slot, max_digits=max_digits),
            fallback=None if optional else policy.default,
            validate=lambda raw: parse_number(raw, policy),
            max_attempts=max_attempts,
        )

    async def phone(
        self,
        prompts: PromptSpec,
        slot: str,
        *,
        fallback: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> str:
        return await self.collect(
            prompts,
            ReadRequest.number(slot, max_digits=10),
            fallback=fallback,
            validate=parse_phone,
            max_attempts=max_attempts,
        )

    async def menu_digit(self, prompts: PromptSpec, slot: str) -> str:
        """One raw digit for a navigation menu; ``*`` comes back as-is."""
        return await self._session.read(prompts, ReadRequest.digit(slot))

