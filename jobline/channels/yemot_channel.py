"""YemotChannel: CallChannel for the Yemot HaMashiach webhook API.

The provider drives a call as a sequence of HTTP hits against our webhook.
Each hit carries the call identity plus every value collected so far, and
each response body tells the provider what to do next:

  ← GET /yemot?ApiCallId=..&ApiPhone=..&ApiExtension=..            (first hit)
  → read=t-welcome text.f-034=menu_choice_1,yes,1,1,7,No,no,no,,,,,yes,None,
  ← GET /yemot?ApiCallId=..&menu_choice_1=2
  → id_list_message=f-024&read=...
  ← GET /yemot?ApiCallId=..&hangup=yes                              (caller left)

A call's flow runs as its own asyncio task.  The webhook handler feeds hits
into the channel's inbox and waits on the outbox for the next action; the
flow's ``read()`` pushes an action to the outbox and suspends on the inbox.

Protocol reference:
  https://f2.freeivr.co.il/topic/55/api-הגדרת-שלוחת-api
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from jobline.channels.base import CallChannel
from jobline.errors import CallHangup, CallTimeout
from jobline.prompts import CANCEL_DIGIT, PromptSpec, ReadMode, ReadRequest, SegmentKind

log = logging.getLogger("jobline.yemot_channel")

HANGUP_ACTION = "go_to_folder=hangup"

# Characters the provider treats as syntax inside a message list
_INVALID_TEXT_CHARS = re.compile(r"[.\-\"'&|,=]")

_SEGMENT_PREFIX = {
    SegmentKind.AUDIO: "f",
    SegmentKind.TEXT: "t",
    SegmentKind.NUMBER: "n",
    SegmentKind.DIGITS: "d",
}

# The provider sends this literal when an allowed-empty tap is skipped
_EMPTY_VALUE = "None"


def render_segments(prompts: PromptSpec) -> str:
    """Render segments as the provider's ``x-data.x-data`` message list."""
    parts: list[str] = []
    for segment in prompts:
        data = segment.data
        if segment.kind == SegmentKind.TEXT:
            data = _INVALID_TEXT_CHARS.sub(" ", data).strip()
        elif segment.kind in (SegmentKind.NUMBER, SegmentKind.DIGITS):
            data = re.sub(r"[^0-9]", "", data)
        if not data:
            continue
        parts.append(f"{_SEGMENT_PREFIX[segment.kind]}-{data}")
    return ".".join(parts)


def render_read(prompts: PromptSpec, request: ReadRequest, val_name: str) -> str:
    """Render a ``read=`` action for the given capture mode."""
    messages = render_segments(prompts)

    if request.mode == ReadMode.TAP:
        block_asterisk = "no" if request.allow_cancel else "yes"
        params = [
            val_name,
            "yes",                      # re-enter even if a value exists
            str(request.max_digits),
            str(request.min_digits),
            str(request.seconds_to_wait),
            "No",                       # no typing playback
            block_asterisk,
            "no",                       # zero key allowed
            "",                         # replace char
            "",                         # digits allowed
            "",                         # attempts
            "yes",                      # allow empty
            _EMPTY_VALUE,
            "",
        ]
    elif request.mode == ReadMode.RECORD:
        params = [
            val_name,
            "yes",
            "record",
            "",                         # default folder
            "",                         # provider-assigned file name
            "no",                       # no post-record menu
            "yes",                      # keep recording on hang-up
            "no",
        ]
    else:
        params = [
            val_name,
            "yes",
            "voice",
            "he-IL",
            "no",                       # typing not allowed
        ]

    return f"read={messages}={','.join(params)}"


class YemotChannel(CallChannel):
    """CallChannel implementation over the provider's webhook round-trips.

    Usage::

        channel = YemotChannel(params, inactivity_timeout=300)
        task = asyncio.create_task(run_flow(channel))

        # in the webhook handler, for every hit of this call:
        body = await channel.handle_request(params)
    """

    def __init__(
        self,
        first_request: dict[str, str],
        inactivity_timeout: float = 300.0,
        response_timeout: float = 25.0,
    ) -> None:
        self._call_id = first_request.get("ApiCallId", "")
        self._caller_number = first_request.get("ApiPhone", "")
        self._extension = first_request.get("ApiExtension", "")
        self._start_metadata = dict(first_request)
        self._inactivity_timeout = inactivity_timeout
        self._response_timeout = response_timeout

        self._inbox: asyncio.Queue[dict[str, str]] = asyncio.Queue()
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._pending: list[str] = []
        self._seq = 0
        self._first_hit_pending = True
        self._hung_up = False
        self._closed = False

    @property
    def call_id(self) -> str:
        return self._call_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ── Webhook side ───────────────────────────────────────────

    async def handle_request(self, params: dict[str, str]) -> str:
        """Feed one webhook hit and return the response body for it."""
        if params.get("hangup") == "yes":
            log.info("Provider reported hang-up (call_id=%s)", self._call_id)
            self._hung_up = True
            self._inbox.put_nowait(params)
            return ""

        if self._closed and self._outbox.empty():
            return HANGUP_ACTION

        if self._first_hit_pending:
            # The first hit starts the flow; it answers nothing.
            self._first_hit_pending = False
        else:
            self._inbox.put_nowait(params)

        try:
            return await asyncio.wait_for(self._outbox.get(), timeout=self._response_timeout)
        except asyncio.TimeoutError:
            log.warning("No action ready for call %s, hanging up", self._call_id)
            return HANGUP_ACTION

    # ── Flow side ──────────────────────────────────────────────

    async def read(self, prompts: PromptSpec, request: ReadRequest) -> str:
        self._seq += 1
        val_name = f"{request.slot}_{self._seq}"
        self._send(render_read(prompts, request, val_name))

        params = await self._receive()
        value = params.get(val_name, "")
        if value == _EMPTY_VALUE:
            value = ""
        if value == CANCEL_DIGIT and not request.allow_cancel:
            value = ""
        return value.strip()

    async def announce(self, prompts: PromptSpec) -> None:
        rendered = render_segments(prompts)
        if rendered:
            self._pending.append(rendered)

    async def transfer(self, destination: str) -> None:
        log.info("Transferring call %s to %s", self._call_id, destination)
        self._send(f"go_to_folder={destination}")
        self._closed = True

    async def hangup(self) -> None:
        self._send(HANGUP_ACTION)
        self._closed = True

    async def get_caller_info(self) -> dict[str, Any]:
        return {
            "call_id": self._call_id,
            "phone_number": self._caller_number,
            "extension": self._extension,
            "transport": "yemot",
            "metadata": self._start_metadata,
        }

    async def close(self) -> None:
        """Finish the call; flushes any queued announcement with a hang-up."""
        if self._closed:
            return
        if not self._hung_up:
            self._send(HANGUP_ACTION)
        self._closed = True
        log.info("Yemot channel closed (call_id=%s)", self._call_id)

    # ── Internal ───────────────────────────────────────────────

    def _send(self, action: str) -> None:
        """Queue an action, prefixed by any pending announcements."""
        body = action
        if self._pending:
            body = f"id_list_message={'.'.join(self._pending)}&{action}"
            self._pending.clear()
        self._outbox.put_nowait(body)

    async def _receive(self) -> dict[str, str]:
        if self._hung_up:
            raise CallHangup(self._call_id)
        try:
            params = await asyncio.wait_for(self._inbox.get(), timeout=self._inactivity_timeout)
        except asyncio.TimeoutError:
            raise CallTimeout(self._call_id) from None
        if params.get("hangup") == "yes":
            self._hung_up = True
            raise CallHangup(self._call_id)
        return params
