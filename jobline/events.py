"""Per-call event sink for structured call tracing.

Every CallSession has a CallEventSink.  Reads, announcements, state
transitions, collected fields, fallbacks, store failures and payment
outcomes are emitted as typed events.  The sink keeps the most recent
events for the admin detail endpoint and fans each one out to live
subscribers (the admin WebSocket), one bounded asyncio.Queue each.

When the call task finishes the sink is closed: subscribers receive a
final ``closed`` event and the sink leaves the registry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TypedDict

log = logging.getLogger("jobline.events")

EVENT_LOG_LIMIT = 500
SUBSCRIBER_QUEUE_SIZE = 200

CLOSED = "closed"


class CallEvent(TypedDict):
    type: str          # read | input | announce | transition | field | fallback | store_error | payment | transfer | hangup | error | closed
    timestamp: float
    call_id: str
    state: str
    data: dict


def _offer(q: asyncio.Queue[CallEvent], event: CallEvent) -> None:
    """Put without blocking; a full queue loses its oldest event."""
    if q.full():
        q.get_nowait()
    q.put_nowait(event)


class CallEventSink:
    """Event log plus live fan-out for one call."""

    def __init__(self, call_id: str) -> None:
        self._call_id = call_id
        self._subscribers: list[asyncio.Queue[CallEvent]] = []
        self._log: deque[CallEvent] = deque(maxlen=EVENT_LOG_LIMIT)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> asyncio.Queue[CallEvent]:
        q: asyncio.Queue[CallEvent] = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        if self._closed:
            q.put_nowait(self._event(CLOSED, "", {}))
            return q
        self._subscribers.append(q)
        log.info("Event subscriber added for call %s (total: %d)",
                 self._call_id, len(self._subscribers))
        return q

    def unsubscribe(self, q: asyncio.Queue[CallEvent]) -> None:
        if q in self._subscribers:
            self._subscribers.remove(q)

    def _event(self, event_type: str, state: str, data: dict) -> CallEvent:
        return {
            "type": event_type,
            "timestamp": time.time(),
            "call_id": self._call_id,
            "state": state,
            "data": data,
        }

    def emit(self, event_type: str, state: str, data: dict) -> None:
        """Record an event and push it to every subscriber."""
        if self._closed:
            log.debug("Dropping %s event for closed call %s", event_type, self._call_id)
            return
        event = self._event(event_type, state, data)
        self._log.append(event)
        for q in self._subscribers:
            _offer(q, event)

    def close(self) -> None:
        """Send the final ``closed`` event and release subscribers."""
        if self._closed:
            return
        event = self._event(CLOSED, "", {"events": len(self._log)})
        self._closed = True
        for q in self._subscribers:
            _offer(q, event)
        self._subscribers.clear()

    def of_type(self, event_type: str) -> list[CallEvent]:
        return [event for event in self._log if event["type"] == event_type]

    @property
    def event_log(self) -> list[CallEvent]:
        return list(self._log)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# ── Sink registry ────────────────────────────────────────────────────

_sinks: dict[str, CallEventSink] = {}


def get_event_sink(call_id: str) -> CallEventSink:
    """Get or create the sink for a call."""
    sink = _sinks.get(call_id)
    if sink is None:
        sink = _sinks[call_id] = CallEventSink(call_id)
    return sink


def remove_event_sink(call_id: str) -> None:
    """Close a call's sink and drop it from the registry."""
    sink = _sinks.pop(call_id, None)
    if sink is not None:
        sink.close()
