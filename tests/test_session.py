"""Tests for CallSession bookkeeping and the per-call event sink."""

from datetime import date

import pytest

from jobline.errors import CallEnded, CallHangup
from jobline.events import CallEventSink, get_event_sink, remove_event_sink
from jobline.prompts import ReadRequest, audio, prompt
from jobline.session import get_session, register_session, unregister_session

from conftest import NOW


# ── CallEventSink unit tests ─────────────────────────────────────────


class TestCallEventSink:
    def test_emit_without_subscribers(self):
        """Emitting with no subscribers should not raise."""
        sink = CallEventSink("test-1")
        sink.emit("transition", "main", {"to": "jobs"})
        assert len(sink.event_log) == 1

    def test_emit_to_subscriber(self):
        sink = CallEventSink("test-2")
        q = sink.subscribe()
        sink.emit("input", "main", {"slot": "menu_choice", "value": "1"})

        event = q.get_nowait()
        assert event["type"] == "input"
        assert event["state"] == "main"
        assert event["call_id"] == "test-2"
        assert event["data"]["value"] == "1"
        assert "timestamp" in event

    def test_full_queue_drops_oldest(self):
        sink = CallEventSink("test-3")
        q = sink.subscribe()
        for i in range(250):
            sink.emit("read", "main", {"n": i})
        assert q.qsize() == 200
        assert q.get_nowait()["data"]["n"] == 50

    def test_unsubscribe(self):
        sink = CallEventSink("test-4")
        q = sink.subscribe()
        sink.unsubscribe(q)
        sink.unsubscribe(q)
        assert sink.subscriber_count == 0

    def test_close_notifies_subscribers_once(self):
        sink = CallEventSink("test-5")
        q = sink.subscribe()
        sink.emit("read", "main", {})
        sink.close()
        sink.close()
        sink.emit("read", "main", {})

        assert [q.get_nowait()["type"] for _ in range(q.qsize())] == ["read", "closed"]
        assert sink.subscriber_count == 0
        assert len(sink.event_log) == 1

    def test_late_subscriber_sees_closed(self):
        sink = CallEventSink("test-6")
        sink.close()
        assert sink.subscribe().get_nowait()["type"] == "closed"

    def test_registry(self):
        sink = get_event_sink("reg-1")
        assert get_event_sink("reg-1") is sink
        remove_event_sink("reg-1")
        assert sink.closed
        assert get_event_sink("reg-1") is not sink
        remove_event_sink("reg-1")


# ── CallSession ──────────────────────────────────────────────────────


class TestCallSession:
    def test_idempotency_keys_count_attempts_per_step(self, make_session):
        session = make_session(call_id="abc")
        assert session.idempotency_key("create-job") == "abc:create-job:1"
        assert session.idempotency_key("create-job") == "abc:create-job:2"
        assert session.idempotency_key("charge") == "abc:charge:1"

    def test_discard_fields_by_prefix(self, make_session):
        session = make_session()
        session.record_field("job_title", "x")
        session.record_field("job_area", "y")
        session.record_field("filter_area", "z")

        session.discard_fields("job_")
        assert list(session.fields) == ["filter_area"]
        session.discard_fields()
        assert session.fields == {}

    def test_record_field_resets_attempts(self, make_session):
        session = make_session()
        session.attempts["job_title"] = 2
        session.record_field("job_title", "x")
        assert "job_title" not in session.attempts

    def test_today_uses_configured_timezone(self, make_session):
        # 09:00 UTC is already 11:00 in Jerusalem; still the same date
        assert make_session().today() == date(2026, 3, 10)
        assert make_session().now() == NOW

    def test_transition_events(self, make_session):
        session = make_session()
        session.enter_state("jobs")
        session.enter_state("jobs")
        [event] = session.events.of_type("transition")
        assert event["state"] == "main"
        assert event["data"] == {"to": "jobs"}

    async def test_read_emits_and_returns_value(self, make_session):
        session = make_session(["3"])
        value = await session.read(prompt(audio("034")), ReadRequest.digit("menu_choice"))
        assert value == "3"
        [read] = session.events.of_type("read")
        assert read["data"]["prompts"] == ["audio:034"]
        [entered] = session.events.of_type("input")
        assert entered["data"] == {"slot": "menu_choice", "value": "3"}

    async def test_hangup_marks_session_done(self, make_session):
        session = make_session([])
        with pytest.raises(CallHangup):
            await session.read(prompt(audio("034")), ReadRequest.digit("menu_choice"))
        assert session.is_done
        # Later reads fail fast without touching the channel
        with pytest.raises(CallEnded):
            await session.read(prompt(audio("034")), ReadRequest.digit("menu_choice"))
        assert len(session.channel.reads) == 1

    async def test_transfer_ends_session(self, make_session):
        session = make_session()
        await session.transfer("/8")
        assert session.is_done
        assert session.channel.transfers == ["/8"]

    def test_registry(self, make_session):
        session = make_session(call_id="reg-2")
        register_session(session)
        assert get_session("reg-2") is session
        unregister_session("reg-2")
        assert get_session("reg-2") is None

    def test_summary_redacts_caller(self, make_session):
        summary = make_session().summary()
        assert summary["caller"] == "050***67"
        assert summary["state"] == "main"
