"""Tests for the contact line."""

from jobline.audio import Audio
from jobline.flows import ContactFlow, MenuState
from jobline.prompts import SegmentKind

from conftest import CALLER, NOW


class TestContactFlow:
    async def test_voice_message_is_saved(self, make_session, store):
        session = make_session(["1", "recordings/0001.wav"])
        assert await ContactFlow(session).run() == MenuState.MAIN

        [message] = store.contact_messages.values()
        assert message.phone == CALLER
        assert message.message_ref == "recordings/0001.wav"
        assert message.created_at == NOW
        assert Audio.MESSAGE_SAVED_THANKS in session.channel.announced

    async def test_anonymous_caller(self, make_session, store):
        session = make_session(["1", "recordings/0002.wav"], caller_phone="")
        await ContactFlow(session).run()
        [message] = store.contact_messages.values()
        assert message.phone == "לא ידוע"

    async def test_empty_recording_is_not_saved(self, make_session, store):
        session = make_session(["1", ""])
        await ContactFlow(session).run()
        assert store.contact_messages == {}

    async def test_website_details(self, make_session, config):
        session = make_session(["2"])
        assert await ContactFlow(session).run() == MenuState.MAIN
        spoken = [s.data for p in session.channel.announcements for s in p if s.kind == SegmentKind.TEXT]
        assert any(config.website_name in line for line in spoken)

    async def test_star_returns_to_main(self, make_session):
        session = make_session(["*"])
        assert await ContactFlow(session).run() == MenuState.MAIN
        assert session.channel.announcements == []
