"""Tests for the Yemot webhook channel: rendering and the hit/answer loop."""

import asyncio

import pytest

from jobline.channels.yemot_channel import HANGUP_ACTION, YemotChannel, render_read, render_segments
from jobline.errors import CallHangup, CallTimeout
from jobline.prompts import ReadRequest, audio, digits, number, prompt, text

FIRST_HIT = {"ApiCallId": "abc123", "ApiPhone": "0501234567", "ApiExtension": ""}


class TestRendering:
    def test_segments(self):
        rendered = render_segments(prompt(audio("027"), text("ניקיון, דירה."), number(60), digits("050")))
        assert rendered == "f-027.t-ניקיון  דירה.n-60.d-050"

    def test_wav_suffix_dropped(self):
        assert render_segments(prompt(audio("welcome.wav"))) == "f-welcome"

    def test_empty_segments_skipped(self):
        assert render_segments(prompt(audio("027"), text("..."), number(""))) == "f-027"

    def test_tap_read(self):
        body = render_read(prompt(audio("034")), ReadRequest.digit("menu_choice"), "menu_choice_1")
        assert body.startswith("read=f-034=menu_choice_1,yes,1,1,7,No,no,no,")

    def test_tap_read_blocks_star_when_not_cancellable(self):
        body = render_read(prompt(audio("034")), ReadRequest.digit("x", allow_cancel=False), "x_1")
        assert body.startswith("read=f-034=x_1,yes,1,1,7,No,yes,")

    def test_record_and_speech(self):
        record = render_read(prompt(audio("033")), ReadRequest.recording("msg"), "msg_1")
        speech = render_read(prompt(audio("001")), ReadRequest.speech("title"), "title_1")
        assert record.split("=")[2].split(",")[2] == "record"
        assert speech.endswith("title_1,yes,voice,he-IL,no")


class TestYemotChannel:
    async def test_read_round_trip(self):
        channel = YemotChannel(FIRST_HIT)

        async def flow():
            await channel.announce(prompt(audio("welcome")))
            return await channel.read(prompt(audio("034")), ReadRequest.digit("menu_choice"))

        task = asyncio.create_task(flow())
        body = await channel.handle_request(FIRST_HIT)
        assert body.startswith("id_list_message=f-welcome&read=f-034=menu_choice_1,")

        # The answer hit unblocks the flow; the next action is the hang-up
        answer = asyncio.create_task(channel.handle_request({**FIRST_HIT, "menu_choice_1": "3"}))
        assert await task == "3"
        await channel.close()
        assert await answer == HANGUP_ACTION

    async def test_empty_marker_and_blocked_star(self):
        channel = YemotChannel(FIRST_HIT)
        task = asyncio.create_task(channel.read((), ReadRequest.digit("x", allow_cancel=False)))
        await channel.handle_request(FIRST_HIT)
        answer = asyncio.create_task(channel.handle_request({"ApiCallId": "abc123", "x_1": "*"}))
        assert await task == ""
        await channel.close()
        assert await answer == HANGUP_ACTION

    async def test_hangup_unblocks_read(self):
        channel = YemotChannel(FIRST_HIT)
        task = asyncio.create_task(channel.read((), ReadRequest.digit("x")))
        await channel.handle_request(FIRST_HIT)
        assert await channel.handle_request({"ApiCallId": "abc123", "hangup": "yes"}) == ""
        with pytest.raises(CallHangup):
            await task

    async def test_inactivity_timeout(self):
        channel = YemotChannel(FIRST_HIT, inactivity_timeout=0.01)
        task = asyncio.create_task(channel.read((), ReadRequest.digit("x")))
        await channel.handle_request(FIRST_HIT)
        with pytest.raises(CallTimeout):
            await task

    async def test_transfer(self):
        channel = YemotChannel(FIRST_HIT)
        asyncio.create_task(channel.transfer("/8"))
        assert await channel.handle_request(FIRST_HIT) == "go_to_folder=/8"
        assert channel.is_closed

    async def test_caller_info(self):
        info = await YemotChannel(FIRST_HIT).get_caller_info()
        assert info["phone_number"] == "0501234567"
        assert info["transport"] == "yemot"
