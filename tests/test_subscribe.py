"""Tests for alert subscription enrollment and management."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from jobline.audio import Audio
from jobline.directory import AlertList
from jobline.errors import Cancelled, DirectoryError, StoreError
from jobline.flows import MenuState, SubscribeFlow
from jobline.models import PaymentKind, SubscriptionRecord
from jobline.router import MenuRouter

from conftest import CALLER


def _directory(lists=None, error=None):
    directory = MagicMock()
    directory.configured = True
    directory.lists_for_phone = AsyncMock(return_value=lists or [], side_effect=error)
    return directory


class TestNewSubscriber:
    async def test_filtered_then_cancel_at_night_mode_writes_nothing(self, make_session, store):
        # filtered, area filter, city 3, then * at the night-mode question
        session = make_session(["2", "1", "3", "*"], extension="subscribe", directory=_directory())
        await MenuRouter(session).run()

        assert store.subscriptions == {}
        assert session.channel.transfers == []
        assert session.channel.slots[:4] == [
            "subscribe_type", "subscribe_filter_kind", "subscribe_area", "subscribe_night_mode",
        ]
        # Back at the main menu
        assert session.channel.slots[-1] == "menu_choice"
        assert not [slot for slot in session.fields if slot.startswith("subscribe_")]

    async def test_area_choice_is_collected_before_cancel(self, make_session):
        session = make_session(["2", "1", "3", "*"])
        with pytest.raises(Cancelled):
            await SubscribeFlow(session).run()
        fields = [e["data"] for e in session.events.of_type("field")]
        assert {"slot": "subscribe_area", "value": "אשדוד"} in fields

    async def test_filtered_with_night_mode(self, make_session, store, config):
        session = make_session(["2", "1", "3", "1"])
        assert await SubscribeFlow(session).run() == MenuState.END

        [record] = store.subscriptions.values()
        assert record.active is True
        assert record.phone == CALLER
        assert record.filters.area == "אשדוד"
        assert record.has_filters is True
        assert record.night_mode_allowed is True
        assert session.channel.transfers == [config.tzintuk_register_extension]
        assert Audio.ALERTS_SUBSCRIBED_FILTERED in session.channel.announced

    async def test_salary_filter(self, make_session, store):
        # filtered, salary filter, hourly, 70, 40, no night mode
        session = make_session(["2", "2", "1", "70", "40", "2"])
        await SubscribeFlow(session).run()
        [record] = store.subscriptions.values()
        assert record.filters.payment_kind == PaymentKind.HOURLY
        assert (record.filters.min_salary, record.filters.max_salary) == (40, 70)
        assert record.night_mode_allowed is False

    async def test_basic_transfers_without_local_record(self, make_session, store, config):
        session = make_session(["1"])
        assert await SubscribeFlow(session).run() == MenuState.END
        assert store.subscriptions == {}
        assert session.channel.transfers == [config.tzintuk_register_extension]

    async def test_combined_records_night_mode(self, make_session, store):
        session = make_session(["3"])
        assert await SubscribeFlow(session).run() == MenuState.END
        [record] = store.subscriptions.values()
        assert record.night_mode_allowed is True
        assert record.has_filters is False

    async def test_store_failure(self, make_session, store, monkeypatch):
        monkeypatch.setattr(store, "create_subscription", AsyncMock(side_effect=StoreError("down")))
        session = make_session(["3"])
        assert await SubscribeFlow(session).run() == MenuState.MAIN
        assert Audio.REGISTRATION_ERROR in session.channel.announced
        assert session.channel.transfers == []

    async def test_failed_activation_leaves_no_record(self, make_session, store, monkeypatch):
        monkeypatch.setattr(store, "update_subscription", AsyncMock(side_effect=StoreError("down")))
        session = make_session(["3"])
        assert await SubscribeFlow(session).run() == MenuState.MAIN

        assert store.subscriptions == {}
        assert await store.find_active_subscription(CALLER) is None
        assert Audio.REGISTRATION_ERROR in session.channel.announced
        assert session.channel.transfers == []

    async def test_failed_cleanup_is_reported(self, make_session, store, monkeypatch):
        monkeypatch.setattr(store, "update_subscription", AsyncMock(side_effect=StoreError("down")))
        monkeypatch.setattr(store, "delete_subscription", AsyncMock(side_effect=StoreError("down")))
        session = make_session(["3"])
        assert await SubscribeFlow(session).run() == MenuState.MAIN

        ops = [event["data"]["op"] for event in session.events.of_type("store_error")]
        assert ops == ["create_subscription", "delete_subscription"]
        assert Audio.REGISTRATION_ERROR in session.channel.announced

    async def test_no_caller_id(self, make_session):
        session = make_session(caller_phone="")
        assert await SubscribeFlow(session).run() == MenuState.MAIN
        assert Audio.PHONE_NOT_IDENTIFIED in session.channel.announced


class TestExistingSubscriber:
    @pytest.mark.parametrize("answers", [["1", "1"], ["1", "2"], ["2"], ["*"], [""]])
    async def test_never_offered_new_subscription(self, make_session, answers):
        directory = _directory([AlertList("ashdod", "/8/3")])
        session = make_session(answers, directory=directory)
        await SubscribeFlow(session).run()

        assert Audio.ALERTS_ALREADY_ACTIVE in session.channel.announced
        assert "subscribe_type" not in session.channel.slots
        assert Audio.ALERTS_SUBSCRIBE_OPTIONS not in session.channel.prompted

    async def test_list_names_are_announced(self, make_session):
        directory = _directory([AlertList("ashdod", "/8/3")])
        session = make_session(["2"], directory=directory)
        await SubscribeFlow(session).run()
        # אשדוד has its own recording
        assert "049" in session.channel.announced

    async def test_manage_transfers_to_list_extension(self, make_session):
        directory = _directory([AlertList("ashdod", "/8/3")])
        session = make_session(["1", "1"], directory=directory)
        assert await SubscribeFlow(session).run() == MenuState.END
        assert session.channel.transfers == ["/8/3"]

    async def test_directory_failure_falls_back_to_local_record(self, make_session, store, config):
        await store.create_subscription(SubscriptionRecord(phone=CALLER))
        directory = _directory(error=DirectoryError("down"))
        session = make_session(["1", "1"], directory=directory)

        assert await SubscribeFlow(session).run() == MenuState.END
        assert "subscribe_type" not in session.channel.slots
        assert session.channel.transfers == [config.tzintuk_manage_extension]
