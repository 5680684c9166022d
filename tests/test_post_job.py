"""End-to-end tests for the job posting wizard."""

import pytest

from jobline.audio import Audio
from jobline.collector import FALLBACK_TITLE
from jobline.errors import Cancelled, StoreError
from jobline.flows import MenuState, PostJobFlow
from jobline.flows.post_job import PUBLISH_ATTEMPTS, PUBLISH_KEY_SLOT
from jobline.models import DateType, Difficulty, PaymentSettings, PaymentType
from jobline.payment import SimulatedProcessor
from jobline.prompts import number
from jobline.stores.memory import MemoryStore

from conftest import CALLER

# title, confirm, area, difficulty, date, payment kind, amount, suitability,
# min age, phone choice (caller ID)
APARTMENT_CLEANING = ["ניקיון דירה", "1", "3", "2", "3", "1", "60", "3", "18", "1"]


class TestPostJob:
    async def test_confirmed_draft_is_published(self, make_session):
        store = MemoryStore(last_serial=41)
        session = make_session(APARTMENT_CLEANING + ["1"], store=store)

        assert await PostJobFlow(session).run() == MenuState.MAIN

        [job] = store.jobs.values()
        assert job.title == "ניקיון דירה"
        assert job.area == "אשדוד"
        assert job.difficulty == Difficulty.MEDIUM.value
        assert job.date_type == DateType.FLEXIBLE
        assert job.payment_type == PaymentType.HOURLY.value
        assert job.hourly_rate == 60
        assert job.global_payment is None
        assert job.suitability.men and job.suitability.women
        assert job.min_age == 18
        assert job.contact_phone == CALLER
        assert job.serial_number == 42
        assert job.is_posted is True

        success = next(p for p in session.channel.announcements if Audio.JOB_PUBLISHED_SUCCESS in [s.data for s in p])
        assert number(42) in success
        # Nothing collected outlives the flow
        assert not [slot for slot in session.fields if slot.startswith("job_")]

    async def test_edit_restarts_from_title(self, make_session, store):
        session = make_session(APARTMENT_CLEANING + ["2"] + APARTMENT_CLEANING + ["1"])
        await PostJobFlow(session).run()
        assert session.channel.slots.count("job_title") == 2
        assert len(store.jobs) == 1

    async def test_editing_forever_publishes_nothing(self, make_session, store, config):
        session = make_session((APARTMENT_CLEANING + ["2"]) * config.max_compose_rounds)
        assert await PostJobFlow(session).run() == MenuState.MAIN
        assert store.jobs == {}
        assert Audio.PUBLISH_CANCELLED in session.channel.announced

    async def test_silent_caller_gets_defaults(self, make_session, store):
        # Three silent reads for each of the eight steps, then confirm
        session = make_session([""] * 3 * 8 + ["1"], caller_phone=CALLER)
        await PostJobFlow(session).run()

        [job] = store.jobs.values()
        assert job.title == FALLBACK_TITLE
        assert job.payment_type == PaymentType.GLOBAL.value
        assert job.global_payment == 50
        assert job.min_age == 16
        assert job.contact_phone == CALLER

    async def test_star_cancels_the_draft(self, make_session, store):
        session = make_session(["ניקיון", "1", "*"])
        with pytest.raises(Cancelled):
            await PostJobFlow(session).run()
        assert store.jobs == {}
        assert session.fields == {}

    async def test_custom_contact_phone(self, make_session, store):
        answers = APARTMENT_CLEANING[:-1] + ["2", "0521112222", "1"]
        session = make_session(answers)
        await PostJobFlow(session).run()
        [job] = store.jobs.values()
        assert job.contact_phone == "0521112222"

    async def test_declined_payment_publishes_nothing(self, make_session, store):
        store.set_payment_settings(PaymentSettings(master_switch=True, enable_poster_payment=True))
        session = make_session(APARTMENT_CLEANING + ["1", "2"])
        assert await PostJobFlow(session).run() == MenuState.MAIN
        assert store.jobs == {}
        assert Audio.PUBLISH_CANCELLED in session.channel.announced

    async def test_store_failure_is_announced(self, make_session, store, monkeypatch):
        async def broken(*args, **kwargs):
            raise StoreError("down")

        monkeypatch.setattr(store, "create_job", broken)
        session = make_session(APARTMENT_CLEANING + ["1"])
        assert await PostJobFlow(session).run() == MenuState.MAIN
        assert Audio.PUBLISH_ERROR in session.channel.announced
        assert session.events.of_type("store_error")


class TestPaidPublish:
    """A cleared payment is bound to one create-job key until the job lands."""

    @pytest.fixture
    def processor(self, store):
        store.set_payment_settings(PaymentSettings(master_switch=True, enable_poster_payment=True))
        return SimulatedProcessor()

    @pytest.fixture
    def create_keys(self, store, monkeypatch):
        """Record create_job keys; fail the first ``failures[0]`` calls."""
        real_create = store.create_job
        keys: list[str] = []
        failures = [0]

        async def flaky(draft, *, posted_at=None, idempotency_key=""):
            keys.append(idempotency_key)
            if len(keys) <= failures[0]:
                raise StoreError("down")
            return await real_create(draft, posted_at=posted_at, idempotency_key=idempotency_key)

        monkeypatch.setattr(store, "create_job", flaky)
        return keys, failures

    async def test_transient_failure_after_charge_is_retried(
        self, make_session, store, processor, create_keys
    ):
        keys, failures = create_keys
        failures[0] = PUBLISH_ATTEMPTS - 1
        session = make_session(APARTMENT_CLEANING + ["1", "1"], payment_processor=processor)

        assert await PostJobFlow(session).run() == MenuState.MAIN

        assert len(store.jobs) == 1
        assert len(store.transactions) == 1
        assert len(processor.charges) == 1
        assert keys == ["call-1:create-job:1"] * PUBLISH_ATTEMPTS
        assert Audio.JOB_PUBLISHED_SUCCESS in session.channel.announced
        assert Audio.PUBLISH_ERROR not in session.channel.announced

    async def test_persistent_failure_keeps_a_single_charge(
        self, make_session, store, processor, create_keys
    ):
        keys, failures = create_keys
        failures[0] = 100
        session = make_session(APARTMENT_CLEANING + ["1", "1"], payment_processor=processor)

        assert await PostJobFlow(session).run() == MenuState.MAIN

        assert store.jobs == {}
        assert [tx.type for tx in store.transactions.values()] == ["post_job"]
        assert len(processor.charges) == 1
        assert len(keys) == PUBLISH_ATTEMPTS
        assert len(set(keys)) == 1
        [event] = session.events.of_type("store_error")
        assert event["data"] == {"op": "create_job", "key": "call-1:create-job:1"}
        assert Audio.PUBLISH_ERROR in session.channel.announced

    async def test_publishing_again_in_the_same_call_is_not_charged_twice(
        self, make_session, store, processor, create_keys
    ):
        keys, failures = create_keys
        failures[0] = PUBLISH_ATTEMPTS
        answers = APARTMENT_CLEANING + ["1", "1"] + APARTMENT_CLEANING + ["1"]
        session = make_session(answers, payment_processor=processor)

        await PostJobFlow(session).run()
        assert store.jobs == {}

        assert await PostJobFlow(session).run() == MenuState.MAIN

        [job] = store.jobs.values()
        assert job.title == "ניקיון דירה"
        assert len(processor.charges) == 1
        assert len(store.transactions) == 1
        assert set(keys) == {"call-1:create-job:1"}
        assert session.channel.announced.count(Audio.PAYMENT_INTRO_POSTER) == 1
        assert PUBLISH_KEY_SLOT not in session.fields
