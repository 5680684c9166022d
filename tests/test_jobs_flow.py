"""End-to-end tests for browsing jobs through the router."""

from datetime import datetime, timedelta, timezone

from jobline.audio import Audio
from jobline.flows import JobsFlow, MenuState
from jobline.models import DateType, JobRecord, PaymentSettings, Suitability
from jobline.prompts import audio, number
from jobline.router import MenuRouter

from conftest import NOW


def _seed(store, count=25):
    ids = []
    for i in range(count):
        ids.append(store.add_job(JobRecord(
            id=f"job-{i:02d}",
            title=f"עבודה {i}",
            area="ירושלים",
            date_type=DateType.FLEXIBLE,
            hourly_rate=50,
            contact_phone="0521234567",
            suitability=Suitability(general=True, min_age=16),
            posted_date=NOW - timedelta(hours=i + 1),
        )))
    # Dated yesterday: filtered out by date validity
    store.add_job(JobRecord(
        id="expired",
        title="פג תוקף",
        date_type=DateType.TODAY,
        specific_date=datetime(2026, 3, 9, tzinfo=timezone.utc),
        posted_date=NOW - timedelta(minutes=1),
    ))
    return ids


class TestBrowseAll:
    async def test_ten_jobs_then_back_to_main(self, make_session, store):
        _seed(store)
        # main: jobs, filter: all, then "next" for each of the ten jobs
        session = make_session(["1", "1"] + ["2"] * 10)
        await MenuRouter(session).run()
        channel = session.channel

        found = next(p for p in channel.announcements if audio(Audio.FOUND_JOBS) in p)
        assert number(10) in found
        assert channel.slots.count("job_action") == 10
        assert Audio.ALL_JOBS_DONE in channel.announced
        # Back at the main menu when the script ran out
        assert channel.slots[-1] == "menu_choice"
        assert all(job.contact_attempts == 0 and job.views == 0 for job in store.jobs.values())

    async def test_expired_job_never_read(self, make_session, store):
        _seed(store, count=3)
        session = make_session(["1", "2", "2", "2"])
        assert await JobsFlow(session).run() == MenuState.MAIN
        read_titles = [s.data for prompts, _ in session.channel.reads for s in prompts]
        assert "פג תוקף" not in read_titles
        assert "עבודה 0" in read_titles


class TestJobDetails:
    async def test_contact_details_count_one_view_and_one_attempt(self, make_session, store):
        _seed(store, count=1)
        # filter all, details, hear contact
        session = make_session(["1", "1", "1"])
        assert await JobsFlow(session).run() == MenuState.MAIN

        job = store.jobs["job-00"]
        assert (job.views, job.contact_attempts) == (1, 1)
        assert Audio.CONTACT_DETAILS_INTRO in session.channel.announced

    async def test_paywall_cancel_does_not_count_contact(self, make_session, store):
        _seed(store, count=1)
        store.set_payment_settings(PaymentSettings(master_switch=True, enable_viewer_payment=True))
        session = make_session(["1", "1", "1", "*"])
        assert await JobsFlow(session).run() == MenuState.MAIN

        job = store.jobs["job-00"]
        assert (job.views, job.contact_attempts) == (1, 0)
        assert Audio.CONTACT_DETAILS_INTRO not in session.channel.announced

    async def test_star_in_details_returns_to_main(self, make_session, store):
        _seed(store, count=2)
        session = make_session(["1", "1", "*"])
        assert await JobsFlow(session).run() == MenuState.MAIN
        assert Audio.ALL_JOBS_DONE not in session.channel.announced


class TestFilters:
    async def test_area_filter_with_no_match(self, make_session, store):
        _seed(store, count=3)
        # area filter, city 3 (אשדוד)
        session = make_session(["2", "3"])
        assert await JobsFlow(session).run() == MenuState.MAIN
        assert Audio.NO_JOBS_FOUND in session.channel.announced

    async def test_back_to_filters(self, make_session, store):
        _seed(store, count=2)
        session = make_session(["1", "3", "2", "3"])
        assert await JobsFlow(session).run() == MenuState.MAIN
        assert session.channel.slots.count("jobs_filter") == 2
        assert Audio.NO_JOBS_FOUND in session.channel.announced
