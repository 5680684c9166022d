"""Job Query Engine: fetch, filter and cap published postings.

Filters run in a fixed order: area, payment kind (and hourly salary range),
age, then date validity.  Every posting returned satisfies every non-empty
constraint of the criteria.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from jobline.models import DateType, JobFilterCriteria, JobRecord, PaymentKind
from jobline.stores.base import JobBoardStore

log = logging.getLogger("jobline.query")

FETCH_LIMIT = 20
PRESENTATION_LIMIT = 10
COMING_WEEK_DAYS = 7


def _local_date(value: datetime, tz: ZoneInfo) -> date:
    # Naive values are calendar dates typed into a web form
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(tz).date()


def matches_area(job: JobRecord, area: Optional[str]) -> bool:
    if not area:
        return True
    needle = area.strip().lower()
    return needle in (job.area or "").lower() or needle in (job.city or "").lower()


def matches_payment(job: JobRecord, criteria: JobFilterCriteria) -> bool:
    kind = criteria.payment_kind
    if kind is None or kind == PaymentKind.ANY:
        return True
    if job.payment_kind != kind:
        return False
    if kind != PaymentKind.HOURLY:
        return True
    if criteria.min_salary is None and criteria.max_salary is None:
        return True
    rate = job.hourly_rate
    if rate is None:
        return False
    if criteria.min_salary is not None and rate < criteria.min_salary:
        return False
    if criteria.max_salary is not None and rate > criteria.max_salary:
        return False
    return True


def matches_age(job: JobRecord, criteria: JobFilterCriteria) -> bool:
    """A posting's minimum age must not exceed the caller's stated ages.

    With both bounds given the posting must suit the youngest age asked
    for; with only a maximum it must suit someone of that age.
    """
    job_min = job.min_age
    if job_min is None:
        return True
    if criteria.min_age is not None and job_min > criteria.min_age:
        return False
    if criteria.max_age is not None and job_min > criteria.max_age:
        return False
    return True


def is_date_valid(job: JobRecord, today: date, tz: ZoneInfo) -> bool:
    if job.date_type is None or job.date_type == DateType.FLEXIBLE:
        return True
    if job.date_type in (DateType.TODAY, DateType.SPECIFIC):
        if job.specific_date is None:
            return False
        return _local_date(job.specific_date, tz) >= today
    if job.date_type == DateType.COMING_WEEK:
        reference = job.specific_date or job.posted_date
        if reference is None:
            return True
        return _local_date(reference, tz) + timedelta(days=COMING_WEEK_DAYS) >= today
    return True


def filter_jobs(
    jobs: Iterable[JobRecord],
    criteria: JobFilterCriteria,
    today: date,
    tz: ZoneInfo,
    limit: int = PRESENTATION_LIMIT,
) -> list[JobRecord]:
    """Apply the filters in order and cap the result."""
    result = [job for job in jobs if matches_area(job, criteria.area)]
    result = [job for job in result if matches_payment(job, criteria)]
    result = [job for job in result if matches_age(job, criteria)]
    result = [job for job in result if is_date_valid(job, today, tz)]
    return result[:limit]


class JobQueryEngine:
    """Searches the store for the jobs a caller should hear."""

    def __init__(self, store: JobBoardStore, tz: ZoneInfo) -> None:
        self._store = store
        self._tz = tz

    async def search(self, criteria: JobFilterCriteria, today: date) -> list[JobRecord]:
        """Fetch the newest published jobs and filter them.

        Raises:
            StoreError: the fetch failed.
        """
        fetched = await self._store.query_jobs(limit=FETCH_LIMIT)
        jobs = filter_jobs(fetched, criteria, today, self._tz)
        log.info("Job search: %d fetched, %d presented", len(fetched), len(jobs))
        return jobs
