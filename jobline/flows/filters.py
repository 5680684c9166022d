"""Filter-criteria prompts shared by job browsing and alert subscriptions."""

from __future__ import annotations

from typing import Any, Optional

from jobline.audio import CITIES, Audio
from jobline.collector import FieldCollector
from jobline.models import PaymentKind
from jobline.prompts import audio, prompt

PAYMENT_KINDS = {"1": PaymentKind.HOURLY, "2": PaymentKind.GLOBAL, "3": PaymentKind.ANY}


def _ordered(low: Optional[int], high: Optional[int]) -> tuple[Optional[int], Optional[int]]:
    if low is not None and high is not None and low > high:
        return high, low
    return low, high


async def collect_area(collector: FieldCollector, slot: str = "filter_area") -> Optional[str]:
    """City by digit; None (no constraint) when no valid digit comes."""
    return await collector.choose(prompt(audio(Audio.AREA_OPTIONS)), slot, CITIES, fallback=None)


async def collect_payment(collector: FieldCollector) -> dict[str, Any]:
    """Payment kind, plus an hourly salary range when the kind is hourly."""
    kind = await collector.choose(
        prompt(audio(Audio.SALARY_OR_GLOBAL)), "filter_payment_kind", PAYMENT_KINDS,
        fallback=PaymentKind.ANY,
    )
    if kind != PaymentKind.HOURLY:
        return {"payment_kind": kind}
    low = await collector.number(
        prompt(audio(Audio.ENTER_MIN_SALARY)), "filter_min_salary", max_digits=4, optional=True
    )
    high = await collector.number(
        prompt(audio(Audio.ENTER_MAX_SALARY)), "filter_max_salary", max_digits=4, optional=True
    )
    low, high = _ordered(low, high)
    return {"payment_kind": kind, "min_salary": low, "max_salary": high}


async def collect_ages(collector: FieldCollector) -> dict[str, Any]:
    low = await collector.number(
        prompt(audio(Audio.ENTER_MIN_AGE)), "filter_min_age", max_digits=3, optional=True
    )
    high = await collector.number(
        prompt(audio(Audio.ENTER_MAX_AGE)), "filter_max_age", max_digits=3, optional=True
    )
    low, high = _ordered(low, high)
    return {"min_age": low, "max_age": high}
