"""Spoken job readout.

Builds the PromptSpec a caller hears for one posting.  Labels are
pre-recorded files; titles and free text go to the provider's TTS; cities
use their pre-recorded file when one exists.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from jobline.audio import Audio, city_audio
from jobline.models import JobRecord
from jobline.prompts import PromptSpec, Segment, audio, digits, number, prompt, text

UNTITLED_JOB = "עבודה ללא שם"


def relative_date(posted: Optional[datetime], now: datetime, tz: ZoneInfo) -> PromptSpec:
    """"Posted today / yesterday / two days ago / N days ago, at HH MM"."""
    if posted is None:
        return ()
    posted_local = posted.astimezone(tz)
    days = (now.astimezone(tz).date() - posted_local.date()).days

    parts: list[Segment] = [audio(Audio.POSTED_AT)]
    if days <= 0:
        parts.append(audio(Audio.TODAY))
    elif days == 1:
        parts.append(audio(Audio.YESTERDAY))
    elif days == 2:
        parts.append(audio(Audio.BEFORE_TWO_DAYS))
    else:
        parts += [audio(Audio.BEFORE), number(days), audio(Audio.DAYS_AGO)]
    parts += [
        audio(Audio.AT_HOUR),
        number(posted_local.hour),
        number(posted_local.minute),
    ]
    return tuple(parts)


def _payment_method(method: str) -> Segment:
    if "ביט" in method or "פייבוקס" in method:
        return audio(Audio.PAYMENT_BIT)
    if "תלוש" in method:
        return audio(Audio.PAYMENT_PAYSLIP)
    return audio(Audio.PAYMENT_CASH)


def _suitability(job: JobRecord) -> PromptSpec:
    suit = job.suitability
    parts: list[Segment] = []
    if suit.general or (suit.men and suit.women):
        parts.append(audio(Audio.SUITABLE_FOR_EVERYONE))
    elif suit.men:
        parts.append(audio(Audio.SUITABLE_MEN))
    elif suit.women:
        parts.append(audio(Audio.SUITABLE_WOMEN))
    if suit.min_age:
        parts += [audio(Audio.FROM_AGE), number(suit.min_age)]
    return tuple(parts)


def format_job(
    job: JobRecord,
    *,
    now: datetime,
    tz: ZoneInfo,
    detailed: bool = False,
) -> PromptSpec:
    """Readout for one job; ``detailed`` adds suitability and headcount."""
    location = job.location
    city_file = city_audio(location) if location else None

    segments = prompt(
        audio(Audio.JOB_NAME),
        text(job.title or UNTITLED_JOB),
        relative_date(job.posted_date, now, tz),
        prompt(audio(Audio.JOB_AREA), audio(city_file) if city_file else text(location))
        if location else None,
    )

    if job.hourly_rate:
        segments += (audio(Audio.JOB_SALARY), number(job.hourly_rate), audio(Audio.SHEKEL_PER_HOUR))
    elif job.global_payment:
        segments += (audio(Audio.GLOBAL_PAYMENT), number(job.global_payment), audio(Audio.SHEKELS))

    segments += (audio(Audio.PAYMENT_METHOD_PROMPT), _payment_method(job.payment_method))

    if job.difficulty:
        segments += (audio(Audio.JOB_DIFFICULTY), text(job.difficulty))

    if detailed:
        segments += _suitability(job)
        if job.number_of_people_needed and job.number_of_people_needed > 1:
            segments += (text(f"דרושים {job.number_of_people_needed} אנשים"),)

    return segments


def phone_groups(phone: str) -> list[str]:
    """Split a phone number into readout groups.

    10 digits (mobile) read 3-3-4, 9 digits (landline) read 2-3-4; anything
    else is read as one group.
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) == 10:
        return [cleaned[:3], cleaned[3:6], cleaned[6:]]
    if len(cleaned) == 9:
        return [cleaned[:2], cleaned[2:5], cleaned[5:]]
    return [cleaned] if cleaned else []


def phone_readout(phone: str) -> PromptSpec:
    return tuple(digits(group) for group in phone_groups(phone))
