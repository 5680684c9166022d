"""Pydantic models for job postings, posting drafts and search criteria."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from jobline.models.base import StoredModel


class DateType(str, Enum):
    """When the job takes place, as stored by the web application."""

    TODAY = "today"
    COMING_WEEK = "comingWeek"
    FLEXIBLE = "flexibleDate"
    SPECIFIC = "specificDate"


class Difficulty(str, Enum):
    EASY = "קלה"
    MEDIUM = "בינונית"
    HARD = "קשה"


class PaymentType(str, Enum):
    """Stored payment labels (shared with the web application)."""

    HOURLY = "לפי שעה"
    GLOBAL = "גלובלי"


class PaymentKind(str, Enum):
    """Payment constraint used when filtering."""

    HOURLY = "hourly"
    GLOBAL = "global"
    ANY = "any"


class JobStat(str, Enum):
    """Per-posting counters, named as stored."""

    VIEWS = "views"
    CONTACT_ATTEMPTS = "contactAttempts"
    APPLICATIONS = "applications"


class Suitability(StoredModel):
    men: bool = False
    women: bool = False
    general: bool = False
    min_age: Optional[int] = None

    @classmethod
    def from_choice(cls, choice: str, min_age: Optional[int] = None) -> "Suitability":
        """1 = men only, 2 = women only, 3 = everyone."""
        return cls(
            men=choice in ("1", "3"),
            women=choice in ("2", "3"),
            general=choice == "3",
            min_age=min_age,
        )


class PosterInfo(StoredModel):
    id: str
    poster_display_name: str = ""


class JobRecord(StoredModel):
    """A published job posting."""

    id: str = ""
    title: str = ""
    area: str = ""
    city: str = ""
    description: str = ""
    difficulty: str = ""

    date_type: Optional[DateType] = None
    specific_date: Optional[datetime] = None

    payment_type: str = ""
    hourly_rate: Optional[float] = None
    global_payment: Optional[float] = None
    payment_method: str = ""

    number_of_people_needed: Optional[int] = None
    special_requirements: str = ""
    suitability: Suitability = Field(default_factory=Suitability)

    contact_phone: str = ""
    contact_display_name: str = ""
    posted_by: Optional[PosterInfo] = None
    posted_date: Optional[datetime] = None
    is_posted: bool = True
    serial_number: Optional[int] = None
    posted_via: str = ""

    views: int = 0
    contact_attempts: int = 0
    applications: int = 0

    @field_validator("date_type", "specific_date", "posted_date", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        # The web forms store "" for unset selects
        return None if value == "" else value

    @property
    def location(self) -> str:
        return self.area or self.city

    @property
    def min_age(self) -> Optional[int]:
        return self.suitability.min_age

    @property
    def payment_kind(self) -> PaymentKind:
        if self.payment_type == PaymentType.HOURLY.value:
            return PaymentKind.HOURLY
        if self.payment_type == PaymentType.GLOBAL.value:
            return PaymentKind.GLOBAL
        if self.hourly_rate:
            return PaymentKind.HOURLY
        if self.global_payment:
            return PaymentKind.GLOBAL
        return PaymentKind.ANY


class JobPostingDraft(BaseModel):
    """Fields collected by the posting wizard; never stored as-is.

    Lives only inside the call that builds it.  ``build_record`` turns a
    confirmed draft into the document written to the store.
    """

    title: str = ""
    area: str = ""
    difficulty: str = Difficulty.MEDIUM.value
    date_type: DateType = DateType.FLEXIBLE
    specific_date: Optional[date] = None
    payment_type: PaymentType = PaymentType.HOURLY
    amount: float = 0
    suitability: Suitability = Field(
        default_factory=lambda: Suitability(men=True, women=True, general=True)
    )
    min_age: int = 16
    contact_phone: str = ""
    poster_phone: str = ""

    def build_record(self, serial_number: int, now: datetime) -> JobRecord:
        specific = None
        if self.specific_date is not None:
            specific = datetime(
                self.specific_date.year, self.specific_date.month, self.specific_date.day,
                tzinfo=now.tzinfo,
            )
        hourly = self.payment_type == PaymentType.HOURLY
        return JobRecord(
            title=self.title,
            area=self.area,
            description="",
            difficulty=self.difficulty,
            date_type=self.date_type,
            specific_date=specific,
            payment_type=self.payment_type.value,
            hourly_rate=self.amount if hourly else None,
            global_payment=None if hourly else self.amount,
            suitability=self.suitability.model_copy(update={"min_age": self.min_age}),
            contact_phone=self.contact_phone,
            contact_display_name="מפרסם טלפוני",
            posted_by=PosterInfo(
                id=f"phone-user-{self.poster_phone}",
                poster_display_name="מפרסם טלפוני",
            ),
            posted_date=now,
            is_posted=True,
            serial_number=serial_number,
            posted_via="phone",
            views=0,
            contact_attempts=0,
            applications=0,
        )


class JobFilterCriteria(StoredModel):
    """Caller-chosen search constraints; ``None`` means no constraint.

    The salary range only applies when ``payment_kind`` is hourly.
    """

    area: Optional[str] = None
    payment_kind: Optional[PaymentKind] = None
    min_salary: Optional[float] = None
    max_salary: Optional[float] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.area, self.payment_kind, self.min_salary,
                self.max_salary, self.min_age, self.max_age,
            )
        )
