"""
Applicant-supplied data — the structured sections of an application.

Pydantic models validate format and required-ness of every field at
construction; `temporal_violations` adds the checks that depend on the
current date (arrival in the future, passport validity). Those are kept out
of the models so a stored application can always be reloaded, even years
after its travel dates have passed.

Travel dates are timezone-aware datetimes (naive input is read as UTC) and
`duration_of_stay` is a computed field: it is derived from arrival and
departure every time the model is built or dumped and is never stored as
an independent value.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from evisa_lifecycle.railway import ErrorCode, Result

M = TypeVar("M", bound=BaseModel)

MAX_STAY_DAYS = 365
MAX_ARRIVAL_HORIZON_DAYS = 730
MIN_PASSPORT_VALIDITY_MONTHS = 6

_PHONE_PATTERN = r"^\+?[\d\s\-()]{6,20}$"
_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class TravelPurpose(StrEnum):
    TOURISM = "tourism"
    BUSINESS = "business"
    STUDY = "study"
    WORK = "work"
    MEDICAL = "medical"
    FAMILY_VISIT = "family_visit"
    TRANSIT = "transit"
    CONFERENCE = "conference"
    OTHER = "other"


class MaritalStatus(StrEnum):
    SINGLE = "single"
    MARRIED = "married"
    DIVORCED = "divorced"
    WIDOWED = "widowed"


class Gender(StrEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class AccommodationType(StrEnum):
    HOTEL = "hotel"
    HOSTEL = "hostel"
    FRIEND_FAMILY = "friend_family"
    RENTAL = "rental"
    OTHER = "other"


class SourceOfFunds(StrEnum):
    PERSONAL_SAVINGS = "personal_savings"
    EMPLOYMENT = "employment"
    BUSINESS = "business"
    FAMILY_SUPPORT = "family_support"
    SCHOLARSHIP = "scholarship"
    OTHER = "other"


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)


# ─────────────────────── Personal ───────────────────────


class Employer(_Section):
    name: str = Field(min_length=1, max_length=100)
    address: str | None = None
    phone: str | None = Field(default=None, pattern=_PHONE_PATTERN)


class PersonalInfo(_Section):
    passport_number: str = Field(min_length=6, max_length=20, pattern=r"^[A-Z0-9]+$")
    passport_issue_date: date
    passport_expiry_date: date
    passport_issuing_country: str = Field(min_length=2, max_length=50)
    nationality: str = Field(min_length=2, max_length=50)
    date_of_birth: date
    place_of_birth: str = Field(min_length=2, max_length=100)
    marital_status: MaritalStatus
    occupation: str = Field(min_length=2, max_length=100)
    gender: Gender | None = None
    employer: Employer | None = None

    @field_validator("passport_number", "nationality", "passport_issuing_country", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _passport_dates(self) -> PersonalInfo:
        if self.passport_expiry_date <= self.passport_issue_date:
            raise ValueError("passport_expiry_date must be after passport_issue_date")
        if self.date_of_birth >= self.passport_issue_date:
            raise ValueError("date_of_birth must precede passport_issue_date")
        return self


# ─────────────────────── Travel ───────────────────────


class DestinationAddress(_Section):
    street: str | None = None
    city: str = Field(min_length=2, max_length=100)
    state: str | None = None
    country: str = Field(min_length=2, max_length=100)
    zip_code: str | None = None


class AccommodationDetails(_Section):
    name: str | None = None
    address: str | None = None
    phone: str | None = Field(default=None, pattern=_PHONE_PATTERN)
    confirmation_number: str | None = None


class PreviousVisit(_Section):
    country: str = Field(min_length=2)
    date_of_visit: date
    duration_days: int | None = Field(default=None, ge=1)
    purpose: str | None = None


class TravelInfo(_Section):
    intended_date_of_arrival: datetime
    intended_date_of_departure: datetime
    destination_address: DestinationAddress
    accommodation_type: AccommodationType
    accommodation_details: AccommodationDetails | None = None
    previous_visits: tuple[PreviousVisit, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _discard_supplied_duration(cls, data: Any) -> Any:
        # duration_of_stay is derived; a value coming from input or storage is ignored
        if isinstance(data, Mapping) and "duration_of_stay" in data:
            data = {k: v for k, v in data.items() if k != "duration_of_stay"}
        return data

    @field_validator("intended_date_of_arrival", "intended_date_of_departure")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)

    @model_validator(mode="after")
    def _departure_after_arrival(self) -> TravelInfo:
        if self.intended_date_of_departure <= self.intended_date_of_arrival:
            raise ValueError("intended_date_of_departure must be after intended_date_of_arrival")
        if self.duration_of_stay > MAX_STAY_DAYS:
            raise ValueError(f"stay duration cannot exceed {MAX_STAY_DAYS} days")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_of_stay(self) -> int:
        return compute_duration_of_stay(
            self.intended_date_of_arrival, self.intended_date_of_departure
        )


def compute_duration_of_stay(arrival: datetime, departure: datetime) -> int:
    """Whole days between arrival and departure, rounded up."""
    return math.ceil((departure - arrival) / timedelta(days=1))


# ─────────────────────── Financial / contact / background ───────────────────────


class SponsorInfo(_Section):
    has_sponsorship: bool = False
    sponsor_name: str | None = None
    sponsor_relationship: str | None = None
    sponsor_address: str | None = None
    sponsor_phone: str | None = Field(default=None, pattern=_PHONE_PATTERN)
    sponsor_email: str | None = Field(default=None, pattern=_EMAIL_PATTERN)

    @model_validator(mode="after")
    def _sponsor_named(self) -> SponsorInfo:
        if self.has_sponsorship and not self.sponsor_name:
            raise ValueError("sponsor_name is required when has_sponsorship is true")
        return self


class FinancialInfo(_Section):
    funds_available: Decimal = Field(ge=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    source_of_funds: SourceOfFunds
    sponsor: SponsorInfo = Field(default_factory=SponsorInfo)


class EmergencyContact(_Section):
    name: str = Field(min_length=2, max_length=100)
    relationship: str = Field(min_length=2, max_length=50)
    phone: str = Field(pattern=_PHONE_PATTERN)
    email: str | None = Field(default=None, pattern=_EMAIL_PATTERN)
    address: str | None = None


class AdditionalInfo(_Section):
    has_been_refused: bool = False
    refusal_details: str | None = None
    has_criminal_record: bool = False
    criminal_record_details: str | None = None
    has_health_issues: bool = False
    health_issue_details: str | None = None

    @model_validator(mode="after")
    def _details_when_declared(self) -> AdditionalInfo:
        for flag, detail in (
            ("has_been_refused", "refusal_details"),
            ("has_criminal_record", "criminal_record_details"),
            ("has_health_issues", "health_issue_details"),
        ):
            if getattr(self, flag) and not getattr(self, detail):
                raise ValueError(f"{detail} is required when {flag} is true")
        return self


# ─────────────────────── Write-time helpers ───────────────────────


def parse_model(model_cls: type[M], payload: M | Mapping[str, Any]) -> Result[M]:
    """
    Validate raw input into `model_cls`.

    Pydantic errors become a VALIDATION_ERROR whose `field` detail is the
    dotted path of the first failing field; all errors are listed under `errors`.
    """
    if isinstance(payload, model_cls):
        return Result.success(payload)
    try:
        return Result.success(model_cls.model_validate(payload))
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": str(e)}
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Invalid {model_cls.__name__}: {first['field']}: {first['message']}",
            {"field": first["field"], "errors": errors},
        )


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of the month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    for candidate in (day.day, 30, 29, 28):
        try:
            return day.replace(year=year, month=month, day=candidate)
        except ValueError:
            continue
    raise ValueError(f"cannot shift {day} by {months} months")  # pragma: no cover


def temporal_violations(
    personal: PersonalInfo, travel: TravelInfo, today: date
) -> list[tuple[str, str]]:
    """Date-relative rules, as (field, message) pairs; empty when all hold."""
    violations: list[tuple[str, str]] = []
    if personal.passport_issue_date > today:
        violations.append(
            ("personal_info.passport_issue_date", "passport issue date cannot be in the future")
        )
    if personal.passport_expiry_date < add_months(today, MIN_PASSPORT_VALIDITY_MONTHS):
        violations.append(
            (
                "personal_info.passport_expiry_date",
                f"passport must be valid for at least {MIN_PASSPORT_VALIDITY_MONTHS} months",
            )
        )
    arrival = travel.intended_date_of_arrival.date()
    if arrival <= today:
        violations.append(("travel_info.intended_date_of_arrival", "arrival date must be in the future"))
    elif arrival > today + timedelta(days=MAX_ARRIVAL_HORIZON_DAYS):
        violations.append(
            ("travel_info.intended_date_of_arrival", "arrival date cannot be more than 2 years ahead")
        )
    return violations


def age_on(date_of_birth: date, day: date) -> int:
    """Completed years of age on `day`."""
    had_birthday = (day.month, day.day) >= (date_of_birth.month, date_of_birth.day)
    return day.year - date_of_birth.year - (0 if had_birthday else 1)
