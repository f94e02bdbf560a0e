"""Pydantic models for catalog entities, resolution results and voice responses."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Named entities (snapshots fetched from the booking platform) ---


class Service(BaseModel):
    """One bookable service variation from the catalog."""

    model_config = ConfigDict(frozen=True)

    service_id: str
    variation_id: str = Field(..., description="Identifier used for availability and bookings")
    service_name: str = Field(..., min_length=1)
    variation_name: Optional[str] = None
    variation_version: Optional[int] = None
    description: Optional[str] = None
    duration: Optional[str] = Field(default=None, description="Spoken duration e.g. '1 hour'")
    price: Optional[str] = Field(default=None, description="Formatted price e.g. '$120.00'")

    @property
    def display_name(self) -> str:
        """Name suitable for speech, e.g. 'Swedish Massage (60 Minutes)'."""
        if self.variation_name and self.variation_name != self.service_name:
            return f"{self.service_name} ({self.variation_name})"
        return self.service_name


class StaffMember(BaseModel):
    """A bookable team member."""

    model_config = ConfigDict(frozen=True)

    team_member_id: str
    name: str = Field(..., min_length=1)

    @property
    def display_name(self) -> str:
        return self.name


class Location(BaseModel):
    """A business location."""

    model_config = ConfigDict(frozen=True)

    location_id: str
    name: str = Field(..., min_length=1)
    address: Optional[str] = Field(default=None, description="'line1, city, state, zip'")
    phone_number: Optional[str] = None
    timezone: Optional[str] = Field(default=None, description="IANA timezone e.g. America/New_York")

    @property
    def display_name(self) -> str:
        return self.name


class Customer(BaseModel):
    """A customer profile, looked up by phone number."""

    model_config = ConfigDict(frozen=True)

    customer_id: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, description="E.164 e.g. '+15035550123'")
    email_address: Optional[str] = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.given_name, self.family_name) if p) or "Customer"

    @property
    def greeting_name(self) -> str:
        return self.given_name or self.display_name


# --- Name resolution result ---


class Confidence(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


T = TypeVar("T")


@dataclass(frozen=True)
class MatchResult(Generic[T]):
    """
    Outcome of resolving a phrase against candidate entities.

    exact/fuzzy carry ``match`` only, ambiguous carries two or more
    ``alternatives`` only, none carries neither. Use the classmethod
    constructors rather than building instances by hand.
    """

    confidence: Confidence
    match: Optional[T] = None
    alternatives: Optional[tuple[T, ...]] = None

    def __post_init__(self) -> None:
        if self.confidence in (Confidence.EXACT, Confidence.FUZZY):
            if self.match is None or self.alternatives is not None:
                raise ValueError(f"{self.confidence.value} result needs a match and no alternatives")
        elif self.confidence is Confidence.AMBIGUOUS:
            if self.match is not None or not self.alternatives or len(self.alternatives) < 2:
                raise ValueError("ambiguous result needs two or more alternatives and no match")
        elif self.match is not None or self.alternatives:
            raise ValueError("none result carries no match and no alternatives")

    @classmethod
    def exact(cls, item: T) -> "MatchResult[T]":
        return cls(Confidence.EXACT, match=item)

    @classmethod
    def fuzzy(cls, item: T) -> "MatchResult[T]":
        return cls(Confidence.FUZZY, match=item)

    @classmethod
    def ambiguous(cls, items: list[T]) -> "MatchResult[T]":
        return cls(Confidence.AMBIGUOUS, alternatives=tuple(items))

    @classmethod
    def none(cls) -> "MatchResult[T]":
        return cls(Confidence.NONE)

    @property
    def is_resolved(self) -> bool:
        return self.match is not None

    def to_dict(self, label: Callable[[T], str]) -> dict[str, Any]:
        """Serialize for caller-facing disambiguation prompts."""
        return {
            "confidence": self.confidence.value,
            "match": label(self.match) if self.match is not None else None,
            "alternatives": [label(a) for a in self.alternatives] if self.alternatives else None,
        }


# --- Parsed date/time ---


class ParsedDateTime(BaseModel):
    """Exact instant or search window parsed from a spoken phrase."""

    model_config = ConfigDict(frozen=True)

    start_at: Optional[datetime] = Field(default=None, description="Set only for exact times")
    is_range: bool
    range_start: datetime
    range_end: datetime
    human_readable: str

    @model_validator(mode="after")
    def check_window(self) -> "ParsedDateTime":
        for value in (self.start_at, self.range_start, self.range_end):
            if value is not None and value.tzinfo is None:
                raise ValueError("parsed instants must carry a UTC offset")
        if self.range_start > self.range_end:
            raise ValueError("range_start must not be after range_end")
        if not self.is_range:
            if self.start_at is None:
                raise ValueError("exact times require start_at")
            if not (self.range_start == self.range_end == self.start_at):
                raise ValueError("exact times must have a zero-width range at start_at")
        return self


# --- Availability ---


class TimeSlot(BaseModel):
    """One bookable opening offered by one staff member."""

    model_config = ConfigDict(frozen=True)

    start_at: datetime
    staff_id: str


class TimeEntry(BaseModel):
    """A time on a given date and everyone available at it."""

    time: str = Field(..., description="Spoken local time e.g. '10:00 AM'")
    staff: list[str] = Field(default_factory=list)


class AggregatedResult(BaseModel):
    """Availability grouped by date label, capped for speech."""

    availability: dict[str, list[TimeEntry]] = Field(
        default_factory=dict,
        description="Date label -> time entries, chronological",
    )
    total_slots: int = Field(..., ge=0, description="Distinct (date, time) pairs before capping")
    slots_shown: int = Field(..., ge=0, description="Time entries left after capping")
    total_dates: int = Field(default=0, ge=0)
    staff_names: list[str] = Field(default_factory=list)
    dropped_slots: int = Field(default=0, ge=0, description="Slots with unknown staff")
    summary: str


# --- Request / Response ---


class StaffRequest(BaseModel):
    """Request body for POST /voice/staff."""

    location_name: Optional[str] = None


class ResolveRequest(BaseModel):
    """Request body for POST /voice/resolve."""

    kind: str = Field(..., pattern=r"^(service|staff|location)$")
    name: str = Field(..., min_length=1)
    location_name: Optional[str] = None


class ParseDateRequest(BaseModel):
    """Request body for POST /voice/parse-date."""

    phrase: str = Field(..., min_length=1)
    timezone: Optional[str] = Field(default=None, description="IANA timezone; the configured default when omitted")


class AvailabilityRequest(BaseModel):
    """Request body for POST /voice/availability."""

    service_name: str = Field(..., min_length=1, description="e.g. 'Swedish massage'")
    date_preference: str = Field(..., min_length=1, description="e.g. 'Thursday afternoon'")
    staff_name: Optional[str] = Field(default=None, description="e.g. 'Sarah' or 'anyone'")
    location_name: Optional[str] = None


class AvailabilityResponse(AggregatedResult):
    """Response from POST /voice/availability."""

    service_name: str
    location_name: str
    staff_name: Optional[str] = None
    range_start: datetime
    range_end: datetime


class BookRequest(BaseModel):
    """Request body for POST /voice/book."""

    service_name: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1, description="e.g. 'tomorrow at 2pm'")
    staff_name: Optional[str] = None
    location_name: Optional[str] = None
    customer_id: Optional[str] = None
    notes: Optional[str] = None


class BookingConfirmation(BaseModel):
    """Response from POST /voice/book."""

    confirmation_id: str
    start_at: datetime
    appointment_time: str
    service_name: str
    location_name: str
    staff_name: Optional[str] = None
    duration: Optional[str] = None
    summary: str


class CustomerLookupRequest(BaseModel):
    """Request body for POST /voice/customer."""

    phone: str = Field(..., min_length=1, description="Phone number in any format")


class CustomerCreateRequest(BaseModel):
    """Request body for POST /voice/customer/create."""

    first_name: str = Field(..., min_length=1)
    last_name: Optional[str] = None
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None


class CustomerResponse(BaseModel):
    """Response from the customer endpoints."""

    found: bool
    name: Optional[str] = None
    customer_id: Optional[str] = None
    message: str


class AppointmentsRequest(BaseModel):
    """Request body for POST /voice/appointments."""

    phone: str = Field(..., min_length=1)


class UpcomingAppointment(BaseModel):
    booking_id: str
    start_at: datetime
    appointment_time: str = Field(..., description="e.g. 'Thursday, October 15 at 2:00 PM'")
    status: str = Field(..., description="Spoken status e.g. 'confirmed'")
    version: Optional[int] = None


class AppointmentsResponse(BaseModel):
    """Response from POST /voice/appointments."""

    customer_name: str
    upcoming_count: int = Field(..., ge=0)
    upcoming: list[UpcomingAppointment] = Field(default_factory=list)
    summary: str
