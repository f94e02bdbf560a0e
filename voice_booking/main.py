"""FastAPI application exposing name-based booking endpoints for voice agents."""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from operator import attrgetter
from typing import Any, Callable, Optional, TypeVar
from zoneinfo import ZoneInfoNotFoundError

import httpx
import structlog
from fastapi import FastAPI, HTTPException

from voice_booking import date_parser
from voice_booking.availability import aggregate, join_spoken
from voice_booking.booking_client import BookingClient, format_duration, format_status
from voice_booking.config import Settings, get_settings
from voice_booking.resolver import resolve_location, resolve_service, resolve_staff
from voice_booking.schema import (
    AppointmentsRequest,
    AppointmentsResponse,
    AvailabilityRequest,
    AvailabilityResponse,
    BookingConfirmation,
    BookRequest,
    Confidence,
    CustomerCreateRequest,
    CustomerLookupRequest,
    CustomerResponse,
    Location,
    MatchResult,
    ParseDateRequest,
    ParsedDateTime,
    ResolveRequest,
    StaffMember,
    StaffRequest,
    UpcomingAppointment,
)

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")

ANY_STAFF = {"any", "anyone", "anybody", "whoever", "no preference", "doesn't matter"}

MAX_UPCOMING = 5

spoken_name = attrgetter("display_name")


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog on top of stdlib logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(get_settings().log_level)
    yield


app = FastAPI(title="Voice Booking", version="0.1.0", lifespan=lifespan)


# --- Helpers ---


def _upstream_error(e: httpx.HTTPStatusError) -> HTTPException:
    msg = f"Booking API error ({e.response.status_code}): "
    if e.response.status_code == 401:
        msg += "Invalid or missing access token. Set VOICE_BOOKING_ACCESS_TOKEN in your environment."
    else:
        msg += str(e)
    return HTTPException(status_code=502, detail=msg)


def _timeout_error(e: httpx.TimeoutException) -> HTTPException:
    LOGGER.warning("booking_client.timeout", error=str(e))
    return HTTPException(
        status_code=504,
        detail="The booking system is taking too long to respond. Please try again in a moment.",
    )


def _fetch(fetch: Callable[..., list[T]], *args: Any) -> list[T]:
    """Run a list fetch; a timeout counts as nothing available."""
    try:
        return fetch(*args)
    except httpx.TimeoutException as e:
        LOGGER.warning("booking_client.timeout", fetch=getattr(fetch, "__name__", str(fetch)), error=str(e))
        return []


def _resolve_options(settings: Settings) -> dict[str, float]:
    return {"threshold": settings.match_threshold, "ambiguity_window": settings.ambiguity_window}


def _require_match(
    result: MatchResult[T],
    kind: str,
    query: str,
    candidates: list[T],
    label: Callable[[T], str],
) -> T:
    """Return the resolved entity or raise a prompt the agent can read out."""
    if result.confidence is Confidence.NONE:
        names = list(dict.fromkeys(label(c) for c in candidates))[:5]
        detail = f'I couldn\'t find a {kind} called "{query}".'
        if names:
            detail += f" Available options include: {join_spoken(names)}."
        raise HTTPException(status_code=404, detail=detail)
    if result.confidence is Confidence.AMBIGUOUS:
        options = [label(a) for a in result.alternatives]
        raise HTTPException(
            status_code=400,
            detail=f"More than one {kind} matches. Did you mean {join_spoken(options, 'or')}?",
        )
    return result.match


def _choose_location(client: BookingClient, location_name: Optional[str], settings: Settings) -> Location:
    locations = _fetch(client.list_locations)
    if not locations:
        raise HTTPException(status_code=404, detail="No locations are currently available for booking.")

    if len(locations) == 1:
        location = locations[0]
    elif location_name:
        result = resolve_location(location_name, locations, **_resolve_options(settings))
        location = _require_match(result, "location", location_name, locations, spoken_name)
    else:
        names = join_spoken([loc.name for loc in locations], "or")
        raise HTTPException(
            status_code=400,
            detail=f"We have more than one location. Which would you prefer: {names}?",
        )

    if not location.timezone:
        try:
            location = client.get_location(location.location_id)
        except httpx.TimeoutException as e:
            LOGGER.warning("booking_client.timeout", fetch="get_location", error=str(e))
            location = location.model_copy(update={"timezone": settings.default_timezone})
    return location


def _choose_staff(
    client: BookingClient,
    staff_name: Optional[str],
    location_id: str,
    settings: Settings,
) -> tuple[Optional[StaffMember], list[StaffMember]]:
    staff = _fetch(client.list_staff, location_id)
    if not staff_name or staff_name.strip().lower() in ANY_STAFF:
        return None, staff
    result = resolve_staff(staff_name, staff, **_resolve_options(settings))
    return _require_match(result, "staff member", staff_name, staff, spoken_name), staff


# --- Endpoints ---


@app.post("/voice/services")
def list_services() -> dict:
    """List services with spoken names, durations and prices."""
    try:
        services = _fetch(BookingClient().list_services)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    return {
        "count": len(services),
        "services": [
            {
                "name": s.display_name,
                "duration": s.duration,
                "price": s.price,
                "description": s.description,
            }
            for s in services
        ],
    }


@app.post("/voice/staff")
def list_staff(request: Optional[StaffRequest] = None) -> dict:
    """List bookable staff, optionally at one location."""
    request = request or StaffRequest()
    settings = get_settings()
    try:
        client = BookingClient()
        location_id = None
        if request.location_name:
            locations = _fetch(client.list_locations)
            result = resolve_location(request.location_name, locations, **_resolve_options(settings))
            if result.is_resolved:
                location_id = result.match.location_id
        staff = _fetch(client.list_staff, location_id)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    return {"count": len(staff), "staff": [{"name": s.name} for s in staff]}


@app.post("/voice/locations")
def list_locations() -> dict:
    """List active business locations."""
    try:
        locations = _fetch(BookingClient().list_locations)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    return {
        "count": len(locations),
        "locations": [
            {"name": loc.name, "address": loc.address, "phone": loc.phone_number}
            for loc in locations
        ],
    }


@app.post("/voice/resolve")
def resolve_name(request: ResolveRequest) -> dict:
    """
    Resolve a spoken service, staff or location name.
    Returns {confidence, match, alternatives} with display names.
    """
    settings = get_settings()
    options = _resolve_options(settings)
    try:
        client = BookingClient()
        if request.kind == "service":
            result = resolve_service(request.name, _fetch(client.list_services), **options)
            return result.to_dict(spoken_name)
        if request.kind == "location":
            result = resolve_location(request.name, _fetch(client.list_locations), **options)
            return result.to_dict(spoken_name)
        location_id = None
        if request.location_name:
            location_id = _choose_location(client, request.location_name, settings).location_id
        result = resolve_staff(request.name, _fetch(client.list_staff, location_id), **options)
        return result.to_dict(spoken_name)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)


@app.post("/voice/parse-date", response_model=ParsedDateTime)
def parse_date(request: ParseDateRequest) -> ParsedDateTime:
    """Parse a spoken date/time phrase into an exact time or a search window."""
    settings = get_settings()
    tz_name = request.timezone or settings.default_timezone
    try:
        return date_parser.parse(
            request.phrase,
            tz_name,
            default_range_days=settings.default_range_days,
        )
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=422, detail=f"Unknown timezone: {tz_name}")


@app.post("/voice/availability", response_model=AvailabilityResponse)
def check_availability(request: AvailabilityRequest) -> AvailabilityResponse:
    """
    Find openings for a service using spoken names and a natural-language date.
    The summary is meant to be read out to the caller as-is.
    """
    settings = get_settings()
    try:
        client = BookingClient()
        location = _choose_location(client, request.location_name, settings)

        services = _fetch(client.list_services)
        service = _require_match(
            resolve_service(request.service_name, services, **_resolve_options(settings)),
            "service",
            request.service_name,
            services,
            spoken_name,
        )
        staff_member, staff = _choose_staff(client, request.staff_name, location.location_id, settings)

        window = date_parser.parse(
            request.date_preference,
            location.timezone,
            default_range_days=settings.default_range_days,
        )
        range_start, range_end = window.range_start, window.range_end
        if not window.is_range:
            # Search the whole business day so nearby times can be offered.
            range_start, range_end = date_parser.business_day_window(
                window.start_at.date(), location.timezone
            )

        slots = _fetch(
            client.search_availability,
            service.variation_id,
            location.location_id,
            range_start,
            range_end,
            [staff_member.team_member_id] if staff_member else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    requested_window = window.human_readable
    if not window.is_range:
        requested_window = date_parser.format_date_label(window.start_at.date())

    directory = {s.team_member_id: s.name for s in staff}
    if staff_member:
        directory.setdefault(staff_member.team_member_id, staff_member.name)

    result = aggregate(
        slots,
        directory,
        location.timezone,
        service_name=service.display_name,
        requested_window=requested_window,
        max_dates=settings.max_dates,
        max_slots_per_date=settings.max_slots_per_date,
    )
    LOGGER.info(
        "availability.searched",
        service=service.variation_id,
        location=location.location_id,
        total_slots=result.total_slots,
        slots_shown=result.slots_shown,
    )

    return AvailabilityResponse(
        **result.model_dump(),
        service_name=service.display_name,
        location_name=location.name,
        staff_name=staff_member.name if staff_member else None,
        range_start=range_start,
        range_end=range_end,
    )


@app.post("/voice/book", response_model=BookingConfirmation)
def book(request: BookRequest) -> BookingConfirmation:
    """Create a booking from a spoken service name and an exact spoken time."""
    settings = get_settings()
    try:
        client = BookingClient()
        location = _choose_location(client, request.location_name, settings)

        services = _fetch(client.list_services)
        service = _require_match(
            resolve_service(request.service_name, services, **_resolve_options(settings)),
            "service",
            request.service_name,
            services,
            spoken_name,
        )
        staff_member, _ = _choose_staff(client, request.staff_name, location.location_id, settings)

        start_at = date_parser.parse_exact(request.time, location.timezone)
        if start_at is None:
            raise HTTPException(
                status_code=400,
                detail=(
                    "I need a specific time to book. Could you say something like "
                    '"tomorrow at 2pm" or "Thursday at 10:30am"?'
                ),
            )

        booking = client.create_booking(
            service,
            location.location_id,
            start_at,
            team_member_id=staff_member.team_member_id if staff_member else None,
            customer_id=request.customer_id,
            notes=request.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    booked_at = start_at
    if booking.get("start_at"):
        booked_at = datetime.fromisoformat(booking["start_at"].replace("Z", "+00:00"))
    appointment_time = date_parser.format_for_voice(booked_at, location.timezone)

    segments = booking.get("appointment_segments") or [{}]
    minutes = segments[0].get("duration_minutes")
    duration = format_duration(int(minutes)) if minutes else service.duration

    booking_id = booking["id"]
    display_name = service.display_name
    summary = f"Great! I've booked your {display_name} for {appointment_time} at {location.name}"
    if staff_member:
        summary += f" with {staff_member.name}"
    summary += f". Your confirmation number is {booking_id[-6:]}."

    LOGGER.info("booking.created", booking_id=booking_id, location=location.location_id)
    return BookingConfirmation(
        confirmation_id=booking_id,
        start_at=booked_at,
        appointment_time=appointment_time,
        service_name=display_name,
        location_name=location.name,
        staff_name=staff_member.name if staff_member else None,
        duration=duration,
        summary=summary,
    )


@app.post("/voice/customer", response_model=CustomerResponse)
def lookup_customer(request: CustomerLookupRequest) -> CustomerResponse:
    """Greet a returning caller by phone number, or offer to create a profile."""
    try:
        customer = BookingClient().search_customer_by_phone(request.phone)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    if customer is None:
        return CustomerResponse(
            found=False,
            message=(
                "I don't have a record for this phone number. "
                "Would you like me to create a new customer profile?"
            ),
        )
    return CustomerResponse(
        found=True,
        name=customer.display_name,
        customer_id=customer.customer_id,
        message=f"Welcome back, {customer.greeting_name}!",
    )


@app.post("/voice/customer/create", response_model=CustomerResponse)
def create_customer(request: CustomerCreateRequest) -> CustomerResponse:
    """Create a customer profile from details the caller spoke."""
    try:
        customer = BookingClient().create_customer(
            request.first_name,
            request.phone,
            family_name=request.last_name,
            email=request.email,
        )
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    return CustomerResponse(
        found=True,
        name=customer.display_name,
        customer_id=customer.customer_id,
        message=f"I've created your profile, {request.first_name}. You're all set to book an appointment!",
    )


@app.post("/voice/appointments", response_model=AppointmentsResponse)
def list_appointments(request: AppointmentsRequest) -> AppointmentsResponse:
    """
    Upcoming, non-cancelled appointments for the caller's phone number,
    soonest first, with times spoken in each location's timezone.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    try:
        client = BookingClient()
        customer = client.search_customer_by_phone(request.phone)
        if customer is None:
            return AppointmentsResponse(
                customer_name="Unknown",
                upcoming_count=0,
                summary="I don't have any records for this phone number.",
            )
        bookings = client.list_bookings(customer.customer_id, start_at_min=now)
        timezones = {loc.location_id: loc.timezone for loc in _fetch(client.list_locations) if loc.timezone}
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except httpx.HTTPStatusError as e:
        raise _upstream_error(e)
    except httpx.TimeoutException as e:
        raise _timeout_error(e)

    upcoming = []
    for booking in bookings:
        status = booking.get("status", "")
        if not booking.get("start_at") or "CANCELLED" in status:
            continue
        start_at = datetime.fromisoformat(booking["start_at"].replace("Z", "+00:00"))
        if start_at < now:
            continue
        tz = timezones.get(booking.get("location_id"), settings.default_timezone)
        upcoming.append(
            UpcomingAppointment(
                booking_id=booking["id"],
                start_at=start_at,
                appointment_time=date_parser.format_for_voice(start_at, tz),
                status=format_status(status),
                version=booking.get("version"),
            )
        )
    upcoming = sorted(upcoming, key=attrgetter("start_at"))[:MAX_UPCOMING]

    name = customer.greeting_name
    if not upcoming:
        summary = f"{name}, you don't have any upcoming appointments. Would you like to book one?"
    elif len(upcoming) == 1:
        summary = f"{name}, you have one upcoming appointment on {upcoming[0].appointment_time}."
    else:
        summary = (
            f"{name}, you have {len(upcoming)} upcoming appointments. "
            f"The next one is on {upcoming[0].appointment_time}."
        )

    return AppointmentsResponse(
        customer_name=name,
        upcoming_count=len(upcoming),
        upcoming=upcoming,
        summary=summary,
    )


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
