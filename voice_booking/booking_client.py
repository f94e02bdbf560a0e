"""HTTP client for the booking platform (Square-style v2 REST API)."""

import re
import uuid
from datetime import datetime
from typing import Any, Optional

import httpx
import structlog

from voice_booking.config import Settings, get_settings
from voice_booking.schema import Customer, Location, Service, StaffMember, TimeSlot

LOGGER = structlog.get_logger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "CAD": "$", "AUD": "$", "EUR": "€", "GBP": "£"}

BOOKING_STATUSES = {
    "PENDING": "pending",
    "ACCEPTED": "confirmed",
    "CANCELLED": "cancelled",
    "CANCELLED_BY_SELLER": "cancelled",
    "CANCELLED_BY_CUSTOMER": "cancelled",
    "DECLINED": "declined",
    "NO_SHOW": "no show",
}


def format_duration(minutes: int) -> str:
    """Spoken duration: '45 minutes', '1 hour', '1 hour 30 minutes'."""
    if minutes >= 60:
        hours, remaining = divmod(minutes, 60)
        hours_text = f"{hours} hour{'s' if hours > 1 else ''}"
        return f"{hours_text} {remaining} minutes" if remaining else hours_text
    return f"{minutes} minutes"


def format_price(amount: int, currency: str) -> str:
    """Format minor currency units, e.g. 12000 USD -> '$120.00'."""
    value = amount / 100
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{value:,.2f} {currency}"


def format_phone_number(phone: str) -> str:
    """E.164 for North American numbers: '(503) 555-0123' -> '+15035550123'."""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) > 10:
        return f"+{digits}"
    return phone


def format_status(status: str) -> str:
    return BOOKING_STATUSES.get(status, status.lower())


def _flatten_address(address: Optional[dict[str, Any]]) -> Optional[str]:
    if not address:
        return None
    parts = [
        address.get("address_line_1"),
        address.get("locality"),
        address.get("administrative_district_level_1"),
        address.get("postal_code"),
    ]
    parts = [p for p in parts if p]
    return ", ".join(parts) if parts else None


def _to_location(data: dict[str, Any]) -> Location:
    return Location(
        location_id=data["id"],
        name=data.get("name") or data["id"],
        address=_flatten_address(data.get("address")),
        phone_number=data.get("phone_number"),
        timezone=data.get("timezone"),
    )


def _to_customer(data: dict[str, Any]) -> Customer:
    return Customer(
        customer_id=data["id"],
        given_name=data.get("given_name"),
        family_name=data.get("family_name"),
        phone_number=data.get("phone_number"),
        email_address=data.get("email_address"),
    )


class BookingClient:
    """Read catalog, staff and availability data; create bookings."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.access_token = access_token or settings.access_token.get_secret_value()
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.api_version = settings.api_version
        self.timeout = settings.timeout_seconds
        self.default_timezone = settings.default_timezone

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call the API and return the decoded JSON body."""
        if not self.access_token:
            raise ValueError("VOICE_BOOKING_ACCESS_TOKEN is required")
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.request(
                method,
                f"{self.base_url}{path}",
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                    "Square-Version": self.api_version,
                },
                params=params,
                json=json,
            )
            resp.raise_for_status()
            return resp.json()

    # --- Locations ---

    def list_locations(self) -> list[Location]:
        """Active locations only."""
        data = self._request("GET", "/locations")
        return [
            _to_location(loc)
            for loc in data.get("locations", [])
            if loc.get("status") == "ACTIVE"
        ]

    def get_location(self, location_id: str) -> Location:
        """Single location; the timezone is always filled in."""
        data = self._request("GET", f"/locations/{location_id}")
        location = _to_location(data["location"])
        if not location.timezone:
            location = location.model_copy(update={"timezone": self.default_timezone})
        return location

    # --- Catalog ---

    def list_services(self) -> list[Service]:
        """One Service per bookable variation of every appointment item."""
        body: dict[str, Any] = {
            "object_types": ["ITEM"],
            "query": {
                "exact_query": {
                    "attribute_name": "product_type",
                    "attribute_value": "APPOINTMENTS_SERVICE",
                }
            },
        }
        services: list[Service] = []
        while True:
            data = self._request("POST", "/catalog/search", json=body)
            for item in data.get("objects", []):
                services.extend(self._item_services(item))
            cursor = data.get("cursor")
            if not cursor:
                break
            body["cursor"] = cursor
        return services

    @staticmethod
    def _item_services(item: dict[str, Any]) -> list[Service]:
        item_data = item.get("item_data") or {}
        service_name = item_data.get("name") or "Unknown Service"
        services = []
        for variation in item_data.get("variations") or []:
            variation_data = variation.get("item_variation_data") or {}

            duration = None
            if variation_data.get("service_duration"):
                duration = format_duration(int(variation_data["service_duration"]) // 60000)

            price = None
            money = variation_data.get("price_money")
            if money and money.get("amount") is not None:
                price = format_price(int(money["amount"]), money.get("currency", "USD"))

            services.append(
                Service(
                    service_id=item["id"],
                    variation_id=variation["id"],
                    service_name=service_name,
                    variation_name=variation_data.get("name"),
                    variation_version=variation.get("version"),
                    description=item_data.get("description"),
                    duration=duration,
                    price=price,
                )
            )
        return services

    # --- Staff ---

    def list_staff(self, location_id: str | None = None) -> list[StaffMember]:
        """Bookable team members, optionally limited to one location."""
        params: dict[str, Any] = {"bookable_only": "true"}
        if location_id:
            params["location_id"] = location_id

        staff: list[StaffMember] = []
        while True:
            data = self._request("GET", "/bookings/team-member-booking-profiles", params=params)
            for profile in data.get("team_member_booking_profiles", []):
                member_id = profile["team_member_id"]
                name = profile.get("display_name") or self._team_member_name(member_id)
                staff.append(StaffMember(team_member_id=member_id, name=name))
            cursor = data.get("cursor")
            if not cursor:
                break
            params["cursor"] = cursor
        return staff

    def _team_member_name(self, team_member_id: str) -> str:
        """Fall back to the team member record when a profile has no display name."""
        try:
            data = self._request("GET", f"/team-members/{team_member_id}")
        except httpx.HTTPStatusError as e:
            LOGGER.warning(
                "booking_client.team_member_lookup_failed",
                team_member_id=team_member_id,
                status=e.response.status_code,
            )
            return "Unknown"
        member = data.get("team_member") or {}
        name = " ".join(p for p in (member.get("given_name"), member.get("family_name")) if p)
        return name or "Unknown"

    # --- Availability and bookings ---

    def search_availability(
        self,
        service_variation_id: str,
        location_id: str,
        range_start: datetime,
        range_end: datetime,
        staff_ids: list[str] | None = None,
    ) -> list[TimeSlot]:
        """One TimeSlot per (start, team member) the platform offers in the window."""
        segment_filter: dict[str, Any] = {"service_variation_id": service_variation_id}
        if staff_ids:
            segment_filter["team_member_id_filter"] = {"any": staff_ids}

        data = self._request(
            "POST",
            "/bookings/availability/search",
            json={
                "query": {
                    "filter": {
                        "start_at_range": {
                            "start_at": range_start.isoformat(),
                            "end_at": range_end.isoformat(),
                        },
                        "location_id": location_id,
                        "segment_filters": [segment_filter],
                    }
                }
            },
        )

        slots: list[TimeSlot] = []
        for availability in data.get("availabilities", []):
            start_at = datetime.fromisoformat(availability["start_at"].replace("Z", "+00:00"))
            for segment in availability.get("appointment_segments") or []:
                member_id = segment.get("team_member_id")
                if member_id:
                    slots.append(TimeSlot(start_at=start_at, staff_id=member_id))
        return slots

    def create_booking(
        self,
        service: Service,
        location_id: str,
        start_at: datetime,
        team_member_id: str | None = None,
        customer_id: str | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Create a booking and return the platform's booking record."""
        segment: dict[str, Any] = {"service_variation_id": service.variation_id}
        if service.variation_version is not None:
            segment["service_variation_version"] = service.variation_version
        if team_member_id:
            segment["team_member_id"] = team_member_id

        booking: dict[str, Any] = {
            "location_id": location_id,
            "start_at": start_at.isoformat(),
            "appointment_segments": [segment],
        }
        if customer_id:
            booking["customer_id"] = customer_id
        if notes:
            booking["customer_note"] = notes

        data = self._request(
            "POST",
            "/bookings",
            json={"idempotency_key": str(uuid.uuid4()), "booking": booking},
        )
        if not data.get("booking"):
            raise ValueError("Booking platform returned no booking")
        return data["booking"]

    def list_bookings(self, customer_id: str, start_at_min: datetime | None = None) -> list[dict[str, Any]]:
        """All booking records of one customer, following the cursor."""
        params: dict[str, Any] = {"customer_id": customer_id}
        if start_at_min is not None:
            params["start_at_min"] = start_at_min.isoformat()

        bookings: list[dict[str, Any]] = []
        while True:
            data = self._request("GET", "/bookings", params=params)
            bookings.extend(data.get("bookings", []))
            cursor = data.get("cursor")
            if not cursor:
                break
            params["cursor"] = cursor
        return bookings

    # --- Customers ---

    def search_customer_by_phone(self, phone: str) -> Customer | None:
        """First customer whose phone number matches exactly, after E.164 normalization."""
        data = self._request(
            "POST",
            "/customers/search",
            json={
                "query": {"filter": {"phone_number": {"exact": format_phone_number(phone)}}},
                "limit": 1,
            },
        )
        customers = data.get("customers") or []
        return _to_customer(customers[0]) if customers else None

    def create_customer(
        self,
        given_name: str,
        phone: str,
        family_name: str | None = None,
        email: str | None = None,
    ) -> Customer:
        body: dict[str, Any] = {
            "idempotency_key": str(uuid.uuid4()),
            "given_name": given_name,
            "phone_number": format_phone_number(phone),
        }
        if family_name:
            body["family_name"] = family_name
        if email:
            body["email_address"] = email

        data = self._request("POST", "/customers", json=body)
        if not data.get("customer"):
            raise ValueError("Booking platform returned no customer")
        LOGGER.info("booking_client.customer_created", customer_id=data["customer"]["id"])
        return _to_customer(data["customer"])
