"""Pytest configuration and fixtures."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from voice_booking.schema import Location, Service, StaffMember, TimeSlot

LA = ZoneInfo("America/Los_Angeles")


@pytest.fixture
def reference() -> datetime:
    """Wednesday 2026-10-14, 09:00 in Los Angeles (PDT, UTC-7)."""
    return datetime(2026, 10, 14, 9, 0, tzinfo=LA)


@pytest.fixture
def services() -> list[Service]:
    """Small spa catalog with two variations of the same massage."""
    return [
        Service(
            service_id="item-swedish",
            variation_id="var-swedish-60",
            service_name="Swedish Massage",
            variation_name="60 Minutes",
            variation_version=3,
            duration="1 hour",
            price="$120.00",
        ),
        Service(
            service_id="item-swedish",
            variation_id="var-swedish-90",
            service_name="Swedish Massage",
            variation_name="90 Minutes",
            variation_version=3,
            duration="1 hour 30 minutes",
            price="$160.00",
        ),
        Service(
            service_id="item-facial",
            variation_id="var-facial",
            service_name="Signature Facial",
            duration="45 minutes",
            price="$95.00",
        ),
        Service(
            service_id="item-pedicure",
            variation_id="var-pedicure",
            service_name="Spa Pedicure",
            duration="50 minutes",
        ),
    ]


@pytest.fixture
def staff() -> list[StaffMember]:
    return [
        StaffMember(team_member_id="tm-sarah", name="Sarah Johnson"),
        StaffMember(team_member_id="tm-mike", name="Mike Chen"),
        StaffMember(team_member_id="tm-priya", name="Priya Patel"),
    ]


@pytest.fixture
def locations() -> list[Location]:
    return [
        Location(
            location_id="loc-downtown",
            name="Downtown Spa",
            address="100 Main Street, Portland, OR, 97204",
            timezone="America/Los_Angeles",
        ),
        Location(
            location_id="loc-pearl",
            name="Pearl District Studio",
            address="1200 NW Glisan Street, Portland, OR, 97209",
            timezone="America/Los_Angeles",
        ),
    ]


@pytest.fixture
def staff_directory(staff) -> dict[str, str]:
    return {s.team_member_id: s.name for s in staff}


@pytest.fixture
def make_slot():
    """Build a slot in October 2026, Los Angeles time."""

    def _make(day: int, hour: int, staff_id: str, minute: int = 0) -> TimeSlot:
        return TimeSlot(start_at=datetime(2026, 10, day, hour, minute, tzinfo=LA), staff_id=staff_id)

    return _make
