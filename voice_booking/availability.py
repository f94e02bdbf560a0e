"""Group raw availability into capped, speakable summaries."""

from typing import Mapping
from zoneinfo import ZoneInfo

import structlog

from voice_booking.date_parser import format_date_label, format_time_label
from voice_booking.schema import AggregatedResult, TimeEntry, TimeSlot

LOGGER = structlog.get_logger(__name__)

DEFAULT_MAX_DATES = 3
DEFAULT_MAX_SLOTS_PER_DATE = 5


def join_spoken(items: list[str], conjunction: str = "and") -> str:
    """'A', 'A and B', 'A, B, and C'."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} {conjunction} {items[1]}"
    return f"{', '.join(items[:-1])}, {conjunction} {items[-1]}"


def qualitative_count(count: int) -> str:
    """Spoken magnitude for four or more openings."""
    if count <= 6:
        return "a few"
    if count <= 12:
        return "several"
    return "quite a few"


def _group(
    slots: list[TimeSlot],
    staff_directory: Mapping[str, str],
    tz: ZoneInfo,
) -> tuple[dict[str, dict[str, list[str]]], list[str], int]:
    """date label -> time label -> staff names, plus every staff name and the drop count."""
    grouped: dict[str, dict[str, list[str]]] = {}
    all_staff: dict[str, None] = {}
    dropped = 0

    for slot in sorted(slots, key=lambda s: s.start_at):
        name = staff_directory.get(slot.staff_id)
        if not name:
            dropped += 1
            continue
        local = slot.start_at.astimezone(tz)
        times = grouped.setdefault(format_date_label(local.date()), {})
        staff = times.setdefault(format_time_label(local), [])
        if name not in staff:
            staff.append(name)
        all_staff.setdefault(name, None)

    return grouped, list(all_staff), dropped


def aggregate(
    raw_slots: list[TimeSlot],
    staff_directory: Mapping[str, str],
    timezone: str,
    *,
    service_name: str,
    requested_window: str,
    max_dates: int = DEFAULT_MAX_DATES,
    max_slots_per_date: int = DEFAULT_MAX_SLOTS_PER_DATE,
) -> AggregatedResult:
    """
    Merge same-time slots across staff, group by local date and cap the result.

    Slots whose staff id is missing from ``staff_directory`` are dropped; an
    unnamed opening is worse than none. ``total_slots`` counts distinct
    (date, time) pairs before capping, ``slots_shown`` after.
    """
    if max_dates < 1 or max_slots_per_date < 1:
        raise ValueError("max_dates and max_slots_per_date must be positive")

    grouped, all_staff, dropped = _group(raw_slots, staff_directory, ZoneInfo(timezone))
    if dropped:
        LOGGER.warning(
            "availability.dropped_slots",
            dropped=dropped,
            received=len(raw_slots),
            service=service_name,
        )

    total_slots = sum(len(times) for times in grouped.values())

    capped: dict[str, list[TimeEntry]] = {}
    for date_label, times in list(grouped.items())[:max_dates]:
        capped[date_label] = [
            TimeEntry(time=time_label, staff=staff)
            for time_label, staff in list(times.items())[:max_slots_per_date]
        ]
    slots_shown = sum(len(entries) for entries in capped.values())

    summary = summarize(
        capped,
        total_slots=total_slots,
        total_dates=len(grouped),
        staff_names=all_staff,
        service_name=service_name,
        requested_window=requested_window,
    )
    return AggregatedResult(
        availability=capped,
        total_slots=total_slots,
        slots_shown=slots_shown,
        total_dates=len(grouped),
        staff_names=all_staff,
        dropped_slots=dropped,
        summary=summary,
    )


def summarize(
    availability: dict[str, list[TimeEntry]],
    *,
    total_slots: int,
    total_dates: int,
    staff_names: list[str],
    service_name: str,
    requested_window: str,
) -> str:
    """Pick a sentence that fits the shape of the result."""
    if total_slots == 0 or not availability:
        return (
            f"I'm sorry, I don't see any openings for {service_name} during {requested_window}. "
            "Would you like me to check a different day?"
        )

    first_date = next(iter(availability))
    first_entries = availability[first_date]
    earliest = first_entries[0].time

    if total_dates == 1:
        times = [entry.time for entry in first_entries]

        if len(staff_names) == 1:
            staff = staff_names[0]
            if total_slots == 1:
                return f"{staff} has an opening on {first_date} at {earliest}. Would that work for you?"
            if total_slots <= 3:
                return (
                    f"{staff} has openings on {first_date} at {join_spoken(times)}. "
                    "Which time works best for you?"
                )
            return (
                f"{staff} has {qualitative_count(total_slots)} openings on {first_date}, "
                f"starting at {earliest}. What time works for you?"
            )

        if total_slots <= 3:
            pairs = [
                f"{name} at {entry.time}"
                for entry in first_entries
                for name in entry.staff
            ]
            return f"On {first_date}, I have {join_spoken(pairs)}. Would any of those work for you?"
        return (
            f"I have {qualitative_count(total_slots)} openings on {first_date} with "
            f"{join_spoken(staff_names)}, starting at {earliest}. What time works for you?"
        )

    if total_dates == 2:
        dates = list(availability)
        if len(dates) < 2:
            # Second date was capped away; still mention that there are two days.
            return (
                f"I have openings on two days. The earliest is {first_date} at {earliest}. "
                "Which day works better for you?"
            )
        return (
            f"I have openings on {dates[0]} and {dates[1]}. The earliest is {earliest} on {first_date}. "
            "Which day works better for you?"
        )

    return (
        f"I have openings on {total_dates} different days. The earliest is {first_date} at {earliest}. "
        "Which day works best for you?"
    )
