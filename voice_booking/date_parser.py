"""
Natural-language date/time parsing for voice bookings.

Phrases like "tomorrow at 2pm" become an exact instant; phrases like
"Thursday afternoon" or "next week" become a search window. Date words are
recognised by a pluggable grammar (``DateGrammar``); the default one hands
them to ``dateparser``. All instants are timezone-aware in the caller's zone.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

import structlog
from dateparser import DateDataParser
from dateparser.search import search_dates

from voice_booking.schema import ParsedDateTime

LOGGER = structlog.get_logger(__name__)

DEFAULT_RANGE_DAYS = 7


@dataclass(frozen=True)
class TimePeriod:
    """Local hour window, end exclusive."""

    name: str
    start_hour: int
    end_hour: int


# First match wins.
TIME_PERIODS: tuple[tuple[re.Pattern, TimePeriod], ...] = (
    (re.compile(r"\bmornings?\b"), TimePeriod("morning", 8, 12)),
    (re.compile(r"\bafternoons?\b"), TimePeriod("afternoon", 12, 17)),
    (re.compile(r"\bevenings?\b"), TimePeriod("evening", 17, 21)),
    (re.compile(r"\b(?:to)?nights?\b"), TimePeriod("night", 18, 22)),
)

BUSINESS_HOURS = TimePeriod("business hours", 8, 21)


def detect_time_period(text: str) -> Optional[TimePeriod]:
    """Return the time-of-day keyword in ``text``, if any."""
    lowered = text.lower()
    for pattern, period in TIME_PERIODS:
        if pattern.search(lowered):
            return period
    return None


# --- Grammar interface ---


@dataclass(frozen=True)
class GrammarMatch:
    """A recognised date, an optional clock time and an optional closing date."""

    day: date
    clock: Optional[time] = None
    end_day: Optional[date] = None

    @property
    def certain_hour(self) -> bool:
        return self.clock is not None


class DateGrammar(Protocol):
    def parse(self, text: str, reference: datetime) -> Optional[GrammarMatch]:
        """Recognise a date expression relative to ``reference`` (aware, local)."""
        ...


_WEEKDAY_WORDS = (
    "monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    "|mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun"
)

_WEEKDAY_RE = re.compile(rf"\b(?P<day>{_WEEKDAY_WORDS})\b")
_WEEKDAY_INDEX = {name: i for i, name in enumerate(("mon", "tue", "wed", "thu", "fri", "sat", "sun"))}
_NEXT_WEEKDAY_RE = re.compile(rf"\bnext\s+(?:{_WEEKDAY_WORDS})\b")

# "at 3" / "around 4:30" with no AM/PM; dateparser would read these as early morning.
_BARE_HOUR_RE = re.compile(
    r"\b(?P<lead>at|around|about)\s+(?P<hour>1[0-2]|0?[1-9])(?::(?P<minute>[0-5]\d))?\b"
    r"(?!\s*(?:[ap]\.?\s?m\b|st\b|nd\b|rd\b|th\b)|:)"
)
_DOTTED_MERIDIEM_RE = re.compile(r"\b(?P<meridiem>[ap])\.\s?m\b\.?")
# Sub-day offsets ("in 2 hours") fix the clock even though dateparser reports a day period.
_SUB_DAY_OFFSET_RE = re.compile(r"\b(?:hours?|hrs?|minutes?|mins?)\b")

_PERIOD_WORDS_RE = re.compile(
    r"\b(?:in\s+the\s+|this\s+)?(?:morning|afternoon|evening|tonight|night)s?\b"
)
_RELATIVE_WEEKDAY_RE = re.compile(
    rf"\b(?:this\s+coming|next|this|coming)\s+(?P<day>{_WEEKDAY_WORDS})\b"
)
_FILLER_RE = re.compile(
    r"\b(?:at|on|around|about|sometime|some\s+time|anytime|any\s+time|please|early|late|the)\b"
)

_SPAN_RE = re.compile(
    r"^(?:from|between)\s+(?P<start>.+?)\s+(?:to|through|thru|until|till|and)\s+(?P<end>.+)$"
)
_NEXT_DAYS_RE = re.compile(
    r"\b(?:next|coming)\s+(?P<count>\d{1,2}|few|couple(?:\s+of)?)\s+days\b"
)
_NEXT_WEEKEND_RE = re.compile(r"\bnext\s+weekend\b")
_WEEKEND_RE = re.compile(r"\b(?:this\s+)?weekend\b")
_THIS_WEEK_RE = re.compile(r"\b(?:this|the\s+rest\s+of\s+the)\s+week\b")
_NEXT_WEEK_RE = re.compile(r"\bnext\s+week\b")

_WORD_COUNTS = {"few": 3, "couple": 2, "couple of": 2}


def _business_hour(hour: int) -> int:
    """Read a bare 1-7 as afternoon ("at 3" means 3 PM)."""
    return hour + 12 if 1 <= hour <= 7 else hour


def _spell_business_hours(text: str) -> str:
    """Rewrite a bare "at 3" as "at 15:00" so the date library reads it as afternoon."""

    def repl(m: re.Match) -> str:
        hour = _business_hour(int(m.group("hour")))
        return f"{m.group('lead')} {hour:02d}:{m.group('minute') or '00'}"

    text = _DOTTED_MERIDIEM_RE.sub(lambda m: f"{m.group('meridiem')}m", text)
    return _BARE_HOUR_RE.sub(repl, text)


def _named_weekday(text: str) -> Optional[int]:
    m = _WEEKDAY_RE.search(text)
    if m is None:
        return None
    return _WEEKDAY_INDEX[m.group("day")[:3]]


def _clean(text: str) -> str:
    """Drop period words and filler so only the date expression remains."""
    text = _PERIOD_WORDS_RE.sub(" ", text)
    text = _RELATIVE_WEEKDAY_RE.sub(lambda m: m.group("day"), text)
    text = _FILLER_RE.sub(" ", text)
    return " ".join(text.split()).strip(" ,.!?")


class DateparserGrammar:
    """Date grammar backed by the ``dateparser`` library (English, future-biased)."""

    def __init__(self, languages: Optional[list[str]] = None) -> None:
        self.languages = languages or ["en"]

    def parse(self, text: str, reference: datetime) -> Optional[GrammarMatch]:
        text = " ".join(text.lower().split()).strip(" ,.!?")
        if not text:
            return None

        span = _SPAN_RE.match(text)
        if span:
            matched = self._parse_span(span.group("start"), span.group("end"), reference)
            if matched:
                return matched

        week = self._parse_week(text, reference.date())
        if week:
            return week

        return self._parse_point(text, reference)

    def _parse_span(self, start_text: str, end_text: str, reference: datetime) -> Optional[GrammarMatch]:
        start = self._parse_point(start_text, reference)
        if start is None:
            return None
        # Anchor the closing phrase on the opening date ("from friday to monday").
        end_reference = datetime.combine(start.day, reference.timetz())
        end = self._parse_point(end_text, end_reference)
        if end is None or end.day <= start.day:
            return GrammarMatch(day=start.day)
        return GrammarMatch(day=start.day, end_day=end.day)

    @staticmethod
    def _parse_week(text: str, today: date) -> Optional[GrammarMatch]:
        weekday = today.weekday()

        m = _NEXT_DAYS_RE.search(text)
        if m:
            raw = m.group("count")
            count = int(raw) if raw.isdigit() else _WORD_COUNTS[" ".join(raw.split())]
            return GrammarMatch(day=today, end_day=today + timedelta(days=max(count, 1)))

        if _NEXT_WEEKEND_RE.search(text) or _WEEKEND_RE.search(text):
            if weekday == 6:
                saturday = today - timedelta(days=1)
            else:
                saturday = today + timedelta(days=5 - weekday)
            if _NEXT_WEEKEND_RE.search(text):
                saturday += timedelta(days=7)
            start = max(saturday, today)
            return GrammarMatch(day=start, end_day=saturday + timedelta(days=1))

        if _THIS_WEEK_RE.search(text):
            return GrammarMatch(day=today, end_day=today + timedelta(days=6 - weekday))

        if _NEXT_WEEK_RE.search(text):
            monday = today + timedelta(days=7 - weekday)
            return GrammarMatch(day=monday, end_day=monday + timedelta(days=6))

        return None

    def _parse_point(self, text: str, reference: datetime) -> Optional[GrammarMatch]:
        has_period = detect_time_period(text) is not None
        rest = _clean(_spell_business_hours(text))

        parsed = self._parse_datetime(rest, reference) if rest else None
        if parsed is None:
            # A bare period phrase ("this afternoon") means today.
            return GrammarMatch(day=reference.date()) if has_period else None

        moment, certain = parsed
        day = moment.date()
        clock = moment.time().replace(second=0, microsecond=0) if certain else None
        today = reference.date()

        # "wednesday" said on a Wednesday means today unless that time is already gone.
        if (
            day == today + timedelta(days=7)
            and _named_weekday(rest) == today.weekday()
            and not _NEXT_WEEKDAY_RE.search(text)
            and (clock is None or clock >= reference.time())
        ):
            day = today

        # A clock time already passed today rolls forward.
        if clock is not None and day == today and clock < reference.time().replace(second=0, microsecond=0):
            day += timedelta(days=1)

        return GrammarMatch(day=day, clock=clock)

    def _parse_datetime(self, text: str, reference: datetime) -> Optional[tuple[datetime, bool]]:
        """Local datetime for ``text`` and whether it carries a definite clock time."""
        settings = {
            "RELATIVE_BASE": reference.replace(tzinfo=None),
            "PREFER_DATES_FROM": "future",
            "RETURN_AS_TIMEZONE_AWARE": False,
            "RETURN_TIME_AS_PERIOD": True,
            # The reference is already local wall time.
            "TIMEZONE": "UTC",
        }
        data = DateDataParser(languages=self.languages, settings=settings).get_date_data(text)
        if data and data.date_obj:
            certain = data.period == "time" or bool(_SUB_DAY_OFFSET_RE.search(text))
            return data.date_obj, certain

        found = search_dates(text, languages=self.languages, settings=settings)
        if not found:
            return None
        return found[0][1], False


DEFAULT_GRAMMAR = DateparserGrammar()


# --- Formatting ---


def format_date_label(day: date) -> str:
    """'Thursday, October 15'."""
    return f"{day:%A, %B} {day.day}"


def format_time_label(moment: datetime) -> str:
    """'2:00 PM'."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def format_for_voice(instant: datetime, timezone: Optional[str] = None) -> str:
    """'Thursday, October 15 at 2:00 PM' in ``timezone`` (or the instant's own zone)."""
    local = instant.astimezone(ZoneInfo(timezone)) if timezone else instant
    return f"{format_date_label(local.date())} at {format_time_label(local)}"


# --- Parsing ---


def _localize(reference: Optional[datetime], tz: ZoneInfo) -> datetime:
    if reference is None:
        return datetime.now(tz)
    if reference.tzinfo is None:
        return reference.replace(tzinfo=tz)
    return reference.astimezone(tz)


def _at(day: date, hour: int, tz: ZoneInfo) -> datetime:
    # ZoneInfo picks the offset in force on that day.
    return datetime.combine(day, time(hour, 0), tzinfo=tz)


def business_day_window(day: date, timezone: str) -> tuple[datetime, datetime]:
    """Business-hours bounds of ``day`` in ``timezone``."""
    tz = ZoneInfo(timezone)
    return _at(day, BUSINESS_HOURS.start_hour, tz), _at(day, BUSINESS_HOURS.end_hour, tz)


def parse(
    phrase: str,
    timezone: str,
    reference: Optional[datetime] = None,
    *,
    grammar: Optional[DateGrammar] = None,
    default_range_days: int = DEFAULT_RANGE_DAYS,
) -> ParsedDateTime:
    """
    Parse a spoken date/time phrase in ``timezone``.

    An explicit clock time without a period word ("tomorrow at 2pm") yields an
    exact instant. Anything else yields a window: a period word bounds it to
    that period, otherwise business hours (8 AM-9 PM). Unrecognised input
    falls back to the next ``default_range_days`` days instead of failing.
    """
    tz = ZoneInfo(timezone)
    now = _localize(reference, tz)
    grammar = grammar or DEFAULT_GRAMMAR
    period = detect_time_period(phrase)

    try:
        match = grammar.parse(phrase, now)
    except (ValueError, OverflowError) as e:
        LOGGER.warning("date_parser.grammar_error", phrase=phrase, error=str(e))
        match = None

    if match is None:
        start = _at(now.date(), BUSINESS_HOURS.start_hour, tz)
        end = _at(now.date() + timedelta(days=default_range_days), BUSINESS_HOURS.end_hour, tz)
        LOGGER.debug("date_parser.default_range", phrase=phrase, timezone=timezone)
        return ParsedDateTime(
            is_range=True,
            range_start=start,
            range_end=end,
            human_readable=f"the next {default_range_days} days",
        )

    if match.certain_hour and period is None:
        start_at = datetime.combine(match.day, match.clock, tzinfo=tz)
        return ParsedDateTime(
            start_at=start_at,
            is_range=False,
            range_start=start_at,
            range_end=start_at,
            human_readable=format_for_voice(start_at),
        )

    bounds = period or BUSINESS_HOURS
    range_start = _at(match.day, bounds.start_hour, tz)
    range_end = _at(match.day, bounds.end_hour, tz)
    label = format_date_label(match.day)
    if period:
        label = f"{label} {period.name}"

    if match.end_day and match.end_day > match.day:
        range_end = _at(match.end_day, BUSINESS_HOURS.end_hour, tz)
        label = f"{label} through {format_date_label(match.end_day)}"

    return ParsedDateTime(
        is_range=True,
        range_start=range_start,
        range_end=range_end,
        human_readable=label,
    )


def parse_exact(
    phrase: str,
    timezone: str,
    reference: Optional[datetime] = None,
    *,
    grammar: Optional[DateGrammar] = None,
) -> Optional[datetime]:
    """
    Parse a booking time. Returns None when the phrase only names a window,
    which is the caller's cue to ask for a specific time.
    """
    result = parse(phrase, timezone, reference, grammar=grammar)
    if result.is_range:
        return None
    return result.start_at
