"""Tests for natural-language date/time parsing."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from voice_booking.date_parser import (
    GrammarMatch,
    business_day_window,
    detect_time_period,
    format_for_voice,
    format_time_label,
    parse,
    parse_exact,
)

TZ = "America/Los_Angeles"
LA = ZoneInfo(TZ)


class FixedGrammar:
    """Grammar stub returning a canned match."""

    def __init__(self, match):
        self.match = match
        self.calls = []

    def parse(self, text, reference):
        self.calls.append((text, reference))
        return self.match


def test_tomorrow_at_2pm_is_exact(reference):
    result = parse("tomorrow at 2pm", TZ, reference)
    assert result.is_range is False
    assert result.start_at == datetime(2026, 10, 15, 14, 0, tzinfo=LA)
    assert result.start_at.isoformat() == "2026-10-15T14:00:00-07:00"
    assert result.range_start == result.range_end == result.start_at
    assert result.human_readable == "Thursday, October 15 at 2:00 PM"


def test_exact_time_uses_seasonal_offset():
    winter = datetime(2026, 1, 14, 9, 0, tzinfo=LA)
    result = parse("tomorrow at 2pm", TZ, winter)
    assert result.start_at.isoformat() == "2026-01-15T14:00:00-08:00"


def test_minutes_and_dotted_meridiem(reference):
    assert parse_exact("tomorrow at 10:30am", TZ, reference) == datetime(2026, 10, 15, 10, 30, tzinfo=LA)
    assert parse_exact("tomorrow at 4 p.m.", TZ, reference) == datetime(2026, 10, 15, 16, 0, tzinfo=LA)


def test_bare_hour_reads_as_business_time(reference):
    assert parse_exact("at 3", TZ, reference) == datetime(2026, 10, 14, 15, 0, tzinfo=LA)
    assert parse_exact("tomorrow at noon", TZ, reference) == datetime(2026, 10, 15, 12, 0, tzinfo=LA)


def test_time_only_rolls_forward_when_past():
    afternoon = datetime(2026, 10, 14, 16, 0, tzinfo=LA)
    assert parse_exact("2pm", TZ, afternoon) == datetime(2026, 10, 15, 14, 0, tzinfo=LA)


def test_time_only_later_today(reference):
    assert parse_exact("2pm", TZ, reference) == datetime(2026, 10, 14, 14, 0, tzinfo=LA)


def test_date_only_uses_business_hours(reference):
    result = parse("tomorrow", TZ, reference)
    assert result.is_range is True
    assert result.start_at is None
    assert result.range_start == datetime(2026, 10, 15, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 15, 21, 0, tzinfo=LA)
    assert result.human_readable == "Thursday, October 15"


def test_time_period_bounds_range(reference):
    result = parse("tomorrow afternoon", TZ, reference)
    assert result.is_range is True
    assert result.range_start == datetime(2026, 10, 15, 12, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 15, 17, 0, tzinfo=LA)
    assert result.human_readable == "Thursday, October 15 afternoon"


def test_period_keyword_overrides_clock_time(reference):
    result = parse("tomorrow evening at 7pm", TZ, reference)
    assert result.is_range is True
    assert result.range_start == datetime(2026, 10, 15, 17, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 15, 21, 0, tzinfo=LA)


def test_bare_period_means_today(reference):
    result = parse("this afternoon", TZ, reference)
    assert result.range_start == datetime(2026, 10, 14, 12, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 14, 17, 0, tzinfo=LA)


def test_weekday_resolves_forward(reference):
    result = parse("friday", TZ, reference)
    assert result.range_start == datetime(2026, 10, 16, 8, 0, tzinfo=LA)


@pytest.mark.parametrize("phrase", ["wednesday", "this wednesday", "Wednesday afternoon"])
def test_same_weekday_means_today(reference, phrase):
    result = parse(phrase, TZ, reference)
    assert result.range_start.date() == date(2026, 10, 14)


def test_same_weekday_with_clock(reference):
    assert parse_exact("wednesday at 3pm", TZ, reference) == datetime(2026, 10, 14, 15, 0, tzinfo=LA)
    # 8 AM has already gone by, so the next Wednesday is meant.
    assert parse_exact("wednesday at 8am", TZ, reference) == datetime(2026, 10, 21, 8, 0, tzinfo=LA)


def test_next_same_weekday_skips_a_week(reference):
    result = parse("next wednesday", TZ, reference)
    assert result.range_start.date() == date(2026, 10, 21)


@pytest.mark.parametrize("phrase", ["in 2 hours", "in two hours"])
def test_relative_hours_are_exact(reference, phrase):
    result = parse(phrase, TZ, reference)
    assert result.is_range is False
    assert result.start_at.isoformat() == "2026-10-14T11:00:00-07:00"


def test_relative_days_keep_business_hours(reference):
    result = parse("in 3 days", TZ, reference)
    assert result.is_range is True
    assert result.range_start == datetime(2026, 10, 17, 8, 0, tzinfo=LA)


def test_next_weekday(reference):
    result = parse("next Tuesday", TZ, reference)
    assert result.range_start.date() == date(2026, 10, 20)
    assert result.human_readable == "Tuesday, October 20"


def test_this_week_extends_range_end(reference):
    result = parse("sometime this week", TZ, reference)
    assert result.range_start == datetime(2026, 10, 14, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 18, 21, 0, tzinfo=LA)
    assert result.human_readable == "Wednesday, October 14 through Sunday, October 18"


def test_next_week(reference):
    result = parse("next week", TZ, reference)
    assert result.range_start == datetime(2026, 10, 19, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 25, 21, 0, tzinfo=LA)


def test_this_weekend(reference):
    result = parse("this weekend", TZ, reference)
    assert result.range_start.date() == date(2026, 10, 17)
    assert result.range_end.date() == date(2026, 10, 18)


def test_next_few_days(reference):
    result = parse("in the next 3 days", TZ, reference)
    assert result.range_start.date() == date(2026, 10, 14)
    assert result.range_end == datetime(2026, 10, 17, 21, 0, tzinfo=LA)


def test_explicit_span(reference):
    result = parse("from friday to monday", TZ, reference)
    assert result.is_range is True
    assert result.range_start == datetime(2026, 10, 16, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 19, 21, 0, tzinfo=LA)


def test_unrecognised_phrase_falls_back_to_default_window(reference):
    result = parse("whenever", TZ, reference, grammar=FixedGrammar(None))
    assert result.is_range is True
    assert result.range_start == datetime(2026, 10, 14, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 21, 21, 0, tzinfo=LA)
    assert result.human_readable == "the next 7 days"


def test_default_window_length_is_configurable(reference):
    result = parse("whenever", TZ, reference, grammar=FixedGrammar(None), default_range_days=3)
    assert result.range_end == datetime(2026, 10, 17, 21, 0, tzinfo=LA)
    assert result.human_readable == "the next 3 days"


def test_grammar_is_swappable(reference):
    grammar = FixedGrammar(GrammarMatch(day=date(2026, 11, 2), clock=time(9, 30)))
    result = parse("first thing on the second", TZ, reference, grammar=grammar)
    assert result.is_range is False
    # After the DST change on Nov 1.
    assert result.start_at.isoformat() == "2026-11-02T09:30:00-08:00"
    assert grammar.calls == [("first thing on the second", reference)]


def test_grammar_end_date_extends_range(reference):
    grammar = FixedGrammar(GrammarMatch(day=date(2026, 10, 15), end_day=date(2026, 10, 20)))
    result = parse("thursday morning until tuesday", TZ, reference, grammar=grammar)
    assert result.range_start == datetime(2026, 10, 15, 8, 0, tzinfo=LA)
    assert result.range_end == datetime(2026, 10, 20, 21, 0, tzinfo=LA)


def test_grammar_errors_degrade_to_default(reference):
    class Broken:
        def parse(self, text, ref):
            raise ValueError("bad input")

    result = parse("tomorrow", TZ, reference, grammar=Broken())
    assert result.human_readable == "the next 7 days"


def test_parsing_is_idempotent(reference):
    first = parse("thursday afternoon", TZ, reference)
    second = parse("thursday afternoon", TZ, reference)
    assert first == second


def test_naive_reference_is_local():
    naive = datetime(2026, 10, 14, 9, 0)
    result = parse("tomorrow at 2pm", TZ, naive)
    assert result.start_at == datetime(2026, 10, 15, 14, 0, tzinfo=LA)


def test_reference_in_other_zone_is_converted():
    # 2026-10-15 03:00 UTC is still Oct 14 in Los Angeles.
    utc_reference = datetime(2026, 10, 15, 3, 0, tzinfo=timezone.utc)
    result = parse("tomorrow", TZ, utc_reference)
    assert result.range_start.date() == date(2026, 10, 15)


def test_parse_exact_returns_none_for_ranges(reference):
    assert parse_exact("tomorrow", TZ, reference) is None
    assert parse_exact("tomorrow morning", TZ, reference) is None


@pytest.mark.parametrize(
    "phrase,expected",
    [
        ("thursday morning", "morning"),
        ("Tomorrow Afternoon", "afternoon"),
        ("friday evening", "evening"),
        ("tonight", "night"),
        ("at midnight", None),
        ("tomorrow at 2pm", None),
    ],
)
def test_detect_time_period(phrase, expected):
    period = detect_time_period(phrase)
    assert (period.name if period else None) == expected


def test_format_for_voice_converts_zone():
    instant = datetime(2026, 10, 15, 21, 0, tzinfo=timezone.utc)
    assert format_for_voice(instant, TZ) == "Thursday, October 15 at 2:00 PM"


def test_format_time_label_edges():
    assert format_time_label(datetime(2026, 10, 15, 0, 5)) == "12:05 AM"
    assert format_time_label(datetime(2026, 10, 15, 12, 0)) == "12:00 PM"


def test_business_day_window():
    start, end = business_day_window(date(2026, 10, 15), TZ)
    assert start.isoformat() == "2026-10-15T08:00:00-07:00"
    assert end.isoformat() == "2026-10-15T21:00:00-07:00"
