"""
Test suite for the calendar parser.
Covers normalization of times, identities and the handling of bad records.
"""
from datetime import datetime, timezone

import pytest

from tracker.errors import EmptyCalendarError, ParseError
from tracker.fingerprint import compute_event_fingerprint
from tracker.models import DERIVED, EXPLICIT
from tracker.parser import parse


def ics(*events: str, extra: str = "") -> bytes:
    body = "\r\n".join(events)
    text = (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//icswatch tests//EN\r\n"
        f"{extra}"
        f"{body}\r\n"
        "END:VCALENDAR\r\n"
    )
    return text.encode("utf-8")


def vevent(*lines: str) -> str:
    return "\r\n".join(["BEGIN:VEVENT", *lines, "END:VEVENT"])


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_basic_event_is_normalized_to_utc():
    """A UTC event keeps its uid, summary, location and times."""
    result = parse(ics(vevent(
        "UID:abc@example.org",
        "SUMMARY:  Team   sync ",
        "LOCATION:Room 1",
        "DTSTART:20250110T090000Z",
        "DTEND:20250110T100000Z",
    )))
    assert result.warnings == []
    event = result.snapshot.get("abc@example.org")
    assert event is not None, f"Expected explicit uid in snapshot: {result.snapshot.uids()}"
    assert event.identity.kind == EXPLICIT
    assert event.summary == "Team sync"
    assert event.location == "Room 1"
    assert event.start == utc(2025, 1, 10, 9)
    assert event.end == utc(2025, 1, 10, 10)
    assert event.timezone is None


def test_all_day_event_without_end_spans_one_day():
    """Date-only values become 00:00 UTC with an exclusive end one day later."""
    result = parse(ics(vevent(
        "UID:holiday",
        "SUMMARY:Holiday",
        "DTSTART;VALUE=DATE:20250110",
    )))
    event = result.snapshot.get("holiday")
    assert event.all_day is True
    assert event.start == utc(2025, 1, 10)
    assert event.end == utc(2025, 1, 11)
    assert event.timezone is None


def test_all_day_event_with_end_keeps_exclusive_end():
    result = parse(ics(vevent(
        "UID:trip",
        "SUMMARY:Trip",
        "DTSTART;VALUE=DATE:20250110",
        "DTEND;VALUE=DATE:20250113",
    )))
    event = result.snapshot.get("trip")
    assert event.start == utc(2025, 1, 10)
    assert event.end == utc(2025, 1, 13)


def test_iana_timezone_is_resolved():
    """A TZID naming an IANA zone converts to UTC with the right DST offset."""
    result = parse(ics(vevent(
        "UID:paris",
        "SUMMARY:Lecture",
        "DTSTART;TZID=Europe/Paris:20250710T100000",
        "DTEND;TZID=Europe/Paris:20250710T120000",
    )))
    event = result.snapshot.get("paris")
    assert event.start == utc(2025, 7, 10, 8)
    assert event.end == utc(2025, 7, 10, 10)
    assert event.timezone == "Europe/Paris"
    assert event.display_start().hour == 10


def test_declared_vtimezone_is_resolved():
    """A custom TZID is resolved through the calendar's own VTIMEZONE block."""
    vtimezone = (
        "BEGIN:VTIMEZONE\r\n"
        "TZID:Custom/Plus3\r\n"
        "BEGIN:STANDARD\r\n"
        "DTSTART:19700101T000000\r\n"
        "TZOFFSETFROM:+0300\r\n"
        "TZOFFSETTO:+0300\r\n"
        "TZNAME:P3\r\n"
        "END:STANDARD\r\n"
        "END:VTIMEZONE\r\n"
    )
    result = parse(ics(vevent(
        "UID:custom",
        "SUMMARY:Standup",
        "DTSTART;TZID=Custom/Plus3:20250110T120000",
        "DTEND;TZID=Custom/Plus3:20250110T123000",
    ), extra=vtimezone))
    event = result.snapshot.get("custom")
    assert event.start == utc(2025, 1, 10, 9), f"Unexpected UTC start: {event.start}"
    assert event.end == utc(2025, 1, 10, 9, 30)
    assert event.timezone == "Custom/Plus3"
    assert event.utc_offset == 3 * 3600
    assert event.display_start().hour == 12, "A non-IANA zone displays at its original offset"


def test_floating_time_is_treated_as_utc():
    result = parse(ics(vevent(
        "UID:floating",
        "SUMMARY:Floating",
        "DTSTART:20250110T120000",
        "DTEND:20250110T130000",
    )))
    event = result.snapshot.get("floating")
    assert event.start == utc(2025, 1, 10, 12)
    assert event.end == utc(2025, 1, 10, 13)


def test_missing_end_uses_duration_or_start():
    result = parse(ics(
        vevent("UID:dur", "SUMMARY:With duration", "DTSTART:20250110T120000Z", "DURATION:PT45M"),
        vevent("UID:point", "SUMMARY:Instant", "DTSTART:20250110T120000Z"),
    ))
    assert result.snapshot.get("dur").end == utc(2025, 1, 10, 12, 45)
    assert result.snapshot.get("point").end == utc(2025, 1, 10, 12)


def test_derived_identity_is_stable_across_parses():
    """Events without UID get the same derived identity from unchanged data."""
    raw = ics(vevent("SUMMARY:No uid here", "DTSTART:20250110T120000Z", "DTEND:20250110T130000Z"))
    first = parse(raw).snapshot
    second = parse(raw).snapshot
    assert first.uids() == second.uids()
    (event,) = first.events()
    assert event.identity.kind == DERIVED
    assert not event.identity.is_trustworthy
    assert event.identity.value == compute_event_fingerprint(utc(2025, 1, 10, 12), "No uid here")
    assert event.uid.startswith("derived:")


def test_recurrence_id_instances_are_distinct_events():
    result = parse(ics(
        vevent("UID:series", "SUMMARY:Weekly", "DTSTART:20250106T090000Z", "DTEND:20250106T100000Z",
               "RRULE:FREQ=WEEKLY;COUNT=4"),
        vevent("UID:series", "RECURRENCE-ID:20250113T090000Z", "SUMMARY:Weekly (moved)",
               "DTSTART:20250113T110000Z", "DTEND:20250113T120000Z"),
    ))
    assert len(result.snapshot) == 2
    assert "series" in result.snapshot
    assert "series#2025-01-13T09:00:00+00:00" in result.snapshot
    master = result.snapshot.get("series")
    assert master.recurrence_rule is not None and "FREQ=WEEKLY" in master.recurrence_rule


def test_malformed_event_is_skipped_with_warning():
    """One broken record must not take the whole feed down."""
    result = parse(ics(
        vevent("UID:good", "SUMMARY:Fine", "DTSTART:20250110T120000Z", "DTEND:20250110T130000Z"),
        vevent("UID:nostart", "SUMMARY:Broken"),
        vevent("UID:backwards", "SUMMARY:Backwards", "DTSTART:20250110T120000Z", "DTEND:20250110T110000Z"),
    ))
    assert result.snapshot.uids() == frozenset({"good"})
    assert len(result.warnings) == 2, f"Expected two warnings, got {result.warnings}"
    assert any("nostart" in w for w in result.warnings)
    assert any("backwards" in w for w in result.warnings)


def test_duplicate_uid_last_write_wins():
    result = parse(ics(
        vevent("UID:dup", "SUMMARY:First", "DTSTART:20250110T120000Z"),
        vevent("UID:dup", "SUMMARY:Second", "DTSTART:20250111T120000Z"),
    ))
    assert len(result.snapshot) == 1
    assert result.snapshot.get("dup").summary == "Second"
    assert any("duplicate uid dup" in w for w in result.warnings)


def test_cancelled_event_is_skipped():
    result = parse(ics(
        vevent("UID:live", "SUMMARY:Live", "DTSTART:20250110T120000Z"),
        vevent("UID:gone", "SUMMARY:Gone", "STATUS:CANCELLED", "DTSTART:20250111T120000Z"),
    ))
    assert result.snapshot.uids() == frozenset({"live"})


def test_empty_calendar_raises():
    with pytest.raises(EmptyCalendarError):
        parse(ics())


def test_calendar_of_only_bad_records_raises_with_warnings():
    with pytest.raises(EmptyCalendarError) as excinfo:
        parse(ics(vevent("UID:nostart", "SUMMARY:Broken")))
    assert excinfo.value.warnings, "The skipped record should be reported"


def test_garbage_input_is_a_parse_error():
    with pytest.raises(ParseError):
        parse(b"<html><body>Not a calendar</body></html>")


def test_description_is_kept_without_parenthesised_fragments():
    """DESCRIPTION is cleaned for display: bracketed notes dropped, line breaks flattened."""
    result = parse(ics(
        vevent(
            "UID:lecture",
            "SUMMARY:Lecture",
            "DESCRIPTION:Chapter 4 (room B12)\\nbring   your laptop",
            "DTSTART:20250110T090000Z",
            "DTEND:20250110T100000Z",
        ),
        vevent(
            "UID:internal",
            "SUMMARY:Internal",
            "DESCRIPTION:(generated 2025-01-01)",
            "DTSTART:20250111T090000Z",
            "DTEND:20250111T100000Z",
        ),
    ))
    assert result.snapshot.get("lecture").description == "Chapter 4 bring your laptop"
    assert result.snapshot.get("internal").description is None, "Nothing left after cleaning"


def test_unknown_tzid_is_read_as_utc_with_warning():
    """A TZID with no VTIMEZONE block and no IANA match is flagged instead of silently becoming UTC."""
    result = parse(ics(vevent(
        "UID:nowhere",
        "SUMMARY:Somewhere",
        "DTSTART;TZID=Nowhere/Land:20250110T120000",
        "DTEND;TZID=Nowhere/Land:20250110T130000",
    )))
    event = result.snapshot.get("nowhere")
    assert event.start == utc(2025, 1, 10, 12)
    assert len(result.warnings) == 1
    assert "Nowhere/Land" in result.warnings[0]


def test_known_tzid_produces_no_warning():
    result = parse(ics(vevent(
        "UID:paris",
        "SUMMARY:Paris",
        "DTSTART;TZID=Europe/Paris:20250110T120000",
        "DTEND;TZID=Europe/Paris:20250110T130000",
    )))
    assert result.warnings == []
