# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        TRACKER CALENDAR PARSER                             ║
# ║    Turns raw ICS bytes into a normalized Snapshot, skipping malformed      ║
# ║    records instead of failing the whole feed.                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
parser.py: ICS -> Snapshot normalization.

The parser has no side effects: problems with individual records are
returned as warning strings next to the snapshot for the caller to log.
"""
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from icalendar import Calendar

from tracker.errors import EmptyCalendarError, ParseError
from tracker.fingerprint import clean_text, derive_identity
from tracker.models import Event, Identity, Snapshot, to_utc


@dataclass
class ParseResult:
    snapshot: Snapshot
    warnings: List[str] = field(default_factory=list)


class MalformedEvent(ValueError):
    """A single VEVENT cannot be normalized."""


# Parenthesised fragments (room codes, internal ids) are dropped from descriptions
_DESCRIPTION_NOISE = re.compile(r"\(.*\)")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TIMEZONE RESOLUTION                                                       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class _DeclaredZones:
    """Lazily converts the calendar's VTIMEZONE blocks into tzinfo objects."""

    def __init__(self, calendar: Calendar):
        self._components = {}
        self._resolved = {}
        # TZIDs referenced by a time but neither declared nor known
        self.unresolved = set()
        for component in calendar.walk("VTIMEZONE"):
            tzid = component.get("TZID")
            if tzid:
                self._components[str(tzid)] = component

    def get(self, tzid: str):
        if tzid in self._resolved:
            return self._resolved[tzid]
        component = self._components.get(tzid)
        tzinfo = None
        if component is not None:
            try:
                tzinfo = component.to_tz()
            except Exception:
                # An unusable declaration leaves the value floating (UTC)
                tzinfo = None
        self._resolved[tzid] = tzinfo
        return tzinfo


def _zone_name(value: datetime, tzid: Optional[str]) -> Optional[str]:
    if tzid:
        return tzid
    tzinfo = value.tzinfo
    if tzinfo is None:
        return None
    if value.utcoffset() == timedelta(0) and str(tzinfo).upper() in ("UTC", "Z"):
        return None
    return getattr(tzinfo, "key", None) or getattr(tzinfo, "zone", None)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ PROPERTY HELPERS                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _read_time(component, name: str, zones: _DeclaredZones):
    """Returns (value, tzid) for a DTSTART/DTEND-like property, or (None, None)."""
    prop = component.get(name)
    if prop is None:
        return None, None
    if isinstance(prop, list):
        prop = prop[0]
    value = getattr(prop, "dt", None)
    if not isinstance(value, (date, datetime)):
        raise MalformedEvent(f"{name} has an unreadable value")
    params = getattr(prop, "params", {}) or {}
    tzid = params.get("TZID")
    tzid = str(tzid) if tzid else None
    if isinstance(value, datetime) and value.tzinfo is None and tzid:
        declared = zones.get(tzid)
        if declared is not None:
            value = value.replace(tzinfo=declared)
        else:
            zones.unresolved.add(tzid)
    return value, tzid


def _as_utc(value) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0]
    text = str(value).strip()
    return text or None


def _description(component) -> Optional[str]:
    text = _text(component, "DESCRIPTION")
    if not text:
        return None
    # Double-escaped feeds leave a literal backslash-n behind
    return clean_text(_DESCRIPTION_NOISE.sub("", text).replace("\\n", " ")) or None


def _utc_offset(value) -> Optional[int]:
    if not isinstance(value, datetime) or value.tzinfo is None:
        return None
    offset = value.utcoffset()
    return int(offset.total_seconds()) if offset else None


def _recurrence_rule(component) -> Optional[str]:
    rule = component.get("RRULE")
    if rule is None:
        return None
    if isinstance(rule, list):
        rule = rule[0]
    raw = rule.to_ical()
    return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)


def _identity(component, start: datetime, summary: str, zones: _DeclaredZones) -> Identity:
    uid = _text(component, "UID")
    if not uid:
        return derive_identity(start, summary)
    recurrence_id, _ = _read_time(component, "RECURRENCE-ID", zones)
    if recurrence_id is not None:
        # Source-expanded instances share a UID; each one is its own event
        return Identity.explicit(f"{uid}#{_as_utc(recurrence_id).isoformat()}")
    return Identity.explicit(uid)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ EVENT NORMALIZATION                                                       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- normalize_event ---
# Converts one VEVENT component into an Event.
# Date-only values become an all-day pair at 00:00 UTC; floating times are UTC.
# DESCRIPTION is kept for display with parenthesised fragments removed.
# Args:
#     component: The icalendar VEVENT component.
#     zones: The calendar's declared VTIMEZONE lookup.
# Returns: The normalized Event.
# Raises: MalformedEvent when the record cannot be normalized.
def normalize_event(component, zones: _DeclaredZones) -> Event:
    raw_start, tzid = _read_time(component, "DTSTART", zones)
    if raw_start is None:
        raise MalformedEvent("missing DTSTART")
    all_day = not isinstance(raw_start, datetime)
    start = _as_utc(raw_start)

    raw_end, _ = _read_time(component, "DTEND", zones)
    if raw_end is not None:
        end = _as_utc(raw_end)
    else:
        duration = component.get("DURATION")
        delta = getattr(duration, "dt", None) if duration is not None else None
        if isinstance(delta, timedelta):
            end = start + delta
        elif all_day:
            end = start + timedelta(days=1)
        else:
            end = start
    if end < start:
        raise MalformedEvent(f"ends before it starts ({end.isoformat()} < {start.isoformat()})")

    summary = clean_text(_text(component, "SUMMARY"))
    return Event(
        identity=_identity(component, start, summary, zones),
        summary=summary,
        start=start,
        end=end,
        location=_text(component, "LOCATION"),
        all_day=all_day,
        timezone=None if all_day else _zone_name(raw_start, tzid),
        recurrence_rule=_recurrence_rule(component),
        description=_description(component),
        utc_offset=None if all_day else _utc_offset(raw_start),
    )

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CALENDAR PARSING                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _decode(raw) -> str:
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode("utf-8-sig", errors="replace")


def _describe(component, index: int) -> str:
    uid = _text(component, "UID")
    return f"event #{index}" + (f" (UID {uid})" if uid else "")


# --- parse ---
# Parses raw calendar bytes into a Snapshot.
# Malformed VEVENTs and cancelled events are skipped; duplicate uids resolve
# last-write-wins. Each of these produces a warning string.
# Args:
#     raw: The downloaded ICS bytes (str is accepted as well).
# Returns: A ParseResult holding the snapshot and the warnings.
# Raises: EmptyCalendarError when no valid event could be read.
def parse(raw) -> ParseResult:
    warnings: List[str] = []
    try:
        calendar = Calendar.from_ical(_decode(raw))
    except Exception as e:
        raise ParseError(f"calendar could not be read: {e}") from e

    zones = _DeclaredZones(calendar)
    events: Dict[str, Event] = {}
    for index, component in enumerate(calendar.walk("VEVENT")):
        label = _describe(component, index)
        status = _text(component, "STATUS")
        if status and status.upper() == "CANCELLED":
            warnings.append(f"{label}: cancelled, skipped")
            continue
        try:
            event = normalize_event(component, zones)
        except Exception as e:
            warnings.append(f"{label}: skipped malformed record: {e}")
            continue
        if event.uid in events:
            warnings.append(f"{label}: duplicate uid {event.uid}, keeping the later record")
        events[event.uid] = event

    for tzid in sorted(zones.unresolved):
        warnings.append(f"unknown TZID {tzid!r} (no VTIMEZONE and not an IANA zone), times read as UTC")

    if not events:
        raise EmptyCalendarError(warnings=warnings)
    return ParseResult(Snapshot(events), warnings)

