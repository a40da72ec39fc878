# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          TRACKER DATA MODEL                                ║
# ║    Normalized events, per-source snapshots and the change records the      ║
# ║    diff engine produces.                                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
models.py: Event, Snapshot and Change types.

All timestamps held by an Event are timezone-aware UTC datetimes truncated
to whole seconds; the original zone name is kept only for display.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import ClassVar, Dict, FrozenSet, Iterable, Iterator, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

EXPLICIT = "explicit"
DERIVED = "derived"

# Fields compared by the diff engine, in display order
TRACKED_FIELDS = ("start", "end", "summary", "location")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TIME HELPERS                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- to_utc ---
# Normalizes a datetime to an aware UTC value at whole-second precision.
# Naive datetimes are treated as already being in UTC.
# Args:
#     value: The datetime to normalize.
# Returns: The UTC datetime with microseconds dropped.
def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _format_ts(value: datetime) -> str:
    return to_utc(value).isoformat()


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without offset: {value}")
    return to_utc(parsed)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ IDENTITY                                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class Identity:
    """Key matching an event across snapshots.

    Explicit identities come from the feed's own UID; derived ones are a
    hash of the start time and summary and only as good as that pair.
    """

    kind: str
    value: str

    def __post_init__(self):
        if self.kind not in (EXPLICIT, DERIVED):
            raise ValueError(f"unknown identity kind: {self.kind!r}")
        if not self.value:
            raise ValueError("identity value must not be empty")

    @classmethod
    def explicit(cls, uid: str) -> "Identity":
        return cls(EXPLICIT, uid)

    @classmethod
    def derived(cls, digest: str) -> "Identity":
        return cls(DERIVED, digest)

    @property
    def is_trustworthy(self) -> bool:
        return self.kind == EXPLICIT

    @property
    def key(self) -> str:
        if self.kind == DERIVED:
            return f"derived:{self.value}"
        return self.value

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ EVENT                                                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class Event:
    identity: Identity
    summary: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    all_day: bool = False
    timezone: Optional[str] = None
    recurrence_rule: Optional[str] = None
    # Display only; never compared by the diff engine
    description: Optional[str] = None
    # Offset of the original start, in seconds east of UTC
    utc_offset: Optional[int] = None

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))

    @property
    def uid(self) -> str:
        return self.identity.key

    # --- display_zone ---
    # Resolves the zone the feed originally expressed this event in.
    # Zone names that are not IANA keys (Windows names, custom VTIMEZONE ids)
    # fall back to the fixed offset recorded at parse time.
    def display_zone(self):
        if self.all_day:
            return timezone.utc
        if self.timezone:
            try:
                return ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                pass
        if self.utc_offset:
            offset = timedelta(seconds=self.utc_offset)
            return timezone(offset, self.timezone) if self.timezone else timezone(offset)
        return timezone.utc

    def display_start(self) -> datetime:
        return self.start.astimezone(self.display_zone())

    def display_end(self) -> datetime:
        return self.end.astimezone(self.display_zone())

    def to_dict(self) -> dict:
        return {
            "uid": self.identity.value,
            "uid_kind": self.identity.kind,
            "summary": self.summary,
            "start": _format_ts(self.start),
            "end": _format_ts(self.end),
            "location": self.location,
            "all_day": self.all_day,
            "timezone": self.timezone,
            "rrule": self.recurrence_rule,
            "description": self.description,
            "utc_offset": self.utc_offset,
        }

    # --- from_dict ---
    # Rebuilds an Event from its persisted form.
    # Raises KeyError, TypeError or ValueError on malformed records.
    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        if not isinstance(data, dict):
            raise TypeError(f"event record must be an object, got {type(data).__name__}")
        summary = data["summary"]
        if not isinstance(summary, str):
            raise TypeError("event summary must be a string")
        return cls(
            identity=Identity(data["uid_kind"], data["uid"]),
            summary=summary,
            start=_parse_ts(data["start"]),
            end=_parse_ts(data["end"]),
            location=data.get("location"),
            all_day=bool(data.get("all_day", False)),
            timezone=data.get("timezone"),
            recurrence_rule=data.get("rrule"),
            description=data.get("description"),
            utc_offset=data.get("utc_offset"),
        )

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SNAPSHOT                                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _chronological(event: Event):
    return (event.start, event.uid)


class Snapshot:
    """Every event of one source at one poll, indexed by uid."""

    __slots__ = ("_events",)

    def __init__(self, events: Optional[Dict[str, Event]] = None):
        self._events: Dict[str, Event] = dict(events or {})

    # --- from_events ---
    # Builds a snapshot from an iterable of events.
    # Duplicate uids resolve last-write-wins.
    @classmethod
    def from_events(cls, events: Iterable[Event]) -> "Snapshot":
        return cls({event.uid: event for event in events})

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(sorted(self._events.values(), key=_chronological))

    def __contains__(self, uid: object) -> bool:
        return uid in self._events

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return self._events == other._events

    def __repr__(self) -> str:
        return f"Snapshot({len(self._events)} events)"

    def get(self, uid: str) -> Optional[Event]:
        return self._events.get(uid)

    def uids(self) -> FrozenSet[str]:
        return frozenset(self._events)

    def events(self) -> List[Event]:
        return list(self)

    # --- events_between ---
    # Returns events starting in [start, end), ascending by start time.
    # Used to render agenda summaries of the stored schedule.
    def events_between(self, start: datetime, end: datetime) -> List[Event]:
        lower, upper = to_utc(start), to_utc(end)
        return [event for event in self if lower <= event.start < upper]

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CHANGES                                                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class Added:
    event: Event
    kind: ClassVar[str] = "added"

    @property
    def uid(self) -> str:
        return self.event.uid

    @property
    def sort_time(self) -> datetime:
        return self.event.start


@dataclass(frozen=True)
class Removed:
    event: Event
    kind: ClassVar[str] = "removed"

    @property
    def uid(self) -> str:
        return self.event.uid

    @property
    def sort_time(self) -> datetime:
        return self.event.start


@dataclass(frozen=True)
class Modified:
    old: Event
    new: Event
    changed_fields: FrozenSet[str]
    kind: ClassVar[str] = "modified"

    @property
    def uid(self) -> str:
        return self.new.uid

    @property
    def sort_time(self) -> datetime:
        return self.new.start

    @property
    def event(self) -> Event:
        return self.new


Change = Union[Added, Removed, Modified]
