# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          TRACKER DIFF ENGINE                               ║
# ║    Compares two snapshots of the same source and reports the minimal      ║
# ║    set of added, removed and modified events.                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
diff.py: Snapshot comparison.

Matching is by uid only, so reordering or re-serializing a feed never
produces changes. Output order is fixed: removals, then additions, then
modifications, each ascending by start time (uid breaks ties).

Known limitation: two distinct events without a feed UID that share the
same start and summary derive the same identity and collapse into one.
"""
from datetime import datetime
from typing import FrozenSet, List, Optional

from tracker.models import TRACKED_FIELDS, Added, Change, Event, Modified, Removed, Snapshot


def _seconds(value: datetime) -> int:
    return int(value.timestamp())

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ FIELD COMPARISON                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- changed_fields ---
# Determines which tracked fields differ between two versions of an event.
# Timestamps are compared at whole-second precision.
# Args:
#     old: The previously stored event.
#     new: The freshly parsed event with the same uid.
# Returns: A frozenset drawn from {"start", "end", "summary", "location"}.
def changed_fields(old: Event, new: Event) -> FrozenSet[str]:
    changed = set()
    if _seconds(old.start) != _seconds(new.start):
        changed.add("start")
    if _seconds(old.end) != _seconds(new.end):
        changed.add("end")
    if old.summary != new.summary:
        changed.add("summary")
    if (old.location or None) != (new.location or None):
        changed.add("location")
    return frozenset(f for f in TRACKED_FIELDS if f in changed)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SNAPSHOT DIFF                                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _order(change: Change):
    return (change.sort_time, change.uid)


# --- diff ---
# Computes the changes turning `old` into `new`.
# With no previous snapshot every event is reported as Added; whether that
# first diff is shown to anyone is the caller's decision.
# Args:
#     old: The last persisted snapshot, or None on a source's first poll.
#     new: The snapshot parsed on this tick.
# Returns: Removed changes, then Added, then Modified, each in start order.
def diff(old: Optional[Snapshot], new: Snapshot) -> List[Change]:
    if old is None:
        return sorted((Added(event) for event in new), key=_order)

    old_uids = old.uids()
    new_uids = new.uids()

    removed = [Removed(old.get(uid)) for uid in old_uids - new_uids]
    added = [Added(new.get(uid)) for uid in new_uids - old_uids]
    modified = []
    for uid in old_uids & new_uids:
        before, after = old.get(uid), new.get(uid)
        fields = changed_fields(before, after)
        if fields:
            modified.append(Modified(before, after, fields))

    return sorted(removed, key=_order) + sorted(added, key=_order) + sorted(modified, key=_order)
