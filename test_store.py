"""
Test suite for the snapshot store.
Covers round trips, atomic replacement and recovery from unusable records.
"""
import asyncio
import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from tracker.errors import StoreDecodeError, StoreIOError
from tracker.models import Event, Identity, Snapshot
from tracker.store import FORMAT_VERSION, SnapshotStore, decode_snapshot, encode_snapshot

SOURCE = "https://example.org/calendar.ics"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def sample_snapshot() -> Snapshot:
    start = utc(2025, 1, 10, 9)
    return Snapshot.from_events([
        Event(Identity.explicit("a@example.org"), "Lecture", start, start + timedelta(hours=2),
              location="Hall 1", timezone="Europe/Paris", recurrence_rule="FREQ=WEEKLY",
              description="Bring notes", utc_offset=3600),
        Event(Identity.derived("0123456789abcdef0123456789abcdef"), "No uid", start + timedelta(days=1),
              start + timedelta(days=1, hours=1)),
        Event(Identity.explicit("holiday"), "Holiday", utc(2025, 1, 12), utc(2025, 1, 13), all_day=True),
    ])


def test_load_of_unknown_source_is_none(tmp_path):
    store = SnapshotStore(str(tmp_path))
    assert store.load(SOURCE) is None


def test_save_then_load_round_trip(tmp_path):
    store = SnapshotStore(str(tmp_path / "nested" / "snapshots"))
    original = sample_snapshot()
    store.save(SOURCE, original)
    loaded = store.load(SOURCE)
    assert loaded == original, f"Loaded snapshot differs: {loaded.events()}"
    assert loaded.get("derived:0123456789abcdef0123456789abcdef") is not None


def test_record_layout(tmp_path):
    store = SnapshotStore(str(tmp_path))
    store.save(SOURCE, sample_snapshot())
    files = os.listdir(tmp_path)
    assert files == [os.path.basename(store.path_for(SOURCE))], f"Unexpected files: {files}"
    with open(store.path_for(SOURCE), "r", encoding="utf-8") as f:
        record = json.load(f)
    assert record["format_version"] == FORMAT_VERSION
    assert record["source_id"] == SOURCE
    assert len(record["events"]) == 3


def test_sources_do_not_share_records(tmp_path):
    store = SnapshotStore(str(tmp_path))
    store.save(SOURCE, sample_snapshot())
    assert store.path_for(SOURCE) != store.path_for(SOURCE + "?other")
    assert store.load(SOURCE + "?other") is None


def test_crash_before_rename_keeps_previous_snapshot(tmp_path, monkeypatch):
    """A write interrupted before the rename leaves the old record untouched."""
    store = SnapshotStore(str(tmp_path))
    previous = sample_snapshot()
    store.save(SOURCE, previous)

    def failing_replace(src, dst):
        raise OSError("simulated crash")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(StoreIOError):
        store.save(SOURCE, Snapshot())
    monkeypatch.undo()

    assert store.load(SOURCE) == previous
    leftovers = [name for name in os.listdir(tmp_path) if name.endswith(".tmp")]
    assert leftovers == [], f"Temporary files were left behind: {leftovers}"


def test_crash_on_first_save_leaves_no_snapshot(tmp_path, monkeypatch):
    store = SnapshotStore(str(tmp_path))

    def failing_replace(src, dst):
        raise OSError("boom")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(StoreIOError):
        store.save(SOURCE, sample_snapshot())
    monkeypatch.undo()
    assert store.load(SOURCE) is None


def test_orphaned_temp_file_is_ignored(tmp_path):
    """A temp file from a killed process never shadows the real record."""
    store = SnapshotStore(str(tmp_path))
    store.save(SOURCE, sample_snapshot())
    (tmp_path / ".snapshot-orphan.tmp").write_bytes(b"{\"format_version\": 1, \"ev")
    assert store.load(SOURCE) == sample_snapshot()


def test_corrupted_record_is_treated_as_no_state(tmp_path):
    store = SnapshotStore(str(tmp_path))
    with open(store.path_for(SOURCE), "wb") as f:
        f.write(b"not json at all")
    assert store.load(SOURCE) is None


def test_foreign_format_version_is_rejected():
    data = encode_snapshot(SOURCE, sample_snapshot())
    record = json.loads(data)
    record["format_version"] = FORMAT_VERSION + 1
    with pytest.raises(StoreDecodeError):
        decode_snapshot(json.dumps(record).encode("utf-8"))


def test_bad_event_record_is_a_decode_error():
    record = {"format_version": FORMAT_VERSION, "events": [{"uid": "x"}]}
    with pytest.raises(StoreDecodeError):
        decode_snapshot(json.dumps(record).encode("utf-8"))


def test_delete(tmp_path):
    store = SnapshotStore(str(tmp_path))
    store.save(SOURCE, sample_snapshot())
    assert store.delete(SOURCE) is True
    assert store.delete(SOURCE) is False
    assert store.load(SOURCE) is None


def test_async_access_round_trip(tmp_path):
    store = SnapshotStore(str(tmp_path))

    async def scenario():
        await store.save_async(SOURCE, sample_snapshot())
        return await store.load_async(SOURCE)

    assert asyncio.run(scenario()) == sample_snapshot()


def test_records_without_display_fields_still_load():
    """Events written before descriptions and offsets were stored decode with both unset."""
    record = json.loads(encode_snapshot(SOURCE, sample_snapshot()).decode("utf-8"))
    for item in record["events"]:
        item.pop("description")
        item.pop("utc_offset")
    event = decode_snapshot(json.dumps(record).encode("utf-8")).get("a@example.org")
    assert event.description is None
    assert event.utc_offset is None


def test_non_iana_zone_displays_with_stored_offset(tmp_path):
    """A Windows zone name is kept verbatim; display falls back to the offset seen at parse time."""
    start = utc(2025, 1, 10, 11)
    windows = Event(Identity.explicit("w"), "Review", start, start + timedelta(hours=1),
                    timezone="W. Europe Standard Time", utc_offset=3600)
    store = SnapshotStore(str(tmp_path))
    store.save(SOURCE, Snapshot.from_events([windows]))
    loaded = store.load(SOURCE).get("w")
    assert loaded.display_start().hour == 12
    assert loaded.display_end().utcoffset() == timedelta(hours=1)
    unknown = Event(Identity.explicit("u"), "Review", start, start, timezone="Custom/Zone")
    assert unknown.display_start().hour == 11, "No offset recorded: shown in UTC"
