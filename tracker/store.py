# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        TRACKER SNAPSHOT STORE                              ║
# ║    Loads and atomically saves the last-known snapshot of every source      ║
# ║    so diffs survive process restarts.                                      ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
store.py: Durable per-source snapshot persistence.

One JSON record per source, named after the SHA-256 of the source id. Writes
go to a temporary file in the same directory and are renamed into place, so
a reader only ever sees the previous record or the complete new one.
"""
import asyncio
import hashlib
import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, Optional

from utils.logging import logger
from tracker.errors import StoreDecodeError, StoreIOError
from tracker.models import Event, Snapshot

FORMAT_VERSION = 1

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ RECORD ENCODING                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- encode_snapshot ---
# Serializes a snapshot into the versioned on-disk record.
# Args:
#     source_id: The normalized source identifier.
#     snapshot: The snapshot to persist.
# Returns: The UTF-8 JSON bytes of the record.
def encode_snapshot(source_id: str, snapshot: Snapshot) -> bytes:
    record = {
        "format_version": FORMAT_VERSION,
        "source_id": source_id,
        "saved_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
        "events": [event.to_dict() for event in snapshot],
    }
    return json.dumps(record, ensure_ascii=False, indent=2).encode("utf-8")

# --- decode_snapshot ---
# Parses a persisted record back into a Snapshot.
# Args:
#     data: The raw file contents.
# Returns: The decoded Snapshot.
# Raises: StoreDecodeError on invalid JSON, a foreign format version or a bad event.
def decode_snapshot(data: bytes) -> Snapshot:
    try:
        record = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreDecodeError(f"record is not valid JSON: {e}") from e
    if not isinstance(record, dict):
        raise StoreDecodeError("record is not a JSON object")
    version = record.get("format_version")
    if version != FORMAT_VERSION:
        raise StoreDecodeError(f"unsupported format version {version!r} (expected {FORMAT_VERSION})")
    raw_events = record.get("events")
    if not isinstance(raw_events, list):
        raise StoreDecodeError("record has no event list")
    try:
        events = [Event.from_dict(item) for item in raw_events]
    except (KeyError, TypeError, ValueError) as e:
        raise StoreDecodeError(f"invalid event record: {e!r}") from e
    return Snapshot.from_events(events)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SNAPSHOT STORE                                                            ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class SnapshotStore:
    """Sole owner and writer of the persisted snapshots."""

    def __init__(self, directory: str):
        self.directory = directory
        self._locks: Dict[str, asyncio.Lock] = {}

    def path_for(self, source_id: str) -> str:
        digest = hashlib.sha256(source_id.encode("utf-8")).hexdigest()
        return os.path.join(self.directory, f"{digest}.json")

    # --- load ---
    # Returns the last persisted snapshot for a source.
    # A missing record means the source was never polled. A corrupted or
    # incompatible record is logged loudly and also treated as no prior state.
    # Args:
    #     source_id: The normalized source identifier.
    # Returns: The Snapshot, or None when there is no usable prior state.
    # Raises: StoreIOError when the record exists but cannot be read.
    def load(self, source_id: str) -> Optional[Snapshot]:
        path = self.path_for(source_id)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError:
            logger.debug(f"No snapshot on disk for {source_id}")
            return None
        except OSError as e:
            raise StoreIOError(f"could not read snapshot {path}: {e}") from e
        try:
            snapshot = decode_snapshot(data)
        except StoreDecodeError as e:
            logger.error(f"Snapshot for {source_id} at {path} is unusable ({e}). Starting fresh.")
            return None
        logger.debug(f"Loaded snapshot for {source_id} with {len(snapshot)} events")
        return snapshot

    # --- save ---
    # Atomically replaces the persisted snapshot for a source.
    # The record is written and fsynced to a temp file next to the target,
    # then renamed over it with os.replace.
    # Args:
    #     source_id: The normalized source identifier.
    #     snapshot: The snapshot to persist.
    # Raises: StoreIOError if any step fails; the previous record is left intact.
    def save(self, source_id: str, snapshot: Snapshot) -> None:
        path = self.path_for(source_id)
        payload = encode_snapshot(source_id, snapshot)
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".tmp", dir=self.directory)
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
            self._sync_directory()
        except OSError as e:
            raise StoreIOError(f"could not save snapshot {path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"Could not remove temporary snapshot file {tmp_path}")
        logger.info(f"Saved snapshot for {source_id} ({len(snapshot)} events)")

    def delete(self, source_id: str) -> bool:
        try:
            os.remove(self.path_for(source_id))
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreIOError(f"could not delete snapshot for {source_id}: {e}") from e

    def _sync_directory(self) -> None:
        # Makes the rename itself durable; not supported on every platform
        if not hasattr(os, "O_DIRECTORY"):
            return
        try:
            fd = os.open(self.directory, os.O_RDONLY | os.O_DIRECTORY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError:
            pass
        finally:
            os.close(fd)

    # ╔════════════════════════════════════════════════════════════════════════╗
    # ║ ASYNC ACCESS                                                          ║
    # ╚════════════════════════════════════════════════════════════════════════╝

    def lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    async def load_async(self, source_id: str) -> Optional[Snapshot]:
        async with self.lock_for(source_id):
            return await asyncio.to_thread(self.load, source_id)

    async def save_async(self, source_id: str, snapshot: Snapshot) -> None:
        async with self.lock_for(source_id):
            # Shielded so a cancelled tick cannot abandon a write half-way
            await asyncio.shield(asyncio.to_thread(self.save, source_id, snapshot))
