# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          TRACKER SCHEDULER                                 ║
# ║    One asyncio task per calendar source, each waking on its own cron      ║
# ║    schedule to fetch, parse, diff, persist and notify.                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Source polling loops.

Handles:
- Waking every source on its cron schedule, in its own timezone
- Running the fetch -> parse -> diff -> persist -> notify pipeline
- Containing every per-tick failure inside that source's tick
- Orderly shutdown between pipeline stages
"""
import asyncio
import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from config.sources import Source
from utils.error_handling import with_async_error_handling
from utils.logging import logger
from tracker.diff import diff
from tracker.errors import NetworkError, ParseError, StoreError
from tracker.fetcher import fetch_calendar
from tracker.health import HealthRegistry
from tracker.models import Change, Modified, to_utc
from tracker.parser import parse
from tracker.schedule import next_wake
from tracker.sinks import NotificationSink
from tracker.store import SnapshotStore


class SourceState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    DIFFING = "diffing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TickResult:
    outcome: str
    changes: Tuple[Change, ...] = ()
    emitted: Tuple[Change, ...] = ()
    warnings: Tuple[str, ...] = ()
    error: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ NOTIFY WINDOW                                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- filter_window ---
# Keeps only changes touching events that start in [now, now + window).
# A modification counts when either its old or its new start is inside.
# Args:
#     changes: Ordered changes from the diff engine.
#     now: Current instant.
#     window: Horizon, or None to keep everything.
# Returns: The kept changes, order preserved.
def filter_window(changes: Sequence[Change], now: datetime, window: Optional[timedelta]) -> List[Change]:
    if window is None:
        return list(changes)
    lower = to_utc(now)
    upper = lower + window

    def inside(moment: datetime) -> bool:
        return lower <= moment < upper

    kept = []
    for change in changes:
        if isinstance(change, Modified):
            if inside(change.old.start) or inside(change.new.start):
                kept.append(change)
        elif inside(change.event.start):
            kept.append(change)
    return kept

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SOURCE WATCHER                                                            ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class SourceWatcher:
    """Owns the polling loop and pipeline state of one source."""

    def __init__(self, source: Source, store: SnapshotStore, sink: NotificationSink,
                 fetch: Callable = fetch_calendar, clock: Callable[[], datetime] = _utc_now,
                 health: Optional[HealthRegistry] = None, shutdown: Optional[asyncio.Event] = None):
        self.source = source
        self.store = store
        self.sink = sink
        self.fetch = fetch
        self.clock = clock
        self.health = health or HealthRegistry()
        self.shutdown = shutdown or asyncio.Event()
        self.state = SourceState.IDLE
        self.next_run: Optional[datetime] = None
        self.health.get(source.source_id, source.display_name)

    @property
    def name(self) -> str:
        return self.source.display_name

    def _stopping(self) -> bool:
        return self.shutdown.is_set()

    def _finish(self, outcome: str, **details) -> TickResult:
        result = TickResult(outcome=outcome, **details)
        if outcome != "cancelled":
            self.health.record(self.source.source_id, outcome, error=result.error, now=self.clock())
        return result

    async def _fetch(self) -> bytes:
        if asyncio.iscoroutinefunction(self.fetch):
            return await self.fetch(self.source.fetch_url)
        return await asyncio.to_thread(self.fetch, self.source.fetch_url)

    # --- tick ---
    # Runs the pipeline once for this source.
    # Outcomes: fetch_failed, parse_failed, load_failed, unchanged,
    # persist_failed, initialized, filtered, notified, notify_failed and
    # cancelled (shutdown observed between stages).
    # The snapshot is always persisted before the sink is called, and a sink
    # failure never rolls it back.
    # Returns: A TickResult describing what happened.
    async def tick(self) -> TickResult:
        source_id = self.source.source_id
        now = self.clock()
        try:
            # --- Fetch ---
            self.state = SourceState.FETCHING
            try:
                raw = await self._fetch()
            except NetworkError as e:
                logger.warning(f"[{self.name}] Fetch failed: {e}")
                return self._finish("fetch_failed", error=str(e))
            if self._stopping():
                return self._finish("cancelled")

            # --- Parse ---
            self.state = SourceState.PARSING
            try:
                result = parse(raw)
            except ParseError as e:
                logger.warning(f"[{self.name}] Parse failed: {e}")
                return self._finish("parse_failed", error=str(e))
            for warning in result.warnings:
                logger.warning(f"[{self.name}] {warning}")
            warnings = tuple(result.warnings)
            if self._stopping():
                return self._finish("cancelled", warnings=warnings)

            # --- Diff ---
            self.state = SourceState.DIFFING
            try:
                previous = await self.store.load_async(source_id)
            except StoreError as e:
                logger.error(f"[{self.name}] Could not load the previous snapshot: {e}")
                return self._finish("load_failed", warnings=warnings, error=str(e))
            changes = tuple(diff(previous, result.snapshot))
            if not changes:
                logger.debug(f"[{self.name}] No changes ({len(result.snapshot)} events)")
                return self._finish("unchanged", warnings=warnings)
            if self._stopping():
                return self._finish("cancelled", changes=changes, warnings=warnings)

            # --- Persist ---
            self.state = SourceState.PERSISTING
            try:
                await self.store.save_async(source_id, result.snapshot)
            except StoreError as e:
                logger.error(f"[{self.name}] Could not persist snapshot, changes will be retried next tick: {e}")
                return self._finish("persist_failed", changes=changes, warnings=warnings, error=str(e))

            if previous is None:
                logger.info(f"[{self.name}] Initial snapshot stored with {len(result.snapshot)} events")
                return self._finish("initialized", changes=changes, warnings=warnings)

            emitted = tuple(filter_window(changes, now, self.source.notify_window))
            if not emitted:
                logger.info(f"[{self.name}] {len(changes)} change(s) outside the notify window")
                return self._finish("filtered", changes=changes, warnings=warnings)
            if self._stopping():
                return self._finish("cancelled", changes=changes, warnings=warnings)

            # --- Notify ---
            self.state = SourceState.NOTIFYING
            failures = []
            await with_async_error_handling(
                self.sink.emit, self.name, list(emitted),
                error_message=f"[{self.name}] Notification delivery failed",
                on_error=failures.append,
            )
            if failures:
                return self._finish("notify_failed", changes=changes, emitted=emitted,
                                    warnings=warnings, error=str(failures[0]))
            logger.info(f"[{self.name}] Emitted {len(emitted)} of {len(changes)} change(s)")
            return self._finish("notified", changes=changes, emitted=emitted, warnings=warnings)
        finally:
            if self.state is not SourceState.CANCELLED:
                self.state = SourceState.CANCELLED if self._stopping() else SourceState.IDLE

    # --- safe_tick ---
    # tick() for loop callers: unexpected exceptions are logged, never raised.
    async def safe_tick(self) -> TickResult:
        try:
            return await self.tick()
        except Exception as e:
            logger.exception(f"[{self.name}] Unexpected error during tick: {e}")
            return self._finish("error", error=repr(e))

    def _compute_wake(self, now: datetime) -> datetime:
        wake = next_wake(self.source.cron, self.source.tzinfo, now)
        # A timer firing a hair early must not schedule the same slot twice
        if self.next_run is not None and wake <= self.next_run:
            wake = next_wake(self.source.cron, self.source.tzinfo, self.next_run)
        return wake

    # --- run ---
    # Polling loop: sleep until the next cron slot (or until shutdown), tick, repeat.
    # Args:
    #     shutdown: Event that ends the loop; defaults to the watcher's own.
    async def run(self, shutdown: Optional[asyncio.Event] = None) -> None:
        if shutdown is not None:
            self.shutdown = shutdown
        logger.info(f"[{self.name}] Watching {self.source.source_id} on '{self.source.cron}' ({self.source.timezone})")
        try:
            while not self._stopping():
                now = self.clock()
                try:
                    self.next_run = self._compute_wake(now)
                except Exception as e:
                    # A schedule that cannot produce a wake time never recovers
                    logger.exception(f"[{self.name}] Cannot compute next poll for cron '{self.source.cron}'; stopping watcher")
                    self.health.record(self.source.source_id, "error", error=f"schedule: {e}", now=now)
                    break
                delay = max(0.0, (self.next_run - now).total_seconds())
                logger.debug(f"[{self.name}] Next poll at {self.next_run.isoformat()} (in {delay:.0f}s)")
                try:
                    await asyncio.wait_for(self.shutdown.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
                await self.safe_tick()
        finally:
            self.state = SourceState.CANCELLED
            logger.info(f"[{self.name}] Watcher stopped")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SCHEDULER                                                                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class Scheduler:
    """Spawns and supervises one SourceWatcher per configured source."""

    def __init__(self, sources: Sequence[Source], store: SnapshotStore, sink: NotificationSink,
                 fetch: Callable = fetch_calendar, clock: Callable[[], datetime] = _utc_now):
        self.shutdown = asyncio.Event()
        self.health = HealthRegistry()
        self.watchers = [
            SourceWatcher(source, store, sink, fetch=fetch, clock=clock,
                          health=self.health, shutdown=self.shutdown)
            for source in sources
        ]
        self._tasks: List[asyncio.Task] = []

    def start(self) -> None:
        if self._tasks:
            return
        for watcher in self.watchers:
            task = asyncio.create_task(watcher.run(self.shutdown), name=f"watch:{watcher.name}")
            self._tasks.append(task)
        logger.info(f"Started {len(self._tasks)} source watcher(s)")

    # --- stop ---
    # Signals shutdown and waits up to `grace` seconds for the watchers to
    # finish. Watchers still stuck after that (e.g. a hung fetch) are cancelled.
    async def stop(self, grace: float = 30.0) -> None:
        self.shutdown.set()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=grace)
        for task in pending:
            logger.warning(f"Watcher task {task.get_name()} did not stop within {grace:.0f}s; cancelling")
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, outcome in zip(self._tasks, results):
            if isinstance(outcome, Exception):
                logger.error(f"Watcher task {task.get_name()} ended with {outcome!r}")
        self._tasks = []
        logger.info("All source watchers stopped")

    async def run_forever(self) -> None:
        self.start()
        try:
            await self.shutdown.wait()
        finally:
            await self.stop()

    # --- run_once ---
    # Ticks every source once, concurrently. Used as the startup sync so
    # first snapshots exist before the first cron slot.
    async def run_once(self) -> Dict[str, TickResult]:
        results = await asyncio.gather(*(watcher.safe_tick() for watcher in self.watchers))
        return {watcher.source.source_id: result for watcher, result in zip(self.watchers, results)}

    def status(self) -> Dict[str, dict]:
        report = {}
        for watcher in self.watchers:
            entry = self.health.get(watcher.source.source_id).as_dict()
            entry["state"] = watcher.state.value
            entry["next_run"] = watcher.next_run.isoformat() if watcher.next_run else None
            report[watcher.source.source_id] = entry
        return report
