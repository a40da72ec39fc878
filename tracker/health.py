# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                         TRACKER HEALTH MODULE                              ║
# ║    Per-source bookkeeping of tick outcomes, consecutive failures and      ║
# ║    the last successful poll.                                               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Source health tracking.

Handles:
- Recording the outcome of every tick
- Counting consecutive failures
- Reporting a status summary per source
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from utils.logging import logger

MAX_CONSECUTIVE_ERRORS = 3

# Tick outcomes that count as a failed poll
FAILED_OUTCOMES = frozenset({
    "fetch_failed", "parse_failed", "load_failed", "persist_failed", "notify_failed", "error",
})


@dataclass
class SourceHealth:
    name: str
    last_success: Optional[datetime] = None
    last_outcome: Optional[str] = None
    last_error: Optional[str] = None
    error_count: int = 0
    ticks: int = 0
    notifications: int = 0

    @property
    def healthy(self) -> bool:
        return self.error_count < MAX_CONSECUTIVE_ERRORS

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_outcome": self.last_outcome,
            "last_error": self.last_error,
            "consecutive_errors": self.error_count,
            "ticks": self.ticks,
            "notifications": self.notifications,
        }


@dataclass
class HealthRegistry:
    sources: Dict[str, SourceHealth] = field(default_factory=dict)

    def get(self, source_id: str, name: Optional[str] = None) -> SourceHealth:
        entry = self.sources.get(source_id)
        if entry is None:
            entry = self.sources[source_id] = SourceHealth(name=name or source_id)
        return entry

    # --- record ---
    # Updates the health metrics of one source after a tick.
    # Successful outcomes reset the error count and stamp the last success;
    # failed ones increment it and warn once the count reaches the threshold.
    # Args:
    #     source_id: The normalized source identifier.
    #     outcome: The TickResult outcome string.
    #     error: Optional error text for failed ticks.
    #     now: Timestamp of the tick (defaults to the current UTC time).
    def record(self, source_id: str, outcome: str, error: Optional[str] = None,
               now: Optional[datetime] = None) -> SourceHealth:
        entry = self.get(source_id)
        entry.ticks += 1
        entry.last_outcome = outcome
        if outcome in FAILED_OUTCOMES:
            entry.error_count += 1
            entry.last_error = error
            if entry.error_count >= MAX_CONSECUTIVE_ERRORS:
                logger.warning(f"Source {entry.name} has failed {entry.error_count} consecutive times")
        else:
            entry.last_success = now or datetime.now(timezone.utc)
            entry.error_count = 0
            entry.last_error = None
            if outcome == "notified":
                entry.notifications += 1
        return entry

    def summary(self) -> Dict[str, dict]:
        return {source_id: entry.as_dict() for source_id, entry in self.sources.items()}
