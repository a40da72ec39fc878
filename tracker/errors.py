# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          TRACKER ERROR TAXONOMY                            ║
# ║    Exceptions raised by the fetch, parse, store and config layers.         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
errors.py: Exception hierarchy for the schedule tracker.

Everything raised during a tick derives from WatcherError so a source loop
can contain any per-tick failure. ConfigError is only raised at startup.
"""


class WatcherError(Exception):
    """Base class for every tracker error."""


class NetworkError(WatcherError):
    """The calendar could not be downloaded (transient)."""

    def __init__(self, url: str, message: str, status_code=None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"{url}: {message}")


class ParseError(WatcherError):
    """The downloaded bytes could not be turned into a snapshot."""


class EmptyCalendarError(ParseError):
    """No valid event record could be read from the calendar."""

    def __init__(self, message: str = "no valid event found", warnings=None):
        self.warnings = list(warnings or [])
        super().__init__(message)


class StoreError(WatcherError):
    """Base class for snapshot persistence failures."""


class StoreIOError(StoreError):
    """Reading or writing a snapshot record failed at the OS level."""


class StoreDecodeError(StoreError):
    """A persisted record exists but cannot be decoded."""


class ConfigError(WatcherError):
    """The configuration is invalid; fatal at startup."""
