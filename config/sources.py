"""
sources.py: Tracked calendar source configuration.

Sources are read once at startup from a JSON file and are immutable for the
lifetime of the process. Anything invalid raises ConfigError; nothing is
silently defaulted except a missing display name (URL host) or a missing
timezone key (UTC).

Example file:

    {
        "storage": {"path": "~/icswatch/snapshots"},
        "sources": [
            {
                "url": "https://example.org/schedule.ics",
                "cron": "*/15 * * * *",
                "timezone": "Europe/Paris",
                "name": "Group A",
                "notify_window": "2w"
            }
        ]
    }
"""

import json
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit
from zoneinfo import ZoneInfo

from utils.environ import DATA_DIR
from utils.logging import logger
from utils.timezone_utils import DEFAULT_TIMEZONE, UnknownTimezoneError, get_timezone
from tracker.errors import ConfigError
from tracker.schedule import is_valid_cron, parse_duration

_DEFAULT_PORTS = {"http": 80, "https": 443}
_SUPPORTED_SCHEMES = ("http", "https", "webcal")


def normalize_url(url: str) -> str:
    """
    Normalize a calendar URL into the identifier snapshots are stored under.

    Lowercases scheme and host, maps webcal:// to https://, drops default
    ports, fragments and a trailing slash on the path. Query strings are kept
    as-is since private feed tokens usually live there.
    """
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("source url must be a non-empty string")
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in _SUPPORTED_SCHEMES:
        raise ConfigError(f"unsupported url scheme in {url!r} (expected http, https or webcal)")
    if scheme == "webcal":
        scheme = "https"
    host = (parts.hostname or "").lower()
    if not host:
        raise ConfigError(f"source url has no host: {url!r}")
    try:
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"invalid port in {url!r}: {e}") from e
    netloc = host
    if parts.username:
        credentials = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{credentials}@{host}"
    if port and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"
    path = parts.path.rstrip("/") or ""
    return urlunsplit((scheme, netloc, path, parts.query, ""))


@dataclass(frozen=True)
class Source:
    """One tracked calendar."""

    url: str
    cron: str
    timezone: str = DEFAULT_TIMEZONE
    name: Optional[str] = None
    notify_window: Optional[timedelta] = None

    @property
    def source_id(self) -> str:
        return normalize_url(self.url)

    @property
    def display_name(self) -> str:
        return self.name or (urlsplit(self.source_id).hostname or self.source_id)

    @property
    def tzinfo(self) -> ZoneInfo:
        return get_timezone(self.timezone)

    @property
    def fetch_url(self) -> str:
        # webcal:// is plain HTTPS on the wire
        if self.url.strip().lower().startswith("webcal://"):
            return "https://" + self.url.strip()[len("webcal://"):]
        return self.url.strip()


def parse_source(entry: Any, index: int = 0) -> Source:
    """
    Build a validated Source from one configuration entry.

    Raises:
        ConfigError: on a missing url/cron, a malformed cron expression, an
        unknown timezone or an invalid notify window.
    """
    label = f"sources[{index}]"
    if not isinstance(entry, dict):
        raise ConfigError(f"{label} must be an object")

    url = entry.get("url")
    normalize_url(url)
    label = f"{label} ({url})"

    cron = entry.get("cron")
    if not isinstance(cron, str) or not is_valid_cron(cron):
        raise ConfigError(f"{label}: malformed cron expression {cron!r}")

    tz_name = entry.get("timezone", DEFAULT_TIMEZONE)
    try:
        get_timezone(tz_name)
    except UnknownTimezoneError as e:
        raise ConfigError(f"{label}: {e}") from e

    name = entry.get("name")
    if name is not None and (not isinstance(name, str) or not name.strip()):
        raise ConfigError(f"{label}: name must be a non-empty string")

    window = entry.get("notify_window")
    notify_window = None
    if window is not None:
        try:
            notify_window = parse_duration(window)
        except ValueError as e:
            raise ConfigError(f"{label}: invalid notify_window: {e}") from e

    return Source(
        url=url.strip(),
        cron=cron.strip(),
        timezone=tz_name.strip(),
        name=name.strip() if name else None,
        notify_window=notify_window,
    )


def parse_sources(entries: Any) -> List[Source]:
    """Validate a list of source entries, rejecting duplicate source ids."""
    if not isinstance(entries, list) or not entries:
        raise ConfigError("configuration must list at least one source")
    sources = [parse_source(entry, index) for index, entry in enumerate(entries)]
    seen: Dict[str, int] = {}
    for index, source in enumerate(sources):
        if source.source_id in seen:
            raise ConfigError(
                f"sources[{index}] duplicates sources[{seen[source.source_id]}] ({source.source_id})"
            )
        seen[source.source_id] = index
    return sources


@dataclass(frozen=True)
class WatcherConfig:
    sources: List[Source]
    storage_path: str


def load_config(path: str) -> WatcherConfig:
    """
    Load and validate the configuration file.

    Returns:
        WatcherConfig with the sources and the expanded snapshot directory.

    Raises:
        ConfigError: if the file is missing, is not valid JSON or holds an
        invalid source.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"configuration file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in configuration {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"could not read configuration {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"configuration {path} must be a JSON object")

    sources = parse_sources(raw.get("sources"))

    storage = raw.get("storage") or {}
    if not isinstance(storage, dict):
        raise ConfigError("storage must be an object")
    storage_path = storage.get("path") or os.path.join(DATA_DIR, "snapshots")
    if not isinstance(storage_path, str):
        raise ConfigError("storage.path must be a string")
    storage_path = os.path.expandvars(os.path.expanduser(storage_path))

    logger.info(f"Loaded {len(sources)} calendar source(s) from {path}")
    for source in sources:
        logger.debug(f"  - {source.display_name}: {source.source_id} [{source.cron} {source.timezone}]")
    return WatcherConfig(sources=sources, storage_path=storage_path)


def load_sources(path: str) -> List[Source]:
    """Sources of the configuration file at `path`; raises ConfigError."""
    return load_config(path).sources
