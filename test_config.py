"""
Test suite for source configuration loading and validation.
"""
import json
from datetime import timedelta

import pytest

from config.sources import Source, load_config, load_sources, normalize_url, parse_source, parse_sources
from tracker.errors import ConfigError


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_valid_config_is_loaded(tmp_path):
    path = write_config(tmp_path, {
        "storage": {"path": str(tmp_path / "snapshots")},
        "sources": [
            {"url": "https://Example.org:443/cal.ics", "cron": "*/15 * * * *",
             "timezone": "Europe/Paris", "name": "Group A", "notify_window": "2w"},
            {"url": "webcal://calendar.example.com/team.ics", "cron": "0 8 * * 1-5"},
        ],
    })
    config = load_config(path)
    assert config.storage_path == str(tmp_path / "snapshots")
    first, second = config.sources
    assert first.source_id == "https://example.org/cal.ics"
    assert first.display_name == "Group A"
    assert first.notify_window == timedelta(weeks=2)
    assert second.timezone == "UTC", "A missing timezone key defaults to UTC"
    assert second.display_name == "calendar.example.com", "A missing name defaults to the host"
    assert second.fetch_url == "https://calendar.example.com/team.ics"


def test_malformed_cron_is_rejected():
    with pytest.raises(ConfigError, match="cron"):
        parse_source({"url": "https://example.org/a.ics", "cron": "every minute"})


def test_cron_that_never_fires_is_rejected():
    """A well-formed expression with no real date (Feb 31st) must fail at load time."""
    with pytest.raises(ConfigError, match="cron"):
        parse_source({"url": "https://example.org/a.ics", "cron": "0 0 31 2 *"})


def test_unknown_timezone_is_rejected():
    with pytest.raises(ConfigError, match="Mars/Olympus"):
        parse_source({"url": "https://example.org/a.ics", "cron": "* * * * *", "timezone": "Mars/Olympus"})


def test_invalid_notify_window_is_rejected():
    with pytest.raises(ConfigError, match="notify_window"):
        parse_source({"url": "https://example.org/a.ics", "cron": "* * * * *", "notify_window": "soon"})


def test_missing_url_is_rejected():
    with pytest.raises(ConfigError):
        parse_source({"cron": "* * * * *"})


def test_unsupported_scheme_is_rejected():
    with pytest.raises(ConfigError, match="scheme"):
        parse_source({"url": "ftp://example.org/a.ics", "cron": "* * * * *"})


def test_duplicate_sources_are_rejected():
    entries = [
        {"url": "https://example.org/a.ics", "cron": "* * * * *"},
        {"url": "HTTPS://EXAMPLE.ORG/a.ics#frag", "cron": "0 * * * *"},
    ]
    with pytest.raises(ConfigError, match="duplicates"):
        parse_sources(entries)


def test_empty_source_list_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write_config(tmp_path, {"sources": []}))


def test_missing_file_and_bad_json(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{ nope", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(str(bad))


def test_normalize_url():
    assert normalize_url("HTTP://Example.ORG:80/path/?token=AbC#x") == "http://example.org/path?token=AbC"
    assert normalize_url("https://example.org:8443/a") == "https://example.org:8443/a"
    assert normalize_url("webcal://example.org/a.ics") == "https://example.org/a.ics"


def test_timezone_alias_is_accepted():
    source = parse_source({"url": "https://example.org/a.ics", "cron": "0 9 * * *", "timezone": "pst"})
    assert isinstance(source, Source)
    assert source.tzinfo.key == "America/Los_Angeles"


def test_load_sources_returns_sources(tmp_path):
    path = write_config(tmp_path, {"sources": [{"url": "https://example.org/a.ics", "cron": "0 * * * *"}]})
    (source,) = load_sources(path)
    assert source.source_id == "https://example.org/a.ics"
