"""
Test suite for the calendar fetcher.
Verifies retry/backoff behaviour on network errors, 429 and 5xx responses.
"""
from unittest.mock import Mock

import pytest
import requests

from tracker.errors import NetworkError
from tracker.fetcher import backoff_delay, fetch_calendar

URL = "https://example.org/calendar.ics"


def response(status: int, content: bytes = b"") -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.content = content
    return resp


def test_successful_fetch_returns_bytes():
    session = Mock()
    session.get.return_value = response(200, b"BEGIN:VCALENDAR")
    assert fetch_calendar(URL, session=session, sleep=lambda s: None) == b"BEGIN:VCALENDAR"
    assert session.get.call_count == 1


def test_server_errors_are_retried():
    session = Mock()
    session.get.side_effect = [response(503), response(502), response(200, b"ok")]
    delays = []
    assert fetch_calendar(URL, max_retries=3, session=session, sleep=delays.append) == b"ok"
    assert session.get.call_count == 3
    assert len(delays) == 2


def test_connection_errors_are_retried_then_raised():
    session = Mock()
    session.get.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(NetworkError) as excinfo:
        fetch_calendar(URL, max_retries=3, session=session, sleep=lambda s: None)
    assert session.get.call_count == 3
    assert excinfo.value.url == URL
    assert excinfo.value.status_code is None


def test_client_errors_are_not_retried():
    session = Mock()
    session.get.return_value = response(404)
    with pytest.raises(NetworkError) as excinfo:
        fetch_calendar(URL, max_retries=3, session=session, sleep=lambda s: None)
    assert session.get.call_count == 1, "A 404 must not be retried"
    assert excinfo.value.status_code == 404


def test_rate_limit_is_retried_with_longer_backoff():
    session = Mock()
    session.get.side_effect = [response(429), response(200, b"ok")]
    delays = []
    assert fetch_calendar(URL, session=session, sleep=delays.append) == b"ok"
    assert delays and delays[0] >= 1.0


def test_backoff_is_capped():
    assert backoff_delay(10) <= 30.0
    assert backoff_delay(10, rate_limited=True) <= 30.0
    assert 1.0 <= backoff_delay(0) <= 2.0
