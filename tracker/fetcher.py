# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        TRACKER CALENDAR FETCHER                            ║
# ║    Downloads raw calendar bytes with bounded retries and backoff.          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
fetcher.py: fetch(url) -> bytes, raising NetworkError.
"""
import random
import time

import requests

from utils.environ import FETCH_RETRIES, FETCH_TIMEOUT
from utils.logging import logger
from tracker.errors import NetworkError

USER_AGENT = "icswatch/1.0 (+calendar change tracker)"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ BACKOFF                                                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- backoff_delay ---
# Exponential backoff with jitter, capped at 30 seconds.
# Rate limits (429) back off harder than server errors.
# Args:
#     attempt: Zero-based attempt number that just failed.
#     rate_limited: True when the server answered 429.
# Returns: Seconds to wait before the next attempt.
def backoff_delay(attempt: int, rate_limited: bool = False) -> float:
    if rate_limited:
        return min((5 ** attempt) + random.uniform(1, 3), 30.0)
    return min((2 ** attempt) + random.uniform(0, 1), 30.0)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ FETCH                                                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- fetch_calendar ---
# Retrieves the raw bytes of a calendar feed.
# Retries network errors, 429 and 5xx responses with backoff; any other
# 4xx answer is returned to the caller immediately as a NetworkError.
# Args:
#     url: The calendar URL (http or https).
#     timeout: Seconds per attempt.
#     max_retries: Attempts before giving up.
#     session: Optional requests.Session (tests pass a stub).
#     sleep: Sleep function used between attempts.
# Returns: The response body as bytes.
# Raises: NetworkError when every attempt failed.
def fetch_calendar(url: str, timeout: float = FETCH_TIMEOUT, max_retries: int = FETCH_RETRIES,
                   session=None, sleep=time.sleep) -> bytes:
    http = session or requests
    attempts = max(1, max_retries)
    last_error = None
    for attempt in range(attempts):
        try:
            logger.debug(f"Fetching calendar {url} (attempt {attempt + 1}/{attempts})")
            response = http.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
            status = response.status_code
            if status == 429 or status >= 500:
                last_error = NetworkError(url, f"HTTP {status}", status_code=status)
                delay = backoff_delay(attempt, rate_limited=status == 429)
            elif status >= 400:
                raise NetworkError(url, f"HTTP {status}", status_code=status)
            else:
                logger.debug(f"Fetched {len(response.content)} bytes from {url}")
                return response.content
        except requests.exceptions.RequestException as e:
            last_error = NetworkError(url, str(e))
            delay = backoff_delay(attempt)
        if attempt + 1 < attempts:
            logger.warning(f"Fetch of {url} failed ({last_error}), attempt {attempt + 1}/{attempts}, backing off for {delay:.2f}s")
            sleep(delay)
    raise last_error
