# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     TRACKER EVENT FINGERPRINTING MODULE                    ║
# ║    Derives a stable identity for events whose feed carries no UID.         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
fingerprint.py: Derived event identities.
"""
import hashlib
import json
from datetime import datetime

from tracker.models import Identity, to_utc

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TEXT NORMALIZATION                                                        ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- clean_text ---
# Cleans and standardizes text fields by stripping whitespace
# and collapsing runs of whitespace into one space.
# Args:
#     text: The input value (None and non-strings are tolerated).
# Returns: The cleaned string.
def clean_text(text) -> str:
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return " ".join(text.strip().split())

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DERIVED IDENTITY                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- compute_event_fingerprint ---
# Generates an MD5 fingerprint from the event's start time and summary.
# The start is normalized to UTC at second precision and the summary is
# whitespace-collapsed, so re-parsing unchanged data yields the same value.
# Args:
#     start: The event start (aware or naive-UTC datetime).
#     summary: The event display text.
# Returns: The hex digest string.
def compute_event_fingerprint(start: datetime, summary: str) -> str:
    trimmed = {
        "start": to_utc(start).isoformat(),
        "summary": clean_text(summary),
    }
    normalized_json = json.dumps(trimmed, sort_keys=True)
    return hashlib.md5(normalized_json.encode("utf-8")).hexdigest()


def derive_identity(start: datetime, summary: str) -> Identity:
    return Identity.derived(compute_event_fingerprint(start, summary))
