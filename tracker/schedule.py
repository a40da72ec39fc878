# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                         TRACKER SCHEDULE HELPERS                           ║
# ║    Pure wake-time computation from cron expressions and duration parsing.  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
schedule.py: next_wake(cron, tz, now) and notify-window durations.
"""
import re
from datetime import datetime, timedelta, timezone, tzinfo

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

_DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}
_DURATION_PART = re.compile(r"(\d+)\s*([smhdw])", re.IGNORECASE)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CRON EVALUATION                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- is_valid_cron ---
# True when the expression parses and can actually fire.
# "0 0 31 2 *" is well-formed but never matches a real date.
def is_valid_cron(expression: str) -> bool:
    if not isinstance(expression, str) or not expression.strip() or not croniter.is_valid(expression):
        return False
    try:
        croniter(expression, datetime.now(timezone.utc)).get_next(datetime)
    except (CroniterBadCronError, CroniterBadDateError):
        return False
    return True


def _has_fixed_hours(expression: str) -> bool:
    return croniter(expression).expanded[1] != ["*"]


# Second pass over a wall-clock time repeated by a DST fall-back
def _is_repeated_wall_time(value: datetime, tz: tzinfo) -> bool:
    local = value.astimezone(tz)
    return local.fold == 1 and local.replace(fold=0).utcoffset() != local.utcoffset()


# --- next_wake ---
# Computes the next fire time of a cron expression, evaluated in the source's
# timezone so "0 8 * * *" means 08:00 local time across DST changes.
# Args:
#     expression: A 5 (or 6, with seconds) field cron expression.
#     tz: The tzinfo of the source.
#     now: The current instant (aware; naive values are taken as UTC).
# On a DST fall-back day a wall-clock time occurs twice. Expressions with a
# fixed hour field fire on the first occurrence only; expressions whose hour
# field is "*" keep firing through the repeated hour.
# Returns: The next fire time strictly after `now`, as an aware UTC datetime.
# Raises: CroniterBadDateError when the expression never fires.
def next_wake(expression: str, tz: tzinfo, now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    schedule = croniter(expression, now.astimezone(tz))
    skip_repeats = _has_fixed_hours(expression)
    while True:
        upcoming = schedule.get_next(datetime)
        if upcoming.tzinfo is None:
            upcoming = upcoming.replace(tzinfo=tz)
        if skip_repeats and _is_repeated_wall_time(upcoming, tz):
            continue
        return upcoming.astimezone(timezone.utc)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DURATIONS                                                                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- parse_duration ---
# Parses compact durations such as "2w", "14d", "36h" or "1w 2d 3h".
# Args:
#     text: The duration string.
# Returns: The equivalent timedelta.
# Raises: ValueError when the text is empty, malformed or zero.
def parse_duration(text: str) -> timedelta:
    if not isinstance(text, str) or not text.strip():
        raise ValueError("duration must be a non-empty string")
    compact = text.strip()
    parts = _DURATION_PART.findall(compact)
    if not parts or _DURATION_PART.sub("", compact).strip():
        raise ValueError(f"invalid duration: {text!r}")
    total = timedelta()
    for amount, unit in parts:
        total += timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})
    if total <= timedelta(0):
        raise ValueError(f"duration must be positive: {text!r}")
    return total
