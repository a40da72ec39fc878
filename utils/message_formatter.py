# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       CHANGE MESSAGE FORMATTERS                            ║
# ║ Utilities for turning detected schedule changes and stored snapshots into  ║
# ║ Discord Markdown text and embeds.                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional, Sequence
import hashlib

# Third-party imports
import discord

# Local application imports
from tracker.models import Change, Event, Modified
from utils import split_message_by_lines
from utils.timezone_utils import format_time_range

# Discord caps embed descriptions at 4096 characters
EMBED_DESCRIPTION_LIMIT = 4096
# Event descriptions are cut to this many characters in messages
DESCRIPTION_PREVIEW = 100

KIND_HEADERS = OrderedDict([
    ("removed", "**📤 Removed Events:**"),
    ("added", "**📥 Added Events:**"),
    ("modified", "**✏️ Modified Events:**"),
])
KIND_COLORS = {
    "removed": 0xE74C3C,
    "added": 0x2ECC71,
    "modified": 0xF1C40F,
}
KIND_MARKERS = {"removed": "➖", "added": "➕", "modified": "✏️"}

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ HELPER FUNCTIONS                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- get_calendar_color_emoji ---
# Generates a consistent colored square emoji based on a calendar name hash.
# Used for visually distinguishing sources in messages.
def get_calendar_color_emoji(calendar_name: str) -> str:
    color_emojis = ['🟦', '🟥', '🟨', '🟩', '🟪', '🟧', '🟫', '⬛', '⬜']
    hash_value = int(hashlib.md5(calendar_name.encode()).hexdigest(), 16)
    return color_emojis[hash_value % len(color_emojis)]


def _event_when(event: Event) -> str:
    return format_time_range(event.display_start(), event.display_end(), all_day=event.all_day)


def _shorten(text: str, limit: int = DESCRIPTION_PREVIEW) -> str:
    return text if len(text) <= limit else text[:limit - 3].rstrip() + "..."


# --- format_event_markdown ---
# Formats a single event into a Discord Markdown line.
# Args:
#     event: The normalized event.
#     prefix: Optional marker or emoji placed before the title.
# Returns: "• **Title** `when`", followed by the location and a shortened
# description on their own lines when the event has them.
def format_event_markdown(event: Event, prefix: Optional[str] = None) -> str:
    title = event.summary or "Untitled Event"
    lead = f"{prefix} " if prefix else ""
    line = f"• {lead}**{title}** `{_event_when(event)}`"
    if event.location:
        line += f"\n  📍 {event.location}"
    if event.description:
        line += f"\n  _{_shorten(event.description)}_"
    return line

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CHANGE FORMATTERS                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _describe_modification(change: Modified) -> str:
    old, new = change.old, change.new
    details = []
    if "summary" in change.changed_fields:
        details.append(f"title: ~~{old.summary}~~ → {new.summary}")
    if change.changed_fields & {"start", "end"}:
        details.append(f"time: ~~{_event_when(old)}~~ → {_event_when(new)}")
    if "location" in change.changed_fields:
        details.append(f"location: ~~{old.location or 'none'}~~ → {new.location or 'none'}")
    return "; ".join(details)


# --- format_change_line ---
# Renders one change as a single human-readable Markdown line.
# Modified changes list every changed field with its old and new value.
def format_change_line(change: Change) -> str:
    marker = KIND_MARKERS[change.kind]
    if isinstance(change, Modified):
        return f"{format_event_markdown(change.new, marker)}\n  {_describe_modification(change)}"
    return format_event_markdown(change.event, marker)


# --- group_changes ---
# Buckets changes by kind, keeping removals, additions and modifications in
# that order and each bucket in the order the diff produced.
def group_changes(changes: Sequence[Change]) -> Dict[str, List[Change]]:
    grouped: Dict[str, List[Change]] = OrderedDict((kind, []) for kind in KIND_HEADERS)
    for change in changes:
        grouped[change.kind].append(change)
    return OrderedDict((kind, items) for kind, items in grouped.items() if items)


# --- format_changes ---
# Formats a whole diff for one source as a Markdown message.
# Args:
#     source_name: Display name of the calendar source.
#     changes: Ordered changes from the diff engine.
# Returns: A multi-line string, or an empty string when there is nothing to say.
def format_changes(source_name: str, changes: Sequence[Change]) -> str:
    if not changes:
        return ""
    emoji = get_calendar_color_emoji(source_name)
    lines = [f"# 📣 {emoji} {source_name} • Event Changes", ""]
    for kind, items in group_changes(changes).items():
        lines.append(KIND_HEADERS[kind])
        lines += [format_change_line(change) for change in items]
        lines.append("")
    return "\n".join(lines).rstrip()


# --- build_change_embeds ---
# Builds Discord embeds for a diff, one per change kind.
# Descriptions longer than the embed limit are split across several embeds.
# Args:
#     source_name: Display name of the calendar source.
#     changes: Ordered changes from the diff engine.
# Returns: A list of discord.Embed objects (empty when there are no changes).
def build_change_embeds(source_name: str, changes: Sequence[Change]) -> List[discord.Embed]:
    embeds = []
    emoji = get_calendar_color_emoji(source_name)
    for kind, items in group_changes(changes).items():
        body = "\n".join(format_change_line(change) for change in items)
        chunks = split_message_by_lines(body, EMBED_DESCRIPTION_LIMIT)
        for index, chunk in enumerate(chunks):
            title = f"{emoji} {source_name}: {len(items)} {kind}"
            if len(chunks) > 1:
                title += f" ({index + 1}/{len(chunks)})"
            embeds.append(discord.Embed(
                title=title[:256],
                description=chunk,
                color=KIND_COLORS[kind],
            ))
    return embeds

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ AGENDA FORMATTER                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- format_agenda ---
# Formats the stored events of one source as an agenda grouped by day.
# Args:
#     source_name: Display name of the calendar source.
#     events: Events ascending by start time (see Snapshot.events_between).
#     start_day: First day covered, used in the header.
# Returns: A formatted multi-line agenda string.
def format_agenda(source_name: str, events: Sequence[Event], start_day: date) -> str:
    header = f"# 🗒️ {source_name}'s Agenda • From {start_day.strftime('%A, %B %d, %Y')}\n"
    lines = [header, f"**Total events:** `{len(events)}`\n"]
    if not events:
        lines.append("> ⚠️ *No events scheduled.*")
        return "\n".join(lines)
    lines.append("━━━━━━━━━━━━━━━━━━━━━━━━━━")
    by_day: Dict[date, List[Event]] = OrderedDict()
    for event in events:
        by_day.setdefault(event.display_start().date(), []).append(event)
    for day, day_events in by_day.items():
        lines.append(f"\n## {day.strftime('%A, %B %d')}")
        lines += [format_event_markdown(event) for event in day_events]
    lines.append("━━━━━━━━━━━━━━━━━━━━━━━━━━")
    return "\n".join(lines)
