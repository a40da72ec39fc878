# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                         TRACKER NOTIFICATION SINKS                         ║
# ║    Consumers of detected changes: the log, or a Discord channel webhook.   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
sinks.py: emit(source_name, changes) implementations.

A sink receives the already filtered, ordered changes of one tick. Failures
raise to the caller; the scheduler contains them so a sink can never roll
back a persisted snapshot.
"""
from typing import List, Optional, Sequence

import aiohttp
import discord

from utils.error_handling import ErrorTracker
from utils.logging import logger
from utils.message_formatter import build_change_embeds, format_change_line, format_changes
from tracker.models import Change

# Discord accepts at most 10 embeds per webhook message
MAX_EMBEDS_PER_MESSAGE = 10


class NotificationSink:
    """Interface of every change consumer."""

    async def emit(self, source_name: str, changes: Sequence[Change]) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LoggingSink(NotificationSink):
    """Writes one INFO line per change."""

    async def emit(self, source_name: str, changes: Sequence[Change]) -> None:
        logger.info(f"[{source_name}] {len(changes)} change(s) detected")
        for change in changes:
            logger.info(f"[{source_name}] {change.kind}: {format_change_line(change)}")


class MemorySink(NotificationSink):
    """Keeps every emitted batch; handy for dry runs and tests."""

    def __init__(self):
        self.batches: List[tuple] = []

    async def emit(self, source_name: str, changes: Sequence[Change]) -> None:
        self.batches.append((source_name, list(changes)))

    def text(self) -> str:
        return "\n\n".join(format_changes(name, changes) for name, changes in self.batches)


# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DISCORD WEBHOOK                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class DiscordWebhookSink(NotificationSink):
    """
    Posts change embeds to a Discord channel webhook.

    One embed per change kind; a burst of more than ten embeds is split over
    several messages. After repeated delivery failures the circuit opens and
    batches are dropped (with a warning) until the reset timeout passes.
    """

    def __init__(self, url: str, username: Optional[str] = "Schedule Watcher",
                 session: Optional[aiohttp.ClientSession] = None,
                 tracker: Optional[ErrorTracker] = None):
        self.url = url
        self.username = username
        self._session = session
        self._owns_session = session is None
        self.tracker = tracker or ErrorTracker("discord-webhook", threshold=5, reset_after_seconds=300)

    async def _webhook(self) -> discord.Webhook:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return discord.Webhook.from_url(self.url, session=self._session)

    async def emit(self, source_name: str, changes: Sequence[Change]) -> None:
        if not changes:
            return
        if not self.tracker.is_available():
            logger.warning(f"Discord webhook circuit open, dropping {len(changes)} change(s) for {source_name}")
            return
        embeds = build_change_embeds(source_name, changes)
        webhook = await self._webhook()
        try:
            for i in range(0, len(embeds), MAX_EMBEDS_PER_MESSAGE):
                await webhook.send(embeds=embeds[i:i + MAX_EMBEDS_PER_MESSAGE], username=self.username)
        except (discord.HTTPException, aiohttp.ClientError) as e:
            self.tracker.record_error(e)
            raise
        self.tracker.record_success()
        logger.info(f"Posted {len(changes)} change(s) for {source_name} to Discord ({len(embeds)} embed(s))")

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
