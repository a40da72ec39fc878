#!/usr/bin/env python3
"""
ICS Schedule Watcher - Main Entry Point

Polls the configured calendar feeds on their cron schedules, detects added,
removed and modified events, and posts the changes to Discord (or the log
when no webhook is configured).
"""

import os
import sys
import signal
import asyncio
from datetime import datetime, timedelta, timezone

from utils.logging import get_log_file_location, logger
from utils.environ import CONFIG_PATH, DISCORD_WEBHOOK_URL
from config.sources import load_config
from tracker.errors import ConfigError, StoreError
from tracker.scheduler import Scheduler
from tracker.sinks import DiscordWebhookSink, LoggingSink
from tracker.store import SnapshotStore
from utils.message_formatter import format_agenda

AGENDA_DAYS = 7


def build_sink():
    """Discord webhook when configured, the log otherwise."""
    if DISCORD_WEBHOOK_URL:
        logger.info("Change notifications go to the configured Discord webhook")
        return DiscordWebhookSink(DISCORD_WEBHOOK_URL)
    logger.info("DISCORD_WEBHOOK_URL not set, change notifications go to the log")
    return LoggingSink()


async def log_upcoming(store, sources) -> None:
    """Logs the stored agenda of every source for the coming week."""
    now = datetime.now(timezone.utc)
    for source in sources:
        try:
            snapshot = await store.load_async(source.source_id)
        except StoreError as e:
            logger.warning(f"[{source.display_name}] Agenda unavailable: {e}")
            continue
        if snapshot is None:
            continue
        upcoming = snapshot.events_between(now, now + timedelta(days=AGENDA_DAYS))
        logger.info("\n" + format_agenda(source.display_name, upcoming, now.astimezone(source.tzinfo).date()))


async def run(config) -> None:
    """Startup sync, then the per-source loops until a shutdown signal."""
    store = SnapshotStore(config.storage_path)
    sink = build_sink()
    scheduler = Scheduler(config.sources, store, sink)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, scheduler.shutdown.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(scheduler.shutdown.set))

    try:
        logger.info("Running startup sync of all sources...")
        results = await scheduler.run_once()
        for source_id, result in results.items():
            logger.info(f"  {source_id}: {result.outcome}")
        await log_upcoming(store, config.sources)
        if not scheduler.shutdown.is_set():
            await scheduler.run_forever()
    finally:
        await sink.close()


def main():
    """Main application entry point."""
    logger.info("=" * 60)
    logger.info("📅 ICS Schedule Watcher Starting")
    logger.info(f"Logging to {get_log_file_location()}")
    logger.info("=" * 60)

    try:
        config = load_config(os.path.expanduser(CONFIG_PATH))
    except ConfigError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        sys.exit(1)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Watcher stopped by user")
    except Exception as e:
        logger.exception(f"Fatal error in watcher: {e}")
        sys.exit(1)
    finally:
        logger.info("📅 ICS Schedule Watcher Shutdown Complete")


if __name__ == "__main__":
    main()
