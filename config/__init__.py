# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      CONFIGURATION PACKAGE INITIALIZER                     ║
# ║                                                                            ║
# ║  Loads and validates the tracked calendar sources at startup.             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

from .sources import (
    Source,             # One tracked calendar (url, cron, timezone, name)
    WatcherConfig,      # Sources plus the snapshot storage directory
    load_config,        # Reads and validates the JSON configuration file
    load_sources,       # Just the validated sources of a configuration file
    normalize_url,      # Canonical source identifier for a calendar URL
    parse_source,       # Validates a single configuration entry
    parse_sources,      # Validates the whole source list
)
