# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        TRACKER PACKAGE INITIALIZER                         ║
# ║                                                                            ║
# ║  The schedule-tracking engine: fetch, parse, diff, persist and notify.    ║
# ║  Submodules are imported directly (tracker.scheduler, tracker.store, ...)  ║
# ║  so that config.sources can depend on tracker.errors without a cycle.      ║
# ╚════════════════════════════════════════════════════════════════════════════╝
