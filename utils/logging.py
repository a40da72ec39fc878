# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                         ICSWATCH LOGGING SETUP                             ║
# ║ Queue-backed logging: colored console output plus a buffered, daily       ║
# ║ rotating log file in the first writable log directory.                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import atexit
import logging
import os
import platform
import sys
import tempfile
from logging.handlers import MemoryHandler, QueueHandler, QueueListener, TimedRotatingFileHandler
from queue import Queue
from typing import List, Optional

# Third-party imports
from colorlog import ColoredFormatter

# Local application imports
from utils.environ import DEBUG, LOG_DIR

LOGGER_NAME = "icswatch"
LOG_FILE_NAME = "icswatch.log"
LOG_LEVEL = logging.DEBUG if DEBUG else logging.INFO
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Tried in order after LOG_DIR
FALLBACK_DIRS = [
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs"),
    tempfile.gettempdir(),
]

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOG DIRECTORY SELECTION                                                    ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- find_log_file ---
# Picks the log file path inside the first usable directory.
# The logger does not exist yet, so problems are reported on stderr.
# Args:
#     candidates: Directories to try, preferred first.
# Returns: The log file path, or None when no directory is writable.
def find_log_file(candidates: List[str]) -> Optional[str]:
    for index, directory in enumerate(candidates):
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            print(f"Notice: Could not use log directory {directory}: {e}", file=sys.stderr)
            continue
        if os.access(directory, os.W_OK):
            if index:
                print(f"Using fallback log directory: {directory}", file=sys.stderr)
            return os.path.join(directory, LOG_FILE_NAME)
    print("WARNING: No writable log directory found. File logging disabled.", file=sys.stderr)
    return None

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ HANDLERS                                                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(
        "%(log_color)s[%(asctime)s] %(levelname)s: %(message)s",
        datefmt=DATE_FORMAT,
        log_colors=LOG_COLORS,
    ))
    handler.setLevel(LOG_LEVEL)
    return handler


# --- _file_handler ---
# Midnight-rotating file (7 backups) behind a MemoryHandler that flushes on
# ERROR or every 1000 records. The file is only opened on the first write.
def _file_handler(path: str) -> logging.Handler:
    target = TimedRotatingFileHandler(
        path, when="midnight", interval=1, backupCount=7, encoding="utf-8", delay=True,
    )
    target.setFormatter(logging.Formatter(
        "[%(asctime)s] %(levelname)s in %(name)s [%(filename)s:%(lineno)d]: %(message)s",
        datefmt=DATE_FORMAT,
    ))
    target.setLevel(LOG_LEVEL)
    buffered = MemoryHandler(capacity=1000, flushLevel=logging.ERROR, target=target)
    buffered.setLevel(logging.DEBUG)
    return buffered

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOGGER INITIALIZATION                                                      ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- configure_logger ---
# Attaches a QueueHandler to the named logger and starts a QueueListener that
# fans records out to the console and file handlers off the calling thread.
# Safe to call more than once; later calls return the configured logger.
# Returns: (logger, active log file path or None).
def configure_logger(name: str = LOGGER_NAME):
    log = logging.getLogger(name)
    if getattr(log, "_icswatch_listener", None) is not None:
        return log, getattr(log, "_icswatch_log_file", None)

    log.setLevel(LOG_LEVEL)
    log.propagate = False
    log_file = find_log_file([LOG_DIR] + FALLBACK_DIRS)

    handlers = [_console_handler()]
    if log_file:
        try:
            handlers.append(_file_handler(log_file))
        except OSError as e:
            print(f"ERROR: Failed to set up file logging: {e}", file=sys.stderr)
            log_file = None

    queue: Queue = Queue(-1)
    log.addHandler(QueueHandler(queue))
    listener = QueueListener(queue, *handlers, respect_handler_level=True)
    listener.start()
    log._icswatch_listener = listener
    log._icswatch_log_file = log_file

    # --- shutdown ---
    # Drains the queue and flushes buffered file records at interpreter exit.
    def shutdown():
        listener.stop()
        for handler in handlers:
            handler.flush()
            handler.close()

    atexit.register(shutdown)

    log.debug(f"--- Logging initialized ({platform.system()} {platform.release()}) ---")
    if log_file:
        log.debug(f"Log file: {log_file}")
    else:
        log.warning("File logging is disabled.")
    return log, log_file


logger, active_log_file = configure_logger()


# --- get_log_file_location ---
# Returns: The active log file path, or a note that logging is console only.
def get_log_file_location() -> str:
    return active_log_file or "Console only (File logging disabled)"
