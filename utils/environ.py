# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       ENVIRONMENT CONFIGURATION                            ║
# ║    Centralized access and type conversion for environment variables.       ║
# ║       Includes helpers for boolean, integer, and string values.            ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import os
from pathlib import Path
from typing import Optional

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ HELPER FUNCTIONS                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- get_bool_env ---
# Retrieves an environment variable and interprets it as a boolean.
# Considers '1', 'true', 'yes' (case-insensitive) as True.
# Args:
#     var_name: The name of the environment variable.
#     default: The default boolean value if the variable is not set.
# Returns: The boolean value of the environment variable or the default.
def get_bool_env(var_name: str, default: bool = False) -> bool:
    val = os.getenv(var_name, str(default)).lower()
    return val in ("1", "true", "yes")

# --- get_int_env ---
# Retrieves an environment variable and converts it to an integer.
# Args:
#     var_name: The name of the environment variable.
#     default: The default integer value if the variable is not set or invalid.
# Returns: The integer value of the environment variable or the default.
def get_int_env(var_name: str, default: int = 0) -> int:
    val_str = os.getenv(var_name)
    if val_str is None:
        return default
    try:
        return int(val_str)
    except ValueError:
        return default

# --- get_str_env ---
# Retrieves an environment variable as a string.
# Args:
#     var_name: The name of the environment variable.
#     default: The default string value if the variable is not set.
# Returns: The string value of the environment variable or the default.
def get_str_env(var_name: str, default: Optional[str] = "") -> Optional[str]:
    return os.getenv(var_name, default)

# --- get_default_data_dir ---
# Determines the default directory for persisted snapshots.
# Prefers the Docker volume (/data) when it exists, else a local data/ dir.
# Returns: A string representing the determined directory path.
def get_default_data_dir() -> str:
    docker_path = "/data"
    if os.path.isdir(docker_path) and os.access(docker_path, os.W_OK):
        return docker_path
    project_root = Path(__file__).resolve().parent.parent
    return str(project_root / "data")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CORE CONFIGURATION VARIABLES                                               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Debug mode flag (controls verbose logging)
DEBUG: bool = get_bool_env("DEBUG", False)

# Path to the JSON file listing the tracked calendar sources
CONFIG_PATH: str = get_str_env("CONFIG_PATH", "config.json")

# Root directory for persisted state (snapshots live in DATA_DIR/snapshots)
DATA_DIR: str = get_str_env("DATA_DIR", get_default_data_dir())

# Preferred log directory (falls back to ./logs or the temp dir)
LOG_DIR: str = get_str_env("LOG_DIR", "/data/logs")

# Discord webhook used to deliver change notifications (optional)
DISCORD_WEBHOOK_URL: Optional[str] = get_str_env("DISCORD_WEBHOOK_URL", None)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ FETCH CONFIGURATION VARIABLES                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Seconds before a single calendar download attempt is abandoned
FETCH_TIMEOUT: int = get_int_env("FETCH_TIMEOUT", 10)

# Attempts per fetch before the tick gives up on the source
FETCH_RETRIES: int = get_int_env("FETCH_RETRIES", 3)
