# --- START OF FILE zfcrypt/config_manager.py ---

import json
import os
import sys

from zfcrypt import constants
from zfcrypt.paths import get_config_file_path

# Values accepted by get_env_bool, same vocabulary as Go's strconv.ParseBool
_TRUE_STRINGS = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_STRINGS = ("0", "f", "F", "FALSE", "false", "False")


def load_config() -> dict:
    """Loads the configuration from the JSON file."""
    config_path = get_config_file_path()
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
                if isinstance(config, dict):
                    return config
                else:
                    print(f"CONFIG [WARNING]: Config file '{config_path}' does not contain a valid JSON object. Using defaults.", file=sys.stderr)
                    return {}
        except (json.JSONDecodeError, IOError) as e:
            print(f"CONFIG [ERROR]: Error loading config file '{config_path}': {e}. Using defaults.", file=sys.stderr)
            return {}
    return {}


# --- Setting accessors with defaults ---
_config_cache = None

def _get_cached_config() -> dict:
    """Internal helper to load config only once."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache

def reload_config() -> dict:
    """Drops the cached config and reads the file again."""
    global _config_cache
    _config_cache = None
    return _get_cached_config()

def get_setting(key: str, default=None):
    """Gets a specific setting from the config, returning a default if not found."""
    return _get_cached_config().get(key, default)


def get_command_timeout() -> int:
    """Returns the configured subprocess timeout in seconds, falling back to the default."""
    timeout_seconds = get_setting("command_timeout", constants.DEFAULT_COMMAND_TIMEOUT)
    try:
        timeout_seconds = int(timeout_seconds)
    except (ValueError, TypeError):
        print(f"CONFIG [WARNING]: Invalid command_timeout in config. Using default: {constants.DEFAULT_COMMAND_TIMEOUT}s", file=sys.stderr)
        return constants.DEFAULT_COMMAND_TIMEOUT
    if timeout_seconds <= 0:
        return constants.DEFAULT_COMMAND_TIMEOUT
    return timeout_seconds


# --- Environment overrides ---

def get_env_bool(name: str, default: bool) -> bool:
    """
    Reads a boolean override from the environment.

    An unset or empty variable yields `default`. Any other value must be one of the
    strconv.ParseBool spellings, otherwise ValueError is raised.
    """
    raw = os.environ.get(name, "")
    if raw == "":
        return default
    if raw in _TRUE_STRINGS:
        return True
    if raw in _FALSE_STRINGS:
        return False
    raise ValueError(f"environment variable {name}={raw!r} is not a valid boolean")

# --- END OF FILE zfcrypt/config_manager.py ---
