"""
Unified Logging Utility for zfcrypt

Provides a small prefix/level logger that:
- Writes every message to stderr as "PREFIX [LEVEL]: message"
- Filters DEBUG-level messages unless debug mode is on (--debug or ZFCRYPT_DEBUG)

Usage:
    from zfcrypt.debug_logging import log, log_debug, set_debug_mode

Modules call:
    log("ZFS_CMD", "message")                     # INFO level
    log("ENCRYPTION", "probe details", "DEBUG")   # Only logged in debug mode
    log("CLI", "error occurred", "ERROR")
"""

import os
import sys

from zfcrypt import constants

# Global state
_debug_enabled = os.environ.get(constants.ENV_DEBUG, "").lower() in ("1", "true", "yes", "on")


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug logging globally."""
    global _debug_enabled
    _debug_enabled = enabled


def is_debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return _debug_enabled


def log(prefix: str, message: str, level: str = "INFO") -> None:
    """
    Log a message with the specified level.

    Args:
        prefix: Module prefix (e.g., "ZFS_CMD", "ENCRYPTION", "CONFIG")
        message: The log message
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL. DEBUG messages are only shown when debug mode is enabled.
    """
    if level == "DEBUG" and not _debug_enabled:
        return

    txt = f"{prefix} [{level}]: {message}" if prefix else f"[{level}]: {message}"
    print(txt, file=sys.stderr)


def log_debug(prefix: str, message: str) -> None:
    log(prefix, message, "DEBUG")
