# Path configuration module for zfcrypt
# Centralizes executable lookup and the per-user config file location.

import os
import platform
import shutil
from pathlib import Path

from zfcrypt import constants

# User configuration paths (per-user, in home directory)
USER_CONFIG_DIR = Path.home() / ".config" / "zfcrypt"
USER_CONFIG_FILE_PATH = str(USER_CONFIG_DIR / "config.json")

__all__ = ['USER_CONFIG_DIR', 'USER_CONFIG_FILE_PATH', 'get_config_file_path', 'find_executable']


def get_config_file_path() -> str:
    """Return the config file path, honouring the ZFCRYPT_CONFIG override."""
    override = os.environ.get(constants.ENV_CONFIG_FILE)
    if override:
        return os.path.expanduser(override)
    return USER_CONFIG_FILE_PATH


def find_executable(name: str) -> str | None:
    """Find an executable by name.

    First tries shutil.which which searches PATH, then falls back to searching
    the sbin/bin directories where the ZFS userland is installed on each platform.

    Args:
        name: Executable base name to find

    Returns:
        Absolute path if found, otherwise None
    """
    path = shutil.which(name)
    if path:
        return path

    # zfs usually lives in an sbin directory which is often missing from a user's PATH
    system = platform.system()
    if system == 'Darwin':
        base_paths = ['/usr/local/zfs/bin', '/usr/local/bin', '/usr/local/sbin', '/opt/homebrew/bin', '/opt/homebrew/sbin']
    elif 'BSD' in system:
        base_paths = ['/sbin', '/usr/sbin', '/usr/local/sbin', '/usr/local/bin']
    else:
        base_paths = ['/usr/sbin', '/sbin', '/usr/local/sbin', '/usr/bin', '/bin', '/usr/local/bin']

    for p in base_paths:
        candidate = os.path.join(p, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None
