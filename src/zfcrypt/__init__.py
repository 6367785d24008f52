# --- START OF FILE zfcrypt/__init__.py ---
"""
zfcrypt - ZFS native encryption capability and key-status checks.

Single source of truth for version and app information.
"""

__version__ = "0.3.0"
__app_name__ = "zfcrypt"
__app_description__ = "Detects ZFS native encryption support and reports per-dataset encryption and key status."
__license__ = "GNU General Public License v3.0"

# --- END OF FILE zfcrypt/__init__.py ---
