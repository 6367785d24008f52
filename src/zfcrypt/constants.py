# --- START OF FILE zfcrypt/constants.py ---

"""
Central location for constants used across the zfcrypt modules.
"""

# --- Tool names ---
ZFS_CMD_NAME = "zfs"

# --- Properties queried by the encryption checks ---
PROP_ENCRYPTION = "encryption"
PROP_KEYSTATUS = "keystatus"

# Values reported by 'zfs get'
VALUE_NONE = "-"              # "not applicable" marker in zfs get output
ENCRYPTION_OFF = "off"
KEYSTATUS_AVAILABLE = "available"
KEYSTATUS_UNAVAILABLE = "unavailable"

# --- Feature detection ---
# Both must appear in the usage text printed by a bare 'zfs load-key'
LOAD_KEY_USAGE_NEEDLES = ("load-key", "keylocation")
# First OpenZFS release shipping native encryption
ENCRYPTION_MIN_ZFS_VERSION = (0, 8, 0)

# --- Environment overrides ---
ENV_ENCRYPTION_CLI_SUPPORTED = "ZFCRYPT_EXPERIMENTAL_ZFS_ENCRYPTION_CLI_SUPPORTED"
ENV_DEBUG = "ZFCRYPT_DEBUG"
ENV_CONFIG_FILE = "ZFCRYPT_CONFIG"

# --- Default Settings ---
# Fallback values used when the config file doesn't have the setting or value is invalid
DEFAULT_COMMAND_TIMEOUT = 120  # seconds

# --- CLI exit codes ---
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FATAL = 2

# --- END OF FILE zfcrypt/constants.py ---
