# --- START OF FILE zfcrypt/encryption.py ---
"""
ZFS native encryption checks.

- EncryptionCLIProber: once-only detection of whether this `zfs` has the encryption
  subcommands, with an environment override.
- EncryptionInspector: per-dataset `encryption` / `keystatus` interpretation and the
  live-send guard built on top of it.

Values that zfs documents as impossible (an empty `encryption` or `keystatus`, an
unknown key status) raise ZfsFatalError, which deliberately does not derive from
ZfsError so that ordinary `except ZfsError` handlers never swallow it.
"""

import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from zfcrypt import config_manager, constants
from zfcrypt.context import BACKGROUND, CommandContext
from zfcrypt.debug_logging import log, log_debug
from zfcrypt.zfs_command import (
    ZfsCommandError, ZfsConfigError, ZfsError, ZfsExecutionError, ZfsValidationError, run_zfs,
)
from zfcrypt.zfs_properties import PropertySource, ZfsProperties, get_properties, validate_dataset_name

LOG_PREFIX = "ENCRYPTION"

OP_ENCRYPTION_ENABLED = "zfs get encryption enabled"
OP_KEY_UNLOADED = "zfs get key loaded"
OP_CHECK_SEND = "zfs send precondition"


# --- Error Classes ---
class ZfsDataIntegrityError(ZfsError):
    """zfs reported a property value its documentation rules out."""
    pass

class ZfsKeyNotLoadedError(ZfsError):
    """A live send was refused because the dataset's key is not loaded."""
    def __init__(self, dataset: str):
        super().__init__(f"key for '{dataset}' is not loaded; load the key or use a raw send")
        self.dataset = dataset

class ZfsEncryptionQueryError(ZfsError):
    """Wraps a recoverable failure with the operation and dataset it happened in."""
    def __init__(self, operation: str, dataset: str, detail):
        super().__init__(f"{operation} fs={dataset!r}: {detail}")
        self.operation = operation
        self.dataset = dataset

class ZfsFatalError(Exception):
    """zfs behaved outside its documented contract. Not a ZfsError."""
    def __init__(self, message: str, dataset: Optional[str] = None, prop: Optional[str] = None, value: Optional[str] = None):
        super().__init__(message)
        self.dataset = dataset
        self.prop = prop
        self.value = value

class ZfsInvariantViolation(ZfsFatalError):
    """A property that always has a value came back empty."""
    pass

class ZfsUnknownKeyStatus(ZfsFatalError):
    """`keystatus` was neither 'available' nor 'unavailable'."""
    pass


# --- Result Types ---
class EncryptionStatus(Enum):
    UNSUPPORTED = "unsupported"
    DISABLED = "disabled"
    ENABLED = "enabled"

class KeyStatus(Enum):
    CAPABILITY_ABSENT = "capability-absent"  # treated as loaded
    LOADED = "loaded"
    UNLOADED = "unloaded"


@dataclass(frozen=True)
class EncryptionCLISupport:
    supported: bool
    error: Optional[Exception] = None


# --- Feature Detection ---
class EncryptionSupportDetector(ABC):
    """Decides whether the installed zfs has the native encryption subcommands."""

    @abstractmethod
    def detect(self, ctx: CommandContext) -> Tuple[bool, Optional[Exception]]:
        """
        Returns (default_supported, hard_error). hard_error is set only when zfs
        could not be run at all; default_supported is computed regardless.
        """


def _feature_check_failed(e: ZfsExecutionError) -> ZfsExecutionError:
    err = ZfsExecutionError(f"native encryption cli support feature check failed: {e}", e.command_parts)
    err.__cause__ = e
    return err


class LoadKeyUsageDetector(EncryptionSupportDetector):
    """
    Runs a bare `zfs load-key`, which fails and prints usage. Support is assumed when the
    usage text mentions both `load-key` and `keylocation`.
    """

    def __init__(self, runner: Callable[..., str] = run_zfs, needles=constants.LOAD_KEY_USAGE_NEEDLES):
        self._runner = runner
        self._needles = tuple(needles)

    def detect(self, ctx: CommandContext) -> Tuple[bool, Optional[Exception]]:
        output, error = "", None
        try:
            output = self._runner(ctx, "load-key")
        except ZfsCommandError as e:
            # expected: no dataset argument given
            output = e.output or ""
        except ZfsExecutionError as e:
            error = _feature_check_failed(e)
        return all(needle in output for needle in self._needles), error


class VersionDetector(EncryptionSupportDetector):
    """Parses `zfs version` and reports support for OpenZFS >= 0.8.0."""

    VERSION_RE = re.compile(r'zfs-(?:[A-Za-z]+-)?(\d+)\.(\d+)\.(\d+)')

    def __init__(self, runner: Callable[..., str] = run_zfs, minimum=constants.ENCRYPTION_MIN_ZFS_VERSION):
        self._runner = runner
        self._minimum = tuple(minimum)

    @classmethod
    def parse_version(cls, output: str) -> Optional[Tuple[int, int, int]]:
        match = cls.VERSION_RE.search(output)
        if not match:
            return None
        return int(match.group(1)), int(match.group(2)), int(match.group(3))

    def detect(self, ctx: CommandContext) -> Tuple[bool, Optional[Exception]]:
        output, error = "", None
        try:
            output = self._runner(ctx, "version")
        except ZfsCommandError as e:
            # releases before 0.8 have no 'version' subcommand
            output = e.output or ""
        except ZfsExecutionError as e:
            error = _feature_check_failed(e)
        version = self.parse_version(output)
        return version is not None and version >= self._minimum, error


# --- Capability Prober ---
class EncryptionCLIProber:
    """
    Caches the result of one feature detection for the lifetime of the instance.

    The first caller runs the detector while holding the lock; concurrent callers wait
    and then every caller gets the same EncryptionCLISupport.
    """

    def __init__(self, detector: Optional[EncryptionSupportDetector] = None,
                 override_env: str = constants.ENV_ENCRYPTION_CLI_SUPPORTED):
        self._detector = detector if detector is not None else LoadKeyUsageDetector()
        self._override_env = override_env
        self._lock = threading.Lock()
        self._state: Optional[EncryptionCLISupport] = None

    def probe_supported(self, ctx: CommandContext = BACKGROUND) -> EncryptionCLISupport:
        state = self._state
        if state is not None:
            return state
        with self._lock:
            if self._state is None:
                self._state = self._probe(ctx)
            return self._state

    def is_supported(self, ctx: CommandContext = BACKGROUND) -> bool:
        """Like probe_supported but raises the cached probe error."""
        state = self.probe_supported(ctx)
        if state.error is not None:
            raise state.error
        return state.supported

    def _probe(self, ctx: CommandContext) -> EncryptionCLISupport:
        detected, error = self._detector.detect(ctx)
        supported = detected
        try:
            supported = config_manager.get_env_bool(self._override_env, detected)
        except ValueError as e:
            log(LOG_PREFIX, f"Ignoring override: {e}", "WARNING")
            if error is None:
                error = ZfsConfigError(str(e))
        state = EncryptionCLISupport(supported=supported, error=error)
        log_debug(LOG_PREFIX, f"encryption cli feature check complete: {state!r} (detector={type(self._detector).__name__}, detected={detected})")
        return state


# --- Property Interpretation ---
def interpret_encryption(value: str, dataset: Optional[str] = None) -> EncryptionStatus:
    if value == "":
        raise ZfsInvariantViolation("zfs get should return a value for `encryption`",
                                    dataset, constants.PROP_ENCRYPTION, value)
    if value == constants.VALUE_NONE:
        raise ZfsDataIntegrityError("`encryption` property should never be \"-\"")
    if value == constants.ENCRYPTION_OFF:
        return EncryptionStatus.DISABLED
    # The enabled value is the cipher name (aes-256-gcm, aes-128-ccm, ...), which varies by
    # release. Anything that is neither "off" nor "-" is taken to mean enabled.
    return EncryptionStatus.ENABLED


def interpret_keystatus(value: str, dataset: Optional[str] = None) -> KeyStatus:
    if value == "":
        raise ZfsInvariantViolation("zfs get should return a value for `keystatus`",
                                    dataset, constants.PROP_KEYSTATUS, value)
    if value == constants.KEYSTATUS_AVAILABLE:
        return KeyStatus.LOADED
    if value == constants.KEYSTATUS_UNAVAILABLE:
        return KeyStatus.UNLOADED
    raise ZfsUnknownKeyStatus(f"Unknown key status {value!r} for {dataset!r}",
                              dataset, constants.PROP_KEYSTATUS, value)


# --- Gate Functions ---
PropertyQuery = Callable[[CommandContext, str, list, PropertySource], ZfsProperties]


class EncryptionInspector:
    """Answers the per-dataset encryption questions. Holds no per-dataset state."""

    def __init__(self, prober: Optional[EncryptionCLIProber] = None, query: PropertyQuery = get_properties):
        self.prober = prober if prober is not None else get_default_prober()
        self._query = query

    def _validate(self, operation: str, dataset: str) -> None:
        try:
            validate_dataset_name(dataset)
        except ZfsValidationError as e:
            raise ZfsEncryptionQueryError(operation, dataset, e) from e

    def _capability(self, ctx: CommandContext, operation: str, dataset: str) -> bool:
        state = self.prober.probe_supported(ctx)
        if state.error is not None:
            raise ZfsEncryptionQueryError(operation, dataset, state.error) from state.error
        return state.supported

    def _get_single(self, ctx: CommandContext, operation: str, dataset: str, prop: str) -> str:
        try:
            props = self._query(ctx, dataset, [prop], PropertySource.ANY)
        except ZfsError as e:
            raise ZfsEncryptionQueryError(operation, dataset, f"cannot get `{prop}` property: {e}") from e
        return props.get(prop)

    def encryption_status(self, ctx: CommandContext, dataset: str) -> EncryptionStatus:
        self._validate(OP_ENCRYPTION_ENABLED, dataset)
        if not self._capability(ctx, OP_ENCRYPTION_ENABLED, dataset):
            return EncryptionStatus.UNSUPPORTED
        value = self._get_single(ctx, OP_ENCRYPTION_ENABLED, dataset, constants.PROP_ENCRYPTION)
        try:
            return interpret_encryption(value, dataset)
        except ZfsDataIntegrityError as e:
            raise ZfsEncryptionQueryError(OP_ENCRYPTION_ENABLED, dataset, e) from e

    def encryption_enabled(self, ctx: CommandContext, dataset: str) -> bool:
        """False if encryption is off or zfs has no encryption support at all."""
        return self.encryption_status(ctx, dataset) is EncryptionStatus.ENABLED

    def key_status(self, ctx: CommandContext, dataset: str) -> KeyStatus:
        self._validate(OP_KEY_UNLOADED, dataset)
        if not self._capability(ctx, OP_KEY_UNLOADED, dataset):
            return KeyStatus.CAPABILITY_ABSENT
        value = self._get_single(ctx, OP_KEY_UNLOADED, dataset, constants.PROP_KEYSTATUS)
        return interpret_keystatus(value, dataset)

    def key_is_unloaded(self, ctx: CommandContext, dataset: str) -> bool:
        """
        True only when the key is known to be absent from the kernel module.

        Raw sends don't need the key. Live sends do, and receiving a live send into a
        volume whose key is unloaded can corrupt it (openzfs/zfs#14055), so callers
        check this before starting one. Without encryption support the key is assumed loaded.
        """
        return self.key_status(ctx, dataset) is KeyStatus.UNLOADED

    def check_send_allowed(self, ctx: CommandContext, dataset: str, raw: bool = False) -> None:
        """Raises ZfsKeyNotLoadedError if a live send of `dataset` must not start."""
        if raw:
            return
        # keystatus is "-" on unencrypted datasets
        if not self.encryption_enabled(ctx, dataset):
            return
        if self.key_is_unloaded(ctx, dataset):
            log(LOG_PREFIX, f"{OP_CHECK_SEND}: refusing live send of '{dataset}', key unloaded", "WARNING")
            raise ZfsKeyNotLoadedError(dataset)


# --- Process-wide defaults ---
_default_prober: Optional[EncryptionCLIProber] = None
_default_inspector: Optional[EncryptionInspector] = None
_defaults_lock = threading.Lock()


def get_default_prober() -> EncryptionCLIProber:
    global _default_prober
    with _defaults_lock:
        if _default_prober is None:
            _default_prober = EncryptionCLIProber()
        return _default_prober


def get_default_inspector() -> EncryptionInspector:
    global _default_inspector
    prober = get_default_prober()
    with _defaults_lock:
        if _default_inspector is None:
            _default_inspector = EncryptionInspector(prober)
        return _default_inspector


def encryption_cli_supported(ctx: CommandContext = BACKGROUND) -> bool:
    return get_default_prober().is_supported(ctx)

def encryption_enabled(ctx: CommandContext, dataset: str) -> bool:
    return get_default_inspector().encryption_enabled(ctx, dataset)

def key_is_unloaded(ctx: CommandContext, dataset: str) -> bool:
    return get_default_inspector().key_is_unloaded(ctx, dataset)

def check_send_allowed(ctx: CommandContext, dataset: str, raw: bool = False) -> None:
    get_default_inspector().check_send_allowed(ctx, dataset, raw)

# --- END OF FILE zfcrypt/encryption.py ---
