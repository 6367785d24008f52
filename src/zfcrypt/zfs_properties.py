# --- START OF FILE zfcrypt/zfs_properties.py ---
"""
Dataset name validation and single-dataset property queries via `zfs get`.
"""

import re
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from zfcrypt.context import CommandContext
from zfcrypt.debug_logging import log_debug
from zfcrypt.zfs_command import (
    ZfsCommandBuilder, ZfsCommandError, ZfsDatasetNotFound, ZfsParsingError,
    ZfsValidationError, run_zfs,
)

ZFS_MAX_DATASET_NAME_LEN = 256
_COMPONENT_RE = re.compile(r'^[A-Za-z0-9_.:\- ]+$')

# Signature shared by run_zfs and the fakes used in tests
ZfsRunner = Callable[..., str]


def validate_dataset_name(name: str) -> None:
    """
    Checks that `name` is a filesystem or volume name (no snapshots or bookmarks).
    Raises ZfsValidationError describing the first problem found.
    """
    if not isinstance(name, str) or not name:
        raise ZfsValidationError("dataset name must not be empty")
    if len(name) >= ZFS_MAX_DATASET_NAME_LEN:
        raise ZfsValidationError(f"dataset name is too long ({len(name)} >= {ZFS_MAX_DATASET_NAME_LEN})")
    if '@' in name:
        raise ZfsValidationError(f"{name!r} is a snapshot name, expected a filesystem or volume")
    if '#' in name:
        raise ZfsValidationError(f"{name!r} is a bookmark name, expected a filesystem or volume")
    components = name.split('/')
    for component in components:
        if component == "":
            raise ZfsValidationError(f"{name!r} has an empty path component")
        if not _COMPONENT_RE.match(component):
            raise ZfsValidationError(f"{name!r} contains invalid characters in component {component!r}")
        if component in (".", ".."):
            raise ZfsValidationError(f"{name!r} contains reserved component {component!r}")
    if not components[0][0].isalpha():
        raise ZfsValidationError(f"pool name {components[0]!r} must begin with a letter")


class PropertySource(Enum):
    """Provenance filter for `zfs get -s`. ANY applies no filter."""
    LOCAL = "local"
    DEFAULT = "default"
    INHERITED = "inherited"
    TEMPORARY = "temporary"
    RECEIVED = "received"
    NONE = "none"
    ANY = "any"

    @classmethod
    def parse(cls, raw: str) -> "PropertySource":
        """Maps the SOURCE column of `zfs get` output to a PropertySource."""
        if raw == "-":
            return cls.NONE
        if raw.startswith("inherited"):  # "inherited from pool/parent"
            return cls.INHERITED
        try:
            return cls(raw)
        except ValueError:
            raise ZfsParsingError(f"unknown property source {raw!r}", raw_line=raw)


class ZfsProperties:
    """Values returned by one `zfs get` call. Missing properties read as ''."""

    def __init__(self, entries: Optional[Dict[str, Tuple[str, PropertySource]]] = None):
        self._entries: Dict[str, Tuple[str, PropertySource]] = dict(entries or {})

    @classmethod
    def from_values(cls, values: Dict[str, str], source: PropertySource = PropertySource.LOCAL) -> "ZfsProperties":
        return cls({k: (v, source) for k, v in values.items()})

    def get(self, name: str) -> str:
        entry = self._entries.get(name)
        return entry[0] if entry else ""

    def source(self, name: str) -> Optional[PropertySource]:
        entry = self._entries.get(name)
        return entry[1] if entry else None

    def __contains__(self, name):
        return name in self._entries

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        values = {k: v for k, (v, _s) in self._entries.items()}
        return f"ZfsProperties({values!r})"


def _build_get_command(dataset: str, names: List[str], source: PropertySource) -> ZfsCommandBuilder:
    builder = ZfsCommandBuilder('get').script().parsable().output_props(['property', 'value', 'source'])
    if source is not PropertySource.ANY:
        builder.sources([source.value])
    return builder.target(','.join(names)).target(dataset)


def parse_get_output(output: str, command_parts: Optional[List[str]] = None) -> ZfsProperties:
    """Parses `zfs get -H -p -o property,value,source` output."""
    entries = {}
    for line_num, line in enumerate(output.split('\n'), 1):
        if not line.strip(): continue
        fields = line.split('\t')
        if len(fields) != 3:
            raise ZfsParsingError(
                f"Could not parse property line {line_num}. Expected 3 tab-separated values, got {len(fields)}.",
                line, command_parts)
        prop, value, raw_source = fields
        entries[prop] = (value, PropertySource.parse(raw_source))
    return ZfsProperties(entries)


def get_properties(
    ctx: CommandContext,
    dataset: str,
    names: Iterable[str],
    source: PropertySource = PropertySource.ANY,
    *,
    runner: ZfsRunner = run_zfs,
) -> ZfsProperties:
    """
    Queries `names` on a single dataset.

    Raises ZfsDatasetNotFound if zfs reports the dataset missing, ZfsCommandError for other
    non-zero exits and ZfsExecutionError when zfs could not be run.
    """
    names = list(names)
    if not names:
        raise ValueError("at least one property name is required")
    builder = _build_get_command(dataset, names, source)
    try:
        output = runner(ctx, *builder.arguments())
    except ZfsCommandError as e:
        if e.output and "dataset does not exist" in e.output:
            raise ZfsDatasetNotFound(f"dataset '{dataset}' does not exist",
                                     e.command_parts, e.output, e.returncode) from e
        raise
    props = parse_get_output(output, builder.arguments())
    log_debug("ZFS_PROPS", f"{dataset}: {props!r}")
    return props

# --- END OF FILE zfcrypt/zfs_properties.py ---
