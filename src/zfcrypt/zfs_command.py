# --- START OF FILE zfcrypt/zfs_command.py ---

import datetime
import os
import shlex
import subprocess
import traceback
from dataclasses import dataclass
from typing import List, Optional, Union

from zfcrypt import config_manager, constants
from zfcrypt.context import BACKGROUND, CommandContext
from zfcrypt.debug_logging import log, log_debug
from zfcrypt.paths import find_executable

LOG_PREFIX = "ZFS_CMD"


# --- Error Classes ---
class ZfsError(Exception):
    """Base class for recoverable ZFS related errors."""
    pass

class ZfsCommandError(ZfsError):
    """The command ran and exited with a non-zero status."""
    def __init__(self, message, command_parts=None, output=None, returncode=None):
        super().__init__(message)
        self.command_parts = command_parts
        self.output = output
        self.returncode = returncode

    def __str__(self):
        details = []
        if self.command_parts:
            details.append(f"Command: {shlex.join(self.command_parts)}")
        if self.returncode is not None: details.append(f"Return Code: {self.returncode}")
        if self.output:
            output_short = self.output.strip()
            if len(output_short) > 300: output_short = output_short[:300] + "..."
            details.append(f"Output: {output_short}")
        details_str = " (" + ", ".join(details) + ")" if details else ""
        return f"{super().__str__()}{details_str}"

class ZfsDatasetNotFound(ZfsCommandError):
    """zfs reported that the dataset does not exist."""
    pass

class ZfsExecutionError(ZfsError):
    """The command could not be run at all (missing binary, permissions, timeout, deadline)."""
    def __init__(self, message, command_parts=None):
        super().__init__(message)
        self.command_parts = command_parts

class ZfsConfigError(ZfsError):
    """Invalid configuration or environment override."""
    pass

class ZfsValidationError(ZfsError):
    """A dataset name failed validation."""
    pass

class ZfsParsingError(ZfsError):
    """Custom exception for errors parsing ZFS command output."""
    def __init__(self, message, raw_line=None, command_parts=None):
        super().__init__(message)
        self.raw_line = raw_line
        self.command_parts = command_parts

    def __str__(self):
        details = []
        if self.command_parts: details.append(f"Command: {shlex.join(self.command_parts)}")
        if self.raw_line: details.append(f"Problematic Line: '{self.raw_line[:100]}{'...' if len(self.raw_line)>100 else ''}'")
        details_str = " (" + ", ".join(details) + ")" if details else ""
        return f"{super().__str__()}{details_str}"


@dataclass(frozen=True)
class CommandResult:
    command_parts: List[str]
    returncode: int
    output: str  # stdout and stderr interleaved


def get_zfs_path() -> Optional[str]:
    """Configured 'zfs_path' if set, otherwise a lookup on PATH and the usual sbin dirs."""
    configured = config_manager.get_setting("zfs_path")
    if configured:
        return configured
    return find_executable(constants.ZFS_CMD_NAME)


def _effective_timeout(ctx: CommandContext) -> float:
    timeout_seconds = config_manager.get_command_timeout()
    remaining = ctx.remaining()
    if remaining is not None:
        return min(timeout_seconds, remaining)
    return timeout_seconds


# --- Internal Command Runner ---
def run_command(command_parts: List[str], ctx: CommandContext = BACKGROUND) -> CommandResult:
    """
    Runs a command with stdout and stderr combined.

    Returns the result even for a non-zero exit; callers decide whether that is an error.
    Raises ZfsExecutionError when the process could not be started or did not finish.
    """
    if not command_parts or not command_parts[0]:
        raise ZfsExecutionError("Invalid command parts provided to run_command.", command_parts)

    cmd_str_safe = shlex.join(command_parts)
    if ctx.expired():
        raise ZfsExecutionError(f"Deadline exceeded before running '{cmd_str_safe}'.", command_parts)

    log_debug(LOG_PREFIX, f"Executing: {cmd_str_safe}")

    start_time = datetime.datetime.now()
    timeout_seconds = _effective_timeout(ctx)
    output, returncode = "", -1
    try:
        process = subprocess.run(
            command_parts,
            stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=False, # Read bytes
            check=False, # Don't raise exception on non-zero exit
            timeout=timeout_seconds
        )
        returncode = process.returncode
        output = process.stdout.decode('utf-8', errors='replace') if process.stdout else ""
        if returncode < 0:
            # killed by signal -returncode, did not exit
            raise ZfsExecutionError(f"Command '{cmd_str_safe}' was terminated by signal {-returncode}.", command_parts)
        if returncode != 0:
            log_debug(LOG_PREFIX, f"Command failed (ret={returncode}) for: {cmd_str_safe}")
    except FileNotFoundError:
        output = f"Command not found: '{command_parts[0]}'."
        raise ZfsExecutionError(output, command_parts)
    except PermissionError:
        output = f"Permission denied executing '{command_parts[0]}'."
        raise ZfsExecutionError(output, command_parts)
    except subprocess.TimeoutExpired:
        output = f"Command '{cmd_str_safe}' timed out after {timeout_seconds:g} seconds."
        raise ZfsExecutionError(output, command_parts)
    except OSError as e:
        output = f"Could not run {cmd_str_safe}: {e}"
        raise ZfsExecutionError(output, command_parts) from e
    finally:
        if ctx.log_enabled:
            _write_command_log(cmd_str_safe, start_time, returncode, output)

    return CommandResult(list(command_parts), returncode, output)


def _write_command_log(cmd_str_safe: str, start_time: datetime.datetime, returncode: int, output: str):
    log_path = config_manager.get_setting("command_log_file")
    if not log_path:
        return
    duration = datetime.datetime.now() - start_time
    try:
        log_dir = os.path.dirname(os.path.abspath(log_path))
        os.makedirs(log_dir, exist_ok=True)
        with open(log_path, 'a', encoding='utf-8') as log_file:
            log_file.write(f"--- {start_time.strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]} ---\n")
            log_file.write(f"COMMAND: {cmd_str_safe}\n")
            log_file.write(f"RETURN CODE: {returncode}\n")
            log_file.write(f"DURATION: {duration.total_seconds():.3f}s\n")
            if output: log_file.write("OUTPUT:\n"); log_file.write(output.strip() + "\n")
            log_file.write("\n")
    except OSError as log_e:
        log(LOG_PREFIX, f"Error writing to log file '{log_path}': {log_e}\n{traceback.format_exc()}", "ERROR")


# --- Command Builder ---
class ZfsCommandBuilder:
    """Collects `zfs` arguments; the binary itself is only resolved by build()."""
    def __init__(self, action: str):
        if not action:
            raise ValueError("zfs action cannot be empty")
        self._parts: List[str] = [action]

    def _add_option(self, flag: str, value: Union[str, bool]):
        if isinstance(value, bool):
            if value: self._parts.append(flag)
        elif value is not None:
            self._parts.extend([flag, str(value)])
        return self

    def _add_flag(self, flag: str, condition: bool = True):
        if condition:
            self._parts.append(flag)
        return self

    def _add_args(self, *args: Optional[str]):
        for arg in args:
            if arg is not None:
                self._parts.append(arg)
        return self

    def parsable(self, condition=True): return self._add_flag('-p', condition)
    def script(self, condition=True): return self._add_flag('-H', condition) # No header, tab separated
    def output_props(self, props: List[str]): return self._add_option('-o', ','.join(props))
    def sources(self, sources: Optional[List[str]]):
        if sources: self._add_option('-s', ','.join(sources))
        return self
    def target(self, name: str): return self._add_args(name)
    def targets(self, *names: str): return self._add_args(*names)

    def arguments(self) -> List[str]:
        """Everything after the zfs binary, starting with the action."""
        return list(self._parts)

    def build(self) -> List[str]:
        zfs_path = get_zfs_path()
        if not zfs_path: raise ZfsExecutionError("zfs command not found.")
        return [zfs_path] + self._parts

    def run(self, ctx: CommandContext = BACKGROUND) -> CommandResult:
        """Builds and runs the command using run_command."""
        return run_command(self.build(), ctx)


def run_zfs(ctx: CommandContext, action: str, *args: str) -> str:
    """
    Runs `zfs <action> <args...>` and returns its combined output.

    Raises ZfsCommandError (with the output attached) on a non-zero exit and
    ZfsExecutionError when zfs could not be run.
    """
    result = ZfsCommandBuilder(action).targets(*args).run(ctx)
    if result.returncode != 0:
        raise ZfsCommandError(f"zfs {action} failed.", result.command_parts, result.output, result.returncode)
    return result.output

# --- END OF FILE zfcrypt/zfs_command.py ---
