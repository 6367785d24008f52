# --- START OF FILE zfcrypt/context.py ---

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CommandContext:
    """
    Per-call context threaded from the public checks down to the command runner.

    `deadline` is an absolute time.monotonic() value; None means only the configured
    command timeout applies. `log_enabled` turns on the per-command log file.
    """
    deadline: Optional[float] = None
    log_enabled: bool = False

    @classmethod
    def with_timeout(cls, seconds: float, **kwargs) -> "CommandContext":
        return cls(deadline=time.monotonic() + seconds, **kwargs)

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, None without a deadline. Never negative."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline


BACKGROUND = CommandContext()

# --- END OF FILE zfcrypt/context.py ---
