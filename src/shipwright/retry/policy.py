"""Retry policy and backoff delay calculation."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any


class BackoffMode(str, Enum):
    """Delay growth between attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay_ms: Delay unit for the backoff formula.
        backoff: How the delay grows with the attempt number.
        max_delay_ms: Upper bound for any single delay.
        timeout_ms: Per-attempt timeout, None for no timeout.
        jitter: Random spread applied to each delay, as a fraction (0.1 = +/-10%).
    """

    max_attempts: int = 3
    base_delay_ms: int = 5000
    backoff: BackoffMode = BackoffMode.EXPONENTIAL
    max_delay_ms: int = 60000
    timeout_ms: int | None = 600000
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Retry delays must not be negative")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0 and 1, got {self.jitter}")
        # Accept plain strings from config files
        object.__setattr__(self, "backoff", BackoffMode(self.backoff))

    def delay_ms(self, attempt: int) -> int:
        """Calculate the delay to apply after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-indexed).

        Returns:
            Delay in milliseconds, capped at max_delay_ms.
        """
        if self.backoff == BackoffMode.FIXED:
            delay = float(self.base_delay_ms)
        elif self.backoff == BackoffMode.LINEAR:
            delay = float(self.base_delay_ms * attempt)
        else:
            delay = float(self.base_delay_ms * (2 ** (attempt - 1)))

        if self.jitter:
            delay += delay * self.jitter * random.uniform(-1.0, 1.0)

        return int(min(max(delay, 0.0), self.max_delay_ms))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryPolicy:
        """Create from dictionary."""
        timeout = data.get("timeout_ms", 600000)
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            base_delay_ms=int(data.get("base_delay_ms", 5000)),
            backoff=BackoffMode(data.get("backoff", "exponential")),
            max_delay_ms=int(data.get("max_delay_ms", 60000)),
            timeout_ms=int(timeout) if timeout else None,
            jitter=float(data.get("jitter", 0.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_attempts": self.max_attempts,
            "base_delay_ms": self.base_delay_ms,
            "backoff": self.backoff.value,
            "max_delay_ms": self.max_delay_ms,
            "timeout_ms": self.timeout_ms or 0,
            "jitter": self.jitter,
        }


DEFAULT_RETRY_POLICY = RetryPolicy()
