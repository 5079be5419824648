"""Backoff and reconnect policies kept as explicit, inspectable state."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class ExponentialBackoff:
    """
    Exponential backoff with bounded jitter.

    Every call to next_delay() doubles (by factor) the base delay up to
    max_delay and applies a random jitter of +/- jitter * delay. The returned
    delay never exceeds max_delay.
    """

    initial_delay: float
    """Base delay of the first attempt in seconds."""
    max_delay: float
    """Cap for any returned delay in seconds."""
    factor: float = 2.0
    """Growth factor between attempts."""
    jitter: float = 0.1
    """Relative jitter, 0.1 means +/- 10%."""
    attempt: int = 0
    """Number of delays handed out since the last reset."""
    rand: Callable[[float, float], float] = field(default=random.uniform, repr=False)
    """Random source, replaceable for deterministic tests."""

    def __post_init__(self) -> None:
        """Validate field values."""
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be positive, got {self.initial_delay}")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be at least initial_delay")
        if self.factor < 1:
            raise ValueError(f"factor must be at least 1, got {self.factor}")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    @property
    def base_delay(self) -> float:
        """Delay of the next attempt before jitter."""
        # Exponent is bounded so large attempt counts cannot overflow.
        exponent = min(self.attempt, 64)
        return min(self.max_delay, self.initial_delay * self.factor**exponent)

    def next_delay(self) -> float:
        """Return the delay for the next attempt and advance the attempt counter."""
        base = self.base_delay
        self.attempt += 1
        delay = base + self.rand(-self.jitter, self.jitter) * base
        return min(self.max_delay, max(0.0, delay))

    def reset(self) -> None:
        """Start over from the initial delay."""
        self.attempt = 0


@dataclass
class ReconnectPolicy:
    """
    Fixed-delay retry ceiling for playback sessions.

    The counter tracks consecutive failed attempts. A success (first decoded
    frame) resets it.
    """

    max_attempts: int
    """Consecutive failures that may still be retried."""
    delay: float
    """Fixed delay before each retry in seconds."""
    failures: int = 0
    """Consecutive failed attempts so far."""

    @property
    def exhausted(self) -> bool:
        """Return True if no further retry is allowed."""
        return self.failures > self.max_attempts

    def record_failure(self) -> bool:
        """Count one failed attempt.

        Returns:
            True if the failure may be retried.
        """
        self.failures += 1
        return not self.exhausted

    def reset(self) -> None:
        """Forget previous failures."""
        self.failures = 0
