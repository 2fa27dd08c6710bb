"""
Cooldown
Minimum spacing between invocations of something expensive (here: the
text-generation endpoint).
"""
import time
from typing import Callable, Optional


class Cooldown:
    """
    ``try_acquire()`` succeeds at most once per ``min_interval`` seconds.

    Usage:
        gate = Cooldown(min_interval=5.0)
        if gate.try_acquire():
            await explainer.explain(...)
    """

    def __init__(
        self,
        min_interval: float,
        last_invocation: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self.last_invocation = last_invocation
        self._clock = clock

    def remaining(self) -> float:
        """Seconds until the next invocation is allowed (0 when ready)."""
        if self.last_invocation is None:
            return 0.0
        elapsed = self._clock() - self.last_invocation
        return max(0.0, self.min_interval - elapsed)

    def ready(self) -> bool:
        return self.remaining() <= 0

    def try_acquire(self) -> bool:
        if not self.ready():
            return False
        self.last_invocation = self._clock()
        return True

    def reset(self) -> None:
        self.last_invocation = None
