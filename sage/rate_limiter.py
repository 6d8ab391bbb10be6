"""
Rate Limiter Module

Per-user sliding window admission control for FAQ questions.

Design Rationale:
- One RateLimitState per user, kept in memory for the process lifetime
- Stale timestamps are purged lazily on every check
- admit() decides and, when it admits, reserves the slot in the same locked
  step, so concurrent messages from one user can never overshoot the bound.
  The pipeline hands the slot back with release() when the message is
  ignored or stopped by the cooldown gate, so those never burn quota
- Warnings are throttled per user so a flood of denied messages produces a
  single notice
- State is lost on restart, which is fine for a soft throttle

Usage:
    limiter = RateLimiter(max_per_window=5, window_seconds=60)
    now = time.time()
    decision = limiter.admit("1234", now)
    if decision.admitted and not worth_answering:
        limiter.release("1234", now)
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from sage.models import RateLimitDecision

logger = logging.getLogger(__name__)


@dataclass
class RateLimitState:
    """
    Sliding window state for one user.

    Attributes:
        timestamps: Instants (epoch seconds) of reserved slots, oldest first
        last_warning: When the user was last warned, if ever
    """
    timestamps: Deque[float] = field(default_factory=deque)
    last_warning: Optional[float] = None

    def purge(self, cutoff: float) -> None:
        """Drop timestamps older than the cutoff."""
        while self.timestamps and self.timestamps[0] < cutoff:
            self.timestamps.popleft()


class RateLimiter:
    """
    Bounds how many questions a user may trigger per time window.

    Each instance owns its own state, so tests and multiple bots never share
    a map. The read-then-mutate sequence never awaits and runs under a lock.
    """

    def __init__(
        self,
        max_per_window: int = 5,
        window_seconds: float = 60.0,
        warning_interval_seconds: float = 30.0,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_per_window: Admitted questions allowed per window
            window_seconds: Length of the sliding window
            warning_interval_seconds: Minimum gap between two warnings to the
                same user
        """
        if max_per_window < 1:
            raise ValueError("max_per_window must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.warning_interval_seconds = warning_interval_seconds

        self._states: Dict[str, RateLimitState] = {}
        self._lock = threading.Lock()

        logger.debug(
            f"RateLimiter created: max={max_per_window}, window={window_seconds}s"
        )

    def _state_for(self, user_id: str) -> RateLimitState:
        state = self._states.get(user_id)
        if state is None:
            state = RateLimitState()
            self._states[user_id] = state
        return state

    def admit(self, user_id: str, now: float) -> RateLimitDecision:
        """
        Decide whether a user may ask another question.

        An admitted call reserves a slot at now before returning; give it
        back with release() if the message turns out not to count.

        Args:
            user_id: Author of the message
            now: Current instant in epoch seconds

        Returns:
            RateLimitDecision
        """
        with self._lock:
            state = self._state_for(user_id)
            state.purge(now - self.window_seconds)

            if len(state.timestamps) < self.max_per_window:
                state.timestamps.append(now)
                return RateLimitDecision(admitted=True)

            oldest = state.timestamps[0]
            retry_after = max(0.0, self.window_seconds - (now - oldest))

            should_warn = (
                state.last_warning is None
                or now - state.last_warning >= self.warning_interval_seconds
            )
            if should_warn:
                state.last_warning = now

        logger.debug(f"Rate limited user {user_id}: retry in {retry_after:.1f}s")
        return RateLimitDecision(
            admitted=False,
            retry_after=retry_after,
            should_warn=should_warn,
        )

    def release(self, user_id: str, reserved_at: float) -> bool:
        """
        Give back a slot reserved by admit().

        Args:
            user_id: Author of the message
            reserved_at: The now passed to the admitting admit() call

        Returns:
            True if a slot was released, False if none was held at that instant
        """
        with self._lock:
            state = self._states.get(user_id)
            if state is None or reserved_at not in state.timestamps:
                return False
            state.timestamps.remove(reserved_at)
            return True

    def usage(self, user_id: str, now: float) -> int:
        """Number of slots the user currently occupies."""
        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                return 0
            state.purge(now - self.window_seconds)
            return len(state.timestamps)

    def reset(self, user_id: str) -> bool:
        """
        Forget a user's state.

        Returns:
            True if the user had state, False otherwise
        """
        with self._lock:
            return self._states.pop(user_id, None) is not None

    def __len__(self) -> int:
        """Return number of tracked users."""
        return len(self._states)
