"""
Reconnect delay policy: exponential growth from a floor to a ceiling, with jitter.

Jitter spreads reconnects of many subscribers that lost their connections at
the same moment.
"""

from __future__ import annotations

import random

DEFAULT_MIN_DELAY_SEC = 1.0
DEFAULT_MAX_DELAY_SEC = 30.0
DEFAULT_FACTOR = 2.0
DEFAULT_JITTER = 0.2


class Backoff:
    """
    Stateful delay sequence.

    next() returns min_delay, then min_delay * factor, ... capped at max_delay;
    each returned value is multiplied by a random factor in [1 - jitter, 1 + jitter].
    reset() returns the sequence to its floor (call after a successful connect).
    """

    def __init__(
        self,
        min_delay_sec: float = DEFAULT_MIN_DELAY_SEC,
        max_delay_sec: float = DEFAULT_MAX_DELAY_SEC,
        factor: float = DEFAULT_FACTOR,
        jitter: float = DEFAULT_JITTER,
        *,
        rng: random.Random | None = None,
    ) -> None:
        if min_delay_sec <= 0:
            raise ValueError("min_delay_sec must be positive")
        if max_delay_sec < min_delay_sec:
            raise ValueError("max_delay_sec must be >= min_delay_sec")
        if factor < 1:
            raise ValueError("factor must be >= 1")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")
        self.min_delay_sec = min_delay_sec
        self.max_delay_sec = max_delay_sec
        self.factor = factor
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._current = min_delay_sec

    @property
    def current(self) -> float:
        """Unjittered value the next call will be based on."""
        return self._current

    def next(self) -> float:
        base = self._current
        self._current = min(self._current * self.factor, self.max_delay_sec)
        if self.jitter == 0:
            return base
        return base * (1.0 + self._rng.uniform(-self.jitter, self.jitter))

    def reset(self) -> None:
        self._current = self.min_delay_sec
