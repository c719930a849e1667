"""Remaining-capacity counter for a single node."""

import threading
from typing import Optional


class CapacityCounter:
    """Number of sessions a node may still accept before it is recycled.

    The value only ever goes down. ``take`` is the single mutating
    operation (``try_consume`` wraps it); test and decrement happen under
    one lock so concurrent callers can never admit more than the initial
    capacity.
    """

    def __init__(self, initial: int):
        if isinstance(initial, bool) or not isinstance(initial, int):
            raise ValueError(f"Capacity must be an integer, got {initial!r}")
        if initial < 0:
            raise ValueError(f"Capacity must not be negative, got {initial}")
        self._initial = initial
        self._remaining = initial
        self._lock = threading.Lock()

    def take(self) -> Optional[int]:
        """Take one unit of capacity.

        Returns:
            The capacity left after this take, or None if the counter
            was already zero.
        """
        with self._lock:
            if self._remaining == 0:
                return None
            self._remaining -= 1
            return self._remaining

    def try_consume(self) -> bool:
        return self.take() is not None

    def is_exhausted(self) -> bool:
        with self._lock:
            return self._remaining == 0

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    @property
    def initial(self) -> int:
        return self._initial

    @property
    def consumed(self) -> int:
        with self._lock:
            return self._initial - self._remaining

    def __repr__(self) -> str:
        return f"CapacityCounter(remaining={self.remaining}, initial={self._initial})"
