"""Background drain poller.

Runs as one daemon thread per controller, periodically checking whether
the node has used up its capacity and gone idle. When it has, the poller
runs the release callback exactly once and exits.
"""

import threading
from enum import Enum
from typing import Callable, Optional

from node_recycler.common.logging import get_logger
from node_recycler.drain.decommission import DecommissionResult

log = get_logger(__name__)


class PollerState(Enum):
    """Drain poller lifecycle states."""
    IDLE = "idle"
    ACTIVE = "active"
    RELEASING = "releasing"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


class DrainPoller:
    """Cancellable periodic check for the node release condition.

    Cancellation is cooperative. It takes effect between ticks or at the
    top of a tick; once the release callback has started it always runs
    to completion and the poller ends up TERMINATED.

    Args:
        name: Thread name, usually derived from the node host.
        should_release: Evaluated once per tick with fresh state.
        release: Called at most once, when ``should_release`` is True.
        interval_sec: Delay between ticks.
        wait: Optional sleep function ``wait(seconds) -> cancelled``.
            Defaults to waiting on the internal cancellation event.
    """

    def __init__(
        self,
        name: str,
        should_release: Callable[[], bool],
        release: Callable[[], Optional[DecommissionResult]],
        interval_sec: float = 10.0,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive, got {interval_sec}")
        self.name = name
        self.interval = interval_sec
        self._should_release = should_release
        self._release = release
        self._cancel_event = threading.Event()
        self._wait = wait or self._cancel_event.wait
        self._state = PollerState.IDLE
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.result: Optional[DecommissionResult] = None
        self.ticks = 0

    @property
    def state(self) -> PollerState:
        with self._state_lock:
            return self._state

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the poller background thread."""
        with self._state_lock:
            if self._thread is not None or self._state is not PollerState.IDLE:
                raise RuntimeError(
                    f"Drain poller {self.name} already started ({self._state.value})"
                )
            self._state = PollerState.ACTIVE
            self._thread = threading.Thread(
                target=self._poll_loop,
                daemon=True,
                name=self.name,
            )
        self._thread.start()
        log.info(f"Drain poller started for {self.name} (every {self.interval:g}s)")

    def cancel(self) -> bool:
        """Request the poller to stop.

        Returns:
            True if the poller was cancelled, False if it was already
            releasing or finished.
        """
        with self._state_lock:
            if self._state not in (PollerState.IDLE, PollerState.ACTIVE):
                return False
            self._state = PollerState.CANCELLED
            self._cancel_event.set()
        log.info(f"Drain poller cancelled for {self.name}")
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def tick(self) -> PollerState:
        """Evaluate the release condition once and act on it."""
        with self._state_lock:
            if self._state is PollerState.IDLE:
                self._state = PollerState.ACTIVE
            if self._state is not PollerState.ACTIVE:
                return self._state
            self.ticks += 1

        try:
            release_now = self._should_release()
        except Exception as e:
            log.error(f"Release check failed for {self.name}: {e}")
            return self.state

        if not release_now:
            return self.state

        with self._state_lock:
            if self._state is not PollerState.ACTIVE:
                return self._state
            self._state = PollerState.RELEASING

        try:
            self.result = self._release()
        except Exception:
            log.exception(f"Release of {self.name} did not complete")
        finally:
            with self._state_lock:
                self._state = PollerState.TERMINATED
        return PollerState.TERMINATED

    def _poll_loop(self) -> None:
        while True:
            state = self.tick()
            if state is not PollerState.ACTIVE:
                log.debug(f"Drain poller for {self.name} exiting ({state.value})")
                return
            if self._wait(self.interval):
                return
