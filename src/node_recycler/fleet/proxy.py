"""Node proxy abstraction.

A proxy is the fleet-side stand-in for one worker node. It knows the
node's address, whether the node currently has work in flight, and how
to hand a new session to the node.
"""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol, Set, runtime_checkable

from node_recycler.common.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class NodeHandle:
    """Identity of a worker node."""
    host: str
    port: int

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class WorkSession:
    """A unit of work assigned to a node."""
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    capabilities: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NodeProxy(Protocol):
    """Capabilities the drain controller needs from a node proxy.

    Any object exposing these members satisfies the protocol; no
    inheritance is required.
    """

    @property
    def handle(self) -> NodeHandle: ...

    def is_busy(self) -> bool: ...

    def before_session(self, session: WorkSession) -> None: ...

    def start_polling(self) -> None: ...

    def stop_polling(self) -> None: ...


class LocalNodeProxy:
    """In-memory node proxy that tracks active sessions.

    ``before_session`` marks a session active and ``after_session``
    finishes it. The node is busy while any session is active.
    """

    def __init__(self, host: str, port: int):
        self._handle = NodeHandle(host=host, port=port)
        self._active: Set[str] = set()
        self._lock = threading.Lock()
        self._polling = False
        self.sessions_started = 0

    @property
    def handle(self) -> NodeHandle:
        return self._handle

    @property
    def polling(self) -> bool:
        return self._polling

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def is_busy(self) -> bool:
        with self._lock:
            return bool(self._active)

    def before_session(self, session: WorkSession) -> None:
        with self._lock:
            self._active.add(session.session_id)
            self.sessions_started += 1
        log.debug(f"Session {session.session_id} started on {self._handle.address}")

    def after_session(self, session: WorkSession) -> None:
        with self._lock:
            self._active.discard(session.session_id)
        log.debug(f"Session {session.session_id} finished on {self._handle.address}")

    def start_polling(self) -> None:
        self._polling = True

    def stop_polling(self) -> None:
        self._polling = False
