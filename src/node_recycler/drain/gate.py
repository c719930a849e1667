"""Admission gate wrapping a node proxy."""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from node_recycler.common.logging import get_logger
from node_recycler.drain.counter import CapacityCounter
from node_recycler.fleet.proxy import NodeHandle, NodeProxy, WorkSession

log = get_logger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of a single admission attempt."""

    admitted: bool
    reason: str = ""
    remaining: int = 0


class CapacityGatedProxy:
    """Node proxy decorator that admits sessions against a capacity counter.

    Only the session admission hook is intercepted. Every other attribute
    is delegated to the wrapped proxy, so the gated proxy can be used
    anywhere the wrapped one was.
    """

    def __init__(
        self,
        inner: NodeProxy,
        counter: CapacityCounter,
        on_reject: Optional[Callable[[WorkSession, AdmissionDecision], None]] = None,
    ):
        self._inner = inner
        self._counter = counter
        self._on_reject = on_reject

    @property
    def inner(self) -> NodeProxy:
        return self._inner

    @property
    def handle(self) -> NodeHandle:
        return self._inner.handle

    def try_admit(self, session: WorkSession) -> AdmissionDecision:
        """Admit ``session`` if capacity remains, forwarding it to the node.

        Rejection is a normal outcome and never raises.
        """
        remaining = self._counter.take()
        if remaining is None:
            decision = AdmissionDecision(
                admitted=False,
                reason="session capacity exhausted",
                remaining=0,
            )
            log.warning(
                f"Cannot forward any more sessions to {self.handle.host} "
                f"(rejected {session.session_id})"
            )
            if self._on_reject is not None:
                self._on_reject(session, decision)
            return decision

        log.debug(
            f"Admitted session {session.session_id} on {self.handle.host} "
            f"({remaining} remaining)"
        )
        self._inner.before_session(session)
        return AdmissionDecision(admitted=True, remaining=remaining)

    def before_session(self, session: WorkSession) -> None:
        self.try_admit(session)

    def is_busy(self) -> bool:
        return self._inner.is_busy()

    def start_polling(self) -> None:
        self._inner.start_polling()

    def stop_polling(self) -> None:
        self._inner.stop_polling()

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not defined on the gate itself.
        if name == "_inner":
            raise AttributeError(name)
        return getattr(self._inner, name)
