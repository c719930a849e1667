"""Drain controller for a single node.

Attached when a node joins the fleet. It gates session admission on the
node's remaining capacity and, once the node has used up its capacity
and finished all in-flight work, decommissions it:

1. Remove the node from the fleet registry
2. Send the node a shutdown command
"""

import os
from enum import Enum
from typing import Any, Callable, List, Optional

from node_recycler.common.config import DrainConfig, load_session_capacity
from node_recycler.common.logging import get_logger
from node_recycler.drain.counter import CapacityCounter
from node_recycler.drain.decommission import (
    DecommissionResult,
    DecommissionSequencer,
    HttpShutdownTransport,
    ShutdownTransport,
)
from node_recycler.drain.gate import AdmissionDecision, CapacityGatedProxy
from node_recycler.drain.poller import DrainPoller, PollerState
from node_recycler.fleet.proxy import NodeHandle, NodeProxy, WorkSession
from node_recycler.fleet.registry import FleetRegistry

log = get_logger(__name__)


class DrainEvent(Enum):
    """Observable drain controller events."""
    ADMISSION_REJECTED = "admission_rejected"
    RELEASE_DECIDED = "release_decided"
    DECOMMISSIONED = "decommissioned"
    POLLER_CANCELLED = "poller_cancelled"


class DrainController:
    """Owns the capacity counter and drain poller for one node.

    Use ``proxy`` (the gated proxy) wherever sessions are handed to the
    node; it rejects sessions once capacity is used up.
    """

    def __init__(
        self,
        proxy: NodeProxy,
        registry: FleetRegistry,
        capacity: int,
        config: Optional[DrainConfig] = None,
        transport: Optional[ShutdownTransport] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ):
        self.config = config or DrainConfig()
        self.registry = registry
        self.counter = CapacityCounter(capacity)
        self._callbacks: List[Callable] = []

        self._proxy = CapacityGatedProxy(
            proxy,
            self.counter,
            on_reject=self._on_admission_rejected,
        )
        self.sequencer = DecommissionSequencer(
            registry,
            transport=transport or HttpShutdownTransport(
                timeout_sec=self.config.shutdown_timeout_sec,
            ),
            shutdown_command=self.config.shutdown_command,
        )
        self.poller = DrainPoller(
            name=f"{self.handle.host}-drain",
            should_release=self.should_release,
            release=self._release,
            interval_sec=self.config.poll_interval_sec,
            wait=wait,
        )
        log.info(
            f"Drain controller attached to {self.handle.host} "
            f"(capacity {capacity})"
        )

    @classmethod
    def attach(
        cls,
        proxy: NodeProxy,
        registry: FleetRegistry,
        config: Optional[DrainConfig] = None,
        config_dir: Optional[str] = None,
        **kwargs: Any,
    ) -> "DrainController":
        """Create a controller, reading the capacity from configuration.

        Raises:
            ConfigurationError: If the capacity cannot be read. No
                controller is created in that case.
        """
        config = config or DrainConfig()
        path = config.capacity_file
        if config_dir is not None and not os.path.isabs(path):
            path = os.path.join(config_dir, path)
        capacity = load_session_capacity(path, config.capacity_key)
        return cls(proxy, registry, capacity, config=config, **kwargs)

    @property
    def proxy(self) -> CapacityGatedProxy:
        return self._proxy

    @property
    def handle(self) -> NodeHandle:
        return self._proxy.handle

    @property
    def result(self) -> Optional[DecommissionResult]:
        return self.poller.result

    @property
    def state(self) -> PollerState:
        return self.poller.state

    def try_admit(self, session: WorkSession) -> AdmissionDecision:
        return self._proxy.try_admit(session)

    def should_release(self) -> bool:
        """True when capacity is used up and the node has no work in flight."""
        if not self.counter.is_exhausted():
            return False
        return not self._proxy.is_busy()

    def start_polling(self) -> None:
        """Start the node proxy's own polling, then the drain poller."""
        self._proxy.start_polling()
        self.poller.start()

    def stop_polling(self) -> None:
        """Cancel the drain poller, then stop the node proxy's polling."""
        cancelled = self.poller.cancel()
        if cancelled:
            self._emit(DrainEvent.POLLER_CANCELLED, self.handle)
        self._proxy.stop_polling()

    def on_event(self, callback: Callable) -> None:
        """Register a callback for drain events.

        Callback signature: callback(event: DrainEvent, payload)
        """
        self._callbacks.append(callback)

    def _release(self) -> DecommissionResult:
        log.info(f"The node {self.handle.host} can be released now")
        self._emit(DrainEvent.RELEASE_DECIDED, self.handle)
        result = self.sequencer.release(self.handle)
        if result.succeeded:
            log.info(f"[bold green]Node {self.handle.host} decommissioned[/]")
        else:
            log.warning(
                f"Node {self.handle.host} decommissioned with errors "
                f"(deregistered={result.deregistered}, "
                f"shutdown_delivered={result.shutdown_delivered})"
            )
        self._emit(DrainEvent.DECOMMISSIONED, result)
        return result

    def _on_admission_rejected(
        self,
        session: WorkSession,
        decision: AdmissionDecision,
    ) -> None:
        self._emit(DrainEvent.ADMISSION_REJECTED, session)

    def _emit(self, event: DrainEvent, payload: Any) -> None:
        for cb in self._callbacks:
            try:
                cb(event, payload)
            except Exception as e:
                log.error(f"Drain event callback error: {e}")
