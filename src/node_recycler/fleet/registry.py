"""Fleet registry tracking the node proxies available for work.

Thread-safe directory keyed by node address. The drain controller only
ever removes entries; adding is done by whoever attaches nodes.
"""

import threading
from typing import Callable, Dict, List, Optional

from node_recycler.common.logging import get_logger
from node_recycler.fleet.proxy import NodeHandle, NodeProxy

log = get_logger(__name__)


class FleetRegistry:
    """Thread-safe registry of node proxies.

    Provides methods to add and remove proxies and query which nodes
    are currently routable.
    """

    def __init__(self):
        self._proxies: Dict[str, NodeProxy] = {}
        self._lock = threading.RLock()
        self._on_change_callbacks: List[Callable] = []

    def add(self, proxy: NodeProxy) -> None:
        """Add a proxy, replacing any existing entry at the same address."""
        address = proxy.handle.address
        with self._lock:
            self._proxies[address] = proxy
            log.info(f"[bold green]Node registered:[/] {address}")
            self._notify_change("add", proxy)

    def remove_if_present(self, handle: NodeHandle) -> bool:
        """Remove the proxy for ``handle`` if it is registered.

        Idempotent: removing an absent node is a no-op.

        Returns:
            True if an entry was removed.
        """
        with self._lock:
            proxy = self._proxies.pop(handle.address, None)
            if proxy is None:
                return False
            log.info(f"Node unregistered: {handle.address}")
            self._notify_change("remove", proxy)
            return True

    def get(self, handle: NodeHandle) -> Optional[NodeProxy]:
        with self._lock:
            return self._proxies.get(handle.address)

    def contains(self, handle: NodeHandle) -> bool:
        with self._lock:
            return handle.address in self._proxies

    def all_proxies(self) -> List[NodeProxy]:
        with self._lock:
            return list(self._proxies.values())

    def on_change(self, callback: Callable) -> None:
        """Register a callback for registry changes.

        Callback signature: callback(event: str, proxy: NodeProxy)
        """
        self._on_change_callbacks.append(callback)

    def _notify_change(self, event: str, proxy: NodeProxy) -> None:
        for cb in self._on_change_callbacks:
            try:
                cb(event, proxy)
            except Exception as e:
                log.error(f"Registry callback error: {e}")

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._proxies)

    def summary(self) -> str:
        with self._lock:
            addresses = sorted(self._proxies)
        return f"Nodes: {len(addresses)} ({', '.join(addresses) if addresses else 'none'})"
