"""One-shot decommissioning of a drained node.

Deregisters the node from the fleet registry, then asks the node to shut
itself down over HTTP. Shutdown delivery is fire-and-forget: it is never
retried, and its failure is reported in the result rather than raised.
"""

import http.client
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Optional, Protocol

from node_recycler.common.config import DEFAULT_SHUTDOWN_COMMAND
from node_recycler.common.logging import get_logger
from node_recycler.fleet.proxy import NodeHandle
from node_recycler.fleet.registry import FleetRegistry

log = get_logger(__name__)


def build_shutdown_url(
    handle: NodeHandle,
    command: str = DEFAULT_SHUTDOWN_COMMAND,
) -> str:
    return f"http://{handle.host}:{handle.port}/extra/{command}"


class ShutdownTransport(Protocol):
    """Delivers a shutdown command to a node."""

    def post(self, url: str) -> int:
        """POST to ``url`` with no body and return the HTTP status code.

        Raises OSError (including urllib.error.URLError) if the request
        could not be delivered, or http.client.HTTPException if the node
        sent back a malformed response.
        """
        ...


class HttpShutdownTransport:
    """Shutdown transport backed by urllib."""

    def __init__(self, timeout_sec: Optional[float] = None):
        self.timeout_sec = timeout_sec

    def post(self, url: str) -> int:
        req = urllib.request.Request(url=url, data=b"", method="POST")
        timeout = (
            self.timeout_sec
            if self.timeout_sec is not None
            else socket.getdefaulttimeout()
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as response:
                return response.status
        except urllib.error.HTTPError as e:
            # Error responses still reached the node.
            return e.code


@dataclass
class DecommissionResult:
    """Outcome of both decommission steps for one node."""

    host: str
    port: int
    deregistered: bool = False
    deregister_error: str = ""
    shutdown_url: str = ""
    shutdown_delivered: bool = False
    shutdown_status: Optional[int] = None
    shutdown_error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.deregistered and self.shutdown_delivered


class DecommissionSequencer:
    """Deregisters a node and sends it a shutdown command.

    The two steps are strictly ordered and there is no rollback: a node
    removed from the registry stays removed even if the shutdown request
    never reaches it.
    """

    def __init__(
        self,
        registry: FleetRegistry,
        transport: Optional[ShutdownTransport] = None,
        shutdown_command: str = DEFAULT_SHUTDOWN_COMMAND,
    ):
        self.registry = registry
        self.transport = transport or HttpShutdownTransport()
        self.shutdown_command = shutdown_command

    def release(self, handle: NodeHandle) -> DecommissionResult:
        result = DecommissionResult(
            host=handle.host,
            port=handle.port,
            shutdown_url=build_shutdown_url(handle, self.shutdown_command),
        )
        self._deregister(handle, result)
        self._send_shutdown(handle, result)
        return result

    def _deregister(self, handle: NodeHandle, result: DecommissionResult) -> None:
        try:
            self.registry.remove_if_present(handle)
        except Exception as e:
            result.deregister_error = str(e) or type(e).__name__
            log.error(
                f"Failed to release {handle.host} from the registry: "
                f"{result.deregister_error}"
            )
            return
        result.deregistered = True
        log.info(
            f"[bold green]{handle.host} has been released successfully "
            f"from the registry[/]"
        )

    def _send_shutdown(self, handle: NodeHandle, result: DecommissionResult) -> None:
        try:
            status = self.transport.post(result.shutdown_url)
        except (OSError, http.client.HTTPException) as e:
            result.shutdown_error = str(e) or type(e).__name__
            log.error(
                f"[bold red]Shutdown request to {handle.host} failed:[/] "
                f"{result.shutdown_error}"
            )
            return
        result.shutdown_delivered = True
        result.shutdown_status = status
        log.info(
            f"Node {handle.host} shutdown requested "
            f"({result.shutdown_url} -> HTTP {status})"
        )
