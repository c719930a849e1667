"""Node-side endpoints for the node recycler."""

from .shutdown_server import ShutdownAck, create_shutdown_app

__all__ = ["ShutdownAck", "create_shutdown_app"]
