"""Node-side HTTP endpoint that receives the shutdown command.

The drain controller POSTs to ``/extra/<command>`` on the node once the
node has been removed from the fleet. The endpoint acknowledges the
request and then runs the shutdown callback in the background.
"""

import time
from typing import Callable

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel

from node_recycler.common.config import DEFAULT_SHUTDOWN_COMMAND
from node_recycler.common.logging import get_logger

log = get_logger(__name__)


class ShutdownAck(BaseModel):
    """Response body for an accepted shutdown command."""

    command: str
    accepted: bool = True
    timestamp_ms: int


def create_shutdown_app(
    on_shutdown: Callable[[], None],
    command_name: str = DEFAULT_SHUTDOWN_COMMAND,
) -> FastAPI:
    app = FastAPI(title="Node Recycler Node Endpoint")
    app.state.command_name = command_name
    app.state.shutdown_requested = False

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/extra/{command}", response_model=ShutdownAck)
    def extra_command(command: str, background_tasks: BackgroundTasks):
        if command != app.state.command_name:
            raise HTTPException(status_code=404, detail=f"Unknown command: {command}")
        if app.state.shutdown_requested:
            log.info("Shutdown already requested, ignoring duplicate")
        else:
            app.state.shutdown_requested = True
            log.warning("[bold red]Shutdown command received[/]")
            background_tasks.add_task(on_shutdown)
        return ShutdownAck(command=command, timestamp_ms=int(time.time() * 1000))

    return app
