"""CLI entry point for serving a node's shutdown endpoint."""

import argparse

import uvicorn

from node_recycler.common.config import load_config
from node_recycler.common.logging import get_logger, setup_logging
from node_recycler.node import create_shutdown_app

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Serve the shutdown endpoint for a recyclable node"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to a YAML config file (default: configs/default.yaml)"
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host to bind to (default: node.host from config)"
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to bind to (default: node.port from config)"
    )
    parser.add_argument(
        "--command", type=str, default=None,
        help="Shutdown command name (default: node.shutdown_command from config)"
    )
    parser.add_argument(
        "--log-file", type=str, default=None,
        help="Also append log lines to this file (default: console only)"
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )

    args = parser.parse_args()

    config = load_config(args.config).node
    host = args.host or config.host
    port = args.port or config.port
    command = args.command or config.shutdown_command

    setup_logging(
        level=args.log_level, component=f"node:{port}", log_file=args.log_file
    )

    server = None

    def _shutdown() -> None:
        log.info(f"Stopping node endpoint on {host}:{port}")
        if server is not None:
            server.should_exit = True

    app = create_shutdown_app(on_shutdown=_shutdown, command_name=command)
    server = uvicorn.Server(
        uvicorn.Config(app, host=host, port=port, log_level=args.log_level.lower())
    )
    log.info(f"Node endpoint listening on http://{host}:{port}/extra/{command}")
    server.run()


if __name__ == "__main__":
    main()
