"""All-in-one demo for the node recycler.

Spawns a node endpoint process, attaches a drain controller to it with a
small session capacity, runs more sessions than the node may accept and
waits for the controller to release and shut down the node.

Usage:
    python scripts/run_demo.py
    python scripts/run_demo.py --capacity 3 --sessions 5 --port 5600
"""

import argparse
import os
import subprocess
import sys
import time

# Add src to path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(ROOT, "src"))

from node_recycler.common.config import DrainConfig
from node_recycler.common.logging import setup_logging, get_logger
from node_recycler.drain.controller import DrainController, DrainEvent
from node_recycler.drain.poller import PollerState
from node_recycler.fleet.proxy import LocalNodeProxy, WorkSession
from node_recycler.fleet.registry import FleetRegistry

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Node Recycler Demo")
    parser.add_argument(
        "--capacity", type=int, default=2,
        help="Unique session count for the node (default: 2)"
    )
    parser.add_argument(
        "--sessions", type=int, default=4,
        help="Sessions to attempt on the node (default: 4)"
    )
    parser.add_argument(
        "--port", type=int, default=5555,
        help="Port for the node endpoint (default: 5555)"
    )
    parser.add_argument(
        "--poll-interval", type=float, default=1.0,
        help="Drain poll interval in seconds (default: 1.0)"
    )
    parser.add_argument(
        "--log-file", type=str, default=None,
        help="Also append the audit trail to this file"
    )

    args = parser.parse_args()

    setup_logging(level="INFO", component="demo", log_file=args.log_file)

    node_proc = None
    try:
        log.info(f"[bold blue]Starting node endpoint[/] on port {args.port}")
        node_proc = subprocess.Popen(
            [
                sys.executable, "-m", "node_recycler.cli.start_node",
                "--host", "127.0.0.1",
                "--port", str(args.port),
                "--log-level", "INFO",
            ],
            cwd=ROOT,
            env={**os.environ, "PYTHONPATH": os.path.join(ROOT, "src")},
        )
        time.sleep(2)  # Give the endpoint time to start

        registry = FleetRegistry()
        node = LocalNodeProxy("127.0.0.1", args.port)
        registry.add(node)

        controller = DrainController(
            node,
            registry,
            capacity=args.capacity,
            config=DrainConfig(poll_interval_sec=args.poll_interval),
        )
        controller.on_event(
            lambda event, payload: log.info(f"[magenta]event[/] {event.value}")
        )
        controller.start_polling()

        admitted = []
        for _ in range(args.sessions):
            session = WorkSession()
            decision = controller.try_admit(session)
            if decision.admitted:
                admitted.append(session)
            log.info(
                f"Session {session.session_id}: "
                f"{'admitted' if decision.admitted else 'rejected'} "
                f"({decision.remaining} remaining)"
            )

        time.sleep(args.poll_interval * 2)
        log.info(f"Finishing {len(admitted)} sessions")
        for session in admitted:
            node.after_session(session)

        deadline = time.time() + args.poll_interval * 5
        while controller.state is not PollerState.TERMINATED and time.time() < deadline:
            time.sleep(0.2)

        result = controller.result
        print("\n" + "=" * 60)
        print("NODE RECYCLER RESULT")
        print("=" * 60)
        print(f"Poller state:       {controller.state.value}")
        print(f"Registry:           {registry.summary()}")
        if result is not None:
            print(f"Deregistered:       {result.deregistered}")
            print(f"Shutdown delivered: {result.shutdown_delivered}")
            print(f"Shutdown status:    {result.shutdown_status}")
            if result.shutdown_error:
                print(f"Shutdown error:     {result.shutdown_error}")
        print("=" * 60)

        controller.stop_polling()
        if node_proc.poll() is None:
            node_proc.wait(timeout=5)

    except KeyboardInterrupt:
        log.info("\nDemo interrupted")

    except Exception as e:
        log.error(f"Demo failed: {e}")
        import traceback
        traceback.print_exc()

    finally:
        if node_proc is not None and node_proc.poll() is None:
            try:
                node_proc.terminate()
                node_proc.wait(timeout=5)
            except (subprocess.TimeoutExpired, OSError):
                node_proc.kill()

        log.info("[bold green]Demo complete![/]")


if __name__ == "__main__":
    main()
