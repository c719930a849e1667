"""End-to-end tests for the drain controller."""

import http.client
import logging
import threading
import time
import urllib.error

import pytest

from node_recycler.common.config import ConfigurationError, DrainConfig
from node_recycler.drain.controller import DrainController, DrainEvent
from node_recycler.drain.poller import PollerState
from node_recycler.fleet.proxy import LocalNodeProxy, WorkSession
from node_recycler.fleet.registry import FleetRegistry


class _CountingRegistry(FleetRegistry):
    def __init__(self):
        super().__init__()
        self.remove_calls = 0

    def remove_if_present(self, handle):
        self.remove_calls += 1
        return super().remove_if_present(handle)


class _FakeTransport:
    def __init__(self, error=None):
        self.error = error
        self.urls = []

    def post(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return 200


class _BusyProxy(LocalNodeProxy):
    def is_busy(self):
        return True


def _build(capacity, proxy=None, transport=None, interval=0.01):
    registry = _CountingRegistry()
    node = proxy or LocalNodeProxy("10.1.1.7", 5555)
    registry.add(node)
    transport = transport or _FakeTransport()
    controller = DrainController(
        node,
        registry,
        capacity=capacity,
        config=DrainConfig(poll_interval_sec=interval),
        transport=transport,
    )
    return controller, node, registry, transport


def _wait_for_state(controller, state, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline and controller.state is not state:
        time.sleep(0.005)
    return controller.state


def test_capacity_two_node_is_recycled_after_sessions_finish() -> None:
    controller, node, registry, transport = _build(capacity=2)
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    sessions = [WorkSession(), WorkSession()]
    barrier = threading.Barrier(2)
    decisions = []

    def _admit(session):
        barrier.wait()
        decisions.append(controller.try_admit(session))

    threads = [threading.Thread(target=_admit, args=(s,)) for s in sessions]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert all(d.admitted for d in decisions)
    assert controller.counter.remaining == 0

    controller.start_polling()
    time.sleep(0.05)
    assert controller.state is PollerState.ACTIVE
    assert registry.remove_calls == 0

    for session in sessions:
        node.after_session(session)

    assert _wait_for_state(controller, PollerState.TERMINATED) is PollerState.TERMINATED
    controller.poller.join(timeout=2)

    assert registry.remove_calls == 1
    assert registry.node_count == 0
    assert transport.urls == ["http://10.1.1.7:5555/extra/NodeShutDownServlet"]
    assert controller.result.succeeded is True
    assert DrainEvent.RELEASE_DECIDED in events
    assert events[-1] is DrainEvent.DECOMMISSIONED


def test_busy_node_is_never_released_until_cancelled() -> None:
    controller, node, registry, transport = _build(
        capacity=1, proxy=_BusyProxy("10.1.1.8", 5555)
    )
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    assert controller.try_admit(WorkSession()).admitted is True
    for _ in range(20):
        assert controller.poller.tick() is PollerState.ACTIVE

    controller.stop_polling()

    assert controller.state is PollerState.CANCELLED
    assert controller.poller.tick() is PollerState.CANCELLED
    assert registry.remove_calls == 0
    assert transport.urls == []
    assert events == [DrainEvent.POLLER_CANCELLED]


def test_failed_shutdown_still_completes_decommission(caplog) -> None:
    transport = _FakeTransport(
        error=urllib.error.URLError(ConnectionRefusedError(111, "Connection refused"))
    )
    controller, node, registry, _ = _build(capacity=0, transport=transport)

    with caplog.at_level(logging.INFO):
        assert controller.poller.tick() is PollerState.TERMINATED

    result = controller.result
    assert registry.remove_calls == 1
    assert result.deregistered is True
    assert result.shutdown_delivered is False
    assert "Connection refused" in result.shutdown_error
    assert len(transport.urls) == 1
    assert "10.1.1.7" in caplog.text
    assert "failed" in caplog.text


def test_ticks_after_release_do_not_decommission_again() -> None:
    controller, node, registry, transport = _build(capacity=0)

    for _ in range(5):
        controller.poller.tick()

    assert registry.remove_calls == 1
    assert len(transport.urls) == 1


@pytest.mark.parametrize(
    "capacity, busy, expected",
    [
        (0, False, True),
        (0, True, False),
        (1, False, False),
        (1, True, False),
    ],
)
def test_release_decision(capacity, busy, expected) -> None:
    proxy = _BusyProxy("h", 1) if busy else LocalNodeProxy("h", 1)
    controller, _, _, _ = _build(capacity=capacity, proxy=proxy)
    assert controller.should_release() is expected


def test_rejections_are_reported_as_events(caplog) -> None:
    controller, node, _, _ = _build(capacity=1)
    rejected = []
    controller.on_event(
        lambda event, payload: rejected.append(payload.session_id)
        if event is DrainEvent.ADMISSION_REJECTED else None
    )

    controller.try_admit(WorkSession(session_id="first"))
    with caplog.at_level(logging.WARNING):
        decision = controller.try_admit(WorkSession(session_id="second"))

    assert decision.admitted is False
    assert rejected == ["second"]
    assert node.sessions_started == 1
    assert "10.1.1.7" in caplog.text


def test_event_callback_errors_do_not_propagate() -> None:
    controller, _, _, _ = _build(capacity=0)

    def _boom(event, payload):
        raise RuntimeError("observer down")

    controller.on_event(_boom)

    assert controller.try_admit(WorkSession()).admitted is False
    assert controller.poller.tick() is PollerState.TERMINATED


def test_polling_lifecycle_reaches_inner_proxy() -> None:
    controller, node, _, _ = _build(capacity=5, interval=30.0)

    controller.start_polling()
    assert node.polling is True
    assert controller.poller.is_alive is True

    controller.stop_polling()
    controller.poller.join(timeout=2)
    assert node.polling is False
    assert controller.poller.is_alive is False
    assert controller.state is PollerState.CANCELLED


def test_stop_after_release_does_not_report_cancel() -> None:
    controller, _, _, _ = _build(capacity=0)
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    controller.poller.tick()
    controller.stop_polling()

    assert controller.state is PollerState.TERMINATED
    assert DrainEvent.POLLER_CANCELLED not in events


def test_attach_reads_capacity_from_file(tmp_path) -> None:
    (tmp_path / "mygrid.yaml").write_text("UniqueSessionCount: 3\n")
    registry = FleetRegistry()

    controller = DrainController.attach(
        LocalNodeProxy("h", 1),
        registry,
        config=DrainConfig(),
        config_dir=str(tmp_path),
        transport=_FakeTransport(),
    )

    assert controller.counter.remaining == 3


def test_attach_fails_without_capacity(tmp_path) -> None:
    (tmp_path / "mygrid.yaml").write_text("SomethingElse: 3\n")

    with pytest.raises(ConfigurationError):
        DrainController.attach(
            LocalNodeProxy("h", 1),
            FleetRegistry(),
            config_dir=str(tmp_path),
        )


class _StuckProxy(LocalNodeProxy):
    def stop_polling(self):
        raise RuntimeError("proxy detach failed")


def test_malformed_shutdown_response_still_reports_result() -> None:
    transport = _FakeTransport(error=http.client.BadStatusLine("garbage"))
    controller, _, registry, _ = _build(capacity=0, transport=transport)
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    assert controller.poller.tick() is PollerState.TERMINATED

    assert controller.result is not None
    assert controller.result.deregistered is True
    assert controller.result.shutdown_delivered is False
    assert controller.result.shutdown_error == "garbage"
    assert events[-1] is DrainEvent.DECOMMISSIONED


def test_release_decision_has_no_side_effects(caplog) -> None:
    controller, _, registry, transport = _build(capacity=0)
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    with caplog.at_level(logging.INFO):
        for _ in range(3):
            assert controller.should_release() is True

    assert events == []
    assert "can be released" not in caplog.text
    assert registry.remove_calls == 0
    assert transport.urls == []


def test_release_decision_event_emitted_once_per_decommission() -> None:
    controller, _, _, _ = _build(capacity=0)
    events = []
    controller.on_event(lambda event, payload: events.append(event))

    for _ in range(3):
        controller.poller.tick()

    assert events == [DrainEvent.RELEASE_DECIDED, DrainEvent.DECOMMISSIONED]


def test_failing_proxy_stop_still_cancels_poller() -> None:
    controller, _, registry, transport = _build(
        capacity=0, proxy=_StuckProxy("10.1.1.9", 5555)
    )

    with pytest.raises(RuntimeError, match="detach failed"):
        controller.stop_polling()

    assert controller.state is PollerState.CANCELLED
    assert controller.poller.tick() is PollerState.CANCELLED
    assert registry.remove_calls == 0
    assert transport.urls == []
