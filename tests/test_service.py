import functools
import socket
import threading
import time

import pytest

import discovery.service as service_mod
from common.address import Address
from common.errors import BindError, NoAddressError
from conftest import linux_only, wait_until
from discovery.service import DiscoveryCoordinator, Role


class FakeServer:
    started = []

    def __init__(self, ip, port):
        self.ip = ip
        self.port = port
        self.closed = False

    @classmethod
    def start(cls, ip, port):
        srv = cls(ip, port)
        cls.started.append(srv)
        return srv

    def close(self):
        self.closed = True


class FakeClient:
    connected = []

    def __init__(self, ip, port):
        self.address = Address(ip, port)
        self.closed = False

    @classmethod
    def connect(cls, ip, port):
        client = cls(ip, port)
        cls.connected.append(client)
        return client

    def close(self):
        self.closed = True


@pytest.fixture
def fakes(monkeypatch):
    FakeServer.started = []
    FakeClient.connected = []
    monkeypatch.setattr(service_mod, "Server", FakeServer)
    monkeypatch.setattr(service_mod, "Client", FakeClient)
    return FakeServer, FakeClient


def fixed_scan(result, calls=None, delay=0.0):
    def _scan(ip, port, timeout):
        if calls is not None:
            calls.append((ip, port))
        time.sleep(delay)
        return result

    return _scan


def test_no_peer_elects_self_as_server_and_client(fakes):
    calls = []
    coordinator = DiscoveryCoordinator(
        7890,
        resolve_address=lambda: "10.0.0.5",
        scan=fixed_scan(None, calls),
    )

    service = coordinator.get_service()

    assert calls == [("10.0.0.5", 7890)]
    assert service.role is Role.SERVER_CLIENT
    assert len(FakeServer.started) == 1
    assert (service.server.ip, service.server.port) == ("10.0.0.5", 7890)
    assert len(FakeClient.connected) == 1
    assert service.client.address == Address("10.0.0.5", 7890)


def test_existing_peer_means_client_only(fakes):
    coordinator = DiscoveryCoordinator(
        7890,
        resolve_address=lambda: "10.0.0.9",
        scan=fixed_scan(Address("10.0.0.7", 7890)),
    )

    service = coordinator.get_service()

    assert service.role is Role.CLIENT
    assert service.server is None
    assert FakeServer.started == []
    assert len(FakeClient.connected) == 1
    assert service.client.address == Address("10.0.0.7", 7890)


def test_unresolved_address_is_fatal(fakes):
    calls = []
    coordinator = DiscoveryCoordinator(resolve_address=lambda: None, scan=fixed_scan(None, calls))

    with pytest.raises(NoAddressError):
        coordinator.get_service()

    assert calls == []
    assert coordinator.instance is None


def test_get_service_is_idempotent(fakes):
    calls = []
    coordinator = DiscoveryCoordinator(resolve_address=lambda: "10.0.0.5", scan=fixed_scan(None, calls))

    first = coordinator.get_service()
    second = coordinator.get_service()

    assert first is second
    assert len(calls) == 1
    assert len(FakeServer.started) == 1


def test_concurrent_first_calls_create_one_service(fakes):
    calls = []
    coordinator = DiscoveryCoordinator(
        resolve_address=lambda: "10.0.0.5",
        scan=fixed_scan(None, calls, delay=0.2),
    )

    results = []
    threads = [threading.Thread(target=lambda: results.append(coordinator.get_service())) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert len(results) == 5
    assert all(r is results[0] for r in results)
    assert len(calls) == 1
    assert len(FakeServer.started) == 1


def test_bind_failure_propagates_and_allows_retry(fakes, monkeypatch):
    def failing_start(ip, port):
        raise BindError(ip, port, "Address already in use")

    monkeypatch.setattr(FakeServer, "start", staticmethod(failing_start))
    coordinator = DiscoveryCoordinator(resolve_address=lambda: "10.0.0.5", scan=fixed_scan(None))

    with pytest.raises(BindError):
        coordinator.get_service()
    assert coordinator.instance is None
    assert FakeClient.connected == []


@linux_only
def test_loopback_self_hosting_then_join(port):
    host = DiscoveryCoordinator(port, resolve_address=lambda: "127.0.0.1", search_timeout=0.5)
    joiner = DiscoveryCoordinator(port, resolve_address=lambda: "127.0.0.9", search_timeout=0.5)

    first = host.get_service()
    try:
        assert first.role is Role.SERVER_CLIENT
        assert first.server.address == ("127.0.0.1", port)
        assert first.client.address == Address("127.0.0.1", port)
        assert first.client.ping(timeout=1.0)

        second = joiner.get_service()
        try:
            assert second.role is Role.CLIENT
            assert second.server is None
            assert second.client.address == Address("127.0.0.1", port)
            assert second.client.ping(timeout=1.0)
            assert wait_until(lambda: len(first.server.connections) == 2)
        finally:
            second.close()

        assert wait_until(lambda: len(first.server.connections) == 1)
    finally:
        first.close()


def port_is_bindable(ip, port):
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        s.bind((ip, port))
        s.listen()
        return True
    except OSError:
        return False
    finally:
        s.close()


def test_failed_self_hosting_releases_port(monkeypatch, port):
    def broken_connect(ip, port, timeout=None):
        raise RuntimeError("client blew up")

    monkeypatch.setattr(service_mod.Client, "connect", staticmethod(broken_connect))
    coordinator = DiscoveryCoordinator(port, resolve_address=lambda: "127.0.0.1", scan=fixed_scan(None))

    with pytest.raises(RuntimeError):
        coordinator.get_service()

    assert coordinator.instance is None
    assert port_is_bindable("127.0.0.1", port)


def test_failure_after_connect_closes_server_and_client(monkeypatch, port):
    built = []

    class BrokenService(service_mod.SyncService):
        def __init__(self, server, client):
            built.append(client)
            raise RuntimeError("service blew up")

    monkeypatch.setattr(service_mod, "SyncService", BrokenService)
    coordinator = DiscoveryCoordinator(port, resolve_address=lambda: "127.0.0.1", scan=fixed_scan(None))

    with pytest.raises(RuntimeError):
        coordinator.get_service()

    assert len(built) == 1
    assert not built[0].is_open
    assert port_is_bindable("127.0.0.1", port)


@linux_only
def test_loopback_get_service_twice_returns_same_service(port):
    coordinator = DiscoveryCoordinator(port, resolve_address=lambda: "127.0.0.1", search_timeout=0.5)

    first = coordinator.get_service()
    try:
        second = coordinator.get_service()

        assert second is first
        assert first.role is Role.SERVER_CLIENT
        assert first.client.ping(timeout=1.0)
    finally:
        first.close()

    assert port_is_bindable("127.0.0.1", port)


def with_coordinator(monkeypatch, **overrides):
    monkeypatch.setattr(service_mod, "DiscoveryCoordinator",
                        functools.partial(DiscoveryCoordinator, **overrides))


def test_main_exits_1_without_local_address(monkeypatch, port):
    with_coordinator(monkeypatch, resolve_address=lambda: None, scan=fixed_scan(None))

    assert service_mod.main(["discovery.service", str(port)]) == 1


def test_main_exits_1_when_port_taken(monkeypatch, raw_listeners, port):
    raw_listeners("127.0.0.1", port, reply=b"SOMETHING_ELSE")
    with_coordinator(monkeypatch, resolve_address=lambda: "127.0.0.1", scan=fixed_scan(None))

    assert service_mod.main(["discovery.service", str(port)]) == 1


def test_main_rejects_extra_arguments():
    assert service_mod.main(["discovery.service", "7890", "extra"]) == 1
