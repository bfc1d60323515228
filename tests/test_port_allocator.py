import socket
import sys
import time

import pytest

import port_allocator
from port_allocator import PortAllocator, is_port_available


def test_module_allocate_is_mostly_distinct():
    ports = [port_allocator.allocate() for _ in range(100)]
    assert all(0 < p <= 65535 for p in ports)
    assert len(set(ports)) >= 95


def test_allocator_never_repeats():
    allocator = PortAllocator()
    ports = [allocator.allocate() for _ in range(30)]
    assert len(set(ports)) == 30
    assert allocator.issued == set(ports)


def test_allocator_gives_up_after_max_attempts(monkeypatch):
    monkeypatch.setattr(port_allocator, "_bind_ephemeral", lambda host: 40000)
    allocator = PortAllocator(max_attempts=3)
    assert allocator.allocate() == 40000
    with pytest.raises(OSError):
        allocator.allocate()


def test_is_port_available():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("", 0))
        server.listen(1)
        port = server.getsockname()[1]
        assert is_port_available(port) is False
    assert is_port_available(port_allocator.allocate()) is True


@pytest.mark.skipif(sys.platform == "win32", reason="TIME_WAIT reuse differs on Windows")
def test_port_in_time_wait_is_available():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        client = socket.create_connection(("127.0.0.1", port))
        conn, _ = server.accept()
        # server side closes first and ends up in TIME_WAIT
        conn.close()
        client.settimeout(2.0)
        assert client.recv(1) == b""
        client.close()
    time.sleep(0.1)

    assert is_port_available(port) is True
