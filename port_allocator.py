"""Ephemeral TCP port allocation.

Ports are obtained by binding to port 0 and reading back what the OS picked.
The socket is closed right away, so a port can in theory be taken by someone
else before Cassandra binds it. That surfaces later as a bind failure.
"""
import socket
import sys
import threading
from typing import Set

from loguru import logger

DEFAULT_HOST = "127.0.0.1"


def _bind_ephemeral(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return int(sock.getsockname()[1])


def is_port_available(port: int, host: str = "") -> bool:
    """Return True if a server socket can currently bind ``port``.

    The check binds the way Cassandra's server sockets do: with
    ``SO_REUSEADDR`` outside Windows, so connections lingering in TIME_WAIT
    do not count as the port being taken.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            # On Windows SO_REUSEADDR allows stealing a bound port
            if not sys.platform.startswith("win"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, int(port)))
            return True
    except OSError:
        return False


class PortAllocator:
    """Hands out OS-assigned free ports, never the same one twice.

    One allocator belongs to one launch attempt. It remembers every port it
    returned so the ports of a single launch stay distinct.
    """

    def __init__(self, host: str = DEFAULT_HOST, max_attempts: int = 20):
        self.host = host
        self.max_attempts = max_attempts
        self._issued: Set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Return a free port not previously returned by this allocator.

        Raises:
            OSError: If no fresh port was found within ``max_attempts``
        """
        with self._lock:
            for _ in range(self.max_attempts):
                port = _bind_ephemeral(self.host)
                if port not in self._issued:
                    self._issued.add(port)
                    logger.debug("Allocated ephemeral port", port=port)
                    return port
        raise OSError(f"Could not allocate a fresh port after {self.max_attempts} attempts")

    @property
    def issued(self) -> Set[int]:
        return set(self._issued)


def allocate(host: str = DEFAULT_HOST) -> int:
    """Return a free ephemeral port."""
    return _bind_ephemeral(host)
