"""Socket-level corroboration of Cassandra's client transports."""
import socket
import time
from typing import List, Optional

from loguru import logger

from config.schema import Config
from errors import TransportUnreachable

ATTEMPT_INTERVAL = 0.2


def is_enabled(config: Config) -> bool:
    return config.start_native_transport or config.start_rpc


def _transport_ports(config: Config) -> List[int]:
    ports = []
    if config.start_native_transport:
        ports.append(config.native_transport_port)
    if config.start_rpc:
        ports.append(config.rpc_port)
    return ports


def _try_connect(host: str, port: int, timeout: float) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def _connect_any(config: Config, per_attempt_timeout: float) -> bool:
    host = config.rpc_address or "localhost"
    return any(_try_connect(host, port, per_attempt_timeout) for port in _transport_ports(config))


def _poll(config: Config, per_attempt_timeout: float, attempts: Optional[int] = None,
          deadline: Optional[float] = None) -> bool:
    """Try connecting until it works, ``attempts`` run out or ``deadline`` passes."""
    attempt = 0
    while True:
        attempt += 1
        if _connect_any(config, per_attempt_timeout):
            logger.debug("Transport accepted a connection", attempt=attempt)
            return True
        if attempts is not None and attempt >= attempts:
            return False
        if deadline is not None and time.monotonic() >= deadline:
            return False
        time.sleep(ATTEMPT_INTERVAL)


def is_connected(config: Config, attempts: int = 10, per_attempt_timeout: float = 2.0) -> bool:
    """Return True if any enabled transport accepts a TCP connection.

    Native transport is tried before RPC on ``config.rpc_address``.
    """
    if not is_enabled(config):
        return False
    return _poll(config, per_attempt_timeout, attempts=attempts)


def await_transport(config: Config, total_timeout: float, per_attempt_timeout: float = 1.0) -> bool:
    """Wait up to ``total_timeout`` seconds for a transport to accept connections.

    Returns:
        bool: True once connected, or immediately when no transport is enabled.
            False on timeout.
    """
    if not is_enabled(config):
        return True
    deadline = time.monotonic() + total_timeout
    return _poll(config, min(per_attempt_timeout, total_timeout), deadline=deadline)


def check_connection(config: Config, attempts: int = 10, per_attempt_timeout: float = 2.0) -> None:
    """Require that an enabled transport accepts a connection.

    Raises:
        TransportUnreachable: If every attempt fails
    """
    if not is_enabled(config):
        return
    if not _poll(config, per_attempt_timeout, attempts=attempts):
        ports = ", ".join(str(p) for p in _transport_ports(config))
        raise TransportUnreachable(
            f"Cassandra reported readiness but {config.rpc_address}:{ports} "
            f"refused connections after {attempts} attempts"
        )
