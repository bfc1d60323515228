"""
Readiness detection from Cassandra's merged stdout/stderr.

A ``LogWatcher`` is fed every output line by a single reader thread. It
latches the first decisive signal (success or a known fatal message) and
publishes the transition on a queue the supervisor blocks on. Lines are
always forwarded to the output sink, before and after the latch.
"""

import queue
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from config.schema import Config
from logging_manager import process_output_sink as default_sink

NATIVE_TRANSPORT_SUCCESS = ("Starting listening for CQL",)
RPC_TRANSPORT_SUCCESS = ("Listening for thrift clients",)
MESSAGING_SERVICE_SUCCESS = ("Starting Messaging Service",)

# Ordered; the first match on a line is the reported reason.
FAILURE_SIGNALS = (
    "encountered during startup",
    "Missing required",
    "Address already in use",
    "Port already in use",
    "ConfigurationException",
    "syntax error near unexpected",
    "Error occurred during initialization",
    "Cassandra 3.0 and later require Java",
)

DEFAULT_TAIL_SIZE = 200

LineSink = Callable[[str], None]


def success_signal(config: Config) -> tuple:
    """Return the success substrings that apply to ``config``'s transports."""
    if config.start_native_transport:
        return NATIVE_TRANSPORT_SUCCESS
    if config.start_rpc:
        return RPC_TRANSPORT_SUCCESS
    return MESSAGING_SERVICE_SUCCESS


class ReadinessKind(Enum):
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ReadinessState:
    kind: ReadinessKind
    reason: Optional[str] = None
    line: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind is not ReadinessKind.WAITING

    @classmethod
    def failed(cls, reason: str, line: str) -> "ReadinessState":
        return cls(ReadinessKind.FAILED, reason, line)


ReadinessState.WAITING = ReadinessState(ReadinessKind.WAITING)
ReadinessState.SUCCEEDED = ReadinessState(ReadinessKind.SUCCEEDED)


class EventType(Enum):
    READINESS = "readiness"
    EXITED = "exited"


@dataclass(frozen=True)
class WatcherEvent:
    """Item pushed on the watcher channel."""
    type: EventType
    state: Optional[ReadinessState] = None
    exit_code: Optional[int] = None


class LogWatcher:
    """Single-attempt readiness latch driven by process output lines.

    Args:
        config (Config): Cassandra settings; selects the success signal
        sink (callable, optional): Receives every line, defaults to loguru
        tail_size (int): How many recent lines to keep for error messages

    Example:
        watcher = LogWatcher(config)
        watcher.process("INFO  Starting listening for CQL clients on ...")
        assert watcher.state is ReadinessState.SUCCEEDED
    """

    def __init__(self, config: Config, sink: Optional[LineSink] = None,
                 tail_size: int = DEFAULT_TAIL_SIZE):
        self.success_signals = success_signal(config)
        self.sink = sink or default_sink()
        self.events: "queue.Queue[WatcherEvent]" = queue.Queue()
        self._state = ReadinessState.WAITING
        self._lock = threading.Lock()
        self._tail: Deque[str] = deque(maxlen=tail_size)

    @property
    def state(self) -> ReadinessState:
        with self._lock:
            return self._state

    @property
    def output(self) -> List[str]:
        with self._lock:
            return list(self._tail)

    def _classify(self, line: str) -> Optional[ReadinessState]:
        for signal in FAILURE_SIGNALS:
            if signal in line:
                return ReadinessState.failed(signal, line)
        for signal in self.success_signals:
            if signal in line:
                return ReadinessState.SUCCEEDED
        return None

    def process(self, line: str) -> ReadinessState:
        """Feed one output line and return the (possibly updated) state."""
        self.sink(line)
        candidate = self._classify(line)
        with self._lock:
            self._tail.append(line)
            if candidate is None or self._state.is_terminal:
                return self._state
            self._state = candidate
        self.events.put(WatcherEvent(EventType.READINESS, state=candidate))
        return candidate

    def close(self, exit_code: Optional[int] = None) -> None:
        """Signal that the output stream ended, usually because the process exited."""
        self.events.put(WatcherEvent(EventType.EXITED, exit_code=exit_code))
