"""Exception taxonomy for launching an embedded Cassandra process.

Every error raised out of ``CassandraSupervisor.start()`` derives from
``SupervisorError`` so callers can catch a single type.
"""
from typing import Optional, Sequence


def format_output(output: Sequence[str]) -> str:
    """Render captured process output for an exception message."""
    body = "".join(f"{line}\n" for line in output)
    return f"\n----- START -----\n{body}----- END -----\n"


class SupervisorError(Exception):
    """Base class for all launch and lifecycle failures."""
    pass


class ConfigurationError(SupervisorError):
    """Raised when settings are invalid or the customizer pipeline fails."""
    pass


class StartupFailure(SupervisorError):
    """A known-fatal log line was observed or the process died early."""

    def __init__(self, reason: str, output: Sequence[str] = ()):
        self.reason = reason
        self.output = list(output)
        super().__init__(f"Could not start Cassandra: {reason}{format_output(self.output)}")


class PortConflictError(SupervisorError):
    """The OS refused to bind a port the caller asked for."""

    def __init__(self, reason: str, port: Optional[int] = None, output: Sequence[str] = ()):
        self.reason = reason
        self.port = port
        self.output = list(output)
        message = f"Port conflict: {reason}"
        if port is not None:
            message = f"Port conflict on {port}: {reason}"
        if self.output:
            message += format_output(self.output)
        super().__init__(message)


class StartupTimeout(SupervisorError):
    """No terminal readiness signal arrived before the startup timeout."""

    def __init__(self, timeout: float, output: Sequence[str] = ()):
        self.timeout = timeout
        self.output = list(output)
        super().__init__(
            f"Cassandra did not report readiness within {timeout} seconds. "
            f"Please increase the startup timeout.{format_output(self.output)}"
        )


class TransportUnreachable(SupervisorError):
    """The log reported readiness but no client transport accepted a connection."""
    pass
