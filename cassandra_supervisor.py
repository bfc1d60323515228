#!/usr/bin/env python3
"""
Cassandra Supervisor for embedded test databases

Owns one launch attempt of an extracted Cassandra distribution: prepares a
private copy of its config files, starts the process, decides whether startup
succeeded, and tears everything down again.

Features:
- Launch-private config customization through the customizer pipeline
- Fixed-port conflict detection before the process is spawned
- Log-based readiness latch with fail-fast on known fatal messages
- Startup timeout with forced termination of the process tree
- Socket-level confirmation of client transports after readiness
- Idempotent stop with bounded waits and working copy cleanup

Dependencies:
- psutil: Process tree inspection and termination
- loguru: Structured logging of lifecycle events and process output
"""

import queue
import re
import subprocess
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
from loguru import logger

from command_builder import CommandBuilder
from config.schema import LaunchContext, PortAssignment, SupervisorSettings
from customizers import CustomizerPipeline, default_pipeline
from errors import (
    ConfigurationError, PortConflictError, StartupFailure, StartupTimeout,
    SupervisorError, TransportUnreachable,
)
from launcher import OutputReader, build_environment, start_launcher, stop_launcher
from log_watcher import EventType, LineSink, LogWatcher, ReadinessKind, ReadinessState, default_sink
from port_allocator import PortAllocator, is_port_available
from tools.workdir import create_working_copy, remove_working_copy
from transport_probe import check_connection
from utils.java_resolver import java_environment

PORT_CONFLICT_SIGNALS = ("Address already in use", "Port already in use")


class SupervisorState(Enum):
    NEW = "new"
    CONFIGURING = "configuring"
    LAUNCHING = "launching"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


class ProcessHandle:
    """A launched Cassandra process and everything needed to stop it.

    Attributes:
        process (subprocess.Popen): Launched start script
        reader (OutputReader): Thread draining the merged output
        watcher (LogWatcher): Readiness latch fed by the reader
        workdir (Path): Launch-private copy of the config files
        context (LaunchContext): Effective context with resolved ports
        state (SupervisorState): Lifecycle state of this process
    """

    def __init__(self, process: subprocess.Popen, reader: OutputReader, watcher: LogWatcher,
                 workdir: Path, context: LaunchContext, settings: SupervisorSettings):
        self.process = process
        self.reader = reader
        self.watcher = watcher
        self.workdir = workdir
        self.context = context
        self.settings = settings
        self.state = SupervisorState.LAUNCHING
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def ports(self) -> PortAssignment:
        return self.context.ports

    @property
    def output(self) -> List[str]:
        return self.watcher.output

    @property
    def stopped(self) -> bool:
        return self._stopped

    def is_running(self) -> bool:
        return self.process.poll() is None

    def stop(self) -> None:
        """Stop the process tree and remove the working copy.

        Safe to call from any state and any number of times; only the first
        call does anything.
        """
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

            logger.info("Stopping Cassandra", pid=self.pid)
            try:
                stop_launcher(self.process, timeout=self.settings.stop_timeout)
            except (psutil.Error, OSError) as e:
                logger.warning("Failed to stop Cassandra process", pid=self.pid, error=str(e))

            self.reader.join(timeout=self.settings.reader_join_timeout)
            if self.reader.is_alive():
                logger.warning("Output reader did not finish", pid=self.pid)

            if self.process.stdout is not None:
                try:
                    self.process.stdout.close()
                except OSError as e:
                    logger.debug("Failed to close output pipe", pid=self.pid, error=str(e))

            if not self.settings.keep_working_dir:
                try:
                    remove_working_copy(self.workdir)
                except OSError as e:
                    logger.warning("Failed to remove working copy", workdir=str(self.workdir), error=str(e))

            self.state = SupervisorState.STOPPED
            logger.success("Cassandra stopped", pid=self.pid)

    def get_status(self) -> Dict[str, Any]:
        """Current state, pid, ports and resource usage of the process."""
        status = {
            "pid": self.pid,
            "state": self.state.value,
            "running": self.is_running(),
            "ports": self.ports.as_dict(),
            "workdir": str(self.workdir),
        }
        if status["running"]:
            try:
                process = psutil.Process(self.pid)
                status["memory_usage_mb"] = process.memory_info().rss / 1024 / 1024
                status["cpu_percent"] = process.cpu_percent()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                status["running"] = False
        return status

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()


class CassandraSupervisor:
    """Runs a single launch attempt of Cassandra to readiness.

    Attributes:
        context (LaunchContext): Caller's context; never modified
        settings (SupervisorSettings): Timeouts and verification behavior
        handle (ProcessHandle): Set once the process has been spawned

    Example:
        supervisor = CassandraSupervisor(context)
        with supervisor.start() as handle:
            print(handle.ports.native_transport)
    """

    def __init__(self, context: LaunchContext, settings: Optional[SupervisorSettings] = None,
                 sink: Optional[LineSink] = None, pipeline: Optional[CustomizerPipeline] = None):
        self.context = context
        self.settings = settings or SupervisorSettings()
        self.sink = sink
        self.allocator = PortAllocator()
        self.pipeline = pipeline or default_pipeline(self.allocator)
        self.handle: Optional[ProcessHandle] = None
        self._state = SupervisorState.NEW

    @property
    def state(self) -> SupervisorState:
        if self._state is SupervisorState.READY and self.handle is not None and self.handle.stopped:
            return SupervisorState.STOPPED
        return self._state

    def _set_state(self, state: SupervisorState) -> None:
        logger.debug("Supervisor state change", old=self._state.value, new=state.value)
        self._state = state
        if self.handle is not None and not self.handle.stopped:
            self.handle.state = state

    def start(self) -> ProcessHandle:
        """Launch Cassandra and block until it is ready.

        Returns:
            ProcessHandle: Running process with the effective ports

        Raises:
            ConfigurationError: Missing executable or failed customization
            PortConflictError: A requested fixed port is unavailable
            StartupFailure: Fatal log message or early process exit
            StartupTimeout: No readiness signal within the startup timeout
            TransportUnreachable: Ready in the log but no transport connectable
        """
        if self._state is not SupervisorState.NEW:
            raise SupervisorError(f"Supervisor already used (state: {self._state.value})")

        self._set_state(SupervisorState.CONFIGURING)
        effective, workdir = self._configure()

        self._set_state(SupervisorState.LAUNCHING)
        self._launch(effective, workdir)

        self._set_state(SupervisorState.AWAITING_READY)
        self._await_ready()

        if self.settings.verify_transport:
            try:
                check_connection(effective.config, attempts=self.settings.transport_attempts,
                                 per_attempt_timeout=self.settings.transport_attempt_timeout)
            except TransportUnreachable:
                self._set_state(SupervisorState.FAILED)
                self._cleanup()
                raise

        self._set_state(SupervisorState.READY)
        logger.success("Cassandra is ready", pid=self.handle.pid, **self.handle.ports.as_dict())
        return self.handle

    def _configure(self):
        file_set = self.context.file_set
        if not file_set.executable.is_file():
            self._set_state(SupervisorState.FAILED)
            raise ConfigurationError(f"Cassandra executable not found: {file_set.executable}")

        try:
            working = create_working_copy(file_set, self.settings.working_dir_root)
        except OSError as e:
            self._set_state(SupervisorState.FAILED)
            raise ConfigurationError(f"Could not create working copy: {e}") from e

        try:
            effective = self.pipeline.run(self.context.with_file_set(working))
            if not self.context.executable_config.random_ports:
                self._check_fixed_ports(effective)
        except SupervisorError:
            self._set_state(SupervisorState.FAILED)
            self._remove_workdir(working.base_dir)
            raise
        return effective, working.base_dir

    def _check_fixed_ports(self, effective: LaunchContext) -> None:
        requested = self.context.ports
        config = effective.config
        roles = {"storage": requested.storage, "jmx": requested.jmx}
        if config.start_native_transport:
            roles["native_transport"] = requested.native_transport
        if config.start_rpc:
            roles["rpc"] = requested.rpc
        if requested.native_transport_ssl is not None:
            roles["native_transport_ssl"] = requested.native_transport_ssl

        for role, port in roles.items():
            if port and not is_port_available(port):
                logger.error("Requested port is not available", role=role, port=port)
                raise PortConflictError(f"{role} port is already in use", port=port)

    def _launch(self, effective: LaunchContext, workdir: Path) -> None:
        try:
            cmd = CommandBuilder.for_platform(effective.distribution.platform).build(effective)
            env = build_environment(effective.file_set.config_dir, java_environment(effective.executable_config))
        except (FileNotFoundError, ValueError) as e:
            self._set_state(SupervisorState.FAILED)
            self._remove_workdir(workdir)
            raise ConfigurationError(str(e)) from e

        try:
            proc = start_launcher(cmd, cwd=effective.file_set.executable.parent, env=env)
        except OSError as e:
            self._set_state(SupervisorState.FAILED)
            self._remove_workdir(workdir)
            raise StartupFailure(f"could not spawn {cmd[0]}: {e}") from e

        watcher = LogWatcher(effective.config, sink=self.sink or default_sink(proc.pid))
        reader = OutputReader(proc, watcher)
        self.handle = ProcessHandle(proc, reader, watcher, workdir, effective, self.settings)
        reader.start()

    def _await_ready(self) -> None:
        watcher = self.handle.watcher
        timeout = self.context.executable_config.startup_timeout
        deadline = time.monotonic() + timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._set_state(SupervisorState.TIMED_OUT)
                logger.error("Cassandra startup timed out", pid=self.handle.pid, timeout=timeout)
                self._cleanup()
                raise StartupTimeout(timeout, watcher.output)

            try:
                event = watcher.events.get(timeout=min(remaining, self.settings.poll_interval))
            except queue.Empty:
                continue

            if event.type is EventType.READINESS:
                if event.state.kind is ReadinessKind.SUCCEEDED:
                    return
                self._set_state(SupervisorState.FAILED)
                logger.error("Cassandra reported a fatal error", pid=self.handle.pid,
                             reason=event.state.reason, line=event.state.line)
                self._cleanup()
                raise self._failure_error(event.state, watcher.output)

            if event.type is EventType.EXITED and not watcher.state.is_terminal:
                self._set_state(SupervisorState.FAILED)
                logger.error("Cassandra exited before becoming ready", pid=self.handle.pid,
                             exit_code=event.exit_code)
                self._cleanup()
                raise StartupFailure(f"process exited with code {event.exit_code}", watcher.output)

    def _failure_error(self, state: ReadinessState, output: List[str]) -> SupervisorError:
        line = state.line or ""
        if (state.reason in PORT_CONFLICT_SIGNALS or "bind" in line.lower()
                or any("BindException" in l for l in output)):
            return PortConflictError(state.reason, port=self._port_in(line), output=output)
        return StartupFailure(state.reason, output)

    def _port_in(self, line: str) -> Optional[int]:
        numbers = {int(n) for n in re.findall(r"\d+", line)}
        for port in self.handle.ports.as_dict().values():
            if port in numbers:
                return port
        return None

    def _cleanup(self) -> None:
        """Stop the process after a failed start; cleanup errors are only logged."""
        try:
            self.handle.stop()
        except Exception as e:
            logger.error("Cleanup after failed start raised", pid=self.handle.pid, error=str(e))

    def _remove_workdir(self, workdir: Path) -> None:
        if self.settings.keep_working_dir:
            return
        try:
            remove_working_copy(workdir)
        except OSError as e:
            logger.warning("Failed to remove working copy", workdir=str(workdir), error=str(e))
