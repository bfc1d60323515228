#!/usr/bin/env python3
"""
Embedded Cassandra

Runs an already-extracted Apache Cassandra distribution as a throwaway server
for automated tests. Each start gets a private copy of the config files,
optionally random free ports, and is torn down completely on stop.

Features:
- One-call start/stop of a Cassandra server from settings
- Random free ports for parallel test runs
- JVM option customization and JDK compatibility fixes
- Fail-fast startup errors with the captured process output
- Context manager support for test fixtures

Dependencies:
- An extracted Apache Cassandra distribution (bin/ and conf/)
- A Java runtime (JAVA_HOME or java on PATH)
- Python 3.8+

Example Usage:
    # Start a server from a distribution directory
    python3 embedded_cassandra.py distribution.home=/opt/apache-cassandra-3.11.3

    # Random ports and a longer startup timeout
    python3 embedded_cassandra.py distribution.home=/opt/cassandra executable.random_ports=true \\
        executable.startup_timeout=120
"""

import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

# Loguru for enhanced logging
from loguru import logger

# Hydra and OmegaConf for configuration management
import hydra
from omegaconf import DictConfig

from cassandra_supervisor import CassandraSupervisor, ProcessHandle
from config.schema import LaunchContext, PortAssignment, SupervisorSettings
from config_manager import ConfigManager
from errors import SupervisorError
from logging_manager import setup_logging


class EmbeddedCassandra:
    """
    Starts and stops an embedded Cassandra server for one test run.

    Every ``start()`` builds a fresh supervisor, so a stopped instance can be
    started again with newly resolved ports.

    Attributes:
        context (LaunchContext): Launch data built from the settings
        settings (SupervisorSettings): Supervisor timeouts and behavior
        handle (ProcessHandle): Running server, None until started

    Example:
        config = ConfigManager().load_config("default", ["executable.random_ports=true"])
        with EmbeddedCassandra.from_config(config, home="/opt/apache-cassandra-3.11.3") as cassandra:
            port = cassandra.ports.native_transport
    """

    def __init__(self, context: LaunchContext, settings: Optional[SupervisorSettings] = None):
        """Initialize with launch data.

        Args:
            context (LaunchContext): Launch data for the distribution
            settings (SupervisorSettings, optional): Supervisor timeouts and behavior
        """
        self.context = context
        self.settings = settings or SupervisorSettings()
        self.handle: Optional[ProcessHandle] = None

        logger.info("Embedded Cassandra configured",
                    executable=str(context.file_set.executable),
                    version=context.distribution.version,
                    platform=context.distribution.platform.value)

    @classmethod
    def from_config(cls, config: DictConfig, home: Optional[Path] = None,
                    config_manager: Optional[ConfigManager] = None) -> "EmbeddedCassandra":
        """Build an instance from Hydra configuration.

        Args:
            config (DictConfig): Loaded settings
            home (Path, optional): Distribution directory, overrides ``distribution.home``
            config_manager (ConfigManager, optional): Manager used for conversion

        Raises:
            ConfigurationError: If the settings or distribution layout are invalid
        """
        manager = config_manager or ConfigManager()
        return cls(manager.to_launch_context(config, home), manager.supervisor_settings(config))

    def start(self) -> ProcessHandle:
        """Start Cassandra and wait until it is ready.

        Raises:
            SupervisorError: Any startup failure; the process is already stopped
        """
        if self.handle is not None and not self.handle.stopped:
            return self.handle
        supervisor = CassandraSupervisor(self.context, self.settings)
        self.handle = supervisor.start()
        return self.handle

    def stop(self) -> None:
        if self.handle is not None:
            self.handle.stop()

    @property
    def ports(self) -> PortAssignment:
        """Effective ports of the running server.

        Raises:
            RuntimeError: If the server has not been started
        """
        if self.handle is None:
            raise RuntimeError("Cassandra has not been started")
        return self.handle.ports

    def get_status(self) -> Dict[str, Any]:
        if self.handle is None:
            return {"state": "new", "running": False}
        return self.handle.get_status()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()


@hydra.main(version_base=None, config_path="config", config_name="default")
def main(cfg: DictConfig) -> None:
    """Start Cassandra from ``distribution.home`` and keep it running until interrupted.

    Args:
        cfg: Hydra configuration loaded from config files

    Example usage:
        python3 embedded_cassandra.py distribution.home=/opt/cassandra
        python3 embedded_cassandra.py distribution.home=/opt/cassandra cassandra.start_rpc=true
    """
    setup_logging(cfg)
    cassandra = None
    try:
        cassandra = EmbeddedCassandra.from_config(cfg)
        handle = cassandra.start()
        print(f"Cassandra running (pid {handle.pid})")
        for role, port in handle.ports.as_dict().items():
            if port is not None:
                print(f"  {role}: {port}")

        while handle.is_running():
            time.sleep(1)
        logger.warning("Cassandra exited", pid=handle.pid)

    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except SupervisorError as e:
        logger.error("Cassandra failed to start", error=str(e))
        if cfg.logging.level == "DEBUG":
            logger.exception("Full traceback:")
        sys.exit(1)
    finally:
        if cassandra is not None:
            cassandra.stop()


if __name__ == "__main__":
    main()
