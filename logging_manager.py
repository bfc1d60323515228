#!/usr/bin/env python3
"""
Logging Manager for the embedded Cassandra supervisor

Provides centralized logging infrastructure management using Loguru framework.
Handles console and file logging with configurable formats, rotation, and retention,
and the sinks that receive the Cassandra process output.

Features:
- Colored console output with structured data
- JSON logging for CI log collection and analysis
- Automatic log rotation, compression, and retention
- Per-process binding of Cassandra output lines (pid, cluster)
- Optional capture of Cassandra output to a dedicated file

Dependencies:
- loguru: Professional logging framework
- omegaconf: Configuration management
"""

import sys
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from omegaconf import DictConfig

PROCESS_OUTPUT_FLAG = "cassandra_output"


class LoggingManager:
    """Centralized logging infrastructure management using Loguru framework.

    Attributes:
        config (DictConfig): Logging configuration from Hydra

    Example:
        log_manager = LoggingManager()
        log_manager.setup_logging(config)
        sink = log_manager.process_output_sink(pid=1234)
        sink("INFO  Starting listening for CQL clients")
    """

    def __init__(self):
        """Initialize the logging manager."""
        self.config: Optional[DictConfig] = None

    def setup_logging(self, cfg: DictConfig):
        """Configure Loguru logging based on Hydra configuration.

        Removes default Loguru handlers and configures console and file handlers
        from the ``logging`` section.

        Args:
            cfg (DictConfig): Configuration object with logging settings

        Logging Configuration Options:
            - level: TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL
            - format: simple, detailed, json
            - console: Enable/disable the stderr handler (default: True)
            - file: Optional file path for file logging
            - rotation: Log rotation size (default: 100 MB)
            - retention: Log retention period (default: 30 days)
            - colorize: Enable/disable console colors (default: True)
        """
        self.config = cfg
        log_config = cfg.logging

        # Remove default Loguru handler
        logger.remove()

        if log_config.get("console", True):
            logger.add(
                sys.stderr,
                format=self._get_console_format(log_config.format),
                level=log_config.level.upper(),
                colorize=log_config.get("colorize", True),
                backtrace=True,
                diagnose=True
            )

        if log_config.get("file"):
            self._setup_file_logging(log_config)

        logger.info("Loguru logging configured",
                    level=log_config.level,
                    format=log_config.format,
                    file=log_config.get("file") or "console-only")

    def _get_console_format(self, format_type: str) -> str:
        """Get console logging format string based on configuration.

        Args:
            format_type (str): Format type - simple, detailed, or json

        Returns:
            str: Loguru format string for console output
        """
        if format_type == "simple":
            return "<level>{level}</level> - {message}"
        elif format_type == "json":
            return "{time:HH:mm:ss} | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | {message} | {extra}"
        else:  # detailed
            return "{time:HH:mm:ss} | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

    def _setup_file_logging(self, log_config: DictConfig):
        """Setup file logging with rotation and compression.

        Args:
            log_config (DictConfig): Logging configuration object
        """
        file_path = Path(log_config.file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        if log_config.format == "json":
            logger.add(
                file_path,
                level=log_config.level.upper(),
                rotation=log_config.get("rotation", "100 MB"),
                retention=log_config.get("retention", "30 days"),
                compression="gz",
                serialize=True
            )
        else:
            logger.add(
                file_path,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
                level=log_config.level.upper(),
                rotation=log_config.get("rotation", "100 MB"),
                retention=log_config.get("retention", "30 days"),
                compression="gz"
            )

    def add_process_output_file(self, path: Path) -> int:
        """Write only Cassandra process output lines to ``path``.

        Returns:
            int: Loguru handler id, for ``logger.remove``
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            path,
            format="{message}",
            level="INFO",
            filter=lambda record: record["extra"].get(PROCESS_OUTPUT_FLAG, False),
        )

    @staticmethod
    def process_output_sink(pid: Optional[int] = None, **context) -> Callable[[str], None]:
        """Sink for Cassandra output lines, logged at INFO with the pid bound.

        Args:
            pid (int, optional): Cassandra process id
            **context: Additional context data (cluster_name, etc.)
        """
        bound = logger.bind(pid=pid, **{PROCESS_OUTPUT_FLAG: True}, **context)

        def _sink(line: str) -> None:
            bound.info("{}", line)

        return _sink

    @staticmethod
    def get_logger():
        """Get the configured Loguru logger instance."""
        return logger


# Global logging manager instance for easy access
_logging_manager = LoggingManager()


def setup_logging(cfg: DictConfig):
    """Setup global logging configuration.

    Args:
        cfg (DictConfig): Configuration object with logging settings
    """
    _logging_manager.setup_logging(cfg)


def get_logger():
    """Get the configured logger instance."""
    return _logging_manager.get_logger()


def process_output_sink(pid: Optional[int] = None, **context) -> Callable[[str], None]:
    return _logging_manager.process_output_sink(pid, **context)
