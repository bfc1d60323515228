"""
Configuration schema for the embedded Cassandra supervisor.

Two groups of dataclasses live here:

- launch data (``Config``, ``ExecutableConfig``, ``Distribution``,
  ``ExtractedFileSet``, ``LaunchContext``, ``PortAssignment``): frozen,
  validated on construction and never mutated by a launch attempt.
- settings sections (``SupervisorSettings``, ``LoggingConfig``, ...): plain
  dataclasses used as OmegaConf structured configs by ``config_manager``.
"""

import dataclasses
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from validation import MANAGED_SETTINGS, validate_cassandra_settings


class Platform(Enum):
    """Operating system family the distribution runs on."""
    LINUX = "linux"
    OS_X = "os_x"
    WINDOWS = "windows"
    SOLARIS = "solaris"
    FREE_BSD = "free_bsd"

    @property
    def is_unix_like(self) -> bool:
        return self is not Platform.WINDOWS

    @classmethod
    def detect(cls, name: Optional[str] = None) -> "Platform":
        """Map ``sys.platform`` (or ``name``) to a Platform."""
        name = name or sys.platform
        if name.startswith("linux"):
            return cls.LINUX
        if name == "darwin":
            return cls.OS_X
        if name in ("win32", "cygwin"):
            return cls.WINDOWS
        if name.startswith("sunos"):
            return cls.SOLARIS
        if name.startswith("freebsd"):
            return cls.FREE_BSD
        raise ValueError(f"Unsupported platform: {name}")


class BitSize(Enum):
    """CPU word width."""
    B32 = 32
    B64 = 64

    @classmethod
    def detect(cls) -> "BitSize":
        return cls.B64 if sys.maxsize > 2 ** 32 else cls.B32


class JvmOptionsMode(Enum):
    """How configured JVM options are merged into the options file."""
    ADD = "ADD"
    REPLACE = "REPLACE"


def _validate_port(name: str, value: Optional[int], optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > 65535:
        raise ValueError(f"{name} must be between 0 and 65535, got {value}")


@dataclass(frozen=True)
class PortAssignment:
    """Effective port per logical role."""
    native_transport: int
    rpc: int
    storage: int
    ssl_storage: int
    jmx: int
    native_transport_ssl: Optional[int] = None

    @classmethod
    def from_config(cls, config: "Config") -> "PortAssignment":
        return cls(
            native_transport=config.native_transport_port,
            rpc=config.rpc_port,
            storage=config.storage_port,
            ssl_storage=config.ssl_storage_port,
            jmx=config.jmx_port,
            native_transport_ssl=config.native_transport_port_ssl,
        )

    def required(self) -> Dict[str, int]:
        """Ports every launch needs, keyed by role."""
        return {
            "native_transport": self.native_transport,
            "rpc": self.rpc,
            "storage": self.storage,
            "ssl_storage": self.ssl_storage,
            "jmx": self.jmx,
        }

    def as_dict(self) -> Dict[str, Optional[int]]:
        result: Dict[str, Optional[int]] = dict(self.required())
        result["native_transport_ssl"] = self.native_transport_ssl
        return result


@dataclass(frozen=True)
class Config:
    """Cassandra server settings that end up in ``cassandra.yaml``."""
    start_native_transport: bool = True
    start_rpc: bool = False
    native_transport_port: int = 9042
    rpc_port: int = 9160
    storage_port: int = 7000
    ssl_storage_port: int = 7001
    jmx_port: int = 7199
    native_transport_port_ssl: Optional[int] = None
    cluster_name: str = "Test Cluster"
    listen_address: str = "localhost"
    rpc_address: str = "localhost"
    extra_settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate ports and freeze the extra settings mapping."""
        _validate_port("native_transport_port", self.native_transport_port)
        _validate_port("rpc_port", self.rpc_port)
        _validate_port("storage_port", self.storage_port)
        _validate_port("ssl_storage_port", self.ssl_storage_port)
        _validate_port("jmx_port", self.jmx_port)
        _validate_port("native_transport_port_ssl", self.native_transport_port_ssl, optional=True)
        managed = sorted(MANAGED_SETTINGS.intersection(self.extra_settings))
        if managed:
            raise ValueError(f"extra_settings may not override managed settings: {', '.join(managed)}")
        object.__setattr__(self, "extra_settings", MappingProxyType(dict(self.extra_settings)))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Config":
        """Build a Config from a raw settings mapping after schema validation."""
        data = dict(mapping)
        validate_cassandra_settings(data)
        return cls(**data)

    def with_ports(self, ports: PortAssignment) -> "Config":
        return dataclasses.replace(
            self,
            native_transport_port=ports.native_transport,
            rpc_port=ports.rpc,
            storage_port=ports.storage,
            ssl_storage_port=ports.ssl_storage,
            jmx_port=ports.jmx,
            native_transport_port_ssl=ports.native_transport_ssl,
        )


@dataclass(frozen=True)
class ExecutableConfig:
    """How the process is launched and how long it may take to come up."""
    startup_timeout: float = 60.0
    jvm_options: Tuple[str, ...] = ()
    jvm_options_mode: JvmOptionsMode = JvmOptionsMode.ADD
    random_ports: bool = False
    java_home: Optional[str] = None

    def __post_init__(self):
        """Validate timeout and normalize option containers."""
        if self.startup_timeout <= 0:
            raise ValueError("Startup timeout must be positive")
        object.__setattr__(self, "jvm_options", tuple(self.jvm_options))
        if isinstance(self.jvm_options_mode, str):
            object.__setattr__(self, "jvm_options_mode", JvmOptionsMode(self.jvm_options_mode.upper()))
        for option in self.jvm_options:
            if not option.startswith("-"):
                raise ValueError(f"Invalid JVM option: {option!r}")


@dataclass(frozen=True)
class Distribution:
    """What was extracted: OS family, CPU width and Cassandra version."""
    platform: Platform
    bit_size: BitSize
    version: str

    @classmethod
    def detect(cls, version: str) -> "Distribution":
        return cls(Platform.detect(), BitSize.detect(), version)


@dataclass(frozen=True)
class ExtractedFileSet:
    """Absolute paths of the executable and its auxiliary files."""
    executable: Path
    base_dir: Path
    files: Tuple[Path, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "executable", Path(self.executable))
        object.__setattr__(self, "base_dir", Path(self.base_dir))
        object.__setattr__(self, "files", tuple(Path(f) for f in self.files))

    @classmethod
    def from_directory(cls, home: Path, platform: Optional[Platform] = None) -> "ExtractedFileSet":
        """Describe a standard Cassandra layout rooted at ``home``.

        Args:
            home (Path): Extracted distribution directory
            platform (Platform, optional): Target platform, detected if omitted

        Raises:
            FileNotFoundError: If ``home`` has no ``conf`` directory
        """
        home = Path(home).resolve()
        platform = platform or Platform.detect()
        script = "cassandra.ps1" if platform is Platform.WINDOWS else "cassandra"
        conf_dir = home / "conf"
        if not conf_dir.is_dir():
            raise FileNotFoundError(f"Cassandra conf directory not found: {conf_dir}")
        files = sorted(p for p in conf_dir.rglob("*") if p.is_file())
        return cls(executable=home / "bin" / script, base_dir=home, files=tuple(files))

    def find(self, name: str) -> Optional[Path]:
        for f in self.files:
            if f.name == name:
                return f
        return None

    @property
    def config_file(self) -> Optional[Path]:
        return self.find("cassandra.yaml")

    @property
    def config_dir(self) -> Path:
        config_file = self.config_file
        if config_file is not None:
            return config_file.parent
        return self.base_dir / "conf"


@dataclass(frozen=True)
class LaunchContext:
    """Everything one launch attempt needs. Built once, never mutated."""
    config: Config
    executable_config: ExecutableConfig
    distribution: Distribution
    file_set: ExtractedFileSet

    def with_config(self, config: Config) -> "LaunchContext":
        return dataclasses.replace(self, config=config)

    def with_file_set(self, file_set: ExtractedFileSet) -> "LaunchContext":
        return dataclasses.replace(self, file_set=file_set)

    @property
    def ports(self) -> PortAssignment:
        return PortAssignment.from_config(self.config)


@dataclass
class SupervisorSettings:
    """Timeouts and behavior of the process supervisor."""
    stop_timeout: float = 10.0
    reader_join_timeout: float = 5.0
    poll_interval: float = 0.1
    verify_transport: bool = True
    transport_attempts: int = 10
    transport_attempt_timeout: float = 2.0
    working_dir_root: Optional[str] = None
    keep_working_dir: bool = False

    def __post_init__(self):
        """Validate supervisor settings."""
        if self.stop_timeout <= 0:
            raise ValueError("Stop timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("Poll interval must be positive")
        if self.transport_attempts < 1:
            raise ValueError("Transport attempts must be at least 1")


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "detailed"  # simple, detailed, json
    console: bool = True
    file: Optional[str] = None
    rotation: str = "100 MB"
    retention: str = "30 days"
    colorize: bool = True

    def __post_init__(self):
        """Validate logging configuration values."""
        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        self.level = self.level.upper()

        valid_formats = ["simple", "detailed", "json"]
        if self.format not in valid_formats:
            raise ValueError(f"Invalid log format. Must be one of: {valid_formats}")


@dataclass
class CassandraSettings:
    """Raw ``cassandra`` section; converted with ``Config.from_mapping``."""
    start_native_transport: bool = True
    start_rpc: bool = False
    native_transport_port: int = 9042
    rpc_port: int = 9160
    storage_port: int = 7000
    ssl_storage_port: int = 7001
    jmx_port: int = 7199
    native_transport_port_ssl: Optional[int] = None
    cluster_name: str = "Test Cluster"
    listen_address: str = "localhost"
    rpc_address: str = "localhost"
    extra_settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutableSettings:
    """Raw ``executable`` section."""
    startup_timeout: float = 60.0
    jvm_options: List[str] = field(default_factory=list)
    jvm_options_mode: str = "ADD"
    random_ports: bool = False
    java_home: Optional[str] = None

    def __post_init__(self):
        if self.jvm_options_mode.upper() not in ("ADD", "REPLACE"):
            raise ValueError("JVM options mode must be ADD or REPLACE")

    def to_executable_config(self) -> ExecutableConfig:
        return ExecutableConfig(
            startup_timeout=float(self.startup_timeout),
            jvm_options=tuple(self.jvm_options),
            jvm_options_mode=JvmOptionsMode(self.jvm_options_mode.upper()),
            random_ports=bool(self.random_ports),
            java_home=self.java_home,
        )


@dataclass
class DistributionSettings:
    """Where the extracted distribution lives and which version it is."""
    home: Optional[str] = None
    version: str = "3.11.3"


@dataclass
class EmbeddedCassandraSettings:
    """Complete settings tree loaded by ``ConfigManager``."""
    supervisor: SupervisorSettings = field(default_factory=SupervisorSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cassandra: CassandraSettings = field(default_factory=CassandraSettings)
    executable: ExecutableSettings = field(default_factory=ExecutableSettings)
    distribution: DistributionSettings = field(default_factory=DistributionSettings)
