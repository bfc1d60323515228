#!/usr/bin/env python3
"""
Configuration Manager for the embedded Cassandra supervisor

Provides settings loading using Hydra and OmegaConf and turns the loaded
settings into the typed launch data the supervisor consumes.

Features:
- YAML-based hierarchical configuration files
- Type-safe configuration validation with dataclasses
- Command-line parameter overrides with nested dot notation
- JSON Schema validation of the ``cassandra`` section
- Conversion of settings into a LaunchContext for one launch attempt

Dependencies:
- hydra-core: Configuration management framework by Facebook
- omegaconf: Configuration objects with validation
- jsonschema: Validation of raw Cassandra settings
"""

import dataclasses
from pathlib import Path
from typing import List, Optional, Dict, Any

from hydra import compose, initialize_config_dir
from hydra.core.global_hydra import GlobalHydra
from jsonschema import ValidationError as SchemaValidationError
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from config.schema import (
    Config, Distribution, EmbeddedCassandraSettings, ExtractedFileSet, LaunchContext,
    SupervisorSettings,
)
from errors import ConfigurationError


class ConfigManager:
    """Settings management using Hydra and OmegaConf frameworks.

    Attributes:
        config_dir (Path): Directory containing configuration files
        config (DictConfig): Currently loaded configuration
        schema_class: Configuration schema class for validation

    Example:
        config_manager = ConfigManager()
        config = config_manager.load_config("default", ["executable.random_ports=true"])
        context = config_manager.to_launch_context(config)
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the configuration manager.

        Args:
            config_dir (Path, optional): Directory containing config files.
                                       Defaults to ./config/
        """
        if config_dir is None:
            config_dir = Path(__file__).parent / "config"

        self.config_dir = Path(config_dir)
        self.config: Optional[DictConfig] = None
        self.schema_class = EmbeddedCassandraSettings

    def load_config(self,
                    config_name: str = "default",
                    overrides: Optional[List[str]] = None) -> DictConfig:
        """Load configuration from YAML files with optional overrides.

        Args:
            config_name (str): Name of the configuration file to load
            overrides (List[str], optional): Parameter overrides in dot notation
                                           (e.g., "executable.startup_timeout=120")

        Returns:
            DictConfig: Loaded and validated configuration object

        Raises:
            ConfigurationError: If configuration files are not found or invalid
        """
        if overrides is None:
            overrides = []

        # Clear any existing Hydra global state
        if GlobalHydra().is_initialized():
            GlobalHydra.instance().clear()

        try:
            with initialize_config_dir(
                config_dir=str(self.config_dir.resolve()),
                version_base=None
            ):
                self.config = compose(config_name=config_name, overrides=overrides)
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        self.validate_config(self.config)
        return self.config

    def validate_config(self, config: DictConfig) -> EmbeddedCassandraSettings:
        """Validate configuration against the settings dataclasses.

        Merges the loaded config into the structured schema (type checks) and
        instantiates it, which runs each section's ``__post_init__`` checks.
        The ``cassandra`` section is also checked against its JSON Schema.

        Args:
            config (DictConfig): Configuration object to validate

        Returns:
            EmbeddedCassandraSettings: Validated settings object

        Raises:
            ConfigurationError: If configuration validation fails
        """
        try:
            structured_config = OmegaConf.structured(self.schema_class)
            merged = OmegaConf.merge(structured_config, config)
            settings = OmegaConf.to_object(merged)
            Config.from_mapping(dataclasses.asdict(settings.cassandra))
        except SchemaValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e.message}") from e
        except (OmegaConfBaseException, ValueError, TypeError) as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e
        return settings

    def to_launch_context(self, config: DictConfig, home: Optional[Path] = None) -> LaunchContext:
        """Build the LaunchContext for one launch attempt.

        Args:
            config (DictConfig): Loaded configuration
            home (Path, optional): Extracted distribution directory; defaults to
                                 ``distribution.home`` from the configuration

        Raises:
            ConfigurationError: If no distribution home is known or it is not a
                                Cassandra layout
        """
        settings = self.validate_config(config)
        home = home or settings.distribution.home
        if not home:
            raise ConfigurationError("No Cassandra distribution home configured (distribution.home)")

        cassandra = Config.from_mapping(dataclasses.asdict(settings.cassandra))
        distribution = Distribution.detect(settings.distribution.version)
        try:
            file_set = ExtractedFileSet.from_directory(Path(home), distribution.platform)
        except FileNotFoundError as e:
            raise ConfigurationError(str(e)) from e

        return LaunchContext(
            config=cassandra,
            executable_config=settings.executable.to_executable_config(),
            distribution=distribution,
            file_set=file_set,
        )

    def supervisor_settings(self, config: DictConfig) -> SupervisorSettings:
        return self.validate_config(config).supervisor

    def get_config_summary(self, config: DictConfig) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging.

        Args:
            config (DictConfig): Configuration to summarize

        Returns:
            Dict[str, Any]: Configuration summary with key settings
        """
        return {
            "distribution_home": config.distribution.home,
            "distribution_version": config.distribution.version,
            "startup_timeout": config.executable.startup_timeout,
            "random_ports": config.executable.random_ports,
            "native_transport_port": config.cassandra.native_transport_port,
            "start_rpc": config.cassandra.start_rpc,
            "logging_level": config.logging.level,
            "logging_format": config.logging.format,
        }

    def save_effective_config(self, config: DictConfig, output_path: Path) -> None:
        """Save the effective configuration to a file for debugging.

        Args:
            config (DictConfig): Configuration to save
            output_path (Path): Output file path
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            OmegaConf.save(config, f)

    @staticmethod
    def create_override_list(overrides_dict: Dict[str, Any]) -> List[str]:
        """Convert dictionary of overrides to Hydra override list format.

        Example:
            overrides = ConfigManager.create_override_list({
                "executable": {"random_ports": True},
                "logging.level": "DEBUG"
            })
            # Returns: ["executable.random_ports=True", "logging.level=DEBUG"]
        """
        override_list = []

        def _flatten_dict(d: Dict[str, Any], prefix: str = "") -> None:
            for key, value in d.items():
                full_key = f"{prefix}.{key}" if prefix else key

                if isinstance(value, dict):
                    _flatten_dict(value, full_key)
                else:
                    override_list.append(f"{full_key}={value}")

        _flatten_dict(overrides_dict)
        return override_list


# Global configuration manager instance
_config_manager = ConfigManager()


def load_config(config_name: str = "default",
                overrides: Optional[List[str]] = None) -> DictConfig:
    """Load configuration using the global ConfigManager instance."""
    return _config_manager.load_config(config_name, overrides)


def validate_config(config: DictConfig) -> EmbeddedCassandraSettings:
    """Validate configuration using the global ConfigManager instance."""
    return _config_manager.validate_config(config)
