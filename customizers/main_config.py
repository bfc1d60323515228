"""Writes Config values into cassandra.yaml."""
from pathlib import Path
from typing import Any, Dict, Optional

from config.schema import Config, LaunchContext
from customizers.base import MAIN_CONFIG_FILE, FileCustomizer, dump_yaml, load_yaml

LEGACY_RPC_KEYS = ("start_rpc", "rpc_port")


def port_settings(config: Config, existing: Dict[str, Any]) -> Dict[str, Any]:
    """Port keys for cassandra.yaml.

    Legacy RPC keys are included only when the file already has them or RPC
    is enabled; newer Cassandra versions reject unknown keys.
    """
    settings: Dict[str, Any] = {
        "native_transport_port": config.native_transport_port,
        "storage_port": config.storage_port,
        "ssl_storage_port": config.ssl_storage_port,
    }
    if config.start_rpc or "rpc_port" in existing:
        settings["rpc_port"] = config.rpc_port
    if config.native_transport_port_ssl is not None:
        settings["native_transport_port_ssl"] = config.native_transport_port_ssl
    return settings


class MainConfigCustomizer(FileCustomizer):
    name = "main-config"

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        return file.name == MAIN_CONFIG_FILE

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        config = context.config
        data = load_yaml(file)
        data["cluster_name"] = config.cluster_name
        data["listen_address"] = config.listen_address
        data["rpc_address"] = config.rpc_address
        data["start_native_transport"] = config.start_native_transport
        if config.start_rpc or "start_rpc" in data:
            data["start_rpc"] = config.start_rpc
        data.update(port_settings(config, data))
        for key, value in config.extra_settings.items():
            data[key] = value
        dump_yaml(file, data)
        return None
