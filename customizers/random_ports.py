"""Resolves ports to free ephemeral ports and writes them to cassandra.yaml."""
from pathlib import Path
from typing import Optional

from loguru import logger

from config.schema import LaunchContext, PortAssignment
from customizers.base import MAIN_CONFIG_FILE, FileCustomizer, dump_yaml, load_yaml
from customizers.main_config import port_settings
from port_allocator import PortAllocator


def _zeroed(ports: PortAssignment) -> PortAssignment:
    ssl = 0 if ports.native_transport_ssl is not None else None
    return PortAssignment(0, 0, 0, 0, 0, native_transport_ssl=ssl)


class RandomPortCustomizer(FileCustomizer):
    """Replaces every port equal to 0 with one from the launch's allocator.

    With ``random_ports`` enabled all required ports are zeroed first. The
    optional SSL native transport port is only resolved if it was set.
    """
    name = "random-ports"

    def __init__(self, allocator: PortAllocator):
        self.allocator = allocator

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        if file.name != MAIN_CONFIG_FILE:
            return False
        if context.executable_config.random_ports:
            return True
        return 0 in context.ports.as_dict().values()

    def _resolve(self, port: Optional[int]) -> Optional[int]:
        if port == 0:
            return self.allocator.allocate()
        return port

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        ports = context.ports
        if context.executable_config.random_ports:
            ports = _zeroed(ports)

        resolved = PortAssignment(
            native_transport=self._resolve(ports.native_transport),
            rpc=self._resolve(ports.rpc),
            storage=self._resolve(ports.storage),
            ssl_storage=self._resolve(ports.ssl_storage),
            jmx=self._resolve(ports.jmx),
            native_transport_ssl=self._resolve(ports.native_transport_ssl),
        )
        config = context.config.with_ports(resolved)

        data = load_yaml(file)
        data.update(port_settings(config, data))
        dump_yaml(file, data)

        logger.info("Resolved launch ports", **resolved.as_dict())
        return context.with_config(config)
