"""Removes the NUMA JVM option on hosts that cannot honor it."""
import shutil
from pathlib import Path
from typing import Optional

from loguru import logger

from config.schema import LaunchContext, Platform
from customizers.base import JVM_OPTIONS_FILES, FileCustomizer, read_lines, write_lines

NUMA_OPTION = "-XX:+UseNUMA"
NODE_ROOT = Path("/sys/devices/system/node")


def numa_capable(platform: Platform, node_root: Path = NODE_ROOT) -> bool:
    """Linux with numactl on PATH and more than one NUMA node."""
    if platform is not Platform.LINUX:
        return False
    if shutil.which("numactl") is None:
        return False
    if not node_root.is_dir():
        return False
    nodes = [p for p in node_root.iterdir() if p.name.startswith("node") and p.name[4:].isdigit()]
    return len(nodes) > 1


class NumaCustomizer(FileCustomizer):
    name = "numa"

    def __init__(self, node_root: Path = NODE_ROOT):
        self.node_root = node_root

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        return file.name in JVM_OPTIONS_FILES

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        if numa_capable(context.distribution.platform, self.node_root):
            return None
        lines = read_lines(file)
        kept = [line for line in lines if line.strip() != NUMA_OPTION]
        if len(kept) != len(lines):
            logger.debug("Removed NUMA option", file=str(file))
        write_lines(file, kept)
        return None
