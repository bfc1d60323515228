"""Platform-specific command lines for the Cassandra start script."""
import os
from pathlib import Path
from typing import Dict, List, Type

from config.schema import LaunchContext, Platform


class CommandBuilder:
    """Builds argv for launching Cassandra in the foreground.

    Use ``CommandBuilder.for_platform(platform)`` to get the right builder.
    """

    def jvm_arguments(self, context: LaunchContext) -> List[str]:
        config_file = context.file_set.config_file
        if config_file is None:
            raise FileNotFoundError("cassandra.yaml is not part of the extracted file set")
        return [
            f"-Dcassandra.config=file:///{_uri_path(config_file)}",
            f"-Dcassandra.jmx.local.port={context.config.jmx_port}",
        ]

    def build(self, context: LaunchContext) -> List[str]:
        raise NotImplementedError

    @staticmethod
    def for_platform(platform: Platform) -> "CommandBuilder":
        return _BUILDERS.get(platform, UnixCommandBuilder)()


def _uri_path(path: Path) -> str:
    return Path(path).resolve().as_posix().lstrip("/")


class UnixCommandBuilder(CommandBuilder):
    """``cassandra -f [-R] -D...``"""

    def build(self, context: LaunchContext) -> List[str]:
        args = [str(context.file_set.executable), "-f"]
        # Cassandra refuses to start as root without -R
        if hasattr(os, "geteuid") and os.geteuid() == 0:
            args.append("-R")
        args.extend(self.jvm_arguments(context))
        return args


class WindowsCommandBuilder(CommandBuilder):
    """``powershell -ExecutionPolicy Unrestricted cassandra.ps1 -f `-D...``"""

    def build(self, context: LaunchContext) -> List[str]:
        args = ["powershell", "-ExecutionPolicy", "Unrestricted", str(context.file_set.executable), "-f"]
        args.extend(f"`{arg}" for arg in self.jvm_arguments(context))
        return args


_BUILDERS: Dict[Platform, Type[CommandBuilder]] = {
    Platform.WINDOWS: WindowsCommandBuilder,
    Platform.LINUX: UnixCommandBuilder,
    Platform.OS_X: UnixCommandBuilder,
    Platform.SOLARIS: UnixCommandBuilder,
    Platform.FREE_BSD: UnixCommandBuilder,
}
