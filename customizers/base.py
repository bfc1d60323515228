"""Base class and file helpers shared by the customizer steps."""
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from config.schema import LaunchContext

MAIN_CONFIG_FILE = "cassandra.yaml"
JVM_OPTIONS_FILES = ("jvm.options", "jvm-server.options")
ENV_SCRIPT_FILE = "cassandra-env.sh"


class FileCustomizer:
    """One named rewrite of the launch-private config files.

    Subclasses set ``name``, implement ``is_match`` and ``customize``.
    ``customize`` returns a new LaunchContext when the step changes launch
    data, otherwise None.
    """
    name = "customizer"

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        raise NotImplementedError

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


def load_yaml(file: Path) -> Dict[str, Any]:
    with open(file, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{file} does not contain a YAML mapping")
    return data


def dump_yaml(file: Path, data: Dict[str, Any]) -> None:
    with open(file, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, sort_keys=False, default_flow_style=False)


def read_lines(file: Path) -> List[str]:
    return Path(file).read_text(encoding="utf-8").splitlines()


def write_lines(file: Path, lines: List[str]) -> None:
    Path(file).write_text("\n".join(lines) + "\n", encoding="utf-8")


def is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")
