"""Resolve the JAVA_HOME handed to the Cassandra process.

Precedence: ExecutableConfig.java_home > JAVA_HOME env > None (the start
script then falls back to ``java`` on PATH).
"""
import os
from pathlib import Path
from typing import Dict, Optional

from config.schema import ExecutableConfig


def resolve_java_home(executable_config: Optional[ExecutableConfig] = None) -> Optional[str]:
    """Return the Java home to use, or None if nothing is configured."""
    if executable_config is not None and executable_config.java_home:
        return executable_config.java_home

    env_val = os.getenv("JAVA_HOME")
    if env_val:
        return env_val

    return None


def java_environment(executable_config: Optional[ExecutableConfig] = None) -> Dict[str, str]:
    """Environment entries for the resolved Java home.

    Raises:
        FileNotFoundError: If an explicitly configured java_home does not exist
    """
    java_home = resolve_java_home(executable_config)
    if java_home is None:
        return {}
    if executable_config is not None and executable_config.java_home and not Path(java_home).is_dir():
        raise FileNotFoundError(f"Configured java_home does not exist: {java_home}")
    return {"JAVA_HOME": java_home}
