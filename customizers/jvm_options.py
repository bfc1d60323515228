"""Merges configured JVM options into the JVM options file."""
from pathlib import Path
from typing import Optional

from config.schema import JvmOptionsMode, LaunchContext
from customizers.base import JVM_OPTIONS_FILES, FileCustomizer, read_lines, write_lines


def flag_name(option: str) -> str:
    """``-Dfoo=bar`` -> ``-Dfoo``; options without ``=`` are their own name."""
    return option.split("=", 1)[0].strip()


class JvmOptionsCustomizer(FileCustomizer):
    """ADD appends missing options; REPLACE first drops lines with the same flag name."""
    name = "jvm-options"

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        return file.name in JVM_OPTIONS_FILES and bool(context.executable_config.jvm_options)

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        executable_config = context.executable_config
        lines = read_lines(file)

        if executable_config.jvm_options_mode is JvmOptionsMode.REPLACE:
            names = {flag_name(option) for option in executable_config.jvm_options}
            lines = [line for line in lines if flag_name(line) not in names]

        present = {line.strip() for line in lines}
        for option in executable_config.jvm_options:
            if option not in present:
                lines.append(option)
                present.add(option)

        write_lines(file, lines)
        return None
