"""Keeps older Cassandra distributions runnable on newer JDKs.

Options removed from modern JVMs make the JVM refuse to start, so they are
commented out of the options file and the environment script.
"""
from pathlib import Path
from typing import List, Optional, Sequence

from config.schema import LaunchContext, Platform
from customizers.base import (
    ENV_SCRIPT_FILE, JVM_OPTIONS_FILES, FileCustomizer, is_comment, read_lines, write_lines,
)

IGNORE_UNRECOGNIZED = "-XX:+IgnoreUnrecognizedVMOptions"

# Prefixes of options rejected by JDK 11+
REMOVED_JVM_OPTIONS = (
    "-XX:+UseConcMarkSweepGC",
    "-XX:+UseParNewGC",
    "-XX:+CMS",
    "-XX:CMS",
    "-XX:ThreadPriorityPolicy=42",
    "-XX:+UseBiasedLocking",
    "-XX:-UseBiasedLocking",
    "-XX:BiasedLockingStartupDelay",
    "-XX:+PrintGC",
    "-XX:+PrintHeapAtGC",
    "-XX:+PrintTenuringDistribution",
    "-XX:+PrintPromotionFailure",
    "-XX:PrintFLSStatistics",
    "-XX:+UseGCLogFileRotation",
    "-XX:NumberOfGCLogFiles",
    "-XX:GCLogFileSize",
)

# Substrings of cassandra-env.sh lines that add legacy GC logging
ENV_SCRIPT_MARKERS = (
    "-Xloggc",
    "-XX:+PrintGC",
    "-XX:+UseGCLogFileRotation",
    "-XX:NumberOfGCLogFiles",
    "-XX:GCLogFileSize",
    "ThreadPriorityPolicy",
)


def comment_out(lines: Sequence[str], matches) -> List[str]:
    result = []
    for line in lines:
        if not is_comment(line) and matches(line):
            result.append(f"#{line}")
        else:
            result.append(line)
    return result


class JavaCompatibilityCustomizer(FileCustomizer):
    name = "java-compatibility"

    def is_match(self, file: Path, context: LaunchContext) -> bool:
        if file.name in JVM_OPTIONS_FILES:
            return True
        # No env script is used on Windows
        return file.name == ENV_SCRIPT_FILE and context.distribution.platform is not Platform.WINDOWS

    def customize(self, file: Path, context: LaunchContext) -> Optional[LaunchContext]:
        lines = read_lines(file)
        if file.name == ENV_SCRIPT_FILE:
            lines = comment_out(lines, lambda l: any(m in l for m in ENV_SCRIPT_MARKERS))
        else:
            lines = comment_out(lines, lambda l: l.strip().startswith(REMOVED_JVM_OPTIONS))
            if IGNORE_UNRECOGNIZED not in (line.strip() for line in lines):
                lines.append(IGNORE_UNRECOGNIZED)
        write_lines(file, lines)
        return None
