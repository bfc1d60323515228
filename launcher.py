"""Process launcher for the Cassandra start script.

start_launcher spawns the process with stderr merged into stdout and its own
process group. OutputReader drains that pipe on a daemon thread and feeds
each line to the LogWatcher. stop_launcher tears down the whole process tree.
"""
from pathlib import Path
import os
import subprocess
import sys
import threading
from typing import Dict, List, Mapping, Optional

import psutil
from loguru import logger

from log_watcher import LogWatcher


def build_environment(conf_dir: Path, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Inherit the current environment, pointing CASSANDRA_CONF at ``conf_dir``."""
    env = dict(os.environ)
    env["CASSANDRA_CONF"] = str(conf_dir)
    if extra:
        env.update(extra)
    return env


def start_launcher(cmd: List[str], cwd: Path, env: Mapping[str, str]) -> subprocess.Popen:
    """Start the process with merged, line-buffered text output."""
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True

    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd),
        env=dict(env),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        errors="replace",
        **kwargs,
    )
    logger.info("Cassandra process started", pid=proc.pid, command=" ".join(cmd))
    return proc


class OutputReader(threading.Thread):
    """Daemon thread that forwards every output line to a LogWatcher in order."""

    def __init__(self, proc: subprocess.Popen, watcher: LogWatcher):
        super().__init__(name=f"cassandra-output-{proc.pid}", daemon=True)
        self.proc = proc
        self.watcher = watcher

    def run(self):
        try:
            for line in iter(self.proc.stdout.readline, ""):
                self.watcher.process(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            # Pipe closed underneath us during stop()
            logger.debug("Output reader stopped", pid=self.proc.pid, error=str(e))
        exit_code = None
        try:
            exit_code = self.proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            pass
        self.watcher.close(exit_code)


def stop_launcher(proc: subprocess.Popen, timeout: float = 10.0) -> None:
    """Terminate the process and its descendants, killing whatever outlives ``timeout``."""
    if proc.poll() is not None:
        return

    try:
        parent = psutil.Process(proc.pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return

    for p in procs:
        try:
            p.terminate()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for p in alive:
        logger.warning("Process did not terminate, killing", pid=p.pid)
        try:
            p.kill()
        except psutil.NoSuchProcess:
            pass
    if alive:
        psutil.wait_procs(alive, timeout=timeout)

    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error("Process still running after kill", pid=proc.pid)
