import sys
import time

import launcher
from config.schema import Config
from log_watcher import EventType, LogWatcher, ReadinessState


def test_build_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SOME_VAR", "1")
    env = launcher.build_environment(tmp_path, {"JAVA_HOME": "/opt/java"})
    assert env["CASSANDRA_CONF"] == str(tmp_path)
    assert env["JAVA_HOME"] == "/opt/java"
    assert env["SOME_VAR"] == "1"


def test_reader_forwards_merged_output(tmp_path):
    script = ("import sys\n"
              "print('to stdout', flush=True)\n"
              "print('to stderr', file=sys.stderr, flush=True)\n"
              "print('Starting listening for CQL clients', flush=True)\n"
              "sys.exit(2)\n")
    lines = []
    proc = launcher.start_launcher([sys.executable, "-c", script], cwd=tmp_path,
                                   env=launcher.build_environment(tmp_path))
    watcher = LogWatcher(Config(), sink=lines.append)
    reader = launcher.OutputReader(proc, watcher)
    reader.start()
    reader.join(timeout=10)

    assert not reader.is_alive()
    assert lines == ["to stdout", "to stderr", "Starting listening for CQL clients"]
    assert watcher.state is ReadinessState.SUCCEEDED

    assert watcher.events.get_nowait().type is EventType.READINESS
    exited = watcher.events.get_nowait()
    assert exited.type is EventType.EXITED
    assert exited.exit_code == 2


def test_stop_launcher_terminates_process(tmp_path):
    proc = launcher.start_launcher([sys.executable, "-c", "import time; time.sleep(60)"], cwd=tmp_path,
                                   env=launcher.build_environment(tmp_path))
    assert proc.poll() is None

    started = time.monotonic()
    launcher.stop_launcher(proc, timeout=5)

    assert proc.poll() is not None
    assert time.monotonic() - started < 10


def test_stop_launcher_on_exited_process(tmp_path):
    proc = launcher.start_launcher([sys.executable, "-c", "pass"], cwd=tmp_path,
                                   env=launcher.build_environment(tmp_path))
    proc.wait(timeout=10)
    launcher.stop_launcher(proc)
    assert proc.returncode == 0
