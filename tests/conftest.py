import os
import sys
from pathlib import Path

import pytest

from config.schema import (
    BitSize, Config, Distribution, ExecutableConfig, ExtractedFileSet, LaunchContext, Platform,
)


CASSANDRA_YAML = """\
cluster_name: 'Test Cluster'
num_tokens: 256
storage_port: 7000
ssl_storage_port: 7001
listen_address: localhost
start_native_transport: true
native_transport_port: 9042
start_rpc: false
rpc_address: localhost
rpc_port: 9160
endpoint_snitch: SimpleSnitch
"""

JVM_OPTIONS = """\
# JVM options
-ea
-XX:+UseThreadPriorities
-XX:ThreadPriorityPolicy=42
-Xss256k
-XX:+UseNUMA
-XX:+UseParNewGC
-XX:+UseConcMarkSweepGC
-XX:+CMSParallelRemarkEnabled
#-XX:+PrintGCDetails
-Dcassandra.max_queued_native_transport_requests=1024
"""

CASSANDRA_ENV = """\
JMX_PORT="7199"
JVM_OPTS="$JVM_OPTS -Xloggc:${CASSANDRA_LOG_DIR}/gc.log"
JVM_OPTS="$JVM_OPTS -XX:+UseGCLogFileRotation"
JVM_OPTS="$JVM_OPTS -Djava.net.preferIPv4Stack=true"
"""

# Stand-in for bin/cassandra: reads the customized cassandra.yaml and
# behaves according to MODE.
FAKE_CASSANDRA = """\
#!{python}
import socket
import sys
import time

import yaml

MODE = {mode!r}


def config_path():
    for arg in sys.argv[1:]:
        if arg.startswith("-Dcassandra.config=file:"):
            return "/" + arg.split("file:", 1)[1].lstrip("/")
    raise SystemExit("missing -Dcassandra.config")


def sleep_forever():
    while True:
        time.sleep(1)


def main():
    with open(config_path()) as fh:
        settings = yaml.safe_load(fh)
    port = settings["native_transport_port"]

    if MODE == "silent":
        sleep_forever()
    if MODE == "exit":
        print("INFO  Loading settings", flush=True)
        sys.exit(3)
    if MODE == "fatal":
        print("ERROR Exception (org.apache.cassandra.exceptions.ConfigurationException) "
              "encountered during startup: Invalid yaml", flush=True)
        sys.exit(1)

    print("INFO  Starting Messaging Service on localhost/127.0.0.1:%d" % settings["storage_port"], flush=True)
    if MODE == "ready":
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server.bind(("127.0.0.1", port))
        except OSError:
            print("ERROR Failed to bind port %d on 127.0.0.1: Address already in use" % port, flush=True)
            sys.exit(1)
        server.listen(5)
    print("INFO  Starting listening for CQL clients on localhost/127.0.0.1:%d" % port, flush=True)
    sleep_forever()


main()
"""


def _write_home(root: Path, mode: str) -> Path:
    home = root / f"apache-cassandra-{mode}"
    (home / "bin").mkdir(parents=True)
    (home / "conf").mkdir()
    (home / "conf" / "cassandra.yaml").write_text(CASSANDRA_YAML)
    (home / "conf" / "jvm.options").write_text(JVM_OPTIONS)
    (home / "conf" / "cassandra-env.sh").write_text(CASSANDRA_ENV)

    executable = home / "bin" / "cassandra"
    executable.write_text(FAKE_CASSANDRA.format(python=sys.executable, mode=mode))
    os.chmod(executable, 0o755)
    return home


@pytest.fixture
def cassandra_home(tmp_path):
    """Factory for an extracted distribution whose start script is a fake Cassandra."""
    def _make(mode: str = "ready") -> Path:
        return _write_home(tmp_path, mode)
    return _make


@pytest.fixture
def launch_context():
    """Factory for a LaunchContext over a distribution directory."""
    def _make(home: Path, platform: Platform = Platform.LINUX, executable: dict = None, **config) -> LaunchContext:
        return LaunchContext(
            config=Config(**config),
            executable_config=ExecutableConfig(**(executable or {})),
            distribution=Distribution(platform, BitSize.B64, "3.11.3"),
            file_set=ExtractedFileSet.from_directory(home, platform),
        )
    return _make
