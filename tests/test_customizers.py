import pytest
import yaml

from config.schema import Platform
from customizers import (
    CustomizerPipeline, FileCustomizer, JavaCompatibilityCustomizer, JvmOptionsCustomizer,
    MainConfigCustomizer, NumaCustomizer, RandomPortCustomizer, default_pipeline,
)
from customizers.java_compat import IGNORE_UNRECOGNIZED
from customizers.jvm_options import flag_name
from errors import ConfigurationError
from port_allocator import PortAllocator
from tools.workdir import create_working_copy


def _working_context(context, tmp_path):
    return context.with_file_set(create_working_copy(context.file_set, str(tmp_path / "work")))


def _read(context, name):
    return context.file_set.find(name).read_text()


def _yaml(context):
    return yaml.safe_load(_read(context, "cassandra.yaml"))


def _run(step, context):
    return CustomizerPipeline([step]).run(context)


class DummyFailingCustomizer(FileCustomizer):
    name = "dummy"

    def is_match(self, file, context):
        return True

    def customize(self, file, context):
        raise RuntimeError("boom")


def test_main_config_writes_settings(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(
        cassandra_home(), native_transport_port=19042, storage_port=17000, ssl_storage_port=17001,
        cluster_name="Embedded", native_transport_port_ssl=19142,
        extra_settings={"num_tokens": 1, "hints_directory": "/tmp/hints"},
    ), tmp_path)

    _run(MainConfigCustomizer(), context)

    data = _yaml(context)
    assert data["native_transport_port"] == 19042
    assert data["storage_port"] == 17000
    assert data["ssl_storage_port"] == 17001
    assert data["native_transport_port_ssl"] == 19142
    assert data["cluster_name"] == "Embedded"
    assert data["num_tokens"] == 1
    assert data["hints_directory"] == "/tmp/hints"
    assert data["endpoint_snitch"] == "SimpleSnitch"


def test_main_config_skips_legacy_rpc_keys_when_absent(cassandra_home, launch_context, tmp_path):
    home = cassandra_home()
    config_file = home / "conf" / "cassandra.yaml"
    data = yaml.safe_load(config_file.read_text())
    del data["rpc_port"]
    del data["start_rpc"]
    config_file.write_text(yaml.safe_dump(data))
    context = _working_context(launch_context(home), tmp_path)

    _run(MainConfigCustomizer(), context)

    data = _yaml(context)
    assert "rpc_port" not in data
    assert "start_rpc" not in data


def test_pipeline_is_deterministic(cassandra_home, launch_context, tmp_path):
    context = launch_context(cassandra_home(), executable={"jvm_options": ["-Xmx512m"]})
    first = default_pipeline().run(_working_context(context, tmp_path / "a"))
    second = default_pipeline().run(_working_context(context, tmp_path / "b"))

    for a, b in zip(first.file_set.files, second.file_set.files):
        assert a.name == b.name
        assert a.read_bytes() == b.read_bytes()


def test_pipeline_leaves_distribution_untouched(cassandra_home, launch_context, tmp_path):
    home = cassandra_home()
    before = {p: p.read_bytes() for p in (home / "conf").iterdir()}
    context = launch_context(home, executable={"random_ports": True, "jvm_options": ["-Xmx1G"]})

    default_pipeline().run(_working_context(context, tmp_path))

    assert {p: p.read_bytes() for p in (home / "conf").iterdir()} == before


def test_jvm_options_add_appends_missing_only(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(
        cassandra_home(), executable={"jvm_options": ["-Xss256k", "-Xmx1G", "-Dfoo=bar"]}), tmp_path)

    _run(JvmOptionsCustomizer(), context)

    lines = _read(context, "jvm.options").splitlines()
    assert lines.count("-Xss256k") == 1
    assert lines[-2:] == ["-Xmx1G", "-Dfoo=bar"]
    assert "-Dcassandra.max_queued_native_transport_requests=1024" in lines


def test_jvm_options_replace_removes_same_flag(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home(), executable={
        "jvm_options": ["-Dcassandra.max_queued_native_transport_requests=4096", "-ea"],
        "jvm_options_mode": "REPLACE",
    }), tmp_path)

    _run(JvmOptionsCustomizer(), context)

    lines = _read(context, "jvm.options").splitlines()
    assert "-Dcassandra.max_queued_native_transport_requests=1024" not in lines
    assert lines.count("-ea") == 1
    assert lines[-2:] == ["-Dcassandra.max_queued_native_transport_requests=4096", "-ea"]


def test_flag_name():
    assert flag_name("-Dfoo=bar") == "-Dfoo"
    assert flag_name("-XX:+UseG1GC") == "-XX:+UseG1GC"


def test_java_compat_unix(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home()), tmp_path)

    _run(JavaCompatibilityCustomizer(), context)
    _run(JavaCompatibilityCustomizer(), context)

    options = _read(context, "jvm.options").splitlines()
    assert "#-XX:+UseConcMarkSweepGC" in options
    assert "#-XX:+UseParNewGC" in options
    assert "#-XX:+CMSParallelRemarkEnabled" in options
    assert "#-XX:ThreadPriorityPolicy=42" in options
    assert "#-XX:+PrintGCDetails" in options
    assert "-Xss256k" in options
    assert options.count(IGNORE_UNRECOGNIZED) == 1

    env = _read(context, "cassandra-env.sh").splitlines()
    assert env[0] == 'JMX_PORT="7199"'
    assert env[1].startswith("#") and "-Xloggc" in env[1]
    assert env[2].startswith("#")
    assert not env[3].startswith("#")


def test_java_compat_windows_leaves_env_script(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home(), platform=Platform.WINDOWS), tmp_path)
    original_env = _read(context, "cassandra-env.sh")

    _run(JavaCompatibilityCustomizer(), context)

    assert _read(context, "cassandra-env.sh") == original_env
    assert IGNORE_UNRECOGNIZED in _read(context, "jvm.options").splitlines()


def test_numa_option_stripped_off_linux(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home(), platform=Platform.OS_X), tmp_path)

    _run(NumaCustomizer(), context)

    assert "-XX:+UseNUMA" not in _read(context, "jvm.options").splitlines()


def test_numa_option_stripped_without_numactl(cassandra_home, launch_context, tmp_path, monkeypatch):
    monkeypatch.setattr("customizers.numa.shutil.which", lambda name: None)
    context = _working_context(launch_context(cassandra_home()), tmp_path)

    _run(NumaCustomizer(), context)

    assert "-XX:+UseNUMA" not in _read(context, "jvm.options").splitlines()


def test_numa_option_kept_on_numa_host(cassandra_home, launch_context, tmp_path, monkeypatch):
    monkeypatch.setattr("customizers.numa.shutil.which", lambda name: "/usr/bin/numactl")
    nodes = tmp_path / "node"
    for name in ("node0", "node1", "possible"):
        (nodes / name).mkdir(parents=True)
    context = _working_context(launch_context(cassandra_home()), tmp_path)

    _run(NumaCustomizer(node_root=nodes), context)

    assert "-XX:+UseNUMA" in _read(context, "jvm.options").splitlines()


def test_random_ports_resolves_sentinels(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(
        cassandra_home(), native_transport_port=0, rpc_port=0, storage_port=0,
        ssl_storage_port=0, jmx_port=0), tmp_path)
    allocator = PortAllocator()

    effective = _run(RandomPortCustomizer(allocator), context)

    required = effective.ports.required()
    assert all(port != 0 for port in required.values())
    assert len(set(required.values())) == 5
    assert effective.ports.native_transport_ssl is None
    assert context.ports.native_transport == 0

    data = _yaml(effective)
    assert data["native_transport_port"] == effective.ports.native_transport
    assert data["storage_port"] == effective.ports.storage
    assert data["rpc_port"] == effective.ports.rpc
    assert "native_transport_port_ssl" not in data


def test_random_ports_flag_replaces_fixed_ports(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(
        cassandra_home(), native_transport_port_ssl=9142, executable={"random_ports": True}), tmp_path)

    effective = default_pipeline().run(context)

    ports = effective.ports
    assert ports.native_transport != 9042
    assert ports.jmx != 7199
    assert ports.native_transport_ssl not in (None, 0)
    assert _yaml(effective)["native_transport_port_ssl"] == ports.native_transport_ssl


def test_random_ports_skipped_for_fixed_ports(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home()), tmp_path)

    effective = default_pipeline().run(context)

    assert effective is context


def test_pipeline_failure_is_configuration_error(cassandra_home, launch_context, tmp_path):
    context = _working_context(launch_context(cassandra_home()), tmp_path)

    with pytest.raises(ConfigurationError) as excinfo:
        CustomizerPipeline([MainConfigCustomizer(), DummyFailingCustomizer()]).run(context)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "dummy" in str(excinfo.value)


def test_invalid_main_config_is_configuration_error(cassandra_home, launch_context, tmp_path):
    home = cassandra_home()
    (home / "conf" / "cassandra.yaml").write_text("- not\n- a mapping\n")
    context = _working_context(launch_context(home), tmp_path)

    with pytest.raises(ConfigurationError):
        default_pipeline().run(context)
