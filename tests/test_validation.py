import pytest
from jsonschema import ValidationError

from config.schema import Config
from validation import validate_cassandra_settings


def test_validate_valid_payload():
    payload = {"native_transport_port": 0, "start_rpc": True, "native_transport_port_ssl": None,
               "cluster_name": "Embedded", "extra_settings": {"num_tokens": 1}}
    assert validate_cassandra_settings(payload) is True


def test_validate_port_out_of_range():
    with pytest.raises(ValidationError) as excinfo:
        validate_cassandra_settings({"native_transport_port": 70000})
    assert "Invalid Cassandra settings" in str(excinfo.value)


def test_validate_rejects_unknown_key():
    with pytest.raises(ValidationError):
        validate_cassandra_settings({"native_port": 9042})


def test_validate_rejects_wrong_type():
    with pytest.raises(ValidationError):
        validate_cassandra_settings({"start_native_transport": "yes"})


def test_config_from_mapping():
    config = Config.from_mapping({"storage_port": 17000, "extra_settings": {"num_tokens": 1}})
    assert config.storage_port == 17000
    assert config.extra_settings["num_tokens"] == 1

    with pytest.raises(ValidationError):
        Config.from_mapping({"jmx_port": -1})


def test_validate_rejects_managed_extra_settings():
    with pytest.raises(ValidationError):
        validate_cassandra_settings({"extra_settings": {"native_transport_port": 9999}})
    with pytest.raises(ValidationError):
        Config.from_mapping({"extra_settings": {"storage_port": 7010}})
