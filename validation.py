"""Schema validation helpers for Cassandra settings.

Provides a JSON Schema for the ``cassandra`` settings section and a helper to
validate raw mappings before they become a ``Config``.
"""
from jsonschema import validate, ValidationError


PORT_SCHEMA = {"type": "integer", "minimum": 0, "maximum": 65535}

# Keys the supervisor writes itself; extra_settings must not shadow them
MANAGED_SETTINGS = frozenset({
    "start_native_transport", "start_rpc",
    "native_transport_port", "rpc_port", "storage_port", "ssl_storage_port", "jmx_port",
    "native_transport_port_ssl",
    "cluster_name", "listen_address", "rpc_address",
})

CASSANDRA_SETTINGS_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "start_native_transport": {"type": "boolean"},
        "start_rpc": {"type": "boolean"},
        "native_transport_port": PORT_SCHEMA,
        "rpc_port": PORT_SCHEMA,
        "storage_port": PORT_SCHEMA,
        "ssl_storage_port": PORT_SCHEMA,
        "jmx_port": PORT_SCHEMA,
        "native_transport_port_ssl": {"anyOf": [PORT_SCHEMA, {"type": "null"}]},
        "cluster_name": {"type": "string", "minLength": 1},
        "listen_address": {"type": "string", "minLength": 1},
        "rpc_address": {"type": "string", "minLength": 1},
        "extra_settings": {
            "type": "object",
            "propertyNames": {"not": {"enum": sorted(MANAGED_SETTINGS)}},
        },
    }
}


def validate_cassandra_settings(payload: dict) -> bool:
    """Validate a mapping against the Cassandra settings schema.

    Raises:
        jsonschema.ValidationError: on invalid payloads with a helpful message.

    Returns:
        True when valid.
    """
    try:
        validate(instance=payload, schema=CASSANDRA_SETTINGS_SCHEMA)
    except ValidationError as exc:
        # Re-raise with a clear message for upstream handling
        raise ValidationError(f"Invalid Cassandra settings: {exc.message}") from exc

    return True
