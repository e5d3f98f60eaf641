"""JSON Schema definitions for rule tables, bridge configuration and span documents.

Each schema is a Python dict following JSON Schema Draft 2020-12.
"""

from __future__ import annotations

from typing import Any

import jsonschema

# ======================================================================
# Schemas
# ======================================================================

_KEY_OR_KEYS: dict[str, Any] = {
    "oneOf": [
        {"type": "string"},
        {"type": "array", "items": {"type": "string"}, "minItems": 1},
    ]
}

_MAPPINGS: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["key", "body"],
        "properties": {
            "key": {"type": "string"},
            "arguments": {
                "oneOf": [
                    {"type": "string"},
                    {"type": "array", "items": {"type": "string"}},
                ]
            },
            "body": {"type": "string", "minLength": 1},
        },
        "additionalProperties": False,
    },
}

_TARGET: dict[str, Any] = {"enum": ["segment", "transaction", "trace"]}

_REGEX: dict[str, Any] = {
    "type": "object",
    "required": ["statement"],
    "properties": {
        "statement": {"type": "string"},
        "flags": {"type": "string", "pattern": "^[gims]*$"},
        "name": {"type": "string"},
        "value": {"type": "string"},
        "prefix": {"type": "string"},
        "target": _TARGET,
        "groups": {
            "type": "array",
            "items": {
                "oneOf": [
                    {"type": "string"},
                    {
                        "type": "object",
                        "required": ["group"],
                        "properties": {
                            "group": {"type": "string"},
                            "regex": {"$ref": "#/$defs/regex"},
                        },
                        "additionalProperties": False,
                    },
                ]
            },
        },
    },
    "additionalProperties": False,
}

_NAME_TRANSFORM: dict[str, Any] = {
    "type": "object",
    "properties": {
        "template": {"type": "string"},
        "value": {"type": "string"},
        "prefix": {"type": "string"},
        "verb": {"type": "string"},
        "path": {"type": "string"},
        "templatePath": {"type": "string"},
        "templateValue": {"type": "string"},
    },
    "additionalProperties": False,
}

RULES_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "otelbridge Transformation Rules",
    "type": "array",
    "$defs": {"regex": _REGEX},
    "items": {
        "type": "object",
        "required": ["name", "type", "matcher"],
        "properties": {
            "name": {"type": "string", "minLength": 1},
            "type": {"enum": ["server", "consumer", "producer", "external", "db", "internal"]},
            "matcher": {
                "type": "object",
                "required": ["required_span_kinds"],
                "properties": {
                    "required_span_kinds": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 1,
                    },
                    "required_attribute_keys": {"type": "array", "items": {"type": "string"}},
                    "attribute_conditions": {"type": "object"},
                },
                "additionalProperties": False,
            },
            "attributes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "anyOf": [
                        {"required": ["key"]},
                        {"required": ["value"]},
                        {"required": ["template"]},
                    ],
                    "properties": {
                        "key": {"type": "string"},
                        "value": {},
                        "template": {"type": "string"},
                        "name": {"type": "string"},
                        "target": _TARGET,
                        "highSecurity": {"type": "boolean"},
                        "mappings": _MAPPINGS,
                        "regex": {"$ref": "#/$defs/regex"},
                    },
                    "additionalProperties": False,
                },
            },
            "transaction": {
                "type": "object",
                "properties": {
                    "type": {"enum": ["web", "bg", "message"]},
                    "name": _NAME_TRANSFORM,
                    "url": {
                        "type": "object",
                        "properties": {
                            "template": {"type": "string"},
                            "key": {"type": "string"},
                            "mappings": _MAPPINGS,
                        },
                        "additionalProperties": False,
                    },
                },
                "additionalProperties": False,
            },
            "segment": {
                "type": "object",
                "properties": {
                    "name": _NAME_TRANSFORM,
                    "host": {
                        "oneOf": [
                            _KEY_OR_KEYS,
                            {
                                "type": "object",
                                "properties": {"key": _KEY_OR_KEYS, "template": {"type": "string"}},
                                "additionalProperties": False,
                            },
                        ]
                    },
                    "url": _KEY_OR_KEYS,
                    "system": _KEY_OR_KEYS,
                    "statement": _KEY_OR_KEYS,
                    "collection": _KEY_OR_KEYS,
                    "operation": _KEY_OR_KEYS,
                },
                "additionalProperties": False,
            },
        },
        "additionalProperties": False,
    },
}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "otelbridge Configuration",
    "type": "object",
    "properties": {
        "high_security": {"type": "boolean"},
        "rules_path": {"type": ["string", "null"]},
        "hostname": {"type": ["string", "null"]},
        "url_obfuscation": {
            "type": ["object", "null"],
            "properties": {
                "enabled": {"type": "boolean"},
                "regex": {"type": ["string", "null"]},
                "flags": {"type": "string", "pattern": "^[gims]*$"},
                "replacement": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "naming_rules": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["pattern"],
                "properties": {
                    "pattern": {"type": "string"},
                    "name": {"type": "string"},
                    "ignore": {"type": "boolean"},
                },
                "additionalProperties": False,
            },
        },
        "attribute_value_limit": {"type": "integer", "minimum": 1},
        "max_finished_transactions": {"type": "integer", "minimum": 0},
        "cloud_aws_account_id": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}

_SPAN_CONTEXT_PROPS: dict[str, Any] = {
    "trace_id": {"type": ["string", "integer"]},
    "span_id": {"type": ["string", "integer"]},
    "is_remote": {"type": "boolean"},
}

SPAN_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "otelbridge Span Document",
    "type": "object",
    "required": ["name", "trace_id", "span_id"],
    "properties": {
        "name": {"type": "string"},
        **_SPAN_CONTEXT_PROPS,
        "parent_span_id": {"type": ["string", "integer", "null"]},
        "parent_is_remote": {"type": "boolean"},
        "kind": {
            "type": "string",
            "pattern": "^(?i:server|client|producer|consumer|internal)$",
        },
        "attributes": {"type": "object"},
        "status": {
            "type": "object",
            "properties": {
                "code": {"type": "string", "pattern": "^(?i:unset|ok|error)$"},
                "message": {"type": ["string", "null"]},
            },
        },
        "start_time": {"type": "integer", "minimum": 0},
        "end_time": {"type": "integer", "minimum": 0},
        "duration_ms": {"type": "number", "minimum": 0},
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "attributes": {"type": "object"},
                    "timestamp": {"type": "integer"},
                },
            },
        },
        "links": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["trace_id", "span_id"],
                "properties": {**_SPAN_CONTEXT_PROPS, "attributes": {"type": "object"}},
            },
        },
        "instrumentation_scope": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string"},
                "version": {"type": ["string", "null"]},
            },
        },
    },
    "additionalProperties": True,
}

# Registry for programmatic access
SCHEMAS: dict[str, dict[str, Any]] = {
    "rules": RULES_SCHEMA,
    "config": CONFIG_SCHEMA,
    "span": SPAN_SCHEMA,
}


# ======================================================================
# Validation
# ======================================================================


def validate_file(schema_name: str, data: Any) -> list[str]:
    """Validate *data* against the named schema. Returns list of error messages."""
    schema = SCHEMAS.get(schema_name)
    if schema is None:
        return [f"Unknown schema: {schema_name}"]
    validator = jsonschema.Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.absolute_path)))
    out: list[str] = []
    for err in errors:
        path = ".".join(str(p) for p in err.absolute_path) or "(root)"
        out.append(f"[{path}] {err.message}")
    return out

