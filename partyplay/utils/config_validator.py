"""
JSON Schema validation for configuration files.
Gives the `validate` command precise, per-key error messages.
"""

import json
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

# JSON Schema for the [partyplay] section, after type conversion
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "partyplay Configuration",
    "description": "Configuration schema for the partyplay server",
    "type": "object",
    "properties": {
        # Server
        "host": {"type": "string", "minLength": 1, "description": "Bind address"},
        "port": {
            "type": "integer",
            "minimum": 1,
            "maximum": 65535,
            "description": "HTTP port",
        },
        # Cache
        "cache_dir": {
            "type": "string",
            "minLength": 1,
            "description": "Directory holding downloaded songs",
        },
        "max_workers": {
            "type": "integer",
            "minimum": 1,
            "maximum": 32,
            "description": "Maximum concurrent connections per media host",
        },
        "retry_delay": {
            "type": "number",
            "minimum": 0,
            "description": "Seconds to wait before reconnecting a dropped download",
        },
        "max_redirects": {"type": "integer", "minimum": 1},
        "max_connection_retries": {"type": "integer", "minimum": 1},
        # Playback
        "end_padding": {
            "type": "number",
            "minimum": 0,
            "description": "Seconds added after each song before advancing",
        },
        "search_result_count": {"type": "integer", "minimum": 1, "maximum": 200},
        "backends": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "uniqueItems": True,
            "description": "Names of the enabled [backend:<name>] sections",
        },
        "backend_options": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {"type": {"type": "string", "minLength": 1}},
                "required": ["type"],
            },
        },
    },
    "required": ["cache_dir"],
    "additionalProperties": False,
}


def validate_config_schema(config_dict: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against JSON schema.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_messages)
    """
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = sorted(
        validator.iter_errors(config_dict), key=lambda e: [str(p) for p in e.path]
    )

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        error_messages.append(f"{path}: {error.message}")

    return not error_messages, error_messages


def export_schema(output_path: Path) -> None:
    """
    Export JSON schema to file for external validation tools.

    Args:
        output_path: Path to save schema file
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(CONFIG_SCHEMA, f, indent=2)


def validate_backend_sections(config: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Check that every enabled backend has a usable section.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []
    options = config.get("backend_options", {})

    for name in config.get("backends", []):
        section = options.get(name)
        if section is None:
            errors.append(f"Backend '{name}' is enabled but has no [backend:{name}] section")
            continue
        if section.get("type") == "http_catalog":
            base_url = section.get("base_url", "")
            if not base_url.startswith(("http://", "https://")):
                errors.append(f"Backend '{name}': base_url must be an http(s) URL")

    for name in options:
        if name not in config.get("backends", []):
            errors.append(f"Warning: section [backend:{name}] is not enabled in 'backends'")

    return all(e.startswith("Warning") for e in errors), errors
