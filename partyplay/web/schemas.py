"""
JSON Schema validation for client requests.
Requests failing these checks are rejected before any state is touched.
"""

from typing import Any

from jsonschema import Draft7Validator

from partyplay.exceptions import InvalidRequestError

_ID = {"type": ["string", "integer"], "minLength": 1}
_USER_ID = {"type": "string", "minLength": 1, "description": "Client identifier"}

VOTE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Vote",
    "type": "object",
    "properties": {
        "userID": _USER_ID,
        "vote": {
            "type": "integer",
            "description": "Positive for an upvote, negative for a downvote, 0 to retract",
        },
    },
    "required": ["userID", "vote"],
}

ENQUEUE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Enqueue",
    "type": "object",
    "properties": {
        "song": {
            "type": "object",
            "properties": {
                "id": _ID,
                "title": {"type": "string"},
                "artist": {"type": ["string", "null"]},
                "album": {"type": ["string", "null"]},
                "duration": {"type": "integer", "minimum": 0},
                "service": {"type": "string", "minLength": 1},
            },
            "required": ["id", "title", "duration"],
        },
        "userID": _USER_ID,
        "backend": {"type": "string", "minLength": 1},
    },
    "required": ["song", "userID"],
}

PLAYCTL_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Playback control",
    "type": "object",
    "properties": {
        "action": {"type": "string", "enum": ["skip"]},
    },
    "required": ["action"],
}

_VALIDATORS = {
    id(schema): Draft7Validator(schema)
    for schema in (VOTE_SCHEMA, ENQUEUE_SCHEMA, PLAYCTL_SCHEMA)
}


def payload_errors(schema: dict[str, Any], payload: Any) -> list[str]:
    """
    Validate a request body against one of the request schemas.

    Returns:
        A list of "path: message" strings, empty when the payload is valid.
    """
    validator = _VALIDATORS.get(id(schema)) or Draft7Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    return [
        f"{'.'.join(str(p) for p in error.path) if error.path else 'root'}: "
        f"{error.message}"
        for error in errors
    ]


def validate_payload(schema: dict[str, Any], payload: Any) -> dict[str, Any]:
    """
    Raises:
        InvalidRequestError: If the payload does not match the schema.
    """
    if errors := payload_errors(schema, payload):
        raise InvalidRequestError("; ".join(errors))
    return payload
