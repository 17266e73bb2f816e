"""
Tests for request body validation.
"""

import pytest

from partyplay.exceptions import InvalidRequestError
from partyplay.web.schemas import (
    ENQUEUE_SCHEMA,
    PLAYCTL_SCHEMA,
    VOTE_SCHEMA,
    payload_errors,
    validate_payload,
)


class TestVoteSchema:
    """POST /vote/{id} bodies."""

    def test_valid(self):
        assert payload_errors(VOTE_SCHEMA, {"userID": "u1", "vote": -1}) == []

    @pytest.mark.parametrize(
        "body",
        [
            {"vote": 1},
            {"userID": "u1"},
            {"userID": "", "vote": 1},
            {"userID": "u1", "vote": "up"},
            {"userID": "u1", "vote": True},
            ["userID", "vote"],
        ],
    )
    def test_invalid(self, body):
        with pytest.raises(InvalidRequestError):
            validate_payload(VOTE_SCHEMA, body)


class TestEnqueueSchema:
    """POST /queue bodies."""

    SONG = {"id": "abc", "title": "Song", "duration": 1000}

    def test_valid_minimal(self):
        assert payload_errors(ENQUEUE_SCHEMA, {"song": self.SONG, "userID": "u1"}) == []

    def test_numeric_ids_allowed(self):
        song = {**self.SONG, "id": 7}
        assert payload_errors(ENQUEUE_SCHEMA, {"song": song, "userID": "u1"}) == []

    def test_error_paths_are_reported(self):
        errors = payload_errors(
            ENQUEUE_SCHEMA, {"song": {"id": "a", "title": "t"}, "userID": "u1"}
        )
        assert errors == ["song: 'duration' is a required property"]

    @pytest.mark.parametrize(
        "body",
        [
            {"userID": "u1"},
            {"song": {"id": "a", "duration": 1}, "userID": "u1"},
            {"song": {"id": "a", "title": "t", "duration": -1}, "userID": "u1"},
            {"song": "abc", "userID": "u1"},
            {"song": {"id": "a", "title": "t", "duration": 1}},
            {"song": {"id": "a", "title": "t", "duration": 1}, "userID": "u1", "backend": ""},
        ],
    )
    def test_invalid(self, body):
        with pytest.raises(InvalidRequestError):
            validate_payload(ENQUEUE_SCHEMA, body)


class TestPlayctlSchema:
    """POST /playctl bodies."""

    def test_skip(self):
        assert validate_payload(PLAYCTL_SCHEMA, {"action": "skip"}) == {"action": "skip"}

    def test_unknown_action(self):
        with pytest.raises(InvalidRequestError, match="action"):
            validate_payload(PLAYCTL_SCHEMA, {"action": "rewind"})
