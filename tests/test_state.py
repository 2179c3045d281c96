"""
Tests for OAuth state encoding and validation.
"""

import base64
import json
from datetime import UTC, datetime, timedelta

import pytest

from authmate.core.exceptions import DecodeError, StateDecodeError
from authmate.core.state import (
    KNOWN_PROVIDERS,
    decode_state,
    encode_state,
    validate_state,
)


def _raw_state(payload: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


class TestEncodeDecode:
    """Tests for encode_state / decode_state."""

    @pytest.mark.parametrize("provider", sorted(KNOWN_PROVIDERS))
    def test_decode_returns_provider_and_issue_time(self, provider):
        before = datetime.now(UTC)
        token = decode_state(encode_state(provider))

        assert token.provider_name == provider
        assert abs((token.issued_at - before).total_seconds()) < 1

    def test_return_url_and_additional_data_survive(self):
        state = encode_state(
            "Google", return_url="/dashboard?x=1", additional_data={"flow": "connect"}
        )

        token = decode_state(state)

        assert token.provider_name == "Google"
        assert token.return_url == "/dashboard?x=1"
        assert token.additional_data == {"flow": "connect"}

    def test_encoded_state_is_url_safe(self):
        state = encode_state("google", return_url="/a?b=c&d=e~~~???")

        assert "+" not in state
        assert "/" not in state

    def test_decode_accepts_unpadded_value(self):
        state = encode_state("github").rstrip("=")

        assert decode_state(state).provider_name == "github"

    def test_naive_timestamp_is_treated_as_utc(self):
        state = _raw_state({"provider_name": "google", "issued_at": "2024-01-01T10:00:00"})

        token = decode_state(state)

        assert token.issued_at == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "!!!not-base64!!!",
            base64.urlsafe_b64encode(b"not json").decode(),
            base64.urlsafe_b64encode(b"\xff\xfe\xfd").decode(),
            _raw_state({"issued_at": "2024-01-01T00:00:00Z"}),
            _raw_state({"provider_name": "google"}),
            _raw_state(["google"]),
        ],
    )
    def test_decode_rejects_malformed_values(self, value):
        with pytest.raises(StateDecodeError):
            decode_state(value)

    def test_state_decode_error_is_a_decode_error(self):
        with pytest.raises(DecodeError):
            decode_state("@@@")


class TestValidateState:
    """Tests for validate_state."""

    def test_fresh_state_is_valid(self):
        assert validate_state(encode_state("google")) is True

    def test_provider_name_is_case_insensitive(self):
        assert validate_state(encode_state("GitHub")) is True

    @pytest.mark.parametrize("hours", [-3, 3])
    def test_state_three_hours_away_is_invalid(self, hours):
        now = datetime.now(UTC)
        state = encode_state("google", now=now + timedelta(hours=hours))

        assert validate_state(state, now=now) is False

    def test_state_one_hour_old_is_valid(self):
        now = datetime.now(UTC)
        state = encode_state("google", now=now - timedelta(hours=1))

        assert validate_state(state, now=now) is True

    @pytest.mark.parametrize("hours", [-2, 2])
    def test_window_bounds_are_inclusive(self, hours):
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        state = encode_state("google", now=now + timedelta(hours=hours))

        assert validate_state(state, now=now) is True

    def test_naive_now_is_treated_as_utc(self):
        now = datetime.now(UTC)
        state = encode_state("google", now=now - timedelta(hours=1))

        naive_now = now.replace(tzinfo=None)

        assert validate_state(state, now=naive_now) is True
        assert validate_state(state, now=naive_now + timedelta(hours=3)) is False

    @pytest.mark.parametrize("provider", ["unknown", "okta", "googl", "gitlab"])
    def test_unknown_provider_is_invalid_regardless_of_time(self, provider):
        now = datetime.now(UTC)
        state = encode_state(provider, now=now)

        assert validate_state(state, now=now) is False

    @pytest.mark.parametrize("value", ["", "garbage", "e30="])
    def test_malformed_state_is_invalid_without_raising(self, value):
        assert validate_state(value) is False
