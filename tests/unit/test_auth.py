"""Unit tests for Mini App init data validation."""

import json
from urllib.parse import urlencode

import pytest

from src.api.utils.auth import InitDataError, sign_init_data, validate_init_data

TOKEN = "123456:test-token"
NOW = 1_700_000_000


def build_init_data(user_id=42, auth_date=NOW, token=TOKEN, **extra):
    fields = {"auth_date": str(auth_date), "user": json.dumps({"id": user_id, "username": "u"}), **extra}
    fields["hash"] = sign_init_data(fields, token)
    return urlencode(fields)


class TestValidateInitData:
    def test_valid(self):
        user = validate_init_data(build_init_data(query_id="q1"), TOKEN, ttl_seconds=3600, now=NOW + 10)
        assert user["id"] == 42

    def test_wrong_token(self):
        with pytest.raises(InitDataError, match="hash mismatch"):
            validate_init_data(build_init_data(token="other"), TOKEN, ttl_seconds=3600, now=NOW)

    def test_tampered_field(self):
        init_data = build_init_data().replace("%22id%22%3A+42", "%22id%22%3A+43")
        with pytest.raises(InitDataError):
            validate_init_data(init_data, TOKEN, ttl_seconds=3600, now=NOW)

    def test_missing_hash(self):
        with pytest.raises(InitDataError, match="hash is missing"):
            validate_init_data("auth_date=1&user=%7B%7D", TOKEN, ttl_seconds=0)

    def test_expired(self):
        with pytest.raises(InitDataError, match="expired"):
            validate_init_data(build_init_data(), TOKEN, ttl_seconds=60, now=NOW + 61)

    def test_zero_ttl_disables_expiry(self):
        assert validate_init_data(build_init_data(), TOKEN, ttl_seconds=0, now=NOW + 10**6)["id"] == 42

    def test_missing_user(self):
        fields = {"auth_date": str(NOW)}
        fields["hash"] = sign_init_data(fields, TOKEN)

        with pytest.raises(InitDataError, match="user"):
            validate_init_data(urlencode(fields), TOKEN, ttl_seconds=0)
