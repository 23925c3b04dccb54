"""Tests for the declarative request rules."""

import pytest

from auth import store
from auth.errors import ValidationError
from auth.validation import LOGIN_SCHEMA, PASSWORD_PATTERN, REGISTER_SCHEMA, first_error, validate
from persistence.db import get_db


def registration(**overrides):
    payload = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "password": "Valid1Pass!",
        "c_password": "Valid1Pass!",
    }
    payload.update(overrides)
    return payload


def failing_rule(payload, schema=REGISTER_SCHEMA):
    with get_db() as conn:
        failure = first_error(payload, schema, conn)
    return None if failure is None else (failure[0], failure[1].name)


class TestPasswordPattern:
    @pytest.mark.parametrize("password", ["Valid1Pass!", "aB3_", "Zz9@zz", "Pa$$w0rd"])
    def test_accepts(self, password):
        assert PASSWORD_PATTERN.match(password)

    @pytest.mark.parametrize("password", [
        "alllowercase1",     # no uppercase, no symbol
        "ALLUPPER1!",        # no lowercase
        "NoDigits!",         # no digit
        "NoSymbol1",         # no symbol
        "Valid1Pass!^",      # symbol outside the allowed set
        "Valid1 Pass!",      # whitespace
        "Válid1Pass!",       # non-ASCII letter
    ])
    def test_rejects(self, password):
        assert not PASSWORD_PATTERN.match(password)


class TestRegisterSchema:
    def test_valid_payload(self):
        assert failing_rule(registration()) is None

    @pytest.mark.parametrize("overrides, expected", [
        ({"name": None}, ("name", "required")),
        ({"name": "   "}, ("name", "required")),
        ({"name": "x" * 201}, ("name", "max:200")),
        ({"email": ""}, ("email", "required")),
        ({"email": "not-an-email"}, ("email", "email")),
        ({"password": None}, ("password", "required")),
        ({"password": "aB", "c_password": "aB"}, ("password", "min:3")),
        ({"password": "alllowercase1", "c_password": "alllowercase1"}, ("password", "regex")),
        ({"c_password": None}, ("c_password", "required")),
        ({"c_password": "Valid1Pass?"}, ("c_password", "same:password")),
    ])
    def test_first_failing_rule(self, overrides, expected):
        assert failing_rule(registration(**overrides)) == expected

    def test_name_at_limit_is_accepted(self):
        assert failing_rule(registration(name="x" * 200)) is None

    def test_fields_checked_in_order(self):
        """With several bad fields, the first field's message wins."""
        assert failing_rule(registration(name="", email="bad", password="")) == ("name", "required")

    def test_unique_email_case_insensitive(self):
        with get_db() as conn:
            store.create_user(conn, "Existing", "jane@example.com", "hash")

        assert failing_rule(registration(email="JANE@Example.com")) == ("email", "unique:users,email")

    def test_validate_raises_first_message(self):
        with get_db() as conn:
            with pytest.raises(ValidationError) as exc_info:
                validate(registration(email="bad"), REGISTER_SCHEMA, conn)

        assert exc_info.value.message == "The email format is invalid."
        assert exc_info.value.status_code == 422

    def test_validate_returns_schema_fields_only(self):
        with get_db() as conn:
            data = validate(registration(extra="ignored"), REGISTER_SCHEMA, conn)

        assert set(data) == {"name", "email", "password", "c_password"}

    def test_unique_rule_needs_connection(self):
        with pytest.raises(ValueError):
            first_error(registration(), REGISTER_SCHEMA, None)


class TestLoginSchema:
    def test_valid(self):
        assert first_error({"email": "jane@example.com", "password": "x"}, LOGIN_SCHEMA) is None

    def test_unknown_email_is_not_a_validation_error(self):
        assert first_error({"email": "nobody@example.com", "password": "x"}, LOGIN_SCHEMA) is None

    def test_status_override(self):
        with pytest.raises(ValidationError) as exc_info:
            validate({"email": "", "password": "x"}, LOGIN_SCHEMA, status_code=400)

        assert exc_info.value.status_code == 400
