"""
Declarative request validation.

Each operation has a rule table: fields in order, each with its rules
in order. Validation stops at the first failing rule and raises a
ValidationError carrying that rule's message.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from auth import store
from auth.errors import ValidationError

# Lowercase, uppercase, digit and one of the allowed symbols; nothing else
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[@$!%*#?&_])[A-Za-z0-9@$!%*#?&_]+$"
)
NAME_MAX_LENGTH = 200
PASSWORD_MIN_LENGTH = 3

Check = Callable[[Any, Mapping[str, Any], Optional[sqlite3.Connection]], bool]


@dataclass(frozen=True)
class Rule:
    """A single named check and the message shown when it fails."""
    name: str
    check: Check
    message: str


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def required(message: str) -> Rule:
    return Rule("required", lambda value, data, conn: not _is_blank(value), message)


def max_length(limit: int, message: str) -> Rule:
    return Rule(f"max:{limit}", lambda value, data, conn: len(str(value)) <= limit, message)


def min_length(limit: int, message: str) -> Rule:
    return Rule(f"min:{limit}", lambda value, data, conn: len(str(value)) >= limit, message)


def email_format(message: str) -> Rule:
    def check(value, data, conn):
        try:
            validate_email(str(value).strip(), check_deliverability=False)
        except EmailNotValidError:
            return False
        return True

    return Rule("email", check, message)


def unique_email(message: str) -> Rule:
    def check(value, data, conn):
        if conn is None:
            raise ValueError("unique_email rule needs a database connection")
        return not store.email_exists(conn, str(value))

    return Rule("unique:users,email", check, message)


def matches(pattern: "re.Pattern[str]", message: str) -> Rule:
    return Rule("regex", lambda value, data, conn: pattern.match(str(value)) is not None, message)


def same_as(other: str, message: str) -> Rule:
    return Rule(f"same:{other}", lambda value, data, conn: value == data.get(other), message)


Schema = List[Tuple[str, List[Rule]]]


REGISTER_SCHEMA: Schema = [
    ("name", [
        required("The name field must not be empty."),
        max_length(NAME_MAX_LENGTH, f"The name must not be longer than {NAME_MAX_LENGTH} characters."),
    ]),
    ("email", [
        required("The email field must not be empty."),
        email_format("The email format is invalid."),
        unique_email("The email you entered is already registered."),
    ]),
    ("password", [
        required("The password field must not be empty."),
        min_length(PASSWORD_MIN_LENGTH, f"The password must be at least {PASSWORD_MIN_LENGTH} characters."),
        matches(
            PASSWORD_PATTERN,
            "The password must contain at least one uppercase letter, one lowercase letter, "
            "one number and one symbol.",
        ),
    ]),
    ("c_password", [
        required("The password confirmation field must not be empty."),
        same_as("password", "The password confirmation does not match. Please try again."),
    ]),
]

# No "email exists" rule: unknown emails are reported as bad credentials
LOGIN_SCHEMA: Schema = [
    ("email", [
        required("The email address field must not be empty."),
        email_format("The email address format is invalid."),
    ]),
    ("password", [
        required("The password field must not be empty."),
    ]),
]

EMAIL_TAKEN_MESSAGE = "The email you entered is already registered."


def first_error(
    data: Mapping[str, Any],
    schema: Schema,
    conn: Optional[sqlite3.Connection] = None,
) -> Optional[Tuple[str, Rule]]:
    """
    Find the first failing (field, rule) pair, or None if valid.

    Rules after a failed `required` are never run for that field.
    """
    for field_name, rules in schema:
        value = data.get(field_name)
        for rule in rules:
            if not rule.check(value, data, conn):
                return field_name, rule
    return None


def validate(
    data: Mapping[str, Any],
    schema: Schema,
    conn: Optional[sqlite3.Connection] = None,
    status_code: int = 422,
) -> Dict[str, Any]:
    """
    Validate `data` against `schema`.

    Returns:
        The validated fields (only those named in the schema)

    Raises:
        ValidationError: With the first failing rule's message
    """
    failure = first_error(data, schema, conn)
    if failure is not None:
        _field, rule = failure
        raise ValidationError(rule.message, status_code=status_code)

    return {field_name: data.get(field_name) for field_name, _ in schema}
