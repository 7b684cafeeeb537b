"""Tests for request cleaning and validation."""

import pytest
from pydantic import ValidationError

from schemas import IdentifyRequest


@pytest.mark.parametrize("payload, email, phone", [
    ({"email": "test@example.com", "phoneNumber": "+1234567890"}, "test@example.com", "+1234567890"),
    ({"email": "  user@domain.org  "}, "user@domain.org", None),
    ({"phoneNumber": "+91-987-654-3210"}, None, "+91-987-654-3210"),
    ({"phoneNumber": 1234567890}, None, "1234567890"),
    ({"phoneNumber": 5550102.0}, None, "5550102"),
    ({"email": "NULL", "phoneNumber": "123456"}, None, "123456"),
])
def test_valid_requests_are_cleaned(payload, email, phone):
    request = IdentifyRequest(**payload)

    assert request.email == email
    assert request.phoneNumber == phone


@pytest.mark.parametrize("payload", [
    {},
    {"email": "invalid-email"},
    {"email": "@example.com"},
    {"email": "toolong" + "x" * 250 + "@example.com"},
    {"phoneNumber": "12"},
    {"phoneNumber": "123456789012345678901"},
    {"phoneNumber": True},
    {"phoneNumber": 123.9},
    {"email": "null", "phoneNumber": ""},
])
def test_invalid_requests_are_rejected(payload):
    with pytest.raises(ValidationError):
        IdentifyRequest(**payload)
