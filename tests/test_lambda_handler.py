"""Tests for the AWS Lambda adapter."""

import json
from types import SimpleNamespace

import lambda_handler

CONTEXT = SimpleNamespace(
    function_name="identity-reconciliation",
    function_version="1",
    aws_request_id="req-123",
)

EVENT = {
    "version": "2.0",
    "requestContext": {"http": {"method": "POST", "path": "/identify"}},
}


def test_adapter_response_is_returned_unchanged(monkeypatch):
    monkeypatch.setattr(lambda_handler, "handler", lambda event, context: {"statusCode": 200})

    assert lambda_handler.lambda_handler(EVENT, CONTEXT) == {"statusCode": 200}


def test_adapter_failure_returns_api_gateway_error(monkeypatch):
    def broken(event, context):
        raise RuntimeError("adapter exploded")

    monkeypatch.setattr(lambda_handler, "handler", broken)

    response = lambda_handler.lambda_handler({"httpMethod": "GET", "path": "/"}, CONTEXT)

    assert response["statusCode"] == 500
    body = json.loads(response["body"])
    assert body["error"] == "InternalServerError"
    assert body["requestId"] == "req-123"
