"""
AWS Lambda handler for Identity Reconciliation System
This module adapts the FastAPI application to work with AWS Lambda + API Gateway
"""

import json
import logging

from mangum import Mangum

from main import app

logger = logging.getLogger(__name__)

# Lifespan events are disabled: the app creates its database manager on first use
handler = Mangum(
    app,
    lifespan="off",
    api_gateway_base_path="/",
    text_mime_types=[
        "application/json",
        "application/javascript",
        "application/xml",
        "application/vnd.api+json",
        "text/plain",
        "text/html"
    ],
    exclude_headers=["x-amzn-trace-id"]
)


def _describe_event(event) -> str:
    if event.get("version") == "2.0":
        http = event.get("requestContext", {}).get("http", {})
        return f"API Gateway v2 {http.get('method', 'UNKNOWN')} {http.get('path', 'UNKNOWN')}"
    if "httpMethod" in event:
        return f"API Gateway v1 {event.get('httpMethod', 'UNKNOWN')} {event.get('path', 'UNKNOWN')}"
    return f"unknown event format with keys {sorted(event.keys())}"


def error_response(request_id: str) -> dict:
    """API Gateway shaped 500 returned when the adapter itself fails"""
    return {
        "statusCode": 500,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization"
        },
        "body": json.dumps({
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "requestId": request_id
        })
    }


def lambda_handler(event, context):
    """
    AWS Lambda entry point

    Args:
        event: API Gateway event data
        context: Lambda runtime context

    Returns:
        API Gateway response format
    """
    logger.info(f"Lambda {context.function_name}:{context.function_version} handling {_describe_event(event)}")

    try:
        response = handler(event, context)
        logger.info(f"Response status: {response.get('statusCode', 'UNKNOWN')}")
        return response
    except Exception as e:
        logger.error(f"Lambda handler error: {e}", exc_info=True)
        return error_response(getattr(context, "aws_request_id", "unknown"))
