import base64
import enum
import json
import logging
import re
import typing

from certification_backend.utils.base_types import RoleName, UserId

_LOGGER = logging.getLogger(__name__)

QueryParams = typing.NewType("QueryParams", dict[str, str])

# Local development servers on any port, and deployments of the web client.
_ALLOWED_ORIGIN_PATTERNS = (
    re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$"),
    re.compile(r"^https://[\w.-]+\.vercel\.app$"),
)

_CORS_HEADERS = {
    "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token",
    "Access-Control-Allow-Methods": "OPTIONS,GET,PUT,POST",
}


class ErrorCode(enum.Enum):
    """API error codes with their HTTP status and default client-facing message."""

    VALIDATION_ERROR = (400, "Invalid request data")
    AUTHENTICATION_FAILED = (401, "User identification failed")
    AUTHORIZATION_FAILED = (403, "Access denied")
    RESOURCE_NOT_FOUND = (404, "Resource not found or method not allowed")
    METHOD_NOT_ALLOWED = (405, "Method not allowed")
    CONFLICT = (409, "Resource already exists")
    INTERNAL_ERROR = (500, "An internal server error occurred")

    def __init__(self, status_code: int, default_message: str) -> None:
        self.status_code = status_code
        self.default_message = default_message


def get_event_body(event: dict) -> bytes:
    if event.get("isBase64Encoded"):
        return base64.b64decode(event["body"])
    return event["body"].encode("utf-8")


def _get_http_context(event: dict) -> dict:
    return event.get("requestContext", {}).get("http", {})


def get_method(event: dict) -> str:
    return _get_http_context(event).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return _get_http_context(event).get("path", "")


def get_query_string_parameters(event: dict) -> QueryParams:
    return QueryParams(event.get("queryStringParameters") or {})


def _get_authorizer_context(event: dict[str, typing.Any]) -> dict[str, typing.Any]:
    return event.get("requestContext", {}).get("authorizer", {}).get("lambda", {}) or {}


def get_user_id_from_event(event: dict[str, typing.Any]) -> typing.Optional[UserId]:
    """
    The authorizer lambda forwards the verified token claims under requestContext.authorizer.lambda;
    the user id is the 'sub' claim.
    """
    user_id = _get_authorizer_context(event).get("sub")
    if not user_id:
        _LOGGER.warning("User ID ('sub') not found in authorizer's lambda context.")
        return None
    return UserId(str(user_id))


def get_user_role_from_event(event: dict[str, typing.Any]) -> typing.Optional[RoleName]:
    role = _get_authorizer_context(event).get("role")
    return RoleName(str(role)) if role else None


def get_allowed_origin(event: dict[str, typing.Any]) -> str:
    """
    :returns: "*" without an Origin header (direct API calls), the origin itself when it is allowed,
        otherwise "null" so the browser rejects the response.
    """
    origin = event.get("headers", {}).get("origin", "")
    if not origin:
        return "*"
    if any(pattern.match(origin) for pattern in _ALLOWED_ORIGIN_PATTERNS):
        return origin

    _LOGGER.warning(f"Origin not in allowed patterns: {origin}")
    return "null"


def format_lambda_response(
    status_code: int,
    body: typing.Any,
    *,
    event: typing.Optional[dict[str, typing.Any]] = None,
    additional_headers: typing.Optional[dict[str, str]] = None,
) -> dict[str, typing.Any]:
    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": get_allowed_origin(event) if event else "*",
        **_CORS_HEADERS,
    }
    if additional_headers:
        headers.update(additional_headers)

    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body) if body is not None else None,
    }


def create_error_response(
    error_code: ErrorCode,
    message: typing.Optional[str] = None,
    *,
    details: typing.Any = None,
    event: typing.Optional[dict[str, typing.Any]] = None,
) -> dict[str, typing.Any]:
    body: dict[str, typing.Any] = {
        "message": message or error_code.default_message,
        "errorCode": error_code.name,
    }
    if details is not None:
        body["details"] = details
    return format_lambda_response(error_code.status_code, body, event=event)
