import base64
import enum
import json
import logging
import re
import typing

import pydantic

from owlcode_backend.utils.base_types import Role, UserId

_LOGGER = logging.getLogger(__name__)


ModelT = typing.TypeVar("ModelT", bound=pydantic.BaseModel)

_VALID_ROLES: tuple[Role, ...] = typing.get_args(Role)


class ErrorCode(enum.Enum):
    """Error codes returned to clients, each carrying its HTTP status and default message."""

    VALIDATION_ERROR = (400, "Invalid request data")
    AUTHENTICATION_FAILED = (401, "User identification failed")
    AUTHORIZATION_FAILED = (403, "Access denied")
    RESOURCE_NOT_FOUND = (404, "Resource not found")
    METHOD_NOT_ALLOWED = (405, "Method not allowed")
    INTERNAL_ERROR = (500, "An internal server error occurred")

    @property
    def status_code(self) -> int:
        return self.value[0]

    @property
    def default_message(self) -> str:
        return self.value[1]


def get_event_body(event: dict) -> bytes:
    if "isBase64Encoded" in event and event["isBase64Encoded"]:
        return base64.b64decode(event["body"])
    else:
        return event["body"].encode("utf-8")


class MissingRequestBodyError(ValueError):
    pass


def parse_event_body(event: dict, model: type[ModelT]) -> ModelT:
    """
    Validates the request body against a pydantic model.

    :raises MissingRequestBodyError: If the event has no body.
    :raises pydantic.ValidationError: If the body is not valid JSON or doesn't match the model.
    """
    if not event.get("body"):
        raise MissingRequestBodyError("Request body is missing.")
    return model.model_validate_json(get_event_body(event))


def validation_error_details(e: pydantic.ValidationError) -> list[dict[str, typing.Any]]:
    """JSON-safe summary of a pydantic validation failure for the response body."""
    errors = e.errors(include_url=False, include_context=False, include_input=False)
    return typing.cast(list[dict[str, typing.Any]], errors)


def get_method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("path", "")


def get_path_parts(event: dict) -> list[str]:
    path = get_path(event).strip("/")
    return path.split("/") if path else []


def _get_authorizer_context(event: dict[str, typing.Any]) -> dict[str, typing.Any]:
    return event.get("requestContext", {}).get("authorizer", {}).get("lambda", {}) or {}


def get_user_id_from_event(event: dict[str, typing.Any]) -> typing.Optional[UserId]:
    """
    Extracts user ID from the Lambda event context provided by the custom Lambda Authorizer.
    The authorizer places the decoded JWT payload into the 'lambda' key.
    """
    try:
        user_id = _get_authorizer_context(event).get("sub")
        if user_id:
            return UserId(str(user_id))

        _LOGGER.warning("User ID ('sub') not found in authorizer's lambda context.")
        return None
    except Exception as e:
        _LOGGER.error("Error extracting user_id from event: %s", str(e))
        return None


def get_role_from_event(event: dict[str, typing.Any]) -> typing.Optional[Role]:
    """Extracts the role the authorizer copied out of the session token."""
    role = _get_authorizer_context(event).get("role")
    if role in _VALID_ROLES:
        return typing.cast(Role, role)

    _LOGGER.warning(f"Missing or unknown role in authorizer's lambda context: {role}")
    return None


def get_allowed_origin(event: dict[str, typing.Any]) -> str:
    """
    Validates the Origin header against allowed patterns and returns it if valid.

    Allowed Origins:
    - localhost/127.0.0.1 (any port) - for local development
    - *.vercel.app - for the admin and trainee frontends

    :returns: The origin if valid, otherwise "null" (which causes browser to deny the response)
    """
    origin = event.get("headers", {}).get("origin", "")

    # No origin header present (e.g., curl/Postman testing, direct API calls)
    if not origin:
        return "*"

    if origin.startswith("http://localhost:") or origin.startswith("http://127.0.0.1:"):
        return origin

    allowed_patterns = [r"^https://[a-z0-9-]+\.vercel\.app$"]
    for pattern in allowed_patterns:
        if re.match(pattern, origin):
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
    """
    Formats API Gateway proxy responses with CORS headers.
    """
    allowed_origin = get_allowed_origin(event) if event else "*"

    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token",
        "Access-Control-Allow-Methods": "OPTIONS,GET,POST,PUT,DELETE",
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
    """
    Builds an error response body of the form {"message", "errorCode", "details"?}.
    Internal errors never carry details so store failures don't leak to clients.
    """
    body: dict[str, typing.Any] = {
        "message": message or error_code.default_message,
        "errorCode": error_code.name,
    }
    if details is not None and error_code is not ErrorCode.INTERNAL_ERROR:
        body["details"] = details

    return format_lambda_response(error_code.status_code, body, event=event)


RouteHandler = typing.Callable[[], dict[str, typing.Any]]


def dispatch_by_method(event: dict[str, typing.Any], handlers: dict[str, RouteHandler]) -> dict[str, typing.Any]:
    """
    Calls the handler registered for the event's HTTP method on an already matched path.
    A known path called with any other method gets 405 with an Allow header.
    """
    http_method = get_method(event).upper()
    handler = handlers.get(http_method)
    if handler is None:
        allowed = ", ".join(sorted(handlers))
        _LOGGER.warning(f"{http_method} not allowed on {get_path(event)}; allowed: {allowed}")
        response = create_error_response(
            ErrorCode.METHOD_NOT_ALLOWED, f"{http_method} is not allowed on this resource.", event=event
        )
        response["headers"]["Allow"] = allowed
        return response
    return handler()
