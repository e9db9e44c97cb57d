"""Decoding of gateway payloads into typed outcomes.

The gateway reports protocol-level failures (4xx bodies) and business failures
(an `error` object inside a 2xx body) in a different shape from its success
payload, so each path is decoded on its own.
"""

import json
from typing import Any

from pydantic import ValidationError

from paybroker.common.errors import MalformedGatewayResponse
from paybroker.common.logging import logger
from paybroker.gateway.schemas import GatewayError, GatewaySession, SessionEnvelope


DEFAULT_ERROR_CODE = "BAD_REQUEST"
DEFAULT_ERROR_MESSAGE = "Unknown error occurred."
DEFAULT_ERROR_STATUS_CODE = "INVALID_REQUEST"
PARSE_ERROR_MESSAGE = "Error parsing response body."
PARSE_ERROR_STATUS_CODE = "PARSE_ERROR"


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value)


def normalize_error(error: Any) -> GatewayError:
    """Build a `GatewayError` from a decoded `error` object, filling defaults."""

    if not isinstance(error, dict):
        logger.warning("gateway_error_object_missing error=%r", error)
        error = {}
    return GatewayError(
        status_code=_text(error.get("statusCode"), DEFAULT_ERROR_STATUS_CODE),
        machine_code=_text(error.get("code"), DEFAULT_ERROR_CODE),
        message=_text(error.get("message"), DEFAULT_ERROR_MESSAGE),
    )


def parse_error() -> GatewayError:
    return GatewayError(
        status_code=PARSE_ERROR_STATUS_CODE,
        machine_code=DEFAULT_ERROR_CODE,
        message=PARSE_ERROR_MESSAGE,
    )


def decode_error_body(body: str | bytes | None) -> GatewayError:
    """Decode a raw error response body. Never raises."""

    try:
        parsed = json.loads(body)
    except (TypeError, ValueError, RecursionError):
        logger.error("gateway_error_body_unparsable body=%.500r", body)
        return parse_error()
    if not isinstance(parsed, dict):
        logger.error("gateway_error_body_not_object body=%.500r", body)
        return parse_error()
    return normalize_error(parsed.get("error"))


def _missing_field(exc: ValidationError) -> str:
    first = exc.errors()[0]
    return ".".join(str(part) for part in first["loc"]) or "body"


def decode_session_response(payload: Any) -> GatewaySession | GatewayError:
    """Decode a 2xx session-creation body.

    Returns the embedded `GatewayError` when the gateway reported a business
    failure; raises `MalformedGatewayResponse` when required success fields are
    absent.
    """

    if not isinstance(payload, dict):
        raise MalformedGatewayResponse("Gateway response is not a JSON object.")
    if payload.get("error") is not None:
        return normalize_error(payload["error"])
    try:
        envelope = SessionEnvelope.model_validate(payload)
    except ValidationError as exc:
        field = _missing_field(exc)
        logger.error("gateway_session_response_invalid field=%s", field)
        raise MalformedGatewayResponse(f"Gateway response is missing or has invalid '{field}'.") from exc
    return GatewaySession(
        session_id=envelope.data.id,
        status=envelope.data.session_info.status,
        token=envelope.data.token,
    )
