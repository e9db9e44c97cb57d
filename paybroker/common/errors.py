"""Broker failure taxonomy.

Every failure that leaves the orchestration boundary is one of these, and each
renders to the same `{"error": {"status", "message", "code"}}` body.
"""

from typing import Any


class BrokerError(Exception):
    """Base for failures surfaced to callers in the normalized error shape."""

    status_kind = "INTERNAL_SERVER_ERROR"
    http_status = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_kind: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_kind is not None:
            self.status_kind = status_kind
        if http_status is not None:
            self.http_status = http_status

    def to_body(self) -> dict[str, Any]:
        return {"error": {"status": self.status_kind, "message": self.message, "code": self.code}}


class CredentialRefreshFailed(BrokerError):
    """Credential endpoint unreachable or answered with an unusable payload."""

    status_kind = "SERVICE_UNAVAILABLE"
    http_status = 503
    code = "CREDENTIAL_REFRESH_FAILED"


class InvalidGatewayCredentials(CredentialRefreshFailed):
    """Credential endpoint rejected the configured client identity."""

    status_kind = "FORBIDDEN"
    http_status = 403
    code = "INVALID_CREDENTIALS"


class AllocatorUnavailable(BrokerError):
    """Shared store unreachable or no free sequence left for today."""

    status_kind = "SERVICE_UNAVAILABLE"
    http_status = 503
    code = "ALLOCATOR_UNAVAILABLE"


class GatewayBusinessError(BrokerError):
    """Gateway accepted the call but embedded a domain-level error."""

    status_kind = "BAD_REQUEST"
    http_status = 400
    code = "GATEWAY_BUSINESS_ERROR"


class MalformedGatewayResponse(BrokerError):
    """Gateway response is missing fields required to build a result."""

    status_kind = "BAD_GATEWAY"
    http_status = 502
    code = "MALFORMED_GATEWAY_RESPONSE"


class GatewayProtocolError(BrokerError):
    """Gateway rejected the call with a 4xx response."""

    status_kind = "BAD_REQUEST"
    http_status = 400
    code = "INVALID_REQUEST"


class GatewayUnavailable(BrokerError):
    """Gateway unreachable, failing with 5xx, or failing in an unexpected way."""

    status_kind = "SERVICE_UNAVAILABLE"
    http_status = 503
    code = "GATEWAY_UNAVAILABLE"


class InvalidApiKey(BrokerError):
    """Internal endpoint called without the configured API key."""

    status_kind = "UNAUTHORIZED"
    http_status = 401
    code = "INVALID_API_KEY"
