"""Thin async HTTP client for the payment gateway.

Only transport concerns live here: URLs, headers, status handling and JSON
decoding. Interpreting payloads is the translator's job.
"""

from time import perf_counter
from typing import Any

import httpx

from paybroker.common.config import settings
from paybroker.common.logging import logger
from paybroker.common.metrics import gateway_request_duration_seconds, gateway_requests_total
from paybroker.common.tracing import gateway_span
from paybroker.gateway.schemas import GatewaySessionRequest


TOKEN_PATH = "/api/v1/token"
SESSIONS_PATH = "/api/v1/sessions"


class GatewayHTTPError(Exception):
    """Gateway answered with a non-2xx status, or a 2xx body that is not JSON."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"gateway responded with status {status_code}")
        self.status_code = status_code
        self.body = body


class GatewayConnectionError(Exception):
    """Gateway could not be reached or the call timed out."""


class GatewayClient:
    """Performs the two outbound gateway calls."""

    def __init__(
        self,
        base_url: str,
        http: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        service_name: str | None = None,
    ) -> None:
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.service_name = service_name or settings.service_name

    async def fetch_credential(self, client_id: str, client_secret: str) -> Any:
        """Request a fresh bearer credential for the static client identity."""

        return await self._post(
            "fetch_credential",
            TOKEN_PATH,
            json={"username": client_id, "password": client_secret},
        )

    async def create_session(self, bearer_token: str, request: GatewaySessionRequest) -> Any:
        """Open a payment session and return the raw decoded response body."""

        return await self._post(
            "create_session",
            SESSIONS_PATH,
            json=request.model_dump(by_alias=True, exclude_none=True),
            headers={"Authorization": f"Bearer {bearer_token}"},
        )

    async def _post(
        self,
        operation: str,
        path: str,
        json: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Any:
        start = perf_counter()
        status_code = "error"
        try:
            with gateway_span(operation, path) as span:
                resp = await self.http.post(path, json=json, headers=headers)
                span.set_attribute("http.response.status_code", resp.status_code)
            status_code = str(resp.status_code)
        except httpx.HTTPError as exc:
            logger.error("gateway_unreachable operation=%s error=%s", operation, exc)
            raise GatewayConnectionError(f"{operation} failed: {exc}") from exc
        finally:
            elapsed = max(0.0, perf_counter() - start)
            gateway_request_duration_seconds.labels(service=self.service_name, operation=operation).observe(elapsed)
            gateway_requests_total.labels(
                service=self.service_name,
                operation=operation,
                status_code=status_code,
            ).inc()

        if not resp.is_success:
            logger.warning(
                "gateway_rejected operation=%s status_code=%s body=%s",
                operation,
                resp.status_code,
                resp.text[:500],
            )
            raise GatewayHTTPError(resp.status_code, resp.text)
        try:
            return resp.json()
        except (ValueError, RecursionError) as exc:
            logger.error("gateway_body_not_json operation=%s status_code=%s", operation, resp.status_code)
            raise GatewayHTTPError(resp.status_code, resp.text) from exc

    async def close(self) -> None:
        await self.http.aclose()
