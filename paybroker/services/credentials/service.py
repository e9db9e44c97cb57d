"""Bearer credential cache with single-flight refresh.

One `CredentialManager` lives per process. The cached credential is replaced
wholesale on refresh, and concurrent callers that find it stale share one
in-flight refresh instead of each calling the credential endpoint.
"""

import asyncio
import time
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from paybroker.common.config import settings
from paybroker.common.errors import CredentialRefreshFailed, InvalidGatewayCredentials
from paybroker.common.logging import logger
from paybroker.common.metrics import credential_refresh_total
from paybroker.gateway.client import GatewayClient, GatewayConnectionError, GatewayHTTPError


SAFETY_MARGIN_SECONDS = 60
DEFAULT_EXPIRES_IN_SECONDS = 3600


class Credential(BaseModel):
    """Bearer token plus absolute expiry in epoch seconds."""

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: float

    def is_usable(self, now: float, margin: float = SAFETY_MARGIN_SECONDS) -> bool:
        return now + margin < self.expires_at


def parse_expires_in(data: dict[str, Any]) -> int:
    """Read `expires_in` seconds, falling back to one hour when absent or bad.

    Numeric strings such as "3600.0" are accepted; booleans and non-positive
    values are not.
    """

    if "expires_in" not in data or data["expires_in"] is None:
        logger.warning("credential_expiry_missing default_s=%s", DEFAULT_EXPIRES_IN_SECONDS)
        return DEFAULT_EXPIRES_IN_SECONDS
    raw = data["expires_in"]
    try:
        if isinstance(raw, bool):
            raise ValueError("boolean expiry")
        expires_in = raw if isinstance(raw, int) else int(float(str(raw).strip()))
        if expires_in <= 0:
            raise ValueError("non-positive expiry")
    except (ValueError, OverflowError):
        logger.warning(
            "credential_expiry_unparsable value=%r default_s=%s",
            raw,
            DEFAULT_EXPIRES_IN_SECONDS,
        )
        return DEFAULT_EXPIRES_IN_SECONDS
    return expires_in


def _consume_refresh_outcome(task: asyncio.Task) -> None:
    # Marks the exception retrieved when every waiter was cancelled before it landed.
    if not task.cancelled():
        task.exception()


class CredentialManager:
    """Owns the process-wide gateway credential."""

    def __init__(
        self,
        gateway: GatewayClient,
        client_id: str,
        client_secret: str,
        clock: Callable[[], float] = time.time,
        service_name: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.client_id = client_id
        self.client_secret = client_secret
        self.clock = clock
        self.service_name = service_name or settings.service_name
        self._credential: Credential | None = None
        self._inflight: asyncio.Task | None = None

    @property
    def credential(self) -> Credential | None:
        return self._credential

    async def ensure_valid(self) -> Credential:
        """Return a usable credential, refreshing it first when needed.

        Callers arriving while a refresh is running await that same refresh and
        receive its credential or its exception.
        """

        credential = self._credential
        if credential is not None and credential.is_usable(self.clock()):
            return credential
        if self._inflight is None:
            if credential is None:
                logger.info("credential_missing refreshing")
            else:
                logger.info("credential_expiring expires_at=%s refreshing", credential.expires_at)
            self._inflight = asyncio.create_task(self._refresh())
            self._inflight.add_done_callback(_consume_refresh_outcome)
        # Shield so a cancelled waiter does not abort the refresh for the others.
        return await asyncio.shield(self._inflight)

    async def current_token(self) -> str:
        credential = await self.ensure_valid()
        return credential.token

    def invalidate(self) -> None:
        """Drop the cached credential so the next caller refreshes."""

        if self._credential is not None:
            logger.info("credential_invalidated")
        self._credential = None

    async def _refresh(self) -> Credential:
        try:
            credential = await self._fetch()
        except CredentialRefreshFailed as exc:
            credential_refresh_total.labels(service=self.service_name, outcome="failure").inc()
            logger.error("credential_refresh_failed code=%s error=%s", exc.code, exc.message)
            raise
        finally:
            self._inflight = None
        self._credential = credential
        credential_refresh_total.labels(service=self.service_name, outcome="success").inc()
        logger.info("credential_refreshed expires_at=%s", credential.expires_at)
        return credential

    async def _fetch(self) -> Credential:
        try:
            response = await self.gateway.fetch_credential(self.client_id, self.client_secret)
        except GatewayHTTPError as exc:
            if exc.status_code == 403:
                raise InvalidGatewayCredentials("Invalid credentials") from exc
            raise CredentialRefreshFailed(
                f"Credential endpoint responded with status {exc.status_code}."
            ) from exc
        except GatewayConnectionError as exc:
            raise CredentialRefreshFailed("Failed to connect to payment gateway.") from exc

        data = response.get("data") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            raise CredentialRefreshFailed("Token API response is missing required fields.")
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise CredentialRefreshFailed("Token API response does not contain a valid token.")

        expires_in = parse_expires_in(data)
        return Credential(token=token, expires_at=self.clock() + expires_in)
