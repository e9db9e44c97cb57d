"""Public entrypoint for payment session creation.

Wires the gateway client, credential cache and transaction id allocator into
the session service and exposes it over HTTP. Every `BrokerError` leaves as the
normalized `{"error": {...}}` body.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from redis.asyncio import Redis

from paybroker.common.config import settings
from paybroker.common.errors import BrokerError, InvalidApiKey
from paybroker.common.logging import configure_logging, logger, trace_id_ctx
from paybroker.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paybroker.common.startup import log_startup_config
from paybroker.common.tracing import instrument_app, setup_tracing
from paybroker.gateway.client import GatewayClient
from paybroker.services.allocator.service import RedisTransactionStore, TransactionIdAllocator
from paybroker.services.credentials.service import CredentialManager
from paybroker.services.session.schemas import (
    PaymentCallbackResult,
    PaymentSessionEnvelope,
    PaymentSessionRequest,
    TokenData,
    TokenEnvelope,
)
from paybroker.services.session.service import PaymentSessionService

configure_logging()
setup_tracing(settings)
log_startup_config(settings)
gateway = GatewayClient(settings.gateway_base_url, timeout=settings.gateway_timeout_seconds)
store = RedisTransactionStore(Redis.from_url(settings.redis_url, decode_responses=True))
service = PaymentSessionService(
    gateway=gateway,
    credentials=CredentialManager(gateway, settings.gateway_client_id, settings.gateway_client_secret),
    allocator=TransactionIdAllocator(
        store,
        ttl_seconds=settings.transaction_id_ttl_seconds,
        max_sequence=settings.transaction_id_max_sequence,
    ),
    payment_page_base_url=settings.payment_page_base_url,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Release outbound connection pools on shutdown."""

    yield
    await gateway.close()
    await store.close()


app = FastAPI(title="Payment Session Broker", lifespan=lifespan)
instrument_app(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Bind a trace id and record request count and latency for every call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id = request.headers.get("x-correlation-id") or str(uuid4())
    token = trace_id_ctx.set(trace_id)
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-correlation-id"] = trace_id
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        trace_id_ctx.reset(token)
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    """Render any broker failure in the normalized error shape."""

    logger.warning(
        "request_failed path=%s status=%s code=%s message=%s",
        request.url.path,
        exc.http_status,
        exc.code,
        exc.message,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_body())


def enforce_api_key(x_api_key: str | None) -> None:
    """Reject requests that do not provide the configured API key."""

    if x_api_key != settings.api_key:
        raise InvalidApiKey("invalid API key")


@app.post("/api/v1/payment/session")
async def create_payment_session(req: PaymentSessionRequest):
    """Create a session and redirect the browser to its payment page."""

    result = await service.create_payment_session(req)
    return RedirectResponse(result.payment_url, status_code=302)


@app.post("/api/v1/payment/session-data", response_model=PaymentSessionEnvelope)
async def create_payment_session_data(req: PaymentSessionRequest):
    """Create a session and return its details as JSON."""

    result = await service.create_payment_session(req)
    return PaymentSessionEnvelope(data=result)


@app.get("/api/v1/payment/callback", response_model=PaymentCallbackResult)
def payment_callback(
    status: str = Query(...),
    status_code: str = Query(..., alias="statusCode"),
    merchant_transaction_id: str = Query(..., alias="merchantTransactionId"),
):
    """Gateway return callback after the customer leaves the payment page."""

    return service.handle_callback(status, status_code, merchant_transaction_id)


@app.get("/api/tokens", response_model=TokenEnvelope)
async def get_token(x_api_key: str | None = Header(default=None)):
    """Expose the cached gateway credential to trusted internal callers."""

    enforce_api_key(x_api_key)
    token = await service.credentials.current_token()
    return TokenEnvelope(data=TokenData(token=token))


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health check endpoint."""

    return {"ok": True}
