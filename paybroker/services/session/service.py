"""Payment session orchestration.

Resolves a transaction id and a credential, opens the session at the gateway,
and turns whatever the gateway answered into either a `PaymentSessionResult`
or a `BrokerError`.
"""

from paybroker.common.config import settings
from paybroker.common.errors import (
    BrokerError,
    GatewayBusinessError,
    GatewayProtocolError,
    GatewayUnavailable,
    MalformedGatewayResponse,
)
from paybroker.common.logging import logger, transaction_id_ctx
from paybroker.common.metrics import (
    payment_failure_total,
    payment_latency_seconds,
    payment_requests_total,
    payment_success_total,
)
from paybroker.common.tracing import tracer
from paybroker.gateway.client import GatewayClient, GatewayConnectionError, GatewayHTTPError
from paybroker.gateway.schemas import Amount, GatewayError, GatewaySessionRequest, Merchant
from paybroker.gateway.translator import decode_error_body, decode_session_response
from paybroker.services.allocator.service import TransactionIdAllocator
from paybroker.services.credentials.service import CredentialManager
from paybroker.services.session.schemas import (
    PaymentAmount,
    PaymentCallbackResult,
    PaymentSessionRequest,
    PaymentSessionResult,
)


PAYMENT_SESSION_FAILED = "Failed to create payment session"
CALLBACK_STATUS_COMPLETE = "Complete"
CALLBACK_STATUS_CODE_OK = "200"


class PaymentSessionService:
    """Top-level use case for opening payment sessions."""

    def __init__(
        self,
        gateway: GatewayClient,
        credentials: CredentialManager,
        allocator: TransactionIdAllocator,
        payment_page_base_url: str,
        service_name: str | None = None,
    ) -> None:
        self.gateway = gateway
        self.credentials = credentials
        self.allocator = allocator
        self.payment_page_base_url = payment_page_base_url.rstrip("/")
        self.service_name = service_name or settings.service_name

    async def create_payment_session(self, req: PaymentSessionRequest) -> PaymentSessionResult:
        """Open one session; raises only `BrokerError` subclasses."""

        payment_requests_total.labels(service=self.service_name).inc()
        with payment_latency_seconds.labels(service=self.service_name).time():
            with tracer.start_as_current_span("create_payment_session"):
                try:
                    result = await self._create(req)
                except BrokerError as exc:
                    payment_failure_total.labels(service=self.service_name, code=exc.code).inc()
                    raise
                except Exception as exc:
                    logger.exception("payment_session_unexpected_error error=%s", exc)
                    payment_failure_total.labels(service=self.service_name, code=GatewayUnavailable.code).inc()
                    raise GatewayUnavailable(PAYMENT_SESSION_FAILED) from exc
        payment_success_total.labels(service=self.service_name).inc()
        return result

    async def resolve_transaction_id(self, req: PaymentSessionRequest) -> str:
        supplied = req.merchant_transaction_id
        if supplied is not None and supplied.strip():
            return supplied
        transaction_id = await self.allocator.allocate(req.merchant_name)
        logger.info("transaction_id_generated transaction_id=%s", transaction_id)
        return transaction_id

    def build_gateway_request(self, req: PaymentSessionRequest, transaction_id: str) -> GatewaySessionRequest:
        return GatewaySessionRequest(
            amount=Amount(amount_in_cents=req.amount_in_cents, currency=req.currency),
            merchant=Merchant(name=req.merchant_name or ""),
            merchant_transaction_id=transaction_id,
            description=req.description,
            return_url=req.return_url,
        )

    def payment_page_url(self, session_id: str) -> str:
        return f"{self.payment_page_base_url}/{session_id}"

    async def _create(self, req: PaymentSessionRequest) -> PaymentSessionResult:
        transaction_id = await self.resolve_transaction_id(req)
        token = transaction_id_ctx.set(transaction_id)
        try:
            logger.info(
                "payment_session_requested merchant=%s amount_in_cents=%s currency=%s",
                req.merchant_name,
                req.amount_in_cents,
                req.currency,
            )
            bearer = await self.credentials.current_token()
            gateway_request = self.build_gateway_request(req, transaction_id)
            payload = await self._invoke_gateway(bearer, gateway_request)

            outcome = decode_session_response(payload)
            if isinstance(outcome, GatewayError):
                logger.error(
                    "gateway_business_error code=%s status_code=%s message=%s",
                    outcome.machine_code,
                    outcome.status_code,
                    outcome.message,
                )
                raise GatewayBusinessError(outcome.message, code=outcome.machine_code)

            result = PaymentSessionResult(
                session_id=outcome.session_id,
                payment_url=self.payment_page_url(outcome.session_id),
                status=outcome.status,
                merchant_transaction_id=transaction_id,
                amount=PaymentAmount(amount_in_cents=req.amount_in_cents, currency=req.currency),
            )
            logger.info("payment_session_created session_id=%s status=%s", result.session_id, result.status)
            return result
        finally:
            transaction_id_ctx.reset(token)

    async def _invoke_gateway(self, bearer: str, request: GatewaySessionRequest):
        try:
            return await self.gateway.create_session(bearer, request)
        except GatewayConnectionError as exc:
            raise GatewayUnavailable(PAYMENT_SESSION_FAILED) from exc
        except GatewayHTTPError as exc:
            if exc.status_code < 300:
                raise MalformedGatewayResponse("Gateway response body is not valid JSON.") from exc
            if exc.status_code == 401:
                self.credentials.invalidate()
            if 400 <= exc.status_code < 500:
                error = decode_error_body(exc.body)
                raise GatewayProtocolError(
                    error.message,
                    code=error.status_code,
                    status_kind=error.machine_code,
                    http_status=exc.status_code,
                ) from exc
            raise GatewayUnavailable(PAYMENT_SESSION_FAILED) from exc

    def handle_callback(self, status: str, status_code: str, transaction_id: str) -> PaymentCallbackResult:
        """Interpret the gateway's return redirect for one transaction."""

        logger.info(
            "payment_callback_received status=%s status_code=%s transaction_id=%s",
            status,
            status_code,
            transaction_id,
        )
        success = status == CALLBACK_STATUS_COMPLETE and status_code == CALLBACK_STATUS_CODE_OK
        return PaymentCallbackResult(
            success=success,
            message="Payment completed successfully" if success else "Payment failed",
            transaction_id=transaction_id,
        )
