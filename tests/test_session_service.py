"""Scenario tests for payment session orchestration."""

import asyncio

import httpx
import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from conftest import PAYMENT_PAGE_URL, TODAY
from paybroker.common.errors import (
    AllocatorUnavailable,
    CredentialRefreshFailed,
    GatewayBusinessError,
    GatewayProtocolError,
    GatewayUnavailable,
    MalformedGatewayResponse,
)
from paybroker.services.allocator.service import TransactionIdAllocator
from paybroker.services.credentials.service import CredentialManager
from paybroker.services.session.schemas import PaymentSessionRequest
from paybroker.services.session.service import PaymentSessionService


@pytest.fixture
def service(make_gateway, gateway_stub, store, clock) -> PaymentSessionService:
    gateway = make_gateway(gateway_stub)
    return PaymentSessionService(
        gateway=gateway,
        credentials=CredentialManager(gateway, "client-id", "client-secret", clock=clock, service_name="test"),
        allocator=TransactionIdAllocator(store, today=lambda: TODAY, service_name="test"),
        payment_page_base_url=PAYMENT_PAGE_URL,
        service_name="test",
    )


def make_request(**overrides) -> PaymentSessionRequest:
    fields = {
        "amountInCents": 2500,
        "currency": "ZWL",
        "merchantName": "Acme",
        "merchantTransactionId": "",
        "description": "test",
        "returnUrl": "https://x.test",
    }
    fields.update(overrides)
    return PaymentSessionRequest.model_validate(fields)


def test_session_created_with_allocated_transaction_id(service, gateway_stub):
    result = asyncio.run(service.create_payment_session(make_request()))

    assert result.session_id == "sess-1"
    assert result.payment_url == f"{PAYMENT_PAGE_URL}/sess-1"
    assert result.status == "Created"
    assert result.merchant_transaction_id == "A2026101901"
    assert result.amount.amount_in_cents == 2500
    assert result.amount.currency == "ZWL"

    sent = gateway_stub.session_bodies()[0]
    assert sent["merchantTransactionId"] == "A2026101901"
    assert sent["paymentType"] == "PURCHASE"
    assert gateway_stub.calls("/api/v1/sessions")[0].headers["Authorization"] == "Bearer tok-1"


def test_supplied_transaction_id_skips_allocator(service, store, gateway_stub):
    result = asyncio.run(service.create_payment_session(make_request(merchantTransactionId="ORDER-77")))

    assert result.merchant_transaction_id == "ORDER-77"
    assert store.calls == []
    assert gateway_stub.session_bodies()[0]["merchantTransactionId"] == "ORDER-77"


def test_absent_transaction_id_is_allocated(service, store):
    request = make_request()
    request = request.model_copy(update={"merchant_transaction_id": None})

    result = asyncio.run(service.create_payment_session(request))

    assert result.merchant_transaction_id == "A2026101901"
    assert len(store.calls) == 1


def test_credential_reused_across_sessions(service, gateway_stub):
    async def scenario():
        await service.create_payment_session(make_request())
        await service.create_payment_session(make_request())

    asyncio.run(scenario())
    assert len(gateway_stub.calls("/api/v1/token")) == 1
    assert len(gateway_stub.calls("/api/v1/sessions")) == 2


def test_embedded_error_becomes_business_error(service, gateway_stub):
    gateway_stub.session_reply = (200, {"error": {"code": "E1", "message": "bad amount", "statusCode": "400"}})

    with pytest.raises(GatewayBusinessError) as exc_info:
        asyncio.run(service.create_payment_session(make_request()))
    assert exc_info.value.message == "bad amount"
    assert exc_info.value.code == "E1"


def test_missing_session_id_is_malformed(service, gateway_stub):
    gateway_stub.session_reply = (200, {"data": {"sessionInfo": {"status": "Created"}}})

    with pytest.raises(MalformedGatewayResponse):
        asyncio.run(service.create_payment_session(make_request()))


def test_non_json_success_body_is_malformed(service, gateway_stub):
    gateway_stub.session_reply = (200, "<html>created</html>")

    with pytest.raises(MalformedGatewayResponse):
        asyncio.run(service.create_payment_session(make_request()))


def test_unparsable_4xx_becomes_protocol_error(service, gateway_stub):
    gateway_stub.session_reply = (400, "<html>Bad Request</html>")

    with pytest.raises(GatewayProtocolError) as exc_info:
        asyncio.run(service.create_payment_session(make_request()))
    assert exc_info.value.message == "Error parsing response body."
    assert exc_info.value.code == "PARSE_ERROR"
    assert exc_info.value.http_status == 400


def test_4xx_error_body_is_passed_through(service, gateway_stub):
    gateway_stub.session_reply = (422, {"error": {"code": "UNPROCESSABLE", "message": "currency not supported", "statusCode": "422"}})

    with pytest.raises(GatewayProtocolError) as exc_info:
        asyncio.run(service.create_payment_session(make_request()))
    error = exc_info.value
    assert error.http_status == 422
    assert error.to_body() == {
        "error": {"status": "UNPROCESSABLE", "message": "currency not supported", "code": "422"}
    }


def test_unauthorized_session_call_invalidates_credential(service, gateway_stub):
    gateway_stub.session_reply = (401, {"error": {"message": "token expired"}})

    async def scenario():
        with pytest.raises(GatewayProtocolError):
            await service.create_payment_session(make_request())
        gateway_stub.session_reply = (200, {"data": {"id": "sess-2", "sessionInfo": {"status": "Created"}}})
        return await service.create_payment_session(make_request())

    result = asyncio.run(scenario())
    assert result.session_id == "sess-2"
    assert len(gateway_stub.calls("/api/v1/token")) == 2


def test_gateway_5xx_is_unavailable(service, gateway_stub):
    gateway_stub.session_reply = (503, "upstream down")

    with pytest.raises(GatewayUnavailable):
        asyncio.run(service.create_payment_session(make_request()))


def test_gateway_unreachable_is_unavailable(service, gateway_stub):
    gateway_stub.session_reply = httpx.ConnectError("connection refused")

    with pytest.raises(GatewayUnavailable):
        asyncio.run(service.create_payment_session(make_request()))


def test_credential_failure_aborts_before_session_call(service, gateway_stub):
    gateway_stub.token_reply = (500, "token service down")

    with pytest.raises(CredentialRefreshFailed):
        asyncio.run(service.create_payment_session(make_request()))
    assert gateway_stub.calls("/api/v1/sessions") == []


def test_store_outage_aborts_before_gateway(service, store, gateway_stub):
    store.fail = RedisTimeoutError("timed out")

    with pytest.raises(AllocatorUnavailable):
        asyncio.run(service.create_payment_session(make_request()))
    assert gateway_stub.requests == []


@pytest.mark.parametrize(
    "status, status_code, success",
    [("Complete", "200", True), ("Complete", "500", False), ("Failed", "200", False)],
)
def test_callback_outcome(service, status, status_code, success):
    result = service.handle_callback(status, status_code, "A2026101901")

    assert result.success is success
    assert result.transaction_id == "A2026101901"
    assert result.message == ("Payment completed successfully" if success else "Payment failed")


def test_whitespace_transaction_id_is_allocated(service, store, gateway_stub):
    result = asyncio.run(service.create_payment_session(make_request(merchantTransactionId="   ")))

    assert result.merchant_transaction_id == "A2026101901"
    assert len(store.calls) == 1
    assert gateway_stub.session_bodies()[0]["merchantTransactionId"] == "A2026101901"


DEEPLY_NESTED_BODY = "[" * 100_000 + "]" * 100_000


def test_deeply_nested_4xx_body_becomes_protocol_error(service, gateway_stub):
    gateway_stub.session_reply = (400, DEEPLY_NESTED_BODY)

    with pytest.raises(GatewayProtocolError) as exc_info:
        asyncio.run(service.create_payment_session(make_request()))
    assert exc_info.value.code == "PARSE_ERROR"
    assert exc_info.value.http_status == 400


def test_deeply_nested_success_body_is_malformed(service, gateway_stub):
    gateway_stub.session_reply = (200, DEEPLY_NESTED_BODY)

    with pytest.raises(MalformedGatewayResponse):
        asyncio.run(service.create_payment_session(make_request()))
