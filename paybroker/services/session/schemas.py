"""API request/response schemas for the payment session endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentSessionRequest(ApiModel):
    """Payload accepted by the session endpoints."""

    amount_in_cents: int = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    merchant_name: str | None = None
    merchant_transaction_id: str | None = None
    description: str | None = None
    return_url: str | None = None


class PaymentAmount(ApiModel):
    amount_in_cents: int
    currency: str


class PaymentSessionResult(ApiModel):
    """Session details returned to callers."""

    session_id: str
    payment_url: str
    status: str
    merchant_transaction_id: str
    amount: PaymentAmount


class PaymentSessionEnvelope(ApiModel):
    status: str = "OK"
    message: str = "SUCCESS"
    data: PaymentSessionResult


class PaymentCallbackResult(ApiModel):
    success: bool
    message: str
    transaction_id: str


class TokenData(ApiModel):
    token: str


class TokenEnvelope(ApiModel):
    message: str = "SUCCESS"
    code: int = 200
    data: TokenData
