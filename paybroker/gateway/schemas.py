"""Wire and decoded shapes exchanged with the payment gateway."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


PAYMENT_TYPE_PURCHASE = "PURCHASE"


class GatewayModel(BaseModel):
    """camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Amount(GatewayModel):
    amount_in_cents: int
    currency: str


class Merchant(GatewayModel):
    name: str


class GatewaySessionRequest(GatewayModel):
    """Body of `POST /api/v1/sessions`."""

    model_config = ConfigDict(frozen=True)

    amount: Amount
    merchant: Merchant
    payment_type: str = PAYMENT_TYPE_PURCHASE
    merchant_transaction_id: str
    description: str | None = None
    return_url: str | None = None


class SessionInfo(GatewayModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    status: str = Field(min_length=1)


class SessionData(GatewayModel):
    """Session ids may arrive as JSON numbers; they are kept as strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    session_info: SessionInfo
    token: str | None = None


class SessionEnvelope(GatewayModel):
    """Success body of the session endpoint; unknown keys are ignored."""

    data: SessionData


class GatewaySession(BaseModel):
    """Validated success outcome of a session-creation call."""

    session_id: str
    status: str
    token: str | None = None


class GatewayError(BaseModel):
    """Normalized gateway failure, whatever shape the gateway sent it in."""

    status_code: str
    machine_code: str
    message: str
