from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import datetime


CREDENTIAL_TYPE = "TICKET"


class TicketCredential(BaseModel):
    """QR / NFC wire object. Serialized with the compact aliases."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["TICKET"] = Field(CREDENTIAL_TYPE, alias="t")
    ticket_id: str = Field(..., alias="tid", min_length=1)
    event_id: int = Field(..., alias="eid")
    expiry: Optional[int] = Field(None, alias="exp")
    holder_name: Optional[str] = Field(None, alias="hn")
    holder_email: Optional[str] = Field(None, alias="he")
    holder_phone: Optional[str] = Field(None, alias="hp")
    signature: str = Field(..., alias="sig", min_length=1)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


# Checkout

class BuyerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    national_id: Optional[str] = Field(None, alias="cc")


class LineItemIn(BaseModel):
    """Storefront sends ``ticketTypeId``; the snake_case name is accepted too."""
    model_config = ConfigDict(populate_by_name=True)

    ticket_type_id: int = Field(..., alias="ticketTypeId")
    quantity: int


class CheckoutRequest(BaseModel):
    customer: BuyerIn
    items: List[LineItemIn] = []


class OrderItemResponse(BaseModel):
    ticket_type_id: int
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: Optional[int]
    status: str
    total_cents: int
    total_display: float
    payment_provider: Optional[str]
    payment_reference: str
    payment_status: Optional[str]
    payment_transaction_id: Optional[str]
    buyer_name: str
    buyer_email: str
    buyer_phone: Optional[str]
    buyer_national_id: Optional[str]
    created_at: Optional[datetime]
    paid_at: Optional[datetime]
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class ProviderCheckout(BaseModel):
    public_key: str
    currency: str
    amount_in_cents: int
    reference: str
    signature: str
    redirect_url: str


class CheckoutResponse(BaseModel):
    order_id: int
    order: OrderResponse
    checkout: ProviderCheckout


# Tickets

class TicketResponse(BaseModel):
    id: int
    order_id: int
    ticket_type_id: int
    unique_code: str
    qr_payload: str
    status: str
    holder_name: Optional[str]
    holder_email: Optional[str]
    holder_phone: Optional[str]
    nfc_uid: Optional[str]
    used_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TicketDetailResponse(TicketResponse):
    event_id: Optional[int] = None


class OrderDetailResponse(OrderResponse):
    tickets: List[TicketResponse] = []


class AssignNfcRequest(BaseModel):
    nfc_uid: Optional[str] = None


# Payment provider webhook

class WebhookSignature(BaseModel):
    properties: List[str] = []
    checksum: str = Field(..., min_length=1)


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction: Dict[str, Any]


class WebhookEnvelope(BaseModel):
    """Provider event as delivered; unknown top-level keys are kept out of the model."""
    event: Optional[str] = None
    data: WebhookData
    signature: WebhookSignature
    timestamp: Optional[Union[int, str]] = None
    sent_at: Optional[str] = None
    environment: Optional[str] = None


class PaymentTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[str, int]] = None
    status: Optional[str] = None
    reference: Optional[str] = None
    amount_in_cents: Optional[int] = None
    currency: Optional[str] = None


class WebhookResponse(BaseModel):
    ok: bool = True
    status: Optional[str] = None
    already_paid: bool = False
    created_tickets: int = 0


# Check-in

class ValidateRequest(BaseModel):
    # Shape is checked by the validator so bad payloads get a reason code
    payload: Any = None


class ValidateResponse(BaseModel):
    """Serialized with the camelCase keys gate devices read."""
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    reason: str
    used_at: Optional[datetime] = Field(None, alias="usedAt")
    event_id: Optional[int] = Field(None, alias="eventId")
