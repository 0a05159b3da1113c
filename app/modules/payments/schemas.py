from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, datetime

from app.modules.payments.models import GatewayType, PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_date: date = Field(default_factory=date.today)
    method: PaymentMethod = PaymentMethod.OTHER
    transaction_id: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    gateway: Optional[GatewayType] = None
    status: PaymentStatus
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentResult(BaseModel):
    payment: PaymentOut
    invoice_status: str
    amount_paid: Decimal
    amount_due: Decimal


# Gateway configuration

class GatewayConfigUpdate(BaseModel):
    is_enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)


class GatewayConfigOut(BaseModel):
    id: UUID
    gateway: GatewayType
    is_enabled: bool
    config: Dict[str, Any]
    updated_at: Optional[datetime] = None


# Stripe

class StripeIntentOut(BaseModel):
    client_secret: str = Field(..., alias="clientSecret")
    payment_intent_id: str = Field(..., alias="paymentIntentId")
    amount: Decimal
    currency: str
    publishable_key: Optional[str] = Field(None, alias="publishableKey")

    class Config:
        populate_by_name = True


class StripeConfirmRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)


# PayPal

class PayPalOrderOut(BaseModel):
    order_id: str = Field(..., alias="orderId")
    approval_url: Optional[str] = Field(None, alias="approvalUrl")

    class Config:
        populate_by_name = True


class PayPalCaptureRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


# Bank transfer

class BankTransferDetails(BaseModel):
    bank_name: Optional[str] = None
    account_holder: Optional[str] = None
    account_number: Optional[str] = None
    routing_number: Optional[str] = None
    swift_code: Optional[str] = None
    iban: Optional[str] = None
    reference: str
    amount: Decimal
    currency: str


class AvailableGateways(BaseModel):
    gateways: List[GatewayType]
