from fastapi import APIRouter, Depends, Request, Header
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, BILLING_ROLES, MANAGER_ROLES
from app.modules.invoices.service import InvoiceService
from app.modules.payments.models import GatewayType
from app.modules.payments.service import PaymentService
from app.modules.payments.schemas import (
    GatewayConfigOut, GatewayConfigUpdate, StripeIntentOut, StripeConfirmRequest,
    PayPalOrderOut, PayPalCaptureRequest, BankTransferDetails, PaymentResult, AvailableGateways
)

router = APIRouter(prefix="/payments", tags=["Payments"])
public_router = APIRouter(prefix="/public/invoices", tags=["Public Payments"])


# ===== Gateway configuration (staff) =====

@router.get("/gateways", response_model=List[GatewayConfigOut])
def list_gateways(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Configured gateways for the company. Secret keys are masked.
    """
    return PaymentService(db).list_gateways(auth_context.tenant_id)


@router.put("/gateways/{gateway}", response_model=GatewayConfigOut)
def save_gateway(
    gateway: GatewayType,
    data: GatewayConfigUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Create or replace a gateway configuration.

    - **stripe**: `publishable_key`, `secret_key`, `webhook_secret`
    - **paypal**: `client_id`, `client_secret`, `mode` (sandbox | live)
    - **bank_transfer**: `bank_name`, `account_holder`, `account_number`,
      `routing_number`, `swift_code`, `iban`
    """
    return PaymentService(db).upsert_gateway(auth_context.tenant_id, gateway, data)


@router.delete("/gateways/{gateway}")
def delete_gateway(
    gateway: GatewayType,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return PaymentService(db).delete_gateway(auth_context.tenant_id, gateway)


@router.post("/webhooks/stripe/{company_id}")
async def stripe_webhook(
    company_id: UUID,
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db)
):
    """
    Stripe webhook endpoint. Each company registers its own URL and secret.
    """
    payload = await request.body()
    return await run_in_threadpool(
        PaymentService(db).handle_stripe_webhook, company_id, payload, stripe_signature
    )


# ===== Public payment page =====

@public_router.get("/{token}/gateways", response_model=AvailableGateways)
def get_available_gateways(token: str, db: Session = Depends(get_db)):
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return AvailableGateways(gateways=PaymentService(db).available_gateways(invoice.tenant_id))


@public_router.post("/{token}/stripe/payment-intent", response_model=StripeIntentOut)
def create_stripe_payment_intent(token: str, db: Session = Depends(get_db)):
    """
    Create a Stripe payment intent for the invoice balance.
    """
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return PaymentService(db).create_stripe_payment_intent(invoice)


@public_router.post("/{token}/stripe/confirm", response_model=PaymentResult)
def confirm_stripe_payment(token: str, data: StripeConfirmRequest, db: Session = Depends(get_db)):
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return PaymentService(db).confirm_stripe_payment(invoice, data.payment_intent_id)


@public_router.post("/{token}/paypal/order", response_model=PayPalOrderOut)
def create_paypal_order(token: str, db: Session = Depends(get_db)):
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return PaymentService(db).create_paypal_order(invoice)


@public_router.post("/{token}/paypal/capture", response_model=PaymentResult)
def capture_paypal_order(token: str, data: PayPalCaptureRequest, db: Session = Depends(get_db)):
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return PaymentService(db).capture_paypal_order(invoice, data.order_id)


@public_router.get("/{token}/bank-transfer", response_model=BankTransferDetails)
def get_bank_transfer_details(token: str, db: Session = Depends(get_db)):
    invoice = InvoiceService(db).get_invoice_by_token(token)
    return PaymentService(db).bank_transfer_details(invoice)
