import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.modules.invoices.calculator import round_money
from app.modules.invoices.models import Invoice, InvoiceStatus
from app.modules.invoices.service import InvoiceService, apply_payment_to_invoice
from app.modules.notifications.models import NotificationType
from app.modules.notifications.service import NotificationService
from app.modules.payments.gateways import GatewayError, PayPalGateway, StripeGateway
from app.modules.payments.models import (
    GatewayType, Payment, PaymentGateway, PaymentMethod, PaymentStatus, Transaction
)
from app.modules.payments.schemas import (
    BankTransferDetails, GatewayConfigOut, GatewayConfigUpdate, PaymentCreate, PaymentResult,
    PayPalOrderOut, StripeIntentOut
)

logger = logging.getLogger(__name__)

SECRET_FIELDS = {"secret_key", "webhook_secret", "client_secret"}

REQUIRED_FIELDS = {
    GatewayType.STRIPE: ("publishable_key", "secret_key"),
    GatewayType.PAYPAL: ("client_id", "client_secret"),
    GatewayType.BANK_TRANSFER: ("bank_name", "account_holder"),
}

ALLOWED_FIELDS = {
    GatewayType.STRIPE: {"publishable_key", "secret_key", "webhook_secret"},
    GatewayType.PAYPAL: {"client_id", "client_secret", "mode"},
    GatewayType.BANK_TRANSFER: {
        "bank_name", "account_holder", "account_number", "routing_number", "swift_code", "iban", "instructions"
    },
}


def mask_secret(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return f"****{value[-4:]}" if len(value) > 8 else "****"


def mask_config(config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: mask_secret(value) if key in SECRET_FIELDS else value
        for key, value in (config or {}).items()
    }


def gateway_error_to_http(error: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Payment provider error: {error.message}"
    )


class PaymentService:

    def __init__(self, db: Session):
        self.db = db

    # ===== Gateway configuration =====

    def _gateway_row(self, tenant_id: UUID, gateway: GatewayType) -> Optional[PaymentGateway]:
        return self.db.query(PaymentGateway).filter(
            PaymentGateway.tenant_id == tenant_id,
            PaymentGateway.gateway == gateway
        ).first()

    def _enabled_config(self, tenant_id: UUID, gateway: GatewayType) -> Dict[str, Any]:
        row = self._gateway_row(tenant_id, gateway)
        if not row or not row.is_enabled:
            label = gateway.value.replace("_", " ").title()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{label} payment gateway not configured for this company"
            )
        return row.config or {}

    def _to_out(self, row: PaymentGateway) -> GatewayConfigOut:
        return GatewayConfigOut(
            id=row.id,
            gateway=row.gateway,
            is_enabled=row.is_enabled,
            config=mask_config(row.config),
            updated_at=row.updated_at
        )

    def list_gateways(self, tenant_id: UUID) -> List[GatewayConfigOut]:
        rows = self.db.query(PaymentGateway).filter(PaymentGateway.tenant_id == tenant_id).all()
        return [self._to_out(row) for row in rows]

    def upsert_gateway(self, tenant_id: UUID, gateway: GatewayType, data: GatewayConfigUpdate) -> GatewayConfigOut:
        """
        Create or replace a gateway configuration.

        Masked secrets sent back unchanged by the settings form keep their
        stored value.
        """
        row = self._gateway_row(tenant_id, gateway)
        current = dict(row.config or {}) if row else {}

        unknown = set(data.config) - ALLOWED_FIELDS[gateway]
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown {gateway.value} settings: {', '.join(sorted(unknown))}"
            )

        config = {}
        for key, value in data.config.items():
            if key in SECRET_FIELDS and isinstance(value, str) and value.startswith("****"):
                value = current.get(key)
            config[key] = value.strip() if isinstance(value, str) else value

        if gateway == GatewayType.PAYPAL:
            config["mode"] = config.get("mode") or "sandbox"
            if config["mode"] not in ("sandbox", "live"):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="PayPal mode must be 'sandbox' or 'live'"
                )
        if gateway == GatewayType.BANK_TRANSFER and not (config.get("account_number") or config.get("iban")):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Bank transfer needs an account number or an IBAN"
            )

        if data.is_enabled:
            missing = [field for field in REQUIRED_FIELDS[gateway] if not config.get(field)]
            if missing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Missing {gateway.value} settings: {', '.join(missing)}"
                )

        if row:
            row.config = config
            row.is_enabled = data.is_enabled
        else:
            row = PaymentGateway(tenant_id=tenant_id, gateway=gateway, is_enabled=data.is_enabled, config=config)
            self.db.add(row)

        self.db.commit()
        self.db.refresh(row)
        logger.info(f"Payment gateway {gateway.value} saved for tenant {tenant_id} (enabled={row.is_enabled})")
        return self._to_out(row)

    def delete_gateway(self, tenant_id: UUID, gateway: GatewayType) -> Dict[str, str]:
        row = self._gateway_row(tenant_id, gateway)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Payment gateway not found"
            )
        self.db.delete(row)
        self.db.commit()
        return {"message": "Payment gateway removed"}

    def available_gateways(self, tenant_id: UUID) -> List[GatewayType]:
        rows = self.db.query(PaymentGateway).filter(
            PaymentGateway.tenant_id == tenant_id,
            PaymentGateway.is_enabled == True
        ).all()
        return [row.gateway for row in rows]

    # ===== Recording payments =====

    def record_payment(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        gateway: Optional[GatewayType] = None,
        transaction_id: Optional[str] = None,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        user_id: Optional[UUID] = None
    ) -> Payment:
        """Apply a completed payment to the invoice and notify the company. Commits."""
        applied = apply_payment_to_invoice(invoice, amount)

        payment = Payment(
            tenant_id=invoice.tenant_id,
            invoice_id=invoice.id,
            amount=applied,
            payment_date=payment_date or date.today(),
            method=method,
            gateway=gateway,
            status=PaymentStatus.COMPLETED,
            transaction_id=transaction_id,
            notes=notes,
            created_by=user_id
        )
        self.db.add(payment)
        self.db.flush()

        NotificationService(self.db).notify(
            tenant_id=invoice.tenant_id,
            type=NotificationType.PAYMENT_RECEIVED,
            title=f"Payment received for {invoice.invoice_number}",
            message=f"{applied} {invoice.currency} via {method.value.replace('_', ' ')}",
            user_id=invoice.created_by,
            meta={"invoice_id": str(invoice.id), "payment_id": str(payment.id)}
        )

        self.db.commit()
        self.db.refresh(payment)
        self.db.refresh(invoice)
        logger.info(
            f"Payment {payment.id} of {applied} {invoice.currency} applied to {invoice.invoice_number} "
            f"(status {invoice.status.value})"
        )
        self._queue_receipt(invoice, payment)
        return payment

    def _queue_receipt(self, invoice: Invoice, payment: Payment):
        if not invoice.client_email:
            return
        from app.modules.email.tasks import send_payment_receipt_task

        try:
            send_payment_receipt_task.delay(
                tenant_id=str(invoice.tenant_id),
                recipient=invoice.client_email,
                context={
                    "client_name": invoice.client_name,
                    "invoice_number": invoice.invoice_number,
                    "amount": f"{payment.amount:.2f}",
                    "currency": invoice.currency,
                    "payment_date": payment.payment_date.isoformat(),
                    "amount_due": f"{invoice.amount_due:.2f}",
                    "invoice_link": invoice.public_link,
                }
            )
        except Exception as e:
            # Receipt failures leave the stored payment untouched
            logger.error(f"Could not queue receipt for payment {payment.id}: {str(e)}", exc_info=True)

    def _result(self, payment: Payment, invoice: Invoice) -> PaymentResult:
        return PaymentResult(
            payment=payment,
            invoice_status=invoice.status.value,
            amount_paid=invoice.amount_paid,
            amount_due=invoice.amount_due
        )

    def record_manual_payment(
        self,
        invoice_id: UUID,
        payment_data: PaymentCreate,
        tenant_id: UUID,
        user_id: UUID
    ) -> PaymentResult:
        invoice = InvoiceService(self.db).get_invoice(invoice_id, tenant_id)
        try:
            payment = self.record_payment(
                invoice,
                payment_data.amount,
                payment_data.method,
                transaction_id=payment_data.transaction_id,
                payment_date=payment_data.payment_date,
                notes=payment_data.notes,
                user_id=user_id
            )
            return self._result(payment, invoice)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error recording payment on {invoice_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error recording payment: {str(e)}"
            )

    def list_invoice_payments(self, invoice_id: UUID, tenant_id: UUID) -> List[Payment]:
        InvoiceService(self.db).get_invoice(invoice_id, tenant_id)
        return self.db.query(Payment).filter(
            Payment.tenant_id == tenant_id,
            Payment.invoice_id == invoice_id
        ).order_by(Payment.payment_date.desc(), Payment.created_at.desc()).all()

    def _existing_payment(self, tenant_id: UUID, transaction_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.tenant_id == tenant_id,
            Payment.transaction_id == transaction_id
        ).first()

    def _ensure_payable(self, invoice: Invoice):
        if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.PAID) or round_money(invoice.amount_due) <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This invoice has nothing left to pay"
            )

    # ===== Stripe =====

    def create_stripe_payment_intent(self, invoice: Invoice) -> StripeIntentOut:
        """Payment intent for the invoice balance, using the company's own Stripe keys."""
        self._ensure_payable(invoice)
        config = self._enabled_config(invoice.tenant_id, GatewayType.STRIPE)

        amount = round_money(invoice.amount_due)
        try:
            gateway = StripeGateway(config)
            intent = gateway.create_payment_intent(
                amount=amount,
                currency=invoice.currency,
                metadata={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "client_name": invoice.client_name or "",
                    "client_email": invoice.client_email or "",
                },
                description=f"Payment for Invoice {invoice.invoice_number}"
            )
        except GatewayError as e:
            raise gateway_error_to_http(e)

        self.db.add(Transaction(
            tenant_id=invoice.tenant_id,
            invoice_id=invoice.id,
            transaction_id=intent["id"],
            gateway=GatewayType.STRIPE,
            amount=amount,
            currency=invoice.currency,
            status=intent.get("status") or "created",
            meta={"invoice_number": invoice.invoice_number}
        ))
        self.db.commit()
        logger.info(f"Stripe payment intent {intent['id']} created for {invoice.invoice_number} ({amount})")

        return StripeIntentOut(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            amount=amount,
            currency=invoice.currency.lower(),
            publishable_key=config.get("publishable_key")
        )

    def _apply_stripe_intent(self, invoice: Invoice, intent) -> Payment:
        existing = self._existing_payment(invoice.tenant_id, intent["id"])
        if existing:
            return existing

        amount = Decimal(intent.get("amount_received") or intent.get("amount") or 0) / 100
        payment = self.record_payment(
            invoice,
            amount,
            PaymentMethod.STRIPE,
            gateway=GatewayType.STRIPE,
            transaction_id=intent["id"]
        )

        transaction = self.db.query(Transaction).filter(
            Transaction.tenant_id == invoice.tenant_id,
            Transaction.transaction_id == intent["id"]
        ).first()
        if transaction:
            transaction.payment_id = payment.id
            transaction.status = intent.get("status") or "succeeded"
            self.db.commit()
        return payment

    def confirm_stripe_payment(self, invoice: Invoice, payment_intent_id: str) -> PaymentResult:
        """
        Confirm a payment intent after the card form succeeds.

        Safe to call twice: an intent already recorded returns the stored payment.
        """
        existing = self._existing_payment(invoice.tenant_id, payment_intent_id)
        if existing:
            return self._result(existing, invoice)

        config = self._enabled_config(invoice.tenant_id, GatewayType.STRIPE)
        try:
            intent = StripeGateway(config).retrieve_payment_intent(payment_intent_id)
        except GatewayError as e:
            raise gateway_error_to_http(e)

        metadata = intent.get("metadata") or {}
        if metadata.get("invoice_id") != str(invoice.id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Payment intent does not belong to this invoice"
            )
        if intent.get("status") != "succeeded":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Payment has not succeeded (status: {intent.get('status')})"
            )

        payment = self._apply_stripe_intent(invoice, intent)
        return self._result(payment, invoice)

    def handle_stripe_webhook(self, company_id: UUID, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        config = self._enabled_config(company_id, GatewayType.STRIPE)
        try:
            event = StripeGateway(config).construct_event(payload, signature)
        except GatewayError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=e.message
            )

        event_type = event["type"]
        if event_type != "payment_intent.succeeded":
            logger.debug(f"Ignoring Stripe event {event_type}")
            return {"received": True, "handled": False}

        intent = event["data"]["object"]
        invoice_id = (intent.get("metadata") or {}).get("invoice_id")
        invoice = None
        if invoice_id:
            try:
                invoice = self.db.query(Invoice).filter(
                    Invoice.id == UUID(invoice_id),
                    Invoice.tenant_id == company_id
                ).first()
            except ValueError:
                invoice = None
        if not invoice:
            logger.warning(f"Stripe event for unknown invoice {invoice_id}")
            return {"received": True, "handled": False}

        if invoice.status == InvoiceStatus.PAID and not self._existing_payment(company_id, intent["id"]):
            logger.warning(f"Stripe payment {intent['id']} arrived for already paid invoice {invoice.invoice_number}")
            return {"received": True, "handled": False}

        self._apply_stripe_intent(invoice, intent)
        return {"received": True, "handled": True}

    # ===== PayPal =====

    def create_paypal_order(self, invoice: Invoice) -> PayPalOrderOut:
        self._ensure_payable(invoice)
        config = self._enabled_config(invoice.tenant_id, GatewayType.PAYPAL)

        amount = round_money(invoice.amount_due)
        page = f"{settings.FRONTEND_URL}/invoice/pay/{invoice.payment_token}"
        try:
            order = PayPalGateway(config).create_order(
                amount=amount,
                currency=invoice.currency,
                reference_id=str(invoice.id),
                invoice_number=invoice.invoice_number,
                return_url=f"{page}?paypal=success",
                cancel_url=f"{page}?paypal=cancelled"
            )
        except GatewayError as e:
            raise gateway_error_to_http(e)

        self.db.add(Transaction(
            tenant_id=invoice.tenant_id,
            invoice_id=invoice.id,
            transaction_id=order["order_id"],
            gateway=GatewayType.PAYPAL,
            amount=amount,
            currency=invoice.currency,
            status="CREATED",
            meta={"invoice_number": invoice.invoice_number}
        ))
        self.db.commit()
        logger.info(f"PayPal order {order['order_id']} created for {invoice.invoice_number}")
        return PayPalOrderOut(order_id=order["order_id"], approval_url=order["approval_url"])

    def capture_paypal_order(self, invoice: Invoice, order_id: str) -> PaymentResult:
        transaction = self.db.query(Transaction).filter(
            Transaction.tenant_id == invoice.tenant_id,
            Transaction.invoice_id == invoice.id,
            Transaction.transaction_id == order_id,
            Transaction.gateway == GatewayType.PAYPAL
        ).first()
        if not transaction:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="PayPal order not found for this invoice"
            )
        if transaction.payment_id:
            payment = self.db.get(Payment, transaction.payment_id)
            return self._result(payment, invoice)

        config = self._enabled_config(invoice.tenant_id, GatewayType.PAYPAL)
        try:
            capture = PayPalGateway(config).capture_order(order_id)
        except GatewayError as e:
            raise gateway_error_to_http(e)

        if capture["status"] != "COMPLETED":
            transaction.status = capture["status"] or "FAILED"
            self.db.commit()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"PayPal payment was not completed (status: {capture['status']})"
            )

        payment = self.record_payment(
            invoice,
            capture["amount"] or transaction.amount,
            PaymentMethod.PAYPAL,
            gateway=GatewayType.PAYPAL,
            transaction_id=capture["capture_id"]
        )
        transaction.payment_id = payment.id
        transaction.status = "COMPLETED"
        transaction.meta = {**(transaction.meta or {}), "capture_id": capture["capture_id"]}
        self.db.commit()
        return self._result(payment, invoice)

    # ===== Bank transfer =====

    def bank_transfer_details(self, invoice: Invoice) -> BankTransferDetails:
        config = self._enabled_config(invoice.tenant_id, GatewayType.BANK_TRANSFER)
        return BankTransferDetails(
            bank_name=config.get("bank_name"),
            account_holder=config.get("account_holder"),
            account_number=config.get("account_number"),
            routing_number=config.get("routing_number"),
            swift_code=config.get("swift_code"),
            iban=config.get("iban"),
            reference=invoice.invoice_number,
            amount=round_money(invoice.amount_due),
            currency=invoice.currency
        )
