"""
Tests for payments: gateway settings, manual payments and the
Stripe / PayPal flows with the provider calls patched out.
"""
import pytest
from decimal import Decimal
from fastapi import HTTPException
from unittest.mock import MagicMock, patch

from app.modules.invoices.models import InvoiceStatus
from app.modules.notifications.models import Notification, NotificationType
from app.modules.payments.gateways import to_minor_units
from app.modules.payments.models import GatewayType, Payment, PaymentMethod, Transaction
from app.modules.payments.schemas import GatewayConfigUpdate, PaymentCreate
from app.modules.payments.service import PaymentService, mask_secret


STRIPE_CONFIG = {
    "publishable_key": "pk_test_123",
    "secret_key": "sk_test_abcdefgh1234",
    "webhook_secret": "whsec_abcdefgh5678",
}

PAYPAL_CONFIG = {"client_id": "paypal-client", "client_secret": "paypal-secret-9999"}


@pytest.fixture
def stripe_enabled(db_session, sample_company):
    return PaymentService(db_session).upsert_gateway(
        sample_company.id, GatewayType.STRIPE, GatewayConfigUpdate(config=STRIPE_CONFIG)
    )


@pytest.fixture
def paypal_enabled(db_session, sample_company):
    return PaymentService(db_session).upsert_gateway(
        sample_company.id, GatewayType.PAYPAL, GatewayConfigUpdate(config=PAYPAL_CONFIG)
    )


def paypal_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestHelpers:

    def test_mask_secret(self):
        assert mask_secret("sk_test_abcdefgh1234") == "****1234"
        assert mask_secret("short") == "****"
        assert mask_secret(None) is None

    def test_minor_units(self):
        assert to_minor_units(Decimal("10.50")) == 1050
        assert to_minor_units(Decimal("0.01")) == 1


class TestGatewayConfig:

    def test_secrets_are_masked(self, db_session, sample_company, stripe_enabled):
        assert stripe_enabled.config["secret_key"] == "****1234"
        assert stripe_enabled.config["publishable_key"] == "pk_test_123"

    def test_masked_secret_keeps_stored_value(self, db_session, sample_company, stripe_enabled):
        service = PaymentService(db_session)
        service.upsert_gateway(
            sample_company.id,
            GatewayType.STRIPE,
            GatewayConfigUpdate(config={**stripe_enabled.config, "publishable_key": "pk_test_456"})
        )
        row = service._gateway_row(sample_company.id, GatewayType.STRIPE)
        assert row.config["secret_key"] == STRIPE_CONFIG["secret_key"]
        assert row.config["publishable_key"] == "pk_test_456"

    def test_missing_required_fields(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db_session).upsert_gateway(
                sample_company.id, GatewayType.STRIPE, GatewayConfigUpdate(config={"publishable_key": "pk"})
            )
        assert exc_info.value.status_code == 400
        assert "secret_key" in exc_info.value.detail

    def test_disabled_gateway_may_be_incomplete(self, db_session, sample_company):
        service = PaymentService(db_session)
        service.upsert_gateway(
            sample_company.id, GatewayType.STRIPE,
            GatewayConfigUpdate(is_enabled=False, config={"publishable_key": "pk"})
        )
        assert service.available_gateways(sample_company.id) == []

    def test_unknown_field(self, db_session, sample_company):
        with pytest.raises(HTTPException):
            PaymentService(db_session).upsert_gateway(
                sample_company.id, GatewayType.PAYPAL,
                GatewayConfigUpdate(config={**PAYPAL_CONFIG, "api_version": "v9"})
            )

    def test_bank_transfer_needs_account(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db_session).upsert_gateway(
                sample_company.id, GatewayType.BANK_TRANSFER,
                GatewayConfigUpdate(config={"bank_name": "First Bank", "account_holder": "Studio"})
            )
        assert exc_info.value.status_code == 400

    def test_bank_transfer_details(self, db_session, sample_company, make_invoice):
        service = PaymentService(db_session)
        service.upsert_gateway(
            sample_company.id, GatewayType.BANK_TRANSFER,
            GatewayConfigUpdate(config={"bank_name": "First Bank", "account_holder": "Studio", "iban": "DE00123"})
        )
        invoice = make_invoice("640.00")
        details = service.bank_transfer_details(invoice)
        assert details.reference == invoice.invoice_number
        assert details.amount == Decimal("640.00")
        assert details.iban == "DE00123"


class TestManualPayments:

    def test_partial_then_paid(self, db_session, sample_company, sample_user, make_invoice, queued_email):
        invoice = make_invoice("500.00")
        service = PaymentService(db_session)

        first = service.record_manual_payment(
            invoice.id, PaymentCreate(amount=Decimal("200.00"), method=PaymentMethod.BANK_TRANSFER),
            sample_company.id, sample_user.id
        )
        assert first.invoice_status == "partial"
        assert first.amount_due == Decimal("300.00")

        second = service.record_manual_payment(
            invoice.id, PaymentCreate(amount=Decimal("300.00"), method=PaymentMethod.CASH),
            sample_company.id, sample_user.id
        )
        assert second.invoice_status == "paid"
        assert second.amount_due == Decimal("0.00")

        assert len(service.list_invoice_payments(invoice.id, sample_company.id)) == 2
        assert queued_email["send_payment_receipt_task"].call_count == 2
        notifications = db_session.query(Notification).filter(
            Notification.type == NotificationType.PAYMENT_RECEIVED
        ).count()
        assert notifications == 2

    def test_overpayment_leaves_invoice_alone(self, db_session, sample_company, sample_user, make_invoice, queued_email):
        invoice = make_invoice("100.00")
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db_session).record_manual_payment(
                invoice.id, PaymentCreate(amount=Decimal("150.00")), sample_company.id, sample_user.id
            )
        assert exc_info.value.status_code == 400

        db_session.refresh(invoice)
        assert invoice.amount_paid == Decimal("0.00")
        assert db_session.query(Payment).count() == 0

    def test_receipt_failure_keeps_payment(self, db_session, sample_company, sample_user, make_invoice, queued_email):
        queued_email["send_payment_receipt_task"].side_effect = RuntimeError("broker down")
        invoice = make_invoice("100.00")

        result = PaymentService(db_session).record_manual_payment(
            invoice.id, PaymentCreate(amount=Decimal("100.00")), sample_company.id, sample_user.id
        )
        assert result.invoice_status == "paid"
        assert db_session.query(Payment).count() == 1


class TestStripe:

    def test_intent_requires_configuration(self, db_session, make_invoice):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db_session).create_stripe_payment_intent(make_invoice("80.00"))
        assert exc_info.value.status_code == 400

    def test_create_intent_for_balance(self, db_session, make_invoice, stripe_enabled):
        invoice = make_invoice("80.00")
        intent = {"id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"}

        with patch("app.modules.payments.gateways.stripe.PaymentIntent.create", return_value=intent) as create:
            result = PaymentService(db_session).create_stripe_payment_intent(invoice)

        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 8000
        assert kwargs["api_key"] == STRIPE_CONFIG["secret_key"]
        assert kwargs["metadata"]["invoice_id"] == str(invoice.id)
        assert result.client_secret == "pi_123_secret"
        assert result.publishable_key == "pk_test_123"
        assert db_session.query(Transaction).filter_by(transaction_id="pi_123").count() == 1

    def test_confirm_is_idempotent(self, db_session, make_invoice, stripe_enabled, queued_email):
        invoice = make_invoice("80.00")
        intent = {
            "id": "pi_456",
            "status": "succeeded",
            "amount_received": 8000,
            "metadata": {"invoice_id": str(invoice.id)},
        }
        service = PaymentService(db_session)

        with patch("app.modules.payments.gateways.stripe.PaymentIntent.retrieve", return_value=intent) as retrieve:
            first = service.confirm_stripe_payment(invoice, "pi_456")
            second = service.confirm_stripe_payment(invoice, "pi_456")

        assert retrieve.call_count == 1
        assert first.invoice_status == "paid"
        assert second.payment.id == first.payment.id
        assert db_session.query(Payment).count() == 1

    def test_confirm_rejects_foreign_intent(self, db_session, make_invoice, stripe_enabled):
        invoice = make_invoice("80.00")
        intent = {"id": "pi_789", "status": "succeeded", "amount_received": 8000, "metadata": {"invoice_id": "other"}}

        with patch("app.modules.payments.gateways.stripe.PaymentIntent.retrieve", return_value=intent):
            with pytest.raises(HTTPException) as exc_info:
                PaymentService(db_session).confirm_stripe_payment(invoice, "pi_789")
        assert exc_info.value.status_code == 400

    def test_webhook_records_payment(self, db_session, sample_company, make_invoice, stripe_enabled, queued_email):
        invoice = make_invoice("80.00")
        event = {
            "type": "payment_intent.succeeded",
            "data": {"object": {
                "id": "pi_hook",
                "status": "succeeded",
                "amount_received": 3000,
                "metadata": {"invoice_id": str(invoice.id)},
            }},
        }
        with patch("app.modules.payments.gateways.stripe.Webhook.construct_event", return_value=event):
            result = PaymentService(db_session).handle_stripe_webhook(sample_company.id, b"{}", "sig")

        assert result == {"received": True, "handled": True}
        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.PARTIAL
        assert invoice.amount_due == Decimal("50.00")


class TestPayPal:

    def test_order_and_capture(self, db_session, make_invoice, paypal_enabled, queued_email):
        invoice = make_invoice("45.00")
        service = PaymentService(db_session)

        token = paypal_response({"access_token": "token-1"})
        order = paypal_response({
            "id": "ORDER-1",
            "links": [{"rel": "approve", "href": "https://paypal.example.com/approve"}],
        })
        with patch("app.modules.payments.gateways.httpx.request", side_effect=[token, order]) as request:
            created = service.create_paypal_order(invoice)

        assert created.order_id == "ORDER-1"
        assert created.approval_url == "https://paypal.example.com/approve"
        payload = request.call_args_list[1].kwargs["json"]
        assert payload["purchase_units"][0]["amount"] == {"currency_code": invoice.currency, "value": "45.00"}

        capture = paypal_response({
            "status": "COMPLETED",
            "purchase_units": [{
                "reference_id": str(invoice.id),
                "payments": {"captures": [{"id": "CAP-1", "amount": {"value": "45.00", "currency_code": "USD"}}]},
            }],
        })
        with patch("app.modules.payments.gateways.httpx.request", side_effect=[token, capture]):
            result = service.capture_paypal_order(invoice, "ORDER-1")

        assert result.invoice_status == "paid"
        assert result.payment.transaction_id == "CAP-1"

        # A second capture returns the stored payment without calling PayPal
        with patch("app.modules.payments.gateways.httpx.request") as request:
            again = service.capture_paypal_order(invoice, "ORDER-1")
        request.assert_not_called()
        assert again.payment.id == result.payment.id

    def test_unknown_order(self, db_session, make_invoice, paypal_enabled):
        with pytest.raises(HTTPException) as exc_info:
            PaymentService(db_session).capture_paypal_order(make_invoice("45.00"), "ORDER-X")
        assert exc_info.value.status_code == 404


class TestPaymentEndpoints:

    def test_member_cannot_configure_gateways(self, client, sample_company, make_member):
        _, headers = make_member(sample_company, "member@example.com", "member")
        response = client.put("/payments/gateways/stripe", json={"config": STRIPE_CONFIG}, headers=headers)
        assert response.status_code == 403

    def test_owner_configures_and_lists(self, client, auth_headers):
        response = client.put("/payments/gateways/stripe", json={"config": STRIPE_CONFIG}, headers=auth_headers)
        assert response.status_code == 200

        listed = client.get("/payments/gateways", headers=auth_headers).json()
        assert listed[0]["config"]["secret_key"] == "****1234"

    def test_public_gateways(self, client, make_invoice, stripe_enabled):
        invoice = make_invoice("20.00")
        response = client.get(f"/public/invoices/{invoice.payment_token}/gateways")
        assert response.status_code == 200
        assert response.json()["gateways"] == ["stripe"]

    def test_stripe_webhook_endpoint(self, client, db_session, sample_company, make_invoice, stripe_enabled, queued_email):
        invoice = make_invoice("80.00")
        event = {
            "type": "payment_intent.succeeded",
            "data": {"object": {
                "id": "pi_endpoint",
                "status": "succeeded",
                "amount_received": 8000,
                "metadata": {"invoice_id": str(invoice.id)},
            }},
        }
        with patch("app.modules.payments.gateways.stripe.Webhook.construct_event", return_value=event) as construct:
            response = client.post(
                f"/payments/webhooks/stripe/{sample_company.id}",
                content=b'{"id": "evt_1"}',
                headers={"Stripe-Signature": "t=1,v1=abc"}
            )

        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True}
        assert construct.call_args.args[0] == b'{"id": "evt_1"}'
        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.PAID
