"""
Thin clients for the payment providers.

Stripe goes through the official `stripe` SDK with the company's own secret
key on every call (no global `stripe.api_key`, companies never share
credentials). PayPal has no maintained server SDK, so its REST API is called
with httpx.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when a provider rejects a call or cannot be reached."""

    def __init__(self, gateway: str, message: str):
        self.gateway = gateway
        self.message = message
        super().__init__(f"{gateway}: {message}")


def to_minor_units(amount: Decimal) -> int:
    """Amount in cents, rounded to the nearest cent."""
    return int(round(Decimal(amount) * 100))


class StripeGateway:

    def __init__(self, config: Dict[str, Any]):
        self.secret_key = config.get("secret_key")
        self.publishable_key = config.get("publishable_key")
        self.webhook_secret = config.get("webhook_secret")
        if not self.secret_key:
            raise GatewayError("stripe", "Stripe payment gateway not configured for this company")

    def _options(self) -> Dict[str, Any]:
        options = {"api_key": self.secret_key}
        if settings.STRIPE_API_VERSION:
            options["stripe_version"] = settings.STRIPE_API_VERSION
        return options

    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, str],
        description: str
    ):
        try:
            return stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
                **self._options()
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {str(e)}")
            raise GatewayError("stripe", e.user_message or str(e))

    def retrieve_payment_intent(self, payment_intent_id: str):
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id, **self._options())
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {payment_intent_id}: {str(e)}")
            raise GatewayError("stripe", e.user_message or str(e))

    def construct_event(self, payload: bytes, signature: Optional[str]):
        if not self.webhook_secret:
            raise GatewayError("stripe", "Stripe webhook secret not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {str(e)}")
            raise GatewayError("stripe", "Invalid webhook signature")


class PayPalGateway:

    def __init__(self, config: Dict[str, Any]):
        self.client_id = config.get("client_id")
        self.client_secret = config.get("client_secret")
        self.mode = config.get("mode", "sandbox")
        if not self.client_id or not self.client_secret:
            raise GatewayError("paypal", "PayPal payment gateway not configured for this company")
        self.base_url = settings.PAYPAL_LIVE_URL if self.mode == "live" else settings.PAYPAL_SANDBOX_URL

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = httpx.request(
                method,
                f"{self.base_url}{path}",
                timeout=settings.PAYPAL_HTTP_TIMEOUT,
                **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"PayPal {path} failed with {e.response.status_code}: {e.response.text}")
            raise GatewayError("paypal", f"PayPal request failed ({e.response.status_code})")
        except httpx.HTTPError as e:
            logger.error(f"PayPal {path} unreachable: {str(e)}")
            raise GatewayError("paypal", "PayPal is not reachable")

    def _access_token(self) -> str:
        data = self._request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"}
        )
        return data["access_token"]

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json"
        }

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        reference_id: str,
        invoice_number: str,
        return_url: str,
        cancel_url: str
    ) -> Dict[str, Optional[str]]:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": reference_id,
                "invoice_id": invoice_number,
                "description": f"Payment for Invoice {invoice_number}",
                "amount": {
                    "currency_code": currency.upper(),
                    "value": f"{Decimal(amount):.2f}"
                }
            }],
            "application_context": {
                "return_url": return_url,
                "cancel_url": cancel_url,
                "user_action": "PAY_NOW"
            }
        }
        order = self._request("POST", "/v2/checkout/orders", json=payload, headers=self._auth_headers())

        approval_url = None
        for link in order.get("links", []):
            if link.get("rel") in ("approve", "payer-action"):
                approval_url = link.get("href")
                break
        return {"order_id": order["id"], "approval_url": approval_url}

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        """Capture an approved order. Returns the capture id, status and amount."""
        order = self._request(
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            headers=self._auth_headers()
        )

        capture = {}
        units = order.get("purchase_units") or []
        if units:
            captures = (units[0].get("payments") or {}).get("captures") or []
            if captures:
                capture = captures[0]

        amount = capture.get("amount") or {}
        return {
            "status": order.get("status"),
            "capture_id": capture.get("id", order_id),
            "reference_id": units[0].get("reference_id") if units else None,
            "amount": Decimal(amount["value"]) if amount.get("value") else None,
            "currency": amount.get("currency_code"),
            "raw": order
        }
