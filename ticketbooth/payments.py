"""Stripe Checkout integration: session creation and webhook decoding."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import stripe

from .config import Settings
from .errors import MalformedNotification, PaymentGatewayError, WebhookSignatureError

logger = logging.getLogger("uvicorn.error")

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELED = "canceled"

SIGNATURE_HEADER = "stripe-signature"


@dataclass(frozen=True)
class CheckoutSession:
    order_id: str
    checkout_url: str


@dataclass(frozen=True)
class PaymentNotification:
    event_type: str
    order_id: str
    payment_id: str | None
    status: str


def _status_for(event_type: str, session_object: dict) -> str | None:
    if event_type == "checkout.session.completed":
        # Delayed payment methods complete the session before the money moves.
        if session_object.get("payment_status") == "paid":
            return STATUS_COMPLETED
        return None
    if event_type == "checkout.session.async_payment_succeeded":
        return STATUS_COMPLETED
    if event_type == "checkout.session.async_payment_failed":
        return STATUS_FAILED
    if event_type == "checkout.session.expired":
        return STATUS_CANCELED
    return None


class PaymentGateway:
    """Thin wrapper around the Stripe SDK."""

    def __init__(self, *, secret_key: str, currency: str, tolerance: int = 300):
        self.secret_key = secret_key
        self.currency = currency.lower()
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaymentGateway":
        return cls(
            secret_key=settings.stripe_secret_key,
            currency=settings.currency,
            tolerance=settings.webhook_tolerance_seconds,
        )

    def create_checkout(
        self,
        *,
        amount_minor: int,
        item_name: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
    ) -> CheckoutSession:
        """Open a hosted checkout session for a single ticket."""
        if not self.secret_key:
            logger.error("Checkout requested but no Stripe secret key is configured")
            raise PaymentGatewayError("Payment system is not configured")
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": amount_minor,
                            "product_data": {"name": item_name},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                client_reference_id=metadata.get("attendee_id"),
                idempotency_key=idempotency_key,
                api_key=self.secret_key,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe error creating checkout session: %s", exc)
            raise PaymentGatewayError() from exc
        if not session.url:
            logger.error("Stripe returned checkout session %s without a URL", session.id)
            raise PaymentGatewayError("Failed to create checkout link")
        return CheckoutSession(order_id=session.id, checkout_url=session.url)

    def verify_signature(
        self, payload: bytes, signature: str | None, secret: str
    ) -> None:
        """Check the webhook signature header against the raw request body.

        An empty ``secret`` disables verification; this is only allowed outside
        production, where startup enforces a configured secret.
        """
        if not secret:
            logger.warning(
                "Payment webhook secret not configured; accepting unsigned notification"
            )
            return
        if not signature:
            logger.warning("Payment webhook rejected: missing signature header")
            raise WebhookSignatureError("Missing signature")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, secret, self.tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            logger.warning("Payment webhook rejected: %s", exc)
            raise WebhookSignatureError() from exc

    def parse_notification(self, payload: bytes) -> PaymentNotification | None:
        """Decode a webhook body into a payment status change.

        Returns ``None`` for event types that do not change a payment status.
        """
        try:
            body = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedNotification("Notification body is not valid JSON") from exc
        if not isinstance(body, dict) or not isinstance(body.get("type"), str):
            raise MalformedNotification("Notification has no event type")

        event_type = body["type"]
        data = body.get("data")
        session_object = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session_object, dict):
            raise MalformedNotification("Notification has no data object")

        status = _status_for(event_type, session_object)
        if status is None:
            return None
        order_id = session_object.get("id")
        if not order_id:
            raise MalformedNotification("Notification has no order id")
        payment_id = session_object.get("payment_intent")
        if isinstance(payment_id, dict):
            payment_id = payment_id.get("id")
        return PaymentNotification(
            event_type=event_type,
            order_id=order_id,
            payment_id=payment_id,
            status=status,
        )
