from __future__ import annotations

import json
import time
import types

import pytest
import stripe

from conftest import sign_payload
from ticketbooth.errors import (
    MalformedNotification,
    PaymentGatewayError,
    WebhookSignatureError,
)
from ticketbooth.payments import (
    STATUS_CANCELED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    PaymentGateway,
)

SECRET = "whsec_test_secret"


@pytest.fixture()
def stripe_gateway():
    return PaymentGateway(secret_key="sk_test_123", currency="USD", tolerance=300)


def _event(event_type: str, **session_fields) -> bytes:
    data = {"id": "cs_test_abc", "payment_intent": "pi_abc", **session_fields}
    return json.dumps(
        {"id": "evt_1", "type": event_type, "data": {"object": data}}
    ).encode("utf-8")


def test_create_checkout_builds_session(stripe_gateway, monkeypatch):
    captured = {}

    def _create(**kwargs):
        captured.update(kwargs)
        return types.SimpleNamespace(id="cs_test_abc", url="https://checkout.stripe.com/x")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    checkout = stripe_gateway.create_checkout(
        amount_minor=2500,
        item_name="Gala - VIP",
        metadata={"event_id": "evt", "attendee_id": "att"},
        success_url="https://tickets.example.com/thanks",
        cancel_url="https://tickets.example.com/event/evt",
        idempotency_key="checkout-att",
    )

    assert checkout.order_id == "cs_test_abc"
    assert checkout.checkout_url == "https://checkout.stripe.com/x"
    line_item = captured["line_items"][0]
    assert line_item["price_data"]["unit_amount"] == 2500
    assert line_item["price_data"]["currency"] == "usd"
    assert captured["metadata"] == {"event_id": "evt", "attendee_id": "att"}
    assert captured["client_reference_id"] == "att"
    assert captured["api_key"] == "sk_test_123"
    assert captured["idempotency_key"] == "checkout-att"


def test_create_checkout_wraps_stripe_errors(stripe_gateway, monkeypatch):
    def _create(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    with pytest.raises(PaymentGatewayError):
        stripe_gateway.create_checkout(
            amount_minor=100,
            item_name="x",
            metadata={},
            success_url="https://a",
            cancel_url="https://b",
            idempotency_key="k",
        )


def test_create_checkout_requires_secret_key():
    gateway = PaymentGateway(secret_key="", currency="usd")
    with pytest.raises(PaymentGatewayError):
        gateway.create_checkout(
            amount_minor=100,
            item_name="x",
            metadata={},
            success_url="https://a",
            cancel_url="https://b",
            idempotency_key="k",
        )


def test_verify_signature_accepts_valid_header(stripe_gateway):
    payload = _event("checkout.session.completed", payment_status="paid")
    stripe_gateway.verify_signature(payload, sign_payload(payload, SECRET), SECRET)


def test_verify_signature_rejects_tampered_body(stripe_gateway):
    payload = _event("checkout.session.completed", payment_status="paid")
    header = sign_payload(payload, SECRET)
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.verify_signature(payload + b" ", header, SECRET)


def test_verify_signature_rejects_wrong_secret(stripe_gateway):
    payload = _event("checkout.session.expired")
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.verify_signature(
            payload, sign_payload(payload, "whsec_other"), SECRET
        )


def test_verify_signature_rejects_stale_timestamp(stripe_gateway):
    payload = _event("checkout.session.expired")
    header = sign_payload(payload, SECRET, timestamp=int(time.time()) - 3600)
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.verify_signature(payload, header, SECRET)


def test_verify_signature_requires_header_when_secret_set(stripe_gateway):
    with pytest.raises(WebhookSignatureError):
        stripe_gateway.verify_signature(b"{}", None, SECRET)


def test_verify_signature_skipped_without_secret(stripe_gateway):
    stripe_gateway.verify_signature(b"{}", None, "")


@pytest.mark.parametrize(
    ("event_type", "fields", "expected"),
    [
        ("checkout.session.completed", {"payment_status": "paid"}, STATUS_COMPLETED),
        ("checkout.session.async_payment_succeeded", {}, STATUS_COMPLETED),
        ("checkout.session.async_payment_failed", {}, STATUS_FAILED),
        ("checkout.session.expired", {}, STATUS_CANCELED),
    ],
)
def test_parse_notification_maps_status(stripe_gateway, event_type, fields, expected):
    notification = stripe_gateway.parse_notification(_event(event_type, **fields))
    assert notification.status == expected
    assert notification.order_id == "cs_test_abc"
    assert notification.payment_id == "pi_abc"
    assert notification.event_type == event_type


def test_parse_notification_ignores_unpaid_completion(stripe_gateway):
    payload = _event("checkout.session.completed", payment_status="unpaid")
    assert stripe_gateway.parse_notification(payload) is None


def test_parse_notification_ignores_other_events(stripe_gateway):
    assert stripe_gateway.parse_notification(_event("customer.created")) is None


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"[]",
        b'{"type": "checkout.session.completed"}',
        b'{"type": "checkout.session.expired", "data": {"object": {}}}',
        b'{"type": "checkout.session.completed", "data": ["x"]}',
        b'{"type": "checkout.session.completed", "data": "oops"}',
        b'{"type": "checkout.session.completed", "data": 5}',
    ],
)
def test_parse_notification_rejects_malformed(stripe_gateway, payload):
    with pytest.raises(MalformedNotification):
        stripe_gateway.parse_notification(payload)
