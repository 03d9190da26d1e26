from __future__ import annotations

import dataclasses
import types
from datetime import datetime
from decimal import Decimal

import pytest

from ticketbooth.config import settings
from ticketbooth.notifications import (
    DeliveryError,
    Notifier,
    TicketEmail,
    render_email,
    thank_you_url,
)


class FakeSMS:
    def __init__(self, statuses):
        self.statuses = statuses
        self.sent = []

    def send(self, message, recipients, sender_id=None):
        phone = recipients[0]
        self.sent.append((phone, message, sender_id))
        status = self.statuses.get(phone, "Success")
        if isinstance(status, Exception):
            raise status
        return {"SMSMessageData": {"Recipients": [{"number": phone, "status": status}]}}


def _ticket(**overrides) -> TicketEmail:
    data = {
        "to": "ada@example.com",
        "attendee_name": "Ada",
        "event_title": "Harbor <Gala>",
        "event_date": datetime(2030, 5, 4, 19, 30),
        "location": "Pier 7",
        "ticket_type_name": "VIP",
        "price_paid": Decimal("80"),
        "thank_you_url": "https://tickets.example.com/event/e1/thank-you?attendee=a1",
    }
    data.update(overrides)
    return TicketEmail(**data)


def _notifier(**overrides) -> Notifier:
    return Notifier(dataclasses.replace(settings, **overrides))


def test_thank_you_url():
    assert thank_you_url("https://t.example.com", "e1", "a1") == (
        "https://t.example.com/event/e1/thank-you?attendee=a1"
    )


def test_render_email_escapes_and_formats():
    html = render_email("ticket_confirmation.html", ticket=_ticket())

    assert "Harbor &lt;Gala&gt;" in html
    assert "VIP ($80.00)" in html
    assert "Saturday, May 04, 2030" in html


def test_payment_email_renders_free_tickets():
    html = render_email("payment_confirmed.html", ticket=_ticket(price_paid=Decimal("0")))
    assert "VIP (FREE)" in html
    assert "Payment received" in html


def test_ticket_email_sent_through_resend(monkeypatch):
    sent = []
    monkeypatch.setattr(
        "ticketbooth.notifications.resend.Emails.send", lambda params: sent.append(params)
    )
    notifier = _notifier(resend_api_key="re_test", email_from="Tickets <t@example.com>")

    assert notifier.send_ticket_confirmation(_ticket()) is True

    (params,) = sent
    assert params["to"] == ["ada@example.com"]
    assert params["from"] == "Tickets <t@example.com>"
    assert params["subject"] == "Your ticket for Harbor <Gala>"


def test_ticket_email_failure_is_not_raised(monkeypatch):
    def _boom(params):
        raise RuntimeError("provider down")

    monkeypatch.setattr("ticketbooth.notifications.resend.Emails.send", _boom)
    notifier = _notifier(resend_api_key="re_test")

    assert notifier.send_payment_confirmed(_ticket()) is False


def test_ticket_email_without_provider_returns_false():
    assert _notifier(resend_api_key="").send_ticket_confirmation(_ticket()) is False


def test_send_sms_requires_configuration():
    with pytest.raises(DeliveryError):
        _notifier(sms_api_key="").send_sms("+15551234567", "hi")


def test_send_sms_rejected_status():
    notifier = _notifier()
    notifier._sms = FakeSMS({"+15551234567": "InvalidPhoneNumber"})

    with pytest.raises(DeliveryError) as excinfo:
        notifier.send_sms("+15551234567", "hi")
    assert "InvalidPhoneNumber" in str(excinfo.value)


def test_broadcast_collects_failures_independently():
    notifier = _notifier(sms_sender_id="TICKETS")
    fake = FakeSMS(
        {
            "+15550000002": "InvalidPhoneNumber",
            "+15550000003": ConnectionError("timeout"),
        }
    )
    notifier._sms = fake
    attendees = [
        types.SimpleNamespace(id=f"a{n}", phone=f"+1555000000{n}") for n in (1, 2, 3, 4)
    ]

    result = notifier.send_broadcast(attendees, "Doors open at 7", event_title="Harbor Gala")

    assert result.total == 4
    assert result.sent == 2
    assert result.failed == 2
    assert [failure["attendee_id"] for failure in result.failures] == ["a2", "a3"]
    assert "timeout" in result.failures[1]["error"]
    assert len(fake.sent) == 4
    assert fake.sent[0][2] == "TICKETS"
    assert fake.sent[0][1] == "Update: Harbor Gala\nDoors open at 7"
