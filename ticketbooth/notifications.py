"""Outbound email (Resend) and SMS (Africa's Talking) delivery."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import africastalking
import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import Settings
from .models import Attendee, Event
from .utils import format_price, mask_phone

logger = logging.getLogger("uvicorn.error")

email_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates" / "email")),
    autoescape=select_autoescape(["html"]),
)


class DeliveryError(Exception):
    """A single message could not be handed to the provider."""


@dataclass(frozen=True)
class TicketEmail:
    """Everything a confirmation email needs, detached from the ORM session."""

    to: str
    attendee_name: str
    event_title: str
    event_date: datetime
    location: str | None
    ticket_type_name: str
    price_paid: Decimal
    thank_you_url: str

    @classmethod
    def for_attendee(cls, attendee: Attendee, event: Event, *, base_url: str):
        return cls(
            to=attendee.email,
            attendee_name=attendee.name,
            event_title=event.title,
            event_date=event.date,
            location=event.location,
            ticket_type_name=attendee.ticket_type_name,
            price_paid=Decimal(attendee.price_paid or 0),
            thank_you_url=thank_you_url(base_url, event.id, attendee.id),
        )


@dataclass
class BroadcastResult:
    total: int
    sent: int = 0
    failures: list[dict] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def thank_you_url(base_url: str, event_id: str, attendee_id: str) -> str:
    return f"{base_url}/event/{event_id}/thank-you?attendee={attendee_id}"


def broadcast_text(event_title: str, message: str) -> str:
    return f"Update: {event_title}\n{message}"


def render_email(template_name: str, **context) -> str:
    template = email_templates.get_template(template_name)
    return template.render(format_price=format_price, **context)


class Notifier:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._sms = None

    @property
    def sms(self):
        """Lazily initialise the Africa's Talking SMS service."""
        if self._sms is None:
            if not self.settings.sms_api_key:
                raise DeliveryError("SMS gateway not configured")
            africastalking.initialize(self.settings.sms_username, self.settings.sms_api_key)
            self._sms = africastalking.SMS
        return self._sms

    def send_email(self, *, to: str, subject: str, html: str) -> None:
        if not self.settings.resend_api_key:
            raise DeliveryError("Email provider not configured")
        resend.api_key = self.settings.resend_api_key
        resend.Emails.send(
            {
                "from": self.settings.email_from,
                "to": [to],
                "subject": subject,
                "html": html,
            }
        )

    def _send_ticket_email(self, ticket: TicketEmail, *, subject: str, template: str) -> bool:
        """Send a ticket email; failures are logged, never raised."""
        try:
            html = render_email(template, ticket=ticket)
            self.send_email(to=ticket.to, subject=subject, html=html)
        except Exception as exc:
            logger.error("Failed to send %s to attendee: %s", template, exc)
            return False
        logger.info("Sent %s for %s", template, ticket.event_title)
        return True

    def send_ticket_confirmation(self, ticket: TicketEmail) -> bool:
        return self._send_ticket_email(
            ticket,
            subject=f"Your ticket for {ticket.event_title}",
            template="ticket_confirmation.html",
        )

    def send_payment_confirmed(self, ticket: TicketEmail) -> bool:
        return self._send_ticket_email(
            ticket,
            subject=f"Payment received for {ticket.event_title}",
            template="payment_confirmed.html",
        )

    def send_sms(self, phone: str, message: str) -> None:
        """Send one SMS or raise ``DeliveryError``."""
        sender_id = self.settings.sms_sender_id or None
        try:
            response = self.sms.send(message, [phone], sender_id=sender_id)
        except DeliveryError:
            raise
        except Exception as exc:
            raise DeliveryError(str(exc)) from exc
        recipients = (response or {}).get("SMSMessageData", {}).get("Recipients", [])
        if not recipients:
            raise DeliveryError("Provider returned no recipients")
        status = recipients[0].get("status")
        if status != "Success":
            raise DeliveryError(f"Provider rejected message: {status}")

    def send_broadcast(
        self, attendees: Iterable[Attendee], message: str, *, event_title: str
    ) -> BroadcastResult:
        """Fan a message out to each attendee, collecting failures independently."""
        attendees = list(attendees)
        text = broadcast_text(event_title, message)
        result = BroadcastResult(total=len(attendees))
        for attendee in attendees:
            try:
                self.send_sms(attendee.phone, text)
            except DeliveryError as exc:
                logger.warning(
                    "Broadcast SMS to %s failed: %s", mask_phone(attendee.phone), exc
                )
                result.failures.append(
                    {"attendee_id": attendee.id, "phone": attendee.phone, "error": str(exc)}
                )
            else:
                result.sent += 1
        logger.info(
            "Broadcast delivered to %s of %s recipients", result.sent, result.total
        )
        return result
