"""Ticket reservation workflow for free and paid tickets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from . import crud
from .errors import SoldOut, TicketTypeInactive
from .inventory import claim_ticket
from .models import PAYMENT_PAID
from .notifications import TicketEmail, thank_you_url
from .payments import PaymentGateway
from .schemas import RSVPPayload
from .utils import mask_phone, to_minor_units

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class ReservationResult:
    attendee_id: str
    is_free: bool
    redirect_url: str | None = None
    checkout_url: str | None = None
    # Confirmation email to send once the transaction commits (free path only).
    confirmation: TicketEmail | None = None

    def to_dict(self) -> dict:
        if self.is_free:
            return {
                "success": True,
                "free": True,
                "attendee_id": self.attendee_id,
                "redirect_url": self.redirect_url,
            }
        return {
            "success": True,
            "free": False,
            "attendee_id": self.attendee_id,
            "checkout_url": self.checkout_url,
        }


def reserve(
    session: Session,
    *,
    event_id: str,
    request: RSVPPayload,
    gateway: PaymentGateway,
    base_url: str,
    now: datetime | None = None,
) -> ReservationResult:
    """Reserve one ticket for ``event_id``.

    Free tickets are confirmed and claimed in the caller's transaction; a lost
    race for the last unit raises ``SoldOut`` so the caller rolls back. Paid
    tickets leave the attendee pending behind a hosted checkout and claim no
    inventory until the payment is confirmed.
    """
    event = crud.get_event_for_reservation(session, event_id, now=now)

    ticket_type = None
    if request.ticket_type_id:
        ticket_type = crud.get_ticket_type_for_event(
            session, event_id=event.id, ticket_type_id=request.ticket_type_id
        )
        if not ticket_type.is_active:
            raise TicketTypeInactive()
        if ticket_type.is_sold_out:
            raise SoldOut()

    attendee = crud.create_attendee(
        session,
        event=event,
        ticket_type=ticket_type,
        name=request.name,
        email=str(request.email),
        phone=request.phone,
    )
    price = Decimal(attendee.price_paid or 0)
    logger.info(
        "Reservation %s created for event %s (%s, %s)",
        attendee.id,
        event.id,
        attendee.ticket_type_name,
        mask_phone(attendee.phone),
    )

    if price == 0:
        if ticket_type is not None and not claim_ticket(session, ticket_type.id):
            raise SoldOut()
        attendee.payment_status = PAYMENT_PAID
        session.flush()
        redirect_url = thank_you_url(base_url, event.id, attendee.id)
        logger.info("Free reservation %s confirmed", attendee.id)
        return ReservationResult(
            attendee_id=attendee.id,
            is_free=True,
            redirect_url=redirect_url,
            confirmation=TicketEmail.for_attendee(attendee, event, base_url=base_url),
        )

    checkout = gateway.create_checkout(
        amount_minor=to_minor_units(price),
        item_name=f"{event.title} - {attendee.ticket_type_name}",
        metadata={"event_id": event.id, "attendee_id": attendee.id},
        success_url=thank_you_url(base_url, event.id, attendee.id),
        cancel_url=f"{base_url}/event/{event.id}",
        idempotency_key=f"checkout-{attendee.id}",
    )
    attendee.external_order_id = checkout.order_id
    session.flush()
    logger.info(
        "Checkout session %s created for reservation %s", checkout.order_id, attendee.id
    )
    return ReservationResult(
        attendee_id=attendee.id,
        is_free=False,
        checkout_url=checkout.checkout_url,
    )
