"""Apply payment-status notifications to attendees."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import crud
from .inventory import claim_ticket
from .models import PAYMENT_FAILED, PAYMENT_PAID, Attendee
from .notifications import TicketEmail
from .payments import STATUS_COMPLETED, PaymentNotification

logger = logging.getLogger("uvicorn.error")

OUTCOME_CONFIRMED = "confirmed"
OUTCOME_OVERSOLD = "oversold"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_FAILED = "failed"
OUTCOME_UNMATCHED = "unmatched"
OUTCOME_IGNORED = "ignored"


@dataclass(frozen=True)
class ReconciliationOutcome:
    action: str
    attendee_id: str | None = None
    # Payment-confirmed email to send after commit, set on a fresh transition only.
    confirmation: TicketEmail | None = None


def _transition(session: Session, attendee: Attendee, **values) -> bool:
    """Update ``attendee`` only while it is not yet paid.

    The status check lives in the WHERE clause so redelivered notifications
    racing each other change the row at most once.
    """
    result = session.execute(
        update(Attendee)
        .where(Attendee.id == attendee.id, Attendee.payment_status != PAYMENT_PAID)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    session.expire(attendee, list(values))
    return result.rowcount == 1


def reconcile(
    session: Session,
    notification: PaymentNotification | None,
    *,
    base_url: str,
) -> ReconciliationOutcome:
    if notification is None:
        return ReconciliationOutcome(OUTCOME_IGNORED)

    attendee = crud.get_attendee_by_order_id(session, notification.order_id)
    if attendee is None:
        logger.warning(
            "No attendee matches order %s (%s); acknowledging",
            notification.order_id,
            notification.event_type,
        )
        return ReconciliationOutcome(OUTCOME_UNMATCHED)

    if notification.status == STATUS_COMPLETED:
        return _confirm(session, attendee, notification, base_url=base_url)

    if attendee.payment_status == PAYMENT_PAID:
        logger.warning(
            "Ignoring %s for already paid attendee %s",
            notification.status,
            attendee.id,
        )
        return ReconciliationOutcome(OUTCOME_IGNORED, attendee.id)
    _transition(session, attendee, payment_status=PAYMENT_FAILED)
    logger.info(
        "Attendee %s marked failed (%s)", attendee.id, notification.status
    )
    return ReconciliationOutcome(OUTCOME_FAILED, attendee.id)


def _confirm(
    session: Session,
    attendee: Attendee,
    notification: PaymentNotification,
    *,
    base_url: str,
) -> ReconciliationOutcome:
    if attendee.payment_status == PAYMENT_PAID or not _transition(
        session,
        attendee,
        payment_status=PAYMENT_PAID,
        external_payment_id=notification.payment_id,
    ):
        logger.info("Duplicate payment notification for attendee %s", attendee.id)
        return ReconciliationOutcome(OUTCOME_DUPLICATE, attendee.id)

    action = OUTCOME_CONFIRMED
    if attendee.ticket_type_id and not claim_ticket(session, attendee.ticket_type_id):
        # Paid reservations do not hold inventory, so two checkouts can both
        # complete for the last unit. The payment stands; the counter stays
        # at capacity and the organizer has to resolve the extra ticket.
        logger.error(
            "Ticket type %s oversold by paid attendee %s (order %s)",
            attendee.ticket_type_id,
            attendee.id,
            notification.order_id,
        )
        action = OUTCOME_OVERSOLD
    else:
        logger.info(
            "Payment %s confirmed for attendee %s",
            notification.payment_id,
            attendee.id,
        )

    confirmation = TicketEmail.for_attendee(attendee, attendee.event, base_url=base_url)
    return ReconciliationOutcome(action, attendee.id, confirmation)
