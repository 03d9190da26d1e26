"""Ticket inventory counter."""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from .models import TicketType

logger = logging.getLogger("uvicorn.error")


def claim_ticket(session: Session, ticket_type_id: str) -> bool:
    """Take one unit of a ticket type if any remain.

    The capacity check and the increment are one conditional UPDATE so
    concurrent claims can never push ``quantity_sold`` past ``quantity``.
    Returns ``False`` when the ticket type is sold out or missing.
    """
    sold = func.coalesce(TicketType.quantity_sold, 0)
    stmt = (
        update(TicketType)
        .where(
            TicketType.id == ticket_type_id,
            or_(TicketType.quantity.is_(None), sold < TicketType.quantity),
        )
        .values(quantity_sold=sold + 1)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    claimed = result.rowcount == 1
    if claimed:
        # Loaded instances must re-read the counter written by the database.
        ticket_type = session.get(TicketType, ticket_type_id)
        if ticket_type is not None:
            session.expire(ticket_type, ["quantity_sold"])
    else:
        logger.info("Ticket type %s has no remaining inventory", ticket_type_id)
    return claimed
