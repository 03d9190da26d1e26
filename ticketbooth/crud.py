"""CRUD helpers for organizers, events, ticket types, attendees, and media."""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import EventPassed, NotFound
from .models import (
    GENERAL_ADMISSION,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    Attendee,
    Broadcast,
    Event,
    MediaAsset,
    Organizer,
    TicketType,
)
from .utils import to_naive_utc, utcnow


def _now() -> datetime:
    return utcnow()


def generate_api_token() -> str:
    return secrets.token_urlsafe(32)


def create_organizer(session: Session, *, name: str) -> Organizer:
    organizer = Organizer(name=name, api_token=generate_api_token(), created_at=_now())
    session.add(organizer)
    session.flush()
    return organizer


def get_organizer_by_token(session: Session, token: str | None) -> Organizer | None:
    if not token:
        return None
    stmt = select(Organizer).where(Organizer.api_token == token)
    return session.scalars(stmt).first()


def create_event(
    session: Session,
    *,
    organizer: Organizer,
    title: str,
    date: datetime,
    location: str | None,
    description: str | None = None,
    price: Decimal | int = 0,
    max_attendees: int | None = None,
    cover_image_url: str | None = None,
    organizer_name: str | None = None,
    organizer_logo_url: str | None = None,
) -> Event:
    """Create and persist a new event owned by ``organizer``."""
    event = Event(
        organizer=organizer,
        title=title,
        description=description,
        date=to_naive_utc(date),
        location=location,
        price=Decimal(price),
        max_attendees=max_attendees,
        cover_image_url=cover_image_url,
        organizer_name=organizer_name or organizer.name,
        organizer_logo_url=organizer_logo_url,
    )
    session.add(event)
    session.flush()
    return event


def get_event(session: Session, event_id: str) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


def get_event_for_reservation(
    session: Session, event_id: str, *, now: datetime | None = None
) -> Event:
    """Return an event that can still take reservations."""
    event = get_event(session, event_id)
    if event.date < (now or _now()):
        raise EventPassed()
    return event


def get_owned_event(session: Session, *, event_id: str, organizer_id: str) -> Event:
    """Return the event only when ``organizer_id`` owns it.

    Events owned by someone else are reported exactly like missing ones.
    """
    stmt = select(Event).where(
        Event.id == event_id, Event.organizer_id == organizer_id
    )
    event = session.scalars(stmt).first()
    if event is None:
        raise NotFound("Event not found")
    return event


def list_organizer_events(session: Session, organizer_id: str) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.organizer_id == organizer_id)
        .order_by(Event.date.asc())
    )
    return session.scalars(stmt).all()


def list_upcoming_events(
    session: Session, *, now: datetime | None = None
) -> Sequence[Event]:
    """Public discovery listing: events that have not started, soonest first."""
    stmt = (
        select(Event)
        .where(Event.date >= (now or _now()))
        .order_by(Event.date.asc())
    )
    return session.scalars(stmt).all()


def delete_event(session: Session, *, event_id: str, organizer_id: str) -> None:
    event = get_owned_event(session, event_id=event_id, organizer_id=organizer_id)
    session.delete(event)
    session.flush()


def get_active_ticket_types(session: Session, event_id: str) -> Sequence[TicketType]:
    stmt = (
        select(TicketType)
        .where(TicketType.event_id == event_id, TicketType.is_active.is_(True))
        .order_by(TicketType.display_order.asc())
    )
    return session.scalars(stmt).all()


def get_ticket_type_for_event(
    session: Session, *, event_id: str, ticket_type_id: str
) -> TicketType:
    stmt = select(TicketType).where(
        TicketType.id == ticket_type_id, TicketType.event_id == event_id
    )
    ticket_type = session.scalars(stmt).first()
    if ticket_type is None:
        raise NotFound("Ticket type not found")
    return ticket_type


def replace_ticket_types(
    session: Session,
    *,
    event_id: str,
    organizer_id: str,
    ticket_types: Iterable[dict],
) -> list[TicketType]:
    """Swap an event's ticket types for a new ordered set.

    Runs inside the caller's transaction. Sales counters restart at zero and
    attendees keep their price/name snapshot while losing the live reference.
    """
    event = get_owned_event(session, event_id=event_id, organizer_id=organizer_id)

    old_ids = [ticket_type.id for ticket_type in event.ticket_types]
    if old_ids:
        session.execute(
            update(Attendee)
            .where(Attendee.ticket_type_id.in_(old_ids))
            .values(ticket_type_id=None)
        )
    for ticket_type in list(event.ticket_types):
        session.delete(ticket_type)
    session.flush()
    session.expire(event, ["ticket_types"])

    created: list[TicketType] = []
    for index, item in enumerate(ticket_types):
        ticket_type = TicketType(
            event_id=event.id,
            name=item["name"],
            description=item.get("description"),
            price=Decimal(item["price"]),
            quantity=item.get("quantity"),
            quantity_sold=0,
            display_order=index,
            is_active=item.get("is_active", True),
            created_at=_now(),
        )
        session.add(ticket_type)
        created.append(ticket_type)
    event.updated_at = _now()
    session.flush()
    return created


def create_attendee(
    session: Session,
    *,
    event: Event,
    ticket_type: TicketType | None,
    name: str,
    email: str,
    phone: str,
) -> Attendee:
    """Create a pending attendee with a snapshot of what they are buying."""
    if ticket_type is not None:
        price = ticket_type.price
        label = ticket_type.name
    else:
        price = event.price
        label = GENERAL_ADMISSION
    attendee = Attendee(
        event_id=event.id,
        ticket_type_id=ticket_type.id if ticket_type is not None else None,
        name=name,
        email=email,
        phone=phone,
        price_paid=Decimal(price or 0),
        ticket_type_name=label,
        payment_status=PAYMENT_PENDING,
        created_at=_now(),
    )
    session.add(attendee)
    session.flush()
    return attendee


def get_attendee_for_event(
    session: Session, *, event_id: str, attendee_id: str
) -> Attendee:
    stmt = select(Attendee).where(
        Attendee.id == attendee_id, Attendee.event_id == event_id
    )
    attendee = session.scalars(stmt).first()
    if attendee is None:
        raise NotFound("Attendee not found")
    return attendee


def get_attendee_by_order_id(session: Session, order_id: str) -> Attendee | None:
    stmt = select(Attendee).where(Attendee.external_order_id == order_id)
    return session.scalars(stmt).first()


def list_attendees(session: Session, event_id: str) -> Sequence[Attendee]:
    stmt = (
        select(Attendee)
        .where(Attendee.event_id == event_id)
        .order_by(Attendee.created_at.desc())
    )
    return session.scalars(stmt).all()


def paid_attendees(session: Session, event_id: str) -> Sequence[Attendee]:
    stmt = (
        select(Attendee)
        .where(Attendee.event_id == event_id, Attendee.payment_status == PAYMENT_PAID)
        .order_by(Attendee.created_at.asc())
    )
    return session.scalars(stmt).all()


def create_broadcast(
    session: Session,
    *,
    event: Event,
    message: str,
    channel: str,
    recipient_count: int,
    sent_by: str,
) -> Broadcast:
    broadcast = Broadcast(
        event_id=event.id,
        message=message,
        channel=channel,
        recipient_count=recipient_count,
        sent_by=sent_by,
        sent_at=_now(),
    )
    session.add(broadcast)
    session.flush()
    return broadcast


def list_broadcasts(session: Session, event_id: str) -> Sequence[Broadcast]:
    stmt = (
        select(Broadcast)
        .where(Broadcast.event_id == event_id)
        .order_by(Broadcast.sent_at.desc())
    )
    return session.scalars(stmt).all()


def create_media_asset(
    session: Session, *, event: Event, storage_key: str, url: str
) -> MediaAsset:
    asset = MediaAsset(
        event_id=event.id, storage_key=storage_key, url=url, uploaded_at=_now()
    )
    session.add(asset)
    session.flush()
    return asset


def list_media(session: Session, event_id: str) -> Sequence[MediaAsset]:
    stmt = (
        select(MediaAsset)
        .where(MediaAsset.event_id == event_id)
        .order_by(MediaAsset.uploaded_at.desc())
    )
    return session.scalars(stmt).all()
