"""Development helpers for populating fake organizers, events, and attendees."""

from __future__ import annotations

import random
from datetime import timedelta
from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_attendee, create_event, create_organizer, replace_ticket_types
from .database import get_session
from .inventory import claim_ticket
from .models import PAYMENT_FAILED, PAYMENT_PAID, Event
from .storage import init_db
from .utils import utcnow

_event_types = [
    "Mixer",
    "Workshop",
    "Concert",
    "Meetup",
    "Fundraiser",
    "Tasting",
    "Conference",
    "Screening",
]
_ticket_tiers = [
    ("General Admission", Decimal("0")),
    ("Standard", Decimal("15.00")),
    ("VIP", Decimal("45.00")),
    ("Early Bird", Decimal("10.00")),
]
_payment_outcomes = [PAYMENT_PAID, PAYMENT_PAID, PAYMENT_PAID, PAYMENT_FAILED]


def seed_fake_data(
    *,
    organizer_count: int = 1,
    events_per_organizer: int = 3,
    max_attendees_per_event: int = 8,
) -> dict[str, int | list[str]]:
    """Populate the SQLite database with synthetic organizers and events."""
    if organizer_count < 1:
        raise ValueError("organizer_count must be >= 1")
    if events_per_organizer < 1:
        raise ValueError("events_per_organizer must be >= 1")
    if max_attendees_per_event < 0:
        raise ValueError("max_attendees_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats: dict[str, int | list[str]] = {
        "organizers": 0,
        "events": 0,
        "ticket_types": 0,
        "attendees": 0,
        "tokens": [],
    }

    with get_session() as session:
        for _ in range(organizer_count):
            organizer = create_organizer(session, name=fake.company())
            stats["organizers"] += 1
            stats["tokens"].append(organizer.api_token)
            for _ in range(events_per_organizer):
                event = create_event(
                    session,
                    organizer=organizer,
                    title=f"{fake.city()} {random.choice(_event_types)}",
                    description=fake.paragraph(nb_sentences=4)[:1000],
                    date=utcnow() + timedelta(days=random.randint(3, 60)),
                    location=fake.address().replace("\n", ", ")[:200],
                )
                stats["events"] += 1
                stats["ticket_types"] += _create_ticket_types(session, event, organizer.id)
                stats["attendees"] += _create_attendees(
                    session, fake, event, max_attendees_per_event
                )

    return stats


def _create_ticket_types(session: Session, event: Event, organizer_id: str) -> int:
    tiers = random.sample(_ticket_tiers, k=random.randint(1, len(_ticket_tiers)))
    created = replace_ticket_types(
        session,
        event_id=event.id,
        organizer_id=organizer_id,
        ticket_types=[
            {
                "name": name,
                "price": price,
                "quantity": random.choice([None, 20, 50, 100]),
            }
            for name, price in tiers
        ],
    )
    return len(created)


def _create_attendees(
    session: Session, fake: Faker, event: Event, max_attendees: int
) -> int:
    if max_attendees <= 0:
        return 0
    ticket_types = list(event.ticket_types)
    total = random.randint(0, max_attendees)
    for _ in range(total):
        ticket_type = random.choice(ticket_types)
        attendee = create_attendee(
            session,
            event=event,
            ticket_type=ticket_type,
            name=fake.name()[:100],
            email=fake.email(),
            phone=f"+1555{random.randint(1000000, 9999999)}",
        )
        status = random.choice(_payment_outcomes)
        if status == PAYMENT_PAID and not claim_ticket(session, ticket_type.id):
            status = PAYMENT_FAILED
        attendee.payment_status = status
    session.flush()
    return total
