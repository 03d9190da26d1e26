"""SQLAlchemy models for Ticketbooth."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
# Documented status; no code path assigns it yet.
PAYMENT_REFUNDED = "refunded"
PAYMENT_STATUSES = {PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED, PAYMENT_REFUNDED}

GENERAL_ADMISSION = "General Admission"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Organizer(Base):
    __tablename__ = "organizers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    api_token = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="organizer")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    organizer_id = Column(
        String(36), ForeignKey("organizers.id"), nullable=False, index=True
    )
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False)
    location = Column(String(200), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    max_attendees = Column(Integer, nullable=True)
    cover_image_url = Column(String(2048), nullable=True)
    organizer_name = Column(String(100), nullable=True)
    organizer_logo_url = Column(String(2048), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    organizer = relationship("Organizer", back_populates="events")
    ticket_types = relationship(
        "TicketType",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TicketType.display_order",
    )
    attendees = relationship(
        "Attendee",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(Attendee.created_at)",
    )
    broadcasts = relationship(
        "Broadcast",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(Broadcast.sent_at)",
    )
    media_assets = relationship(
        "MediaAsset",
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(MediaAsset.uploaded_at)",
    )


class TicketType(Base):
    __tablename__ = "ticket_types"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_ticket_types_price_non_negative"),
        CheckConstraint(
            "quantity_sold >= 0", name="ck_ticket_types_quantity_sold_non_negative"
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=True)
    quantity_sold = Column(Integer, nullable=False, default=0)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="ticket_types")

    @property
    def remaining(self) -> int | None:
        if self.quantity is None:
            return None
        return max(self.quantity - (self.quantity_sold or 0), 0)

    @property
    def is_sold_out(self) -> bool:
        return self.quantity is not None and (self.quantity_sold or 0) >= self.quantity


class Attendee(Base):
    __tablename__ = "attendees"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ticket_type_id = Column(
        String(36),
        ForeignKey("ticket_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    # Snapshot of what was purchased; never re-read from the catalog.
    price_paid = Column(Numeric(10, 2), nullable=False)
    ticket_type_name = Column(String(100), nullable=False)
    payment_status = Column(String(16), nullable=False, default=PAYMENT_PENDING)
    external_order_id = Column(String(255), nullable=True, unique=True)
    external_payment_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="attendees")
    ticket_type = relationship("TicketType")


class Broadcast(Base):
    __tablename__ = "broadcasts"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message = Column(String(1600), nullable=False)
    channel = Column(String(16), nullable=False, default="sms")
    recipient_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime, default=_now, nullable=False)
    sent_by = Column(String(36), nullable=False)

    event = relationship("Event", back_populates="broadcasts")


class MediaAsset(Base):
    __tablename__ = "media_assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    storage_key = Column(String(512), nullable=False)
    url = Column(String(2048), nullable=False)
    uploaded_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="media_assets")
