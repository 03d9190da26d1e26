"""Utility helpers for Ticketbooth."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a decimal currency amount to rounded minor units (cents)."""
    cents = Decimal(str(amount)) * 100
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_price(amount: Decimal | None) -> str:
    if amount is None or Decimal(amount) == 0:
        return "FREE"
    return f"${Decimal(amount):.2f}"


def mask_phone(phone: str) -> str:
    """Mask a phone number for logging: +15551234567 -> +155****4567"""
    if len(phone) <= 4:
        return "****"
    return phone[:4] + "****" + phone[-4:]


def mask_secret(value: str | None) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return value[:4] + "****"
