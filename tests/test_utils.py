from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ticketbooth.utils import (
    format_price,
    mask_phone,
    mask_secret,
    to_minor_units,
    to_naive_utc,
    utcnow,
)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("25"), 2500),
        (Decimal("19.99"), 1999),
        ("0.005", 1),
        (Decimal("10.125"), 1013),
        (0, 0),
    ],
)
def test_to_minor_units_rounds_half_up(amount, expected):
    assert to_minor_units(amount) == expected


def test_to_naive_utc_converts_aware_values():
    aware = datetime(2025, 6, 1, 20, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2025, 6, 1, 18, 0)
    naive = datetime(2025, 6, 1, 18, 0)
    assert to_naive_utc(naive) is naive
    assert to_naive_utc(None) is None


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_format_price():
    assert format_price(Decimal("0")) == "FREE"
    assert format_price(None) == "FREE"
    assert format_price(Decimal("12.5")) == "$12.50"


def test_masking_helpers():
    assert mask_phone("+15551234567") == "+155****4567"
    assert mask_phone("123") == "****"
    assert mask_secret("") == ""
    assert mask_secret("short") == "****"
    assert mask_secret("sk_live_abcdef") == "sk_l****"
