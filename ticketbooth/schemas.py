"""Request payloads accepted by the JSON API."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, EmailStr, Field, field_validator

PHONE_PATTERN = re.compile(r"^[+]?[0-9\s\-().]+$")
MIN_PHONE_DIGITS = 10
MAX_EMAIL_LENGTH = 255

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
}


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RSVPPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=20)
    ticket_type_id: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _email_length(cls, value):
        if isinstance(value, str) and len(value.strip()) > MAX_EMAIL_LENGTH:
            raise ValueError("Email must be less than 255 characters")
        return value

    @field_validator("phone")
    @classmethod
    def _phone_shape(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError(
                "Phone number can only contain numbers, spaces, and symbols: + - ( )"
            )
        if len(re.sub(r"[^0-9]", "", value)) < MIN_PHONE_DIGITS:
            raise ValueError("Phone number must contain at least 10 digits")
        return value

    @field_validator("ticket_type_id", mode="before")
    @classmethod
    def _optional_ticket_type(cls, value):
        return _blank_to_none(value)


class TicketTypeInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    quantity: int | None = Field(
        None, ge=1, description="Maximum available; omit for unlimited"
    )
    is_active: bool = True

    @field_validator("description", mode="before")
    @classmethod
    def _optional_description(cls, value):
        return _blank_to_none(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _zero_means_unlimited(cls, value):
        if value in (0, "0"):
            return None
        return _blank_to_none(value)


class TicketTypeReplacePayload(BaseModel):
    ticket_types: list[TicketTypeInput]


class EventCreatePayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)
    date: datetime = Field(..., description="ISO datetime; naive values are UTC")
    location: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    max_attendees: int | None = Field(None, ge=1)
    cover_image_url: AnyHttpUrl | None = None
    organizer_name: str | None = Field(None, max_length=100)
    organizer_logo_url: AnyHttpUrl | None = None

    @field_validator(
        "description",
        "max_attendees",
        "cover_image_url",
        "organizer_name",
        "organizer_logo_url",
        mode="before",
    )
    @classmethod
    def _optional_fields(cls, value):
        return _blank_to_none(value)


class BroadcastPayload(BaseModel):
    message: str = Field(..., min_length=1, max_length=1600)
    channel: Literal["sms"] = "sms"

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        return value


class UploadSignPayload(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: str = Field(..., min_length=1, max_length=100)


class UploadCompletePayload(BaseModel):
    key: str = Field(..., min_length=1, max_length=512)
