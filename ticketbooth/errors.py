"""Error taxonomy shared by the reservation, reconciliation and API layers."""

from __future__ import annotations


class TicketboothError(Exception):
    """Base class for errors that map onto a structured HTTP response."""

    status_code = 500
    code = "InternalError"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None, *, details: list | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(TicketboothError):
    status_code = 400
    code = "ValidationError"
    default_message = "Invalid form data"


class NotFound(TicketboothError):
    status_code = 404
    code = "NotFound"
    default_message = "Not found"


class Unauthorized(TicketboothError):
    status_code = 401
    code = "Unauthorized"
    default_message = "Unauthorized"


class DomainConflict(TicketboothError):
    """User-facing conflicts that will not succeed on retry with the same input."""

    status_code = 400


class EventPassed(DomainConflict):
    code = "EventPassed"
    default_message = "This event has already passed"


class TicketTypeInactive(DomainConflict):
    code = "TicketTypeInactive"
    default_message = "This ticket type is not available"


class SoldOut(DomainConflict):
    code = "SoldOut"
    default_message = "This ticket type is sold out"


class NoRecipients(DomainConflict):
    code = "NoRecipients"
    default_message = "No paid attendees to send message to"


class UpstreamError(TicketboothError):
    status_code = 502


class PaymentGatewayError(UpstreamError):
    code = "PaymentGatewayError"
    default_message = "Payment system error"


class WebhookSignatureError(TicketboothError):
    # Never surfaced as a 5xx.
    status_code = 401
    code = "InvalidSignature"
    default_message = "Invalid signature"


class MalformedNotification(TicketboothError):
    status_code = 400
    code = "MalformedNotification"
    default_message = "Malformed payment notification"


class StorageError(UpstreamError):
    code = "StorageError"
    default_message = "Failed to generate upload URL"
