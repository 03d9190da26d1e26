"""FastAPI application for Ticketbooth."""

from __future__ import annotations

import logging
from collections import Counter
from contextlib import asynccontextmanager
from decimal import Decimal
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib

from fastapi import BackgroundTasks, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .config import require_production_settings, settings
from .database import SessionLocal
from .errors import NoRecipients, TicketboothError, Unauthorized, ValidationFailed
from .models import (
    PAYMENT_FAILED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    Attendee,
    Broadcast,
    Event,
    MediaAsset,
    Organizer,
    TicketType,
)
from .notifications import Notifier
from .payments import SIGNATURE_HEADER, PaymentGateway
from .reconciliation import reconcile
from .reservations import reserve
from .scheduler import start_scheduler, stop_scheduler
from .schemas import (
    BroadcastPayload,
    EventCreatePayload,
    RSVPPayload,
    TicketTypeReplacePayload,
    UploadCompletePayload,
    UploadSignPayload,
)
from .storage import init_db
from .uploads import UploadSigner

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("ticketbooth")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()

# External collaborators; replaced in tests.
payment_gateway = PaymentGateway.from_settings(settings)
notifier = Notifier(settings)
upload_signer = UploadSigner(settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    require_production_settings(settings)
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="Ticketbooth", version=APP_VERSION, lifespan=lifespan)


def get_db():
    # A fresh session per request: sync dependencies and routes may run on
    # different worker threads, so the thread-local registry must not be used.
    db = SessionLocal.session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_organizer(request: Request, db: Session = Depends(get_db)) -> Organizer:
    organizer = crud.get_organizer_by_token(db, _get_bearer_token(request))
    if organizer is None:
        raise Unauthorized("Missing or invalid organizer token")
    return organizer


# -------- Error handlers --------


@app.exception_handler(TicketboothError)
async def ticketbooth_error_handler(request: Request, exc: TicketboothError):
    if exc.status_code >= 500:
        logger.error(
            "%s while handling %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def _validation_details(errors) -> list[dict]:
    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        details.append({"field": ".".join(loc) or "body", "message": message})
    return details


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = ValidationFailed(details=_validation_details(exc.errors()))
    return JSONResponse(error.to_dict(), status_code=error.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        {"error": "HTTPError", "message": detail}, status_code=exc.status_code
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if isinstance(exc, OperationalError) and "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {
                "error": "DatabaseBusy",
                "message": "The database is busy at the moment. Please try again.",
            },
            status_code=503,
        )
    logger.error(
        "Database error on %s %s: %s", request.method, request.url.path, raw
    )
    return JSONResponse(
        {"error": "PersistenceError", "message": "We hit a database issue."},
        status_code=500,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse(
        {"error": "InternalError", "message": "Internal server error"},
        status_code=500,
    )


# -------- Serializers --------


def _money(value) -> str:
    return f"{Decimal(value or 0):.2f}"


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _serialize_ticket_type(ticket_type: TicketType) -> dict:
    return {
        "id": ticket_type.id,
        "name": ticket_type.name,
        "description": ticket_type.description,
        "price": _money(ticket_type.price),
        "quantity": ticket_type.quantity,
        "quantity_sold": ticket_type.quantity_sold or 0,
        "remaining": ticket_type.remaining,
        "sold_out": ticket_type.is_sold_out,
        "display_order": ticket_type.display_order,
        "is_active": ticket_type.is_active,
    }


def _serialize_event(event: Event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": _iso(event.date),
        "location": event.location,
        "price": _money(event.price),
        "max_attendees": event.max_attendees,
        "cover_image_url": event.cover_image_url,
        "organizer_name": event.organizer_name,
        "organizer_logo_url": event.organizer_logo_url,
        "created_at": _iso(event.created_at),
    }


def _serialize_attendee(attendee: Attendee) -> dict:
    return {
        "id": attendee.id,
        "name": attendee.name,
        "email": attendee.email,
        "phone": attendee.phone,
        "ticket_type_id": attendee.ticket_type_id,
        "ticket_type_name": attendee.ticket_type_name,
        "price_paid": _money(attendee.price_paid),
        "payment_status": attendee.payment_status,
        "created_at": _iso(attendee.created_at),
    }


def _serialize_broadcast(broadcast: Broadcast) -> dict:
    return {
        "id": broadcast.id,
        "message": broadcast.message,
        "channel": broadcast.channel,
        "recipient_count": broadcast.recipient_count,
        "sent_at": _iso(broadcast.sent_at),
        "sent_by": broadcast.sent_by,
    }


def _serialize_media(asset: MediaAsset) -> dict:
    return {
        "id": asset.id,
        "key": asset.storage_key,
        "url": asset.url,
        "uploaded_at": _iso(asset.uploaded_at),
    }


def _attendee_stats(attendees) -> dict:
    counts = Counter(attendee.payment_status for attendee in attendees)
    revenue = sum(
        (
            Decimal(attendee.price_paid or 0)
            for attendee in attendees
            if attendee.payment_status == PAYMENT_PAID
        ),
        Decimal("0"),
    )
    return {
        "total": len(attendees),
        "paid": counts.get(PAYMENT_PAID, 0),
        "pending": counts.get(PAYMENT_PENDING, 0),
        "failed": counts.get(PAYMENT_FAILED, 0),
        "revenue": _money(revenue),
    }


# -------- Organizer API --------


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = crud.create_event(
        db,
        organizer=organizer,
        title=payload.title,
        description=payload.description,
        date=payload.date,
        location=payload.location,
        price=payload.price,
        max_attendees=payload.max_attendees,
        cover_image_url=str(payload.cover_image_url) if payload.cover_image_url else None,
        organizer_name=payload.organizer_name,
        organizer_logo_url=(
            str(payload.organizer_logo_url) if payload.organizer_logo_url else None
        ),
    )
    logger.info("Event %s created by organizer %s", event.id, organizer.id)
    return {"event": _serialize_event(event)}


@app.get("/api/v1/dashboard/events")
def api_dashboard_events(
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    events = crud.list_organizer_events(db, organizer.id)
    return {
        "events": [
            {
                **_serialize_event(event),
                "stats": _attendee_stats(list(event.attendees)),
            }
            for event in events
        ]
    }


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    crud.delete_event(db, event_id=event_id, organizer_id=organizer.id)
    logger.info("Event %s deleted by organizer %s", event_id, organizer.id)
    return Response(status_code=204)


@app.put("/api/v1/events/{event_id}/ticket-types")
def api_replace_ticket_types(
    event_id: str,
    payload: TicketTypeReplacePayload,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    ticket_types = crud.replace_ticket_types(
        db,
        event_id=event_id,
        organizer_id=organizer.id,
        ticket_types=[item.model_dump() for item in payload.ticket_types],
    )
    logger.info(
        "Replaced ticket types for event %s (%d types)", event_id, len(ticket_types)
    )
    return {
        "success": True,
        "ticket_types": [_serialize_ticket_type(item) for item in ticket_types],
    }


@app.get("/api/v1/events/{event_id}/attendees")
def api_list_attendees(
    event_id: str,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = crud.get_owned_event(db, event_id=event_id, organizer_id=organizer.id)
    attendees = list(crud.list_attendees(db, event.id))
    return {
        "attendees": [_serialize_attendee(attendee) for attendee in attendees],
        "stats": _attendee_stats(attendees),
    }


@app.post("/api/v1/events/{event_id}/broadcasts", status_code=201)
def api_send_broadcast(
    event_id: str,
    payload: BroadcastPayload,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = crud.get_owned_event(db, event_id=event_id, organizer_id=organizer.id)
    recipients = crud.paid_attendees(db, event.id)
    if not recipients:
        raise NoRecipients()
    result = notifier.send_broadcast(
        recipients, payload.message, event_title=event.title
    )
    broadcast = crud.create_broadcast(
        db,
        event=event,
        message=payload.message,
        channel=payload.channel,
        recipient_count=result.sent,
        sent_by=organizer.id,
    )
    return {
        "success": True,
        "broadcast": _serialize_broadcast(broadcast),
        "total": result.total,
        "sent": result.sent,
        "failed": result.failed,
        "failures": result.failures,
    }


@app.get("/api/v1/events/{event_id}/broadcasts")
def api_list_broadcasts(
    event_id: str,
    organizer: Organizer = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = crud.get_owned_event(db, event_id=event_id, organizer_id=organizer.id)
    return {
        "broadcasts": [
            _serialize_broadcast(item) for item in crud.list_broadcasts(db, event.id)
        ]
    }


# -------- Public API --------


@app.get("/api/v1/events")
def api_list_upcoming_events(db: Session = Depends(get_db)):
    return {
        "events": [_serialize_event(event) for event in crud.list_upcoming_events(db)]
    }


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    return {
        "event": _serialize_event(event),
        "ticket_types": [
            _serialize_ticket_type(item)
            for item in crud.get_active_ticket_types(db, event.id)
        ],
    }


@app.post("/api/v1/events/{event_id}/rsvp", status_code=201)
def api_reserve(
    event_id: str,
    payload: RSVPPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    result = reserve(
        db,
        event_id=event_id,
        request=payload,
        gateway=payment_gateway,
        base_url=settings.app_base_url,
    )
    if result.confirmation is not None:
        # Background tasks run after the response, so after get_db commits.
        background_tasks.add_task(notifier.send_ticket_confirmation, result.confirmation)
    return result.to_dict()


@app.get("/api/v1/events/{event_id}/attendees/{attendee_id}/status")
def api_attendee_status(event_id: str, attendee_id: str, db: Session = Depends(get_db)):
    attendee = crud.get_attendee_for_event(
        db, event_id=event_id, attendee_id=attendee_id
    )
    return {
        "attendee": {
            "id": attendee.id,
            "name": attendee.name,
            "ticket_type_name": attendee.ticket_type_name,
            "price_paid": _money(attendee.price_paid),
            "payment_status": attendee.payment_status,
        }
    }


@app.post("/api/v1/events/{event_id}/uploads/sign")
def api_sign_upload(
    event_id: str, payload: UploadSignPayload, db: Session = Depends(get_db)
):
    event = crud.get_event(db, event_id)
    signed = upload_signer.sign(
        event_id=event.id, file_name=payload.file_name, file_type=payload.file_type
    )
    return {"upload_url": signed.upload_url, "key": signed.key}


@app.post("/api/v1/events/{event_id}/uploads/complete", status_code=201)
def api_complete_upload(
    event_id: str, payload: UploadCompletePayload, db: Session = Depends(get_db)
):
    event = crud.get_event(db, event_id)
    url = upload_signer.public_url(event_id=event.id, key=payload.key)
    asset = crud.create_media_asset(db, event=event, storage_key=payload.key, url=url)
    return {"success": True, "media": _serialize_media(asset)}


@app.get("/api/v1/events/{event_id}/photos")
def api_list_photos(event_id: str, db: Session = Depends(get_db)):
    event = crud.get_event(db, event_id)
    return {"photos": [_serialize_media(item) for item in crud.list_media(db, event.id)]}


async def raw_body(request: Request) -> bytes:
    """Signature checks need the exact bytes Stripe signed."""
    return await request.body()


@app.post("/api/v1/webhooks/payments")
def api_payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
):
    payment_gateway.verify_signature(
        payload,
        request.headers.get(SIGNATURE_HEADER),
        settings.payment_webhook_secret,
    )
    notification = payment_gateway.parse_notification(payload)
    if notification is None:
        logger.info("Payment webhook received; no payment status change")
        return {"received": True}
    logger.info(
        "Payment webhook received: %s for order %s",
        notification.event_type,
        notification.order_id,
    )
    outcome = reconcile(db, notification, base_url=settings.app_base_url)
    if outcome.confirmation is not None:
        background_tasks.add_task(notifier.send_payment_confirmed, outcome.confirmation)
    return {"received": True}
