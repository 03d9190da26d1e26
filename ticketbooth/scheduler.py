"""APScheduler integration and the stale-reservation sweep."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import update
from sqlalchemy.orm import Session

from .config import settings
from .database import get_session
from .models import PAYMENT_FAILED, PAYMENT_PENDING, Attendee
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None


def expire_stale_reservations(session: Session, older_than: datetime) -> int:
    """Mark pending reservations created before ``older_than`` as failed.

    Pending reservations never hold inventory, so no counter changes.
    """
    result = session.execute(
        update(Attendee)
        .where(
            Attendee.payment_status == PAYMENT_PENDING,
            Attendee.created_at < older_than,
        )
        .values(payment_status=PAYMENT_FAILED)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def run_reservation_sweep(ttl: timedelta | None = None) -> int:
    cutoff = utcnow() - (ttl or settings.pending_reservation_ttl)
    with get_session() as session:
        expired = expire_stale_reservations(session, cutoff)
    if expired:
        logger.info("Expired %d stale pending reservations", expired)
    return expired


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler and _scheduler.running:
        return _scheduler
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_reservation_sweep,
        "interval",
        minutes=settings.sweep_interval_minutes,
        id="reservation-sweep",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
