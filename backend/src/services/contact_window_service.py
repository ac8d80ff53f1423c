"""
WhatsApp contact window tracking.

Free-form messages may only be sent within 24 hours of the user's last
inbound message. Every inbound message refreshes the window.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from core.constants import CONTACT_WINDOW_HOURS
from models import WhatsAppContactWindow
from utils.datetime_utils import ensure_utc, utc_now
from utils.phone_validator import normalize_address
from utils.query_helpers import build_upsert

logger = logging.getLogger(__name__)


def update_last_inbound(db: Session, address: str, now: Optional[datetime] = None) -> None:
    """Record an inbound message from an address (atomic upsert)."""
    phone_number = normalize_address(address)
    if not phone_number:
        raise ValueError("address is required")

    now = now or utc_now()
    stmt = build_upsert(
        db,
        WhatsAppContactWindow,
        values={"phone_number": phone_number, "last_inbound_at": now},
        conflict_columns=["phone_number"],
        update_columns=["last_inbound_at"],
    )
    try:
        db.execute(stmt)
        db.commit()
    except Exception:
        db.rollback()
        raise


def is_within_24h(db: Session, address: str, now: Optional[datetime] = None) -> bool:
    """Whether the address sent us a message within the contact window."""
    window = db.query(WhatsAppContactWindow).filter(
        WhatsAppContactWindow.phone_number == normalize_address(address)
    ).execution_options(populate_existing=True).first()
    if window is None:
        return False
    elapsed = ensure_utc(now or utc_now()) - ensure_utc(window.last_inbound_at)
    return elapsed < timedelta(hours=CONTACT_WINDOW_HOURS)
