"""
Inbound delivery guard.

Claims a provider message id before any processing. The claim is a plain
insert against a unique column, so exactly one of any number of concurrent or
retried deliveries of the same message succeeds.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import ProcessedWebhookMessage
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def claim_message(db: Session, message_sid: str) -> bool:
    """
    Record a provider message id as processed.

    Args:
        db: Database session
        message_sid: Provider-assigned message id

    Returns:
        True if this call claimed the message, False if it was already claimed

    Raises:
        ValueError: If message_sid is empty
    """
    if not message_sid:
        raise ValueError("message_sid is required")

    db.add(ProcessedWebhookMessage(message_sid=message_sid))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Duplicate webhook delivery ignored: message_sid={message_sid}")
        return False
    return True


def delete_old_records(db: Session, retention_hours: int, now: Optional[datetime] = None) -> int:
    """
    Delete delivery records older than the retention period.

    Returns:
        Number of records deleted
    """
    cutoff = (now or utc_now()) - timedelta(hours=retention_hours)
    deleted = db.query(ProcessedWebhookMessage).filter(
        ProcessedWebhookMessage.created_at < cutoff
    ).delete(synchronize_session=False)
    db.commit()
    return deleted
