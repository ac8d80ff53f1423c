"""
Processed webhook message model for inbound delivery deduplication.

Twilio retries a webhook when it does not receive a timely 2xx response. The
unique MessageSid recorded here makes the claim atomic: the first insert wins,
every retry hits the unique constraint and is acknowledged without
reprocessing.
"""

from datetime import datetime

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class ProcessedWebhookMessage(Base):
    """Write-once record of an inbound message that has been claimed for processing."""

    __tablename__ = "processed_webhook_messages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    message_sid: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    """Provider-assigned message id (Twilio MessageSid)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, index=True)
    """Claim time; used by the cleanup job."""
