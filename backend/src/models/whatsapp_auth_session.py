"""
WhatsApp auth session model.

Stores the short-lived opaque token that lets a clinician open the companion
web view for the chat they are in. One row per phone number; renewal
overwrites the row instead of appending.
"""

from datetime import datetime

from sqlalchemy import String, ForeignKey, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class WhatsAppAuthSession(Base):
    """Session token bound to a normalized phone number and a clinician."""

    __tablename__ = "whatsapp_auth_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    phone_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    """Normalized phone number (no channel prefix)."""

    clinician_id: Mapped[str] = mapped_column(ForeignKey("clinicians.id", ondelete="CASCADE"), nullable=False)

    auth_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    """Hex-encoded random token."""

    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Issue time plus SESSION_TOKEN_TTL_MINUTES; never extended."""

    last_message_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Last inbound message from this number."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    clinician = relationship("Clinician")

    def __repr__(self) -> str:
        return f"<WhatsAppAuthSession(phone_number={self.phone_number}, expires_at={self.expires_at})>"
