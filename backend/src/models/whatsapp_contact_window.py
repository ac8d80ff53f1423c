"""
WhatsApp contact window model.

WhatsApp only allows free-form replies within 24 hours of the user's last
inbound message. This table records that last inbound time per number.
"""

from datetime import datetime

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class WhatsAppContactWindow(Base):
    """Last inbound message time for a normalized phone number."""

    __tablename__ = "whatsapp_contact_windows"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    phone_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    last_inbound_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
