"""
Clinician model representing doctors who talk to the assistant over WhatsApp.

A clinician is identified on the messaging channel by their phone number,
stored in normalized form (no "whatsapp:" prefix, no surrounding whitespace).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.id_utils import new_id


class Clinician(Base):
    """
    Clinician entity.

    Looked up by the identity resolver; never mutated by the conversation core.
    """

    __tablename__ = "clinicians"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    """Unique identifier for the clinician."""

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Display name used in logs and replies."""

    phone_number: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    """Normalized WhatsApp phone number in E.164 form, e.g. +584141234567."""

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Optional contact email."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    conversations = relationship("Conversation", back_populates="clinician")
    appointments = relationship("Appointment", back_populates="clinician")

    def __repr__(self) -> str:
        return f"<Clinician(id={self.id}, full_name='{self.full_name}')>"
