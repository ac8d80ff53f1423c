"""
Conversation model for the assistant's per-clinician chat sessions.

A clinician has at most one active conversation. Conversations expire lazily
after SESSION_TIMEOUT_MINUTES of inactivity and are never reactivated; the
next inbound message opens a fresh one.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Boolean, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
import sqlalchemy as sa

from core.constants import DEFAULT_CONTEXT_MESSAGE_LIMIT
from core.database import Base
from utils.id_utils import new_id


class Conversation(Base):
    """
    Conversation entity.

    Holds the running summary of turns that were folded out of the context
    window, plus the settings used to build the LLM context.
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    """Unique identifier for the conversation."""

    clinician_id: Mapped[str] = mapped_column(ForeignKey("clinicians.id", ondelete="CASCADE"), nullable=False)
    """Clinician who owns the conversation."""

    model: Mapped[str] = mapped_column(String(100), nullable=False)
    """LLM model identifier used for this conversation."""

    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    """System prompt the conversation was started with."""

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Running natural-language summary of compacted turns (None until the first compaction)."""

    last_activity_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Last time an inbound turn touched this conversation."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """True while the conversation can receive turns. Terminal once False."""

    context_message_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_CONTEXT_MESSAGE_LIMIT)
    """Number of most recent turns sent verbatim to the LLM."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    clinician = relationship("Clinician", back_populates="conversations")
    messages = relationship(
        "ConversationMessage",
        back_populates="conversation",
        order_by="ConversationMessage.id",
        passive_deletes=True,
    )

    __table_args__ = (
        Index('idx_conversations_clinician_id', 'clinician_id'),
        # At most one active conversation per clinician
        Index(
            'uq_conversations_active_clinician',
            'clinician_id',
            unique=True,
            postgresql_where=sa.text('is_active'),
            sqlite_where=sa.text('is_active = 1'),
        ),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, clinician_id={self.clinician_id}, is_active={self.is_active})>"
