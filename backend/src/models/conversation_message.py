"""
Conversation message (turn) model.

Turns are immutable once stored. The only mutations are the read marker and
permanent deletion when the turn is folded into its conversation's summary.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


MESSAGE_ROLES = ("user", "assistant")


class ConversationMessage(Base):
    """A single user or assistant turn."""

    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Autoincrement id; turns are ordered by it (insertion order)."""

    conversation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True
    )
    """Owning conversation."""

    role: Mapped[str] = mapped_column(String(20), nullable=False)
    """'user' (the clinician) or 'assistant'."""

    content: Mapped[str] = mapped_column(Text, nullable=False)

    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Estimated token count, ceil(len(content) / 4)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    read_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """When the clinician viewed the turn in the companion web view."""

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index('idx_conversation_messages_conversation_created', 'conversation_id', 'created_at'),
    )

    def __repr__(self) -> str:
        return f"<ConversationMessage(id={self.id}, role='{self.role}')>"
