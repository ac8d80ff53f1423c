"""
Conversation lifecycle management.

Each clinician has at most one active conversation. The active conversation
expires lazily: every lookup first checks is_session_expired, and an expired
conversation is deactivated (terminal) and replaced by a fresh one. There is
no background timer.

The single-active invariant is enforced by the database: a partial unique
index on (clinician_id) WHERE is_active, plus conditional updates that only
touch rows still active. A writer that loses a race re-reads the winner.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, NamedTuple, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import OPENAI_MODEL
from core.constants import (
    DEFAULT_CONTEXT_MESSAGE_LIMIT,
    MAX_CONTEXT_MESSAGE_LIMIT,
    MIN_CONTEXT_MESSAGE_LIMIT,
    SESSION_TIMEOUT_MINUTES,
)
from models import Conversation, ConversationMessage
from models.conversation_message import MESSAGE_ROLES
from services.context_compactor import ContextCompactor, build_context_messages, estimate_token_count
from utils.datetime_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Bounded retries when a concurrent request wins a create or deactivate race
MAX_LIFECYCLE_ATTEMPTS = 4

_SPANISH_MONTHS = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic"]


class ActiveConversation(NamedTuple):
    """Active conversation plus the context turns assembled for it."""

    conversation: Conversation
    context_messages: List[Dict[str, str]]


def is_session_expired(last_activity_at: datetime, now: datetime) -> bool:
    """
    Whether a conversation's inactivity exceeds the session timeout.

    Args:
        last_activity_at: Last activity time (naive values are treated as UTC)
        now: Current time

    Returns:
        True if more than SESSION_TIMEOUT_MINUTES have elapsed
    """
    elapsed = ensure_utc(now) - ensure_utc(last_activity_at)
    return elapsed > timedelta(minutes=SESSION_TIMEOUT_MINUTES)


def derive_title(conversation: Conversation) -> str:
    """Short title for the conversation list: the summary head, or the activity date."""
    summary = (conversation.summary or "").strip()
    if summary:
        return f"{summary[:47]}..." if len(summary) > 50 else summary
    last_activity = ensure_utc(conversation.last_activity_at) or utc_now()
    return f"Conversación {last_activity.day} {_SPANISH_MONTHS[last_activity.month - 1]}"


class ConversationService:
    """Service for conversation and turn persistence."""

    @staticmethod
    def _find_active(db: Session, clinician_id: str) -> Optional[Conversation]:
        return db.query(Conversation).filter(
            Conversation.clinician_id == clinician_id,
            Conversation.is_active.is_(True),
        ).execution_options(populate_existing=True).first()

    @staticmethod
    def _deactivate(db: Session, conversation_id: str, now: datetime) -> bool:
        """Mark a conversation inactive if it still is. Returns True if this call did it."""
        updated = db.query(Conversation).filter(
            Conversation.id == conversation_id,
            Conversation.is_active.is_(True),
        ).update({Conversation.is_active: False, Conversation.updated_at: now}, synchronize_session=False)
        db.commit()
        return updated == 1

    @staticmethod
    def _refresh_activity(db: Session, conversation: Conversation, now: datetime) -> bool:
        """Touch last_activity_at on a still-active conversation. Returns False if it was closed meanwhile."""
        updated = db.query(Conversation).filter(
            Conversation.id == conversation.id,
            Conversation.is_active.is_(True),
        ).update(
            {Conversation.last_activity_at: now, Conversation.updated_at: now},
            synchronize_session=False,
        )
        db.commit()
        if updated != 1:
            return False
        db.refresh(conversation)
        return True

    @staticmethod
    def _try_create(
        db: Session,
        clinician_id: str,
        system_prompt: str,
        model: str,
        now: datetime,
    ) -> Optional[Conversation]:
        """Insert a new active conversation. Returns None if another one became active first."""
        conversation = Conversation(
            clinician_id=clinician_id,
            model=model,
            system_prompt=system_prompt,
            summary=None,
            last_activity_at=now,
            is_active=True,
            context_message_limit=DEFAULT_CONTEXT_MESSAGE_LIMIT,
        )
        db.add(conversation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Concurrent conversation creation detected for clinician_id={clinician_id}")
            return None

        db.refresh(conversation)
        logger.info(f"Created conversation_id={conversation.id} for clinician_id={clinician_id}")
        return conversation

    @staticmethod
    def get_or_create_active(
        db: Session,
        clinician_id: str,
        system_prompt: str,
        model: str = OPENAI_MODEL,
        now: Optional[datetime] = None,
    ) -> ActiveConversation:
        """
        Return the clinician's active conversation, creating one if needed.

        An expired active conversation is deactivated and a fresh one is
        created in its place. A fresh conversation has no context turns.

        Args:
            db: Database session
            clinician_id: Owning clinician
            system_prompt: Prompt recorded on newly created conversations
            model: Model recorded on newly created conversations
            now: Current time (injected in tests)

        Returns:
            ActiveConversation with the assembled context turns

        Raises:
            RuntimeError: If concurrent writers keep winning every attempt
        """
        now = now or utc_now()

        for _ in range(MAX_LIFECYCLE_ATTEMPTS):
            conversation = ConversationService._find_active(db, clinician_id)

            if conversation is None:
                created = ConversationService._try_create(db, clinician_id, system_prompt, model, now)
                if created is not None:
                    return ActiveConversation(created, [])
                continue

            if is_session_expired(conversation.last_activity_at, now):
                if ConversationService._deactivate(db, conversation.id, now):
                    logger.info(
                        f"Conversation expired: conversation_id={conversation.id}, "
                        f"clinician_id={clinician_id}"
                    )
                continue

            if ConversationService._refresh_activity(db, conversation, now):
                return ActiveConversation(conversation, build_context_messages(db, conversation))

        raise RuntimeError(f"Could not obtain an active conversation for clinician_id={clinician_id}")

    @staticmethod
    def add_message(
        db: Session,
        conversation_id: str,
        role: str,
        content: str,
        compactor: ContextCompactor,
    ) -> ConversationMessage:
        """
        Store a turn and run compaction.

        Args:
            db: Database session
            conversation_id: Owning conversation
            role: 'user' or 'assistant'
            content: Turn text
            compactor: Compactor invoked after the turn is committed

        Returns:
            The stored turn

        Raises:
            ValueError: If role is not a valid turn role
        """
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {role}")

        message = ConversationMessage(
            conversation_id=conversation_id,
            role=role,
            content=content,
            token_count=estimate_token_count(content),
        )
        try:
            db.add(message)
            db.commit()
            db.refresh(message)
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to store {role} turn for conversation_id={conversation_id}: {e}")
            raise

        compactor.check_and_update_summary(db, conversation_id)
        return message

    @staticmethod
    def close_conversation(db: Session, conversation_id: str, now: Optional[datetime] = None) -> bool:
        """Deactivate a conversation. Returns False if it was already inactive."""
        return ConversationService._deactivate(db, conversation_id, now or utc_now())

    @staticmethod
    def get_active_conversation(db: Session, clinician_id: str) -> Optional[Conversation]:
        return ConversationService._find_active(db, clinician_id)

    @staticmethod
    def start_new_conversation(
        db: Session,
        clinician_id: str,
        system_prompt: str,
        model: str = OPENAI_MODEL,
        now: Optional[datetime] = None,
    ) -> Conversation:
        """
        Close the clinician's active conversation (if any) and open a new one.

        Raises:
            RuntimeError: If concurrent writers keep winning every attempt
        """
        now = now or utc_now()
        for _ in range(MAX_LIFECYCLE_ATTEMPTS):
            current = ConversationService._find_active(db, clinician_id)
            if current is not None:
                ConversationService._deactivate(db, current.id, now)
            created = ConversationService._try_create(db, clinician_id, system_prompt, model, now)
            if created is not None:
                return created
        raise RuntimeError(f"Could not start a new conversation for clinician_id={clinician_id}")

    @staticmethod
    def list_conversations(db: Session, clinician_id: str) -> List[Conversation]:
        """All conversations of a clinician, most recently active first."""
        return db.query(Conversation).filter(
            Conversation.clinician_id == clinician_id
        ).order_by(Conversation.last_activity_at.desc()).all()

    @staticmethod
    def get_conversation_for_clinician(db: Session, conversation_id: str, clinician_id: str) -> Conversation:
        """
        Get a conversation owned by the clinician.

        Raises:
            HTTPException: 404 if missing or owned by someone else
        """
        conversation = db.query(Conversation).filter(
            Conversation.id == conversation_id,
            Conversation.clinician_id == clinician_id,
        ).first()
        if not conversation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="conversation-not-found"
            )
        return conversation

    @staticmethod
    def list_messages(db: Session, conversation_id: str, clinician_id: str) -> List[ConversationMessage]:
        """Stored turns of an owned conversation, oldest first."""
        ConversationService.get_conversation_for_clinician(db, conversation_id, clinician_id)
        return db.query(ConversationMessage).filter(
            ConversationMessage.conversation_id == conversation_id
        ).order_by(ConversationMessage.id.asc()).all()

    @staticmethod
    def update_context_limit(
        db: Session,
        conversation_id: str,
        clinician_id: str,
        context_message_limit: int,
    ) -> Conversation:
        """
        Change how many recent turns are sent verbatim.

        Raises:
            HTTPException: 400 if the limit is out of range, 404 if not owned
        """
        if not MIN_CONTEXT_MESSAGE_LIMIT <= context_message_limit <= MAX_CONTEXT_MESSAGE_LIMIT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="invalid-context-message-limit"
            )
        conversation = ConversationService.get_conversation_for_clinician(db, conversation_id, clinician_id)
        try:
            conversation.context_message_limit = context_message_limit
            db.commit()
            db.refresh(conversation)
        except Exception:
            db.rollback()
            raise
        return conversation

    @staticmethod
    def mark_messages_read(
        db: Session,
        conversation_id: str,
        clinician_id: str,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Set read_at on every unread assistant turn of an owned conversation.

        Returns:
            Number of turns marked read
        """
        ConversationService.get_conversation_for_clinician(db, conversation_id, clinician_id)
        updated = db.query(ConversationMessage).filter(
            ConversationMessage.conversation_id == conversation_id,
            ConversationMessage.role == "assistant",
            ConversationMessage.read_at.is_(None),
        ).update({ConversationMessage.read_at: now or utc_now()}, synchronize_session=False)
        db.commit()
        return updated
