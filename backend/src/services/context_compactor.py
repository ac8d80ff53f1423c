"""
Context window compaction for assistant conversations.

The context sent to the LLM is a two-tier cache:

- hot tier: the last `context_message_limit` stored turns, sent verbatim;
- cold tier: the conversation's running summary, sent as one system turn.

After every stored turn, once the stored count exceeds SUMMARY_THRESHOLD the
oldest turns are written back into the summary (one LLM call) and deleted.
Every pass folds exactly SUMMARIZE_BATCH turns regardless of the hot tier size;
with a large context_message_limit a folded turn may still be inside the window
and is then only present through the summary. The summarization call can
fail; a failed call leaves the conversation untouched and the next stored turn
retries.
"""

import logging
import math
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from core.constants import (
    CHARS_PER_TOKEN,
    DEFAULT_CONTEXT_MESSAGE_LIMIT,
    SUMMARIZE_BATCH,
    SUMMARY_LABEL,
    SUMMARY_MAX_TOKENS,
    SUMMARY_MAX_WORDS,
    SUMMARY_THRESHOLD,
)
from models import Conversation, ConversationMessage
from services.llm_service import LLMService

logger = logging.getLogger(__name__)


ROLE_LABELS = {"user": "Médico", "assistant": "Asistente"}

SUMMARY_SYSTEM_PROMPT = (
    "Eres un asistente que resume conversaciones médicas de forma concisa. "
    f"Máximo {SUMMARY_MAX_WORDS} palabras."
)


def validate_compaction_settings(
    threshold: int = SUMMARY_THRESHOLD,
    batch_size: int = SUMMARIZE_BATCH,
    default_window: int = DEFAULT_CONTEXT_MESSAGE_LIMIT,
) -> None:
    """
    Check that a compaction pass never reaches into the default hot window.

    The first pass runs with threshold + 1 stored turns; after folding
    batch_size of them at least default_window must remain.

    Raises:
        ValueError: If the constants are inconsistent
    """
    if threshold < 1 or batch_size < 1 or default_window < 1:
        raise ValueError("Compaction settings must be positive")
    if threshold + 1 - batch_size < default_window:
        raise ValueError(
            f"SUMMARIZE_BATCH={batch_size} would fold turns still inside the default "
            f"context window ({default_window}) when SUMMARY_THRESHOLD={threshold} is crossed"
        )


def estimate_token_count(text: str) -> int:
    """Rough token estimate used for stored turns."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def compaction_batch_size(stored_count: int) -> int:
    """Number of oldest turns to fold: SUMMARIZE_BATCH once SUMMARY_THRESHOLD is exceeded, else 0."""
    if stored_count <= SUMMARY_THRESHOLD:
        return 0
    return SUMMARIZE_BATCH


def render_turns(turns: List[ConversationMessage]) -> str:
    """Render turns as "<role-label>: <content>" lines."""
    return "\n".join(
        f"{ROLE_LABELS.get(turn.role, turn.role)}: {turn.content}" for turn in turns
    )


def build_summary_prompt(existing_summary: Optional[str], turns_text: str) -> str:
    """User prompt asking the model to merge new turns into the running summary."""
    if existing_summary:
        return (
            f"Resumen existente:\n{existing_summary}\n\n"
            f"Nuevos mensajes a integrar:\n{turns_text}\n\n"
            "Genera un resumen actualizado y conciso que integre la información relevante. "
            "Mantén solo los datos importantes para el contexto médico "
            "(pacientes mencionados, acciones realizadas, información pendiente)."
        )
    return (
        f"Mensajes de la conversación:\n{turns_text}\n\n"
        "Genera un resumen conciso de esta conversación médica. "
        "Incluye: pacientes mencionados, acciones realizadas, información pendiente."
    )


def list_turns(db: Session, conversation_id: str) -> List[ConversationMessage]:
    """All stored turns of a conversation, oldest first."""
    return db.query(ConversationMessage).filter(
        ConversationMessage.conversation_id == conversation_id
    ).order_by(ConversationMessage.id.asc()).all()


def build_context_messages(db: Session, conversation: Conversation) -> List[Dict[str, str]]:
    """
    Assemble the turns sent to the LLM for a conversation.

    Returns:
        At most one summary system turn followed by the last
        context_message_limit stored turns, oldest first
    """
    messages: List[Dict[str, str]] = []

    if conversation.summary:
        messages.append({
            "role": "system",
            "content": f"{SUMMARY_LABEL}\n{conversation.summary}",
        })

    limit = conversation.context_message_limit or DEFAULT_CONTEXT_MESSAGE_LIMIT
    recent = db.query(ConversationMessage).filter(
        ConversationMessage.conversation_id == conversation.id
    ).order_by(ConversationMessage.id.desc()).limit(limit).all()

    for turn in reversed(recent):
        messages.append({"role": turn.role, "content": turn.content})

    return messages


class ContextCompactor:
    """Write-back of the oldest turns into the running summary."""

    def __init__(self, llm: LLMService) -> None:
        self.llm = llm

    def _summarize(self, existing_summary: Optional[str], batch: List[ConversationMessage]) -> Optional[str]:
        """Ask the LLM for the merged summary. Returns None on failure or empty output."""
        prompt = build_summary_prompt(existing_summary, render_turns(batch))
        try:
            message = self.llm.complete(
                [
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=SUMMARY_MAX_TOKENS,
            )
        except Exception as e:
            logger.exception(f"Summarization request failed: {e}")
            return None

        content = (message.content or "").strip() if message is not None else ""
        return content or None

    def check_and_update_summary(self, db: Session, conversation_id: str) -> bool:
        """
        Fold the oldest turns into the summary if the threshold is crossed.

        The summary write and the deletion of exactly the folded turns are
        committed together; if another pass already deleted any of them the
        transaction is rolled back.

        Args:
            db: Database session
            conversation_id: Conversation to check

        Returns:
            True if a compaction was committed
        """
        conversation = db.get(Conversation, conversation_id, populate_existing=True)
        if conversation is None:
            return False

        turns = list_turns(db, conversation_id)
        batch_size = compaction_batch_size(len(turns))
        if batch_size == 0:
            return False

        batch = turns[:batch_size]
        summary = self._summarize(conversation.summary, batch)
        if summary is None:
            logger.warning(
                f"Compaction skipped for conversation_id={conversation_id}: "
                f"summary unavailable, {len(turns)} turns kept"
            )
            return False

        batch_ids = [turn.id for turn in batch]
        try:
            conversation.summary = summary
            deleted = db.query(ConversationMessage).filter(
                ConversationMessage.conversation_id == conversation_id,
                ConversationMessage.id.in_(batch_ids),
            ).delete(synchronize_session=False)

            if deleted != len(batch_ids):
                db.rollback()
                logger.warning(
                    f"Compaction conflict for conversation_id={conversation_id}: "
                    f"expected {len(batch_ids)} turns, found {deleted}"
                )
                return False

            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to persist compaction for conversation_id={conversation_id}: {e}")
            raise

        for turn in batch:
            db.expunge(turn)

        logger.info(
            f"Compacted {len(batch_ids)} turns into summary for conversation_id={conversation_id}"
        )
        return True
