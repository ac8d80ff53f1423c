"""
Conversation API for the clinician's companion web view.

Requests are authorized by the session token issued over WhatsApp, sent in
the X-Session-Token header. Every endpoint is scoped to the token's clinician.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.constants import MAX_CONTEXT_MESSAGE_LIMIT, MAX_MESSAGE_CONTENT_LENGTH, MIN_CONTEXT_MESSAGE_LIMIT
from core.database import get_db
from models import Conversation, ConversationMessage
from services.auth_session_service import AuthSessionService
from services.clinic_agent import ClinicAgentService
from services.clinic_agent.prompts import BASE_SYSTEM_PROMPT
from services.context_compactor import ContextCompactor
from services.conversation_service import ConversationService, derive_title
from services.llm_service import LLMService, get_llm_service
from utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter()


class ConversationResponse(BaseModel):
    """Response model for a conversation."""
    id: str
    title: str
    is_active: bool
    last_activity_at: datetime
    context_message_limit: int
    summary: Optional[str] = None


class MessageResponse(BaseModel):
    """Response model for a stored turn."""
    id: int
    role: str
    content: str
    created_at: datetime
    read_at: Optional[datetime] = None


class ConversationUpdateRequest(BaseModel):
    """Request model for updating conversation settings."""
    context_message_limit: int = Field(..., ge=MIN_CONTEXT_MESSAGE_LIMIT, le=MAX_CONTEXT_MESSAGE_LIMIT)


class MessageCreateRequest(BaseModel):
    """Request model for posting a message from the web view."""
    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CONTENT_LENGTH)


class MarkReadResponse(BaseModel):
    """Response model for marking turns read."""
    updated_count: int


def get_current_clinician_id(
    x_session_token: Optional[str] = Header(None, alias="X-Session-Token"),
    db: Session = Depends(get_db),
) -> str:
    """
    Resolve the session token to a clinician id.

    Raises:
        HTTPException: 401 if the token is missing, unknown or expired
    """
    clinician_id = AuthSessionService.resolve_token(db, x_session_token or "")
    if clinician_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid-session-token"
        )
    return clinician_id


def _to_conversation_response(conversation: Conversation) -> ConversationResponse:
    return ConversationResponse(
        id=conversation.id,
        title=derive_title(conversation),
        is_active=conversation.is_active,
        last_activity_at=ensure_utc(conversation.last_activity_at),
        context_message_limit=conversation.context_message_limit,
        summary=conversation.summary,
    )


def _to_message_response(message: ConversationMessage) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        role=message.role,
        content=message.content,
        created_at=ensure_utc(message.created_at),
        read_at=ensure_utc(message.read_at),
    )


@router.get("", response_model=List[ConversationResponse], summary="List conversations")
def list_conversations(
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
) -> List[ConversationResponse]:
    """List the clinician's conversations, most recently active first."""
    conversations = ConversationService.list_conversations(db, clinician_id)
    return [_to_conversation_response(c) for c in conversations]


@router.post(
    "",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new conversation",
)
def start_conversation(
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
) -> ConversationResponse:
    """Close the active conversation and open a fresh one."""
    conversation = ConversationService.start_new_conversation(
        db, clinician_id, BASE_SYSTEM_PROMPT, model=llm.model
    )
    return _to_conversation_response(conversation)


@router.post("/messages", response_model=MessageResponse, summary="Send a message")
def post_message(
    request: MessageCreateRequest,
    x_session_token: Optional[str] = Header(None, alias="X-Session-Token"),
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
) -> MessageResponse:
    """
    Post a user turn to the active conversation and return the assistant's turn.

    Raises:
        HTTPException: 503 if the assistant could not answer
    """
    active = ConversationService.get_or_create_active(db, clinician_id, BASE_SYSTEM_PROMPT, model=llm.model)
    conversation_id = active.conversation.id
    ConversationService.add_message(db, conversation_id, "user", request.content.strip(), ContextCompactor(llm))

    assistant_turn = ClinicAgentService.process_in_conversation(
        db, llm, clinician_id, conversation_id, auth_token=x_session_token
    )
    if assistant_turn is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="assistant-unavailable"
        )
    return _to_message_response(assistant_turn)


@router.get(
    "/{conversation_id}/messages",
    response_model=List[MessageResponse],
    summary="List conversation messages",
)
def list_messages(
    conversation_id: str,
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
) -> List[MessageResponse]:
    """List stored turns, oldest first. Turns folded into the summary are gone."""
    messages = ConversationService.list_messages(db, conversation_id, clinician_id)
    return [_to_message_response(m) for m in messages]


@router.patch("/{conversation_id}", response_model=ConversationResponse, summary="Update conversation")
def update_conversation(
    conversation_id: str,
    request: ConversationUpdateRequest,
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    """Change how many recent turns are sent to the assistant verbatim."""
    conversation = ConversationService.update_context_limit(
        db, conversation_id, clinician_id, request.context_message_limit
    )
    return _to_conversation_response(conversation)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse, summary="Mark messages read")
def mark_read(
    conversation_id: str,
    clinician_id: str = Depends(get_current_clinician_id),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    """Mark the conversation's unread assistant turns as read."""
    updated = ConversationService.mark_messages_read(db, conversation_id, clinician_id)
    return MarkReadResponse(updated_count=updated)
