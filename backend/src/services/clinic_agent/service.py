"""
Clinician assistant service.

Runs one clinician message through the LLM with the tool catalogue:

1. AWAITING_INITIAL_RESPONSE: system prompt + context + user turn, tools
   enabled. A plain answer ends the exchange.
2. AWAITING_FOLLOW_UP: every requested tool is executed, the tool-call turn
   and one result per call are appended, and a single follow-up request is
   sent without tools. Its answer ends the exchange.

There is never a second tool round. A tool failure becomes that call's
result; it does not abort sibling calls.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from models import ConversationMessage

from services.clinic_agent.prompts import BASE_SYSTEM_PROMPT
from services.clinic_agent.tools import execute_tool, get_openai_tools, map_tool_error
from services.clinic_agent.utils import safe_parse_json_record, sanitize_tool_args, summarize_tool_result
from services.context_compactor import ContextCompactor, build_context_messages
from services.conversation_service import ConversationService
from services.llm_service import LLMService

logger = logging.getLogger(__name__)


# Constants
NO_RESPONSE_MESSAGE = "No pude procesar tu solicitud. Por favor, intenta de nuevo."
OPERATION_COMPLETED_MESSAGE = "Operación completada."
FALLBACK_ERROR_MESSAGE = NO_RESPONSE_MESSAGE


class DispatchState(Enum):
    """States of a single dispatch exchange."""

    AWAITING_INITIAL_RESPONSE = "awaiting_initial_response"
    AWAITING_FOLLOW_UP = "awaiting_follow_up"


def build_system_content(auth_token: Optional[str] = None) -> str:
    """System prompt, with the clinician's session token appended when known."""
    if auth_token:
        return f"{BASE_SYSTEM_PROMPT}\n\nconversationContext.authToken = {auth_token}"
    return BASE_SYSTEM_PROMPT


def _function_tool_calls(message: Any) -> List[Any]:
    if message is None:
        return []
    return [
        call for call in (getattr(message, "tool_calls", None) or [])
        if getattr(call, "type", "function") == "function"
    ]


def _tool_call_turn(message: Any, tool_calls: List[Any]) -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": message.content,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in tool_calls
        ],
    }


def run_tool_calls(db: Session, clinician_id: str, tool_calls: List[Any]) -> List[Dict[str, Any]]:
    """
    Execute a batch of tool calls and build one tool-result turn per call id.

    Args:
        db: Database session
        clinician_id: Clinician of the conversation
        tool_calls: Function tool calls from the assistant message

    Returns:
        Tool-result turns in call order
    """
    results: List[Dict[str, Any]] = []
    for call in tool_calls:
        name = call.function.name
        args = safe_parse_json_record(call.function.arguments)
        logger.debug(f"Tool call input: {name} {sanitize_tool_args(args)}")

        try:
            result = execute_tool(db, clinician_id, name, args)
            content = json.dumps(result, ensure_ascii=False, default=str)
            logger.debug(f"Tool call output: {name} success {summarize_tool_result(result)}")
        except Exception as e:
            db.rollback()
            mapped = map_tool_error(e)
            if mapped["error"] == "unknown":
                logger.exception(f"Tool {name} failed for clinician_id={clinician_id}: {e}")
            content = json.dumps({"success": False, **mapped}, ensure_ascii=False)
            logger.debug(f"Tool call output: {name} error {mapped['error']}")

        results.append({"role": "tool", "tool_call_id": call.id, "content": content})
    return results


def run_dispatch_loop(
    db: Session,
    llm: LLMService,
    clinician_id: str,
    messages: List[Dict[str, Any]],
) -> str:
    """
    Get the assistant's answer for a prepared message list.

    Args:
        db: Database session used by tool handlers
        llm: LLM service
        clinician_id: Clinician of the conversation
        messages: System prompt, context turns and the new user turn

    Returns:
        Final answer text

    Raises:
        openai.OpenAIError: If a completion request fails or times out
    """
    conversation: List[Dict[str, Any]] = list(messages)
    state = DispatchState.AWAITING_INITIAL_RESPONSE

    while True:
        if state is DispatchState.AWAITING_INITIAL_RESPONSE:
            reply = llm.complete(conversation, tools=get_openai_tools())
            tool_calls = _function_tool_calls(reply)
            if not tool_calls:
                return (reply.content if reply is not None else None) or NO_RESPONSE_MESSAGE

            logger.info(
                f"Dispatching {len(tool_calls)} tool call(s) for clinician_id={clinician_id}: "
                f"{[call.function.name for call in tool_calls]}"
            )
            conversation.append(_tool_call_turn(reply, tool_calls))
            conversation.extend(run_tool_calls(db, clinician_id, tool_calls))
            state = DispatchState.AWAITING_FOLLOW_UP
        else:
            follow_up = llm.complete(conversation)
            return (follow_up.content if follow_up is not None else None) or OPERATION_COMPLETED_MESSAGE


class ClinicAgentService:
    """
    Service for processing clinician messages through the LLM.

    Conversation state lives in the conversations tables; every call builds
    the request from the active conversation's summary and recent turns.
    """

    @staticmethod
    def process_message(
        db: Session,
        llm: LLMService,
        clinician_id: str,
        user_message: str,
        auth_token: Optional[str] = None,
    ) -> str:
        """
        Process a message and generate the assistant's answer.

        The user turn and the answer are both stored on the clinician's active
        conversation (created or renewed as needed).

        Args:
            db: Database session
            llm: LLM service
            clinician_id: Resolved clinician
            user_message: Message text
            auth_token: Session token exposed to the model, if issued

        Returns:
            Answer text, or FALLBACK_ERROR_MESSAGE if the LLM or storage fails
        """
        compactor = ContextCompactor(llm)
        try:
            active = ConversationService.get_or_create_active(
                db, clinician_id, BASE_SYSTEM_PROMPT, model=llm.model
            )
            conversation_id = active.conversation.id
            ConversationService.add_message(db, conversation_id, "user", user_message, compactor)

            messages: List[Dict[str, Any]] = [
                {"role": "system", "content": build_system_content(auth_token)},
                *active.context_messages,
                {"role": "user", "content": user_message},
            ]
            answer = run_dispatch_loop(db, llm, clinician_id, messages)

            ConversationService.add_message(db, conversation_id, "assistant", answer, compactor)
        except Exception as e:
            db.rollback()
            logger.exception(f"Error processing message for clinician_id={clinician_id}: {e}")
            return FALLBACK_ERROR_MESSAGE

        logger.info(
            f"Generated response for clinician_id={clinician_id}, "
            f"conversation_id={conversation_id}, response_length={len(answer)}"
        )
        return answer

    @staticmethod
    def process_in_conversation(
        db: Session,
        llm: LLMService,
        clinician_id: str,
        conversation_id: str,
        auth_token: Optional[str] = None,
    ) -> Optional[ConversationMessage]:
        """
        Answer the latest stored user turn of a conversation.

        Used by the companion view, which stores the user turn itself.

        Returns:
            The stored assistant turn, or None if the LLM failed
        """
        conversation = ConversationService.get_conversation_for_clinician(db, conversation_id, clinician_id)
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_content(auth_token)},
            *build_context_messages(db, conversation),
        ]
        try:
            answer = run_dispatch_loop(db, llm, clinician_id, messages)
        except Exception as e:
            db.rollback()
            logger.exception(f"Error processing conversation_id={conversation_id}: {e}")
            return None

        return ConversationService.add_message(db, conversation_id, "assistant", answer, ContextCompactor(llm))
