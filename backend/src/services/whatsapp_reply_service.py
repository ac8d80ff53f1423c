"""
Reply handler for inbound WhatsApp messages.

Runs after the webhook has acknowledged and claimed a message:

1. refresh the contact window;
2. resolve the sender to a clinician (unknown senders get a fixed reply);
3. issue or reuse the clinician's session token;
4. run the assistant;
5. if the 24 h contact window is still open, split the answer into
   WhatsApp-sized parts and send them in order.

Database work runs in a worker thread with its own session; sends are
sequential with MESSAGE_DELAY_SECONDS between parts.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from core.constants import MESSAGE_DELAY_SECONDS
from services.auth_session_service import AuthSessionService
from services.clinic_agent import ClinicAgentService
from services.contact_window_service import is_within_24h, update_last_inbound
from services.identity_service import find_clinician_by_address
from services.llm_service import LLMService
from services.twilio_service import TwilioService
from utils.message_chunker import split_message
from utils.phone_validator import normalize_address

logger = logging.getLogger(__name__)

NOT_REGISTERED_MESSAGE = (
    "No estás registrado como médico en el sistema. Por favor, contacta al administrador."
)
PROCESSING_ERROR_MESSAGE = "Ocurrió un error al procesar tu mensaje. Por favor, intenta de nuevo."


def build_reply(
    session_factory: Callable[[], Session],
    llm: LLMService,
    from_address: str,
    body: str,
) -> str:
    """
    Produce the reply text for an inbound message (blocking).

    Args:
        session_factory: Creates the database session used for this message
        llm: LLM service
        from_address: Sender address
        body: Message text

    Returns:
        Reply text
    """
    db = session_factory()
    try:
        update_last_inbound(db, from_address)

        identity = find_clinician_by_address(db, from_address)
        if identity is None:
            # A token left over from a removed clinician is not renewed
            AuthSessionService.touch(db, from_address)
            return NOT_REGISTERED_MESSAGE

        issued = AuthSessionService.get_or_create_session(db, from_address, identity.clinician_id)
        return ClinicAgentService.process_message(
            db, llm, identity.clinician_id, body, auth_token=issued.auth_token
        )
    finally:
        db.close()


def contact_window_open(session_factory: Callable[[], Session], address: str) -> bool:
    """Whether a free-form message may still be sent to the address (blocking)."""
    db = session_factory()
    try:
        return is_within_24h(db, address)
    finally:
        db.close()


async def send_parts(twilio: TwilioService, to: str, parts: List[str], reply_from: Optional[str] = None) -> int:
    """
    Send message parts in order, pausing between them.

    Returns:
        Number of parts sent
    """
    for i, part in enumerate(parts):
        sid = await asyncio.to_thread(twilio.send_text_message, to, part, reply_from)
        logger.info(f"Sent part {i + 1}/{len(parts)} to {normalize_address(to)}, message_sid={sid}")
        if i < len(parts) - 1:
            await asyncio.sleep(MESSAGE_DELAY_SECONDS)
    return len(parts)


async def handle_inbound_message(
    session_factory: Callable[[], Session],
    twilio: TwilioService,
    llm: LLMService,
    message_sid: str,
    from_address: str,
    to_address: str,
    body: str,
) -> None:
    """
    Process a claimed inbound message and send the reply.

    Never raises: a failure is logged and a fixed error reply is attempted.
    """
    reply_from = to_address or None
    try:
        reply = await asyncio.to_thread(build_reply, session_factory, llm, from_address, body)
        if not await asyncio.to_thread(contact_window_open, session_factory, from_address):
            logger.warning(
                f"Contact window closed for {normalize_address(from_address)}, "
                f"reply to message_sid={message_sid} not sent"
            )
            return

        parts = split_message(reply)
        await send_parts(twilio, from_address, parts, reply_from)
        logger.info(
            f"Replied to message_sid={message_sid} from {normalize_address(from_address)} "
            f"in {len(parts)} part(s)"
        )
    except Exception as e:
        logger.exception(f"Error handling message_sid={message_sid}: {e}")
        try:
            await asyncio.to_thread(twilio.send_text_message, from_address, PROCESSING_ERROR_MESSAGE, reply_from)
        except Exception as send_error:
            logger.warning(f"Could not send error reply for message_sid={message_sid}: {send_error}")
