# pyright: reportMissingTypeStubs=false
"""
Twilio WhatsApp webhook endpoint for receiving clinician messages.

Twilio posts every inbound WhatsApp message here (form-encoded). The endpoint
verifies the signature, claims the message id so retried deliveries are
ignored, and hands the message to the reply handler in the background. The
reply is sent through the Messages API, never in the HTTP response.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session, sessionmaker

from core.config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM, WEBHOOK_PUBLIC_BASE_URL
from core.database import get_db, get_session_factory
from services.inbound_delivery_service import claim_message
from services.llm_service import LLMService, get_llm_service
from services.twilio_service import TwilioService
from services.whatsapp_reply_service import handle_inbound_message
from utils.phone_validator import normalize_address

logger = logging.getLogger(__name__)

router = APIRouter()

# Global singleton instance
_twilio_service: Optional[TwilioService] = None


def get_twilio_service() -> Optional[TwilioService]:
    """
    Get the shared Twilio service.

    Returns:
        TwilioService, or None when Twilio credentials are not configured
    """
    global _twilio_service
    if _twilio_service is None and TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN:
        _twilio_service = TwilioService(
            account_sid=TWILIO_ACCOUNT_SID,
            auth_token=TWILIO_AUTH_TOKEN,
            from_address=TWILIO_WHATSAPP_FROM or None,
        )
    return _twilio_service


def _public_url(request: Request) -> str:
    """
    Rebuild the URL Twilio signed.

    Behind a proxy the request URL differs from the public one, so the
    configured base URL or the X-Forwarded-* headers take precedence.
    """
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"

    if WEBHOOK_PUBLIC_BASE_URL:
        return f"{WEBHOOK_PUBLIC_BASE_URL.rstrip('/')}{path}"

    proto = request.headers.get("x-forwarded-proto", request.url.scheme).split(",")[0].strip()
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host.split(',')[0].strip()}{path}"


@router.post("/webhook")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    twilio: Optional[TwilioService] = Depends(get_twilio_service),
    llm: LLMService = Depends(get_llm_service),
) -> Dict[str, Any]:
    """
    Handle an inbound WhatsApp message from Twilio.

    Returns:
        Status dict; always 200 once the signature is valid

    Raises:
        HTTPException: 403 if Twilio is not configured or the signature is invalid
    """
    if twilio is None:
        logger.error("Twilio webhook received but TWILIO_AUTH_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="twilio-webhook-validation-unavailable"
        )

    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}
    signature = request.headers.get("x-twilio-signature", "")

    if not twilio.validate_request(_public_url(request), params, signature):
        logger.warning("Invalid Twilio webhook signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="twilio-webhook-signature-invalid"
        )

    message_data = twilio.extract_message_data(params)
    if message_data is None:
        logger.debug("Ignoring non-text Twilio callback")
        return {"status": "ok", "message": "Event ignored"}

    message_sid, from_address, to_address, body = message_data

    try:
        if not claim_message(db, message_sid):
            return {"status": "ok", "message": "Duplicate delivery ignored"}

        if not twilio.is_allowed_destination(to_address):
            logger.warning(f"Webhook To {normalize_address(to_address)} is not the configured channel number")
            return {"status": "ok", "message": "Channel not allowed"}

        logger.info(
            f"📩 WhatsApp message received: message_sid={message_sid}, "
            f"from={normalize_address(from_address)}, body={body[:30]!r}"
        )

        background_tasks.add_task(
            handle_inbound_message,
            session_factory,
            twilio,
            llm,
            message_sid,
            from_address,
            to_address,
            body,
        )
        return {"status": "ok", "message": "Message accepted"}

    except Exception as e:
        logger.exception(f"Unexpected error processing Twilio webhook: {e} (message_sid={message_sid})")
        # Twilio retries on error status codes; the delivery is acknowledged instead
        return {"status": "error", "message": "Internal server error"}
