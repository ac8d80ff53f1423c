# pyright: reportUnknownMemberType=false, reportMissingTypeStubs=false
"""
Twilio WhatsApp service.

This module encapsulates all Twilio interactions including:
- Webhook signature verification for security
- Inbound message field extraction
- Text message sending to WhatsApp users
"""

import logging
from typing import Any, Mapping, Optional, Tuple

from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator
from twilio.rest import Client

from utils.phone_validator import normalize_address, to_channel_address


logger = logging.getLogger(__name__)


def is_retryable_send_error(error: Exception) -> bool:
    """Whether a send failure is worth retrying (rate limit or gateway error)."""
    status = getattr(error, "status", None)
    if not isinstance(status, int):
        return False
    return status == 429 or 500 <= status < 600


class TwilioService:
    """
    Service for Twilio WhatsApp operations.

    Attributes:
        account_sid: Twilio account SID
        auth_token: Twilio auth token (also the webhook signing secret)
        from_address: Channel number replies are sent from by default
        client: Twilio REST client
        validator: Webhook signature validator
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_address: Optional[str] = None,
        client: Optional[Client] = None,
    ) -> None:
        """
        Initialize Twilio clients.

        Raises:
            ValueError: If account_sid or auth_token is empty
        """
        if not account_sid or not auth_token:
            raise ValueError("Both account_sid and auth_token are required")

        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_address = from_address
        self.client = client or Client(account_sid, auth_token)
        self.validator = RequestValidator(auth_token)

    def validate_request(self, url: str, params: Mapping[str, Any], signature: str) -> bool:
        """
        Verify the X-Twilio-Signature of a webhook request.

        Args:
            url: Full public URL Twilio posted to
            params: Form parameters of the request
            signature: Value of the X-Twilio-Signature header

        Returns:
            True if the signature is valid
        """
        if not signature:
            return False
        try:
            return bool(self.validator.validate(url, dict(params), signature))
        except Exception as e:
            logger.warning(f"Signature validation error: {e}")
            return False

    @staticmethod
    def extract_message_data(form: Mapping[str, Any]) -> Optional[Tuple[str, str, str, str]]:
        """
        Extract the fields of an inbound WhatsApp message.

        Returns:
            (message_sid, from_address, to_address, body), or None if the
            callback is not a text message (status callbacks, empty body)
        """
        message_sid = str(form.get("MessageSid") or "").strip()
        from_address = str(form.get("From") or "").strip()
        to_address = str(form.get("To") or "").strip()
        body = str(form.get("Body") or "")

        if not message_sid or not from_address or not body.strip():
            return None
        return message_sid, from_address, to_address, body

    def is_allowed_destination(self, to_address: str) -> bool:
        """Whether an inbound message was addressed to our configured channel number."""
        if not self.from_address:
            return True
        return normalize_address(to_address) == normalize_address(self.from_address)

    def send_text_message(self, to: str, body: str, from_address: Optional[str] = None) -> Optional[str]:
        """
        Send a text message to a WhatsApp user.

        Args:
            to: Destination address (E.164, with or without "whatsapp:")
            body: Message text
            from_address: Channel number to send from (defaults to from_address)

        Returns:
            Twilio message SID

        Raises:
            ValueError: If an address is not a valid E.164 number
            TwilioRestException: If Twilio rejects the request
        """
        sender = from_address or self.from_address
        if not sender:
            raise ValueError("No WhatsApp sender number configured")

        try:
            message = self.client.messages.create(
                from_=to_channel_address(sender),
                to=to_channel_address(to),
                body=body,
            )
        except TwilioRestException as e:
            if is_retryable_send_error(e):
                logger.warning(f"Retryable Twilio send failure (status={e.status}) to {normalize_address(to)}: {e.msg}")
            else:
                logger.error(f"Twilio send failed (status={e.status}) to {normalize_address(to)}: {e.msg}")
            raise

        logger.debug(f"Sent WhatsApp message sid={message.sid} to {normalize_address(to)}")
        return message.sid
