"""
Integration tests for the Twilio WhatsApp webhook.

Requests go through the FastAPI app with signed form payloads; the reply
handler runs as a background task against the test database before the
response is returned.
"""

from unittest.mock import patch

import pytest
from twilio.request_validator import RequestValidator

from models import Conversation, ConversationMessage, ProcessedWebhookMessage, WhatsAppAuthSession
from services import whatsapp_reply_service
from services.inbound_delivery_service import claim_message
from services.whatsapp_reply_service import NOT_REGISTERED_MESSAGE

from conftest import CHANNEL_NUMBER, CLINICIAN_PHONE, TWILIO_TEST_AUTH_TOKEN


pytestmark = pytest.mark.integration

WEBHOOK_PATH = "/api/whatsapp/webhook"
SIGNED_URL = f"http://testserver{WEBHOOK_PATH}"


@pytest.fixture(autouse=True)
def no_delay_between_parts(monkeypatch):
    monkeypatch.setattr(whatsapp_reply_service, "MESSAGE_DELAY_SECONDS", 0)


def _inbound(message_sid="SM100", sender=f"whatsapp:{CLINICIAN_PHONE}", body="hola", to=CHANNEL_NUMBER):
    params = {"MessageSid": message_sid, "From": sender, "To": to, "AccountSid": "ACtest"}
    if body is not None:
        params["Body"] = body
    return params


def _post_signed(client, params, token=TWILIO_TEST_AUTH_TOKEN):
    signature = RequestValidator(token).compute_signature(SIGNED_URL, params)
    return client.post(WEBHOOK_PATH, data=params, headers={"X-Twilio-Signature": signature})


class TestInboundMessageFlow:
    """Test a clinician message from webhook to outbound reply."""

    def test_clinician_message_is_answered(self, client, db_session, clinician, mock_twilio_client, fake_llm):
        """
        Test the full flow for a registered clinician.

        The message is claimed, one active conversation holds the user turn
        and the answer, a session token is issued and the answer is sent
        back from the channel number.
        """
        response = _post_signed(client, _inbound())

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "Message accepted"}

        conversations = db_session.query(Conversation).all()
        assert len(conversations) == 1
        assert conversations[0].is_active
        assert conversations[0].clinician_id == clinician.id

        turns = db_session.query(ConversationMessage).order_by(ConversationMessage.id).all()
        assert [(t.role, t.content) for t in turns] == [
            ("user", "hola"),
            ("assistant", "¡Hola! ¿En qué puedo ayudarte?"),
        ]

        assert db_session.query(WhatsAppAuthSession).count() == 1
        assert db_session.query(ProcessedWebhookMessage).filter_by(message_sid="SM100").count() == 1

        mock_twilio_client.messages.create.assert_called_once_with(
            from_=CHANNEL_NUMBER,
            to=f"whatsapp:{CLINICIAN_PHONE}",
            body="¡Hola! ¿En qué puedo ayudarte?",
        )

    def test_follow_up_message_continues_the_conversation(self, client, db_session, clinician, fake_llm):
        _post_signed(client, _inbound("SM100", body="hola"))
        _post_signed(client, _inbound("SM101", body="¿qué citas tengo hoy?"))

        assert db_session.query(Conversation).count() == 1
        assert db_session.query(ConversationMessage).count() == 4

        last_request = fake_llm.complete.call_args.args[0]
        assert [m["role"] for m in last_request] == ["system", "user", "assistant", "user"]
        assert last_request[-1]["content"] == "¿qué citas tengo hoy?"

    def test_duplicate_delivery_is_ignored(self, client, db_session, clinician, mock_twilio_client, fake_llm):
        """Test that an already-claimed MessageSid is acknowledged without processing."""
        assert claim_message(db_session, "SM100")

        response = _post_signed(client, _inbound("SM100"))

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "Duplicate delivery ignored"}
        mock_twilio_client.messages.create.assert_not_called()
        fake_llm.complete.assert_not_called()
        assert db_session.query(ConversationMessage).count() == 0

    def test_retried_delivery_is_answered_once(self, client, db_session, clinician, mock_twilio_client):
        first = _post_signed(client, _inbound("SM100"))
        second = _post_signed(client, _inbound("SM100"))

        assert first.json()["message"] == "Message accepted"
        assert second.json()["message"] == "Duplicate delivery ignored"
        assert mock_twilio_client.messages.create.call_count == 1

    def test_unknown_sender_gets_not_registered_reply(self, client, db_session, mock_twilio_client, fake_llm):
        response = _post_signed(client, _inbound(sender="whatsapp:+15550001111"))

        assert response.status_code == 200
        assert mock_twilio_client.messages.create.call_args.kwargs["body"] == NOT_REGISTERED_MESSAGE
        fake_llm.complete.assert_not_called()
        assert db_session.query(Conversation).count() == 0


class TestWebhookRejections:
    """Test requests that are rejected or ignored."""

    def test_invalid_signature(self, client, clinician, mock_twilio_client):
        response = _post_signed(client, _inbound(), token="wrong-token")

        assert response.status_code == 403
        assert response.json()["detail"] == "twilio-webhook-signature-invalid"
        mock_twilio_client.messages.create.assert_not_called()

    def test_missing_signature(self, client, clinician):
        response = client.post(WEBHOOK_PATH, data=_inbound())

        assert response.status_code == 403

    def test_unconfigured_twilio(self, client, clinician):
        """Test that the webhook refuses requests it cannot verify."""
        from main import app
        from api.twilio_webhook import get_twilio_service
        app.dependency_overrides[get_twilio_service] = lambda: None

        response = _post_signed(client, _inbound())

        assert response.status_code == 403
        assert response.json()["detail"] == "twilio-webhook-validation-unavailable"

    def test_status_callback_is_ignored(self, client, db_session, mock_twilio_client):
        params = _inbound(body=None)
        params["MessageStatus"] = "delivered"

        response = _post_signed(client, params)

        assert response.json() == {"status": "ok", "message": "Event ignored"}
        assert db_session.query(ProcessedWebhookMessage).count() == 0
        mock_twilio_client.messages.create.assert_not_called()

    def test_processing_error_is_acknowledged(self, client, clinician, mock_twilio_client):
        """Test that an unexpected failure still answers 200 so Twilio does not retry."""
        with patch("api.twilio_webhook.claim_message", side_effect=RuntimeError("db down")):
            response = _post_signed(client, _inbound())

        assert response.status_code == 200
        assert response.json() == {"status": "error", "message": "Internal server error"}
        mock_twilio_client.messages.create.assert_not_called()

    def test_message_to_another_number_is_dropped(self, client, db_session, clinician, mock_twilio_client, fake_llm):
        response = _post_signed(client, _inbound(to="whatsapp:+15550002222"))

        assert response.json() == {"status": "ok", "message": "Channel not allowed"}
        mock_twilio_client.messages.create.assert_not_called()
        fake_llm.complete.assert_not_called()
