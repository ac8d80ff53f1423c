"""
Unit tests for the Twilio WhatsApp service.
"""

import pytest
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator

from services.twilio_service import TwilioService, is_retryable_send_error

from conftest import CHANNEL_NUMBER, TWILIO_TEST_AUTH_TOKEN


WEBHOOK_URL = "https://clinic.example.com/api/whatsapp/webhook"


class TestTwilioServiceInit:
    """Test TwilioService construction."""

    @pytest.mark.parametrize("account_sid,auth_token", [("", "token"), ("ACtest", ""), ("", "")])
    def test_missing_credentials_raise(self, account_sid, auth_token):
        """Test that both credentials are required."""
        with pytest.raises(ValueError):
            TwilioService(account_sid, auth_token)


class TestValidateRequest:
    """Test webhook signature verification."""

    def test_valid_signature(self, twilio_service):
        """Test that a signature computed with the auth token is accepted."""
        params = {"MessageSid": "SM1", "From": "whatsapp:+584141234567", "Body": "hola"}
        signature = RequestValidator(TWILIO_TEST_AUTH_TOKEN).compute_signature(WEBHOOK_URL, params)

        assert twilio_service.validate_request(WEBHOOK_URL, params, signature) is True

    def test_tampered_params_are_rejected(self, twilio_service):
        """Test that changing a parameter invalidates the signature."""
        params = {"MessageSid": "SM1", "From": "whatsapp:+584141234567", "Body": "hola"}
        signature = RequestValidator(TWILIO_TEST_AUTH_TOKEN).compute_signature(WEBHOOK_URL, params)

        tampered = dict(params, Body="adiós")
        assert twilio_service.validate_request(WEBHOOK_URL, tampered, signature) is False

    def test_signature_for_another_token_is_rejected(self, twilio_service):
        params = {"MessageSid": "SM1"}
        signature = RequestValidator("other-token").compute_signature(WEBHOOK_URL, params)

        assert twilio_service.validate_request(WEBHOOK_URL, params, signature) is False

    def test_missing_signature(self, twilio_service):
        assert twilio_service.validate_request(WEBHOOK_URL, {"MessageSid": "SM1"}, "") is False


class TestExtractMessageData:
    """Test extraction of inbound message fields."""

    def test_text_message(self):
        form = {
            "MessageSid": " SM1 ",
            "From": "whatsapp:+584141234567",
            "To": CHANNEL_NUMBER,
            "Body": "  hola  ",
        }
        assert TwilioService.extract_message_data(form) == (
            "SM1", "whatsapp:+584141234567", CHANNEL_NUMBER, "  hola  "
        )

    @pytest.mark.parametrize("form", [
        {"MessageSid": "SM1", "From": "whatsapp:+584141234567", "MessageStatus": "delivered"},
        {"MessageSid": "SM1", "From": "whatsapp:+584141234567", "Body": "   "},
        {"From": "whatsapp:+584141234567", "Body": "hola"},
        {"MessageSid": "SM1", "Body": "hola"},
    ])
    def test_non_text_callbacks_are_ignored(self, form):
        """Test that status callbacks and empty messages yield None."""
        assert TwilioService.extract_message_data(form) is None


class TestAllowedDestination:
    """Test the channel number filter."""

    def test_matches_configured_number_in_any_form(self, twilio_service):
        assert twilio_service.is_allowed_destination(CHANNEL_NUMBER)
        assert twilio_service.is_allowed_destination("+14155238886")
        assert not twilio_service.is_allowed_destination("whatsapp:+15550001111")

    def test_everything_allowed_without_configured_number(self, mock_twilio_client):
        service = TwilioService("ACtest", TWILIO_TEST_AUTH_TOKEN, client=mock_twilio_client)
        assert service.is_allowed_destination("whatsapp:+15550001111")


class TestSendTextMessage:
    """Test outbound sends."""

    def test_sends_with_channel_prefixes(self, twilio_service, mock_twilio_client):
        """Test that both addresses are sent in whatsapp: form and the sid is returned."""
        sid = twilio_service.send_text_message("+584141234567", "Hola")

        assert sid == "SM-outbound"
        mock_twilio_client.messages.create.assert_called_once_with(
            from_=CHANNEL_NUMBER,
            to="whatsapp:+584141234567",
            body="Hola",
        )

    def test_explicit_sender_overrides_default(self, twilio_service, mock_twilio_client):
        twilio_service.send_text_message("whatsapp:+584141234567", "Hola", from_address="whatsapp:+15550001111")

        assert mock_twilio_client.messages.create.call_args.kwargs["from_"] == "whatsapp:+15550001111"

    def test_no_sender_configured(self, mock_twilio_client):
        service = TwilioService("ACtest", TWILIO_TEST_AUTH_TOKEN, client=mock_twilio_client)

        with pytest.raises(ValueError):
            service.send_text_message("+584141234567", "Hola")
        mock_twilio_client.messages.create.assert_not_called()

    def test_invalid_destination(self, twilio_service, mock_twilio_client):
        with pytest.raises(ValueError):
            twilio_service.send_text_message("not-a-number", "Hola")
        mock_twilio_client.messages.create.assert_not_called()

    def test_gateway_errors_propagate(self, twilio_service, mock_twilio_client):
        """Test that Twilio failures reach the caller unchanged."""
        error = TwilioRestException(503, "/Messages.json", msg="Service Unavailable")
        mock_twilio_client.messages.create.side_effect = error

        with pytest.raises(TwilioRestException) as exc_info:
            twilio_service.send_text_message("+584141234567", "Hola")
        assert exc_info.value is error


class TestIsRetryableSendError:
    """Test classification of send failures."""

    @pytest.mark.parametrize("status,expected", [
        (429, True),
        (500, True),
        (503, True),
        (400, False),
        (404, False),
    ])
    def test_status_codes(self, status, expected):
        assert is_retryable_send_error(TwilioRestException(status, "/Messages.json")) is expected

    def test_errors_without_status(self):
        assert is_retryable_send_error(RuntimeError("boom")) is False
