"""
Unit tests for companion view session tokens.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from core.constants import SESSION_TOKEN_TTL_MINUTES
from models import WhatsAppAuthSession
from services.auth_session_service import AuthSessionService
from utils.datetime_utils import ensure_utc


NOW = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)


class TestGetOrCreateSession:
    """Test token issuance, reuse and rotation."""

    def test_first_message_issues_token(self, db_session, clinician):
        """A new number gets a 64 character hex token valid for the TTL."""
        issued = AuthSessionService.get_or_create_session(
            db_session, "whatsapp:+584141234567", clinician.id, now=NOW
        )

        assert re.fullmatch(r"[0-9a-f]{64}", issued.auth_token)
        assert issued.expires_at == NOW + timedelta(minutes=SESSION_TOKEN_TTL_MINUTES)

        row = db_session.query(WhatsAppAuthSession).one()
        assert row.phone_number == "+584141234567"
        assert row.clinician_id == clinician.id

    def test_valid_token_is_reused_verbatim(self, db_session, clinician):
        """A second message before expiry returns the same token and expiry."""
        first = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)
        second = AuthSessionService.get_or_create_session(
            db_session, "whatsapp:+584141234567", clinician.id, now=NOW + timedelta(minutes=10)
        )

        assert second.auth_token == first.auth_token
        assert second.expires_at == first.expires_at

        row = db_session.query(WhatsAppAuthSession).one()
        assert ensure_utc(row.last_message_at) == NOW + timedelta(minutes=10)

    def test_expired_token_is_replaced_not_extended(self, db_session, clinician):
        """After expiry a different token is issued and the row is overwritten."""
        first = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)
        later = NOW + timedelta(minutes=SESSION_TOKEN_TTL_MINUTES + 1)
        second = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=later)

        assert second.auth_token != first.auth_token
        assert second.expires_at == later + timedelta(minutes=SESSION_TOKEN_TTL_MINUTES)
        assert db_session.query(WhatsAppAuthSession).count() == 1

    def test_token_is_rotated_when_clinician_changes(self, db_session, clinician, other_clinician):
        first = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)
        second = AuthSessionService.get_or_create_session(
            db_session, "+584141234567", other_clinician.id, now=NOW + timedelta(minutes=1)
        )

        assert second.auth_token != first.auth_token
        assert AuthSessionService.resolve_token(db_session, second.auth_token, now=NOW) == other_clinician.id

    def test_empty_address_is_rejected(self, db_session, clinician):
        with pytest.raises(ValueError):
            AuthSessionService.get_or_create_session(db_session, "whatsapp:", clinician.id, now=NOW)


class TestResolveToken:
    """Test token resolution for the companion API."""

    def test_valid_token_resolves_to_clinician(self, db_session, clinician):
        issued = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)
        assert AuthSessionService.resolve_token(db_session, issued.auth_token, now=NOW) == clinician.id

    def test_expired_token_does_not_resolve(self, db_session, clinician):
        issued = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)
        assert AuthSessionService.resolve_token(db_session, issued.auth_token, now=issued.expires_at) is None

    def test_unknown_and_empty_tokens_do_not_resolve(self, db_session, clinician):
        assert AuthSessionService.resolve_token(db_session, "f" * 64, now=NOW) is None
        assert AuthSessionService.resolve_token(db_session, "", now=NOW) is None


class TestSessionHousekeeping:
    """Test touch and expired token cleanup."""

    def test_touch_updates_last_message_only(self, db_session, clinician):
        issued = AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)

        assert AuthSessionService.touch(db_session, "whatsapp:+584141234567", now=NOW + timedelta(minutes=5))

        row = db_session.query(WhatsAppAuthSession).one()
        assert row.auth_token == issued.auth_token
        assert ensure_utc(row.last_message_at) == NOW + timedelta(minutes=5)
        assert ensure_utc(row.expires_at) == issued.expires_at

    def test_touch_unknown_number(self, db_session):
        assert AuthSessionService.touch(db_session, "+10000000000", now=NOW) is False

    def test_delete_expired_sessions(self, db_session, clinician):
        AuthSessionService.get_or_create_session(db_session, "+584141234567", clinician.id, now=NOW)

        # Expired, but still inside the retention period
        assert AuthSessionService.delete_expired_sessions(db_session, 24, now=NOW + timedelta(hours=2)) == 0
        assert AuthSessionService.delete_expired_sessions(db_session, 24, now=NOW + timedelta(hours=25)) == 1
        assert db_session.query(WhatsAppAuthSession).count() == 0
