"""
Unit tests for WhatsApp contact window tracking.
"""

from datetime import datetime, timedelta, timezone

import pytest

from models import WhatsAppContactWindow
from services.contact_window_service import is_within_24h, update_last_inbound


NOW = datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc)


class TestContactWindow:
    """Test update_last_inbound and is_within_24h."""

    def test_inbound_opens_window(self, db_session):
        update_last_inbound(db_session, "whatsapp:+584141234567", now=NOW)

        assert is_within_24h(db_session, "+584141234567", now=NOW + timedelta(hours=23))
        assert not is_within_24h(db_session, "+584141234567", now=NOW + timedelta(hours=24))

    def test_repeated_inbound_refreshes_single_row(self, db_session):
        update_last_inbound(db_session, "+584141234567", now=NOW)
        update_last_inbound(db_session, "whatsapp:+584141234567", now=NOW + timedelta(hours=20))

        assert db_session.query(WhatsAppContactWindow).count() == 1
        assert is_within_24h(db_session, "+584141234567", now=NOW + timedelta(hours=30))

    def test_unknown_number_is_outside_window(self, db_session):
        assert not is_within_24h(db_session, "+10000000000", now=NOW)

    def test_empty_address_is_rejected(self, db_session):
        with pytest.raises(ValueError):
            update_last_inbound(db_session, "  ")
