"""
Unit tests for transport address normalization.
"""

import pytest

from utils.phone_validator import is_e164, normalize_address, to_channel_address


class TestNormalizeAddress:
    """Test normalize_address."""

    @pytest.mark.parametrize("raw", [
        "whatsapp:+584141234567",
        "WhatsApp:+584141234567",
        "  whatsapp:+584141234567  ",
        "+584141234567",
        " +584141234567\n",
        "whatsapp:whatsapp:+584141234567",
        "whatsapp: WHATSAPP:+584141234567",
    ])
    def test_prefixed_and_plain_forms_normalize_to_same_number(self, raw):
        """Prefix and surrounding whitespace are removed."""
        assert normalize_address(raw) == "+584141234567"

    def test_none_normalizes_to_empty_string(self):
        assert normalize_address(None) == ""

    @pytest.mark.parametrize("raw", [
        "whatsapp:+584141234567",
        "whatsapp:whatsapp:+584141234567",
        " +1 ",
        "",
        "whatsapp:",
    ])
    def test_normalization_is_idempotent(self, raw):
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_address(raw)
        assert normalize_address(once) == once

    def test_prefix_only_removed_at_start(self):
        assert normalize_address("+58whatsapp:1") == "+58whatsapp:1"


class TestChannelAddress:
    """Test E.164 validation and channel prefixing."""

    def test_is_e164(self):
        assert is_e164("+584141234567")
        assert not is_e164("584141234567")
        assert not is_e164("+0123456789")
        assert not is_e164("+58")

    def test_to_channel_address_adds_prefix_once(self):
        assert to_channel_address("+584141234567") == "whatsapp:+584141234567"
        assert to_channel_address("whatsapp:+584141234567") == "whatsapp:+584141234567"

    def test_to_channel_address_rejects_invalid_number(self):
        with pytest.raises(ValueError):
            to_channel_address("whatsapp:12345")
