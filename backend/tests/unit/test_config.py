"""
Unit tests for configuration constants.
"""

import os
from importlib import reload

from core.config import DATABASE_URL, OPENAI_MODEL, OPENAI_TIMEOUT_SECONDS
from core import constants


class TestConfigConstants:
    """Test cases for configuration constants."""

    def test_default_values(self):
        """Test default configuration values (may be overridden in test env)."""
        assert OPENAI_MODEL
        assert OPENAI_TIMEOUT_SECONDS > 0
        assert DATABASE_URL is not None and DATABASE_URL.startswith(("postgresql://", "sqlite://"))

    def test_environment_override(self):
        """Test that environment variables override defaults."""
        os.environ["OPENAI_MODEL"] = "gpt-test"
        os.environ["TWILIO_WHATSAPP_FROM"] = "whatsapp:+15550001111"

        try:
            import core.config
            reload(core.config)

            assert core.config.OPENAI_MODEL == "gpt-test"
            assert core.config.TWILIO_WHATSAPP_FROM == "whatsapp:+15550001111"
        finally:
            os.environ.pop("OPENAI_MODEL", None)
            os.environ.pop("TWILIO_WHATSAPP_FROM", None)
            reload(core.config)


class TestConversationConstants:
    """Test relationships between conversation constants."""

    def test_default_context_limit_within_bounds(self):
        assert constants.MIN_CONTEXT_MESSAGE_LIMIT <= constants.DEFAULT_CONTEXT_MESSAGE_LIMIT
        assert constants.DEFAULT_CONTEXT_MESSAGE_LIMIT <= constants.MAX_CONTEXT_MESSAGE_LIMIT

    def test_compaction_never_reaches_the_default_window(self):
        """Test that folding a batch leaves at least the default window of turns."""
        remaining = constants.SUMMARY_THRESHOLD + 1 - constants.SUMMARIZE_BATCH
        assert remaining >= constants.DEFAULT_CONTEXT_MESSAGE_LIMIT

    def test_chunk_limit_leaves_room_for_marker(self):
        assert constants.MAX_MESSAGE_LENGTH + len("[99/99]\n") <= 1600
