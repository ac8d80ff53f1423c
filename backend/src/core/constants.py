"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_MESSAGE_CONTENT_LENGTH = 5000  # Longest turn accepted from the companion web view

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # Companion web view dev server (Vite)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Messaging channel
WHATSAPP_CHANNEL_PREFIX = "whatsapp:"

# Conversation lifecycle
SESSION_TIMEOUT_MINUTES = 30  # Inactivity after which the active conversation expires
DEFAULT_CONTEXT_MESSAGE_LIMIT = 10  # Most recent turns sent verbatim to the LLM
MIN_CONTEXT_MESSAGE_LIMIT = 1
MAX_CONTEXT_MESSAGE_LIMIT = 100

# Context compaction
SUMMARY_THRESHOLD = 15  # Stored turns above which the oldest batch is folded into the summary
SUMMARIZE_BATCH = 5  # Turns folded per compaction pass
SUMMARY_MAX_WORDS = 300
SUMMARY_MAX_TOKENS = 500
SUMMARY_LABEL = "Resumen de la conversación anterior:"
CHARS_PER_TOKEN = 4  # Rough token estimate: ceil(len(content) / 4)

# Companion web view session tokens
SESSION_TOKEN_TTL_MINUTES = 30
SESSION_TOKEN_BYTES = 32  # Hex-encoded, so tokens are 64 characters long

# Outbound messages
MAX_MESSAGE_LENGTH = 990  # Headroom under WhatsApp's 1600 char limit for the [i/n] marker
MESSAGE_DELAY_SECONDS = 0.5  # Pause between consecutive chunks
CONTACT_WINDOW_HOURS = 24  # WhatsApp customer-service window after the last inbound message

# Housekeeping retention
PROCESSED_WEBHOOK_RETENTION_HOURS = 240  # 10 days, far beyond Twilio's retry horizon
EXPIRED_SESSION_RETENTION_HOURS = 24
CLEANUP_HOUR_UTC = 3
