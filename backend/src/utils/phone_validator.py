"""
Phone number normalization and validation utilities.

Every component that compares transport addresses (identity lookup, session
tokens, contact window, outbound sends) goes through normalize_address so that
a "whatsapp:"-prefixed and an unprefixed form of the same number always refer
to the same clinician.
"""

import re
from typing import Optional

from core.constants import WHATSAPP_CHANNEL_PREFIX


_CHANNEL_PREFIX_PATTERN = re.compile(rf'^\s*(?:{re.escape(WHATSAPP_CHANNEL_PREFIX)}\s*)+', re.IGNORECASE)
_E164_PATTERN = re.compile(r'^\+[1-9]\d{6,14}$')


def normalize_address(address: Optional[str]) -> str:
    """
    Normalize a transport address for storage and comparison.

    Strips any repeated case-insensitive "whatsapp:" channel prefix and
    surrounding whitespace. Idempotent: normalize_address(normalize_address(x)) equals
    normalize_address(x).

    Args:
        address: Raw address, e.g. "whatsapp:+584141234567" or " +584141234567 "

    Returns:
        Normalized address ("+584141234567"), or "" for None
    """
    if address is None:
        return ''
    return _CHANNEL_PREFIX_PATTERN.sub('', address).strip()


def is_e164(phone: str) -> bool:
    """Return True if phone is an E.164 number such as +584141234567."""
    return bool(_E164_PATTERN.match(phone))


def to_channel_address(address: str) -> str:
    """
    Build the "whatsapp:"-prefixed address Twilio expects.

    Args:
        address: Address in any accepted form

    Returns:
        Prefixed address, e.g. "whatsapp:+584141234567"

    Raises:
        ValueError: If the normalized number is not valid E.164
    """
    normalized = normalize_address(address)
    if not is_e164(normalized):
        raise ValueError(f'Invalid E.164 phone number: {normalized}')
    return f'{WHATSAPP_CHANNEL_PREFIX}{normalized}'
