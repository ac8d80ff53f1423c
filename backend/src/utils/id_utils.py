"""Identifier helpers for UUID primary keys."""

import re
import uuid
from typing import Optional


_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)


def new_id() -> str:
    """Generate a new random UUID string for a primary key."""
    return str(uuid.uuid4())


def is_uuid(value: Optional[str]) -> bool:
    """
    Check whether a value looks like a UUID.

    The assistant sometimes passes a patient number or a name where an id is
    expected; callers use this to decide whether to resolve the value first.
    """
    if value is None or not isinstance(value, str):
        return False
    return bool(_UUID_PATTERN.match(value.strip()))
