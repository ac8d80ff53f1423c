"""
Patient field validation and name matching helpers.

Validators raise HTTPException with machine-readable error codes so the
assistant can explain the problem to the clinician.
"""

import re
import unicodedata
from datetime import date
from typing import Any, List, Optional

from fastapi import HTTPException, status

from utils.datetime_utils import parse_iso_date


VALID_GENDERS = ("male", "female")
_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _bad_request(code: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=code)


def normalize_for_name_match(value: str) -> str:
    """
    Normalize a name for matching: trimmed, lowercase, single spaces, no accents.

    "  José   PÉREZ " becomes "jose perez".
    """
    collapsed = re.sub(r'\s+', ' ', value.strip().lower())
    decomposed = unicodedata.normalize('NFD', collapsed)
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def name_matches(query: str, name: str, last_name: str) -> bool:
    """Whether a search query matches a patient's first, last or full name."""
    normalized = normalize_for_name_match(query)
    if not normalized:
        return False
    full = normalize_for_name_match(f"{name} {last_name}")
    return (
        normalized in full
        or normalized in normalize_for_name_match(name)
        or normalized in normalize_for_name_match(last_name)
    )


def require_text(value: Any, code: str = "bad-request") -> str:
    """Return a stripped non-empty string or raise 400 with the given code."""
    if not isinstance(value, str) or not value.strip():
        raise _bad_request(code)
    return value.strip()


def validate_email(value: Any) -> str:
    email = require_text(value, "patient-invalid-email")
    if not _EMAIL_PATTERN.match(email):
        raise _bad_request("patient-invalid-email")
    return email


def validate_gender(value: Optional[Any]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or value.strip().lower() not in VALID_GENDERS:
        raise _bad_request("patient-invalid-gender")
    return value.strip().lower()


def validate_birth_date(value: Optional[Any]) -> Optional[date]:
    if value is None or value == "":
        return None
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise _bad_request("invalid-date")


def validate_string_list(value: Optional[Any]) -> Optional[List[str]]:
    """Validate an optional list of free-text entries (antecedents, symptoms)."""
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise _bad_request("bad-request")
    return [item.strip() for item in value if item.strip()]
