"""
Identity resolution for inbound WhatsApp messages.

Maps a transport address to the clinician who owns it. Pure lookup; no state
is created for unknown senders.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from models import Clinician
from utils.phone_validator import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClinicianIdentity:
    """Resolved clinician for an inbound address."""

    clinician_id: str
    full_name: str


def find_clinician_by_address(db: Session, address: str) -> Optional[ClinicianIdentity]:
    """
    Find the clinician whose stored phone number matches an address.

    Args:
        db: Database session
        address: Raw transport address, with or without "whatsapp:" prefix

    Returns:
        ClinicianIdentity, or None if the address is unknown
    """
    normalized = normalize_address(address)
    if not normalized:
        return None

    clinician = db.query(Clinician).filter(Clinician.phone_number == normalized).first()
    if not clinician:
        logger.info(f"No clinician registered for phone={normalized}")
        return None

    return ClinicianIdentity(clinician_id=clinician.id, full_name=clinician.full_name)
