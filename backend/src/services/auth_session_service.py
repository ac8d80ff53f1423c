"""
Session token issuance for the companion web view.

Each WhatsApp number holds at most one opaque token. A valid token is reused
verbatim so links already sent to the clinician keep working; an expired one
is replaced by a freshly generated token (never extended).
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from core.constants import SESSION_TOKEN_BYTES, SESSION_TOKEN_TTL_MINUTES
from models import WhatsAppAuthSession
from utils.datetime_utils import ensure_utc, utc_now
from utils.phone_validator import normalize_address
from utils.query_helpers import build_upsert

logger = logging.getLogger(__name__)


class IssuedSession(NamedTuple):
    """Token handed to the conversation layer."""

    auth_token: str
    expires_at: datetime


class AuthSessionService:
    """Service for WhatsApp session tokens."""

    @staticmethod
    def _find_by_phone(db: Session, phone_number: str) -> Optional[WhatsAppAuthSession]:
        return db.query(WhatsAppAuthSession).filter(
            WhatsAppAuthSession.phone_number == phone_number
        ).execution_options(populate_existing=True).first()

    @staticmethod
    def get_or_create_session(
        db: Session,
        address: str,
        clinician_id: str,
        now: Optional[datetime] = None,
    ) -> IssuedSession:
        """
        Return the valid token for an address, issuing a new one if needed.

        Renewal is a single INSERT ... ON CONFLICT DO UPDATE keyed by phone
        number; concurrent renewals for the same number resolve as last write
        wins.

        Args:
            db: Database session
            address: Transport address (prefix optional)
            clinician_id: Clinician the token authorizes
            now: Current time (injected in tests)

        Returns:
            IssuedSession with the token and its expiry

        Raises:
            ValueError: If the address is empty after normalization
        """
        now = now or utc_now()
        phone_number = normalize_address(address)
        if not phone_number:
            raise ValueError("Address is required to issue a session token")

        existing = AuthSessionService._find_by_phone(db, phone_number)
        if existing is not None:
            expires_at = ensure_utc(existing.expires_at)
            if expires_at > now and existing.clinician_id == clinician_id:
                existing.last_message_at = now
                db.commit()
                return IssuedSession(auth_token=existing.auth_token, expires_at=expires_at)

        auth_token = secrets.token_hex(SESSION_TOKEN_BYTES)
        expires_at = now + timedelta(minutes=SESSION_TOKEN_TTL_MINUTES)

        stmt = build_upsert(
            db,
            WhatsAppAuthSession,
            {
                "phone_number": phone_number,
                "clinician_id": clinician_id,
                "auth_token": auth_token,
                "expires_at": expires_at,
                "last_message_at": now,
                "created_at": now,
                "updated_at": now,
            },
            conflict_columns=["phone_number"],
            update_columns=["clinician_id", "auth_token", "expires_at", "last_message_at", "updated_at"],
        )
        try:
            db.execute(stmt)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if existing is not None:
            db.expire(existing)

        logger.info(f"Issued session token for phone={phone_number}, clinician_id={clinician_id}")
        return IssuedSession(auth_token=auth_token, expires_at=expires_at)

    @staticmethod
    def touch(db: Session, address: str, now: Optional[datetime] = None) -> bool:
        """
        Record inbound activity for an address without touching the token.

        Returns:
            True if a session row exists for the address
        """
        now = now or utc_now()
        session_row = AuthSessionService._find_by_phone(db, normalize_address(address))
        if session_row is None:
            return False
        session_row.last_message_at = now
        db.commit()
        return True

    @staticmethod
    def resolve_token(db: Session, auth_token: str, now: Optional[datetime] = None) -> Optional[str]:
        """
        Resolve a token to its clinician id.

        Returns:
            Clinician id for an unexpired token, otherwise None
        """
        if not auth_token:
            return None
        now = now or utc_now()
        session_row = db.query(WhatsAppAuthSession).filter(
            WhatsAppAuthSession.auth_token == auth_token
        ).first()
        if session_row is None or ensure_utc(session_row.expires_at) <= now:
            return None
        return session_row.clinician_id

    @staticmethod
    def delete_expired_sessions(db: Session, retention_hours: int, now: Optional[datetime] = None) -> int:
        """
        Delete tokens that expired more than retention_hours ago.

        Returns:
            Number of rows deleted
        """
        cutoff = (now or utc_now()) - timedelta(hours=retention_hours)
        deleted = db.query(WhatsAppAuthSession).filter(
            WhatsAppAuthSession.expires_at < cutoff
        ).delete(synchronize_session=False)
        db.commit()
        return deleted
