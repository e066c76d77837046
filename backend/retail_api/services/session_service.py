# Overview: Bearer session tokens: issue, validate with absolute/idle timeouts, revoke, clean up.

"""
Session Token Management Service

Tokens are cryptographically secure, stored only as SHA-256 hashes, and
time-limited:
- absolute timeout: SESSION_ABSOLUTE_TIMEOUT_HOURS (default 24)
- idle timeout: SESSION_IDLE_TIMEOUT_HOURS (default 2)

Sessions are revocable on logout, on deactivation of the user and on
password changes.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """What validate_session hands to the request: the user and their session row."""
    user: User
    session: SessionToken


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 of the token; tokens are high-entropy so a fast hash suffices."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int, user_agent: str | None = None,
                   ip_address: str | None = None) -> tuple[SessionToken, str]:
    """
    Create a session for a user.

    Returns (session_record, plaintext_token). The database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a token and return its SessionContext.

    Returns None if the token is unknown, expired, idle too long, revoked, or
    belongs to a deactivated user. Updates last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if a live session was revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *,
                             keep_session_id: int | None = None) -> int:
    """Revoke every live session of a user; returns the count."""
    query = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False)
    if keep_session_id is not None:
        query = query.filter(SessionToken.id != keep_session_id)

    count = 0
    for session in query.all():
        _revoke(session, reason)
        count += 1

    db.session.commit()
    if count:
        logger.info("Revoked %d sessions for user %s (%s)", count, user_id, reason)
    return count


def cleanup_expired_sessions(days: int = 30) -> int:
    """Delete sessions that are expired or revoked and older than `days`."""
    cutoff = utcnow() - timedelta(days=days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
