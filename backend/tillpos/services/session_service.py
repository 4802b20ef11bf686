# Overview: Admin bearer-token sessions; creation, validation and revocation.

"""
Admin Session Tokens

WHY: Back-office requests carry an opaque bearer token instead of the
password. Tokens are random, stored only as SHA-256 hashes, time-limited and
revocable.

MULTI-TENANT: A session captures company_id at login. Every authenticated
request is scoped to that company and it never changes for the session.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AdminSession, Company
from ..time_utils import utcnow


@dataclass
class SessionContext:
    session: AdminSession
    company: Company

    @property
    def company_id(self) -> int:
        return self.company.id


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    """
    SHA-256 of the token.

    WHY SHA-256 not bcrypt: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    company: Company,
    username: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[AdminSession, str]:
    """Returns (session_record, plaintext_token). Only the hash is stored."""
    plaintext_token = generate_token()
    now = utcnow()
    hours = current_app.config.get("ADMIN_SESSION_HOURS", 12)

    session = AdminSession(
        company_id=company.id,
        username=username,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(hours=hours),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token.

    Returns None if the token is unknown, expired or revoked, or if the
    company has been deactivated.
    """
    if not token:
        return None
    now = utcnow()
    session = db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked or session.expires_at <= now:
        return None

    company = db.session.get(Company, session.company_id)
    if company is None or not company.is_active:
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(session=session, company=company)


def revoke_session(token: str) -> bool:
    session = db.session.query(AdminSession).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    """Delete expired or revoked sessions. Returns the number removed."""
    count = (
        db.session.query(AdminSession)
        .filter((AdminSession.expires_at <= utcnow()) | (AdminSession.is_revoked.is_(True)))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count
