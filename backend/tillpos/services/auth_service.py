# Overview: Admin credential hashing and verification behind an injectable verifier.

"""
Admin Authentication

WHY: The back office is protected by one admin username/password per
company. Passwords are stored as bcrypt hashes; the comparison is done by a
CredentialVerifier so tests and alternative backends can swap it out.

SECURITY NOTES:
- bcrypt cost factor 12
- Minimum 8 characters, at least one letter and one digit
- Unknown company, unknown username and wrong password all fail the same way
- Bearer tokens are handled separately (see session_service.py)
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

import bcrypt

from ..extensions import db
from ..models import Company, CompanySettings

logger = logging.getLogger(__name__)

# Verifying against this keeps timing similar when the company does not exist
_DUMMY_HASH = bcrypt.hashpw(b"tillpos-dummy-password", bcrypt.gensalt(rounds=4)).decode("utf-8")


class AuthenticationError(Exception):
    """Raised when credentials are rejected."""


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


class CredentialVerifier(Protocol):
    def verify(self, password: str, password_hash: str) -> bool:
        ...


class BcryptCredentialVerifier:
    """Default verifier. bcrypt.checkpw compares in constant time."""

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed hash in storage
            return False


default_verifier = BcryptCredentialVerifier()


def authenticate(
    company_code: str,
    username: str,
    password: str,
    verifier: CredentialVerifier | None = None,
) -> Company:
    """
    Check admin credentials for a company.

    Returns the Company on success; raises AuthenticationError otherwise.
    """
    verifier = verifier or default_verifier
    code = (company_code or "").strip().upper()

    company = db.session.query(Company).filter_by(code=code).first() if code else None
    settings = db.session.get(CompanySettings, company.id) if company else None

    if settings is None:
        verifier.verify(password or "", _DUMMY_HASH)
        logger.info("Admin login rejected: unknown company code %r", code)
        raise AuthenticationError("Invalid credentials")

    username_ok = (username or "").strip() == settings.admin_username
    password_ok = verifier.verify(password or "", settings.admin_password_hash)
    if not (username_ok and password_ok):
        logger.info("Admin login rejected for company %s", company.id)
        raise AuthenticationError("Invalid credentials")

    if not company.is_active:
        raise AuthenticationError("Company is not active")

    return company


def change_admin_password(company_id: int, new_password: str) -> None:
    settings = db.session.get(CompanySettings, company_id)
    if settings is None:
        raise AuthenticationError("Company settings not found")
    settings.admin_password_hash = hash_password(new_password)
    db.session.commit()
