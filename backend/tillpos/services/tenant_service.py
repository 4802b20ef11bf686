# Overview: Company (tenant) provisioning, plan limits and per-company settings.

"""
Tenant Service

MULTI-TENANT: A company is created together with its settings row (admin
credentials) and an empty, disabled payment gateway configuration.
"""

from __future__ import annotations

import logging
import re

from ..extensions import db
from ..models import ApiSettings, Company, CompanySettings
from ..models.tenancy import PLAN_LIMITS, PLAN_FREE
from ..validation import ConflictError, ValidationError, clean_text
from .auth_service import hash_password
from .persistence import NotFoundError

logger = logging.getLogger(__name__)

COMPANY_CODE_RE = re.compile(r"^[A-Z0-9_-]{2,32}$")

_SETTINGS_FIELDS = {
    "company_name": 255,
    "company_address": 255,
    "company_phone": 64,
    "company_email": 255,
    "company_tax_id": 64,
    "company_logo": 500_000,
}

_API_TEXT_FIELDS = {
    "gateway_access_token": 255,
    "gateway_public_key": 255,
    "gateway_user_id": 64,
    "gateway_store_id": 64,
    "gateway_pos_id": 64,
}


def create_company(
    name: str,
    code: str,
    admin_username: str,
    admin_password: str,
    plan: str = PLAN_FREE,
) -> Company:
    """
    Provision a new tenant.

    Raises ValidationError for bad input and ConflictError if the code is taken.
    """
    name = clean_text(name, "name", max_length=255, required=True)
    code = (code or "").strip().upper()
    if not COMPANY_CODE_RE.match(code):
        raise ValidationError("code must be 2-32 characters: letters, digits, '-' or '_'")
    if plan not in PLAN_LIMITS:
        raise ValidationError(f"plan must be one of: {', '.join(PLAN_LIMITS)}")
    admin_username = clean_text(admin_username, "admin_username", max_length=64, required=True)

    password_hash = hash_password(admin_password)

    if db.session.query(Company).filter_by(code=code).first():
        raise ConflictError(f"Company code '{code}' is already in use")

    max_registers, max_products, max_employees = PLAN_LIMITS[plan]
    company = Company(
        name=name,
        code=code,
        plan=plan,
        is_active=True,
        max_cash_registers=max_registers,
        max_products=max_products,
        max_employees=max_employees,
    )
    db.session.add(company)
    db.session.flush()

    db.session.add(CompanySettings(
        company_id=company.id,
        company_name=name,
        admin_username=admin_username,
        admin_password_hash=password_hash,
    ))
    db.session.add(ApiSettings(company_id=company.id, gateway_enabled=False))
    db.session.commit()

    logger.info("Company %s (%s) created on plan %s", company.id, code, plan)
    return company


def list_companies() -> list[Company]:
    return db.session.query(Company).order_by(Company.id).all()


def get_company(company_id: int) -> Company:
    company = db.session.get(Company, company_id)
    if company is None:
        raise NotFoundError("Company not found")
    return company


def change_plan(company_id: int, plan: str) -> Company:
    """Switch plan and reset the resource limits to that plan's defaults."""
    if plan not in PLAN_LIMITS:
        raise ValidationError(f"plan must be one of: {', '.join(PLAN_LIMITS)}")
    company = get_company(company_id)
    company.plan = plan
    company.max_cash_registers, company.max_products, company.max_employees = PLAN_LIMITS[plan]
    db.session.commit()
    return company


def check_limit(current: int, limit: int, label: str) -> None:
    if current >= limit:
        raise ConflictError(f"Plan limit reached: at most {limit} {label}")


def get_settings(company_id: int) -> CompanySettings:
    settings = db.session.get(CompanySettings, company_id)
    if settings is None:
        raise NotFoundError("Company settings not found")
    return settings


def update_settings(company_id: int, payload: dict) -> CompanySettings:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    settings = get_settings(company_id)
    for key, value in payload.items():
        if key not in _SETTINGS_FIELDS:
            raise ValidationError(f"Field not allowed: {key}")
        required = key == "company_name"
        setattr(settings, key, clean_text(value, key, max_length=_SETTINGS_FIELDS[key], required=required))
    db.session.commit()
    return settings


def get_api_settings(company_id: int) -> ApiSettings:
    settings = db.session.get(ApiSettings, company_id)
    if settings is None:
        settings = ApiSettings(company_id=company_id, gateway_enabled=False)
        db.session.add(settings)
        db.session.commit()
    return settings


def update_api_settings(company_id: int, payload: dict) -> ApiSettings:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    settings = get_api_settings(company_id)
    for key, value in payload.items():
        if key == "gateway_enabled":
            if not isinstance(value, bool):
                raise ValidationError("gateway_enabled must be true or false")
            settings.gateway_enabled = value
        elif key in _API_TEXT_FIELDS:
            setattr(settings, key, clean_text(value, key, max_length=_API_TEXT_FIELDS[key]))
        else:
            raise ValidationError(f"Field not allowed: {key}")
    db.session.commit()
    logger.info("Payment gateway settings updated for company %s", company_id)
    return settings
