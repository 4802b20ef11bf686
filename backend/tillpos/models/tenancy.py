from __future__ import annotations

from ..extensions import db
from tillpos.time_utils import to_utc_z

PLAN_FREE = "free"
PLAN_BASIC = "basic"
PLAN_PREMIUM = "premium"

# Default resource limits per plan: (cash registers, products, employees)
PLAN_LIMITS = {
    PLAN_FREE: (1, 100, 1),
    PLAN_BASIC: (3, 500, 10),
    PLAN_PREMIUM: (20, 10_000, 100),
}


class Company(db.Model):
    """
    Multi-tenant root: every business is a Company.

    All products, employees, registers, sessions and sales belong to exactly
    one company (company_id). No data may cross company boundaries.

    Plan limits cap how many registers, products and employees the company
    can create.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)  # Login code
    plan = db.Column(db.String(16), nullable=False, default=PLAN_FREE)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    max_cash_registers = db.Column(db.Integer, nullable=False, default=1)
    max_products = db.Column(db.Integer, nullable=False, default=100)
    max_employees = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    settings = db.relationship("CompanySettings", uselist=False, back_populates="company")
    api_settings = db.relationship("ApiSettings", uselist=False, back_populates="company")

    def __repr__(self) -> str:
        return f"<Company id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "plan": self.plan,
            "is_active": self.is_active,
            "max_cash_registers": self.max_cash_registers,
            "max_products": self.max_products,
            "max_employees": self.max_employees,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CompanySettings(db.Model):
    """
    Company profile and back-office credentials.

    SECURITY: admin_password_hash is a bcrypt hash. Plaintext passwords are
    never stored.
    """
    __tablename__ = "company_settings"

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), primary_key=True)
    company_name = db.Column(db.String(255), nullable=False)
    company_address = db.Column(db.String(255), nullable=True)
    company_phone = db.Column(db.String(64), nullable=True)
    company_email = db.Column(db.String(255), nullable=True)
    company_tax_id = db.Column(db.String(64), nullable=True)
    company_logo = db.Column(db.Text, nullable=True)

    admin_username = db.Column(db.String(64), nullable=False)
    admin_password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", back_populates="settings")

    def to_dict(self) -> dict:
        # Never expose admin_password_hash
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "company_address": self.company_address,
            "company_phone": self.company_phone,
            "company_email": self.company_email,
            "company_tax_id": self.company_tax_id,
            "company_logo": self.company_logo,
            "admin_username": self.admin_username,
            "updated_at": to_utc_z(self.updated_at),
        }


class ApiSettings(db.Model):
    """Per-company payment gateway credentials used by the relay."""
    __tablename__ = "api_settings"

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), primary_key=True)
    gateway_access_token = db.Column(db.String(255), nullable=True)
    gateway_public_key = db.Column(db.String(255), nullable=True)
    gateway_user_id = db.Column(db.String(64), nullable=True)
    gateway_store_id = db.Column(db.String(64), nullable=True)
    gateway_pos_id = db.Column(db.String(64), nullable=True)
    gateway_enabled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", back_populates="api_settings")

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "gateway_enabled": self.gateway_enabled,
            "has_access_token": bool(self.gateway_access_token),
            "has_public_key": bool(self.gateway_public_key),
            "gateway_user_id": self.gateway_user_id,
            "gateway_store_id": self.gateway_store_id,
            "gateway_pos_id": self.gateway_pos_id,
        }
