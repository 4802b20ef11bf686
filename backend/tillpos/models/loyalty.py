from __future__ import annotations

from ..extensions import db
from tillpos.time_utils import to_utc_z

CALCULATION_AMOUNT = "amount"
CALCULATION_QUANTITY = "quantity"
CALCULATION_TYPES = (CALCULATION_AMOUNT, CALCULATION_QUANTITY)


class LoyaltyProgram(db.Model):
    """
    Per-company points program (at most one per company).

    CALCULATION TYPES:
    - amount: points_per_unit for every unit_value cents spent
    - quantity: points_per_unit for every unit_value items bought

    When reward_threshold_points is set, reaching it makes a reward
    available and the customer balance starts over at zero.
    """
    __tablename__ = "loyalty_programs"
    __table_args__ = (
        db.UniqueConstraint("company_id", name="uq_loyalty_programs_company"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    calculation_type = db.Column(db.String(16), nullable=False, default=CALCULATION_AMOUNT)
    points_per_unit = db.Column(db.Integer, nullable=False, default=1)
    unit_value = db.Column(db.Integer, nullable=False, default=100)
    min_purchase_cents = db.Column(db.Integer, nullable=True)
    min_items = db.Column(db.Integer, nullable=True)
    reward_threshold_points = db.Column(db.Integer, nullable=True)
    reward_label = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "calculation_type": self.calculation_type,
            "points_per_unit": self.points_per_unit,
            "unit_value": self.unit_value,
            "min_purchase_cents": self.min_purchase_cents,
            "min_items": self.min_items,
            "reward_threshold_points": self.reward_threshold_points,
            "reward_label": self.reward_label,
            "is_active": self.is_active,
            "updated_at": to_utc_z(self.updated_at),
        }


class Customer(db.Model):
    """Loyalty customer, identified at the terminal by QR code or document number."""
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("company_id", "qr_code", name="uq_customers_company_qr"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=True)
    dni = db.Column(db.String(32), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    qr_code = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    points = db.relationship("CustomerPoints", uselist=False, back_populates="customer")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "dni": self.dni,
            "email": self.email,
            "phone": self.phone,
            "qr_code": self.qr_code,
            "created_at": to_utc_z(self.created_at),
            "points": self.points.to_dict() if self.points else None,
        }


class CustomerPoints(db.Model):
    """Current and lifetime points of one customer."""
    __tablename__ = "customer_points"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_customer_points_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", back_populates="points")

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "points_balance": self.points_balance,
            "lifetime_points": self.lifetime_points,
            "updated_at": to_utc_z(self.updated_at),
        }


class PointTransaction(db.Model):
    """
    Append-only log of points awarded.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "point_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=True, index=True)

    points_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "points_change": self.points_change,
            "reason": self.reason,
            "details": self.details,
            "occurred_at": to_utc_z(self.occurred_at),
        }
