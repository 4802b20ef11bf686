from __future__ import annotations

from ..extensions import db
from tillpos.time_utils import to_utc_z

ROLE_CASHIER = "cashier"
ROLE_ADMIN = "admin"
EMPLOYEE_ROLES = (ROLE_CASHIER, ROLE_ADMIN)


class Product(db.Model):
    """
    Sellable item with one price per tender family.

    WHY two prices: businesses commonly charge a surcharge on card/QR
    payments. cash_price_cents applies to cash; card_price_cents applies
    to card and QR.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    cash_price_cents = db.Column(db.Integer, nullable=False, default=0)
    card_price_cents = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(128), nullable=True)
    image = db.Column(db.Text, nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("products", lazy=True))

    def price_for(self, payment_method: str) -> int:
        """Applied unit price for the given tender."""
        return self.cash_price_cents if payment_method == "cash" else self.card_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "cash_price_cents": self.cash_price_cents,
            "card_price_cents": self.card_price_cents,
            "category": self.category,
            "image": self.image,
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Employee(db.Model):
    """
    Staff member. Only active cashiers may be assigned to a register.

    Employees are not login users: terminals authenticate by register
    access token, and back-office access uses the company admin credentials.
    """
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER)  # cashier, admin
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("employees", lazy=True))

    @property
    def is_assignable(self) -> bool:
        return bool(self.is_active) and self.role == ROLE_CASHIER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
