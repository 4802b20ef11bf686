from __future__ import annotations

import uuid

from ..extensions import db
from tillpos.time_utils import to_utc_z

SESSION_OPEN = "open"
SESSION_CLOSED = "closed"


def _new_uuid() -> str:
    return str(uuid.uuid4())


class CashRegister(db.Model):
    """
    Physical till addressed by a terminal.

    WHY: Each register has its own cash drawer. current_balance_cents is the
    running amount of cash that should be in the drawer while a session is
    open.

    DESIGN: is_active mirrors "has exactly one open session". The two can
    drift apart (partial failures, bulk clears); the drift is reported by
    register_service.inspect_register and fixed by an explicit repair.

    SECURITY: access_token is a capability. Anyone holding it can operate the
    terminal, so it is generated with a random suffix and can be rotated.
    """
    __tablename__ = "cash_registers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    employee_name = db.Column(db.String(255), nullable=True)  # Snapshot at assignment time

    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    access_token = db.Column(db.String(128), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("cash_registers", lazy=True))
    employee = db.relationship("Employee", backref=db.backref("cash_registers", lazy=True))

    def to_dict(self, include_token: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "is_active": self.is_active,
            "opening_balance_cents": self.opening_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_token:
            data["access_token"] = self.access_token
        return data


class CashRegisterSession(db.Model):
    """
    One opening-to-closing period of a register.

    LIFECYCLE:
    - open: accruing sales, totals recomputed after every sale
    - closed: totals and balances frozen, closing count recorded

    ARCHIVE: archived flips false -> true once, only for closed sessions.
    Rows are never deleted.

    Ids are UUID strings so exported sessions can be imported into another
    database of the same company without collisions.
    """
    __tablename__ = "cash_register_sessions"

    id = db.Column(db.String(36), primary_key=True, default=_new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    cash_register_name = db.Column(db.String(128), nullable=False)
    employee_id = db.Column(db.Integer, nullable=True)  # Snapshot, not a foreign key
    employee_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)  # open, closed
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=True)
    expected_balance_cents = db.Column(db.Integer, nullable=True)

    # total_sales is a count of sales; total_cash/total_card are money
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_cents = db.Column(db.Integer, nullable=False, default=0)

    archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    cash_register = db.relationship("CashRegister", backref=db.backref("sessions", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    @property
    def variance_cents(self) -> int | None:
        """Counted minus expected. Negative is a shortfall."""
        if self.closing_balance_cents is None or self.expected_balance_cents is None:
            return None
        return self.closing_balance_cents - self.expected_balance_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "cash_register_id": self.cash_register_id,
            "cash_register_name": self.cash_register_name,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "opening_balance_cents": self.opening_balance_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "variance_cents": self.variance_cents,
            "total_sales": self.total_sales,
            "total_cash_cents": self.total_cash_cents,
            "total_card_cents": self.total_card_cents,
            "archived": self.archived,
            "archived_at": to_utc_z(self.archived_at),
        }
