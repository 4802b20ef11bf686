from __future__ import annotations

import uuid

from ..extensions import db
from tillpos.time_utils import to_utc_z

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_QR = "qr"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_QR)


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Sale(db.Model):
    """
    Completed sale recorded against an open register session.

    IMMUTABLE: Only the archive flag changes after creation.

    items is a JSON snapshot of the cart lines at sale time (product fields,
    quantity and applied_price_cents) so later catalog edits never rewrite
    history.

    session_id is stamped at creation from the register's open session and
    is the only way sales are associated with sessions.
    """
    __tablename__ = "sales"

    id = db.Column(db.String(36), primary_key=True, default=_new_uuid)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    session_id = db.Column(db.String(36), db.ForeignKey("cash_register_sessions.id"), nullable=True, index=True)

    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    cash_register_name = db.Column(db.String(128), nullable=False)
    employee_id = db.Column(db.Integer, nullable=True)  # Snapshot, not a foreign key
    employee_name = db.Column(db.String(255), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    items = db.Column(db.JSON, nullable=False, default=list)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # cash, card, qr
    received_amount_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)  # Gateway external reference

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    session = db.relationship("CashRegisterSession", backref=db.backref("sales", lazy=True))

    @property
    def item_count(self) -> int:
        return sum(int(item.get("quantity", 0)) for item in (self.items or []))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "session_id": self.session_id,
            "cash_register_id": self.cash_register_id,
            "cash_register_name": self.cash_register_name,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "date": to_utc_z(self.date),
            "items": list(self.items or []),
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "received_amount_cents": self.received_amount_cents,
            "change_cents": self.change_cents,
            "payment_reference": self.payment_reference,
            "customer_id": self.customer_id,
            "archived": self.archived,
            "archived_at": to_utc_z(self.archived_at),
        }
