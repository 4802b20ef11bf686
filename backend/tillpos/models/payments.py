from __future__ import annotations

from ..extensions import db
from tillpos.time_utils import to_utc_z

METHOD_CARD = "card"
METHOD_QR = "qr"
METHOD_POINT = "point"

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_CANCELED = "canceled"
FINAL_STATUSES = (STATUS_APPROVED, STATUS_REJECTED, STATUS_CANCELED)


class PaymentIntent(db.Model):
    """
    Pending electronic payment waiting for gateway or operator confirmation.

    WHY: Terminals poll these rows while the customer pays on a QR code or
    card device. Status moves from pending to exactly one final status.

    external_reference is the id the gateway echoes back in webhooks.
    """
    __tablename__ = "payment_intents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True, index=True)

    external_reference = db.Column(db.String(128), nullable=False, unique=True, index=True)
    method = db.Column(db.String(16), nullable=False)  # card, qr, point
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    provider_order_id = db.Column(db.String(128), nullable=True)
    provider_payment_id = db.Column(db.String(128), nullable=True)
    qr_data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "cash_register_id": self.cash_register_id,
            "external_reference": self.external_reference,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "status": self.status,
            "provider_order_id": self.provider_order_id,
            "provider_payment_id": self.provider_payment_id,
            "qr_data": self.qr_data,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
