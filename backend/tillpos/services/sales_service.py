# Overview: Terminal checkout; builds a sale from a cart and records it through the session ledger.

"""
Sales Service

WHY: The terminal sends a cart (product ids and quantities) plus a tender.
Prices, totals and change are always computed here from the catalog, never
trusted from the client.

DESIGN:
- applied price is cash_price for cash, card_price for card and QR
- cash requires received_amount >= total and yields change
- card/QR sales may reference an approved payment intent; an externally
  confirmed payment and a manually confirmed one are recorded the same way
- stock is decremented after the sale is recorded (floored at zero)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import CashRegister, CashRegisterSession, PaymentIntent, Sale
from ..models.payments import STATUS_APPROVED
from ..models.sales import PAYMENT_CASH, PAYMENT_METHODS, PAYMENT_QR
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_cents, coerce_positive_int
from . import catalog_service, loyalty_service, persistence, register_service, session_ledger
from .loyalty_service import AwardResult

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    sale: Sale
    session: CashRegisterSession
    points: AwardResult | None = None

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "session": self.session.to_dict(),
            "points": self.points.to_dict() if self.points else None,
        }


def _parse_cart(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    quantities: dict[int, int] = {}
    for line in items:
        if not isinstance(line, dict):
            raise ValidationError("Each item must be an object with product_id and quantity")
        product_id = coerce_positive_int(line.get("product_id"), "product_id")
        quantity = coerce_positive_int(line.get("quantity"), "quantity")
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return list(quantities.items())


def _check_payment_reference(register: CashRegister, reference: str, method: str, total: int) -> None:
    intent = (
        db.session.query(PaymentIntent)
        .filter_by(company_id=register.company_id, external_reference=reference)
        .first()
    )
    if intent is None:
        raise ValidationError("Unknown payment reference")
    if intent.status != STATUS_APPROVED:
        raise ValidationError(f"Payment is {intent.status}, not approved")
    expected_method = PAYMENT_QR if intent.method == PAYMENT_QR else "card"
    if method != expected_method:
        raise ValidationError("Payment reference does not match the payment method")
    if intent.amount_cents != total:
        raise ValidationError("Payment amount does not match the sale total")
    if db.session.query(Sale.id).filter_by(payment_reference=reference).first():
        raise ValidationError("Payment reference already used by another sale")


def build_sale(
    register: CashRegister,
    items,
    payment_method: str,
    received_amount_cents=None,
    customer_id: int | None = None,
    payment_reference: str | None = None,
) -> Sale:
    """Price the cart and return an unsaved Sale."""
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    lines = []
    subtotal = 0
    for product_id, quantity in _parse_cart(items):
        product = persistence.get_product(register.company_id, product_id)
        price = product.price_for(payment_method)
        lines.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "cash_price_cents": product.cash_price_cents,
            "card_price_cents": product.card_price_cents,
            "quantity": quantity,
            "applied_price_cents": price,
            "line_total_cents": price * quantity,
        })
        subtotal += price * quantity
    total = subtotal

    received = None
    change = None
    if payment_method == PAYMENT_CASH:
        received = coerce_cents(received_amount_cents, "received_amount_cents")
        if received < total:
            raise ValidationError("Received amount is less than the sale total")
        change = received - total
        if payment_reference:
            raise ValidationError("Cash sales cannot carry a payment reference")
    elif payment_reference:
        _check_payment_reference(register, payment_reference, payment_method, total)

    if customer_id is not None:
        customer_id = coerce_positive_int(customer_id, "customer_id")
        loyalty_service.get_customer(register.company_id, customer_id)

    return Sale(
        company_id=register.company_id,
        cash_register_id=register.id,
        cash_register_name=register.name,
        employee_id=register.employee_id,
        employee_name=register.employee_name,
        date=utcnow(),
        items=lines,
        subtotal_cents=subtotal,
        total_cents=total,
        payment_method=payment_method,
        received_amount_cents=received,
        change_cents=change,
        payment_reference=payment_reference,
        customer_id=customer_id,
        archived=False,
    )


def checkout(
    register: CashRegister,
    items,
    payment_method: str,
    received_amount_cents=None,
    customer_id: int | None = None,
    payment_reference: str | None = None,
) -> CheckoutResult:
    """
    Terminal sale.

    Raises:
        RegisterClosedError: register is not open
        ValidationError: bad cart, tender or payment reference
    """
    register_service.require_terminal_open(register)
    sale = build_sale(register, items, payment_method, received_amount_cents, customer_id, payment_reference)

    session = session_ledger.record_sale(sale)

    for line in sale.items:
        catalog_service.decrement_stock(register.company_id, line["product_id"], line["quantity"])
    persistence.commit("update stock")

    points = None
    if sale.customer_id is not None:
        points = loyalty_service.award_points(register.company_id, sale.customer_id, sale)

    logger.info(
        "Sale %s recorded on register %s: %s %s",
        sale.id, register.id, payment_method, sale.total_cents,
    )
    return CheckoutResult(sale=sale, session=session, points=points)


def list_sales(company_id: int, **filters) -> list[Sale]:
    return persistence.list_sales(company_id, **filters)
