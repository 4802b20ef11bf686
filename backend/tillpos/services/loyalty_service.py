# Overview: Loyalty program, customers and point awards on completed sales.

"""
Loyalty Service

WHY: Customers identified at the counter (QR code or document number) earn
points on each sale according to the company's program.

RULES:
- amount program: floor(total / unit_value) * points_per_unit
- quantity program: floor(item_count / unit_value) * points_per_unit
- zero points when the program is inactive or below min_purchase / min_items
- reaching reward_threshold_points makes a reward available and the
  balance starts over at zero; lifetime points keep growing
- every award is appended to point_transactions
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass

from ..extensions import db
from ..models import Customer, CustomerPoints, LoyaltyProgram, PointTransaction, Sale
from ..models.loyalty import CALCULATION_AMOUNT, CALCULATION_TYPES
from ..validation import ValidationError, clean_text, coerce_cents, coerce_positive_int
from .persistence import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_REWARD_LABEL = "Reward available"


@dataclass
class AwardResult:
    points_earned: int
    new_balance: int
    program_name: str
    reward_available: bool = False
    reward_label: str | None = None

    def to_dict(self) -> dict:
        return {
            "points_earned": self.points_earned,
            "new_balance": self.new_balance,
            "program_name": self.program_name,
            "reward_available": self.reward_available,
            "reward_label": self.reward_label,
        }


# =============================================================================
# PROGRAM
# =============================================================================

def get_program(company_id: int) -> LoyaltyProgram | None:
    return db.session.query(LoyaltyProgram).filter_by(company_id=company_id).first()


def save_program(company_id: int, payload: dict) -> LoyaltyProgram:
    """Create or replace the company's program."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    calculation_type = payload.get("calculation_type", CALCULATION_AMOUNT)
    if calculation_type not in CALCULATION_TYPES:
        raise ValidationError(f"calculation_type must be one of: {', '.join(CALCULATION_TYPES)}")
    is_active = payload.get("is_active", True)
    if not isinstance(is_active, bool):
        raise ValidationError("is_active must be true or false")

    threshold = payload.get("reward_threshold_points")
    values = {
        "name": clean_text(payload.get("name"), "name", max_length=128, required=True),
        "calculation_type": calculation_type,
        "points_per_unit": coerce_positive_int(payload.get("points_per_unit"), "points_per_unit"),
        "unit_value": coerce_positive_int(payload.get("unit_value"), "unit_value"),
        "min_purchase_cents": coerce_cents(payload.get("min_purchase_cents"), "min_purchase_cents", allow_none=True),
        "min_items": coerce_cents(payload.get("min_items"), "min_items", allow_none=True),
        "reward_threshold_points": coerce_positive_int(threshold, "reward_threshold_points") if threshold else None,
        "reward_label": clean_text(payload.get("reward_label"), "reward_label", max_length=255),
        "is_active": is_active,
    }

    program = get_program(company_id)
    if program is None:
        program = LoyaltyProgram(company_id=company_id)
        db.session.add(program)
    for key, value in values.items():
        setattr(program, key, value)
    db.session.commit()
    return program


def calculate_points(program: LoyaltyProgram | None, total_cents: int, item_count: int) -> int:
    if program is None or not program.is_active or program.unit_value <= 0:
        return 0
    if program.min_purchase_cents and total_cents < program.min_purchase_cents:
        return 0
    if program.min_items and item_count < program.min_items:
        return 0

    basis = total_cents if program.calculation_type == CALCULATION_AMOUNT else item_count
    return (basis // program.unit_value) * program.points_per_unit


# =============================================================================
# CUSTOMERS
# =============================================================================

def _new_qr_code() -> str:
    return f"CUS-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def get_customer(company_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(company_id=company_id, id=customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def find_customer_by_qr(company_id: int, qr_code: str) -> Customer:
    customer = db.session.query(Customer).filter_by(company_id=company_id, qr_code=(qr_code or "").strip()).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(company_id: int) -> list[Customer]:
    return db.session.query(Customer).filter_by(company_id=company_id).order_by(Customer.id.desc()).all()


def ensure_points(company_id: int, customer_id: int) -> CustomerPoints:
    points = db.session.query(CustomerPoints).filter_by(customer_id=customer_id).first()
    if points is None:
        points = CustomerPoints(company_id=company_id, customer_id=customer_id, points_balance=0, lifetime_points=0)
        db.session.add(points)
        db.session.flush()
    return points


def register_customer(company_id: int, payload: dict) -> Customer:
    """
    Create a customer, or refresh contact details when the dni is known.

    Returns the customer with a points row ensured.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    dni = clean_text(payload.get("dni"), "dni", max_length=32)
    name = clean_text(payload.get("name"), "name", max_length=255)
    email = clean_text(payload.get("email"), "email", max_length=255)
    phone = clean_text(payload.get("phone"), "phone", max_length=64)
    if not (dni or name or email or phone):
        raise ValidationError("Provide at least one of: dni, name, email, phone")

    customer = None
    if dni:
        customer = db.session.query(Customer).filter_by(company_id=company_id, dni=dni).first()

    if customer is None:
        customer = Customer(company_id=company_id, dni=dni, name=name, email=email, phone=phone, qr_code=_new_qr_code())
        db.session.add(customer)
        db.session.flush()
    else:
        customer.name = name or customer.name
        customer.email = email or customer.email
        customer.phone = phone or customer.phone

    ensure_points(company_id, customer.id)
    db.session.commit()
    return customer


# =============================================================================
# AWARDS
# =============================================================================

def award_points(company_id: int, customer_id: int, sale: Sale) -> AwardResult | None:
    """
    Award points for a recorded sale.

    Returns None when the program is inactive or the sale earns nothing.
    """
    program = get_program(company_id)
    if program is None or not program.is_active:
        return None

    item_count = sale.item_count
    earned = calculate_points(program, sale.total_cents, item_count)
    if earned <= 0:
        return None

    get_customer(company_id, customer_id)
    points = ensure_points(company_id, customer_id)

    new_balance = points.points_balance + earned
    reward_available = False
    reward_label = None
    if program.reward_threshold_points and new_balance >= program.reward_threshold_points:
        reward_available = True
        reward_label = program.reward_label or DEFAULT_REWARD_LABEL
        new_balance = 0

    points.points_balance = max(0, new_balance)
    points.lifetime_points = points.lifetime_points + earned

    db.session.add(PointTransaction(
        company_id=company_id,
        customer_id=customer_id,
        sale_id=sale.id,
        points_change=earned,
        reason="Purchase",
        details={
            "total_cents": sale.total_cents,
            "item_count": item_count,
            "program_type": program.calculation_type,
        },
    ))
    db.session.commit()

    if reward_available:
        logger.info("Customer %s reached the reward threshold", customer_id)
    return AwardResult(
        points_earned=earned,
        new_balance=points.points_balance,
        program_name=program.name,
        reward_available=reward_available,
        reward_label=reward_label,
    )
