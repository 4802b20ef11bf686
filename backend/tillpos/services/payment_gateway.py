# Overview: Payment gateway relay; QR and card-device orders, webhooks, signatures and card polling.

"""
Payment Relay

WHY: Terminals never hold gateway credentials. They ask this relay to create
a QR order or a card-device (Point) order using the company's stored
credentials, then wait for the payment to be confirmed by a webhook or by
the operator.

DESIGN:
- Pending payments are PaymentIntent rows keyed by external_reference
- Status moves once from pending to approved, rejected or canceled
- Webhooks are trusted only after HMAC-SHA256 verification of the manifest
  "id:<data_id>;request-id:<request_id>;ts:<ts>;"
- wait_for_payment is the only timed operation: poll every interval seconds
  up to max_attempts, then cancel the intent
- No settlement guarantees: a lost webhook leaves the intent pending until
  the operator confirms or the poll times out
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import httpx
from flask import current_app

from ..extensions import db
from ..models import ApiSettings, PaymentIntent
from ..models.payments import (
    METHOD_CARD,
    METHOD_POINT,
    METHOD_QR,
    STATUS_APPROVED,
    STATUS_CANCELED,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from ..time_utils import utcnow
from ..validation import ValidationError, clean_text, coerce_cents
from .persistence import NotFoundError

logger = logging.getLogger(__name__)

# Gateway payment/order statuses mapped onto intent statuses
_PROVIDER_STATUS = {
    "approved": STATUS_APPROVED,
    "processed": STATUS_APPROVED,
    "rejected": STATUS_REJECTED,
    "failed": STATUS_REJECTED,
    "cancelled": STATUS_CANCELED,
    "canceled": STATUS_CANCELED,
    "expired": STATUS_CANCELED,
}


class PaymentGatewayError(Exception):
    """Gateway unreachable, misconfigured, or it rejected the request."""


class PaymentStateError(Exception):
    """Intent is not in a state that allows the requested transition."""


class WebhookSignatureError(Exception):
    """Missing or invalid webhook signature."""


@dataclass(frozen=True)
class GatewayCredentials:
    access_token: str
    user_id: str | None
    store_id: str
    pos_id: str


# =============================================================================
# CREDENTIALS / HTTP
# =============================================================================

def get_credentials(company_id: int) -> GatewayCredentials:
    settings = db.session.get(ApiSettings, company_id)
    if settings is None or not settings.gateway_enabled or not settings.gateway_access_token:
        raise PaymentGatewayError("Payment gateway is not configured for this company")
    return GatewayCredentials(
        access_token=settings.gateway_access_token,
        user_id=settings.gateway_user_id,
        store_id=settings.gateway_store_id or current_app.config["PAYMENT_DEFAULT_STORE_ID"],
        pos_id=settings.gateway_pos_id or current_app.config["PAYMENT_DEFAULT_POS_ID"],
    )


def _client(credentials: GatewayCredentials) -> httpx.Client:
    return httpx.Client(
        base_url=current_app.config["PAYMENT_API_BASE_URL"],
        timeout=current_app.config["PAYMENT_HTTP_TIMEOUT"],
        headers={"Authorization": f"Bearer {credentials.access_token}"},
        transport=current_app.config.get("PAYMENT_HTTP_TRANSPORT"),
    )


def _request(credentials: GatewayCredentials, method: str, path: str, json: dict | None = None) -> dict:
    try:
        with _client(credentials) as client:
            response = client.request(method, path, json=json)
    except httpx.HTTPError as exc:
        logger.error("Gateway request %s %s failed: %s", method, path, exc)
        raise PaymentGatewayError("Payment gateway is unreachable") from exc

    if response.is_error:
        logger.error("Gateway %s %s returned %s: %s", method, path, response.status_code, response.text[:500])
        raise PaymentGatewayError(f"Payment gateway rejected the request ({response.status_code})")
    try:
        data = response.json()
    except ValueError as exc:
        raise PaymentGatewayError("Payment gateway returned an invalid response") from exc
    if isinstance(data, dict) and data.get("error"):
        raise PaymentGatewayError(str(data.get("message") or data["error"]))
    return data


def _to_units(amount_cents: int) -> float:
    return round(amount_cents / 100, 2)


def new_external_reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:20]}"


# =============================================================================
# INTENTS
# =============================================================================

def _create_intent(
    company_id: int,
    method: str,
    amount_cents,
    description: str | None,
    external_reference: str | None,
    cash_register_id: int | None,
) -> PaymentIntent:
    amount = coerce_cents(amount_cents, "amount_cents")
    if amount <= 0:
        raise ValidationError("amount_cents must be > 0")
    reference = clean_text(external_reference, "external_reference", max_length=128) or new_external_reference(method)
    if db.session.query(PaymentIntent.id).filter_by(external_reference=reference).first():
        raise ValidationError("external_reference already used")

    now = utcnow()
    intent = PaymentIntent(
        company_id=company_id,
        cash_register_id=cash_register_id,
        external_reference=reference,
        method=method,
        amount_cents=amount,
        description=clean_text(description, "description", max_length=255) or "Sale",
        status=STATUS_PENDING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(intent)
    db.session.flush()
    return intent


def get_intent(company_id: int, external_reference: str) -> PaymentIntent:
    intent = (
        db.session.query(PaymentIntent)
        .filter_by(company_id=company_id, external_reference=external_reference)
        .first()
    )
    if intent is None:
        raise NotFoundError("Payment not found")
    return intent


def _transition(intent: PaymentIntent, status: str, provider_payment_id: str | None = None) -> PaymentIntent:
    if intent.status != STATUS_PENDING:
        raise PaymentStateError(f"Payment is already {intent.status}")
    intent.status = status
    intent.updated_at = utcnow()
    if provider_payment_id:
        intent.provider_payment_id = provider_payment_id
    db.session.commit()
    logger.info("Payment %s -> %s", intent.external_reference, status)
    return intent


def create_card_intent(company_id: int, amount_cents, description: str | None = None, cash_register_id: int | None = None) -> PaymentIntent:
    """Card payment on a standalone terminal, confirmed manually by the operator."""
    intent = _create_intent(company_id, METHOD_CARD, amount_cents, description, None, cash_register_id)
    db.session.commit()
    return intent


def confirm_card_intent(company_id: int, external_reference: str) -> PaymentIntent:
    return _transition(get_intent(company_id, external_reference), STATUS_APPROVED)


def cancel_payment_intent(company_id: int, external_reference: str) -> PaymentIntent:
    return _transition(get_intent(company_id, external_reference), STATUS_CANCELED)


def wait_for_payment(
    company_id: int,
    external_reference: str,
    interval: float | None = None,
    max_attempts: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PaymentIntent:
    """
    Poll an intent until it leaves pending.

    After max_attempts polls the intent is canceled and returned as such.
    """
    if interval is None:
        interval = current_app.config["CARD_POLL_INTERVAL_SECONDS"]
    if max_attempts is None:
        max_attempts = current_app.config["CARD_POLL_MAX_ATTEMPTS"]

    intent = get_intent(company_id, external_reference)
    for attempt in range(1, max_attempts + 1):
        db.session.refresh(intent)
        if intent.is_final:
            return intent
        if attempt < max_attempts:
            sleep(interval)

    db.session.refresh(intent)
    if intent.is_final:
        return intent
    logger.warning("Payment %s timed out after %d attempts; canceling", external_reference, max_attempts)
    return _transition(intent, STATUS_CANCELED)


# =============================================================================
# QR ORDERS
# =============================================================================

def create_qr_order(
    company_id: int,
    amount_cents,
    description: str | None = None,
    external_reference: str | None = None,
    cash_register_id: int | None = None,
) -> PaymentIntent:
    """Create a dynamic QR order and a pending intent holding its qr_data."""
    credentials = get_credentials(company_id)
    if not credentials.user_id:
        raise PaymentGatewayError("Gateway user id is not configured for this company")

    intent = _create_intent(company_id, METHOD_QR, amount_cents, description, external_reference, cash_register_id)
    amount = _to_units(intent.amount_cents)
    body = {
        "external_reference": intent.external_reference,
        "title": intent.description,
        "description": intent.description,
        "total_amount": amount,
        "items": [{
            "sku_number": "item-001",
            "category": "marketplace",
            "title": intent.description,
            "description": intent.description,
            "unit_price": amount,
            "quantity": 1,
            "unit_measure": "unit",
            "total_amount": amount,
        }],
    }
    path = f"/instore/qr/seller/collectors/{credentials.user_id}/pos/{intent.external_reference}/qrs"
    try:
        data = _request(credentials, "POST", path, json=body)
    except PaymentGatewayError:
        db.session.rollback()
        raise

    intent.qr_data = data.get("qr_data")
    intent.provider_order_id = data.get("in_store_order_id") or data.get("qr_data")
    db.session.commit()
    logger.info("QR order created: %s (%s cents)", intent.external_reference, intent.amount_cents)
    return intent


def qr_status(company_id: int, external_reference: str) -> PaymentIntent:
    return get_intent(company_id, external_reference)


def handle_qr_webhook(payload: dict) -> PaymentIntent | None:
    """
    Resolve a pending QR intent from a payment notification.

    The notification only carries the payment id, so the payment is fetched
    with the credentials of each company that has pending QR intents until
    one matches. Returns the updated intent, or None if nothing matched.
    """
    if not isinstance(payload, dict) or payload.get("type") != "payment":
        return None
    payment_id = str((payload.get("data") or {}).get("id") or "")
    if not payment_id:
        raise ValidationError("Notification has no payment id")

    company_ids = [
        row[0]
        for row in db.session.query(PaymentIntent.company_id)
        .filter_by(method=METHOD_QR, status=STATUS_PENDING)
        .distinct()
        .all()
    ]
    for company_id in company_ids:
        try:
            credentials = get_credentials(company_id)
            payment = _request(credentials, "GET", f"/v1/payments/{payment_id}")
        except PaymentGatewayError as exc:
            logger.warning("Could not check payment %s for company %s: %s", payment_id, company_id, exc)
            continue

        reference = payment.get("external_reference")
        intent = (
            db.session.query(PaymentIntent)
            .filter_by(company_id=company_id, external_reference=reference, status=STATUS_PENDING)
            .first()
        )
        if intent is None:
            continue
        status = _PROVIDER_STATUS.get(payment.get("status"))
        if status is None:
            return intent
        return _transition(intent, status, provider_payment_id=payment_id)
    return None


# =============================================================================
# POINT (CARD DEVICE) ORDERS
# =============================================================================

def list_devices(company_id: int) -> list[dict]:
    credentials = get_credentials(company_id)
    data = _request(credentials, "GET", "/v1/pos")
    if isinstance(data, dict):
        return list(data.get("results") or [])
    return list(data or [])


def create_point_order(
    company_id: int,
    amount_cents,
    description: str | None = None,
    external_reference: str | None = None,
    cash_register_id: int | None = None,
) -> PaymentIntent:
    """Send an order to the company's card device and track it as a pending intent."""
    credentials = get_credentials(company_id)
    try:
        pos_id = int(credentials.pos_id)
    except ValueError:
        raise PaymentGatewayError("Gateway POS id must be numeric for card device orders")

    intent = _create_intent(company_id, METHOD_POINT, amount_cents, description, external_reference, cash_register_id)
    body = {
        "own_id": intent.external_reference,
        "items": [{
            "title": intent.description,
            "quantity": 1,
            "unit_price": _to_units(intent.amount_cents),
        }],
        "additional_info": {
            "pos_id": pos_id,
            "store_id": str(credentials.store_id),
        },
    }
    try:
        data = _request(credentials, "POST", "/v1/in_person_payments/point/orders", json=body)
    except PaymentGatewayError:
        db.session.rollback()
        raise

    intent.provider_order_id = str(data.get("id") or "") or None
    db.session.commit()
    logger.info("Card device order created: %s", intent.external_reference)
    return intent


def handle_point_webhook(payload: dict) -> PaymentIntent | None:
    """Apply a card-device order update, matched by provider order id."""
    data = (payload or {}).get("data") or {}
    order_id = str(data.get("id") or "")
    if not order_id:
        raise ValidationError("Notification has no order id")
    intent = (
        db.session.query(PaymentIntent)
        .filter_by(method=METHOD_POINT, provider_order_id=order_id)
        .first()
    )
    if intent is None or intent.is_final:
        return intent
    status = _PROVIDER_STATUS.get(str(data.get("status") or "").lower())
    if status is None:
        return intent
    return _transition(intent, status, provider_payment_id=data.get("payment_id"))


# =============================================================================
# WEBHOOK SIGNATURES
# =============================================================================

def parse_signature_header(x_signature: str) -> tuple[str, str]:
    """Split 'ts=...,v1=...' into (ts, v1)."""
    parts = {}
    for piece in (x_signature or "").split(","):
        key, sep, value = piece.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    if not parts.get("ts") or not parts.get("v1"):
        raise WebhookSignatureError("Malformed x-signature header")
    return parts["ts"], parts["v1"]


def signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def sign_manifest(manifest: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webhook_signature(x_signature: str | None, x_request_id: str | None, data_id: str | None, secret: str) -> None:
    """Raise WebhookSignatureError unless the signature matches."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not x_signature or not x_request_id or not data_id:
        raise WebhookSignatureError("Missing signature headers or notification id")
    ts, received = parse_signature_header(x_signature)
    expected = sign_manifest(signature_manifest(str(data_id), x_request_id, ts), secret)
    if not hmac.compare_digest(expected, received):
        raise WebhookSignatureError("Invalid webhook signature")
