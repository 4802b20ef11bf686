# Overview: Company-scoped persistence gateway; typed CRUD and patch objects for core entities.

"""
Persistence Gateway

WHY: The session ledger, register state machine and archive manager never
talk to the ORM session directly for entity CRUD. They go through this
module, which:
- scopes every lookup by company_id (a row of another company is "not found")
- applies partial updates through explicit patch dataclasses
- turns storage failures into PersistenceError after rolling back

DESIGN: No retries. A PersistenceError means the operation was not applied.
Functions commit by default; pass commit=False to compose several writes
into one unit and call commit() at the end.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Callable, ClassVar, Iterator

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Employee, CashRegister, CashRegisterSession, Sale
from ..models.catalog import EMPLOYEE_ROLES
from ..validation import ValidationError, clean_text, coerce_cents

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Storage failure. The unit of work was rolled back and not applied."""


class NotFoundError(LookupError):
    """Entity does not exist within the caller's company."""


# =============================================================================
# UNIT OF WORK
# =============================================================================

@contextmanager
def guard(action: str) -> Iterator[None]:
    """
    Run a block of ORM work, converting storage errors to PersistenceError.

    Domain exceptions raised inside the block pass through unchanged.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Storage failure while trying to %s: %s", action, exc)
        raise PersistenceError(f"Could not {action}: storage unavailable") from exc


def commit(action: str = "save changes") -> None:
    with guard(action):
        db.session.commit()


# =============================================================================
# PATCH OBJECTS
# =============================================================================

class _Unset:
    """Marker for 'field not provided' (distinct from an explicit None)."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _optional_text(max_length: int, name: str) -> Callable[[Any], str | None]:
    return lambda v: clean_text(v, name, max_length=max_length)


def _required_text(max_length: int, name: str) -> Callable[[Any], str | None]:
    return lambda v: clean_text(v, name, max_length=max_length, required=True)


def _optional_id(name: str) -> Callable[[Any], int | None]:
    def _coerce(value):
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValidationError(f"{name} must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer")
    return _coerce


def _stock(value: Any) -> int:
    # Stock shares the money rules: integer, non-negative, bounded
    return coerce_cents(value, "stock")


def _employee_role(value: Any) -> str:
    role = clean_text(value, "role", max_length=16, required=True)
    if role not in EMPLOYEE_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(EMPLOYEE_ROLES)}")
    return role


def _flag(name: str) -> Callable[[Any], bool]:
    def _coerce(value):
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be true or false")
        return value
    return _coerce


@dataclass(frozen=True)
class _Patch:
    """
    Partial update with named optional fields.

    Only fields that are not UNSET are applied. _client_fields maps the
    fields an API client may set to their coercion function; fields outside
    that map can only be set by services.
    """
    _client_fields: ClassVar[dict[str, Callable[[Any], Any]]] = {}

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()

    @classmethod
    def from_payload(cls, payload: dict | None):
        """Build a patch from client JSON, rejecting non-writable fields."""
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        values = {}
        for key, raw in payload.items():
            coerce = cls._client_fields.get(key)
            if coerce is None:
                raise ValidationError(f"Field not allowed: {key}")
            values[key] = coerce(raw)
        return cls(**values)


@dataclass(frozen=True)
class ProductPatch(_Patch):
    name: str = UNSET  # type: ignore
    cash_price_cents: int = UNSET  # type: ignore
    card_price_cents: int = UNSET  # type: ignore
    category: str | None = UNSET  # type: ignore
    image: str | None = UNSET  # type: ignore
    stock: int = UNSET  # type: ignore

    _client_fields: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "name": _required_text(255, "name"),
        "cash_price_cents": lambda v: coerce_cents(v, "cash_price_cents"),
        "card_price_cents": lambda v: coerce_cents(v, "card_price_cents"),
        "category": _optional_text(128, "category"),
        "image": lambda v: clean_text(v, "image", max_length=500_000),
        "stock": _stock,
    }


@dataclass(frozen=True)
class EmployeePatch(_Patch):
    name: str = UNSET  # type: ignore
    email: str | None = UNSET  # type: ignore
    phone: str | None = UNSET  # type: ignore
    role: str = UNSET  # type: ignore
    is_active: bool = UNSET  # type: ignore

    _client_fields: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "name": _required_text(255, "name"),
        "email": _optional_text(255, "email"),
        "phone": _optional_text(64, "phone"),
        "role": _employee_role,
        "is_active": _flag("is_active"),
    }


@dataclass(frozen=True)
class CashRegisterPatch(_Patch):
    # Clients may rename and reassign; balance/state fields belong to the
    # register state machine.
    name: str = UNSET  # type: ignore
    employee_id: int | None = UNSET  # type: ignore
    employee_name: str | None = UNSET  # type: ignore
    is_active: bool = UNSET  # type: ignore
    opening_balance_cents: int = UNSET  # type: ignore
    current_balance_cents: int = UNSET  # type: ignore
    opened_at: datetime | None = UNSET  # type: ignore
    closed_at: datetime | None = UNSET  # type: ignore
    access_token: str = UNSET  # type: ignore

    _client_fields: ClassVar[dict[str, Callable[[Any], Any]]] = {
        "name": _required_text(128, "name"),
        "employee_id": _optional_id("employee_id"),
    }


@dataclass(frozen=True)
class SessionPatch(_Patch):
    # Service-only: sessions are never edited by clients
    status: str = UNSET  # type: ignore
    closed_at: datetime | None = UNSET  # type: ignore
    closing_balance_cents: int | None = UNSET  # type: ignore
    expected_balance_cents: int | None = UNSET  # type: ignore
    total_sales: int = UNSET  # type: ignore
    total_cash_cents: int = UNSET  # type: ignore
    total_card_cents: int = UNSET  # type: ignore
    archived: bool = UNSET  # type: ignore
    archived_at: datetime | None = UNSET  # type: ignore


def _apply(entity, patch: _Patch):
    for key, value in patch.changes().items():
        setattr(entity, key, value)
    return entity


# =============================================================================
# GENERIC COMPANY-SCOPED HELPERS
# =============================================================================

def _get(model, company_id: int, entity_id, label: str):
    with guard(f"load {label}"):
        entity = db.session.query(model).filter_by(id=entity_id, company_id=company_id).first()
    if entity is None:
        raise NotFoundError(f"{label.capitalize()} not found")
    return entity


def _create(model, company_id: int, values: dict, label: str, commit_now: bool):
    entity = model(company_id=company_id, **values)
    with guard(f"create {label}"):
        db.session.add(entity)
        db.session.flush()
    if commit_now:
        commit(f"create {label}")
    return entity


def _update(entity, patch: _Patch, label: str, commit_now: bool):
    with guard(f"update {label}"):
        _apply(entity, patch)
        db.session.flush()
    if commit_now:
        commit(f"update {label}")
    return entity


def _delete(entity, label: str, commit_now: bool) -> None:
    with guard(f"delete {label}"):
        db.session.delete(entity)
        db.session.flush()
    if commit_now:
        commit(f"delete {label}")


def _list(query, label: str) -> list:
    with guard(f"list {label}"):
        return query.all()


# =============================================================================
# PRODUCTS
# =============================================================================

def get_product(company_id: int, product_id: int) -> Product:
    return _get(Product, company_id, product_id, "product")


def list_products(company_id: int) -> list[Product]:
    query = db.session.query(Product).filter_by(company_id=company_id).order_by(Product.name, Product.id)
    return _list(query, "products")


def count_products(company_id: int) -> int:
    with guard("count products"):
        return db.session.query(Product).filter_by(company_id=company_id).count()


def create_product(company_id: int, values: dict, *, commit: bool = True) -> Product:
    return _create(Product, company_id, values, "product", commit)


def update_product(company_id: int, product_id: int, patch: ProductPatch, *, commit: bool = True) -> Product:
    return _update(get_product(company_id, product_id), patch, "product", commit)


def delete_product(company_id: int, product_id: int, *, commit: bool = True) -> None:
    _delete(get_product(company_id, product_id), "product", commit)


# =============================================================================
# EMPLOYEES
# =============================================================================

def get_employee(company_id: int, employee_id: int) -> Employee:
    return _get(Employee, company_id, employee_id, "employee")


def list_employees(company_id: int, active_only: bool = False) -> list[Employee]:
    query = db.session.query(Employee).filter_by(company_id=company_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return _list(query.order_by(Employee.name, Employee.id), "employees")


def count_employees(company_id: int) -> int:
    with guard("count employees"):
        return db.session.query(Employee).filter_by(company_id=company_id).count()


def create_employee(company_id: int, values: dict, *, commit: bool = True) -> Employee:
    return _create(Employee, company_id, values, "employee", commit)


def update_employee(company_id: int, employee_id: int, patch: EmployeePatch, *, commit: bool = True) -> Employee:
    return _update(get_employee(company_id, employee_id), patch, "employee", commit)


def delete_employee(company_id: int, employee_id: int, *, commit: bool = True) -> None:
    _delete(get_employee(company_id, employee_id), "employee", commit)


# =============================================================================
# CASH REGISTERS
# =============================================================================

def get_register(company_id: int, register_id: int) -> CashRegister:
    return _get(CashRegister, company_id, register_id, "cash register")


def list_registers(company_id: int) -> list[CashRegister]:
    query = db.session.query(CashRegister).filter_by(company_id=company_id).order_by(CashRegister.name, CashRegister.id)
    return _list(query, "cash registers")


def count_registers(company_id: int) -> int:
    with guard("count cash registers"):
        return db.session.query(CashRegister).filter_by(company_id=company_id).count()


def create_register(company_id: int, values: dict, *, commit: bool = True) -> CashRegister:
    return _create(CashRegister, company_id, values, "cash register", commit)


def update_register(company_id: int, register_id: int, patch: CashRegisterPatch, *, commit: bool = True) -> CashRegister:
    return _update(get_register(company_id, register_id), patch, "cash register", commit)


def delete_register(company_id: int, register_id: int, *, commit: bool = True) -> None:
    _delete(get_register(company_id, register_id), "cash register", commit)


# =============================================================================
# SESSIONS
# =============================================================================

def get_session(company_id: int, session_id: str) -> CashRegisterSession:
    return _get(CashRegisterSession, company_id, session_id, "session")


def list_sessions(
    company_id: int,
    *,
    register_id: int | None = None,
    status: str | None = None,
    archived: bool | None = None,
    limit: int | None = None,
) -> list[CashRegisterSession]:
    query = db.session.query(CashRegisterSession).filter_by(company_id=company_id)
    if register_id is not None:
        query = query.filter_by(cash_register_id=register_id)
    if status is not None:
        query = query.filter_by(status=status)
    if archived is not None:
        query = query.filter_by(archived=archived)
    query = query.order_by(CashRegisterSession.opened_at.desc())
    if limit:
        query = query.limit(limit)
    return _list(query, "sessions")


def create_session(company_id: int, values: dict, *, commit: bool = True) -> CashRegisterSession:
    return _create(CashRegisterSession, company_id, values, "session", commit)


def update_session(company_id: int, session_id: str, patch: SessionPatch, *, commit: bool = True) -> CashRegisterSession:
    return _update(get_session(company_id, session_id), patch, "session", commit)


# =============================================================================
# SALES
# =============================================================================

def get_sale(company_id: int, sale_id: str) -> Sale:
    return _get(Sale, company_id, sale_id, "sale")


def list_sales(
    company_id: int,
    *,
    register_id: int | None = None,
    session_id: str | None = None,
    payment_method: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    archived: bool | None = None,
    limit: int | None = None,
) -> list[Sale]:
    query = db.session.query(Sale).filter_by(company_id=company_id)
    if register_id is not None:
        query = query.filter_by(cash_register_id=register_id)
    if session_id is not None:
        query = query.filter_by(session_id=session_id)
    if payment_method is not None:
        query = query.filter_by(payment_method=payment_method)
    if start is not None:
        query = query.filter(Sale.date >= start)
    if end is not None:
        query = query.filter(Sale.date <= end)
    if archived is not None:
        query = query.filter_by(archived=archived)
    query = query.order_by(Sale.date.desc())
    if limit:
        query = query.limit(limit)
    return _list(query, "sales")


def create_sale(company_id: int, values: dict, *, commit: bool = True) -> Sale:
    return _create(Sale, company_id, values, "sale", commit)
