# Overview: Product and employee management with plan limits and stock handling.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import CashRegister, Employee, Product
from ..validation import ConflictError, ValidationError
from . import persistence, tenant_service
from .persistence import CashRegisterPatch, EmployeePatch, ProductPatch

logger = logging.getLogger(__name__)

PRODUCT_REQUIRED = ("name", "cash_price_cents", "card_price_cents")
EMPLOYEE_REQUIRED = ("name",)


def _require(patch_values: dict, required: tuple[str, ...]) -> None:
    missing = [name for name in required if patch_values.get(name) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


# =============================================================================
# PRODUCTS
# =============================================================================

def create_product(company_id: int, payload: dict) -> Product:
    values = ProductPatch.from_payload(payload).changes()
    _require(values, PRODUCT_REQUIRED)
    values.setdefault("stock", 0)

    company = tenant_service.get_company(company_id)
    tenant_service.check_limit(persistence.count_products(company_id), company.max_products, "products")
    return persistence.create_product(company_id, values)


def update_product(company_id: int, product_id: int, payload: dict) -> Product:
    patch = ProductPatch.from_payload(payload)
    if patch.is_empty():
        raise ValidationError("No fields to update")
    return persistence.update_product(company_id, product_id, patch)


def delete_product(company_id: int, product_id: int) -> None:
    # Sales keep a snapshot of the product, so deleting is safe
    persistence.delete_product(company_id, product_id)


def decrement_stock(company_id: int, product_id: int, quantity: int) -> Product:
    """
    Reduce stock after a sale, floored at zero.

    Selling more than is on hand is allowed (the sale already happened at
    the counter); it is logged so the count can be corrected.
    """
    product = persistence.get_product(company_id, product_id)
    if quantity > product.stock:
        logger.warning(
            "Oversold product %s (%s): stock %s, sold %s",
            product.id, product.name, product.stock, quantity,
        )
    new_stock = max(0, product.stock - quantity)
    return persistence.update_product(company_id, product_id, ProductPatch(stock=new_stock), commit=False)


# =============================================================================
# EMPLOYEES
# =============================================================================

def create_employee(company_id: int, payload: dict) -> Employee:
    values = EmployeePatch.from_payload(payload).changes()
    _require(values, EMPLOYEE_REQUIRED)
    values.setdefault("role", "cashier")
    values.setdefault("is_active", True)

    company = tenant_service.get_company(company_id)
    tenant_service.check_limit(persistence.count_employees(company_id), company.max_employees, "employees")
    return persistence.create_employee(company_id, values)


def _registers_of(company_id: int, employee_id: int) -> list[CashRegister]:
    with persistence.guard("load assigned registers"):
        return db.session.query(CashRegister).filter_by(company_id=company_id, employee_id=employee_id).all()


def update_employee(company_id: int, employee_id: int, payload: dict) -> Employee:
    """
    Update an employee.

    Registers keep an employee_name snapshot, refreshed here on rename.
    An employee that is no longer an active cashier is unassigned from
    closed registers; open registers keep their cashier until closed.
    """
    patch = EmployeePatch.from_payload(payload)
    if patch.is_empty():
        raise ValidationError("No fields to update")

    employee = persistence.update_employee(company_id, employee_id, patch, commit=False)
    for register in _registers_of(company_id, employee_id):
        if not employee.is_assignable and not register.is_active:
            persistence.update_register(
                company_id, register.id, CashRegisterPatch(employee_id=None, employee_name=None), commit=False
            )
        elif "name" in patch.changes():
            persistence.update_register(
                company_id, register.id, CashRegisterPatch(employee_name=employee.name), commit=False
            )
    persistence.commit("update employee")
    return employee


def delete_employee(company_id: int, employee_id: int) -> None:
    """Delete an employee; refused while assigned to an open register."""
    registers = _registers_of(company_id, employee_id)
    if any(r.is_active for r in registers):
        raise ConflictError("Employee is assigned to an open register. Close it first.")
    for register in registers:
        persistence.update_register(
            company_id, register.id, CashRegisterPatch(employee_id=None, employee_name=None), commit=False
        )
    persistence.delete_employee(company_id, employee_id, commit=False)
    persistence.commit("delete employee")
