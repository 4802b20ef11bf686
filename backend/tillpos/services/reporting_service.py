# Overview: Service-layer aggregates for the back-office dashboard.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Sale
from ..models.sales import PAYMENT_METHODS
from . import persistence

LOW_STOCK_THRESHOLD = 10


def _sales_by_tender(company_id: int, include_archived: bool) -> dict[str, dict]:
    query = db.session.query(
        Sale.payment_method,
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
    ).filter(Sale.company_id == company_id)
    if not include_archived:
        query = query.filter(Sale.archived.is_(False))

    with persistence.guard("aggregate sales"):
        rows = query.group_by(Sale.payment_method).all()

    by_tender = {method: {"count": 0, "revenue_cents": 0} for method in PAYMENT_METHODS}
    for method, count, revenue in rows:
        by_tender[method] = {"count": int(count), "revenue_cents": int(revenue)}
    return by_tender


def dashboard_summary(company_id: int, *, include_archived: bool = False) -> dict:
    """
    Company overview: sales count and revenue per tender, catalog size,
    low-stock products and register activity.

    Archived sales are left out unless include_archived is set, so the
    figures describe the books since the last archive run.
    """
    by_tender = _sales_by_tender(company_id, include_archived)
    products = persistence.list_products(company_id)
    registers = persistence.list_registers(company_id)

    low_stock = [p for p in products if p.stock < LOW_STOCK_THRESHOLD]
    active = [r for r in registers if r.is_active]

    return {
        "sales": {
            "count": sum(t["count"] for t in by_tender.values()),
            "revenue_cents": sum(t["revenue_cents"] for t in by_tender.values()),
            "by_payment_method": by_tender,
        },
        "products": {
            "count": len(products),
            "low_stock_threshold": LOW_STOCK_THRESHOLD,
            "low_stock_count": len(low_stock),
            "low_stock": [{"id": p.id, "name": p.name, "stock": p.stock} for p in low_stock],
        },
        "registers": {
            "active": len(active),
            "total": len(registers),
            "active_registers": [
                {"id": r.id, "name": r.name, "employee_name": r.employee_name,
                 "current_balance_cents": r.current_balance_cents}
                for r in active
            ],
        },
    }
