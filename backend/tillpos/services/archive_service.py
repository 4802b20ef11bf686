# Overview: Archive manager; soft archiving of closed data, archived retrieval, session export and import.

"""
Archive Manager

WHY: Closed sessions and their sales pile up on the live screens. Archiving
hides them from live views without deleting anything, so the audit trail is
kept row for row.

DESIGN PRINCIPLES:
- Archiving is a one-way boolean plus archived_at on each row
- Only closed sessions are archived; archiving twice is a no-op
- Archived data is retrieved by archived_at, not by sale/session date
- A closed session can be exported as a JSON document and imported into
  another database of the same company; import never duplicates rows
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import CashRegister, CashRegisterSession, Sale
from ..models.registers import SESSION_CLOSED, SESSION_OPEN
from ..models.sales import PAYMENT_METHODS
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import ValidationError
from . import persistence

logger = logging.getLogger(__name__)


class DuplicateImportError(Exception):
    """The session, or every sale in the document, is already present."""


class ImportIdCollisionError(Exception):
    """An id in the document belongs to a record outside this company."""


# =============================================================================
# ARCHIVING
# =============================================================================

def _closed_unarchived(company_id: int):
    return db.session.query(CashRegisterSession).filter_by(
        company_id=company_id, status=SESSION_CLOSED, archived=False
    )


def archive_closed_sessions(company_id: int) -> int:
    """
    Archive every closed, unarchived session of the company in one batch.

    Afterwards every register referenced by those sessions that has no open
    session left is forced inactive. Returns the number of sessions archived.
    """
    now = utcnow()
    with persistence.guard("archive sessions"):
        sessions = _closed_unarchived(company_id).all()
        if not sessions:
            return 0

        register_ids = {s.cash_register_id for s in sessions}
        for session in sessions:
            session.archived = True
            session.archived_at = now

        still_open = {
            row[0]
            for row in db.session.query(CashRegisterSession.cash_register_id)
            .filter(
                CashRegisterSession.company_id == company_id,
                CashRegisterSession.status == SESSION_OPEN,
                CashRegisterSession.cash_register_id.in_(register_ids),
            )
            .all()
        }
        (
            db.session.query(CashRegister)
            .filter(
                CashRegister.company_id == company_id,
                CashRegister.id.in_(register_ids - still_open),
                CashRegister.is_active.is_(True),
            )
            .update({CashRegister.is_active: False}, synchronize_session="fetch")
        )

    persistence.commit("archive sessions")
    logger.info("Archived %d closed sessions for company %s", len(sessions), company_id)
    return len(sessions)


def archive_all_open_sales(company_id: int, per_session: bool = False) -> int:
    """
    Archive unarchived sales, gated on a closed unarchived session existing.

    per_session=False archives every unarchived sale of the company,
    including sales of sessions that are still open. per_session=True limits
    the batch to sales of the closed sessions about to be archived.
    Returns the number of sales archived.
    """
    with persistence.guard("archive sales"):
        closed_ids = [s.id for s in _closed_unarchived(company_id).all()]
        if not closed_ids:
            return 0

        query = db.session.query(Sale).filter(Sale.company_id == company_id, Sale.archived.is_(False))
        if per_session:
            query = query.filter(Sale.session_id.in_(closed_ids))
        count = query.update(
            {Sale.archived: True, Sale.archived_at: utcnow()},
            synchronize_session="fetch",
        )

    persistence.commit("archive sales")
    logger.info("Archived %d sales for company %s (per_session=%s)", count, company_id, per_session)
    return count


def run_archive(company_id: int, per_session: bool = False) -> dict:
    """
    Archive sales, then sessions.

    Sales go first because their gate looks at closed sessions that are not
    archived yet.
    """
    sales = archive_all_open_sales(company_id, per_session=per_session)
    sessions = archive_closed_sessions(company_id)
    return {"sessions_archived": sessions, "sales_archived": sales}


def retrieve_archived(
    company_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Archived sales and sessions, optionally bounded (inclusive) on archived_at."""
    sales_q = db.session.query(Sale).filter_by(company_id=company_id, archived=True)
    sessions_q = db.session.query(CashRegisterSession).filter_by(company_id=company_id, archived=True)

    if start is not None:
        sales_q = sales_q.filter(Sale.archived_at >= start)
        sessions_q = sessions_q.filter(CashRegisterSession.archived_at >= start)
    if end is not None:
        sales_q = sales_q.filter(Sale.archived_at <= end)
        sessions_q = sessions_q.filter(CashRegisterSession.archived_at <= end)

    with persistence.guard("load archived data"):
        sales = sales_q.order_by(Sale.archived_at.desc(), Sale.date.desc()).all()
        sessions = sessions_q.order_by(CashRegisterSession.archived_at.desc()).all()
    return {"sales": sales, "sessions": sessions}


# =============================================================================
# EXPORT / IMPORT
# =============================================================================

def export_session(company_id: int, session_id: str) -> dict:
    """Build the interchange document for one session."""
    session = persistence.get_session(company_id, session_id)
    sales = persistence.list_sales(company_id, session_id=session_id)
    return {
        "version": current_app.config["EXPORT_FORMAT_VERSION"],
        "exportDate": to_utc_z(utcnow()),
        "session": session.to_dict(),
        "sales": [s.to_dict() for s in sorted(sales, key=lambda s: s.date)],
    }


def export_filename(document: dict) -> str:
    session = document["session"]
    name = "".join(c if c.isalnum() else "-" for c in (session.get("cash_register_name") or "register")).strip("-")
    stamp = (document.get("exportDate") or "").replace(":", "-").split(".")[0].rstrip("Z")
    return f"session_{name or 'register'}_{stamp}.json"


def _require_int(data: dict, key: str, where: str, *, nullable: bool = False) -> int | None:
    value = data.get(key)
    if value is None and nullable:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{where}: {key} must be an integer")
    return value


def _require_datetime(data: dict, key: str, where: str, *, nullable: bool = False) -> datetime | None:
    value = data.get(key)
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{where}: {key} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{where}: {key} must be an ISO-8601 datetime")


def validate_export_document(document: Any) -> None:
    """Structural check of an export document before any database access."""
    if not isinstance(document, dict):
        raise ValidationError("Invalid export document")
    if not document.get("version") or not document.get("exportDate"):
        raise ValidationError("Export document is missing version or exportDate")
    if not isinstance(document.get("session"), dict) or not isinstance(document.get("sales"), list):
        raise ValidationError("Export document must contain a session and a list of sales")

    session = document["session"]
    if not session.get("id") or session.get("cash_register_id") is None:
        raise ValidationError("Session data is incomplete")
    if session.get("status") != SESSION_CLOSED:
        raise ValidationError("Only closed sessions can be imported")

    for index, sale in enumerate(document["sales"]):
        if not isinstance(sale, dict) or not sale.get("id"):
            raise ValidationError(f"Sale #{index + 1} is missing its id")
        if sale.get("payment_method") not in PAYMENT_METHODS:
            raise ValidationError(f"Sale {sale['id']}: unknown payment_method")


def _session_values(data: dict) -> dict:
    where = f"Session {data['id']}"
    return {
        "id": str(data["id"]),
        "cash_register_id": _require_int(data, "cash_register_id", where),
        "cash_register_name": data.get("cash_register_name") or "",
        "employee_id": _require_int(data, "employee_id", where, nullable=True),
        "employee_name": data.get("employee_name"),
        "status": SESSION_CLOSED,
        "opened_at": _require_datetime(data, "opened_at", where),
        "closed_at": _require_datetime(data, "closed_at", where, nullable=True),
        "opening_balance_cents": _require_int(data, "opening_balance_cents", where),
        "closing_balance_cents": _require_int(data, "closing_balance_cents", where, nullable=True),
        "expected_balance_cents": _require_int(data, "expected_balance_cents", where, nullable=True),
        "total_sales": _require_int(data, "total_sales", where),
        "total_cash_cents": _require_int(data, "total_cash_cents", where),
        "total_card_cents": _require_int(data, "total_card_cents", where),
        "archived": bool(data.get("archived", False)),
        "archived_at": _require_datetime(data, "archived_at", where, nullable=True),
    }


def _sale_values(data: dict, session_values: dict) -> dict:
    where = f"Sale {data['id']}"
    items = data.get("items") or []
    if not isinstance(items, list):
        raise ValidationError(f"{where}: items must be a list")
    return {
        "id": str(data["id"]),
        "session_id": session_values["id"],
        "cash_register_id": session_values["cash_register_id"],
        "cash_register_name": data.get("cash_register_name") or session_values["cash_register_name"],
        "employee_id": _require_int(data, "employee_id", where, nullable=True),
        "employee_name": data.get("employee_name"),
        "date": _require_datetime(data, "date", where),
        "items": items,
        "subtotal_cents": _require_int(data, "subtotal_cents", where),
        "total_cents": _require_int(data, "total_cents", where),
        "payment_method": data["payment_method"],
        "received_amount_cents": _require_int(data, "received_amount_cents", where, nullable=True),
        "change_cents": _require_int(data, "change_cents", where, nullable=True),
        "payment_reference": data.get("payment_reference"),
        "archived": bool(data.get("archived", False)),
        "archived_at": _require_datetime(data, "archived_at", where, nullable=True),
    }


def import_session_export(company_id: int, document: Any) -> dict:
    """
    Import an export document into this company.

    - session id already present -> DuplicateImportError
    - session or sale id taken outside this company -> ImportIdCollisionError
    - every sale already present -> DuplicateImportError
    - otherwise the session and only the sales not yet present are inserted

    Customer links are not carried over; customer ids are local to a database.
    """
    validate_export_document(document)
    session_values = _session_values(document["session"])
    sales_values = []
    seen = set()
    for raw in document["sales"]:
        if str(raw["id"]) in seen:
            continue
        seen.add(str(raw["id"]))
        sales_values.append(_sale_values(raw, session_values))

    # Register must exist in this company; the id space is the company's own
    persistence.get_register(company_id, session_values["cash_register_id"])

    with persistence.guard("check existing import data"):
        session_id = session_values["id"]
        if db.session.query(CashRegisterSession.id).filter_by(company_id=company_id, id=session_id).first():
            raise DuplicateImportError("This session has already been imported")
        if db.session.get(CashRegisterSession, session_id) is not None:
            raise ImportIdCollisionError("Session id is already used by another record")

        existing_ids = set()
        foreign_ids = set()
        if sales_values:
            rows = (
                db.session.query(Sale.id, Sale.company_id)
                .filter(Sale.id.in_([v["id"] for v in sales_values]))
                .all()
            )
            existing_ids = {sale_id for sale_id, owner in rows if owner == company_id}
            foreign_ids = {sale_id for sale_id, owner in rows if owner != company_id}
    if foreign_ids:
        raise ImportIdCollisionError(f"{len(foreign_ids)} sale ids are already used by other records")
    new_sales = [v for v in sales_values if v["id"] not in existing_ids]
    if sales_values and not new_sales:
        raise DuplicateImportError("All sales in this file have already been imported")

    persistence.create_session(company_id, session_values, commit=False)
    for values in new_sales:
        persistence.create_sale(company_id, values, commit=False)
    persistence.commit("import session")

    logger.info(
        "Imported session %s for company %s: %d new sales, %d skipped",
        session_values["id"], company_id, len(new_sales), len(sales_values) - len(new_sales),
    )
    return {
        "session_id": session_values["id"],
        "sales_imported": len(new_sales),
        "sales_skipped": len(sales_values) - len(new_sales),
    }
