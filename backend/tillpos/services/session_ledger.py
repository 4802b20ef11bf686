# Overview: Session ledger; open/close lifecycle of register sessions, running totals and reconciliation.

"""
Session Ledger

WHY: A session is the period of cash accountability between opening a till
and counting it at close. The ledger tracks how much money should be in the
drawer and freezes the numbers at close time.

DESIGN PRINCIPLES:
- Sales belong to a session through Sale.session_id, stamped at creation
- Totals are recomputed from the session's sales after every sale, never
  incremented, so a missed update heals on the next sale
- expected_balance = opening_balance + total_cash (card/QR never touch the drawer)
- Closing always succeeds regardless of variance; variance is informational
- Closing resets the register to zero; the next opening starts from an
  explicitly counted opening balance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, func

from ..extensions import db
from ..models import CashRegister, CashRegisterSession, Sale
from ..models.registers import SESSION_CLOSED, SESSION_OPEN
from ..models.sales import PAYMENT_CASH
from ..time_utils import utcnow
from ..validation import coerce_cents
from . import persistence
from .concurrency import lock_for_update
from .persistence import CashRegisterPatch, SessionPatch

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised for session ledger errors."""


class NoOpenSessionError(SessionError):
    """Close or sale requested for a register with no open session."""


class InconsistentStateError(NoOpenSessionError):
    """
    Register is marked active but has no open session.

    Never auto-resolved: the operator must confirm a repair, which discards
    the missing session's accounting.
    """

    def __init__(self, register: CashRegister):
        super().__init__(
            f"Register '{register.name}' is marked open but has no open session. "
            "Repair the register to reset it."
        )
        self.register = register


@dataclass(frozen=True)
class SessionTotals:
    total_sales: int
    total_cash_cents: int
    total_card_cents: int


# =============================================================================
# QUERIES
# =============================================================================

def get_open_session(company_id: int, register_id: int) -> CashRegisterSession | None:
    """Most recent open session of the register, if any."""
    with persistence.guard("load open session"):
        return (
            db.session.query(CashRegisterSession)
            .filter_by(company_id=company_id, cash_register_id=register_id, status=SESSION_OPEN)
            .order_by(CashRegisterSession.opened_at.desc())
            .first()
        )


def compute_totals(session_id: str) -> SessionTotals:
    """
    Re-scan every sale of the session.

    Non-cash tenders (card and QR) are reported together as total_card so
    total_cash + total_card always equals the money taken in the session.
    """
    cash_expr = case((Sale.payment_method == PAYMENT_CASH, Sale.total_cents), else_=0)
    other_expr = case((Sale.payment_method != PAYMENT_CASH, Sale.total_cents), else_=0)
    with persistence.guard("compute session totals"):
        count, cash, other = (
            db.session.query(
                func.count(Sale.id),
                func.coalesce(func.sum(cash_expr), 0),
                func.coalesce(func.sum(other_expr), 0),
            )
            .filter(Sale.session_id == session_id)
            .one()
        )
    return SessionTotals(total_sales=int(count), total_cash_cents=int(cash), total_card_cents=int(other))


def get_session_summary(company_id: int, session_id: str) -> dict:
    """Session with its sales, variance and per-tender breakdown."""
    session = persistence.get_session(company_id, session_id)
    sales = persistence.list_sales(company_id, session_id=session_id)

    by_method: dict[str, dict] = {}
    for sale in sales:
        bucket = by_method.setdefault(sale.payment_method, {"count": 0, "total_cents": 0})
        bucket["count"] += 1
        bucket["total_cents"] += sale.total_cents

    return {
        "session": session.to_dict(),
        "sales": [s.to_dict() for s in sales],
        "variance_cents": session.variance_cents,
        "by_payment_method": by_method,
    }


def list_sessions(company_id: int, **filters) -> list[CashRegisterSession]:
    return persistence.list_sessions(company_id, **filters)


# =============================================================================
# LIFECYCLE
# =============================================================================

def start_session(
    company_id: int,
    register_id: int,
    employee_id: int | None,
    employee_name: str | None,
    opening_balance_cents: int,
    *,
    commit: bool = True,
) -> CashRegisterSession:
    """
    Create an open session with zeroed totals.

    No register side effect: activating the register is the state machine's
    job (register_service.open_register issues both together). The caller
    is responsible for checking that no open session exists.
    """
    opening = coerce_cents(opening_balance_cents, "opening_balance_cents")
    register = persistence.get_register(company_id, register_id)

    session = persistence.create_session(
        company_id,
        {
            "cash_register_id": register.id,
            "cash_register_name": register.name,
            "employee_id": employee_id,
            "employee_name": employee_name,
            "status": SESSION_OPEN,
            "opened_at": utcnow(),
            "opening_balance_cents": opening,
            "expected_balance_cents": opening,
            "total_sales": 0,
            "total_cash_cents": 0,
            "total_card_cents": 0,
            "archived": False,
        },
        commit=commit,
    )
    logger.info(
        "Session %s opened on register %s with opening balance %s",
        session.id, register.id, opening,
    )
    return session


def record_sale(sale: Sale) -> CashRegisterSession:
    """
    Persist a fully formed sale and refresh its session's totals.

    The sale is attached to the register's open session. Cash sales also
    grow the register's current balance (row lock requested).

    Raises:
        InconsistentStateError: register active but no open session
        NoOpenSessionError: register closed
    """
    session = get_open_session(sale.company_id, sale.cash_register_id)
    if session is None:
        register = persistence.get_register(sale.company_id, sale.cash_register_id)
        if register.is_active:
            raise InconsistentStateError(register)
        raise NoOpenSessionError(f"Register '{register.name}' has no open session")

    with persistence.guard("record sale"):
        sale.session_id = session.id
        db.session.add(sale)
        db.session.flush()

        totals = compute_totals(session.id)
        persistence.update_session(
            sale.company_id,
            session.id,
            SessionPatch(
                total_sales=totals.total_sales,
                total_cash_cents=totals.total_cash_cents,
                total_card_cents=totals.total_card_cents,
                expected_balance_cents=session.opening_balance_cents + totals.total_cash_cents,
            ),
            commit=False,
        )

        if sale.payment_method == PAYMENT_CASH:
            register = lock_for_update(
                db.session.query(CashRegister).filter_by(id=sale.cash_register_id, company_id=sale.company_id)
            ).one()
            register.current_balance_cents = (register.current_balance_cents or 0) + sale.total_cents

    persistence.commit("record sale")
    return session


def close_session(company_id: int, register_id: int, counted_balance_cents: int) -> CashRegisterSession:
    """
    Close the register's open session against the counted cash.

    Totals are recomputed one last time and frozen. The register is reset to
    inactive with zero balances regardless of the counted amount.

    Raises:
        ValidationError: counted balance missing or negative
        InconsistentStateError: register active but no open session
        NoOpenSessionError: nothing to close
    """
    counted = coerce_cents(counted_balance_cents, "counted_balance_cents")
    register = persistence.get_register(company_id, register_id)
    session = get_open_session(company_id, register_id)

    if session is None:
        if register.is_active:
            logger.warning("Register %s is active with no open session", register.id)
            raise InconsistentStateError(register)
        raise NoOpenSessionError(f"Register '{register.name}' has no open session to close")

    now = utcnow()
    totals = compute_totals(session.id)
    expected = session.opening_balance_cents + totals.total_cash_cents

    persistence.update_session(
        company_id,
        session.id,
        SessionPatch(
            status=SESSION_CLOSED,
            closed_at=now,
            closing_balance_cents=counted,
            expected_balance_cents=expected,
            total_sales=totals.total_sales,
            total_cash_cents=totals.total_cash_cents,
            total_card_cents=totals.total_card_cents,
        ),
        commit=False,
    )
    persistence.update_register(
        company_id,
        register_id,
        CashRegisterPatch(
            is_active=False,
            closed_at=now,
            current_balance_cents=0,
            opening_balance_cents=0,
        ),
        commit=False,
    )
    persistence.commit("close session")

    logger.info(
        "Session %s closed on register %s: expected=%s counted=%s variance=%s",
        session.id, register_id, expected, counted, counted - expected,
    )
    return session
