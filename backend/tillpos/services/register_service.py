# Overview: Register state machine; open/close with compensation, reconciliation, repair and terminal gate.

"""
Register State Machine

WHY: A register is Closed (inactive, zero balances) or Open (active,
accruing into exactly one open session). The register row and its session
are separate records, so they can drift apart: a bulk clear while a register
was open, or a failure between activating the register and starting its
session.

DESIGN PRINCIPLES:
- Open is one domain operation: activate register, then start session; if
  the session cannot be started the register is put back as it was
- An existing open session is a conflict, never silently replaced; the
  operator may re-issue the open with force_close_stale=True
- Drift is reported (inspect_register / find_inconsistencies) and fixed only
  by an explicit repair command
- Terminals can only sell on an active register
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass

from ..extensions import db
from ..models import CashRegister, CashRegisterSession, Company, Sale
from ..models.registers import SESSION_CLOSED, SESSION_OPEN
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, clean_text, coerce_cents
from . import persistence, session_ledger, tenant_service
from .persistence import CashRegisterPatch, NotFoundError, SessionPatch
from .session_ledger import InconsistentStateError

logger = logging.getLogger(__name__)

STATE_CLOSED = "closed"
STATE_OPEN = "open"
STATE_INCONSISTENT = "inconsistent"  # Active, no open session
STATE_ORPHANED = "orphaned"  # Inactive, open session left behind
STATE_DUPLICATE = "duplicate"  # More than one open session

PROBLEM_STATES = (STATE_INCONSISTENT, STATE_ORPHANED, STATE_DUPLICATE)

VALID_TOKEN_RE = re.compile(r"^[a-z0-9-]+$")


class RegisterError(Exception):
    """Raised for register operation errors."""


class OpenSessionConflictError(RegisterError):
    """Open requested while the register still has an open session."""

    def __init__(self, session: CashRegisterSession):
        super().__init__(
            f"Register '{session.cash_register_name}' already has an open session "
            f"since {session.opened_at:%Y-%m-%d %H:%M}. Close it first or force-close it."
        )
        self.session = session


class RegisterClosedError(RegisterError):
    """Terminal sale attempted on an inactive register."""


@dataclass
class RegisterState:
    register: CashRegister
    state: str
    open_session: CashRegisterSession | None
    open_session_count: int = 0

    def to_dict(self) -> dict:
        return {
            "register": self.register.to_dict(include_token=False),
            "state": self.state,
            "open_session": self.open_session.to_dict() if self.open_session else None,
            "open_session_count": self.open_session_count,
        }


# =============================================================================
# ACCESS TOKENS
# =============================================================================

def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug[:48] or "register"


def generate_access_token(name: str) -> str:
    """
    Terminal capability token: readable prefix plus 64 random bits.

    The prefix only helps operators recognize the link; the random part is
    what makes it unguessable.
    """
    return f"{slugify(name)}-{secrets.token_hex(8)}"


def _unique_access_token(name: str) -> str:
    while True:
        token = generate_access_token(name)
        exists = db.session.query(CashRegister.id).filter_by(access_token=token).first()
        if not exists:
            return token


def rotate_access_token(company_id: int, register_id: int) -> CashRegister:
    """Replace the terminal token; the old link stops working immediately."""
    register = persistence.get_register(company_id, register_id)
    token = _unique_access_token(register.name)
    persistence.update_register(company_id, register_id, CashRegisterPatch(access_token=token))
    logger.info("Access token rotated for register %s", register_id)
    return register


def fix_invalid_tokens(company_id: int | None = None) -> list[CashRegister]:
    """
    Regenerate tokens that contain characters outside [a-z0-9-].

    Such tokens break when used as a URL path segment. Pass company_id=None
    to sweep every company (operator CLI).
    """
    query = db.session.query(CashRegister)
    if company_id is not None:
        query = query.filter_by(company_id=company_id)

    fixed = []
    with persistence.guard("fix access tokens"):
        for register in query.order_by(CashRegister.id).all():
            if VALID_TOKEN_RE.match(register.access_token or ""):
                continue
            register.access_token = _unique_access_token(register.name)
            fixed.append(register)
    if fixed:
        persistence.commit("fix access tokens")
        logger.info("Regenerated %d invalid access tokens", len(fixed))
    return fixed


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def _assignee(company_id: int, employee_id: int | None) -> tuple[int | None, str | None]:
    if employee_id is None:
        return None, None
    employee = persistence.get_employee(company_id, employee_id)
    if not employee.is_assignable:
        raise ValidationError("Only active cashiers can be assigned to a register")
    return employee.id, employee.name


def create_register(company_id: int, name: str, employee_id: int | None = None) -> CashRegister:
    """
    Create a register in the Closed state.

    Raises ConflictError when the company plan's register limit is reached.
    """
    name = clean_text(name, "name", max_length=128, required=True)
    company = tenant_service.get_company(company_id)
    tenant_service.check_limit(persistence.count_registers(company_id), company.max_cash_registers, "cash registers")

    emp_id, emp_name = _assignee(company_id, employee_id)
    register = persistence.create_register(
        company_id,
        {
            "name": name,
            "employee_id": emp_id,
            "employee_name": emp_name,
            "is_active": False,
            "opening_balance_cents": 0,
            "current_balance_cents": 0,
            "access_token": _unique_access_token(name),
        },
    )
    logger.info("Register %s created for company %s", register.id, company_id)
    return register


def update_register(company_id: int, register_id: int, patch: CashRegisterPatch) -> CashRegister:
    """Rename or reassign. Assigning requires an active cashier."""
    changes = patch.changes()
    if "employee_id" in changes:
        emp_id, emp_name = _assignee(company_id, changes["employee_id"])
        patch = CashRegisterPatch(**{**changes, "employee_id": emp_id, "employee_name": emp_name})
    return persistence.update_register(company_id, register_id, patch)


def delete_register(company_id: int, register_id: int) -> None:
    """
    Delete a never-used register.

    Registers that are open, or that have sessions or sales on record, are
    kept so history stays auditable.
    """
    register = persistence.get_register(company_id, register_id)
    if register.is_active or session_ledger.get_open_session(company_id, register_id):
        raise ConflictError("Cannot delete an open register. Close it first.")

    with persistence.guard("check register history"):
        has_sessions = db.session.query(CashRegisterSession.id).filter_by(cash_register_id=register_id).first()
        has_sales = db.session.query(Sale.id).filter_by(cash_register_id=register_id).first()
    if has_sessions or has_sales:
        raise ConflictError("Register has recorded sessions or sales and cannot be deleted")

    persistence.delete_register(company_id, register_id)
    logger.info("Register %s deleted", register_id)


# =============================================================================
# STATE MACHINE
# =============================================================================

def open_register(
    company_id: int,
    register_id: int,
    opening_balance_cents: int,
    *,
    employee_id: int | None = None,
    force_close_stale: bool = False,
) -> CashRegisterSession:
    """
    Closed -> Open.

    Steps:
    (a) register: is_active, opened_at, opening and current balance, and
        the cashier when employee_id is given
    (b) session_ledger.start_session

    If (b) fails after (a), (a) is compensated by restoring the register's
    previous values and the original error propagates.

    Raises:
        ValidationError: bad opening balance or non-assignable employee
        OpenSessionConflictError: an open session exists and force_close_stale is False
        InconsistentStateError: register already active without a session (repair first)
    """
    opening = coerce_cents(opening_balance_cents, "opening_balance_cents")
    register = persistence.get_register(company_id, register_id)
    assignee = _assignee(company_id, employee_id) if employee_id is not None else None

    stale = session_ledger.get_open_session(company_id, register_id)
    if stale is not None:
        if not force_close_stale:
            raise OpenSessionConflictError(stale)
        logger.warning(
            "Force-closing stale session %s on register %s with counted=%s",
            stale.id, register_id, register.current_balance_cents,
        )
        session_ledger.close_session(company_id, register_id, register.current_balance_cents or 0)
    elif register.is_active:
        raise InconsistentStateError(register)

    prior = CashRegisterPatch(
        is_active=register.is_active,
        opened_at=register.opened_at,
        opening_balance_cents=register.opening_balance_cents,
        current_balance_cents=register.current_balance_cents,
        employee_id=register.employee_id,
        employee_name=register.employee_name,
    )

    # (a)
    reassign = {}
    if assignee is not None:
        reassign = {"employee_id": assignee[0], "employee_name": assignee[1]}
    persistence.update_register(
        company_id,
        register_id,
        CashRegisterPatch(
            is_active=True,
            opened_at=utcnow(),
            opening_balance_cents=opening,
            current_balance_cents=opening,
            **reassign,
        ),
    )

    # (b)
    try:
        session = session_ledger.start_session(
            company_id, register_id, register.employee_id, register.employee_name, opening
        )
    except Exception:
        logger.error("Starting session failed for register %s; restoring register state", register_id)
        db.session.rollback()
        persistence.update_register(company_id, register_id, prior)
        raise

    return session


def close_register(company_id: int, register_id: int, counted_balance_cents: int) -> CashRegisterSession:
    """
    Open -> Closed through the session ledger.

    A register with several open sessions is refused: closing the newest
    would leave the others behind. Repair it first.
    """
    report = inspect_register(company_id, register_id)
    if report.state == STATE_DUPLICATE:
        raise ConflictError(
            f"Register has {report.open_session_count} open sessions. Repair the register before closing."
        )
    return session_ledger.close_session(company_id, register_id, counted_balance_cents)


def repair_register(company_id: int, register_id: int) -> CashRegister:
    """
    Operator-confirmed recovery.

    inconsistent (active, no open session): resets the register to Closed
    with zero balances. No closing entry is recorded: the session it would
    close does not exist.

    duplicate (several open sessions): every open session except the newest
    is marked closed without counted or expected balances. The register
    keeps running on the newest one.
    """
    report = inspect_register(company_id, register_id)
    if report.state == STATE_DUPLICATE:
        return _drop_duplicate_sessions(company_id, report)
    if report.state != STATE_INCONSISTENT:
        raise ConflictError(f"Register is {report.state}; only inconsistent registers can be repaired")

    logger.warning(
        "Repairing register %s: discarding balance %s without a closing entry",
        register_id, report.register.current_balance_cents,
    )
    return persistence.update_register(
        company_id,
        register_id,
        CashRegisterPatch(
            is_active=False,
            closed_at=utcnow(),
            current_balance_cents=0,
            opening_balance_cents=0,
        ),
    )


def _drop_duplicate_sessions(company_id: int, report: RegisterState) -> CashRegister:
    now = utcnow()
    stale = _open_sessions(company_id, report.register.id)[1:]
    for session in stale:
        totals = session_ledger.compute_totals(session.id)
        persistence.update_session(
            company_id,
            session.id,
            SessionPatch(
                status=SESSION_CLOSED,
                closed_at=now,
                total_sales=totals.total_sales,
                total_cash_cents=totals.total_cash_cents,
                total_card_cents=totals.total_card_cents,
            ),
            commit=False,
        )
    persistence.commit("close duplicate sessions")
    logger.warning(
        "Repairing register %s: closed %d duplicate open sessions without a count",
        report.register.id, len(stale),
    )
    return report.register


# =============================================================================
# RECONCILIATION
# =============================================================================

def _classify(register: CashRegister, open_count: int) -> str:
    if open_count > 1:
        return STATE_DUPLICATE
    if register.is_active:
        return STATE_OPEN if open_count else STATE_INCONSISTENT
    return STATE_ORPHANED if open_count else STATE_CLOSED


def _open_sessions(company_id: int, register_id: int | None = None) -> list[CashRegisterSession]:
    """Open sessions, newest first."""
    query = db.session.query(CashRegisterSession).filter_by(company_id=company_id, status=SESSION_OPEN)
    if register_id is not None:
        query = query.filter_by(cash_register_id=register_id)
    with persistence.guard("load open sessions"):
        return query.order_by(CashRegisterSession.opened_at.desc()).all()


def _report(register: CashRegister, sessions: list[CashRegisterSession]) -> RegisterState:
    return RegisterState(
        register=register,
        state=_classify(register, len(sessions)),
        open_session=sessions[0] if sessions else None,
        open_session_count=len(sessions),
    )


def inspect_register(company_id: int, register_id: int) -> RegisterState:
    register = persistence.get_register(company_id, register_id)
    return _report(register, _open_sessions(company_id, register_id))


def find_inconsistencies(company_id: int) -> list[RegisterState]:
    """All registers of the company whose flag disagrees with their sessions."""
    by_register: dict[int, list[CashRegisterSession]] = {}
    for session in _open_sessions(company_id):
        by_register.setdefault(session.cash_register_id, []).append(session)

    problems = []
    for register in persistence.list_registers(company_id):
        report = _report(register, by_register.get(register.id, []))
        if report.state in PROBLEM_STATES:
            problems.append(report)
    return problems


# =============================================================================
# TERMINAL ACCESS
# =============================================================================

def get_register_by_token(token: str) -> CashRegister:
    """Resolve a terminal token. The token itself carries the company scope."""
    if not token or not VALID_TOKEN_RE.match(token):
        raise NotFoundError("Cash register not found")
    with persistence.guard("load cash register"):
        register = db.session.query(CashRegister).filter_by(access_token=token).first()
    if register is None:
        raise NotFoundError("Cash register not found")
    company = db.session.get(Company, register.company_id)
    if company is None or not company.is_active:
        raise NotFoundError("Cash register not found")
    return register


def require_terminal_open(register: CashRegister) -> None:
    """Terminal gate: no sales on a closed register, no fallback."""
    if not register.is_active:
        raise RegisterClosedError(f"Register '{register.name}' is closed")
