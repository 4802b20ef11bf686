# Overview: Pytest coverage for the session ledger: totals, expected balance, variance and close.

"""
Session Ledger Tests

Covers one full register day: open with 10000, sell cash and card, close
against a short count, plus the failure paths of record_sale and close.
"""

import pytest
from tillpos.models import CashRegister, CashRegisterSession, Sale
from tillpos.models.registers import SESSION_CLOSED, SESSION_OPEN
from tillpos.services import persistence, register_service, sales_service, session_ledger
from tillpos.services.session_ledger import InconsistentStateError, NoOpenSessionError
from tillpos.validation import ValidationError


def _sell(register, product, method, quantity=1, **kwargs):
    return sales_service.checkout(register, [{"product_id": product.id, "quantity": quantity}], method, **kwargs)


class TestStartSession:

    def test_open_creates_session_with_zero_totals(self, db_session, company_a, open_register_a, cashier_a):
        session = session_ledger.get_open_session(company_a.id, open_register_a.id)

        assert session is not None
        assert session.status == SESSION_OPEN
        assert session.opening_balance_cents == 10000
        assert session.expected_balance_cents == 10000
        assert session.total_sales == 0
        assert session.total_cash_cents == 0
        assert session.total_card_cents == 0
        assert session.employee_id == cashier_a.id
        assert session.employee_name == "Ana Cashier"
        assert session.cash_register_name == "Front Counter"
        assert session.archived is False

    def test_session_id_is_uuid_string(self, db_session, company_a, open_register_a):
        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert isinstance(session.id, str)
        assert len(session.id) == 36

    def test_negative_opening_balance_rejected(self, db_session, company_a, register_a):
        with pytest.raises(ValidationError):
            session_ledger.start_session(company_a.id, register_a.id, None, None, -1)
        assert db_session.query(CashRegisterSession).count() == 0


class TestRecordSale:

    def test_cash_and_card_totals(self, db_session, company_a, open_register_a, coffee, tea):
        _sell(open_register_a, coffee, "cash", received_amount_cents=1000)
        _sell(open_register_a, tea, "card")

        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert session.total_sales == 2
        assert session.total_cash_cents == 500
        assert session.total_card_cents == 300
        assert session.expected_balance_cents == 10500

        register = db_session.get(CashRegister, open_register_a.id)
        assert register.current_balance_cents == 10500

    def test_card_sale_does_not_touch_drawer(self, db_session, company_a, open_register_a, tea):
        _sell(open_register_a, tea, "card", quantity=2)

        register = db_session.get(CashRegister, open_register_a.id)
        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert register.current_balance_cents == 10000
        assert session.expected_balance_cents == 10000
        assert session.total_card_cents == 600

    def test_qr_sale_counts_as_card_total(self, db_session, company_a, open_register_a, coffee):
        _sell(open_register_a, coffee, "qr")

        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert session.total_card_cents == 550
        assert session.total_cash_cents == 0

    def test_sale_is_stamped_with_session(self, db_session, company_a, open_register_a, coffee):
        result = _sell(open_register_a, coffee, "cash", received_amount_cents=500)

        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert result.sale.session_id == session.id
        assert result.session.id == session.id

    def test_totals_heal_from_sales(self, db_session, company_a, open_register_a, coffee, tea):
        """A corrupted running total is rebuilt from the session's sales on the next sale."""
        _sell(open_register_a, coffee, "cash", received_amount_cents=500)
        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        session.total_cash_cents = 99999
        session.total_sales = 42
        db_session.commit()

        _sell(open_register_a, tea, "cash", received_amount_cents=300)

        session = session_ledger.get_open_session(company_a.id, open_register_a.id)
        assert session.total_sales == 2
        assert session.total_cash_cents == 800
        assert session.expected_balance_cents == 10800

    def test_closed_register_has_no_open_session(self, db_session, company_a, register_a, coffee):
        sale = sales_service.build_sale(
            register_a, [{"product_id": coffee.id, "quantity": 1}], "cash", received_amount_cents=500
        )
        with pytest.raises(NoOpenSessionError) as exc:
            session_ledger.record_sale(sale)
        assert not isinstance(exc.value, InconsistentStateError)
        assert db_session.query(Sale).count() == 0

    def test_active_register_without_session_is_inconsistent(self, db_session, company_a, register_a, coffee):
        register_a.is_active = True
        db_session.commit()

        sale = sales_service.build_sale(
            register_a, [{"product_id": coffee.id, "quantity": 1}], "cash", received_amount_cents=500
        )
        with pytest.raises(InconsistentStateError) as exc:
            session_ledger.record_sale(sale)
        assert exc.value.register.id == register_a.id
        assert db_session.query(Sale).count() == 0


class TestCloseSession:

    def test_close_with_short_count(self, db_session, company_a, open_register_a, coffee, tea):
        _sell(open_register_a, coffee, "cash", received_amount_cents=1000)
        _sell(open_register_a, tea, "card")

        session = session_ledger.close_session(company_a.id, open_register_a.id, 10450)

        assert session.status == SESSION_CLOSED
        assert session.closed_at is not None
        assert session.closing_balance_cents == 10450
        assert session.expected_balance_cents == 10500
        assert session.variance_cents == -50
        assert session.total_sales == 2

        register = db_session.get(CashRegister, open_register_a.id)
        assert register.is_active is False
        assert register.current_balance_cents == 0
        assert register.opening_balance_cents == 0
        assert register.closed_at is not None

    def test_close_with_over_count(self, db_session, company_a, open_register_a):
        session = session_ledger.close_session(company_a.id, open_register_a.id, 10025)
        assert session.variance_cents == 25

    def test_close_without_session_on_active_register(self, db_session, company_a, register_a):
        register_a.is_active = True
        register_a.current_balance_cents = 777
        db_session.commit()

        with pytest.raises(InconsistentStateError):
            session_ledger.close_session(company_a.id, register_a.id, 0)

        register = db_session.get(CashRegister, register_a.id)
        assert register.is_active is True
        assert register.current_balance_cents == 777

    def test_close_closed_register(self, db_session, company_a, register_a):
        with pytest.raises(NoOpenSessionError):
            session_ledger.close_session(company_a.id, register_a.id, 0)

    def test_close_requires_count(self, db_session, company_a, open_register_a):
        with pytest.raises(ValidationError):
            session_ledger.close_session(company_a.id, open_register_a.id, None)
        assert session_ledger.get_open_session(company_a.id, open_register_a.id) is not None

    def test_closed_totals_are_frozen(self, db_session, company_a, open_register_a, coffee):
        _sell(open_register_a, coffee, "cash", received_amount_cents=500)
        closed = session_ledger.close_session(company_a.id, open_register_a.id, 10500)

        register_service.open_register(company_a.id, open_register_a.id, 2000)
        _sell(open_register_a, coffee, "cash", received_amount_cents=500)

        frozen = persistence.get_session(company_a.id, closed.id)
        assert frozen.total_sales == 1
        assert frozen.total_cash_cents == 500
        assert frozen.expected_balance_cents == 10500


class TestSessionSummary:

    def test_summary_groups_by_payment_method(self, db_session, company_a, open_register_a, coffee, tea):
        _sell(open_register_a, coffee, "cash", received_amount_cents=500)
        _sell(open_register_a, tea, "cash", received_amount_cents=300)
        _sell(open_register_a, tea, "card")
        session = session_ledger.close_session(company_a.id, open_register_a.id, 10800)

        summary = session_ledger.get_session_summary(company_a.id, session.id)

        assert summary["variance_cents"] == 0
        assert len(summary["sales"]) == 3
        assert summary["by_payment_method"]["cash"] == {"count": 2, "total_cents": 800}
        assert summary["by_payment_method"]["card"] == {"count": 1, "total_cents": 300}
