# Overview: Pytest coverage for terminal checkout: pricing, tenders, payment references and stock.

import pytest
from tillpos.models import PaymentIntent, Product, Sale
from tillpos.models.payments import METHOD_CARD, METHOD_QR, STATUS_APPROVED, STATUS_PENDING
from tillpos.services import sales_service
from tillpos.services.persistence import NotFoundError
from tillpos.services.register_service import RegisterClosedError
from tillpos.time_utils import utcnow
from tillpos.validation import ValidationError


def _intent(db_session, company, method, amount, status=STATUS_APPROVED, reference="ref-1"):
    now = utcnow()
    intent = PaymentIntent(
        company_id=company.id,
        external_reference=reference,
        method=method,
        amount_cents=amount,
        description="Sale",
        status=status,
        created_at=now,
        updated_at=now,
    )
    db_session.add(intent)
    db_session.commit()
    return intent


class TestPricing:

    def test_cash_uses_cash_price(self, db_session, open_register_a, coffee):
        result = sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 2}], "cash", received_amount_cents=2000
        )
        sale = result.sale
        assert sale.total_cents == 1000
        assert sale.subtotal_cents == 1000
        assert sale.received_amount_cents == 2000
        assert sale.change_cents == 1000
        assert sale.items[0]["applied_price_cents"] == 500
        assert sale.items[0]["line_total_cents"] == 1000

    def test_card_and_qr_use_card_price(self, db_session, open_register_a, coffee):
        card = sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card")
        qr = sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "qr")
        assert card.sale.total_cents == 550
        assert qr.sale.total_cents == 550
        assert card.sale.received_amount_cents is None
        assert card.sale.change_cents is None

    def test_duplicate_lines_are_merged(self, db_session, open_register_a, coffee):
        result = sales_service.checkout(
            open_register_a,
            [{"product_id": coffee.id, "quantity": 1}, {"product_id": coffee.id, "quantity": 2}],
            "card",
        )
        assert len(result.sale.items) == 1
        assert result.sale.items[0]["quantity"] == 3
        assert result.sale.item_count == 3

    def test_line_keeps_product_snapshot(self, db_session, open_register_a, coffee):
        result = sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card")
        coffee.name = "Renamed"
        db_session.commit()

        sale = db_session.get(Sale, result.sale.id)
        assert sale.items[0]["name"] == "Coffee"
        assert sale.items[0]["cash_price_cents"] == 500
        assert sale.items[0]["card_price_cents"] == 550

    def test_sale_snapshots_register_and_employee(self, db_session, open_register_a, cashier_a, coffee):
        result = sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card")
        assert result.sale.cash_register_name == "Front Counter"
        assert result.sale.employee_id == cashier_a.id
        assert result.sale.employee_name == "Ana Cashier"


class TestValidation:

    @pytest.mark.parametrize("items", [None, [], "coffee", [{"product_id": 1}], [{"product_id": 1, "quantity": 0}]])
    def test_bad_cart(self, db_session, open_register_a, items):
        with pytest.raises(ValidationError):
            sales_service.checkout(open_register_a, items, "card")

    def test_unknown_payment_method(self, db_session, open_register_a, coffee):
        with pytest.raises(ValidationError):
            sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "cheque")

    def test_cash_short(self, db_session, open_register_a, coffee):
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "cash", received_amount_cents=499
            )
        assert db_session.query(Sale).count() == 0

    def test_cash_requires_received_amount(self, db_session, open_register_a, coffee):
        with pytest.raises(ValidationError):
            sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 1}], "cash")

    def test_product_of_other_company(self, db_session, company_b, open_register_a):
        foreign = Product(company_id=company_b.id, name="Bread", cash_price_cents=100, card_price_cents=100, stock=1)
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(NotFoundError):
            sales_service.checkout(open_register_a, [{"product_id": foreign.id, "quantity": 1}], "card")

    def test_closed_register_cannot_sell(self, db_session, register_a, coffee):
        with pytest.raises(RegisterClosedError):
            sales_service.checkout(register_a, [{"product_id": coffee.id, "quantity": 1}], "card")
        assert db_session.query(Sale).count() == 0


class TestPaymentReference:

    def test_approved_card_intent(self, db_session, company_a, open_register_a, coffee):
        _intent(db_session, company_a, METHOD_CARD, 550)
        result = sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", payment_reference="ref-1"
        )
        assert result.sale.payment_reference == "ref-1"

    def test_pending_intent_rejected(self, db_session, company_a, open_register_a, coffee):
        _intent(db_session, company_a, METHOD_CARD, 550, status=STATUS_PENDING)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", payment_reference="ref-1"
            )

    def test_amount_mismatch_rejected(self, db_session, company_a, open_register_a, coffee):
        _intent(db_session, company_a, METHOD_CARD, 500)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", payment_reference="ref-1"
            )

    def test_method_mismatch_rejected(self, db_session, company_a, open_register_a, coffee):
        _intent(db_session, company_a, METHOD_QR, 550)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", payment_reference="ref-1"
            )

    def test_reference_used_once(self, db_session, company_a, open_register_a, coffee):
        _intent(db_session, company_a, METHOD_QR, 550)
        sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 1}], "qr", payment_reference="ref-1"
        )
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "qr", payment_reference="ref-1"
            )

    def test_other_company_reference_unknown(self, db_session, company_b, open_register_a, coffee):
        _intent(db_session, company_b, METHOD_CARD, 550)
        with pytest.raises(ValidationError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", payment_reference="ref-1"
            )


class TestStock:

    def test_stock_decremented(self, db_session, open_register_a, coffee):
        sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 3}], "card")
        assert db_session.get(Product, coffee.id).stock == 7

    def test_oversell_floors_at_zero(self, db_session, open_register_a, coffee):
        result = sales_service.checkout(open_register_a, [{"product_id": coffee.id, "quantity": 15}], "card")
        assert result.sale.total_cents == 15 * 550
        assert db_session.get(Product, coffee.id).stock == 0
