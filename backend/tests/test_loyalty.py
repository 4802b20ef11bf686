# Overview: Pytest coverage for loyalty programs, customers and point awards at checkout.

import pytest
from tillpos.models import CustomerPoints, PointTransaction
from tillpos.services import loyalty_service, sales_service
from tillpos.services.persistence import NotFoundError
from tillpos.validation import ValidationError


def _program(company, **overrides):
    payload = {
        "name": "Coffee Club",
        "calculation_type": "amount",
        "points_per_unit": 1,
        "unit_value": 100,
    }
    payload.update(overrides)
    return loyalty_service.save_program(company.id, payload)


class TestProgram:

    def test_save_and_replace(self, db_session, company_a):
        _program(company_a)
        program = _program(company_a, name="Renamed", points_per_unit=2)

        assert program.name == "Renamed"
        assert loyalty_service.get_program(company_a.id).points_per_unit == 2

    @pytest.mark.parametrize("overrides", [
        {"calculation_type": "visits"},
        {"unit_value": 0},
        {"points_per_unit": -1},
        {"name": ""},
        {"is_active": "yes"},
    ])
    def test_invalid_program(self, db_session, company_a, overrides):
        with pytest.raises(ValidationError):
            _program(company_a, **overrides)


class TestCalculatePoints:

    def test_amount_based(self, db_session, company_a):
        program = _program(company_a)
        assert loyalty_service.calculate_points(program, 1050, 1) == 10

    def test_quantity_based(self, db_session, company_a):
        program = _program(company_a, calculation_type="quantity", unit_value=2, points_per_unit=5)
        assert loyalty_service.calculate_points(program, 0, 5) == 10

    def test_minimums(self, db_session, company_a):
        program = _program(company_a, min_purchase_cents=1000, min_items=2)
        assert loyalty_service.calculate_points(program, 999, 5) == 0
        assert loyalty_service.calculate_points(program, 5000, 1) == 0
        assert loyalty_service.calculate_points(program, 5000, 2) == 50

    def test_inactive_or_missing_program(self, db_session, company_a):
        assert loyalty_service.calculate_points(None, 5000, 5) == 0
        program = _program(company_a, is_active=False)
        assert loyalty_service.calculate_points(program, 5000, 5) == 0


class TestCustomers:

    def test_register_creates_qr_and_points(self, db_session, company_a):
        customer = loyalty_service.register_customer(company_a.id, {"name": "Lu", "dni": "30111222"})

        assert customer.qr_code.startswith("CUS-")
        assert customer.points.points_balance == 0
        assert loyalty_service.find_customer_by_qr(company_a.id, customer.qr_code).id == customer.id

    def test_register_same_dni_updates(self, db_session, company_a):
        first = loyalty_service.register_customer(company_a.id, {"name": "Lu", "dni": "30111222"})
        second = loyalty_service.register_customer(company_a.id, {"dni": "30111222", "email": "lu@example.com"})

        assert second.id == first.id
        assert second.name == "Lu"
        assert second.email == "lu@example.com"

    def test_register_needs_some_identity(self, db_session, company_a):
        with pytest.raises(ValidationError):
            loyalty_service.register_customer(company_a.id, {})

    def test_qr_lookup_is_company_scoped(self, db_session, company_a, company_b):
        customer = loyalty_service.register_customer(company_a.id, {"name": "Lu"})
        with pytest.raises(NotFoundError):
            loyalty_service.find_customer_by_qr(company_b.id, customer.qr_code)


class TestAwards:

    def test_checkout_awards_points(self, db_session, company_a, open_register_a, coffee):
        _program(company_a)
        customer = loyalty_service.register_customer(company_a.id, {"name": "Lu"})

        result = sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 3}], "cash",
            received_amount_cents=1500, customer_id=customer.id,
        )

        assert result.points.points_earned == 15
        assert result.points.new_balance == 15
        assert result.sale.customer_id == customer.id
        tx = db_session.query(PointTransaction).one()
        assert tx.sale_id == result.sale.id
        assert tx.points_change == 15
        assert tx.reason == "Purchase"

    def test_reward_threshold_resets_balance(self, db_session, company_a, open_register_a, coffee):
        _program(company_a, reward_threshold_points=10, reward_label="Free coffee")
        customer = loyalty_service.register_customer(company_a.id, {"name": "Lu"})

        result = sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 2}], "card", customer_id=customer.id,
        )

        assert result.points.points_earned == 11
        assert result.points.reward_available is True
        assert result.points.reward_label == "Free coffee"
        assert result.points.new_balance == 0
        points = db_session.query(CustomerPoints).filter_by(customer_id=customer.id).one()
        assert points.points_balance == 0
        assert points.lifetime_points == 11

    def test_no_program_no_points(self, db_session, company_a, open_register_a, coffee):
        customer = loyalty_service.register_customer(company_a.id, {"name": "Lu"})
        result = sales_service.checkout(
            open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", customer_id=customer.id,
        )
        assert result.points is None
        assert db_session.query(PointTransaction).count() == 0

    def test_unknown_customer_blocks_sale(self, db_session, open_register_a, coffee):
        with pytest.raises(NotFoundError):
            sales_service.checkout(
                open_register_a, [{"product_id": coffee.id, "quantity": 1}], "card", customer_id=999,
            )
