# Overview: Pytest coverage for the back-office dashboard summary.

import pytest
from tillpos.services import archive_service, register_service, reporting_service, sales_service


@pytest.fixture
def trading_day(db_session, company_a, open_register_a, coffee, tea):
    """Two coffees for cash and a tea by card on an open register, plus an idle register."""
    sales_service.checkout(open_register_a, [{'product_id': coffee.id, 'quantity': 2}], 'cash',
                           received_amount_cents=1000)
    sales_service.checkout(open_register_a, [{'product_id': tea.id, 'quantity': 1}], 'card')
    register_service.create_register(company_a.id, "Back Counter")
    return open_register_a


class TestDashboardSummary:

    def test_figures(self, db_session, company_a, trading_day):
        summary = reporting_service.dashboard_summary(company_a.id)

        assert summary['sales']['count'] == 2
        assert summary['sales']['revenue_cents'] == 1300
        assert summary['sales']['by_payment_method']['cash'] == {'count': 1, 'revenue_cents': 1000}
        assert summary['sales']['by_payment_method']['card'] == {'count': 1, 'revenue_cents': 300}
        assert summary['sales']['by_payment_method']['qr'] == {'count': 0, 'revenue_cents': 0}

        assert summary['products']['count'] == 2
        assert summary['products']['low_stock_count'] == 2
        assert {p['stock'] for p in summary['products']['low_stock']} == {8, 9}

        assert summary['registers']['active'] == 1
        assert summary['registers']['total'] == 2
        assert summary['registers']['active_registers'][0]['current_balance_cents'] == 11000

    def test_archived_sales_excluded_by_default(self, db_session, company_a, trading_day):
        register_service.close_register(company_a.id, trading_day.id, 11000)
        archive_service.run_archive(company_a.id)

        assert reporting_service.dashboard_summary(company_a.id)['sales']['count'] == 0
        assert reporting_service.dashboard_summary(company_a.id, include_archived=True)['sales']['count'] == 2


class TestDashboardRoute:

    def test_requires_auth(self, client, db_session):
        assert client.get('/api/dashboard').status_code == 401

    def test_company_scoped(self, client, headers_a, headers_b, trading_day):
        own = client.get('/api/dashboard', headers=headers_a)
        other = client.get('/api/dashboard', headers=headers_b)

        assert own.status_code == 200
        assert own.json['sales']['revenue_cents'] == 1300
        assert other.status_code == 200
        assert other.json['sales']['count'] == 0
        assert other.json['registers']['total'] == 0

    def test_include_archived_flag(self, client, company_a, headers_a, trading_day):
        register_service.close_register(company_a.id, trading_day.id, 11000)
        client.post('/api/archive/run', json={}, headers=headers_a)

        assert client.get('/api/dashboard', headers=headers_a).json['sales']['count'] == 0
        archived = client.get('/api/dashboard?include_archived=true', headers=headers_a).json
        assert archived['sales']['count'] == 2
