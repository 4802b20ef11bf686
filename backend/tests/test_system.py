# Overview: Pytest coverage for health/version endpoints, admin auth routes and CLI commands.

import pytest
from tillpos.models import CashRegister, Company
from conftest import ADMIN_PASSWORD, get_auth_token, auth_headers


class TestPublicEndpoints:

    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['checks']['database']['status'] == 'healthy'

    def test_health_degraded_without_webhook_secret(self, client, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, 'PAYMENT_WEBHOOK_SECRET', '')
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json['status'] == 'degraded'

    def test_version(self, client, db_session):
        response = client.get('/version')
        assert response.status_code == 200
        assert 'api_version' in response.json

    def test_cors_allowed_origin(self, client, db_session):
        response = client.get('/health', headers={'Origin': 'http://localhost:5173'})
        assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:5173'

    def test_cors_other_origin(self, client, db_session):
        response = client.get('/health', headers={'Origin': 'https://evil.example'})
        assert 'Access-Control-Allow-Origin' not in response.headers


class TestAuthRoutes:

    def test_login_logout(self, client, company_a):
        token = get_auth_token(client, 'acme')
        assert token

        me = client.get('/api/auth/me', headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json['company']['code'] == 'ACME'

        assert client.post('/api/auth/logout', headers=auth_headers(token)).status_code == 200
        assert client.get('/api/auth/me', headers=auth_headers(token)).status_code == 401

    def test_bad_login(self, client, company_a):
        response = client.post('/api/auth/login', json={
            'company_code': 'ACME', 'username': 'admin', 'password': 'nope12345',
        })
        assert response.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        assert client.post('/api/auth/login', json={'company_code': 'ACME'}).status_code == 400

    def test_register_company(self, client, db_session):
        response = client.post('/api/auth/register-company', json={
            'name': 'Fresh Shop', 'code': 'FRESH', 'admin_username': 'owner', 'admin_password': 'Password123',
        })
        assert response.status_code == 201
        assert get_auth_token(client, 'FRESH', username='owner')

        duplicate = client.post('/api/auth/register-company', json={
            'name': 'Again', 'code': 'fresh', 'admin_username': 'owner', 'admin_password': 'Password123',
        })
        assert duplicate.status_code == 409

    def test_change_password(self, client, company_a, headers_a):
        wrong = client.post('/api/auth/change-password', headers=headers_a, json={
            'current_password': 'wrong-pass1', 'new_password': 'Another123',
        })
        assert wrong.status_code == 401

        ok = client.post('/api/auth/change-password', headers=headers_a, json={
            'current_password': ADMIN_PASSWORD, 'new_password': 'Another123',
        })
        assert ok.status_code == 200
        assert get_auth_token(client, 'ACME', password='Another123')


class TestCatalogRoutes:

    def test_product_crud(self, client, headers_a):
        created = client.post('/api/products', headers=headers_a, json={
            'name': 'Scone', 'cash_price_cents': 300, 'card_price_cents': 330, 'stock': 4,
        })
        assert created.status_code == 201
        product_id = created.json['product']['id']

        updated = client.patch(f'/api/products/{product_id}', headers=headers_a, json={'stock': 9})
        assert updated.json['product']['stock'] == 9

        assert client.delete(f'/api/products/{product_id}', headers=headers_a).status_code == 200
        assert client.get('/api/products', headers=headers_a).json['products'] == []

    def test_product_missing_prices(self, client, headers_a):
        response = client.post('/api/products', headers=headers_a, json={'name': 'Scone'})
        assert response.status_code == 400

    def test_product_plan_limit(self, client, db_session, company_a, headers_a, coffee):
        company_a.max_products = 1
        db_session.commit()
        response = client.post('/api/products', headers=headers_a, json={
            'name': 'Scone', 'cash_price_cents': 300, 'card_price_cents': 330,
        })
        assert response.status_code == 409

    def test_employee_rename_updates_register(self, client, db_session, headers_a, register_a, cashier_a):
        response = client.patch(f'/api/employees/{cashier_a.id}', headers=headers_a, json={'name': 'Ana B.'})
        assert response.status_code == 200
        assert db_session.get(CashRegister, register_a.id).employee_name == 'Ana B.'

    def test_cannot_delete_employee_on_open_register(self, client, headers_a, open_register_a, cashier_a):
        response = client.delete(f'/api/employees/{cashier_a.id}', headers=headers_a)
        assert response.status_code == 409

    def test_payment_settings_hide_secrets(self, client, headers_a):
        response = client.get('/api/settings/payments', headers=headers_a)
        settings = response.json['settings']
        assert settings['has_access_token'] is True
        assert 'gateway_access_token' not in settings


class TestCli:

    def test_init_creates_default_company(self, app, db_session):
        result = app.test_cli_runner().invoke(args=['system', 'init'])
        assert 'PASS Created company' in result.output
        assert db_session.query(Company).filter_by(code='DEFAULT').count() == 1

    def test_registers_inspect_and_repair(self, app, db_session, company_a, register_a):
        register_a.is_active = True
        db_session.commit()
        runner = app.test_cli_runner()

        inspect = runner.invoke(args=['registers', 'inspect', '--company-id', str(company_a.id)])
        assert 'inconsistent' in inspect.output

        repair = runner.invoke(args=[
            'registers', 'repair', '--company-id', str(company_a.id), '--register-id', str(register_a.id), '--yes',
        ])
        assert 'PASS' in repair.output
        assert db_session.get(CashRegister, register_a.id).is_active is False

    def test_archive_run(self, app, db_session, company_a):
        result = app.test_cli_runner().invoke(args=['archive', 'run', '--company-id', str(company_a.id)])
        assert 'Archived 0 sales and 0 sessions' in result.output
