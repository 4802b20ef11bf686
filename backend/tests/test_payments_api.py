# Overview: Pytest coverage for signed gateway webhooks over HTTP.

import httpx
import pytest
from tillpos.models.payments import STATUS_APPROVED, STATUS_PENDING
from tillpos.services import payment_gateway
from conftest import WEBHOOK_SECRET


def _signed_headers(data_id, request_id='req-1', ts='1700000000', secret=WEBHOOK_SECRET):
    manifest = payment_gateway.signature_manifest(str(data_id), request_id, ts)
    return {
        'x-signature': f'ts={ts},v1={payment_gateway.sign_manifest(manifest, secret)}',
        'x-request-id': request_id,
    }


@pytest.fixture
def pending_qr(app, db_session, company_a, monkeypatch):
    def handler(request):
        if request.method == 'POST':
            return httpx.Response(201, json={'qr_data': 'qr-payload'})
        return httpx.Response(200, json={'external_reference': 'qr-web', 'status': 'approved'})

    monkeypatch.setitem(app.config, 'PAYMENT_HTTP_TRANSPORT', httpx.MockTransport(handler))
    return payment_gateway.create_qr_order(company_a.id, 700, external_reference='qr-web')


class TestQrWebhookRoute:

    def test_signed_notification_approves(self, client, pending_qr):
        payload = {'type': 'payment', 'data': {'id': '555'}}
        response = client.post('/api/payments/webhooks/qr', json=payload, headers=_signed_headers('555'))

        assert response.status_code == 200
        assert response.json['payment']['status'] == STATUS_APPROVED

    def test_unsigned_notification_rejected(self, client, db_session, pending_qr):
        response = client.post('/api/payments/webhooks/qr', json={'type': 'payment', 'data': {'id': '555'}})

        assert response.status_code == 401
        db_session.refresh(pending_qr)
        assert pending_qr.status == STATUS_PENDING

    def test_wrong_secret_rejected(self, client, pending_qr):
        response = client.post('/api/payments/webhooks/qr', json={'type': 'payment', 'data': {'id': '555'}},
                               headers=_signed_headers('555', secret='guess'))
        assert response.status_code == 401

    def test_missing_secret_rejects_everything(self, client, app, pending_qr, monkeypatch):
        monkeypatch.setitem(app.config, 'PAYMENT_WEBHOOK_SECRET', '')
        response = client.post('/api/payments/webhooks/qr', json={'type': 'payment', 'data': {'id': '555'}},
                               headers=_signed_headers('555'))
        assert response.status_code == 401


class TestPointWebhookRoute:

    def test_signed_notification(self, client, app, db_session, company_a, monkeypatch):
        monkeypatch.setitem(app.config, 'PAYMENT_HTTP_TRANSPORT',
                            httpx.MockTransport(lambda request: httpx.Response(201, json={'id': 'ord-7'})))
        payment_gateway.create_point_order(company_a.id, 900, external_reference='pt-web')

        payload = {'data': {'id': 'ord-7', 'status': 'processed'}}
        response = client.post('/api/payments/webhooks/point', json=payload, headers=_signed_headers('ord-7'))

        assert response.status_code == 200
        assert response.json['payment']['status'] == STATUS_APPROVED

    def test_notification_without_id_rejected(self, client, db_session):
        response = client.post('/api/payments/webhooks/point', json={'data': {}}, headers=_signed_headers('x'))
        assert response.status_code == 401
