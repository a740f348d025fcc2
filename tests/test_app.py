import pytest
import requests

import app as app_module
from api_client import PaymentCreationError
from models import PaymentStatus
from pagamentos_gateway import BaseGateway, GatewayError

VOCABULARY = {status.value for status in PaymentStatus}
SUCCESS_KEYS = {'id', 'status', 'qr_code', 'qr_code_base64', 'ticket_url', 'payment_method_id',
                'transaction_amount', 'date_of_expiration'}


class RejectingGateway(BaseGateway):
    name = 'rejecting'

    def create_pix(self, title, amount, quantity=1):
        raise GatewayError('Erro ao criar pagamento PIX', status_code=401,
                           details={'message': 'invalid access token'})

    def get_payment_status(self, payment_id):
        raise GatewayError('Erro ao consultar pagamento PIX', status_code=404)


class BrokenGateway(BaseGateway):
    name = 'broken'

    def create_pix(self, title, amount, quantity=1):
        raise requests.ConnectionError('api.mercadopago.com unreachable')

    def get_payment_status(self, payment_id):
        raise ValueError('malformed provider response')


def test_create_pix_payment_returns_normalized_payload(client):
    resp = client.post('/api/create-pix-payment', json={'title': 'Relatório', 'price': 19.9})

    assert resp.status_code == 200
    data = resp.get_json()
    assert set(data) == SUCCESS_KEYS
    assert data['status'] == 'pending'
    assert data['payment_method_id'] == 'pix'
    assert data['transaction_amount'] == 19.9
    assert data['qr_code_base64']


@pytest.mark.parametrize('gateway_cls', [None, RejectingGateway, BrokenGateway])
@pytest.mark.parametrize('title, price', [('Item', 0.01), ('Relatório completo', 19.9), ('Plano anual', 1200)])
def test_valid_requests_yield_payload_or_structured_error(test_app, gateway_cls, title, price):
    if gateway_cls is not None:
        test_app.extensions['pix_gateway'] = gateway_cls()
    client = test_app.test_client()

    resp = client.post('/api/create-pix-payment', json={'title': title, 'price': price})

    data = resp.get_json()
    if resp.status_code == 200:
        assert set(data) == SUCCESS_KEYS
    else:
        assert isinstance(data['error'], str)


@pytest.mark.parametrize('body', [
    {'price': 10},
    {'title': 'Item', 'price': -1},
    {'title': 'Item', 'price': 'dez'},
    {'title': 'Item', 'price': 10, 'quantity': 0},
])
def test_create_pix_payment_invalid_body(client, body):
    resp = client.post('/api/create-pix-payment', json=body)

    assert resp.status_code == 400
    data = resp.get_json()
    assert data['error'] == 'Dados de pagamento inválidos'
    assert data['details']


def test_create_pix_payment_non_json_body(client):
    resp = client.post('/api/create-pix-payment', data='title=Item', content_type='text/plain')
    assert resp.status_code == 400


def test_create_pix_payment_mirrors_provider_error(test_app):
    test_app.extensions['pix_gateway'] = RejectingGateway()

    resp = test_app.test_client().post('/api/create-pix-payment', json={'title': 'Item', 'price': 10})

    assert resp.status_code == 401
    assert resp.get_json() == {'error': 'Erro ao criar pagamento PIX',
                               'details': {'message': 'invalid access token'}}


def test_create_pix_payment_hides_internal_failure(test_app):
    test_app.extensions['pix_gateway'] = BrokenGateway()

    resp = test_app.test_client().post('/api/create-pix-payment', json={'title': 'Item', 'price': 10})

    assert resp.status_code == 500
    assert resp.get_json() == {'error': 'Erro interno do servidor'}


def test_created_payment_status_round_trip(client):
    created = client.post('/api/create-pix-payment', json={'title': 'Item', 'price': 10}).get_json()

    resp = client.get(f"/api/check-payment/{created['id']}")
    assert resp.status_code == 200
    assert resp.get_json() == {'id': created['id'], 'status': 'pending'}
    assert resp.get_json()['status'] in VOCABULARY

    approve = client.post(f"/api/sandbox/payments/{created['id']}/approve")
    assert approve.status_code == 200

    assert client.get(f"/api/check-payment/{created['id']}").get_json()['status'] == 'approved'


def test_check_payment_unknown_id(client):
    resp = client.get('/api/check-payment/does-not-exist')

    assert resp.status_code == 404
    assert resp.get_json()['status'] == 'unknown-error'


def test_check_payment_internal_failure(test_app):
    test_app.extensions['pix_gateway'] = BrokenGateway()

    resp = test_app.test_client().get('/api/check-payment/123')

    assert resp.status_code == 500
    assert resp.get_json() == {'id': '123', 'status': 'unknown-error', 'error': 'Erro interno do servidor'}


def test_sandbox_approve_unavailable_for_real_provider(test_app):
    test_app.extensions['pix_gateway'] = RejectingGateway()

    resp = test_app.test_client().post('/api/sandbox/payments/123/approve')
    assert resp.status_code == 404


def test_sandbox_approve_unknown_payment(client):
    resp = client.post('/api/sandbox/payments/missing/approve')
    assert resp.status_code == 404


def test_unknown_route_returns_json_404(client):
    resp = client.get('/nao-existe')
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'Not Found'}


def test_wrong_method_returns_json_405(client):
    resp = client.get('/api/create-pix-payment')
    assert resp.status_code == 405


class ApprovingStorefront:
    def __init__(self, base_url, **kwargs):
        self.base_url = base_url

    def create_pix_payment(self, title, price, quantity=1):
        return {'id': 'cli-1', 'status': 'pending', 'qr_code': '00020126PIXCLI', 'qr_code_base64': None,
                'date_of_expiration': '2026-10-20T12:00:00-03:00'}

    def check_payment(self, payment_id):
        return PaymentStatus.APPROVED


class FailingStorefront(ApprovingStorefront):
    def create_pix_payment(self, title, price, quantity=1):
        raise PaymentCreationError('Erro ao criar pagamento PIX', status_code=502)


def test_cli_pix_checkout_waits_for_approval(test_app, monkeypatch):
    monkeypatch.setattr(app_module, 'StorefrontClient', ApprovingStorefront)

    result = test_app.test_cli_runner().invoke(
        args=['pix-checkout', '--title', 'Teste', '--price', '10', '--interval', '0.01', '--timeout', '5'])

    assert result.exit_code == 0
    assert 'R$ 10,00' in result.output
    assert '00020126PIXCLI' in result.output
    assert 'Pagamento aprovado!' in result.output


def test_cli_pix_checkout_creation_failure(test_app, monkeypatch):
    monkeypatch.setattr(app_module, 'StorefrontClient', FailingStorefront)

    result = test_app.test_cli_runner().invoke(args=['pix-checkout', '--title', 'Teste', '--price', '10'])

    assert result.exit_code == 1
