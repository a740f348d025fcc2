"""
Gateway adapter for PIX payments.
MercadoPagoGateway talks to the real provider; SandboxGateway simulates it
in memory for development and tests.
"""
from typing import Dict, Optional
from datetime import datetime, timedelta, timezone
import uuid
import io
import base64
import logging
import threading
import requests
import qrcode

from models import PaymentStatus

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """The provider answered with a non-2xx status."""

    def __init__(self, message, status_code=502, details=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details if details is not None else {}


def normalize_payment(payment: Dict) -> Dict:
    """Shape a provider payment into the payload returned to the storefront."""
    transaction_data = (payment.get('point_of_interaction') or {}).get('transaction_data') or {}
    return {
        'id': str(payment['id']),
        'status': PaymentStatus.from_provider(payment.get('status')).value,
        'qr_code': transaction_data.get('qr_code'),
        'qr_code_base64': transaction_data.get('qr_code_base64'),
        'ticket_url': transaction_data.get('ticket_url'),
        'payment_method_id': payment.get('payment_method_id'),
        'transaction_amount': payment.get('transaction_amount'),
        'date_of_expiration': payment.get('date_of_expiration'),
    }


class BaseGateway:
    name = 'base'

    def create_pix(self, title, amount, quantity=1) -> Dict:
        raise NotImplementedError()

    def get_payment_status(self, payment_id) -> PaymentStatus:
        raise NotImplementedError()


class MercadoPagoGateway(BaseGateway):
    name = 'mercadopago'

    def __init__(self, access_token, payer_email, base_url='https://api.mercadopago.com',
                 timeout=10, session=None):
        if not access_token:
            raise RuntimeError("MercadoPago access token is required")
        self.base_url = base_url.rstrip('/')
        self.payer_email = payer_email
        self.timeout = timeout
        self.session = session or requests.Session()
        self._access_token = access_token

    def _headers(self):
        return {
            'Authorization': f'Bearer {self._access_token}',
            'Content-Type': 'application/json',
        }

    @staticmethod
    def _error_details(response):
        try:
            return response.json()
        except ValueError:
            return {'message': response.text[:200]}

    def create_pix(self, title, amount, quantity=1) -> Dict:
        payment_data = {
            'transaction_amount': float(amount * quantity),
            'description': title,
            'payment_method_id': 'pix',
            'payer': {'email': self.payer_email},
        }
        headers = self._headers()
        headers['X-Idempotency-Key'] = str(uuid.uuid4())

        response = self.session.post(f'{self.base_url}/v1/payments', json=payment_data,
                                     headers=headers, timeout=self.timeout)
        if not response.ok:
            details = self._error_details(response)
            logger.error(f"Erro MercadoPago ao criar PIX: status={response.status_code} details={details}")
            raise GatewayError('Erro ao criar pagamento PIX', status_code=response.status_code, details=details)

        # JSON malformado propaga ValueError; a rota responde 500
        return normalize_payment(response.json())

    def get_payment_status(self, payment_id) -> PaymentStatus:
        response = self.session.get(f'{self.base_url}/v1/payments/{payment_id}',
                                    headers=self._headers(), timeout=self.timeout)
        if not response.ok:
            details = self._error_details(response)
            logger.warning(f"Erro MercadoPago ao consultar pagamento: status={response.status_code}")
            raise GatewayError('Erro ao consultar pagamento PIX', status_code=response.status_code, details=details)
        return PaymentStatus.from_provider(response.json().get('status'))


class SandboxGateway(BaseGateway):
    """Simple sandbox that stores payments in memory and renders a QR code for PIX.
    This is only for development and tests.
    """
    name = 'sandbox'
    expiration = timedelta(minutes=30)

    def __init__(self):
        self._payments = {}
        self._lock = threading.Lock()

    @staticmethod
    def _render_qr(payload):
        qr = qrcode.QRCode(box_size=10, border=4)
        qr.add_data(payload)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        return base64.b64encode(buffered.getvalue()).decode('ascii')

    def create_pix(self, title, amount, quantity=1) -> Dict:
        if amount <= 0:
            raise GatewayError('Erro ao criar pagamento PIX', status_code=400,
                               details={'message': 'transaction_amount must be positive'})

        payment_id = str(uuid.uuid4())
        total = amount * quantity
        qr_payload = f"PIX:{payment_id}|AMOUNT:{total:.2f}|DESC:{title}"
        expires = datetime.now(timezone.utc) + self.expiration

        payment = {
            'id': payment_id,
            'status': 'pending',
            'payment_method_id': 'pix',
            'transaction_amount': float(total),
            'description': title,
            'date_of_expiration': expires.isoformat(timespec='seconds'),
            'point_of_interaction': {
                'transaction_data': {
                    'qr_code': qr_payload,
                    'qr_code_base64': self._render_qr(qr_payload),
                    'ticket_url': None,
                }
            },
        }
        with self._lock:
            self._payments[payment_id] = payment
        return normalize_payment(payment)

    def _set_status(self, payment_id, status):
        with self._lock:
            payment = self._payments.get(payment_id)
            if payment is None:
                raise GatewayError('Pagamento não encontrado', status_code=404,
                                   details={'message': f'payment {payment_id} not found'})
            payment['status'] = status

    def approve(self, payment_id):
        self._set_status(payment_id, 'approved')

    def reject(self, payment_id):
        self._set_status(payment_id, 'rejected')

    def get_payment_status(self, payment_id) -> PaymentStatus:
        with self._lock:
            payment = self._payments.get(payment_id)
        if payment is None:
            raise GatewayError('Erro ao consultar pagamento PIX', status_code=404,
                               details={'message': f'payment {payment_id} not found'})
        return PaymentStatus.from_provider(payment['status'])


def get_gateway(settings) -> BaseGateway:
    # Select gateway from the loaded settings; unknown names never reach here
    if settings.gateway_provider == 'sandbox':
        return SandboxGateway()
    return MercadoPagoGateway(
        access_token=settings.access_token,
        payer_email=settings.payer_email,
        base_url=settings.api_base_url,
        timeout=settings.gateway_timeout,
    )
