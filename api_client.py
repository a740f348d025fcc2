"""HTTP client for the storefront PIX endpoints."""
import logging

import requests

from models import PaymentStatus

logger = logging.getLogger(__name__)


class PaymentCreationError(Exception):
    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details if details is not None else {}


class StorefrontClient:
    def __init__(self, base_url, timeout=10, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def create_pix_payment(self, title, price, quantity=1) -> dict:
        try:
            response = self.session.post(
                f'{self.base_url}/api/create-pix-payment',
                json={'title': title, 'price': float(price), 'quantity': quantity},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PaymentCreationError('Erro ao criar pagamento PIX') from e

        if not response.ok:
            try:
                details = response.json()
            except ValueError:
                details = {}
            raise PaymentCreationError('Erro ao criar pagamento PIX',
                                       status_code=response.status_code, details=details)
        try:
            return response.json()
        except ValueError as e:
            raise PaymentCreationError('Resposta inválida ao criar pagamento PIX',
                                       status_code=response.status_code) from e

    def check_payment(self, payment_id) -> PaymentStatus:
        response = self.session.get(f'{self.base_url}/api/check-payment/{payment_id}',
                                    timeout=self.timeout)
        response.raise_for_status()
        return PaymentStatus.from_provider(response.json().get('status'))
