"""
Tipos de domínio: intenção de pagamento, vocabulário de status e validação
do corpo da requisição de criação de PIX.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Tuple

MAX_TITLE_LENGTH = 256


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    UNKNOWN_ERROR = 'unknown-error'

    @classmethod
    def from_provider(cls, value) -> 'PaymentStatus':
        """Mapeia o status do provedor (MercadoPago) para o vocabulário local."""
        if isinstance(value, cls):
            return value
        return _PROVIDER_STATUS.get(str(value or '').strip().lower(), cls.UNKNOWN_ERROR)


_PROVIDER_STATUS = {
    'approved': PaymentStatus.APPROVED,
    'pending': PaymentStatus.PENDING,
    'in_process': PaymentStatus.PENDING,
    'authorized': PaymentStatus.PENDING,
    'in_mediation': PaymentStatus.PENDING,
    'rejected': PaymentStatus.REJECTED,
    'cancelled': PaymentStatus.REJECTED,
    'refunded': PaymentStatus.REJECTED,
    'charged_back': PaymentStatus.REJECTED,
}


@dataclass(frozen=True)
class PaymentIntent:
    identifier: str
    title: str
    amount: Decimal
    quantity: int = 1

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("identifier must be a non-empty string")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if self.quantity < 1:
            raise ValueError("quantity must be a positive integer")


class InvalidPaymentRequest(ValueError):
    def __init__(self, details: Dict[str, str]):
        super().__init__("invalid payment request")
        self.details = details


def parse_payment_request(data) -> Tuple[str, Decimal, int]:
    """
    Valida o JSON recebido em /api/create-pix-payment.
    Retorna (title, price, quantity) ou levanta InvalidPaymentRequest.
    """
    if not isinstance(data, dict):
        raise InvalidPaymentRequest({'body': 'JSON object expected'})

    errors = {}

    title = data.get('title')
    if not isinstance(title, str) or not title.strip():
        errors['title'] = 'must be a non-empty string'
    elif len(title) > MAX_TITLE_LENGTH:
        errors['title'] = f'must have at most {MAX_TITLE_LENGTH} characters'

    price = None
    raw_price = data.get('price')
    # bool é subclasse de int; True não é um preço
    if isinstance(raw_price, bool) or not isinstance(raw_price, (int, float, str)):
        errors['price'] = 'must be a positive number'
    else:
        try:
            price = Decimal(str(raw_price).strip().replace(',', '.'))
            if not price.is_finite() or price <= 0:
                raise InvalidOperation
        except InvalidOperation:
            price = None
            errors['price'] = 'must be a positive number'

    quantity = data.get('quantity', 1)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        errors['quantity'] = 'must be a positive integer'

    if errors:
        raise InvalidPaymentRequest(errors)
    return title.strip(), price, quantity
