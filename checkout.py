"""
Checkout PIX do lado da exibição.

PixCheckout substitui as flags soltas (loading/checking) por uma máquina de
estados explícita e é o único dono da sessão de verificação do pagamento
exibido: gerar um novo PIX cancela a sessão anterior antes de iniciar outra.
"""
import logging
import threading
from decimal import Decimal
from enum import Enum

from api_client import PaymentCreationError
from models import PaymentIntent
from poller import PollOutcome, PollSession, DEFAULT_INTERVAL, DEFAULT_MAX_DURATION

logger = logging.getLogger(__name__)

CREATION_ERROR_MESSAGE = 'Erro ao gerar PIX. Tente novamente.'


class CheckoutState(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    AWAITING_CONFIRMATION = 'awaiting_confirmation'
    CONFIRMED = 'confirmed'
    EXPIRED = 'expired'


def format_brl(amount) -> str:
    """Formata um valor como 'R$ 1.234,50'."""
    text = f"{Decimal(str(amount)):,.2f}"
    return 'R$ ' + text.replace(',', '_').replace('.', ',').replace('_', '.')


class PixCheckout:
    def __init__(self, client, title, amount, on_payment_success, on_cancel=None,
                 poll_interval=DEFAULT_INTERVAL, poll_timeout=DEFAULT_MAX_DURATION, scheduler=None):
        self.client = client
        self.title = title
        self.amount = Decimal(str(amount))
        self.on_payment_success = on_payment_success
        self.on_cancel = on_cancel
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.scheduler = scheduler

        self.state = CheckoutState.IDLE
        self.intent = None
        self.payment = None
        self.error = None
        self._session = None
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def session(self):
        return self._session

    @property
    def pix_code(self):
        return (self.payment or {}).get('qr_code')

    @property
    def qr_image_uri(self):
        encoded = (self.payment or {}).get('qr_code_base64')
        if not encoded:
            return None
        return f'data:image/png;base64,{encoded}'

    @property
    def formatted_amount(self):
        return format_brl(self.amount)

    def _release_session(self):
        # invalida callbacks da sessão antiga antes de cancelá-la
        self._generation += 1
        session, self._session = self._session, None
        if session is not None:
            session.cancel()

    def generate(self):
        with self._lock:
            if self.state is CheckoutState.LOADING:
                raise RuntimeError("PIX payment is already being generated")
            self._release_session()
            self.state = CheckoutState.LOADING
            self.error = None
            self.intent = None
            self.payment = None
            generation = self._generation

        try:
            data = self.client.create_pix_payment(self.title, self.amount, quantity=1)
            intent = PaymentIntent(identifier=str(data['id']), title=self.title,
                                   amount=self.amount, quantity=1)
        except (PaymentCreationError, KeyError, ValueError) as e:
            logger.error(f"Erro ao criar PIX: {e}")
            with self._lock:
                # cancelado enquanto o PIX era gerado: nada a exibir
                if generation == self._generation:
                    self.state = CheckoutState.IDLE
                    self.error = CREATION_ERROR_MESSAGE
            if isinstance(e, PaymentCreationError):
                raise
            raise PaymentCreationError('Resposta inválida ao criar pagamento PIX') from e

        with self._lock:
            if generation != self._generation:
                # cancelado enquanto o PIX era gerado
                return None
            self.intent = intent
            self.payment = data
            self.state = CheckoutState.AWAITING_CONFIRMATION
            self._session = PollSession(
                intent.identifier,
                self.client.check_payment,
                on_success=lambda: self._handle_approved(generation),
                on_finish=lambda outcome: self._handle_finish(generation, outcome),
                interval=self.poll_interval,
                max_duration=self.poll_timeout,
                scheduler=self.scheduler,
            )
            self._session.start()
        return intent

    def _handle_approved(self, generation):
        with self._lock:
            if generation != self._generation:
                return
            self.state = CheckoutState.CONFIRMED
        self.on_payment_success()

    def _handle_finish(self, generation, outcome):
        if outcome is not PollOutcome.TIMED_OUT:
            return
        with self._lock:
            if generation != self._generation:
                return
            self.state = CheckoutState.EXPIRED

    def cancel(self):
        with self._lock:
            self._release_session()
            self.state = CheckoutState.IDLE
            self.intent = None
            self.payment = None
        if self.on_cancel is not None:
            self.on_cancel()
