"""
Verificação periódica do status de um pagamento PIX (short polling).

Um PollSession consulta o status em intervalo fixo até a aprovação, o fim do
prazo máximo ou o cancelamento. O callback de sucesso dispara no máximo uma
vez; on_finish recebe o desfecho terminal exatamente uma vez.
"""
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from models import PaymentStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3.0
DEFAULT_MAX_DURATION = 600.0


class PollState(str, Enum):
    IDLE = 'idle'
    POLLING = 'polling'
    APPROVED = 'approved'
    TIMED_OUT = 'timed_out'
    CANCELLED = 'cancelled'


class PollOutcome(str, Enum):
    APPROVED = 'approved'
    TIMED_OUT = 'timed_out'
    CANCELLED = 'cancelled'


_TERMINAL_STATE = {
    PollOutcome.APPROVED: PollState.APPROVED,
    PollOutcome.TIMED_OUT: PollState.TIMED_OUT,
    PollOutcome.CANCELLED: PollState.CANCELLED,
}


class ThreadingScheduler:
    """Runs each callback on a daemon threading.Timer."""

    def call_later(self, delay, callback):
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class PollSession:
    def __init__(self, payment_id: str, check_status: Callable[[str], PaymentStatus],
                 on_success: Callable[[], None], interval: float = DEFAULT_INTERVAL,
                 max_duration: float = DEFAULT_MAX_DURATION,
                 on_finish: Optional[Callable[[PollOutcome], None]] = None,
                 scheduler=None):
        if not isinstance(payment_id, str) or not payment_id:
            raise ValueError("payment_id must be a non-empty string")
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_duration <= 0:
            raise ValueError("max_duration must be positive")

        self.payment_id = payment_id
        self.interval = interval
        self.max_duration = max_duration
        self._check_status = check_status
        self._on_success = on_success
        self._on_finish = on_finish
        self._scheduler = scheduler or ThreadingScheduler()

        self._lock = threading.RLock()
        self._done = threading.Event()
        self._state = PollState.IDLE
        self._outcome = None
        self._ticker = None
        self._deadline = None
        self._in_flight = False
        self._checks = 0

    def __repr__(self):
        return f'<PollSession {self.payment_id} {self._state.value}>'

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def outcome(self) -> Optional[PollOutcome]:
        return self._outcome

    @property
    def active(self) -> bool:
        return self._state is PollState.POLLING

    @property
    def checks(self) -> int:
        return self._checks

    def start(self) -> 'PollSession':
        with self._lock:
            if self._state is not PollState.IDLE:
                raise RuntimeError(f"poll session for {self.payment_id} already started")
            self._state = PollState.POLLING
            self._deadline = self._scheduler.call_later(self.max_duration, self._expire)
            self._schedule_tick()
        logger.info(f"Verificação de pagamento iniciada. payment_id={self.payment_id} "
                    f"interval={self.interval}s max_duration={self.max_duration}s")
        return self

    def cancel(self) -> bool:
        return self._finish(PollOutcome.CANCELLED)

    def wait(self, timeout: Optional[float] = None) -> Optional[PollOutcome]:
        self._done.wait(timeout)
        return self._outcome

    def _schedule_tick(self):
        self._ticker = self._scheduler.call_later(self.interval, self._tick)

    def _tick(self):
        with self._lock:
            if self._state is not PollState.POLLING:
                return
            # cadência fixa: o próximo tick é armado antes da consulta
            self._schedule_tick()
            if self._in_flight:
                logger.debug(f"Consulta anterior ainda em andamento; tick ignorado. payment_id={self.payment_id}")
                return
            self._in_flight = True
            self._checks += 1

        status = None
        try:
            status = self._check_status(self.payment_id)
        except Exception as e:
            logger.warning(f"Erro ao verificar pagamento payment_id={self.payment_id}: {e}")
        finally:
            with self._lock:
                self._in_flight = False

        if status == PaymentStatus.APPROVED:
            self._finish(PollOutcome.APPROVED)
        elif status is not None:
            logger.debug(f"Pagamento ainda não aprovado. payment_id={self.payment_id} status={getattr(status, 'value', status)}")

    def _expire(self):
        self._finish(PollOutcome.TIMED_OUT)

    def _release_timers(self):
        for handle in (self._ticker, self._deadline):
            if handle is not None:
                handle.cancel()
        self._ticker = None
        self._deadline = None

    def _finish(self, outcome: PollOutcome) -> bool:
        with self._lock:
            if self._state not in (PollState.IDLE, PollState.POLLING):
                return False
            self._state = _TERMINAL_STATE[outcome]
            self._outcome = outcome
            self._release_timers()

        if outcome is PollOutcome.TIMED_OUT:
            logger.warning(f"Prazo de verificação esgotado sem aprovação. payment_id={self.payment_id} checks={self._checks}")
        else:
            logger.info(f"Verificação de pagamento encerrada. payment_id={self.payment_id} outcome={outcome.value}")

        if outcome is PollOutcome.APPROVED:
            try:
                self._on_success()
            except Exception:
                logger.exception(f"Callback de sucesso falhou. payment_id={self.payment_id}")

        try:
            if self._on_finish is not None:
                self._on_finish(outcome)
        finally:
            self._done.set()
        return True
