import os
import sys
import itertools
import tempfile
import pytest

# Ensure project root is on sys.path for module resolution
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Environment must be ready before app is imported (settings load at import)
os.environ['GATEWAY_PROVIDER'] = 'sandbox'
os.environ['CREATE_PAYMENT_RATE_LIMIT'] = '1000 per minute'
os.environ.setdefault('LOG_FILE', os.path.join(tempfile.gettempdir(), 'pix_checkout_tests.log'))

from app import app  # noqa: E402
from pagamentos_gateway import SandboxGateway  # noqa: E402


class FakeTimer:
    def __init__(self, when, seq, callback):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Deterministic clock; callbacks run synchronously inside advance()."""

    def __init__(self):
        self.now = 0.0
        self._timers = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + delay, next(self._seq), callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = max(self.now, target)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def gateway():
    return SandboxGateway()


@pytest.fixture
def test_app(gateway):
    app.config['TESTING'] = True
    previous = app.extensions['pix_gateway']
    app.extensions['pix_gateway'] = gateway

    yield app

    app.extensions['pix_gateway'] = previous


@pytest.fixture
def client(test_app):
    return test_app.test_client()
