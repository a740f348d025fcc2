"""
Configuração da aplicação a partir de variáveis de ambiente (.env suportado).
A aplicação se recusa a iniciar se a credencial do gateway estiver ausente.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

SUPPORTED_PROVIDERS = ('mercadopago', 'sandbox')
DEFAULT_API_URL = 'https://api.mercadopago.com'


@dataclass(frozen=True)
class Settings:
    gateway_provider: str
    access_token: str
    api_base_url: str
    payer_email: str
    gateway_timeout: float
    poll_interval: float
    poll_timeout: float
    create_payment_rate_limit: str
    ratelimit_storage_uri: str
    force_https: bool
    log_file: str
    log_level: str


def _positive_float(name, default):
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise RuntimeError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    load_dotenv()

    provider = os.getenv('GATEWAY_PROVIDER', 'mercadopago').strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise RuntimeError(f"GATEWAY_PROVIDER must be one of {', '.join(SUPPORTED_PROVIDERS)}; got {provider!r}")

    # Sem fallback embutido: sem token, sem aplicação.
    access_token = os.getenv('MERCADOPAGO_ACCESS_TOKEN', '').strip()
    if provider == 'mercadopago' and not access_token:
        raise RuntimeError("MERCADOPAGO_ACCESS_TOKEN is not set; set environment variable MERCADOPAGO_ACCESS_TOKEN")

    return Settings(
        gateway_provider=provider,
        access_token=access_token,
        api_base_url=os.getenv('MERCADOPAGO_API_URL', DEFAULT_API_URL).rstrip('/'),
        payer_email=os.getenv('MERCADOPAGO_PAYER_EMAIL', 'comprador@example.com'),
        gateway_timeout=_positive_float('GATEWAY_TIMEOUT', '10'),
        poll_interval=_positive_float('PIX_POLL_INTERVAL', '3'),
        poll_timeout=_positive_float('PIX_POLL_TIMEOUT', '600'),
        create_payment_rate_limit=os.getenv('CREATE_PAYMENT_RATE_LIMIT', '20 per minute'),
        ratelimit_storage_uri=os.getenv('RATELIMIT_STORAGE_URI', 'memory://'),
        force_https=os.getenv('FORCE_HTTPS', 'false').lower() == 'true',
        log_file=os.getenv('LOG_FILE', 'pix_checkout.log'),
        log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    )
