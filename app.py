import os
import logging
import click
from flask import Flask, request, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman

from config import load_settings
from models import PaymentStatus, InvalidPaymentRequest, parse_payment_request
from pagamentos_gateway import GatewayError, SandboxGateway, get_gateway
from api_client import StorefrontClient, PaymentCreationError
from checkout import PixCheckout
from poller import PollOutcome

# ----------------------------------------------------------------------
# 1. CONFIGURAÇÃO E LOGGING
# ----------------------------------------------------------------------

# Falha fechada: sem credencial do gateway a aplicação não sobe
settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.log_file),  # Arquivo para auditoria
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

limiter = Limiter(key_func=get_remote_address, app=app, storage_uri=settings.ratelimit_storage_uri)

csp_policy = {
    'default-src': ["'self'"],
    'img-src': ["'self'", 'data:'],
    'connect-src': ["'self'"]
}
Talisman(app, content_security_policy=csp_policy, force_https=settings.force_https)

app.extensions['pix_gateway'] = get_gateway(settings)
logger.info(f"Gateway de pagamento configurado: {app.extensions['pix_gateway'].name}")


def sanitize_for_log(value, maxlen: int = 120) -> str:
    s = str(value)
    s = s.replace('\n', '\\n').replace('\r', '\\r').replace('\t', ' ')
    if len(s) > maxlen:
        return s[:maxlen] + '...'
    return s


def _gateway():
    return current_app.extensions['pix_gateway']


# ----------------------------------------------------------------------
# 2. ROTAS DE PAGAMENTO PIX
# ----------------------------------------------------------------------

@app.route('/api/create-pix-payment', methods=['POST'])
@limiter.limit(settings.create_payment_rate_limit)
def create_pix_payment():
    try:
        title, price, quantity = parse_payment_request(request.get_json(silent=True))
    except InvalidPaymentRequest as e:
        logger.warning(f"Requisição de PIX inválida: {sanitize_for_log(e.details)}")
        return {'error': 'Dados de pagamento inválidos', 'details': e.details}, 400

    try:
        payment = _gateway().create_pix(title, price, quantity)
    except GatewayError as e:
        logger.error(f"Erro do gateway ao criar PIX: status={e.status_code} details={sanitize_for_log(e.details, 500)}")
        return {'error': 'Erro ao criar pagamento PIX', 'details': e.details}, e.status_code
    except Exception:
        # Sem detalhes do provedor para o cliente
        logger.exception(f"Erro interno ao criar PIX. title={sanitize_for_log(title)}")
        return {'error': 'Erro interno do servidor'}, 500

    logger.info(f"PIX criado. payment_id={payment['id']} valor={format(price * quantity, '.2f')} status={payment['status']}")
    return payment


@app.route('/api/check-payment/<payment_id>', methods=['GET'])
def check_payment(payment_id):
    try:
        status = _gateway().get_payment_status(payment_id)
    except GatewayError as e:
        logger.warning(f"Erro do gateway ao consultar pagamento. payment_id={sanitize_for_log(payment_id)} status={e.status_code}")
        return {'id': payment_id, 'status': PaymentStatus.UNKNOWN_ERROR.value,
                'error': 'Erro ao consultar pagamento PIX'}, e.status_code
    except Exception:
        logger.exception(f"Erro interno ao consultar pagamento. payment_id={sanitize_for_log(payment_id)}")
        return {'id': payment_id, 'status': PaymentStatus.UNKNOWN_ERROR.value,
                'error': 'Erro interno do servidor'}, 500

    return {'id': payment_id, 'status': status.value}


@app.route('/api/sandbox/payments/<payment_id>/approve', methods=['POST'])
def sandbox_approve(payment_id):
    """Simula a confirmação do pagamento. Disponível apenas com o gateway sandbox."""
    gateway = _gateway()
    if not isinstance(gateway, SandboxGateway):
        return {'error': 'Not Found'}, 404
    try:
        gateway.approve(payment_id)
    except GatewayError as e:
        return {'error': e.message}, e.status_code
    logger.info(f"Pagamento aprovado (sandbox). payment_id={sanitize_for_log(payment_id)}")
    return {'id': payment_id, 'status': PaymentStatus.APPROVED.value}


# ----------------------------------------------------------------------
# 3. TRATAMENTO DE ERROS
# ----------------------------------------------------------------------

@app.errorhandler(404)
def handle_404(e):
    logger.info(f"404 Not Found: {sanitize_for_log(request.path)}")
    return {'error': 'Not Found'}, 404


@app.errorhandler(405)
def handle_405(e):
    return {'error': 'Method Not Allowed'}, 405


@app.errorhandler(429)
def handle_429(e):
    logger.warning(f"Rate limit excedido: {sanitize_for_log(request.path)}")
    return {'error': 'Muitas requisições. Tente novamente mais tarde.'}, 429


@app.errorhandler(500)
def handle_500(e):
    # Stack trace fica no servidor; o cliente recebe só a mensagem genérica
    logger.exception(f"Unhandled exception while handling request: {sanitize_for_log(request.path)}")
    return {'error': 'Erro interno do servidor'}, 500


# ----------------------------------------------------------------------
# 4. CLI
# ----------------------------------------------------------------------

@app.cli.command("pix-checkout")
@click.option('--title', required=True, help='Descrição exibida no pagamento.')
@click.option('--price', required=True, type=click.FLOAT, help='Valor a cobrar.')
@click.option('--base-url', default='http://127.0.0.1:5000', show_default=True)
@click.option('--interval', type=click.FLOAT, default=settings.poll_interval, show_default=True)
@click.option('--timeout', type=click.FLOAT, default=settings.poll_timeout, show_default=True)
def pix_checkout(title, price, base_url, interval, timeout):
    """Gera um PIX pela API da loja e aguarda a confirmação do pagamento."""
    checkout = PixCheckout(
        StorefrontClient(base_url),
        title,
        price,
        on_payment_success=lambda: click.echo('Pagamento aprovado!'),
        poll_interval=interval,
        poll_timeout=timeout,
    )
    try:
        checkout.generate()
    except PaymentCreationError as e:
        click.echo(f"{checkout.error} ({e.message})", err=True)
        raise SystemExit(1)

    session = checkout.session
    click.echo(f"Valor a pagar: {checkout.formatted_amount}")
    click.echo(f"Código PIX: {checkout.pix_code}")
    if checkout.payment.get('date_of_expiration'):
        click.echo(f"Expira em: {checkout.payment['date_of_expiration']}")
    click.echo('Aguardando pagamento...')

    if session.wait() is not PollOutcome.APPROVED:
        click.echo('Prazo de verificação esgotado sem confirmação do pagamento.', err=True)
        raise SystemExit(1)


if __name__ == '__main__':
    debug_mode = os.getenv('FLASK_DEBUG', 'false').lower() == 'true'
    app.run(debug=debug_mode)
