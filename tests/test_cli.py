from agentmarket.models import db, Wallet, APIKey, PaymentGateway
from agentmarket.services.payment_service import PaymentService


def test_verify_reports_and_fixes_drift(app, buyer, fund):
    runner = app.test_cli_runner()
    wallet = fund(buyer.id, 100_00)

    assert 'Ledger consistent.' in runner.invoke(args=['ledger', 'verify']).output

    db.session.get(Wallet, wallet.id).balance = 1
    db.session.commit()

    result = runner.invoke(args=['ledger', 'verify'])
    assert result.exit_code == 1
    assert f'Wallet {wallet.id}' in result.output

    result = runner.invoke(args=['ledger', 'verify', '--fix'])
    assert result.exit_code == 0
    assert db.session.get(Wallet, wallet.id).balance == 100_00


def test_reconcile_command(app):
    result = app.test_cli_runner().invoke(args=['ledger', 'reconcile', '--max-age-minutes', '30'])
    assert result.exit_code == 0
    assert 'Expired 0 pending transactions and 0 unpaid orders' in result.output


def test_create_api_key(app):
    result = app.test_cli_runner().invoke(args=['api-keys', 'create', 'catalog-service'])

    assert result.exit_code == 0
    record = APIKey.query.filter_by(name='catalog-service').one()
    secret = result.output.split('API Secret:')[1].strip()
    assert record.verify_secret(secret)


def test_configure_gateway_overrides_environment(app):
    result = app.test_cli_runner().invoke(args=[
        'payment-gateways', 'configure', 'paystack', '--secret-key', 'sk_live_from_db', '--enable'
    ])

    assert result.exit_code == 0
    gateway = PaymentGateway.query.filter_by(gateway_name='paystack').one()
    assert 'sk_live_from_db' not in str(gateway.config)
    assert PaymentService.get_paystack_config()['secret_key'] == 'sk_live_from_db'


def test_disabled_gateway_falls_back_to_environment(app):
    app.test_cli_runner().invoke(args=[
        'payment-gateways', 'configure', 'stripe', '--secret-key', 'sk_db', '--disable'
    ])
    assert PaymentService.get_stripe_config()['secret_key'] == 'sk_test_stripe'
