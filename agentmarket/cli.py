from datetime import timedelta

import click
from flask import current_app
from flask.cli import AppGroup

from .models import db, User, Wallet, APIKey, PaymentGateway
from .services import ledger, order_service, points_service

ledger_cli = AppGroup('ledger', help='Ledger maintenance.')
api_keys_cli = AppGroup('api-keys', help='Service API credentials.')
gateways_cli = AppGroup('payment-gateways', help='Payment gateway credentials.')


@ledger_cli.command('reconcile')
@click.option('--max-age-minutes', type=int, default=None,
              help='Age after which pending payments are given up on.')
def reconcile(max_age_minutes):
    """Fail stale pending transactions and cancel stale unpaid gateway orders."""
    minutes = max_age_minutes or current_app.config['PENDING_TRANSACTION_TTL_MINUTES']
    max_age = timedelta(minutes=minutes)
    transactions = ledger.expire_stale_pending(max_age)
    orders = order_service.expire_stale_orders(max_age)
    click.echo(f"Expired {transactions} pending transactions and {orders} unpaid orders older than {minutes} minutes.")


@ledger_cli.command('verify')
@click.option('--fix', is_flag=True, help='Rewrite drifted caches from the ledger.')
@click.pass_context
def verify(ctx, fix):
    """Check cached wallet balances and point totals against their ledgers."""
    problems = 0
    for wallet in Wallet.query.order_by(Wallet.id).all():
        drift = ledger.verify_wallet(wallet, fix=fix)
        if drift:
            problems += 1
            click.echo(f"Wallet {wallet.id}: cached balance off by {drift}")

    for user in User.query.order_by(User.id).all():
        drift = points_service.verify_points_total(user.id)
        if drift:
            problems += 1
            click.echo(f"User {user.id}: total_points off by {drift}")
            if fix:
                with ledger.atomic():
                    user = db.session.get(User, user.id)
                    user.total_points -= drift

    if problems:
        click.echo(f"{problems} inconsistencies found{' and fixed' if fix else ''}.")
        if not fix:
            ctx.exit(1)
    else:
        click.echo("Ledger consistent.")


@api_keys_cli.command('create')
@click.argument('name')
@click.option('--description', default=None)
def create_api_key(name, description):
    """Issue a key pair for a calling service. The secret is shown once."""
    with ledger.atomic():
        record, secret = APIKey.issue(name, description=description)
    click.echo(f"API Key:    {record.api_key}")
    click.echo(f"API Secret: {secret}")


@gateways_cli.command('configure')
@click.argument('name', type=click.Choice([PaymentGateway.PAYSTACK, PaymentGateway.STRIPE]))
@click.option('--secret-key', default=None, help='Stored encrypted.')
@click.option('--webhook-secret', default=None, help='Stripe only; stored encrypted.')
@click.option('--public-key', default=None)
@click.option('--enable/--disable', default=None)
def configure_gateway(name, secret_key, webhook_secret, public_key, enable):
    """Store gateway credentials in the database; they override the environment."""
    with ledger.atomic():
        gateway = PaymentGateway.query.filter_by(gateway_name=name).first()
        if not gateway:
            gateway = PaymentGateway(gateway_name=name, enabled=False, config={})
            db.session.add(gateway)

        if secret_key:
            gateway.set_encrypted_key('secret_key', secret_key)
        if webhook_secret:
            gateway.set_encrypted_key('webhook_secret', webhook_secret)
        if public_key:
            key_field = 'publishable_key' if name == PaymentGateway.STRIPE else 'public_key'
            gateway.config = dict(gateway.config or {}, **{key_field: public_key})
        if enable is not None:
            gateway.enabled = enable

    click.echo(f"{name}: {'enabled' if gateway.enabled else 'disabled'}")
