"""
Shared fixtures: one Flask app on a temporary SQLite file database, rebuilt
schema per test, and small factories for users, agents and funded wallets.
"""
import uuid

import pytest

from agentmarket.app import create_app, create_initial_data
from agentmarket.config import TestingConfig
from agentmarket.models import db, Role, User, AgentListing, WalletTransaction
from agentmarket.services import ledger
from agentmarket.services.payment_service import PaymentService
from agentmarket.utils.auth import hash_password


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    # A file database, so worker threads get their own connections
    db_path = tmp_path_factory.mktemp('db') / 'ledger.sqlite'

    class Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{db_path}'

    return create_app(Config)


@pytest.fixture(autouse=True)
def database(app):
    with app.app_context():
        db.drop_all()
        db.create_all()
        create_initial_data()
        yield db
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user():
    def _make(username, role=Role.USER):
        role_obj = Role.query.filter_by(name=role).first()
        user = User(
            username=username,
            email=f'{username}@example.com',
            password_hash=hash_password('secret'),
            role_id=role_obj.id
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def buyer(make_user):
    return make_user('buyer')


@pytest.fixture
def seller(make_user):
    return make_user('seller', Role.SELLER)


@pytest.fixture
def admin(make_user):
    return make_user('admin', Role.ADMIN)


@pytest.fixture
def agent(seller):
    listing = AgentListing(
        seller_id=seller.id,
        title='Invoice Reconciler',
        basic_price=1000_00,
        standard_price=2500_00,
        premium_price=None,
        basic_delivery_days=3,
        standard_delivery_days=5,
    )
    db.session.add(listing)
    db.session.commit()
    return listing


@pytest.fixture
def fund():
    def _fund(user_id, amount):
        """Credit a settled deposit and return the wallet"""
        with ledger.atomic():
            wallet = ledger.get_or_create_wallet(user_id)
            ledger.record_transaction(
                wallet.id, WalletTransaction.DEPOSIT, amount,
                reference=f'seed-{uuid.uuid4().hex}',
                status=WalletTransaction.SUCCESS
            )
        return wallet
    return _fund


@pytest.fixture
def gateway(monkeypatch):
    """Stub out the hosted-payment call; records every initialization"""
    calls = []

    def fake_initialize(provider, amount, currency, email, reference, callback_url=None, metadata=None):
        calls.append({'provider': provider, 'amount': amount, 'reference': reference, 'metadata': metadata})
        return {
            'success': True,
            'redirect_url': f'https://checkout.example.com/{reference}',
            'gateway_reference': reference
        }

    monkeypatch.setattr(PaymentService, 'initialize_payment', staticmethod(fake_initialize))
    return calls


@pytest.fixture
def gateway_down(monkeypatch):
    def fake_initialize(*args, **kwargs):
        return {'success': False, 'error': 'Connection timed out'}

    monkeypatch.setattr(PaymentService, 'initialize_payment', staticmethod(fake_initialize))


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
    return _login
