from datetime import date
from decimal import Decimal

import pytest

from agentmarket.models import db, User, PointsHistory, PointsExchange, DailyLogin, Setting, WalletTransaction
from agentmarket.services import ledger, points_service
from agentmarket.services.errors import (
    AlreadyClaimed, InsufficientPoints, InvalidTransition, ValidationError
)

BANK = {'bank_name': 'Access Bank', 'account_number': '0987654321', 'account_name': 'Tunde Bello'}


def _total(user):
    return db.session.get(User, user.id).total_points


def test_award_points_updates_history_and_total(buyer):
    entry = points_service.award_points(buyer.id, 'agent_listed', 500, 'Listed a new agent')

    assert entry.type == PointsHistory.EARNED
    assert _total(buyer) == 500
    assert points_service.verify_points_total(buyer.id) == 0


def test_award_with_reference_is_idempotent(buyer):
    first = points_service.award_points(buyer.id, 'order_purchase', 200, reference_id=42)
    replay = points_service.award_points(buyer.id, 'order_purchase', 200, reference_id=42)
    other = points_service.award_points(buyer.id, 'order_purchase', 200, reference_id=43)

    assert first is not None
    assert replay is None
    assert other is not None
    assert _total(buyer) == 400
    assert PointsHistory.query.filter_by(user_id=buyer.id).count() == 2


def test_award_rejects_non_positive(buyer):
    with pytest.raises(ValidationError):
        points_service.award_points(buyer.id, 'daily_login', 0)


def test_daily_login_once_per_day(buyer):
    day = date(2026, 3, 10)
    login = points_service.claim_daily_login(buyer.id, today=day)
    assert login.points_earned == 100
    assert login.streak == 1

    with pytest.raises(AlreadyClaimed) as exc:
        points_service.claim_daily_login(buyer.id, today=day)
    assert exc.value.details['next_claim_date'] == '2026-03-11'
    assert _total(buyer) == 100
    assert DailyLogin.query.filter_by(user_id=buyer.id).count() == 1


def test_daily_login_streak(buyer):
    assert points_service.claim_daily_login(buyer.id, today=date(2026, 3, 10)).streak == 1
    assert points_service.claim_daily_login(buyer.id, today=date(2026, 3, 11)).streak == 2
    assert points_service.claim_daily_login(buyer.id, today=date(2026, 3, 12)).streak == 3
    # Skipped the 13th
    assert points_service.claim_daily_login(buyer.id, today=date(2026, 3, 14)).streak == 1

    user = db.session.get(User, buyer.id)
    assert user.login_streak == 1
    assert user.last_login_date == date(2026, 3, 14)
    assert user.total_points == 400


def test_exchange_reserves_points(buyer):
    points_service.award_points(buyer.id, 'admin_grant', 1500)

    exchange = points_service.exchange_points(buyer.id, 1500, BANK)

    assert exchange.status == PointsExchange.PENDING
    assert exchange.exchange_rate == Decimal('10')
    assert exchange.currency_amount == 150_00
    assert _total(buyer) == 0
    spent = PointsHistory.query.filter_by(user_id=buyer.id, type=PointsHistory.SPENT).one()
    assert spent.points == -1500

    with pytest.raises(InsufficientPoints):
        points_service.exchange_points(buyer.id, 1000, BANK)
    assert PointsExchange.query.count() == 1


def test_exchange_below_minimum(buyer):
    points_service.award_points(buyer.id, 'admin_grant', 5000)
    with pytest.raises(InsufficientPoints) as exc:
        points_service.exchange_points(buyer.id, 999, BANK)
    assert exc.value.details['minimum'] == 1000
    assert _total(buyer) == 5000


def test_exchange_rate_snapshot(buyer):
    points_service.award_points(buyer.id, 'admin_grant', 4000)
    points_service.set_exchange_rate('20')
    exchange = points_service.exchange_points(buyer.id, 2000, BANK)
    points_service.set_exchange_rate('5')

    exchange = db.session.get(PointsExchange, exchange.id)
    assert exchange.exchange_rate == Decimal('20')
    assert exchange.currency_amount == 100_00
    assert points_service.get_exchange_rate() == Decimal('5')


def test_approve_exchange_writes_ledger_pair(buyer):
    points_service.award_points(buyer.id, 'admin_grant', 2000)
    exchange = points_service.exchange_points(buyer.id, 2000, BANK)

    approved = points_service.approve_exchange(exchange.id)

    assert approved.status == PointsExchange.APPROVED
    assert approved.processed_at is not None
    deposit = WalletTransaction.query.filter_by(reference=f'points-exchange-{exchange.id}').one()
    payout = WalletTransaction.query.filter_by(reference=f'points-exchange-{exchange.id}-payout').one()
    assert deposit.amount == payout.amount == 200_00
    assert payout.type == WalletTransaction.WITHDRAWAL
    assert approved.transaction_id == payout.id
    assert ledger.get_balance(deposit.wallet_id) == 0

    with pytest.raises(InvalidTransition):
        points_service.approve_exchange(exchange.id)


def test_reject_exchange_returns_points(buyer):
    points_service.award_points(buyer.id, 'admin_grant', 3000)
    exchange = points_service.exchange_points(buyer.id, 3000, BANK)

    rejected = points_service.reject_exchange(exchange.id, 'Account closed')

    assert rejected.status == PointsExchange.REJECTED
    assert _total(buyer) == 3000
    assert WalletTransaction.query.count() == 0
    assert points_service.verify_points_total(buyer.id) == 0
    with pytest.raises(InvalidTransition):
        points_service.reject_exchange(exchange.id)


def test_grant_points(admin, buyer):
    entry = points_service.grant_points(buyer.id, 250, 'Contest prize', admin_id=admin.id)
    assert entry.type == PointsHistory.ADMIN_GRANTED
    assert _total(buyer) == 250


def test_set_exchange_rate_validation():
    for bad in ('0', '-3', 'abc'):
        with pytest.raises(ValidationError):
            points_service.set_exchange_rate(bad)


def test_exchange_rate_stored_as_decimal_text():
    points_service.set_exchange_rate('12.5')

    setting = Setting.query.filter_by(key=Setting.POINTS_EXCHANGE_RATE).one()
    assert setting.value == '12.5'
    assert setting.value_type == 'decimal'
    assert Setting.get(Setting.POINTS_EXCHANGE_RATE) == Decimal('12.5')


def test_unreadable_exchange_rate_setting_falls_back_to_config():
    Setting.set(Setting.POINTS_EXCHANGE_RATE, 'ten', value_type='decimal', category='points')
    db.session.commit()

    assert Setting.get(Setting.POINTS_EXCHANGE_RATE, default='fallback') == 'fallback'
    assert points_service.get_exchange_rate() == Decimal('10')
