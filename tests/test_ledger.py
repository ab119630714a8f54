from datetime import datetime, timedelta

import pytest

from agentmarket.models import db, Wallet, WalletTransaction
from agentmarket.services import ledger
from agentmarket.services.errors import (
    DuplicateReference, InsufficientFunds, NotFound, ValidationError
)


def _wallet(user):
    with ledger.atomic():
        return ledger.get_or_create_wallet(user.id)


def test_wallet_created_lazily_once(buyer):
    first = _wallet(buyer)
    second = _wallet(buyer)
    assert first.id == second.id
    assert first.balance == 0
    assert Wallet.query.filter_by(user_id=buyer.id).count() == 1


def test_wallet_for_unknown_user():
    with pytest.raises(NotFound):
        with ledger.atomic():
            ledger.get_or_create_wallet(9999)


def test_pending_deposit_does_not_count_until_settled(buyer):
    wallet = _wallet(buyer)
    txn = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 500_00, reference='dep_1')
    assert txn.status == WalletTransaction.PENDING
    assert ledger.get_balance(wallet.id) == 0

    settled = ledger.settle_transaction(txn.id, WalletTransaction.SUCCESS)
    assert settled.status == WalletTransaction.SUCCESS
    assert settled.settled_at is not None
    assert ledger.get_balance(wallet.id) == 500_00
    assert db.session.get(Wallet, wallet.id).balance == 500_00


def test_settle_is_idempotent(buyer):
    wallet = _wallet(buyer)
    txn = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 300_00, reference='dep_2')

    ledger.settle_transaction(txn.id, WalletTransaction.SUCCESS)
    again = ledger.settle_transaction(txn.id, WalletTransaction.SUCCESS)
    late_failure = ledger.settle_transaction(txn.id, WalletTransaction.FAILED)

    assert again.status == WalletTransaction.SUCCESS
    assert late_failure.status == WalletTransaction.SUCCESS
    assert ledger.get_balance(wallet.id) == 300_00


def test_failed_settlement_leaves_balance(buyer):
    wallet = _wallet(buyer)
    txn = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 300_00, reference='dep_3')
    ledger.settle_transaction(txn.id, WalletTransaction.FAILED)
    assert ledger.get_balance(wallet.id) == 0


def test_settle_rejects_non_terminal_outcome(buyer):
    wallet = _wallet(buyer)
    txn = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 300_00)
    with pytest.raises(ValidationError):
        ledger.settle_transaction(txn.id, WalletTransaction.PENDING)


def test_duplicate_reference_carries_existing_row(buyer, fund):
    wallet = fund(buyer.id, 100_00)
    original = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 50_00, reference='gw-1')

    with pytest.raises(DuplicateReference) as exc:
        ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 50_00, reference='gw-1')
    assert exc.value.existing.id == original.id
    assert WalletTransaction.query.filter_by(reference='gw-1').count() == 1


def test_debit_rejected_not_clamped(buyer, fund):
    wallet = fund(buyer.id, 100_00)
    with pytest.raises(InsufficientFunds) as exc:
        ledger.record_transaction(
            wallet.id, WalletTransaction.PURCHASE, 150_00, status=WalletTransaction.SUCCESS
        )
    assert exc.value.balance == 100_00
    assert exc.value.required == 150_00
    assert exc.value.details['balance'] == '100.00'
    assert ledger.get_balance(wallet.id) == 100_00


def test_balance_never_negative_and_matches_ledger(buyer, fund):
    wallet = fund(buyer.id, 1000_00)
    operations = [
        (WalletTransaction.PURCHASE, 400_00),
        (WalletTransaction.WITHDRAWAL, 500_00),
        (WalletTransaction.PURCHASE, 200_00),  # rejected, only 100 left
        (WalletTransaction.REFUND, 50_00),
        (WalletTransaction.WITHDRAWAL, 150_00),
        (WalletTransaction.PURCHASE, 1),  # rejected, empty
    ]
    for type_, amount in operations:
        try:
            ledger.record_transaction(wallet.id, type_, amount, status=WalletTransaction.SUCCESS)
        except InsufficientFunds:
            pass
        balance = ledger.get_balance(wallet.id)
        assert balance >= 0
        signed = sum(
            t.signed_amount for t in
            WalletTransaction.query.filter_by(wallet_id=wallet.id, status=WalletTransaction.SUCCESS)
        )
        assert balance == signed
        assert db.session.get(Wallet, wallet.id).balance == balance

    assert ledger.get_balance(wallet.id) == 0


def test_balance_after_is_recorded(buyer, fund):
    wallet = fund(buyer.id, 100_00)
    txn = ledger.record_transaction(
        wallet.id, WalletTransaction.PURCHASE, 40_00, status=WalletTransaction.SUCCESS
    )
    assert txn.balance_after == 60_00


def test_invalid_amounts_rejected(buyer):
    wallet = _wallet(buyer)
    for amount in (0, -5, 10.5, True):
        with pytest.raises(ValidationError):
            ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, amount)


def test_atomic_rolls_back_everything(buyer, fund):
    wallet = fund(buyer.id, 100_00)
    with pytest.raises(InsufficientFunds):
        with ledger.atomic():
            ledger.record_transaction(
                wallet.id, WalletTransaction.PURCHASE, 60_00, status=WalletTransaction.SUCCESS
            )
            ledger.record_transaction(
                wallet.id, WalletTransaction.PURCHASE, 60_00, status=WalletTransaction.SUCCESS
            )
    assert ledger.get_balance(wallet.id) == 100_00
    assert WalletTransaction.query.filter_by(type=WalletTransaction.PURCHASE).count() == 0


def test_locks_require_atomic_block():
    with pytest.raises(RuntimeError):
        ledger.lock_key('wallet', 1)


def test_platform_wallet_is_singleton():
    with ledger.atomic():
        first = ledger.get_platform_wallet()
        second = ledger.get_platform_wallet()
    assert first.id == second.id
    assert first.is_platform
    assert first.user_id is None


def test_verify_wallet_detects_and_fixes_drift(buyer, fund):
    wallet = fund(buyer.id, 100_00)
    assert ledger.verify_wallet(wallet) == 0

    wallet = db.session.get(Wallet, wallet.id)
    wallet.balance = 999_00
    db.session.commit()

    assert ledger.verify_wallet(wallet) == 899_00
    assert ledger.verify_wallet(wallet, fix=True) == 899_00
    assert ledger.verify_wallet(wallet) == 0
    assert db.session.get(Wallet, wallet.id).balance == 100_00


def test_expire_stale_pending(buyer):
    wallet = _wallet(buyer)
    stale = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 100_00, reference='old')
    fresh = ledger.record_transaction(wallet.id, WalletTransaction.DEPOSIT, 100_00, reference='new')
    stale.created_at = datetime.utcnow() - timedelta(days=2)
    db.session.commit()

    assert ledger.expire_stale_pending(timedelta(hours=24)) == 1
    assert db.session.get(WalletTransaction, stale.id).status == WalletTransaction.FAILED
    assert db.session.get(WalletTransaction, stale.id).details == {'expired': True}
    assert db.session.get(WalletTransaction, fresh.id).status == WalletTransaction.PENDING
    assert ledger.expire_stale_pending(timedelta(hours=24)) == 0


def test_lock_wallets_orders_by_id(buyer, seller):
    first, second = _wallet(seller), _wallet(buyer)
    with ledger.atomic():
        locked = ledger.lock_wallets(second.id, first.id, second.id)
        held = [key for key, _ in db.session.info['ledger_locks']]

    assert sorted(locked) == sorted({first.id, second.id})
    assert list(locked) == sorted(locked)
    assert locked[first.id].id == first.id
    assert held == [('wallet', min(first.id, second.id)), ('wallet', max(first.id, second.id))]
    assert 'ledger_locks' not in db.session.info


def test_platform_wallet_balance_is_ledger_only(buyer, seller, agent, fund):
    from agentmarket.models import Order
    from agentmarket.services import order_service

    fund(buyer.id, 2000_00)
    order_service.create_order(buyer.id, agent.id, 'basic', Order.WALLET)

    with ledger.atomic():
        platform = ledger.get_platform_wallet()
    db.session.expire_all()
    assert ledger.get_balance(platform.id) == 150_00
    assert db.session.get(Wallet, platform.id).balance == 0
    assert ledger.verify_wallet(platform) == 0
