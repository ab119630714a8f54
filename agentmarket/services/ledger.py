"""Ledger store: the only code that writes wallet transactions or the cached
wallet balance.

A wallet's balance is the signed sum of its `success` transactions. The
`wallets.balance` column is a cache, moved with an in-database increment in
the same DB transaction as the row it reflects.

Debits are linearizable per wallet: `lock_wallet` takes an in-process lock
keyed by wallet id (held until the outermost `atomic()` block ends) and a
`SELECT ... FOR UPDATE` on the wallet row for databases that support it.
Callers that touch two user wallets lock them together with `lock_wallets`,
which always goes in ascending id order.

The platform wallet keeps no cached balance: every order credits it, so its
row is never updated and its balance is always computed from the ledger.
"""
from contextlib import contextmanager
from datetime import datetime
import logging
import threading

from flask import current_app
from sqlalchemy import case, func, update

from ..models import db, User, Wallet, WalletTransaction
from .errors import DuplicateReference, InsufficientFunds, NotFound, ValidationError

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_locks = {}


def _lock_for(key):
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def _release_locks(info):
    held = info.pop('ledger_locks', None) or []
    for _key, lock in reversed(held):
        lock.release()


@contextmanager
def atomic():
    """Transaction scope. Nested blocks join the outermost one, which commits
    on success or rolls back on any exception, then releases every lock taken
    inside it."""
    info = db.session.info
    depth = info.get('atomic_depth', 0)
    info['atomic_depth'] = depth + 1
    try:
        yield db.session
        if depth == 0:
            db.session.commit()
    except BaseException:
        if depth == 0:
            db.session.rollback()
        raise
    finally:
        info['atomic_depth'] = depth
        if depth == 0:
            _release_locks(info)


def lock_key(*key):
    """Serialize on `key` until the enclosing atomic() block finishes. Re-entrant."""
    info = db.session.info
    if not info.get('atomic_depth'):
        raise RuntimeError("ledger locks must be taken inside ledger.atomic()")
    held = info.setdefault('ledger_locks', [])
    if any(k == key for k, _ in held):
        return
    lock = _lock_for(key)
    lock.acquire()
    held.append((key, lock))


def lock_wallet(wallet_id):
    lock_key('wallet', wallet_id)
    wallet = (
        db.session.query(Wallet)
        .filter_by(id=wallet_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if wallet is None:
        raise NotFound(f"Wallet {wallet_id} not found")
    return wallet


def lock_wallets(*wallet_ids):
    """Lock several wallets in ascending id order. Returns {wallet_id: wallet}."""
    return {wallet_id: lock_wallet(wallet_id) for wallet_id in sorted(set(wallet_ids))}


def get_wallet(wallet_id):
    wallet = db.session.get(Wallet, wallet_id)
    if wallet is None:
        raise NotFound(f"Wallet {wallet_id} not found")
    return wallet


def get_or_create_wallet(user_id, currency=None):
    """Return the user's wallet in `currency`, creating it on first use."""
    currency = currency or current_app.config['CURRENCY']
    wallet = Wallet.query.filter_by(user_id=user_id, currency=currency).first()
    if wallet:
        return wallet

    if db.session.get(User, user_id) is None:
        raise NotFound(f"User {user_id} not found")

    lock_key('wallet_create', user_id, currency)
    wallet = Wallet.query.filter_by(user_id=user_id, currency=currency).first()
    if wallet:
        return wallet

    wallet = Wallet(user_id=user_id, currency=currency, balance=0)
    db.session.add(wallet)
    db.session.flush()
    logger.info("Created %s wallet %s for user %s", currency, wallet.id, user_id)
    return wallet


def get_platform_wallet(currency=None):
    """The platform's own wallet; receives service fees and commissions."""
    currency = currency or current_app.config['CURRENCY']
    wallet = Wallet.query.filter_by(is_platform=True, currency=currency).first()
    if wallet:
        return wallet

    lock_key('wallet_create', None, currency)
    wallet = Wallet.query.filter_by(is_platform=True, currency=currency).first()
    if wallet:
        return wallet

    wallet = Wallet(user_id=None, is_platform=True, currency=currency, balance=0)
    db.session.add(wallet)
    db.session.flush()
    logger.info("Created platform %s wallet %s", currency, wallet.id)
    return wallet


def find_by_reference(reference):
    if not reference:
        return None
    return WalletTransaction.query.filter_by(reference=reference).first()


def get_balance(wallet_id):
    """Signed sum of success transactions, in minor units."""
    signed = case(
        (WalletTransaction.type.in_(WalletTransaction.CREDIT_TYPES), WalletTransaction.amount),
        else_=-WalletTransaction.amount,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(
            WalletTransaction.wallet_id == wallet_id,
            WalletTransaction.status == WalletTransaction.SUCCESS,
        )
        .scalar()
    )
    return int(total)


def _apply_to_cache(wallet, delta):
    if wallet.is_platform:
        return
    db.session.execute(
        update(Wallet)
        .where(Wallet.id == wallet.id)
        .values(balance=Wallet.balance + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(wallet, ['balance'])


def record_transaction(wallet_id, type, amount, reference=None, metadata=None,
                       status=WalletTransaction.PENDING, description=None):
    """Append a ledger row.

    `pending` rows wait for `settle_transaction`; `success` rows count
    immediately. A success debit fails with InsufficientFunds rather than
    taking the balance below zero. An already-used reference raises
    DuplicateReference carrying the existing row.
    """
    if type not in WalletTransaction.TYPES:
        raise ValidationError(f"Unknown transaction type: {type}")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Transaction amount must be a positive integer of minor units")
    if status not in (WalletTransaction.PENDING, WalletTransaction.SUCCESS):
        raise ValidationError(f"Transactions cannot be recorded as {status}")

    is_debit = type in WalletTransaction.DEBIT_TYPES
    with atomic():
        if status == WalletTransaction.SUCCESS and is_debit:
            wallet = lock_wallet(wallet_id)
        else:
            wallet = get_wallet(wallet_id)

        if reference:
            existing = find_by_reference(reference)
            if existing is not None:
                raise DuplicateReference(reference, existing)

        balance = get_balance(wallet.id)
        txn = WalletTransaction(
            wallet_id=wallet.id,
            type=type,
            amount=amount,
            status=status,
            reference=reference,
            description=description,
            details=metadata,
        )
        if status == WalletTransaction.SUCCESS:
            if is_debit and balance < amount:
                raise InsufficientFunds(balance, amount, wallet.currency)
            txn.settled_at = datetime.utcnow()
            balance += txn.signed_amount
            _apply_to_cache(wallet, txn.signed_amount)
        txn.balance_after = balance

        db.session.add(txn)
        db.session.flush()

    logger.info(
        "Recorded %s %s of %s on wallet %s (ref=%s)",
        status, type, amount, wallet_id, reference
    )
    return txn


def settle_transaction(transaction_id, outcome):
    """Move a pending transaction to `outcome`. Already-terminal rows are
    returned unchanged."""
    if outcome not in WalletTransaction.TERMINAL_STATUSES:
        raise ValidationError(f"Cannot settle a transaction as {outcome}")

    with atomic():
        lock_key('transaction', transaction_id)
        txn = (
            db.session.query(WalletTransaction)
            .filter_by(id=transaction_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if txn is None:
            raise NotFound(f"Transaction {transaction_id} not found")
        if txn.status != WalletTransaction.PENDING:
            logger.info("Transaction %s already %s; settle(%s) ignored", txn.id, txn.status, outcome)
            return txn

        if outcome == WalletTransaction.SUCCESS:
            if txn.type in WalletTransaction.DEBIT_TYPES:
                wallet = lock_wallet(txn.wallet_id)
                balance = get_balance(wallet.id)
                if balance < txn.amount:
                    raise InsufficientFunds(balance, txn.amount, wallet.currency)
            else:
                wallet = get_wallet(txn.wallet_id)
            _apply_to_cache(wallet, txn.signed_amount)

        txn.status = outcome
        txn.settled_at = datetime.utcnow()
        db.session.flush()
        txn.balance_after = get_balance(txn.wallet_id)

    logger.info("Settled transaction %s as %s", transaction_id, outcome)
    return txn


def verify_wallet(wallet, fix=False):
    """Compare the cached balance against the ledger. Returns the drift
    (cache minus ledger); with `fix`, rewrites the cache from the ledger."""
    if wallet.is_platform:
        return 0
    with atomic():
        wallet = lock_wallet(wallet.id)
        ledger_balance = get_balance(wallet.id)
        drift = wallet.balance - ledger_balance
        if drift:
            logger.error(
                "Wallet %s cache drift: cached=%s ledger=%s",
                wallet.id, wallet.balance, ledger_balance
            )
            if fix:
                wallet.balance = ledger_balance
    return drift


def expire_stale_pending(max_age):
    """Fail pending transactions older than `max_age` (a timedelta). Returns
    the number of rows moved to `failed`."""
    cutoff = datetime.utcnow() - max_age
    stale_ids = [
        row.id for row in
        db.session.query(WalletTransaction.id)
        .filter(
            WalletTransaction.status == WalletTransaction.PENDING,
            WalletTransaction.created_at < cutoff,
        )
        .all()
    ]

    expired = 0
    for transaction_id in stale_ids:
        with atomic():
            lock_key('transaction', transaction_id)
            txn = (
                db.session.query(WalletTransaction)
                .filter_by(id=transaction_id)
                .populate_existing()
                .first()
            )
            # Settled by a late callback since the scan
            if txn is None or txn.status != WalletTransaction.PENDING:
                continue
            txn.details = dict(txn.details or {}, expired=True)
            settle_transaction(txn.id, WalletTransaction.FAILED)
        expired += 1

    if expired:
        logger.warning("Expired %s stale pending transactions older than %s", expired, cutoff)
    return expired
