from datetime import datetime
from decimal import Decimal
import logging
import uuid

from flask import current_app
from sqlalchemy import func

from ..models import db, User, WalletTransaction, WithdrawalRequest, AdminCommission
from ..utils.validators import clean_bank_details
from . import ledger
from .errors import (
    GatewayUnavailable, InsufficientFunds, InvalidTransition, NotFound, ValidationError
)
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


def _check_amount(amount):
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive integer of minor units")


def get_wallet(user_id, currency=None):
    with ledger.atomic():
        return ledger.get_or_create_wallet(user_id, currency)


def list_transactions(user_id, page=1, per_page=20):
    wallet = get_wallet(user_id)
    return (
        WalletTransaction.query
        .filter_by(wallet_id=wallet.id)
        .order_by(WalletTransaction.id.desc())
        .paginate(page=page, per_page=per_page, error_out=False)
    )


def list_withdrawals(user_id):
    return (
        WithdrawalRequest.query
        .filter_by(user_id=user_id)
        .order_by(WithdrawalRequest.id.desc())
        .all()
    )


def deposit(user_id, amount, provider=None, email=None, callback_url=None):
    """Start a gateway deposit. Returns (pending transaction, redirect url).

    The gateway is initialized before anything is written, so an unavailable
    gateway leaves no ledger row behind. Funds arrive when the webhook settles
    the pending transaction.
    """
    _check_amount(amount)
    config = current_app.config
    if amount < config['MIN_DEPOSIT'] or amount > config['MAX_DEPOSIT']:
        raise ValidationError(
            "Deposit amount is outside the allowed range",
            {'minimum': config['MIN_DEPOSIT'], 'maximum': config['MAX_DEPOSIT']}
        )

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")

    provider = provider or config['DEFAULT_PAYMENT_PROVIDER']
    reference = f"dep_{uuid.uuid4().hex}"
    result = PaymentService.initialize_payment(
        provider, amount, config['CURRENCY'], email or user.email, reference,
        callback_url=callback_url,
        metadata={'kind': 'deposit', 'user_id': user_id, 'description': 'Wallet deposit'}
    )
    if not result.get('success'):
        logger.warning("Deposit for user %s not started: %s", user_id, result.get('error'))
        raise GatewayUnavailable(result.get('error') or 'Payment gateway unavailable')

    with ledger.atomic():
        wallet = ledger.get_or_create_wallet(user_id)
        txn = ledger.record_transaction(
            wallet.id, WalletTransaction.DEPOSIT, amount,
            reference=reference,
            metadata={'provider': provider, 'gateway_reference': result.get('gateway_reference')},
            description='Wallet deposit'
        )
    logger.info("Deposit %s of %s started for user %s via %s", reference, amount, user_id, provider)
    return txn, result.get('redirect_url')


def debit_for_purchase(buyer_wallet_id, amount, reference=None, metadata=None, description=None):
    """Immediate, linearizable debit. Raises InsufficientFunds."""
    return ledger.record_transaction(
        buyer_wallet_id, WalletTransaction.PURCHASE, amount,
        reference=reference, metadata=metadata,
        status=WalletTransaction.SUCCESS,
        description=description or 'Purchase'
    )


def credit_from_sale(seller_wallet_id, amount, reference=None, metadata=None, description=None):
    return ledger.record_transaction(
        seller_wallet_id, WalletTransaction.SALE, amount,
        reference=reference, metadata=metadata,
        status=WalletTransaction.SUCCESS,
        description=description or 'Sale proceeds'
    )


def refund(wallet_id, amount, reference, metadata=None, description=None):
    return ledger.record_transaction(
        wallet_id, WalletTransaction.REFUND, amount,
        reference=reference, metadata=metadata,
        status=WalletTransaction.SUCCESS,
        description=description or 'Refund'
    )


def collect_commission(order_id, amount, percentage, reference=None):
    """Record the platform's take on an order: an AdminCommission row plus a
    `commission` credit on the platform wallet."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError("Commission must be a non-negative integer of minor units")

    with ledger.atomic():
        txn = None
        if amount > 0:
            platform = ledger.get_platform_wallet()
            txn = ledger.record_transaction(
                platform.id, WalletTransaction.COMMISSION, amount,
                reference=reference or f'order-{order_id}-commission',
                metadata={'order_id': order_id},
                status=WalletTransaction.SUCCESS,
                description=f'Commission for order {order_id}'
            )
        commission = AdminCommission(
            order_id=order_id,
            amount=amount,
            percentage=Decimal(percentage),
            status=AdminCommission.PENDING,
            transaction_id=txn.id if txn else None
        )
        db.session.add(commission)
        db.session.flush()
    return commission


def mark_commission_collected(commission_id):
    with ledger.atomic():
        ledger.lock_key('commission', commission_id)
        commission = db.session.get(AdminCommission, commission_id, populate_existing=True)
        if commission is None:
            raise NotFound(f"Commission {commission_id} not found")
        if commission.status != AdminCommission.COLLECTED:
            commission.status = AdminCommission.COLLECTED
            commission.collected_at = datetime.utcnow()
    return commission


def _outstanding_withdrawals(wallet_id):
    total = (
        db.session.query(func.coalesce(func.sum(WithdrawalRequest.amount), 0))
        .filter(
            WithdrawalRequest.wallet_id == wallet_id,
            WithdrawalRequest.status.in_((WithdrawalRequest.PENDING, WithdrawalRequest.APPROVED)),
        )
        .scalar()
    )
    return int(total)


def request_withdrawal(user_id, amount, bank_details):
    """Queue a payout for operator approval. Nothing is debited until the
    request is processed; open requests count against the available balance."""
    _check_amount(amount)
    if amount < current_app.config['MIN_WITHDRAWAL']:
        raise ValidationError(
            "Withdrawal amount is below the minimum",
            {'minimum': current_app.config['MIN_WITHDRAWAL']}
        )
    try:
        bank_details = clean_bank_details(bank_details)
    except ValueError as e:
        raise ValidationError(str(e))

    with ledger.atomic():
        wallet = ledger.get_or_create_wallet(user_id)
        wallet = ledger.lock_wallet(wallet.id)
        available = ledger.get_balance(wallet.id) - _outstanding_withdrawals(wallet.id)
        if amount > available:
            raise InsufficientFunds(max(available, 0), amount, wallet.currency)

        withdrawal = WithdrawalRequest(
            user_id=user_id,
            wallet_id=wallet.id,
            amount=amount,
            bank_details=bank_details,
            status=WithdrawalRequest.PENDING
        )
        db.session.add(withdrawal)
        db.session.flush()

    logger.info("Withdrawal request %s for %s opened by user %s", withdrawal.id, amount, user_id)
    return withdrawal


def _load_withdrawal(request_id):
    ledger.lock_key('withdrawal', request_id)
    withdrawal = db.session.get(WithdrawalRequest, request_id, populate_existing=True)
    if withdrawal is None:
        raise NotFound(f"Withdrawal request {request_id} not found")
    return withdrawal


def _move_withdrawal(request_id, allowed_from, new_status, admin_notes=None):
    with ledger.atomic():
        withdrawal = _load_withdrawal(request_id)
        if withdrawal.status not in allowed_from:
            raise InvalidTransition(
                f"Withdrawal request is {withdrawal.status} and cannot be {new_status}"
            )
        withdrawal.status = new_status
        if admin_notes:
            withdrawal.admin_notes = admin_notes
    logger.info("Withdrawal request %s -> %s", request_id, new_status)
    return withdrawal


def approve_withdrawal(request_id, admin_notes=None):
    return _move_withdrawal(
        request_id, (WithdrawalRequest.PENDING,), WithdrawalRequest.APPROVED, admin_notes
    )


def reject_withdrawal(request_id, admin_notes=None):
    return _move_withdrawal(
        request_id, (WithdrawalRequest.PENDING, WithdrawalRequest.APPROVED),
        WithdrawalRequest.REJECTED, admin_notes
    )


def process_withdrawal(request_id, admin_notes=None):
    """Mark a request as paid out. The `withdrawal` debit and the status change
    commit together; an insufficient balance at this point aborts both."""
    with ledger.atomic():
        withdrawal = _load_withdrawal(request_id)
        if withdrawal.status not in (WithdrawalRequest.PENDING, WithdrawalRequest.APPROVED):
            raise InvalidTransition(
                f"Withdrawal request is {withdrawal.status} and cannot be processed"
            )

        txn = ledger.record_transaction(
            withdrawal.wallet_id, WalletTransaction.WITHDRAWAL, withdrawal.amount,
            reference=f'withdrawal-{withdrawal.id}',
            metadata={'withdrawal_request_id': withdrawal.id, 'bank_details': withdrawal.bank_details},
            status=WalletTransaction.SUCCESS,
            description='Withdrawal to bank account'
        )
        withdrawal.status = WithdrawalRequest.PROCESSED
        withdrawal.transaction_id = txn.id
        withdrawal.processed_at = datetime.utcnow()
        if admin_notes:
            withdrawal.admin_notes = admin_notes

    logger.info("Withdrawal request %s processed (transaction %s)", request_id, txn.id)
    return withdrawal
