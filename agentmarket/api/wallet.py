from flask import Blueprint, request, g, current_app

from ..services import ledger, wallet_service
from ..utils.money import format_minor
from ..utils.validators import parse_amount
from .middleware import require_login
from .utils import (
    success_response, error_response, handle_errors, validate_request_json,
    get_pagination, format_pagination
)

wallet_bp = Blueprint('wallet', __name__)


def format_transaction(txn):
    return {
        'id': txn.id,
        'type': txn.type,
        'amount': format_minor(txn.amount),
        'signed_amount': format_minor(txn.signed_amount),
        'status': txn.status,
        'reference': txn.reference,
        'balance_after': format_minor(txn.balance_after),
        'description': txn.description,
        'created_at': txn.created_at.isoformat() if txn.created_at else None,
        'settled_at': txn.settled_at.isoformat() if txn.settled_at else None,
    }


def format_withdrawal(withdrawal):
    return {
        'id': withdrawal.id,
        'amount': format_minor(withdrawal.amount),
        'status': withdrawal.status,
        'bank_details': withdrawal.bank_details,
        'admin_notes': withdrawal.admin_notes,
        'transaction_id': withdrawal.transaction_id,
        'created_at': withdrawal.created_at.isoformat() if withdrawal.created_at else None,
        'processed_at': withdrawal.processed_at.isoformat() if withdrawal.processed_at else None,
    }


@wallet_bp.route('', methods=['GET'])
@require_login
@handle_errors
def get_wallet():
    wallet = wallet_service.get_wallet(g.user.id)
    return success_response({
        'id': wallet.id,
        'balance': format_minor(ledger.get_balance(wallet.id)),
        'currency': wallet.currency,
        'is_active': wallet.is_active,
    })


@wallet_bp.route('/transactions', methods=['GET'])
@require_login
@handle_errors
def get_transactions():
    page, per_page = get_pagination()
    pagination = wallet_service.list_transactions(g.user.id, page, per_page)
    return success_response({
        'transactions': [format_transaction(t) for t in pagination.items],
        'pagination': format_pagination(pagination),
    })


@wallet_bp.route('/deposit', methods=['POST'])
@require_login
@validate_request_json(['amount'])
@handle_errors
def deposit():
    """
    Start a wallet deposit through the payment gateway.

    Body:
        amount (str|number): Major units, e.g. "5000.00".
        provider (str): Optional, 'paystack' or 'stripe'.
        callback_url (str): Optional return URL.
    """
    data = request.get_json()
    try:
        amount = parse_amount(data['amount'])
    except ValueError as e:
        return error_response(str(e), "INVALID_AMOUNT", 400)

    txn, redirect_url = wallet_service.deposit(
        g.user.id, amount,
        provider=data.get('provider'),
        callback_url=data.get('callback_url')
    )
    current_app.logger.info(f"Deposit {txn.reference} started by user {g.user.id}")
    return success_response({
        'transaction_id': txn.id,
        'reference': txn.reference,
        'gateway_redirect_url': redirect_url,
    }, status_code=201)


@wallet_bp.route('/withdraw', methods=['POST'])
@require_login
@validate_request_json(['amount', 'bank_details'])
@handle_errors
def withdraw():
    data = request.get_json()
    try:
        amount = parse_amount(data['amount'])
    except ValueError as e:
        return error_response(str(e), "INVALID_AMOUNT", 400)

    withdrawal = wallet_service.request_withdrawal(g.user.id, amount, data['bank_details'])
    return success_response(
        format_withdrawal(withdrawal),
        message="Withdrawal request submitted for approval",
        status_code=201
    )


@wallet_bp.route('/withdrawals', methods=['GET'])
@require_login
@handle_errors
def get_withdrawals():
    return success_response([format_withdrawal(w) for w in wallet_service.list_withdrawals(g.user.id)])
