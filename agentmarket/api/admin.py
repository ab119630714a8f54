from datetime import timedelta

from flask import Blueprint, request, g, current_app

from ..models import Role, WithdrawalRequest, PointsExchange, AdminCommission
from ..services import ledger, order_service, points_service, wallet_service
from ..utils.money import format_minor
from ..utils.validators import parse_points
from .middleware import require_role
from .orders import format_order
from .points import format_exchange, format_history
from .utils import success_response, error_response, handle_errors, validate_request_json
from .wallet import format_withdrawal

admin_bp = Blueprint('admin', __name__)


def _notes():
    data = request.get_json(silent=True) or {}
    return data.get('admin_notes')


def format_commission(commission):
    return {
        'id': commission.id,
        'order_id': commission.order_id,
        'amount': format_minor(commission.amount),
        'percentage': str(commission.percentage),
        'status': commission.status,
        'collected_at': commission.collected_at.isoformat() if commission.collected_at else None,
    }


@admin_bp.route('/withdrawals', methods=['GET'])
@require_role(Role.ADMIN)
@handle_errors
def list_withdrawals():
    status = request.args.get('status', WithdrawalRequest.PENDING)
    requests_ = WithdrawalRequest.query.filter_by(status=status).order_by(WithdrawalRequest.id).all()
    return success_response([format_withdrawal(w) for w in requests_])


@admin_bp.route('/withdrawals/<int:request_id>/approve', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def approve_withdrawal(request_id):
    withdrawal = wallet_service.approve_withdrawal(request_id, _notes())
    current_app.logger.info(f"Withdrawal {request_id} approved by admin {g.user.id}")
    return success_response(format_withdrawal(withdrawal))


@admin_bp.route('/withdrawals/<int:request_id>/reject', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def reject_withdrawal(request_id):
    withdrawal = wallet_service.reject_withdrawal(request_id, _notes())
    current_app.logger.info(f"Withdrawal {request_id} rejected by admin {g.user.id}")
    return success_response(format_withdrawal(withdrawal))


@admin_bp.route('/withdrawals/<int:request_id>/process', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def process_withdrawal(request_id):
    withdrawal = wallet_service.process_withdrawal(request_id, _notes())
    current_app.logger.info(f"Withdrawal {request_id} processed by admin {g.user.id}")
    return success_response(format_withdrawal(withdrawal))


@admin_bp.route('/points/exchanges', methods=['GET'])
@require_role(Role.ADMIN)
@handle_errors
def list_exchanges():
    status = request.args.get('status', PointsExchange.PENDING)
    exchanges = PointsExchange.query.filter_by(status=status).order_by(PointsExchange.id).all()
    return success_response([format_exchange(e) for e in exchanges])


@admin_bp.route('/points/exchanges/<int:exchange_id>/approve', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def approve_exchange(exchange_id):
    exchange = points_service.approve_exchange(exchange_id, _notes())
    current_app.logger.info(f"Points exchange {exchange_id} approved by admin {g.user.id}")
    return success_response(format_exchange(exchange))


@admin_bp.route('/points/exchanges/<int:exchange_id>/reject', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def reject_exchange(exchange_id):
    exchange = points_service.reject_exchange(exchange_id, _notes())
    current_app.logger.info(f"Points exchange {exchange_id} rejected by admin {g.user.id}")
    return success_response(format_exchange(exchange))


@admin_bp.route('/points/grant', methods=['POST'])
@require_role(Role.ADMIN)
@validate_request_json(['user_id', 'points'])
@handle_errors
def grant_points():
    data = request.get_json()
    try:
        points = parse_points(data['points'])
        user_id = int(data['user_id'])
    except (TypeError, ValueError) as e:
        return error_response(str(e), "INVALID_REQUEST", 400)

    entry = points_service.grant_points(user_id, points, data.get('description'), admin_id=g.user.id)
    return success_response(format_history(entry), status_code=201)


@admin_bp.route('/points/exchange-rate', methods=['PUT'])
@require_role(Role.ADMIN)
@validate_request_json(['rate'])
@handle_errors
def set_exchange_rate():
    rate = points_service.set_exchange_rate(request.get_json()['rate'])
    current_app.logger.info(f"Points exchange rate set to {rate} by admin {g.user.id}")
    return success_response({'exchange_rate': str(rate)})


@admin_bp.route('/commissions', methods=['GET'])
@require_role(Role.ADMIN)
@handle_errors
def list_commissions():
    status = request.args.get('status', AdminCommission.PENDING)
    commissions = AdminCommission.query.filter_by(status=status).order_by(AdminCommission.id).all()
    return success_response([format_commission(c) for c in commissions])


@admin_bp.route('/commissions/<int:commission_id>/collect', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def collect_commission(commission_id):
    commission = wallet_service.mark_commission_collected(commission_id)
    return success_response(format_commission(commission))


@admin_bp.route('/orders/<int:order_id>/resolve', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def resolve_dispute(order_id):
    order = order_service.resolve_dispute(order_id)
    current_app.logger.info(f"Dispute on order {order_id} resolved by admin {g.user.id}")
    return success_response(format_order(order))


@admin_bp.route('/reconcile', methods=['POST'])
@require_role(Role.ADMIN)
@handle_errors
def reconcile():
    """Fail stale pending transactions and cancel stale unpaid gateway orders."""
    data = request.get_json(silent=True) or {}
    minutes = data.get('max_age_minutes', current_app.config['PENDING_TRANSACTION_TTL_MINUTES'])
    try:
        max_age = timedelta(minutes=int(minutes))
    except (TypeError, ValueError):
        return error_response("max_age_minutes must be an integer", "INVALID_REQUEST", 400)

    expired_transactions = ledger.expire_stale_pending(max_age)
    expired_orders = order_service.expire_stale_orders(max_age)
    current_app.logger.warning(
        f"Reconcile by admin {g.user.id}: {expired_transactions} transactions failed, {expired_orders} orders cancelled"
    )
    return success_response({
        'expired_transactions': expired_transactions,
        'expired_orders': expired_orders,
    })
