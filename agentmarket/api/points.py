from flask import Blueprint, request, g, current_app

from ..services import points_service
from ..utils.money import format_minor
from ..utils.validators import parse_points
from .middleware import require_login
from .utils import (
    success_response, error_response, handle_errors, validate_request_json,
    get_pagination, format_pagination
)

points_bp = Blueprint('points', __name__)


def format_history(entry):
    return {
        'id': entry.id,
        'points': entry.points,
        'type': entry.type,
        'source': entry.source,
        'description': entry.description,
        'reference_id': entry.reference_id,
        'created_at': entry.created_at.isoformat() if entry.created_at else None,
    }


def format_exchange(exchange):
    return {
        'id': exchange.id,
        'points_spent': exchange.points_spent,
        'currency_amount': format_minor(exchange.currency_amount),
        'exchange_rate': str(exchange.exchange_rate),
        'status': exchange.status,
        'bank_details': exchange.bank_details,
        'admin_notes': exchange.admin_notes,
        'created_at': exchange.created_at.isoformat() if exchange.created_at else None,
        'processed_at': exchange.processed_at.isoformat() if exchange.processed_at else None,
    }


@points_bp.route('', methods=['GET'])
@require_login
@handle_errors
def get_points():
    return success_response(points_service.get_summary(g.user.id))


@points_bp.route('/history', methods=['GET'])
@require_login
@handle_errors
def get_history():
    page, per_page = get_pagination()
    pagination = points_service.get_history(g.user.id, page, per_page)
    return success_response({
        'history': [format_history(h) for h in pagination.items],
        'pagination': format_pagination(pagination),
    })


@points_bp.route('/daily-login', methods=['POST'])
@require_login
@handle_errors
def daily_login():
    login = points_service.claim_daily_login(g.user.id)
    return success_response({
        'points_earned': login.points_earned,
        'streak': login.streak,
        'login_date': login.login_date.isoformat(),
    }, message=f"You earned {login.points_earned} points")


@points_bp.route('/exchange', methods=['POST'])
@require_login
@validate_request_json(['points', 'bank_details'])
@handle_errors
def exchange():
    data = request.get_json()
    try:
        points = parse_points(data['points'])
    except ValueError as e:
        return error_response(str(e), "INVALID_POINTS", 400)

    exchange = points_service.exchange_points(g.user.id, points, data['bank_details'])
    current_app.logger.info(f"Points exchange {exchange.id} requested by user {g.user.id}")
    return success_response(
        format_exchange(exchange),
        message="Exchange request submitted for approval",
        status_code=201
    )


@points_bp.route('/exchanges', methods=['GET'])
@require_login
@handle_errors
def get_exchanges():
    return success_response([format_exchange(e) for e in points_service.list_exchanges(g.user.id)])
