from flask import Blueprint, request, g, current_app

from ..models import Role
from ..services import order_service
from ..utils.auth import has_role
from ..utils.money import format_minor
from .middleware import require_login
from .utils import success_response, error_response, handle_errors, validate_request_json

orders_bp = Blueprint('orders', __name__)


def format_order(order):
    """Format order for API response"""
    return {
        'id': order.id,
        'order_number': order.order_number,
        'buyer_id': order.buyer_id,
        'seller_id': order.seller_id,
        'agent_id': order.agent_id,
        'package_type': order.package_type,
        'amount': format_minor(order.amount),
        'service_fee': format_minor(order.service_fee),
        'total_amount': format_minor(order.total_amount),
        'status': order.status,
        'payment_method': order.payment_method,
        'payment_provider': order.payment_provider,
        'gateway_reference': order.gateway_reference,
        'requirements': order.requirements,
        'delivery_date': order.delivery_date.isoformat() if order.delivery_date else None,
        'paid_at': order.paid_at.isoformat() if order.paid_at else None,
        'completed_at': order.completed_at.isoformat() if order.completed_at else None,
        'created_at': order.created_at.isoformat() if order.created_at else None,
    }


@orders_bp.route('', methods=['POST'])
@require_login
@validate_request_json(['agent_id', 'tier', 'payment_method'])
@handle_errors
def create_order():
    """
    Create a new order.

    Body:
        agent_id (int): Required.
        tier (str): basic, standard or premium.
        payment_method (str): 'wallet' or 'gateway'.
        provider (str): Optional gateway, 'paystack' or 'stripe'.
        requirements (str): Optional brief for the seller.
    """
    data = request.get_json()
    try:
        agent_id = int(data['agent_id'])
    except (TypeError, ValueError):
        return error_response("agent_id must be an integer", "INVALID_REQUEST", 400)

    order, redirect_url = order_service.create_order(
        g.user.id,
        agent_id,
        data['tier'],
        data['payment_method'],
        requirements=data.get('requirements'),
        provider=data.get('provider'),
        callback_url=data.get('callback_url')
    )
    current_app.logger.info(f"Order {order.order_number} created by user {g.user.id} ({order.payment_method})")

    payload = {'order': format_order(order)}
    if redirect_url:
        payload['redirect_url'] = redirect_url
    return success_response(payload, status_code=201)


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_login
@handle_errors
def get_order(order_id):
    order = order_service.get_order(order_id, g.user.id, is_admin=has_role(g.user, Role.ADMIN))
    return success_response(format_order(order))


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@require_login
@handle_errors
def cancel_order(order_id):
    order = order_service.cancel_order(order_id, g.user.id, is_admin=has_role(g.user, Role.ADMIN))
    return success_response(format_order(order), message="Order cancelled")


@orders_bp.route('/<int:order_id>/complete', methods=['POST'])
@require_login
@handle_errors
def complete_order(order_id):
    order = order_service.complete_order(order_id, g.user.id)
    return success_response(format_order(order), message="Order marked as delivered")


@orders_bp.route('/<int:order_id>/dispute', methods=['POST'])
@require_login
@handle_errors
def dispute_order(order_id):
    data = request.get_json(silent=True) or {}
    order = order_service.dispute_order(order_id, g.user.id, reason=data.get('reason'))
    return success_response(format_order(order), message="Dispute opened")
