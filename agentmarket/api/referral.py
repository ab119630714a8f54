from flask import Blueprint, request, g

from ..services import referral_service
from .middleware import require_login
from .utils import success_response, handle_errors, validate_request_json

referral_bp = Blueprint('referral', __name__)


@referral_bp.route('/register', methods=['POST'])
@require_login
@validate_request_json(['code'])
@handle_errors
def register():
    """Apply a referral code to the signed-in account (once, at signup)."""
    data = request.get_json()
    referral = referral_service.register_referral(data['code'], g.user.id)
    return success_response({
        'id': referral.id,
        'referrer_id': referral.referrer_id,
        'referral_code': referral.referral_code,
        'signup_bonus': referral.signup_bonus,
    }, message="Referral code applied", status_code=201)


@referral_bp.route('/stats', methods=['GET'])
@require_login
@handle_errors
def stats():
    return success_response(referral_service.get_referral_stats(g.user.id))
