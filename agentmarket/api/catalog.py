from flask import Blueprint, request, g

from ..services import referral_service
from .middleware import require_api_auth
from .utils import success_response, error_response, handle_errors, validate_request_json

catalog_bp = Blueprint('catalog', __name__)


@catalog_bp.route('/events/agent-listed', methods=['POST'])
@require_api_auth
@validate_request_json(['user_id'])
@handle_errors
def agent_listed():
    """
    Catalog service hook, called after a seller publishes an agent.

    Body:
        user_id (int): The seller who listed the agent.
        agent_id (int): Optional; makes the lister's own listing points idempotent per agent.
    """
    data = request.get_json()
    try:
        user_id = int(data['user_id'])
        agent_id = int(data['agent_id']) if data.get('agent_id') is not None else None
    except (TypeError, ValueError):
        return error_response("user_id and agent_id must be integers", "INVALID_REQUEST", 400)

    referrer_rewarded = referral_service.on_agent_listed(user_id, agent_id)
    return success_response({
        'user_id': user_id,
        'agent_id': agent_id,
        'referrer_rewarded': referrer_rewarded,
        'caller': g.api_key.name,
    })
