"""Read-only view of the agent catalog used when pricing an order."""
from collections import namedtuple

from ..models import db, AgentListing
from .errors import NotFound

AgentPricing = namedtuple('AgentPricing', ['agent_id', 'title', 'tier', 'price', 'delivery_days', 'seller_id'])


def get_agent_pricing(agent_id, tier):
    agent = db.session.get(AgentListing, agent_id)
    if agent is None or not agent.is_active:
        raise NotFound(f"Agent {agent_id} not found")

    price = agent.tier_price(tier)
    if not price:
        raise NotFound(f"Agent {agent_id} has no {tier} package")

    return AgentPricing(
        agent_id=agent.id,
        title=agent.title,
        tier=tier,
        price=price,
        delivery_days=agent.tier_delivery_days(tier) or 0,
        seller_id=agent.seller_id,
    )
