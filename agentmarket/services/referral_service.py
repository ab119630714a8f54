"""Referral stages. Each (referrer, referred) pair pays out three one-time
bonuses: signup, the referred user's first agent listing, and their first
paid order. A stage is claimed with a conditional UPDATE on its flag, so a
retried event finds the flag already set and does nothing."""
import logging

from flask import current_app
from sqlalchemy import func, update

from ..models import db, User, UserReferral, PointsHistory
from . import ledger, points_service
from .errors import AlreadyClaimed, InvalidCode, NotFound, SelfReferral

logger = logging.getLogger(__name__)

REFERRAL_SOURCES = (
    points_service.REFERRAL_SIGNUP,
    points_service.REFERRAL_AGENT_LISTED,
    points_service.REFERRAL_PURCHASE,
)


def _claim_stage(referral, flag):
    """Flip `flag` false -> true; False if another caller got there first."""
    column = getattr(UserReferral, flag)
    result = db.session.execute(
        update(UserReferral)
        .where(UserReferral.id == referral.id, column.is_(False))
        .values({flag: True})
        .execution_options(synchronize_session=False)
    )
    db.session.expire(referral, [flag])
    return result.rowcount == 1


def register_referral(referrer_code, referred_user_id):
    code = (referrer_code or '').strip().upper()
    if not code:
        raise InvalidCode("Referral code is required")

    with ledger.atomic():
        referrer = User.query.filter_by(referral_code=code).first()
        if referrer is None:
            raise InvalidCode(f"Referral code {code} does not exist")
        referred = db.session.get(User, referred_user_id)
        if referred is None:
            raise NotFound(f"User {referred_user_id} not found")
        if referrer.id == referred.id:
            raise SelfReferral("You cannot use your own referral code")

        ledger.lock_key('referral', referred.id)
        if UserReferral.query.filter_by(referred_id=referred.id).first() is not None:
            raise AlreadyClaimed("A referral code has already been applied to this account")

        referral = UserReferral(referrer_id=referrer.id, referred_id=referred.id, referral_code=code)
        db.session.add(referral)
        db.session.flush()

        if _claim_stage(referral, 'signup_bonus'):
            points_service.award_points(
                referrer.id, points_service.REFERRAL_SIGNUP,
                current_app.config['POINTS_REFERRAL_SIGNUP'],
                f'Referral signup: {referred.username}',
                reference_id=referral.id
            )
        points_service.award_points(
            referred.id, points_service.REFERRAL_WELCOME,
            current_app.config['POINTS_REFERRED_WELCOME'],
            'Welcome bonus for joining with a referral code',
            reference_id=referral.id
        )

    logger.info("User %s referred by user %s", referred.id, referrer.id)
    return referral


def _award_referrer(user_id, flag, source, points, description):
    referral = (
        UserReferral.query
        .filter(UserReferral.referred_id == user_id, getattr(UserReferral, flag).is_(False))
        .first()
    )
    if referral is None or not _claim_stage(referral, flag):
        return False
    points_service.award_points(
        referral.referrer_id, source, points, description, reference_id=referral.id
    )
    logger.info("Referral %s: %s awarded to user %s", referral.id, flag, referral.referrer_id)
    return True


def on_agent_listed(user_id, agent_id=None):
    """Called by the catalog when `user_id` lists an agent. Returns True if
    the referrer's listing bonus was paid by this call."""
    with ledger.atomic():
        if db.session.get(User, user_id) is None:
            raise NotFound(f"User {user_id} not found")
        if agent_id is not None:
            points_service.award_points(
                user_id, points_service.AGENT_LISTED,
                current_app.config['POINTS_AGENT_LISTED'],
                'Listed a new agent',
                reference_id=agent_id
            )
        return _award_referrer(
            user_id, 'agent_list_bonus', points_service.REFERRAL_AGENT_LISTED,
            current_app.config['POINTS_REFERRAL_AGENT_LISTED'],
            'Your referral listed their first agent'
        )


def on_first_purchase_completed(user_id):
    """Once per referral pair, on the referred user's first paid order."""
    with ledger.atomic():
        return _award_referrer(
            user_id, 'purchase_bonus', points_service.REFERRAL_PURCHASE,
            current_app.config['POINTS_REFERRAL_PURCHASE'],
            'Your referral made their first purchase'
        )


def get_referral_stats(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")

    referrals = UserReferral.query.filter_by(referrer_id=user_id)
    points_earned = (
        db.session.query(func.coalesce(func.sum(PointsHistory.points), 0))
        .filter(PointsHistory.user_id == user_id, PointsHistory.source.in_(REFERRAL_SOURCES))
        .scalar()
    )
    return {
        'referral_code': user.referral_code,
        'total_referrals': referrals.count(),
        'agents_listed': referrals.filter(UserReferral.agent_list_bonus.is_(True)).count(),
        'purchases': referrals.filter(UserReferral.purchase_bonus.is_(True)).count(),
        'points_earned': int(points_earned),
    }
