from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
import logging
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import func, update

from ..models import db, User, PointsHistory, PointsExchange, DailyLogin, Setting, WalletTransaction
from ..utils.money import points_to_minor
from ..utils.validators import clean_bank_details
from . import ledger
from .errors import AlreadyClaimed, InsufficientPoints, InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)

# Point sources
DAILY_LOGIN = 'daily_login'
REFERRAL_SIGNUP = 'referral_signup'
REFERRAL_WELCOME = 'referral_welcome'
REFERRAL_AGENT_LISTED = 'referral_agent_listed'
REFERRAL_PURCHASE = 'referral_purchase'
AGENT_LISTED = 'agent_listed'
ORDER_PURCHASE = 'order_purchase'
ORDER_SALE = 'order_sale'
POINTS_EXCHANGE = 'points_exchange'
EXCHANGE_REJECTED = 'points_exchange_rejected'
ADMIN_GRANT = 'admin_grant'


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _append(user_id, points, type, source, description=None, reference_id=None):
    dedupe_key = f'{user_id}:{source}:{reference_id}' if reference_id is not None else None
    entry = PointsHistory(
        user_id=user_id,
        points=points,
        type=type,
        source=source,
        description=description,
        reference_id=str(reference_id) if reference_id is not None else None,
        dedupe_key=dedupe_key
    )
    db.session.add(entry)
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_points=User.total_points + points)
        .execution_options(synchronize_session=False)
    )
    user = db.session.get(User, user_id)
    if user is not None:
        db.session.expire(user, ['total_points'])
    db.session.flush()
    return entry


def award_points(user_id, source, points, description=None, reference_id=None,
                 type=PointsHistory.EARNED):
    """Credit points to a user.

    With a `reference_id`, a second award for the same (user, source,
    reference) is a no-op and returns None; the unique dedupe key backs this
    up across processes.
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError("Points awarded must be a positive whole number")
    if type not in (PointsHistory.EARNED, PointsHistory.ADMIN_GRANTED):
        raise ValidationError(f"Cannot award points as {type}")

    with ledger.atomic():
        _get_user(user_id)
        if reference_id is not None:
            dedupe_key = f'{user_id}:{source}:{reference_id}'
            if PointsHistory.query.filter_by(dedupe_key=dedupe_key).first() is not None:
                logger.info("Points for %s already awarded; skipping", dedupe_key)
                return None
        entry = _append(user_id, points, type, source, description, reference_id)

    logger.info("Awarded %s points to user %s for %s", points, user_id, source)
    return entry


def grant_points(user_id, points, description=None, admin_id=None):
    return award_points(
        user_id, ADMIN_GRANT, points,
        description=description or f'Granted by admin {admin_id}',
        type=PointsHistory.ADMIN_GRANTED
    )


def _today():
    tz = ZoneInfo(current_app.config['DAILY_LOGIN_TIMEZONE'])
    return datetime.now(tz).date()


def claim_daily_login(user_id, today=None):
    """Award the once-per-calendar-day login bonus and advance the streak."""
    today = today or _today()
    points = current_app.config['POINTS_DAILY_LOGIN']

    with ledger.atomic():
        ledger.lock_key('daily_login', user_id)
        user = _get_user(user_id)
        if DailyLogin.query.filter_by(user_id=user_id, login_date=today).first() is not None:
            raise AlreadyClaimed(
                "Daily login bonus already claimed today",
                {'next_claim_date': (today + timedelta(days=1)).isoformat()}
            )

        previous = (
            DailyLogin.query
            .filter(DailyLogin.user_id == user_id, DailyLogin.login_date < today)
            .order_by(DailyLogin.login_date.desc())
            .first()
        )
        if previous is not None and previous.login_date == today - timedelta(days=1):
            streak = previous.streak + 1
        else:
            streak = 1

        login = DailyLogin(user_id=user_id, login_date=today, points_earned=points, streak=streak)
        db.session.add(login)
        user.login_streak = streak
        user.last_login_date = today
        award_points(user_id, DAILY_LOGIN, points, 'Daily login bonus', reference_id=today.isoformat())

    logger.info("User %s claimed daily login for %s (streak %s)", user_id, today, streak)
    return login


def has_claimed_today(user_id):
    return DailyLogin.query.filter_by(user_id=user_id, login_date=_today()).first() is not None


def get_exchange_rate():
    """Points per currency unit; the `points_exchange_rate` setting overrides config."""
    rate = Setting.get(Setting.POINTS_EXCHANGE_RATE)
    if rate is None:
        return Decimal(current_app.config['POINTS_EXCHANGE_RATE'])
    rate = Decimal(rate)
    if rate <= 0:
        logger.error("Ignoring non-positive points exchange rate setting %s", rate)
        return Decimal(current_app.config['POINTS_EXCHANGE_RATE'])
    return rate


def set_exchange_rate(rate):
    try:
        rate = Decimal(str(rate))
    except InvalidOperation:
        raise ValidationError("Exchange rate must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("Exchange rate must be greater than zero")
    with ledger.atomic():
        Setting.set(
            Setting.POINTS_EXCHANGE_RATE, rate, value_type='decimal', category='points',
            description='Points per currency unit for points exchanges'
        )
    logger.info("Points exchange rate set to %s", rate)
    return rate


def exchange_points(user_id, points, bank_details):
    """Reserve `points` for a cash payout at today's rate.

    Points leave the user's total immediately so two concurrent requests
    cannot spend the same points; a rejection gives them back.
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError("Points must be a positive whole number")
    try:
        bank_details = clean_bank_details(bank_details)
    except ValueError as e:
        raise ValidationError(str(e))
    minimum = current_app.config['POINTS_EXCHANGE_MIN']

    with ledger.atomic():
        ledger.lock_key('points', user_id)
        user = db.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        available = user.total_points
        if points < minimum or points > available:
            raise InsufficientPoints(available, points, minimum)

        rate = get_exchange_rate()
        currency_amount = points_to_minor(points, rate)
        if currency_amount <= 0:
            raise ValidationError("Points are worth less than the smallest payable amount")

        exchange = PointsExchange(
            user_id=user_id,
            points_spent=points,
            currency_amount=currency_amount,
            exchange_rate=rate,
            status=PointsExchange.PENDING,
            bank_details=bank_details
        )
        db.session.add(exchange)
        db.session.flush()
        _append(
            user_id, -points, PointsHistory.SPENT, POINTS_EXCHANGE,
            f'Exchanged {points} points', reference_id=exchange.id
        )

    logger.info("User %s requested exchange %s of %s points", user_id, exchange.id, points)
    return exchange


def _load_exchange(exchange_id):
    ledger.lock_key('points_exchange', exchange_id)
    exchange = db.session.get(PointsExchange, exchange_id, populate_existing=True)
    if exchange is None:
        raise NotFound(f"Points exchange {exchange_id} not found")
    if exchange.status != PointsExchange.PENDING:
        raise InvalidTransition(f"Points exchange is already {exchange.status}")
    return exchange


def approve_exchange(exchange_id, admin_notes=None):
    """Pay out an exchange: the converted amount is credited to the user's
    wallet and the bank payout is debited straight back out, in the same
    commit as the status change."""
    with ledger.atomic():
        exchange = _load_exchange(exchange_id)
        wallet = ledger.get_or_create_wallet(exchange.user_id)
        ledger.record_transaction(
            wallet.id, WalletTransaction.DEPOSIT, exchange.currency_amount,
            reference=f'points-exchange-{exchange.id}',
            metadata={'points_exchange_id': exchange.id, 'points': exchange.points_spent},
            status=WalletTransaction.SUCCESS,
            description=f'Points exchange ({exchange.points_spent} points)'
        )
        payout = ledger.record_transaction(
            wallet.id, WalletTransaction.WITHDRAWAL, exchange.currency_amount,
            reference=f'points-exchange-{exchange.id}-payout',
            metadata={'points_exchange_id': exchange.id, 'bank_details': exchange.bank_details},
            status=WalletTransaction.SUCCESS,
            description='Points exchange payout to bank account'
        )
        exchange.status = PointsExchange.APPROVED
        exchange.transaction_id = payout.id
        exchange.processed_at = datetime.utcnow()
        if admin_notes:
            exchange.admin_notes = admin_notes

    logger.info("Points exchange %s approved", exchange_id)
    return exchange


def reject_exchange(exchange_id, admin_notes=None):
    with ledger.atomic():
        exchange = _load_exchange(exchange_id)
        exchange.status = PointsExchange.REJECTED
        exchange.processed_at = datetime.utcnow()
        if admin_notes:
            exchange.admin_notes = admin_notes
        award_points(
            exchange.user_id, EXCHANGE_REJECTED, exchange.points_spent,
            description='Points returned from rejected exchange',
            reference_id=exchange.id,
            type=PointsHistory.ADMIN_GRANTED
        )

    logger.info("Points exchange %s rejected; %s points returned", exchange_id, exchange.points_spent)
    return exchange


def get_history(user_id, page=1, per_page=20):
    return (
        PointsHistory.query
        .filter_by(user_id=user_id)
        .order_by(PointsHistory.id.desc())
        .paginate(page=page, per_page=per_page, error_out=False)
    )


def list_exchanges(user_id):
    return (
        PointsExchange.query
        .filter_by(user_id=user_id)
        .order_by(PointsExchange.id.desc())
        .all()
    )


def get_summary(user_id):
    user = _get_user(user_id)
    return {
        'total_points': user.total_points,
        'login_streak': user.login_streak,
        'last_login_date': user.last_login_date.isoformat() if user.last_login_date else None,
        'claimed_today': has_claimed_today(user_id),
        'exchange_rate': str(get_exchange_rate()),
        'minimum_exchange': current_app.config['POINTS_EXCHANGE_MIN'],
    }


def verify_points_total(user_id):
    """Cached total minus the history sum; 0 when consistent."""
    user = db.session.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFound(f"User {user_id} not found")
    history_total = (
        db.session.query(func.coalesce(func.sum(PointsHistory.points), 0))
        .filter(PointsHistory.user_id == user_id)
        .scalar()
    )
    drift = user.total_points - int(history_total)
    if drift:
        logger.error("User %s points drift: cached=%s history=%s", user_id, user.total_points, history_total)
    return drift
