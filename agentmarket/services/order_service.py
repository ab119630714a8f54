"""Order lifecycle and the money movements tied to it.

Paying for an order (from the wallet, or by a confirmed gateway charge)
always runs the same settlement inside one transaction:

    buyer   -total_amount                  (purchase)
    seller  +amount - commission_amount    (sale)
    platform +service_fee + commission_amount (commission)

so the three legs always sum to zero. Paid orders sit in `in_progress` until
the seller confirms delivery.
"""
from datetime import datetime, timedelta
import logging
import random
import string
import uuid

from flask import current_app

from ..models import db, User, Order, WalletTransaction
from ..utils.money import apply_rate
from . import catalog, ledger, points_service, referral_service, wallet_service
from .errors import (
    Forbidden, GatewayUnavailable, InsufficientFunds, InvalidTransition, NotFound, ValidationError
)
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


def generate_order_number():
    """Generate unique order number: ORD-YYYYMMDD-XXXXXX"""
    timestamp = datetime.utcnow().strftime('%Y%m%d')
    random_part = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f'ORD-{timestamp}-{random_part}'


def quote(amount):
    """(service_fee, commission, total) for a package price in minor units."""
    config = current_app.config
    service_fee = apply_rate(amount, config['SERVICE_FEE_RATE'])
    commission = apply_rate(amount, config['COMMISSION_RATE'])
    return service_fee, commission, amount + service_fee


def _reference(order, leg):
    return f'order-{order.id}-{leg}'


def get_order(order_id, user_id=None, is_admin=False):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    if user_id is not None and not is_admin and user_id not in (order.buyer_id, order.seller_id):
        raise Forbidden("You are not a party to this order")
    return order


def create_order(buyer_id, agent_id, tier, payment_method, requirements=None,
                 provider=None, callback_url=None):
    """Returns (order, redirect_url); redirect_url is None for wallet payments."""
    if payment_method not in (Order.WALLET, Order.GATEWAY):
        raise ValidationError(f"Unknown payment method: {payment_method}")

    pricing = catalog.get_agent_pricing(agent_id, tier)
    buyer = db.session.get(User, buyer_id)
    if buyer is None:
        raise NotFound(f"User {buyer_id} not found")
    if pricing.seller_id == buyer_id:
        raise ValidationError("You cannot purchase your own agent")

    service_fee, commission, total = quote(pricing.price)
    fields = dict(
        buyer_id=buyer_id,
        seller_id=pricing.seller_id,
        agent_id=pricing.agent_id,
        package_type=tier,
        amount=pricing.price,
        service_fee=service_fee,
        commission_amount=commission,
        total_amount=total,
        requirements=requirements,
        status=Order.PENDING,
    )

    if payment_method == Order.WALLET:
        with ledger.atomic():
            # Lock before the order insert so a short balance writes nothing
            wallet = ledger.get_or_create_wallet(buyer_id)
            seller_wallet = ledger.get_or_create_wallet(pricing.seller_id)
            wallet = ledger.lock_wallets(wallet.id, seller_wallet.id)[wallet.id]
            balance = ledger.get_balance(wallet.id)
            if balance < total:
                raise InsufficientFunds(balance, total, wallet.currency)

            order = Order(order_number=generate_order_number(), payment_method=Order.WALLET, **fields)
            db.session.add(order)
            db.session.flush()
            _settle(order, pricing.delivery_days)

        logger.info("Order %s paid from wallet by user %s", order.order_number, buyer_id)
        return order, None

    provider = provider or current_app.config['DEFAULT_PAYMENT_PROVIDER']
    reference = f'ord_{uuid.uuid4().hex}'
    result = PaymentService.initialize_payment(
        provider, total, current_app.config['CURRENCY'], buyer.email, reference,
        callback_url=callback_url,
        metadata={'kind': 'order', 'agent_id': agent_id, 'tier': tier, 'description': pricing.title}
    )
    if not result.get('success'):
        logger.warning("Gateway order for user %s not started: %s", buyer_id, result.get('error'))
        raise GatewayUnavailable(result.get('error') or 'Payment gateway unavailable')

    with ledger.atomic():
        order = Order(
            order_number=generate_order_number(),
            payment_method=Order.GATEWAY,
            payment_provider=provider,
            gateway_reference=reference,
            **fields
        )
        db.session.add(order)

    logger.info("Order %s awaiting %s payment (ref=%s)", order.order_number, provider, reference)
    return order, result.get('redirect_url')


def _settle(order, delivery_days):
    """Move the money for a pending order and start delivery. Caller holds
    the buyer and seller wallet locks (see ledger.lock_wallets) inside an
    atomic() block."""
    buyer_wallet = ledger.get_or_create_wallet(order.buyer_id)
    seller_wallet = ledger.get_or_create_wallet(order.seller_id)
    details = {'order_id': order.id, 'order_number': order.order_number}

    wallet_service.debit_for_purchase(
        buyer_wallet.id, order.total_amount,
        reference=_reference(order, 'purchase'), metadata=details,
        description=f'Payment for order {order.order_number}'
    )
    payout = order.amount - order.commission_amount
    if payout > 0:
        wallet_service.credit_from_sale(
            seller_wallet.id, payout,
            reference=_reference(order, 'sale'), metadata=details,
            description=f'Sale of order {order.order_number}'
        )
    config = current_app.config
    wallet_service.collect_commission(
        order.id,
        order.service_fee + order.commission_amount,
        (config['SERVICE_FEE_RATE'] + config['COMMISSION_RATE']) * 100,
        reference=_reference(order, 'commission')
    )

    now = datetime.utcnow()
    order.status = Order.IN_PROGRESS
    order.paid_at = now
    order.delivery_date = now + timedelta(days=delivery_days or 0)

    order_points = config['POINTS_ORDER_COMPLETED']
    points_service.award_points(
        order.buyer_id, points_service.ORDER_PURCHASE, order_points,
        f'Purchased order {order.order_number}', reference_id=order.id
    )
    points_service.award_points(
        order.seller_id, points_service.ORDER_SALE, order_points,
        f'Sold order {order.order_number}', reference_id=order.id
    )
    referral_service.on_first_purchase_completed(order.buyer_id)


def _lock_order(order_id):
    ledger.lock_key('order', order_id)
    order = db.session.get(Order, order_id, with_for_update=True, populate_existing=True)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def handle_payment_success(reference, amount=None):
    """Apply a confirmed gateway charge for an order or a deposit.

    Returns 'processed', 'duplicate' (already applied) or 'credited' (the
    order was no longer payable, or the deposit had already been marked
    failed; the money stays in the buyer's wallet).
    """
    with ledger.atomic():
        ledger.lock_key('payment_reference', reference)
        order = Order.query.filter_by(gateway_reference=reference).first()
        if order is not None:
            return _apply_order_payment(order.id, reference, amount)

        txn = ledger.find_by_reference(reference)
        if txn is None or txn.type != WalletTransaction.DEPOSIT:
            raise NotFound(f"No payment is waiting on reference {reference}")
        if txn.status == WalletTransaction.SUCCESS:
            logger.info("Deposit %s already settled; webhook replay ignored", reference)
            return 'duplicate'
        if amount is not None and amount != txn.amount:
            logger.error("Deposit %s amount mismatch: expected %s, got %s", reference, txn.amount, amount)
            raise ValidationError("Paid amount does not match the deposit")
        if txn.status == WalletTransaction.FAILED:
            return _credit_late_deposit(txn)
        ledger.settle_transaction(txn.id, WalletTransaction.SUCCESS)

    logger.info("Deposit %s settled", reference)
    return 'processed'


def _credit_late_deposit(txn):
    """The charge went through after the deposit was given up on (expired or
    reported failed). The failed row stays as it is; the money lands as a new
    deposit under `<reference>-late`."""
    late_reference = f'{txn.reference}-late'
    if ledger.find_by_reference(late_reference) is not None:
        logger.info("Late deposit %s already credited; webhook replay ignored", txn.reference)
        return 'duplicate'

    ledger.record_transaction(
        txn.wallet_id, WalletTransaction.DEPOSIT, txn.amount,
        reference=late_reference,
        metadata={'late_for': txn.reference},
        status=WalletTransaction.SUCCESS,
        description='Late gateway confirmation for wallet deposit'
    )
    logger.warning("Deposit %s confirmed after it was marked failed; credited as %s", txn.reference, late_reference)
    return 'credited'


def _apply_order_payment(order_id, reference, amount):
    order = _lock_order(order_id)
    if ledger.find_by_reference(reference) is not None:
        logger.info("Order %s payment %s already applied; webhook replay ignored", order.order_number, reference)
        return 'duplicate'
    if amount is not None and amount != order.total_amount:
        logger.error(
            "Order %s amount mismatch: expected %s, got %s", order.order_number, order.total_amount, amount
        )
        raise ValidationError("Paid amount does not match the order total")

    # The charge lands in the buyer's wallet first, then pays for the order
    buyer_wallet = ledger.get_or_create_wallet(order.buyer_id)
    seller_wallet = ledger.get_or_create_wallet(order.seller_id)
    ledger.lock_wallets(buyer_wallet.id, seller_wallet.id)
    ledger.record_transaction(
        buyer_wallet.id, WalletTransaction.DEPOSIT, order.total_amount,
        reference=reference,
        metadata={'order_id': order.id, 'provider': order.payment_provider},
        status=WalletTransaction.SUCCESS,
        description=f'Card payment for order {order.order_number}'
    )

    if order.status != Order.PENDING:
        logger.warning(
            "Payment %s arrived for %s order %s; kept in buyer's wallet",
            reference, order.status, order.order_number
        )
        return 'credited'

    delivery_days = order.agent.tier_delivery_days(order.package_type) if order.agent else 0
    _settle(order, delivery_days)
    logger.info("Order %s paid via %s", order.order_number, order.payment_provider)
    return 'processed'


def handle_payment_failure(reference):
    with ledger.atomic():
        ledger.lock_key('payment_reference', reference)
        order = Order.query.filter_by(gateway_reference=reference).first()
        if order is not None:
            order = _lock_order(order.id)
            if order.status == Order.PENDING:
                order.status = Order.CANCELLED
                logger.info("Order %s cancelled after failed payment", order.order_number)
            return order.status

        txn = ledger.find_by_reference(reference)
        if txn is None:
            raise NotFound(f"No payment is waiting on reference {reference}")
        txn = ledger.settle_transaction(txn.id, WalletTransaction.FAILED)
        return txn.status


def _refund_purchase(order):
    purchase = ledger.find_by_reference(_reference(order, 'purchase'))
    if purchase is None or purchase.status != WalletTransaction.SUCCESS:
        return None
    if ledger.find_by_reference(_reference(order, 'refund')) is not None:
        return None
    return wallet_service.refund(
        purchase.wallet_id, purchase.amount, _reference(order, 'refund'),
        metadata={'order_id': order.id},
        description=f'Refund for order {order.order_number}'
    )


def cancel_order(order_id, actor_id, is_admin=False):
    with ledger.atomic():
        order = _lock_order(order_id)
        if not is_admin and actor_id not in (order.buyer_id, order.seller_id):
            raise Forbidden("You are not a party to this order")
        if order.status != Order.PENDING:
            raise InvalidTransition(f"A {order.status} order cannot be cancelled")
        refund = _refund_purchase(order)
        if refund is not None:
            logger.warning("Pending order %s had a purchase debit; refunded", order.order_number)
        order.status = Order.CANCELLED

    logger.info("Order %s cancelled by user %s", order.order_number, actor_id)
    return order


def complete_order(order_id, actor_id, is_admin=False):
    """Seller confirms delivery: in_progress -> completed."""
    with ledger.atomic():
        order = _lock_order(order_id)
        if not is_admin and actor_id != order.seller_id:
            raise Forbidden("Only the seller can mark this order delivered")
        if order.status != Order.IN_PROGRESS:
            raise InvalidTransition(f"A {order.status} order cannot be completed")
        order.status = Order.COMPLETED
        order.completed_at = datetime.utcnow()

    logger.info("Order %s completed", order.order_number)
    return order


def dispute_order(order_id, actor_id, reason=None):
    with ledger.atomic():
        order = _lock_order(order_id)
        if actor_id not in (order.buyer_id, order.seller_id):
            raise Forbidden("You are not a party to this order")
        if not order.can_transition(Order.DISPUTED):
            raise InvalidTransition(f"A {order.status} order cannot be disputed")
        order.status = Order.DISPUTED
        if reason:
            order.requirements = f"{order.requirements or ''}\n\n[Dispute] {reason}".strip()

    logger.warning("Order %s disputed by user %s", order.order_number, actor_id)
    return order


def resolve_dispute(order_id):
    """Admin resolution. A paid order is completed; one disputed before any
    payment was applied is cancelled, and a charge that lands later stays in
    the buyer's wallet."""
    with ledger.atomic():
        order = _lock_order(order_id)
        if order.status != Order.DISPUTED:
            raise InvalidTransition(f"A {order.status} order is not in dispute")
        if order.paid_at is None:
            order.status = Order.CANCELLED
        else:
            order.status = Order.COMPLETED
            order.completed_at = datetime.utcnow()

    logger.info("Dispute on order %s resolved as %s", order.order_number, order.status)
    return order


def expire_stale_orders(max_age):
    """Cancel unpaid gateway orders older than `max_age`. Returns the count."""
    cutoff = datetime.utcnow() - max_age
    stale_ids = [
        row.id for row in
        db.session.query(Order.id)
        .filter(
            Order.status == Order.PENDING,
            Order.payment_method == Order.GATEWAY,
            Order.created_at < cutoff,
        )
        .all()
    ]

    expired = 0
    for order_id in stale_ids:
        with ledger.atomic():
            order = _lock_order(order_id)
            if order.status != Order.PENDING:
                continue
            order.status = Order.CANCELLED
        expired += 1

    if expired:
        logger.warning("Cancelled %s unpaid gateway orders older than %s", expired, cutoff)
    return expired
