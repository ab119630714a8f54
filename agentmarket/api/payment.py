from flask import Blueprint, request, current_app

from ..models import PaymentGateway
from ..services import order_service
from ..services.errors import DuplicateReference, LedgerError
from ..services.payment_service import PaymentService
from .utils import success_response, error_response, ledger_error_response, handle_errors

payment_bp = Blueprint('payment', __name__)

PAYSTACK_SUCCESS_EVENTS = ('charge.success',)
PAYSTACK_FAILURE_EVENTS = ('charge.failed',)
STRIPE_SUCCESS_EVENTS = ('checkout.session.completed', 'checkout.session.async_payment_succeeded')
STRIPE_FAILURE_EVENTS = ('checkout.session.expired', 'checkout.session.async_payment_failed')


def _apply_event(provider, event_type, reference, amount, succeeded):
    """Shared webhook tail. Replays answer 200 so the gateway stops retrying;
    unknown references answer 404 so it retries later."""
    if not reference:
        return error_response("Missing payment reference", "MISSING_REFERENCE", 400)
    try:
        if succeeded:
            outcome = order_service.handle_payment_success(reference, amount)
        else:
            outcome = order_service.handle_payment_failure(reference)
    except DuplicateReference:
        outcome = 'duplicate'
    except LedgerError as e:
        current_app.logger.warning(f"{provider} webhook {event_type} for {reference} rejected: {e.code} {e.message}")
        return ledger_error_response(e)

    current_app.logger.info(f"{provider} webhook {event_type} for {reference}: {outcome}")
    return success_response({'reference': reference, 'outcome': outcome})


@payment_bp.route('/webhook', methods=['POST'])
@handle_errors
def paystack_webhook():
    """Paystack event callback, signed with HMAC-SHA512 in x-paystack-signature."""
    payload = request.get_data()
    signature = request.headers.get('x-paystack-signature')
    if not PaymentService.verify_paystack_signature(payload, signature):
        current_app.logger.warning("Paystack webhook with invalid signature rejected")
        return error_response("Invalid signature", "INVALID_SIGNATURE", 401)

    event = request.get_json(force=True, silent=True) or {}
    event_type = event.get('event')
    data = event.get('data') or {}

    if event_type in PAYSTACK_SUCCESS_EVENTS:
        amount = data.get('amount')
        if amount is not None:
            try:
                amount = int(amount)
            except (TypeError, ValueError):
                current_app.logger.warning(f"Paystack {event_type} with non-numeric amount {amount!r}")
                return error_response("amount must be an integer", "INVALID_REQUEST", 400)
        return _apply_event(PaymentGateway.PAYSTACK, event_type, data.get('reference'), amount, True)
    if event_type in PAYSTACK_FAILURE_EVENTS:
        return _apply_event(PaymentGateway.PAYSTACK, event_type, data.get('reference'), None, False)

    current_app.logger.debug(f"Ignoring Paystack event {event_type}")
    return success_response({'ignored': event_type})


@payment_bp.route('/stripe/webhook', methods=['POST'])
@handle_errors
def stripe_webhook():
    result = PaymentService.verify_stripe_webhook(
        request.get_data(), request.headers.get('Stripe-Signature')
    )
    if not result['success']:
        current_app.logger.warning(f"Stripe webhook rejected: {result['error']}")
        return error_response("Invalid signature", "INVALID_SIGNATURE", 401)

    event = result['event']
    event_type = event['type']
    session = event['data']['object']
    metadata = session.get('metadata') or {}
    reference = metadata.get('reference') or session.get('client_reference_id')

    if event_type in STRIPE_SUCCESS_EVENTS:
        if session.get('payment_status') not in ('paid', 'no_payment_required'):
            # Async methods confirm later through async_payment_succeeded
            return success_response({'reference': reference, 'outcome': 'awaiting_payment'})
        return _apply_event(PaymentGateway.STRIPE, event_type, reference, session.get('amount_total'), True)
    if event_type in STRIPE_FAILURE_EVENTS:
        return _apply_event(PaymentGateway.STRIPE, event_type, reference, None, False)

    current_app.logger.debug(f"Ignoring Stripe event {event_type}")
    return success_response({'ignored': event_type})
