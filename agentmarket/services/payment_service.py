import hashlib
import hmac
import json
import logging

import requests
import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models.payment import PaymentGateway

logger = logging.getLogger(__name__)


class PaymentService:
    """Thin facade over the external payment gateways.

    Every call returns a dict with a `success` flag and either the gateway
    data or an `error` message; callers decide what a failure means for the
    ledger. No method here touches wallet state.
    """

    @staticmethod
    def _gateway(name):
        try:
            return PaymentGateway.query.filter_by(gateway_name=name, enabled=True).first()
        except SQLAlchemyError as e:
            logger.warning("Could not load %s gateway configuration: %s", name, e)
            return None

    @staticmethod
    def get_paystack_config():
        """Get Paystack configuration from database or fallback to env"""
        gateway = PaymentService._gateway(PaymentGateway.PAYSTACK)
        if gateway:
            secret_key = gateway.get_encrypted_key('secret_key')
            if secret_key:
                return {
                    'secret_key': secret_key,
                    'public_key': gateway.config.get('public_key'),
                    'base_url': gateway.config.get('base_url') or current_app.config['PAYSTACK_BASE_URL'],
                    'enabled': True
                }

        # Fallback to env
        return {
            'secret_key': current_app.config.get('PAYSTACK_SECRET_KEY'),
            'public_key': None,
            'base_url': current_app.config['PAYSTACK_BASE_URL'],
            'enabled': bool(current_app.config.get('PAYSTACK_SECRET_KEY'))
        }

    @staticmethod
    def get_stripe_config():
        """Get Stripe configuration from database or fallback to env"""
        gateway = PaymentService._gateway(PaymentGateway.STRIPE)
        if gateway:
            secret_key = gateway.get_encrypted_key('secret_key')
            if secret_key:
                return {
                    'secret_key': secret_key,
                    'publishable_key': gateway.config.get('publishable_key'),
                    'webhook_secret': gateway.get_encrypted_key('webhook_secret') or current_app.config.get('STRIPE_WEBHOOK_SECRET'),
                    'enabled': True
                }

        # Fallback to env
        return {
            'secret_key': current_app.config.get('STRIPE_SECRET_KEY'),
            'publishable_key': current_app.config.get('STRIPE_PUBLIC_KEY'),
            'webhook_secret': current_app.config.get('STRIPE_WEBHOOK_SECRET'),
            'enabled': bool(current_app.config.get('STRIPE_SECRET_KEY'))
        }

    @staticmethod
    def initialize_payment(provider, amount, currency, email, reference, callback_url=None, metadata=None):
        """Start a hosted payment for `amount` minor units under our `reference`.

        Returns {'success': True, 'redirect_url': ..., 'gateway_reference': ...}
        or {'success': False, 'error': ...}.
        """
        callback_url = callback_url or current_app.config['PAYMENT_CALLBACK_URL']
        if provider == PaymentGateway.PAYSTACK:
            return PaymentService.initialize_paystack_transaction(
                amount, currency, email, reference, callback_url, metadata
            )
        if provider == PaymentGateway.STRIPE:
            return PaymentService.create_stripe_checkout_session(
                amount, currency, reference,
                success_url=callback_url,
                cancel_url=callback_url,
                metadata=metadata
            )
        return {'success': False, 'error': f'Unsupported payment provider: {provider}'}

    @staticmethod
    def initialize_paystack_transaction(amount, currency, email, reference, callback_url, metadata=None):
        """Paystack Transaction Initialize: amounts are already in kobo."""
        config = PaymentService.get_paystack_config()
        if not config['enabled'] or not config['secret_key']:
            return {'success': False, 'error': 'Paystack is not configured or enabled'}

        try:
            response = requests.post(
                f"{config['base_url']}/transaction/initialize",
                json={
                    'email': email,
                    'amount': amount,
                    'currency': currency,
                    'reference': reference,
                    'callback_url': callback_url,
                    'metadata': metadata or {},
                },
                headers={
                    'Authorization': f"Bearer {config['secret_key']}",
                    'Content-Type': 'application/json'
                },
                timeout=15
            )
            body = response.json()
        except requests.RequestException as e:
            logger.error("Paystack initialize failed for %s: %s", reference, e)
            return {'success': False, 'error': str(e)}
        except ValueError:
            logger.error("Paystack returned a non-JSON response for %s (HTTP %s)", reference, response.status_code)
            return {'success': False, 'error': 'Invalid response from Paystack'}

        if response.status_code != 200 or not body.get('status'):
            message = body.get('message', 'Paystack rejected the transaction')
            logger.error("Paystack initialize rejected %s: %s", reference, message)
            return {'success': False, 'error': message}

        data = body.get('data') or {}
        return {
            'success': True,
            'redirect_url': data.get('authorization_url'),
            'gateway_reference': data.get('reference', reference),
            'access_code': data.get('access_code')
        }

    @staticmethod
    def create_stripe_checkout_session(amount, currency, reference, success_url=None, cancel_url=None, metadata=None):
        """
        Create a Stripe Checkout Session (Hosted Payment Page).
        Our reference travels in the session metadata and comes back on the webhook.
        """
        config = PaymentService.get_stripe_config()
        if not config['enabled'] or not config['secret_key']:
            return {'success': False, 'error': 'Stripe is not configured or enabled'}

        stripe.api_key = config['secret_key']
        session_metadata = dict(metadata or {}, reference=reference)
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=['card'],
                line_items=[{
                    'price_data': {
                        'currency': currency.lower(),
                        'unit_amount': amount,
                        'product_data': {
                            'name': session_metadata.get('description', 'Agent Marketplace payment'),
                        },
                    },
                    'quantity': 1,
                }],
                mode='payment',
                client_reference_id=reference,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=session_metadata
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout session failed for %s: %s", reference, e)
            return {'success': False, 'error': str(e)}

        return {
            'success': True,
            'redirect_url': session.url,
            'gateway_reference': session.id
        }

    @staticmethod
    def verify_paystack_signature(payload, signature):
        """Paystack signs the raw body with HMAC-SHA512 of the secret key."""
        secret_key = PaymentService.get_paystack_config()['secret_key']
        if not secret_key or not signature:
            return False
        expected = hmac.new(secret_key.encode(), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    @staticmethod
    def verify_stripe_webhook(payload, sig_header, webhook_secret=None):
        """Verify a Stripe webhook signature.

        On success the event is returned as plain JSON data, not a StripeObject.
        """
        webhook_secret = webhook_secret or PaymentService.get_stripe_config()['webhook_secret']
        if not webhook_secret:
            return {'success': False, 'error': 'Stripe webhook secret is not configured'}
        try:
            stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
            return {'success': True, 'event': json.loads(payload)}
        except (ValueError, stripe.SignatureVerificationError) as e:
            return {'success': False, 'error': str(e)}
