import hashlib
import hmac
import json
import time

from agentmarket.models import db, Order, APIKey, User

PAYSTACK_SECRET = 'sk_test_paystack'
STRIPE_WEBHOOK_SECRET = 'whsec_test'


def _paystack_post(client, event, secret=PAYSTACK_SECRET):
    body = json.dumps(event).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()
    return client.post(
        '/api/v1/payment/webhook',
        data=body,
        content_type='application/json',
        headers={'x-paystack-signature': signature}
    )


def _stripe_signed(event):
    body = json.dumps(event)
    timestamp = int(time.time())
    digest = hmac.new(
        STRIPE_WEBHOOK_SECRET.encode(), f'{timestamp}.{body}'.encode(), hashlib.sha256
    ).hexdigest()
    return body, f't={timestamp},v1={digest}'


def _stripe_post(client, event):
    body, signature = _stripe_signed(event)
    return client.post(
        '/api/v1/payment/stripe/webhook',
        data=body,
        content_type='application/json',
        headers={'Stripe-Signature': signature}
    )


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_requires_login(client):
    response = client.get('/api/v1/wallet')
    assert response.status_code == 401
    assert response.get_json() == {
        'success': False, 'error': 'Authentication required', 'code': 'UNAUTHENTICATED'
    }


def test_get_wallet(client, login, buyer, fund):
    fund(buyer.id, 1234_50)
    login(buyer)

    response = client.get('/api/v1/wallet')

    body = response.get_json()
    assert response.status_code == 200
    assert body['success'] is True
    assert body['data']['balance'] == '1234.50'
    assert body['data']['currency'] == 'NGN'


def test_transactions_are_paginated(client, login, buyer, fund):
    for _ in range(3):
        fund(buyer.id, 10_00)
    login(buyer)

    body = client.get('/api/v1/wallet/transactions?per_page=2').get_json()

    assert len(body['data']['transactions']) == 2
    assert body['data']['pagination']['total'] == 3
    assert body['data']['transactions'][0]['amount'] == '10.00'


def test_deposit_endpoint(client, login, buyer, gateway):
    login(buyer)

    response = client.post('/api/v1/wallet/deposit', json={'amount': '2500.00'})

    body = response.get_json()
    assert response.status_code == 201
    assert body['data']['reference'].startswith('dep_')
    assert body['data']['gateway_redirect_url'].endswith(body['data']['reference'])
    assert gateway[0]['amount'] == 2500_00


def test_deposit_rejects_bad_amount(client, login, buyer, gateway):
    login(buyer)
    response = client.post('/api/v1/wallet/deposit', json={'amount': '12.345'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_AMOUNT'
    assert gateway == []


def test_missing_fields(client, login, buyer):
    login(buyer)
    response = client.post('/api/v1/wallet/withdraw', json={'amount': '100.00'})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'MISSING_FIELDS'


def test_withdraw_over_balance(client, login, buyer, fund):
    fund(buyer.id, 100_00)
    login(buyer)

    response = client.post('/api/v1/wallet/withdraw', json={
        'amount': '500.00',
        'bank_details': {'bank_name': 'GTBank', 'account_number': '0123456789', 'account_name': 'Ada Obi'}
    })

    body = response.get_json()
    assert response.status_code == 402
    assert body['code'] == 'INSUFFICIENT_FUNDS'
    assert body['details']['balance'] == '100.00'


def test_daily_login_claimed_once(client, login, buyer):
    login(buyer)

    first = client.post('/api/v1/points/daily-login')
    second = client.post('/api/v1/points/daily-login')

    assert first.status_code == 200
    assert first.get_json()['data']['points_earned'] == 100
    assert second.status_code == 409
    assert second.get_json()['code'] == 'ALREADY_CLAIMED'

    summary = client.get('/api/v1/points').get_json()['data']
    assert summary['total_points'] == 100
    assert summary['claimed_today'] is True


def test_referral_register(client, login, buyer, make_user):
    referrer = make_user('referrer')
    login(buyer)

    response = client.post('/api/v1/referral/register', json={'code': referrer.referral_code})
    assert response.status_code == 201
    assert response.get_json()['data']['referrer_id'] == referrer.id

    again = client.post('/api/v1/referral/register', json={'code': referrer.referral_code})
    assert again.status_code == 409

    bogus = client.post('/api/v1/referral/register', json={'code': 'AGT-DOESNOTX'})
    assert bogus.get_json()['code'] == 'INVALID_CODE'


def test_create_wallet_order(client, login, buyer, seller, agent, fund):
    fund(buyer.id, 2000_00)
    login(buyer)

    response = client.post('/api/v1/orders', json={
        'agent_id': agent.id, 'tier': 'basic', 'payment_method': 'wallet'
    })

    body = response.get_json()
    assert response.status_code == 201
    assert body['data']['order']['status'] == Order.IN_PROGRESS
    assert body['data']['order']['total_amount'] == '1050.00'
    assert 'redirect_url' not in body['data']


def test_create_order_insufficient_funds(client, login, buyer, agent):
    login(buyer)
    response = client.post('/api/v1/orders', json={
        'agent_id': agent.id, 'tier': 'basic', 'payment_method': 'wallet'
    })
    assert response.status_code == 402
    assert Order.query.count() == 0


def test_order_visible_to_parties_only(client, login, buyer, agent, fund, make_user):
    fund(buyer.id, 2000_00)
    login(buyer)
    order_id = client.post('/api/v1/orders', json={
        'agent_id': agent.id, 'tier': 'basic', 'payment_method': 'wallet'
    }).get_json()['data']['order']['id']

    login(make_user('stranger'))
    assert client.get(f'/api/v1/orders/{order_id}').status_code == 403


def test_paystack_webhook_rejects_bad_signature(client, buyer, agent, gateway):
    event = {'event': 'charge.success', 'data': {'reference': 'ord_x', 'amount': 100}}
    response = _paystack_post(client, event, secret='not-the-secret')
    assert response.status_code == 401
    assert response.get_json()['code'] == 'INVALID_SIGNATURE'


def test_paystack_webhook_pays_order_once(client, login, buyer, seller, agent, gateway):
    login(buyer)
    created = client.post('/api/v1/orders', json={
        'agent_id': agent.id, 'tier': 'basic', 'payment_method': 'gateway'
    }).get_json()['data']
    reference = created['order']['gateway_reference']
    assert created['redirect_url'].endswith(reference)

    event = {'event': 'charge.success', 'data': {'reference': reference, 'amount': 1050_00}}
    first = _paystack_post(client, event)
    replay = _paystack_post(client, event)

    assert first.status_code == 200
    assert first.get_json()['data']['outcome'] == 'processed'
    assert replay.status_code == 200
    assert replay.get_json()['data']['outcome'] == 'duplicate'
    assert db.session.get(Order, created['order']['id']).status == Order.IN_PROGRESS


def test_paystack_webhook_unknown_reference(client):
    event = {'event': 'charge.success', 'data': {'reference': 'dep_unknown', 'amount': 100_00}}
    response = _paystack_post(client, event)
    assert response.status_code == 404


def test_paystack_webhook_ignores_other_events(client):
    response = _paystack_post(client, {'event': 'transfer.success', 'data': {}})
    assert response.status_code == 200
    assert response.get_json()['data'] == {'ignored': 'transfer.success'}


def test_stripe_webhook_settles_deposit(client, login, buyer, gateway):
    login(buyer)
    reference = client.post('/api/v1/wallet/deposit', json={'amount': '300.00'}).get_json()['data']['reference']

    event = {
        'id': 'evt_test',
        'object': 'event',
        'type': 'checkout.session.completed',
        'data': {'object': {
            'object': 'checkout.session',
            'payment_status': 'paid',
            'amount_total': 300_00,
            'client_reference_id': reference,
            'metadata': {'reference': reference},
        }},
    }
    response = _stripe_post(client, event)

    assert response.status_code == 200
    assert response.get_json()['data']['outcome'] == 'processed'
    assert client.get('/api/v1/wallet').get_json()['data']['balance'] == '300.00'


def test_stripe_event_is_plain_data(app):
    from agentmarket.services.payment_service import PaymentService

    event = {
        'id': 'evt_plain',
        'object': 'event',
        'type': 'checkout.session.completed',
        'data': {'object': {'object': 'checkout.session', 'metadata': {'reference': 'dep_abc'}}},
    }
    body, signature = _stripe_signed(event)

    result = PaymentService.verify_stripe_webhook(body, signature)

    assert result['success'] is True
    assert type(result['event']) is dict
    assert result['event'].get('data', {}).get('object', {}).get('metadata') == {'reference': 'dep_abc'}

    tampered = PaymentService.verify_stripe_webhook(body.replace('dep_abc', 'dep_xyz'), signature)
    assert tampered['success'] is False


def test_paystack_webhook_rejects_non_numeric_amount(client):
    event = {'event': 'charge.success', 'data': {'reference': 'ord_x', 'amount': 'abc'}}
    response = _paystack_post(client, event)
    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_REQUEST'


def test_admin_endpoints_require_admin(client, login, buyer):
    login(buyer)
    assert client.get('/api/v1/admin/withdrawals').status_code == 403
    assert client.post('/api/v1/admin/reconcile', json={}).status_code == 403


def test_admin_withdrawal_flow(client, login, buyer, admin, fund):
    fund(buyer.id, 1000_00)
    login(buyer)
    withdrawal_id = client.post('/api/v1/wallet/withdraw', json={
        'amount': '400.00',
        'bank_details': {'bank_name': 'GTBank', 'account_number': '0123456789', 'account_name': 'Ada Obi'}
    }).get_json()['data']['id']

    login(admin)
    assert client.post(f'/api/v1/admin/withdrawals/{withdrawal_id}/approve', json={}).status_code == 200
    processed = client.post(f'/api/v1/admin/withdrawals/{withdrawal_id}/process', json={'admin_notes': 'NIP 0042'})
    assert processed.status_code == 200
    assert processed.get_json()['data']['status'] == 'processed'

    login(buyer)
    assert client.get('/api/v1/wallet').get_json()['data']['balance'] == '600.00'


def test_admin_grant_points(client, login, buyer, admin):
    login(admin)
    response = client.post('/api/v1/admin/points/grant', json={'user_id': buyer.id, 'points': 750})
    assert response.status_code == 201
    assert db.session.get(User, buyer.id).total_points == 750


def test_admin_reconcile(client, login, admin):
    login(admin)
    response = client.post('/api/v1/admin/reconcile', json={'max_age_minutes': 60})
    assert response.status_code == 200
    assert response.get_json()['data'] == {'expired_transactions': 0, 'expired_orders': 0}


def test_catalog_event_requires_api_key(client, seller):
    response = client.post('/api/v1/catalog/events/agent-listed', json={'user_id': seller.id})
    assert response.status_code == 401


def test_catalog_event_awards_points(client, seller):
    record, secret = APIKey.issue('catalog-service')
    db.session.commit()
    headers = {'X-API-Key': record.api_key, 'X-API-Secret': secret}

    response = client.post(
        '/api/v1/catalog/events/agent-listed',
        json={'user_id': seller.id, 'agent_id': 7},
        headers=headers
    )

    assert response.status_code == 200
    assert response.get_json()['data']['referrer_rewarded'] is False
    assert db.session.get(User, seller.id).total_points == 500
