import pytest

from agentmarket.models import db, User, UserReferral
from agentmarket.services import referral_service
from agentmarket.services.errors import AlreadyClaimed, InvalidCode, SelfReferral


def _total(user):
    return db.session.get(User, user.id).total_points


@pytest.fixture
def referrer(make_user):
    return make_user('referrer')


@pytest.fixture
def newcomer(make_user):
    return make_user('newcomer', 'Seller')


def test_register_awards_signup_and_welcome(referrer, newcomer):
    referral = referral_service.register_referral(referrer.referral_code, newcomer.id)

    referral = db.session.get(UserReferral, referral.id)
    assert referral.signup_bonus is True
    assert referral.agent_list_bonus is False
    assert referral.purchase_bonus is False
    assert _total(referrer) == 1000
    assert _total(newcomer) == 500


def test_code_is_case_insensitive(referrer, newcomer):
    referral = referral_service.register_referral(f'  {referrer.referral_code.lower()} ', newcomer.id)
    assert referral.referrer_id == referrer.id


def test_invalid_code(newcomer):
    with pytest.raises(InvalidCode):
        referral_service.register_referral('AGT-NOPE0000', newcomer.id)
    with pytest.raises(InvalidCode):
        referral_service.register_referral('', newcomer.id)


def test_self_referral(referrer):
    with pytest.raises(SelfReferral):
        referral_service.register_referral(referrer.referral_code, referrer.id)
    assert UserReferral.query.count() == 0


def test_user_can_only_be_referred_once(referrer, newcomer, make_user):
    other = make_user('other')
    referral_service.register_referral(referrer.referral_code, newcomer.id)
    with pytest.raises(AlreadyClaimed):
        referral_service.register_referral(other.referral_code, newcomer.id)
    assert _total(other) == 0
    assert _total(newcomer) == 500


def test_agent_listed_bonus_once(referrer, newcomer):
    referral_service.register_referral(referrer.referral_code, newcomer.id)

    assert referral_service.on_agent_listed(newcomer.id, agent_id=1) is True
    assert referral_service.on_agent_listed(newcomer.id, agent_id=1) is False

    assert _total(referrer) == 1000 + 3000
    # Welcome bonus plus the lister's own points for agent 1, once
    assert _total(newcomer) == 500 + 500


def test_each_listing_earns_lister_points(referrer, newcomer):
    referral_service.register_referral(referrer.referral_code, newcomer.id)
    referral_service.on_agent_listed(newcomer.id, agent_id=1)
    referral_service.on_agent_listed(newcomer.id, agent_id=2)

    assert _total(newcomer) == 500 + 500 + 500
    assert _total(referrer) == 1000 + 3000


def test_agent_listed_without_referral_is_noop(newcomer):
    assert referral_service.on_agent_listed(newcomer.id) is False
    assert _total(newcomer) == 0


def test_first_purchase_bonus_once_per_pair(referrer, newcomer):
    referral_service.register_referral(referrer.referral_code, newcomer.id)

    assert referral_service.on_first_purchase_completed(newcomer.id) is True
    assert referral_service.on_first_purchase_completed(newcomer.id) is False
    assert _total(referrer) == 1000 + 5000


def test_referral_stats(referrer, newcomer, make_user):
    second = make_user('second')
    referral_service.register_referral(referrer.referral_code, newcomer.id)
    referral_service.register_referral(referrer.referral_code, second.id)
    referral_service.on_agent_listed(newcomer.id)
    referral_service.on_first_purchase_completed(second.id)

    stats = referral_service.get_referral_stats(referrer.id)

    assert stats['referral_code'] == referrer.referral_code
    assert stats['total_referrals'] == 2
    assert stats['agents_listed'] == 1
    assert stats['purchases'] == 1
    assert stats['points_earned'] == 2 * 1000 + 3000 + 5000
