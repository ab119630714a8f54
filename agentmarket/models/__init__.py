from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .user import User, Role
from .agent import AgentListing
from .wallet import Wallet, WalletTransaction, WithdrawalRequest, AdminCommission
from .points import PointsHistory, PointsExchange, DailyLogin
from .referral import UserReferral
from .order import Order
from .payment import PaymentGateway
from .api_key import APIKey
from .setting import Setting

__all__ = [
    'db',
    'User', 'Role',
    'AgentListing',
    'Wallet', 'WalletTransaction', 'WithdrawalRequest', 'AdminCommission',
    'PointsHistory', 'PointsExchange', 'DailyLogin',
    'UserReferral',
    'Order',
    'PaymentGateway',
    'APIKey',
    'Setting',
]
