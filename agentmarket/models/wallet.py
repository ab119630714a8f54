from datetime import datetime
from . import db


class Wallet(db.Model):
    __tablename__ = 'wallets'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'currency', name='uq_wallet_user_currency'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)  # NULL for the platform wallet
    is_platform = db.Column(db.Boolean, default=False, nullable=False)
    currency = db.Column(db.String(3), default='NGN', nullable=False)
    # Cache of the ledger sum, in minor units; written only by services.ledger
    balance = db.Column(db.BigInteger, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    transactions = db.relationship('WalletTransaction', backref='wallet', lazy='dynamic', order_by='desc(WalletTransaction.id)')
    withdrawal_requests = db.relationship('WithdrawalRequest', backref='wallet', lazy='dynamic', order_by='desc(WithdrawalRequest.id)')

    def __repr__(self):
        owner = 'platform' if self.is_platform else f'User:{self.user_id}'
        return f'<Wallet {owner} Balance:{self.balance}>'


class WalletTransaction(db.Model):
    __tablename__ = 'wallet_transactions'

    DEPOSIT = 'deposit'
    WITHDRAWAL = 'withdrawal'
    PURCHASE = 'purchase'
    SALE = 'sale'
    COMMISSION = 'commission'
    REFUND = 'refund'

    CREDIT_TYPES = (DEPOSIT, SALE, COMMISSION, REFUND)
    DEBIT_TYPES = (WITHDRAWAL, PURCHASE)
    TYPES = CREDIT_TYPES + DEBIT_TYPES

    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    STATUSES = (PENDING, SUCCESS, FAILED, CANCELLED)
    TERMINAL_STATUSES = (SUCCESS, FAILED, CANCELLED)

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey('wallets.id'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.BigInteger, nullable=False)  # unsigned, minor units; sign comes from type
    status = db.Column(db.String(20), default=PENDING, nullable=False, index=True)
    reference = db.Column(db.String(255), unique=True, nullable=True)  # gateway reference or internal idempotency key
    balance_after = db.Column(db.BigInteger, nullable=True)  # ledger balance observed when the row was recorded
    description = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    settled_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f'<WalletTransaction {self.type} {self.amount} {self.status}>'

    @property
    def is_credit(self):
        return self.type in self.CREDIT_TYPES

    @property
    def signed_amount(self):
        return self.amount if self.is_credit else -self.amount


class WithdrawalRequest(db.Model):
    __tablename__ = 'withdrawal_requests'

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    PROCESSED = 'processed'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey('wallets.id'), nullable=False)
    amount = db.Column(db.BigInteger, nullable=False)
    bank_details = db.Column(db.JSON, nullable=False)  # bank_name, account_number, account_name
    status = db.Column(db.String(20), default=PENDING, nullable=False)
    admin_notes = db.Column(db.Text, nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('wallet_transactions.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    processed_at = db.Column(db.DateTime, nullable=True)

    transaction = db.relationship('WalletTransaction', lazy=True)

    def __repr__(self):
        return f'<WithdrawalRequest {self.id} {self.status}>'


class AdminCommission(db.Model):
    __tablename__ = 'admin_commissions'

    PENDING = 'pending'
    COLLECTED = 'collected'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False, unique=True)
    amount = db.Column(db.BigInteger, nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    status = db.Column(db.String(20), default=PENDING, nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey('wallet_transactions.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    collected_at = db.Column(db.DateTime, nullable=True)

    order = db.relationship('Order', backref=db.backref('commission', uselist=False), lazy=True)

    def __repr__(self):
        return f'<AdminCommission Order:{self.order_id} {self.amount}>'
