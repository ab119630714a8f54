from datetime import datetime
from . import db


class PointsHistory(db.Model):
    __tablename__ = 'points_history'

    EARNED = 'earned'
    SPENT = 'spent'
    ADMIN_GRANTED = 'admin_granted'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    points = db.Column(db.BigInteger, nullable=False)  # signed
    type = db.Column(db.String(20), nullable=False)
    source = db.Column(db.String(50), nullable=False)  # daily_login, referral_signup, order_purchase, ...
    description = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.String(100), nullable=True)
    # "<user>:<source>:<reference>" for referenced awards; backstop for retried events
    dedupe_key = db.Column(db.String(200), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('points_history', lazy='dynamic'), lazy=True)

    def __repr__(self):
        return f'<PointsHistory {self.source} {self.points}>'


class PointsExchange(db.Model):
    __tablename__ = 'points_exchanges'

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    points_spent = db.Column(db.BigInteger, nullable=False)
    currency_amount = db.Column(db.BigInteger, nullable=False)  # minor units
    exchange_rate = db.Column(db.Numeric(12, 4), nullable=False)  # points per currency unit at request time
    status = db.Column(db.String(20), default=PENDING, nullable=False)
    bank_details = db.Column(db.JSON, nullable=False)
    admin_notes = db.Column(db.Text, nullable=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('wallet_transactions.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    processed_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f'<PointsExchange {self.id} {self.points_spent} {self.status}>'


class DailyLogin(db.Model):
    __tablename__ = 'daily_logins'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'login_date', name='uq_daily_login_user_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    login_date = db.Column(db.Date, nullable=False)
    points_earned = db.Column(db.Integer, nullable=False)
    streak = db.Column(db.Integer, default=1, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<DailyLogin User:{self.user_id} {self.login_date}>'
