from datetime import datetime
from . import db


class UserReferral(db.Model):
    __tablename__ = 'user_referrals'

    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    referred_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    referral_code = db.Column(db.String(20), nullable=False)

    # Each stage flips false -> true exactly once
    signup_bonus = db.Column(db.Boolean, default=False, nullable=False)
    agent_list_bonus = db.Column(db.Boolean, default=False, nullable=False)
    purchase_bonus = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    referrer = db.relationship('User', foreign_keys=[referrer_id], backref=db.backref('referrals', lazy='dynamic'))
    referred = db.relationship('User', foreign_keys=[referred_id])

    def __repr__(self):
        return f'<UserReferral {self.referrer_id}->{self.referred_id}>'
