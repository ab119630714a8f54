from datetime import datetime
from . import db


class AgentListing(db.Model):
    """Pricing view of a marketplace agent.

    Listing CRUD lives in the catalog application; this core only reads the
    seller and the per-tier price/delivery columns.
    """
    __tablename__ = 'agents'

    TIERS = ('basic', 'standard', 'premium')

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)

    # Prices in minor units (kobo)
    basic_price = db.Column(db.BigInteger, nullable=False)
    standard_price = db.Column(db.BigInteger, nullable=True)
    premium_price = db.Column(db.BigInteger, nullable=True)
    basic_delivery_days = db.Column(db.Integer, nullable=False)
    standard_delivery_days = db.Column(db.Integer, nullable=True)
    premium_delivery_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    seller = db.relationship('User', backref='agents', lazy=True)

    def __repr__(self):
        return f'<AgentListing {self.title}>'

    def tier_price(self, tier):
        return getattr(self, f'{tier}_price', None) if tier in self.TIERS else None

    def tier_delivery_days(self, tier):
        return getattr(self, f'{tier}_delivery_days', None) if tier in self.TIERS else None
