from datetime import datetime
from decimal import Decimal, InvalidOperation
from . import db


class Setting(db.Model):
    """Platform values adjustable at runtime without a deploy"""
    __tablename__ = 'settings'

    POINTS_EXCHANGE_RATE = 'points_exchange_rate'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=True)
    value_type = db.Column(db.String(20), default='string', nullable=False)  # string, decimal
    category = db.Column(db.String(50), nullable=False, index=True)  # points, wallet, orders
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Setting {self.key}>'

    @staticmethod
    def get(key, default=None):
        """Get setting value by key"""
        setting = Setting.query.filter_by(key=key).first()
        if not setting or not setting.value:
            return default

        if setting.value_type == 'decimal':
            try:
                return Decimal(setting.value)
            except InvalidOperation:
                return default
        return setting.value

    @staticmethod
    def set(key, value, value_type='string', category='general', description=None):
        """Set setting value by key. The caller owns the commit."""
        value_str = None if value is None else str(value)

        setting = Setting.query.filter_by(key=key).first()
        if setting:
            setting.value = value_str
            setting.value_type = value_type
            setting.category = category
            if description:
                setting.description = description
        else:
            setting = Setting(
                key=key,
                value=value_str,
                value_type=value_type,
                category=category,
                description=description
            )
            db.session.add(setting)
        return setting
