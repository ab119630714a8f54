from datetime import datetime
from . import db
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app
import base64
import logging

logger = logging.getLogger(__name__)


def _fernet():
    secret_key = current_app.config.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    # Use first 32 bytes of secret key, pad if needed
    key_bytes = (secret_key[:32] + '0' * 32)[:32].encode()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


class PaymentGateway(db.Model):
    __tablename__ = 'payment_gateways'

    PAYSTACK = 'paystack'
    STRIPE = 'stripe'

    id = db.Column(db.Integer, primary_key=True)
    gateway_name = db.Column(db.String(50), unique=True, nullable=False)  # paystack, stripe
    enabled = db.Column(db.Boolean, default=False, nullable=False)
    config = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<PaymentGateway {self.gateway_name}>'

    def set_encrypted_key(self, key_name, value):
        """Encrypt and store sensitive keys"""
        if not value:
            return
        encrypted = _fernet().encrypt(value.encode())
        config = dict(self.config or {})
        config[f'{key_name}_encrypted'] = encrypted.decode()
        # Reassign so the JSON column is flagged dirty
        self.config = config

    def get_encrypted_key(self, key_name):
        """Decrypt and retrieve sensitive keys, falling back to a plain config value"""
        if not self.config:
            return None

        encrypted_value = self.config.get(f'{key_name}_encrypted')
        if encrypted_value:
            try:
                return _fernet().decrypt(encrypted_value.encode()).decode()
            except InvalidToken:
                logger.warning("Could not decrypt %s for gateway %s (SECRET_KEY rotated?)", key_name, self.gateway_name)

        direct_key = self.config.get(key_name)
        if isinstance(direct_key, str) and direct_key:
            return direct_key
        return None
