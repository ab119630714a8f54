from datetime import datetime
import random
import string
from . import db


def generate_referral_code():
    """Generate a shareable referral code: AGT-XXXXXXXX"""
    random_part = ''.join(random.choices(string.ascii_uppercase + string.digits, k=8))
    return f'AGT-{random_part}'


class Role(db.Model):
    __tablename__ = 'roles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    permissions = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    users = db.relationship('User', backref='role', lazy=True)

    # Role Constants
    ADMIN = 'Admin'
    SELLER = 'Seller'
    USER = 'User'

    def __repr__(self):
        return f'<Role {self.name}>'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    referral_code = db.Column(db.String(20), unique=True, nullable=False, index=True, default=generate_referral_code)

    # Cache of SUM(points_history.points); only written by the points service
    total_points = db.Column(db.BigInteger, default=0, nullable=False)
    login_streak = db.Column(db.Integer, default=0, nullable=False)
    last_login_date = db.Column(db.Date, nullable=True)

    wallets = db.relationship('Wallet', backref='user', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.username}>'

    def check_permission(self, permission):
        """Check if user has a specific permission"""
        if not self.role:
            return False
        return self.role.permissions.get(permission, False) if isinstance(self.role.permissions, dict) else False
