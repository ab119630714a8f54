from datetime import datetime
from . import db


class Order(db.Model):
    __tablename__ = 'orders'

    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    DISPUTED = 'disputed'

    TERMINAL_STATUSES = (COMPLETED, CANCELLED)

    # Allowed status moves; anything else raises InvalidTransition
    TRANSITIONS = {
        PENDING: (IN_PROGRESS, CANCELLED, DISPUTED),
        IN_PROGRESS: (COMPLETED, DISPUTED),
        DISPUTED: (COMPLETED, CANCELLED),  # cancelled only if no payment was applied
        COMPLETED: (),
        CANCELLED: (),
    }

    WALLET = 'wallet'
    GATEWAY = 'gateway'

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey('agents.id'), nullable=False)
    package_type = db.Column(db.String(20), nullable=False)  # basic, standard, premium

    # Minor units
    amount = db.Column(db.BigInteger, nullable=False)
    service_fee = db.Column(db.BigInteger, nullable=False)
    commission_amount = db.Column(db.BigInteger, nullable=False, default=0)
    total_amount = db.Column(db.BigInteger, nullable=False)

    status = db.Column(db.String(20), default=PENDING, nullable=False, index=True)
    payment_method = db.Column(db.String(20), nullable=False)  # wallet, gateway
    payment_provider = db.Column(db.String(20), nullable=True)  # paystack, stripe
    gateway_reference = db.Column(db.String(255), unique=True, nullable=True)
    requirements = db.Column(db.Text, nullable=True)

    delivery_date = db.Column(db.DateTime, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = db.relationship('User', foreign_keys=[buyer_id], lazy=True)
    seller = db.relationship('User', foreign_keys=[seller_id], lazy=True)
    agent = db.relationship('AgentListing', lazy=True)

    def __repr__(self):
        return f'<Order {self.order_number}>'

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())
