from flask import Blueprint
from flask_cors import CORS

api_v1 = Blueprint('api_v1', __name__, url_prefix='/api/v1')

CORS(api_v1, resources={
    r"/*": {
        "origins": "*",
        "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "X-API-Key", "X-API-Secret"]
    }
})

from . import wallet, points, referral, orders, payment, catalog, admin

# Register Blueprints
api_v1.register_blueprint(wallet.wallet_bp, url_prefix='/wallet')
api_v1.register_blueprint(points.points_bp, url_prefix='/points')
api_v1.register_blueprint(referral.referral_bp, url_prefix='/referral')
api_v1.register_blueprint(orders.orders_bp, url_prefix='/orders')
api_v1.register_blueprint(payment.payment_bp, url_prefix='/payment')
api_v1.register_blueprint(catalog.catalog_bp, url_prefix='/catalog')
api_v1.register_blueprint(admin.admin_bp, url_prefix='/admin')
