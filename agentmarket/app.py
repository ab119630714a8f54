import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate, upgrade
from flask_session import Session
from sqlalchemy.exc import InvalidRequestError, OperationalError, ProgrammingError, SQLAlchemyError

from .config import Config
from .models import db, Role
from .services import ledger

migrate = Migrate()


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(level)


def create_app(config_class=Config):
    """Application factory"""
    base_dir = os.path.dirname(os.path.abspath(__file__))

    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)
    configure_logging(app)

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(base_dir, 'migrations'))

    if app.config.get('RUN_MIGRATIONS_ON_STARTUP'):
        with app.app_context():
            try:
                upgrade()
                app.logger.info("Database migrations applied successfully.")
            except SQLAlchemyError as e:
                app.logger.error(f"Migration warning: {e}")

    # Configure session
    app.config['SESSION_SQLALCHEMY'] = db
    app.config['SESSION_SQLALCHEMY_TABLE'] = 'sessions'
    app.config['SESSION_KEY_PREFIX'] = 'agentmarket:session:'

    # Handle the case where the Flask-Session model is already defined
    try:
        Session(app)
    except InvalidRequestError:
        # Happens when the app is created twice in one process (reloader, tests)
        app.logger.debug("Flask-Session model already registered")

    from .api import api_v1
    app.register_blueprint(api_v1)

    from .cli import ledger_cli, api_keys_cli, gateways_cli
    app.cli.add_command(ledger_cli)
    app.cli.add_command(api_keys_cli)
    app.cli.add_command(gateways_cli)

    @app.route('/health')
    def health():
        return {'status': 'ok', 'version': app.config['VERSION']}

    with app.app_context():
        create_initial_data()

    return app


def create_initial_data():
    """Create initial roles and the platform wallet"""
    try:
        if Role.query.count() == 0:
            admin = Role(name=Role.ADMIN, permissions={'all': True})
            seller = Role(
                name=Role.SELLER,
                permissions={
                    'all': False,
                    'agents': True,
                    'orders': True,
                    'wallet': True,
                }
            )
            user = Role(
                name=Role.USER,
                permissions={
                    'all': False,
                    'agents': False,
                    'orders': True,
                    'wallet': True,
                }
            )
            db.session.add_all([admin, seller, user])
            db.session.commit()

        with ledger.atomic():
            ledger.get_platform_wallet()
    except (ProgrammingError, OperationalError):
        db.session.rollback()
        logging.getLogger(__name__).warning("Database tables not created yet. Skipping initial data creation.")
