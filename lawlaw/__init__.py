from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from lawlaw.extensions import db, migrate, login_manager
from lawlaw.config import Config
from lawlaw.middleware import setup_auth_middleware
import logging
import os

# Configure logging
_log_handlers = [logging.StreamHandler()]
if os.environ.get('LOG_FILE', 'app.log'):
    _log_handlers.append(
        logging.FileHandler(os.environ.get('LOG_FILE', 'app.log')))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=_log_handlers
)

logger = logging.getLogger(__name__)

login_manager.login_message = 'Please log in to access this page.'


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from lawlaw.services.relay_service import init_relay
    init_relay(app)

    from lawlaw.services.mail_service import init_mail
    init_mail(app)

    # Setup user loader
    from lawlaw.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # Register blueprints
    from lawlaw.blueprints import (
        addresses,
        admin,
        auth,
        cart,
        chat,
        notifications,
        orders,
        products,
        recipes,
        reviews,
        seller,
        seller_applications,
    )

    # Blueprints use absolute /api/... routes.
    app.register_blueprint(auth.bp)
    app.register_blueprint(products.bp)
    app.register_blueprint(cart.bp)
    app.register_blueprint(orders.bp)
    app.register_blueprint(seller.bp)
    app.register_blueprint(admin.bp)
    app.register_blueprint(chat.bp)
    app.register_blueprint(recipes.bp)
    app.register_blueprint(notifications.bp)
    app.register_blueprint(reviews.bp)
    app.register_blueprint(addresses.bp)
    app.register_blueprint(seller_applications.bp)

    # Setup authentication middleware (site-wide login protection)
    setup_auth_middleware(app)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': e.description}), e.code
        return e

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Not logged in', 'login_required': True}), 401

    from lawlaw.cli import register_commands
    register_commands(app)

    # Note: Database tables are managed via Flask-Migrate
    # Use 'flask db upgrade' to create/update tables

    logger.info("Flask application initialized")
    return app
