# app.py
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from config import get_config
from utilities.database import db, User, ensure_admin_campus
from utilities.errors import InventoryError, is_unique_violation
from utilities.extensions import migrate, login_manager, csrf, limiter
from utilities.logger import configure_app_logging
from middleware.campus_middleware import campus_middleware
from auth import auth_bp
from management import management_bp
from inventory import inventory_bp
from loans import loans_bp
from support import support_bp
from main import main_bp
from exports import exports_bp
from maintenance import maintenance_bp


def create_app(config_overrides=None):
    app = Flask(__name__)

    # 1) Load config for the selected environment
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    # 2) Logging before anything else can fail
    configure_app_logging(app)

    # 3) Init DB, migrations and the request-level extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)
    login_manager.init_app(app)
    campus_middleware.init_app(app)

    # 4) Optional dev-only schema bootstrap
    if app.config.get("AUTO_CREATE_SCHEMA"):
        with app.app_context():
            db.create_all()
            ensure_admin_campus()

    # 5) Blueprints
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(management_bp, url_prefix="/management")
    app.register_blueprint(inventory_bp, url_prefix="/inventory")
    app.register_blueprint(loans_bp, url_prefix="/loans")
    app.register_blueprint(support_bp, url_prefix="/requests")
    app.register_blueprint(main_bp)  # '/' dashboard, /health, /audit-log
    app.register_blueprint(exports_bp, url_prefix="/exports")
    app.register_blueprint(maintenance_bp, url_prefix="/api")

    # 6) Login manager
    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
        # Disabled accounts lose their session on the next request
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Login required", "code": "unauthorized"}), 401

    # 7) Error handlers
    @app.errorhandler(InventoryError)
    def handle_inventory_error(error: InventoryError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error: IntegrityError):
        db.session.rollback()
        code = "duplicate_name" if is_unique_violation(error) else "conflict"
        app.logger.warning("Integrity error: %s", error.orig)
        return jsonify({"success": False, "error": "The change conflicts with existing data", "code": code}), 409

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error: CSRFError):
        return jsonify({"success": False, "error": error.description, "code": "csrf"}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"success": False, "error": error.description, "code": error.name.lower().replace(" ", "_")}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error: %s", error)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app


# For `flask --app app run`, having create_app is enough.
