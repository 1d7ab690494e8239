import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase

from utils.logging_config import setup_logging
from utils.config_validator import validate_payroll_settings, ConfigValidationError
from timezone_utils import utc_now

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)


def _database_settings(database_url):
    """Engine URI and options for the configured database"""
    # Configure for PostgreSQL production database
    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, user={parsed.username}")

        return database_url, {
            "pool_size": 10,
            "pool_recycle": 280,  # Slightly less than 5 minutes to prevent stale connections
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "driver_payroll",
            }
        }

    # Fallback to SQLite for local development
    return database_url, {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def create_app(config_overrides=None):
    """
    Build the Flask application that owns the database engine.

    The payroll core never reaches for a global connection; callers open an
    app context and hand `db.session` to `services.build_services`.
    """
    setup_logging()

    app = Flask(__name__)

    database_url = os.environ.get("DATABASE_URL") or "sqlite:///driver_payroll.db"
    uri, engine_options = _database_settings(database_url)
    app.config["SQLALCHEMY_DATABASE_URI"] = uri
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # Payroll business settings
    app.config["BUSINESS_TIMEZONE"] = os.environ.get("BUSINESS_TIMEZONE", "Asia/Kolkata")
    app.config["OVERTIME_WINDOW_START"] = float(os.environ.get("OVERTIME_WINDOW_START", 8))
    app.config["OVERTIME_WINDOW_END"] = float(os.environ.get("OVERTIME_WINDOW_END", 20))
    app.config["SEED_DEFAULT_CONFIG"] = os.environ.get("SEED_DEFAULT_CONFIG", "false").lower() == "true"

    if config_overrides:
        app.config.update(config_overrides)
        if "SQLALCHEMY_DATABASE_URI" in config_overrides and "SQLALCHEMY_ENGINE_OPTIONS" not in config_overrides:
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {}

    is_valid, issues = validate_payroll_settings(app.config)
    if not is_valid:
        raise ConfigValidationError(f"Invalid payroll settings: {'; '.join(issues)}")

    db.init_app(app)

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

        if app.config["SEED_DEFAULT_CONFIG"]:
            from services import build_services
            build_services(db.session, app.config).config_service.ensure_default_config()

    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': utc_now().isoformat()}, 200

    logger.info(f"Application created (database: {uri.split('://')[0]}, timezone: {app.config['BUSINESS_TIMEZONE']})")
    return app
