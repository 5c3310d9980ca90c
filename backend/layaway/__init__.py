# backend/layaway/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def _engine_options(app: Flask) -> dict:
    """Bound lock waits so a busy order or stock row fails fast with ContentionError."""
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    timeout = int(app.config.get("LOCK_TIMEOUT_SECONDS", 5))
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = dict(options.get("connect_args") or {})

    if uri.startswith("sqlite"):
        connect_args.setdefault("timeout", timeout)
        connect_args.setdefault("check_same_thread", False)
    elif uri.startswith("postgresql"):
        connect_args.setdefault("options", f"-c lock_timeout={timeout * 1000}")

    options["connect_args"] = connect_args
    return options


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions read the config
    if config_overrides:
        app.config.update(config_overrides)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.deposits import deposits_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.cash_movements import cash_movements_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(deposits_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(cash_movements_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
