"""
invoiceflow/__init__.py

Flask application factory for the supplier invoice workflow service.

Requirements:
- JSON API only (no templates); every mutating request goes through invoiceflow.workflow.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev and tests.
- Clients are never trusted; access control is enforced server-side.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify

from .errors import WorkflowError
from .extensions import csrf, db, login_manager, migrate, notifier
from .models import User

logger = logging.getLogger(__name__)


def _configure_logging(app: Flask) -> None:
    """Level from LOG_LEVEL; one stream handler on the package logger."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    package_logger = logging.getLogger("invoiceflow")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        package_logger.addHandler(handler)


def create_app(config_object: object | str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    notifier.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401

    # ----------------------------------------------------------------------
    # Errors: typed workflow outcomes become JSON responses
    # ----------------------------------------------------------------------
    @app.errorhandler(WorkflowError)
    def handle_workflow_error(exc: WorkflowError):
        if exc.http_status >= 500:
            logger.error("Workflow failure: %s", exc.message)
        else:
            logger.info("Rejected request: %s (%s)", exc.message, exc.code)
        return jsonify(exc.to_dict()), exc.http_status

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.invoices import invoices_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(invoices_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-superadmin")
    @click.option("--username", prompt=True)
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--email", default=None)
    def create_superadmin_command(username: str, password: str, email: str | None):
        """Create the first super admin (refuses when any user exists)."""
        from .seed import create_superadmin

        user = create_superadmin(username, password, email=email)
        if user is None:
            raise click.ClickException("Users already exist; super admin not created.")
        click.echo(f"Super admin '{user.username}' created.")

    @app.cli.command("seed-demo")
    def seed_demo_command():
        """Seed demo suppliers (one per regime) and users (one per role)."""
        from .seed import seed_demo_data

        seed_demo_data()
        click.echo("Demo suppliers and users seeded.")

    return app
