import atexit
import os
import logging

import click
from flask import Flask, jsonify, request
from werkzeug.security import generate_password_hash

from taskboard.config import config_by_name
from taskboard.errors import AuthConfigurationError, TaskboardError
from taskboard.extensions import db, migrate, login_manager, csrf, limiter

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    config_error = None
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except AuthConfigurationError as e:
            app.logger.warning(f"Config validation: {e}")
            config_error = e
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from taskboard import models  # noqa: F401

    # --- Service clients: built once here, reached via app.extensions ---
    init_services(app)

    # --- Register blueprints ---
    from taskboard.blueprints.auth import auth_bp
    from taskboard.blueprints.boards import boards_bp
    from taskboard.blueprints.kanban import kanban_bp
    from taskboard.blueprints.ai import ai_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(boards_bp)
    app.register_blueprint(kanban_bp)
    app.register_blueprint(ai_bp)

    # --- Misconfigured auth: refuse content instead of half-working ---
    if config_error is not None:
        @app.before_request
        def auth_configuration_guard():
            if request.path.startswith(("/api/", "/auth/")):
                raise config_error

    # --- Error handlers ---
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # API responses are per-user; never let shared caches keep them
        response.headers.setdefault("Cache-Control", "private, no-cache")
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def init_services(app):
    """Construct the ordering store and AI client for this app.

    Both are plain objects held in app.extensions; there is no lazily
    created module-level client. The AI client's HTTP session is closed
    when the process exits.
    """
    from taskboard.services.completion_service import CompletionClient
    from taskboard.services.ordering_store import OrderingStore

    app.extensions["ordering_store"] = OrderingStore(db)

    completion_client = CompletionClient.from_config(app.config)
    app.extensions["completion_client"] = completion_client
    atexit.register(completion_client.close)

    if not completion_client.configured:
        app.logger.info("AI_API_KEY not set; /api/ai will answer 500.")


def register_error_handlers(app):
    """Render typed failures (and HTTP errors) as JSON."""

    @app.errorhandler(TaskboardError)
    def handle_taskboard_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.code} on {request.method} {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests", "code": "rate_limited"}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error", "code": "error"}), 500


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--email", default="demo@taskboard.local", help="Demo user email")
    @click.option("--password", default="demo12345", help="Demo user password")
    def seed_demo(email, password):
        """Create a demo user with a "Sprint 1" board.

        Usage:
            flask seed-demo
            flask seed-demo --email me@example.com --password s3cretpass
        """
        from taskboard.models.user import User
        from taskboard.services import board_service

        # --- 1. Demo user ---
        user = User.query.filter_by(email=email).first()
        if user:
            click.echo(f"Demo user already exists: {email}")
        else:
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                full_name="Demo User",
            )
            db.session.add(user)
            db.session.flush()
            click.echo(f"Created demo user: {email}")

        # --- 2. Board, columns, first card ---
        board = board_service.create_board(
            user.id, "Sprint 1", description="Demo board"
        )
        columns = [
            board_service.create_column(board.id, name)
            for name in ("Todo", "Doing", "Done")
        ]
        card = board_service.create_card(board.id, columns[0].id, "Fix bug")

        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  User:    {email} / {password}")
        click.echo(f"  Board:   {board.name} (id: {board.id})")
        for column in columns:
            click.echo(f"  Column:  {column.name} @ {column.position}")
        click.echo(f"  Card:    {card.title} @ {card.position}")
        click.echo("=" * 60)
