from __future__ import annotations

import os
from typing import Any, Mapping, Optional

import click
from flask import Flask

from .extensions import db, migrate
from .services.storage import delete_expired_games
from .views.games import games_bp
from .views.public import public_bp


def create_app(test_config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)

    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///secretsanta.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Receivers are encrypted with this key; derived from SECRET_KEY when unset
    app.config["ASSIGNMENT_ENC_KEY"] = os.environ.get("ASSIGNMENT_ENC_KEY", "").strip()
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO").upper()
    app.config["SANTA_REASSIGN_MAX_ATTEMPTS"] = int(os.environ.get("SANTA_REASSIGN_MAX_ATTEMPTS", "100"))
    app.config["SANTA_EXPIRED_GAME_GRACE_DAYS"] = int(os.environ.get("SANTA_EXPIRED_GAME_GRACE_DAYS", "3"))
    app.config["SANTA_NOTIFIER"] = None

    if test_config:
        app.config.update(test_config)

    # Module loggers live under "secretsanta.*" and propagate to app.logger.
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)

    # Blueprints
    app.register_blueprint(public_bp)
    app.register_blueprint(games_bp)

    @app.cli.command("init-db")
    def init_db():
        """Create all tables on a fresh database."""
        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("cleanup-expired-games")
    @click.option("--grace-days", type=int, default=None, help="Days after the event date to keep a game.")
    def cleanup_expired_games(grace_days):
        """Delete games whose event date is long past."""
        if grace_days is None:
            grace_days = app.config["SANTA_EXPIRED_GAME_GRACE_DAYS"]
        deleted = delete_expired_games(grace_days=grace_days)
        click.echo(f"Deleted {deleted} expired game(s).")

    return app
