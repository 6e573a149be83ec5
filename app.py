import logging
import sys

from flask import Flask
from config import Config
from routes import health_bp, auth_bp

from models import db
from flask_migrate import Migrate
from security.accounts import AccountManager
from security.settings import AuthSettings
from security.storage import engine_options
from utils.auth_context import load_current_user


def configure_logging(app):
    level = app.config.get("LOG_LEVEL", "INFO")
    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicate handlers when the factory runs more than once (tests, reloader)
    if not any(getattr(h, "_authgate", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s", datefmt="%H:%M:%S"
        ))
        handler._authgate = True
        root.addHandler(handler)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Bound every database call by the storage timeout
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORAGE_TIMEOUT_SECONDS"]),
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    app.extensions["accounts"] = AccountManager(AuthSettings.from_config(app.config))

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from utils.audit import log_event
from utils.auth_context import get_accounts

def register_cli(app):
    @app.cli.command("delete-user")
    @click.argument("username")
    def delete_user(username):
        """Move a user to deleted_users and drop their sessions and tokens."""
        accounts = get_accounts()
        user = accounts.with_name(username)
        if not user:
            click.echo("User not found")
            return

        deleted = accounts.delete_user(user)
        click.echo(f"{deleted.username} deleted at {deleted.deleted_at.isoformat()}")

    @app.cli.command("reset-totp-attempts")
    @click.argument("username")
    def reset_totp_attempts(username):
        """Clear failed second-factor attempts so a locked-out user can retry."""
        accounts = get_accounts()
        user = accounts.with_name(username)
        if not user:
            click.echo("User not found")
            return

        previous = user.failed_totp_attempts
        user = accounts.reset_failed_totp_attempts(user)
        log_event("TOTP_UNLOCK", user_id=user.id, entity="user", entity_id=user.id,
                  metadata={"previous_attempts": previous}, timestamp=accounts.clock())
        click.echo(f"{user.username}: {previous} failed attempts cleared")

    @app.cli.command("create-password-reset")
    @click.argument("email")
    def create_password_reset(email):
        """Issue a password reset token for EMAIL (support bootstrap)."""
        accounts = get_accounts()
        user = accounts.with_email(email)
        if not user:
            click.echo("User not found")
            return

        reset = accounts.create_password_reset(user)
        click.echo(reset.token)

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
