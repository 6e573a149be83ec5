from utils.clock import utcnow
from models.db import db


class AccountFields:
    """Columns shared by active and deleted user rows."""

    password = db.Column(db.String(255), nullable=True)  # None for federated/dummy accounts
    salt = db.Column(db.String(255), nullable=True)

    totp_secret = db.Column(db.String(255), nullable=True)  # encrypted at rest
    is_totp_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    failed_totp_attempts = db.Column(db.Integer, default=0, nullable=False)

    is_email_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    avatar_url = db.Column(db.String(255), nullable=True)

    mc_username = db.Column(db.String(255), nullable=True)
    gh_username = db.Column(db.String(255), nullable=True)
    irc_nick = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class User(AccountFields, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    google_id = db.Column(db.String(255), unique=True, nullable=True)


# usernames are unique regardless of case
db.Index("ix_users_username_lower", db.func.lower(User.username), unique=True)


class DeletedUser(AccountFields, db.Model):
    __tablename__ = "deleted_users"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)  # id the account had while active

    username = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    google_id = db.Column(db.String(255), nullable=True)

    deleted_at = db.Column(db.DateTime, nullable=False)
