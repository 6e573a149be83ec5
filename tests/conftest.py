from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db
from security.accounts import AccountManager
from security.forms import SignUpForm
from security.settings import AuthSettings
from utils.clock import unix_time

# 2026-01-01 12:00:00 UTC, the first second of a 30 s TOTP step
START = datetime(2026, 1, 1, 12, 0, 0)

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "CRYPTO_SECRET": "test-crypto-secret",
    "PASSWORD_HASH_ITERATIONS": 1000,
    "LOG_LEVEL": "WARNING",
}


class FakeClock:
    """Controllable replacement for utils.clock.utcnow."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

    def unix(self) -> int:
        return unix_time(self.now)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(clock):
    app = create_app(TEST_CONFIG)
    app.extensions["accounts"] = AccountManager(AuthSettings.from_config(app.config), clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def accounts(app):
    return app.extensions["accounts"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def alice(accounts):
    return accounts.create_user(
        SignUpForm(username="alice", email="a@x.com", password="Sup3rSecret!"),
        avatar_url="/avatars/alice.png",
    )


def current_code(accounts, user, clock) -> str:
    """The code an authenticator app would show for ``user`` right now."""
    secret = accounts.cipher.decrypt(user.totp_secret)
    return accounts.totp.generate_code(secret, clock.unix())


def enroll_totp(accounts, user):
    """Generates and confirms a TOTP secret for ``user``."""
    user = accounts.generate_totp_secret(user)
    return accounts.set_totp_confirmed(user, True)
