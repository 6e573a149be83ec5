"""
Account core: users, sessions, second factor, email confirmation and
password resets.

AccountManager keeps no state of its own. Everything lives in the database
session of the current app context, so one instance can serve concurrent
requests. Counter updates and used-code recording are single statements;
lockout policy is left to the caller (see security.bruteforce).
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import func

from models import db
from models.user import User, DeletedUser
from models.session import Session
from models.email_confirmation import EmailConfirmation
from models.password_reset import PasswordReset
from models.one_time_password import OneTimePassword
from security.crypto import FernetCipher
from security.errors import (
    DuplicateRecord,
    PreconditionFailed,
    TotpAlreadyEnabled,
    TotpNotEnabled,
    check_argument,
    check_not_empty,
    check_persisted,
)
from security.forms import SettingsForm, SignUpForm, normalize_email
from security.password import PasswordHasher
from security.session import SessionCookie
from security.settings import AuthSettings
from security.storage import guarded, storage_guard
from security.tokens import ExpiringTokenStore, new_token
from security.totp import TotpAuth
from utils.audit import log_event
from utils.clock import unix_time, utcnow

logger = logging.getLogger(__name__)

# user fields that sign-up and settings forms check for availability
UNIQUE_FIELDS = ("username", "email", "mc_username", "gh_username", "irc_nick")

# carried over verbatim when an account moves to deleted_users
_ARCHIVED_FIELDS = (
    "username", "email", "google_id", "password", "salt",
    "totp_secret", "is_totp_confirmed", "failed_totp_attempts",
    "is_email_confirmed", "avatar_url", "mc_username", "gh_username",
    "irc_nick", "created_at",
)


class AccountManager:

    def __init__(self, settings: AuthSettings, totp: TotpAuth = None, passwords: PasswordHasher = None,
                 cipher=None, clock: Callable = utcnow):
        self.settings = settings
        self.totp = totp or TotpAuth.from_settings(settings)
        self.passwords = passwords or PasswordHasher.from_settings(settings)
        self.cipher = cipher or FernetCipher(settings.encryption_secret)
        self.clock = clock

        self.sessions = ExpiringTokenStore(Session, "username", clock)
        self.email_confirmations = ExpiringTokenStore(EmailConfirmation, "email", clock)
        self.password_resets = ExpiringTokenStore(PasswordReset, "email", clock)

    # ---------- users ----------

    @guarded
    def create_user(self, form: SignUpForm, avatar_url: Optional[str] = None,
                    verified: bool = False, dummy: bool = False) -> User:
        """
        Creates a user from sign-up data. Dummy and Google accounts get no
        password; Google accounts count as having a confirmed email.
        """
        check_not_empty(form, "form data")
        username = check_not_empty(form.username, "username").strip()
        email = normalize_email(check_not_empty(form.email, "email"))
        check_argument(bool(username), "empty username")
        check_argument(bool(email), "empty email")

        federated = form.google_subject is not None
        pwd = None
        if not (dummy or federated):
            pwd = self.passwords.hash(check_not_empty(form.password, "password"))

        now = self.clock()
        user = User(
            username=username,
            email=email,
            password=pwd.hash if pwd else None,
            salt=pwd.salt if pwd else None,
            google_id=form.google_subject,
            avatar_url=avatar_url,
            mc_username=form.mc_username,
            gh_username=form.gh_username,
            irc_nick=form.irc_nick,
            is_email_confirmed=verified or federated,
            created_at=now,
        )
        db.session.add(user)
        db.session.commit()

        log_event("USER_CREATE", user_id=user.id, entity="user", entity_id=user.id,
                  metadata={"federated": federated, "dummy": dummy}, timestamp=now)
        return user

    @guarded
    def save_settings(self, user: User, form: SettingsForm) -> User:
        check_persisted(user, "user")
        check_not_empty(form, "form data")
        self._update_user(user, {
            User.mc_username: form.mc_username,
            User.gh_username: form.gh_username,
            User.irc_nick: form.irc_nick,
        })
        return self.get(user.id)

    @guarded
    def set_avatar(self, user: User, url: Optional[str]) -> User:
        check_persisted(user, "user")
        self._update_user(user, {User.avatar_url: url})
        return self.get(user.id)

    @guarded
    def delete_user(self, user: User) -> DeletedUser:
        """
        Moves the user to deleted_users and removes everything keyed to it
        (sessions, confirmations, resets, used codes) in one commit.
        """
        check_persisted(user, "user")
        now = self.clock()
        user_id, username, email = user.id, user.username, user.email

        deleted = DeletedUser(user_id=user_id, deleted_at=now,
                              **{name: getattr(user, name) for name in _ARCHIVED_FIELDS})
        db.session.add(deleted)

        self.sessions.owner_query(username).delete(synchronize_session=False)
        self.email_confirmations.owner_query(email).delete(synchronize_session=False)
        self.password_resets.owner_query(email).delete(synchronize_session=False)
        OneTimePassword.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        User.query.filter_by(id=user_id).delete()
        db.session.commit()

        log_event("USER_DELETE", user_id=user_id, entity="user", entity_id=user_id, timestamp=now)
        return deleted

    @guarded
    def verify(self, username: str, password: str) -> Optional[User]:
        """Returns the user if ``password`` is theirs, otherwise None."""
        check_argument(username is None or isinstance(username, str), "username must be a string")
        check_argument(password is None or isinstance(password, str), "password must be a string")
        check_not_empty(username, "username")
        check_not_empty(password, "password")
        user = self.with_name(username)
        if user is None or user.password is None:
            return None
        if self.passwords.check(password, user.password, user.salt):
            return user
        return None

    @guarded
    def login(self, username: str, password: str) -> Optional[Session]:
        """
        First step of authentication. Users with a confirmed second factor
        get a session that stays unauthenticated until complete_totp().
        """
        user = self.verify(username, password)
        if user is None:
            log_event("LOGIN_FAIL", metadata={"username": username}, timestamp=self.clock())
            return None

        session = self.create_session(user, authenticated=not user.is_totp_confirmed)
        action = "LOGIN_SUCCESS" if session.is_authenticated else "LOGIN_TOTP_PENDING"
        log_event(action, user_id=user.id, entity="session", entity_id=session.id, timestamp=self.clock())
        return session

    @guarded
    def get(self, user_id: int) -> Optional[User]:
        check_argument(user_id is not None, "null id")
        return db.session.get(User, user_id)

    @guarded
    def with_name(self, username: str) -> Optional[User]:
        check_not_empty(username, "username")
        return User.query.filter(func.lower(User.username) == username.strip().lower()).first()

    @guarded
    def with_email(self, email: str) -> Optional[User]:
        check_not_empty(email, "email")
        return User.query.filter_by(email=normalize_email(email)).first()

    @guarded
    def with_google_id(self, google_id: str) -> Optional[User]:
        check_not_empty(google_id, "google id")
        return User.query.filter_by(google_id=google_id).first()

    @guarded
    def is_field_unique(self, field: str, value: str, excluding: Optional[User] = None) -> bool:
        """
        True if no other user has ``value`` in ``field``. Pass the user being
        edited as ``excluding`` so their own value doesn't count.
        """
        check_argument(field in UNIQUE_FIELDS, f"unknown user field: {field!r}")
        check_not_empty(value, field)
        if excluding is not None:
            check_persisted(excluding, "user")

        if field == "username":
            query = User.query.filter(func.lower(User.username) == value.strip().lower())
        elif field == "email":
            query = User.query.filter(User.email == normalize_email(value))
        else:
            query = User.query.filter(getattr(User, field) == value)

        if excluding is not None:
            query = query.filter(User.id != excluding.id)
        return not db.session.query(query.exists()).scalar()

    # ---------- TOTP ----------

    @guarded
    def generate_totp_secret(self, user: User) -> User:
        """
        Stores a fresh, encrypted, unconfirmed secret. Replacing an
        unconfirmed secret is allowed; once confirmed it is not.
        """
        check_persisted(user, "user")
        if user.is_totp_confirmed:
            raise TotpAlreadyEnabled("user already has TOTP enabled")

        secret = self.cipher.encrypt(self.totp.generate_secret())
        updated = (
            User.query
            .filter(User.id == user.id, User.is_totp_confirmed.is_(False))
            .update({User.totp_secret: secret}, synchronize_session=False)
        )
        db.session.commit()
        if not updated:
            # confirmed by a concurrent request since ``user`` was loaded
            raise TotpAlreadyEnabled("user already has TOTP enabled")

        log_event("TOTP_SECRET_GENERATED", user_id=user.id, entity="user", entity_id=user.id,
                  timestamp=self.clock())
        return self.get(user.id)

    @guarded
    def set_totp_confirmed(self, user: User, confirmed: bool = True) -> User:
        check_persisted(user, "user")
        query = User.query.filter(User.id == user.id)
        if confirmed:
            query = query.filter(User.totp_secret.isnot(None), User.totp_secret != "")
        updated = query.update({User.is_totp_confirmed: confirmed}, synchronize_session=False)
        db.session.commit()
        if not updated:
            raise PreconditionFailed("user has no TOTP secret to confirm" if confirmed else "undefined user")

        log_event("TOTP_CONFIRMED" if confirmed else "TOTP_UNCONFIRMED", user_id=user.id,
                  entity="user", entity_id=user.id, timestamp=self.clock())
        return self.get(user.id)

    def totp_uri(self, user: User) -> str:
        check_persisted(user, "user")
        if not user.totp_secret:
            raise TotpNotEnabled("totp disabled for user")
        return self.totp.generate_uri(user.username, self.cipher.decrypt(user.totp_secret))

    @guarded
    def verify_totp(self, user: User, code: str) -> bool:
        """
        Checks ``code`` against the user's secret at the current time. A code
        is accepted at most once per user; a reused code gives the same
        False as a wrong one.
        """
        check_persisted(user, "user")
        if not user.totp_secret:
            raise TotpNotEnabled("totp disabled for user")
        self.totp.check_code_format(code)

        if OneTimePassword.query.filter_by(user_id=user.id, code=code).first() is not None:
            logger.info("rejected reused TOTP code for user id=%s", user.id)
            return False

        now = self.clock()
        secret = self.cipher.decrypt(user.totp_secret)
        if not self.totp.check_code(secret, code, unix_time(now)):
            return False
        return self._consume_code(user.id, code, now)

    def _consume_code(self, user_id: int, code: str, now) -> bool:
        # the (user_id, code) unique constraint decides concurrent accepts
        db.session.add(OneTimePassword(user_id=user_id, code=code, created_at=now))
        try:
            with storage_guard():
                db.session.commit()
        except DuplicateRecord:
            logger.warning("TOTP code for user id=%s consumed concurrently", user_id)
            return False
        return True

    @guarded
    def complete_totp(self, session: Session, code: str) -> bool:
        """Second step of authentication for a pending session."""
        check_persisted(session, "session")
        user = self.with_name(session.username)
        if user is None:
            return False
        if not self.verify_totp(user, code):
            return False
        self.set_session_authenticated(session)
        log_event("TOTP_VERIFIED", user_id=user.id, entity="session", entity_id=session.id,
                  timestamp=self.clock())
        return True

    @guarded
    def add_failed_totp_attempt(self, user: User) -> User:
        check_persisted(user, "user")
        self._update_user(user, {User.failed_totp_attempts: User.failed_totp_attempts + 1})
        return self.get(user.id)

    @guarded
    def reset_failed_totp_attempts(self, user: User) -> User:
        check_persisted(user, "user")
        self._update_user(user, {User.failed_totp_attempts: 0})
        return self.get(user.id)

    # ---------- sessions ----------

    @guarded
    def create_session(self, user: User, authenticated: bool = False) -> Session:
        check_persisted(user, "user")
        now = self.clock()
        session = Session(
            token=new_token(),
            username=user.username,
            created_at=now,
            expiration=now + timedelta(seconds=self.settings.session_max_age),
            is_authenticated=authenticated,
        )
        return self.sessions.insert(session)

    @guarded
    def set_session_authenticated(self, session: Session):
        check_persisted(session, "session")
        Session.query.filter_by(id=session.id).update({Session.is_authenticated: True}, synchronize_session=False)
        db.session.commit()

    def get_session(self, token: str) -> Optional[Session]:
        return self.sessions.lookup(token)

    def delete_session(self, token: str) -> int:
        return self.sessions.delete_by_token(token)

    def create_session_cookie(self, session: Session) -> SessionCookie:
        check_persisted(session, "session")
        return SessionCookie(self.settings.cookie_name, session.token, self.settings.session_max_age)

    def current_user(self, token: str) -> Optional[User]:
        """The user behind an authenticated, unexpired session token."""
        session = self.get_session(token)
        if session is None or not session.is_authenticated:
            return None
        return self.with_name(session.username)

    # ---------- email confirmation ----------

    def create_email_confirmation(self, user: User) -> EmailConfirmation:
        check_persisted(user, "user")
        now = self.clock()
        return self.email_confirmations.insert(EmailConfirmation(
            token=new_token(hex_only=True),
            email=user.email,
            created_at=now,
            expiration=now + timedelta(seconds=self.settings.email_confirmation_max_age),
        ))

    def get_email_confirmation(self, email: str) -> Optional[EmailConfirmation]:
        check_not_empty(email, "email")
        return self.email_confirmations.lookup_by_owner(normalize_email(email))

    @guarded
    def confirm_email(self, token: str) -> Optional[User]:
        """
        Consumes the confirmation for ``token`` and marks its email as
        confirmed. Returns the confirmed user, or None if the token is
        unknown or expired.
        """
        confirmation = self.email_confirmations.lookup(token)
        if confirmation is None:
            return None

        email = confirmation.email
        EmailConfirmation.query.filter_by(token=token).delete(synchronize_session=False)
        User.query.filter_by(email=email).update({User.is_email_confirmed: True}, synchronize_session=False)
        db.session.commit()

        user = self.with_email(email)
        log_event("EMAIL_CONFIRMED", user_id=user.id if user else None, timestamp=self.clock())
        return user

    def delete_email_confirmation(self, email: str) -> int:
        check_not_empty(email, "email")
        return self.email_confirmations.delete_by_owner(normalize_email(email))

    # ---------- password reset ----------

    def create_password_reset(self, user: User) -> PasswordReset:
        check_persisted(user, "user")
        now = self.clock()
        return self.password_resets.insert(PasswordReset(
            token=new_token(hex_only=True),
            email=user.email,
            created_at=now,
            expiration=now + timedelta(seconds=self.settings.password_reset_max_age),
        ))

    def get_password_reset(self, token: str) -> Optional[PasswordReset]:
        return self.password_resets.lookup(token)

    @guarded
    def reset_password(self, token: str, new_password: str) -> bool:
        """
        Sets a new password for the owner of a live reset token. The new
        hash and the removal of the user's resets are committed together.
        """
        check_not_empty(new_password, "password")
        check_not_empty(token, "token")
        reset = self.password_resets.lookup(token)
        if reset is None:
            return False

        email = reset.email
        pwd = self.passwords.hash(new_password)
        updated = (
            User.query
            .filter_by(email=email)
            .update({User.password: pwd.hash, User.salt: pwd.salt}, synchronize_session=False)
        )
        self.password_resets.owner_query(email).delete(synchronize_session=False)
        db.session.commit()
        if not updated:
            return False

        log_event("PASSWORD_RESET", metadata={"email": email}, timestamp=self.clock())
        return True

    def delete_password_reset(self, user: User) -> int:
        check_persisted(user, "user")
        return self.password_resets.delete_by_owner(user.email)

    def _update_user(self, user: User, values: dict):
        updated = User.query.filter_by(id=user.id).update(values, synchronize_session=False)
        db.session.commit()
        if not updated:
            raise PreconditionFailed("undefined user")
