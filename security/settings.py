from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class AuthSettings:
    """
    Explicit configuration for the account core. Built once from the Flask
    config and handed to AccountManager; nothing reads app.config afterwards.
    """

    encryption_secret: str

    session_max_age: int = 8 * 60 * 60
    email_confirmation_max_age: int = 24 * 60 * 60
    password_reset_max_age: int = 60 * 60
    cookie_name: str = "_token"

    totp_algorithm: str = "SHA1"
    totp_time_step: int = 30
    totp_window: int = 30
    totp_secret_bytes: int = 10
    totp_digits: int = 6
    totp_issuer: str = "AuthGate"
    max_totp_attempts: int = 5

    password_algorithm: str = "pbkdf2_sha256"
    password_iterations: int = 64000
    bcrypt_rounds: int = 12

    storage_timeout: float = 10.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        defaults = cls.__dataclass_fields__

        def get(key, field, cast):
            value = config.get(key)
            if value is None:
                return defaults[field].default
            return cast(value)

        secret = config.get("CRYPTO_SECRET") or config.get("SECRET_KEY")
        if not secret:
            raise ValueError("CRYPTO_SECRET (or SECRET_KEY) must be configured")

        return cls(
            encryption_secret=secret,
            session_max_age=get("SESSION_MAX_AGE_SECONDS", "session_max_age", int),
            email_confirmation_max_age=get(
                "EMAIL_CONFIRMATION_MAX_AGE_SECONDS", "email_confirmation_max_age", int
            ),
            password_reset_max_age=get("PASSWORD_RESET_MAX_AGE_SECONDS", "password_reset_max_age", int),
            cookie_name=get("AUTH_COOKIE_NAME", "cookie_name", str),
            totp_algorithm=get("TOTP_ALGORITHM", "totp_algorithm", str),
            totp_time_step=get("TOTP_TIME_STEP", "totp_time_step", int),
            totp_window=get("TOTP_WINDOW", "totp_window", int),
            totp_secret_bytes=get("TOTP_SECRET_BYTES", "totp_secret_bytes", int),
            totp_digits=get("TOTP_DIGITS", "totp_digits", int),
            totp_issuer=get("TOTP_ISSUER", "totp_issuer", str),
            max_totp_attempts=get("MAX_TOTP_ATTEMPTS", "max_totp_attempts", int),
            password_algorithm=get("PASSWORD_HASH_ALGORITHM", "password_algorithm", str),
            password_iterations=get("PASSWORD_HASH_ITERATIONS", "password_iterations", int),
            bcrypt_rounds=get("BCRYPT_ROUNDS", "bcrypt_rounds", int),
            storage_timeout=get("STORAGE_TIMEOUT_SECONDS", "storage_timeout", float),
        )
