import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # Symmetric key protecting TOTP secrets at rest (falls back to SECRET_KEY)
    CRYPTO_SECRET = os.getenv("CRYPTO_SECRET")

    # SQLite database file stored next to this file as authgate.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "authgate.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Max seconds any single database call may block
    STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "10"))

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "_token"

    # 8 hours session lifetime
    SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(8 * 60 * 60)))

    # Token lifetimes for the email flows
    EMAIL_CONFIRMATION_MAX_AGE_SECONDS = int(os.getenv("EMAIL_CONFIRMATION_MAX_AGE_SECONDS", str(24 * 60 * 60)))
    PASSWORD_RESET_MAX_AGE_SECONDS = int(os.getenv("PASSWORD_RESET_MAX_AGE_SECONDS", str(60 * 60)))

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # TOTP (RFC 6238). Most authenticator apps only understand SHA1/6/30.
    TOTP_ALGORITHM = os.getenv("TOTP_ALGORITHM", "SHA1")
    TOTP_TIME_STEP = int(os.getenv("TOTP_TIME_STEP", "30"))
    TOTP_WINDOW = int(os.getenv("TOTP_WINDOW", "30"))          # seconds of drift tolerated either way
    TOTP_SECRET_BYTES = int(os.getenv("TOTP_SECRET_BYTES", "10"))
    TOTP_DIGITS = int(os.getenv("TOTP_DIGITS", "6"))
    TOTP_ISSUER = os.getenv("TOTP_ISSUER", "AuthGate")

    # Second factor brute-force protection (enforced by the /auth/totp route)
    MAX_TOTP_ATTEMPTS = int(os.getenv("MAX_TOTP_ATTEMPTS", "5"))

    # Password hashing: "pbkdf2_sha256" or "bcrypt"
    PASSWORD_HASH_ALGORITHM = os.getenv("PASSWORD_HASH_ALGORITHM", "pbkdf2_sha256")
    PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "64000"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
