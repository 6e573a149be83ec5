from flask import current_app

from models.user import User


def _max_attempts() -> int:
    return current_app.config.get("MAX_TOTP_ATTEMPTS", 5)


def is_totp_locked(user: User, max_attempts: int = None) -> bool:
    """
    True once the user has used up their failed second-factor attempts.
    The counter only resets after a successful verification.
    """
    if max_attempts is None:
        max_attempts = _max_attempts()
    return user.failed_totp_attempts >= max_attempts

def register_totp_failure(accounts, user: User, max_attempts: int = None) -> tuple[int, bool]:
    """
    Increments the failure counter. Returns (fail_count, locked_now)
    """
    if max_attempts is None:
        max_attempts = _max_attempts()
    user = accounts.add_failed_totp_attempt(user)
    return user.failed_totp_attempts, user.failed_totp_attempts >= max_attempts

def reset_totp_attempts(accounts, user: User):
    """
    Clears failure counter after successful verification.
    """
    if user.failed_totp_attempts:
        accounts.reset_failed_totp_attempts(user)
