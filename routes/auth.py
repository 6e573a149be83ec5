import logging

from flask import Blueprint, request, jsonify, current_app, g

from security.bruteforce import is_totp_locked, register_totp_failure, reset_totp_attempts
from security.errors import InvalidArgument, StorageTimeout, TotpNotEnabled
from security.session import set_session_cookie, clear_session_cookie, token_from_request
from utils.audit import log_event
from utils.auth_context import get_accounts, login_required

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.errorhandler(StorageTimeout)
def _storage_timeout(exc):
    logger.error("auth request timed out on storage: %s", exc)
    return jsonify(error="Service temporarily unavailable"), 503


@auth_bp.errorhandler(InvalidArgument)
def _invalid_argument(exc):
    return jsonify(error="Invalid request"), 400


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text_field(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


@auth_bp.post("/login")
def login():
    data = _json_body()
    username = _text_field(data, "username").strip()
    password = _text_field(data, "password")

    if not username or not password:
        return jsonify(error="Invalid credentials"), 401

    accounts = get_accounts()
    session = accounts.login(username, password)
    if session is None:
        return jsonify(error="Invalid credentials"), 401

    resp = jsonify(message="Login OK", totp_required=not session.is_authenticated)
    set_session_cookie(resp, accounts.create_session_cookie(session))
    return resp, 200


@auth_bp.post("/totp")
def verify_totp():
    session = getattr(g, "session", None)
    if session is None:
        return jsonify(error="Authentication required"), 401
    if session.is_authenticated:
        return jsonify(message="Already authenticated"), 200

    data = _json_body()
    code = str(data.get("code") or "").strip()

    accounts = get_accounts()
    user = accounts.with_name(session.username)
    if user is None:
        return jsonify(error="Authentication required"), 401

    if is_totp_locked(user):
        log_event("TOTP_LOCKED", user_id=user.id, timestamp=accounts.clock())
        return jsonify(error="Too many failed attempts. Second factor locked."), 429

    try:
        ok = accounts.complete_totp(session, code)
    except InvalidArgument:
        return jsonify(error="Invalid code"), 400
    except TotpNotEnabled:
        return jsonify(error="Second factor not enabled"), 409

    if not ok:
        fail_count, locked_now = register_totp_failure(accounts, user)
        log_event("TOTP_FAIL", user_id=user.id, metadata={"fail_count": fail_count, "locked_now": locked_now},
                  timestamp=accounts.clock())
        if locked_now:
            return jsonify(error="Too many failed attempts. Second factor locked."), 429
        return jsonify(error="Invalid code"), 401

    reset_totp_attempts(accounts, user)
    return jsonify(message="Login OK"), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        username=g.user.username,
        email=g.user.email,
        email_confirmed=g.user.is_email_confirmed,
        totp_enabled=g.user.is_totp_confirmed,
        avatar_url=g.user.avatar_url,
    ), 200


@auth_bp.post("/logout")
def logout():
    accounts = get_accounts()
    cookie_name = accounts.settings.cookie_name
    raw_token = token_from_request(cookie_name)

    if raw_token:
        accounts.delete_session(raw_token)
    if getattr(g, "user", None) is not None:
        log_event("LOGOUT", user_id=g.user.id, timestamp=accounts.clock())

    resp = jsonify(message="Logged out")
    clear_session_cookie(resp, cookie_name)
    return resp, 200


@auth_bp.post("/password_reset")
def password_reset():
    data = _json_body()
    token = _text_field(data, "token").strip()
    new_password = _text_field(data, "password")

    if not token or not new_password:
        return jsonify(error="Token and password required"), 400

    if not get_accounts().reset_password(token, new_password):
        return jsonify(error="Invalid or expired token"), 400
    return jsonify(message="Password updated"), 200
