from functools import wraps
from flask import current_app, g, jsonify
from security.session import token_from_request


def get_accounts():
    return current_app.extensions["accounts"]

def load_current_user():
    """
    Resolves the session cookie. ``g.session`` is set for any live session,
    ``g.user`` only once the session is fully authenticated.
    """
    accounts = get_accounts()
    token = token_from_request(accounts.settings.cookie_name)
    sess = accounts.get_session(token) if token else None
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    g.user = accounts.with_name(sess.username) if sess.is_authenticated else None

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
