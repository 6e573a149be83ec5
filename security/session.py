from typing import NamedTuple, Optional
from flask import request, current_app


class SessionCookie(NamedTuple):
    name: str
    value: str
    max_age: int  # seconds


def set_session_cookie(resp, cookie: SessionCookie):
    resp.set_cookie(
        cookie.name,
        cookie.value,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=cookie.max_age,
        path="/",
    )
    return resp


def clear_session_cookie(resp, cookie_name: str):
    resp.delete_cookie(cookie_name, path="/")
    return resp


def token_from_request(cookie_name: str) -> Optional[str]:
    return request.cookies.get(cookie_name) or None
