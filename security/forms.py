from dataclasses import dataclass
from typing import Optional


@dataclass
class SignUpForm:
    username: str
    email: str
    password: Optional[str] = None
    google_subject: Optional[str] = None  # set for accounts authenticated by Google
    mc_username: Optional[str] = None
    gh_username: Optional[str] = None
    irc_nick: Optional[str] = None


@dataclass
class SettingsForm:
    mc_username: Optional[str] = None
    gh_username: Optional[str] = None
    irc_nick: Optional[str] = None


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()
