"""
sigecon/session.py

Explicit session value object.

The bearer token and the cached user profile are kept in the signed Flask
session cookie under two fixed keys (SESSION_TOKEN_KEY / SESSION_USER_KEY).
Lifecycle:
- init_session()     after a successful /auth/login
- load_session()     any time during a request
- teardown_session() on logout or when the backend answers 401

Flask-Login is only told WHO is logged in (SessionUser); the token never
leaves this module except through current_token() for the API client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app, has_request_context, session
from flask_login import UserMixin

from .models import UserProfile


@dataclass(frozen=True)
class Session:
    token: Optional[str]
    user: Optional[UserProfile]

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


def _keys():
    return current_app.config["SESSION_TOKEN_KEY"], current_app.config["SESSION_USER_KEY"]


def load_session() -> Session:
    token_key, user_key = _keys()
    raw_user = session.get(user_key)
    user = UserProfile.from_api(raw_user) if raw_user else None
    return Session(token=session.get(token_key), user=user)


def init_session(token: str, user: UserProfile) -> Session:
    token_key, user_key = _keys()
    session[token_key] = token
    session[user_key] = user.to_session()
    return Session(token=token, user=user)


def update_session_user(user: UserProfile) -> None:
    """Refresh the cached profile (e.g. after a name change)."""
    _, user_key = _keys()
    session[user_key] = user.to_session()


def teardown_session() -> None:
    token_key, user_key = _keys()
    session.pop(token_key, None)
    session.pop(user_key, None)


def current_token() -> Optional[str]:
    """Token of the current request, None outside a request."""
    if not has_request_context():
        return None
    token_key, _ = _keys()
    return session.get(token_key)


class SessionUser(UserMixin):
    """Flask-Login user backed by the cached profile."""

    def __init__(self, profile: UserProfile):
        self.profile = profile

    def get_id(self) -> str:
        return str(self.profile.id if self.profile.id is not None else self.profile.cpf)

    @property
    def nome(self) -> str:
        return self.profile.nome

    @property
    def role(self) -> str:
        return self.profile.role

    @property
    def is_admin(self) -> bool:
        return self.profile.is_admin

    def __repr__(self):
        return f"<SessionUser {self.profile.nome} ({self.profile.role})>"


def load_session_user(user_id: str) -> Optional[SessionUser]:
    """Flask-Login user_loader: rebuild the user from the session, no backend call."""
    current = load_session()
    if not current.is_authenticated or current.user is None:
        return None
    user = SessionUser(current.user)
    if user.get_id() != str(user_id):
        return None
    return user
