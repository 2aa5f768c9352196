"""Auth blueprint package: login / logout against the backend (routes.py)."""

from .routes import auth_bp  # noqa: F401
