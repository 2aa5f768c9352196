"""Users blueprint package (profile + admin user management)."""

from .routes import users_bp  # noqa: F401
