"""
sigecon/security.py

Access control helpers for the SIGECON front-end.

Key rules:
- UI is never trusted; every role check is repeated in the route.
- ADMIN: full access (users, contract items create/edit/delete, contracts).
- OPERADOR: may change only the QUANTITY of an existing contract item and
  issue/edit orders. Never description, unit or price; never create or
  delete items.
- The backend enforces the same rules again; a forbidden action is rejected
  here before any network call.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Tuple

from flask import render_template
from flask_login import current_user

ROLE_ADMIN = "ADMIN"
ROLE_OPERADOR = "OPERADOR"
ROLES = (ROLE_ADMIN, ROLE_OPERADOR)

# Contract item fields as sent to PUT /contracts/:id/items
ITEM_FIELDS = ("description", "unit", "quantity", "unitPrice")

_EDITABLE_ITEM_FIELDS = {
    ROLE_ADMIN: frozenset(ITEM_FIELDS),
    ROLE_OPERADOR: frozenset({"quantity"}),
}


def can_edit_field(role: str | None, field: str) -> bool:
    """Capability check for one contract item field."""
    return field in _EDITABLE_ITEM_FIELDS.get((role or "").upper(), frozenset())


def can_create_items(role: str | None) -> bool:
    return (role or "").upper() == ROLE_ADMIN


def can_delete_items(role: str | None) -> bool:
    return (role or "").upper() == ROLE_ADMIN


def _forbidden() -> Tuple[str, int]:
    """Render a consistent 403 page."""
    return render_template("errors/403.html"), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def current_role() -> str | None:
    if not current_user.is_authenticated:
        return None
    return getattr(current_user, "role", None)


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
