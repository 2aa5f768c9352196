"""
sigecon/blueprints/contracts/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose contracts_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import contracts_bp  # noqa: F401
