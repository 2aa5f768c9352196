"""
Authentication Routes

Provides:
- /auth/login
- /auth/logout

Rules:
- Credentials are checked by the backend (POST /auth/login); nothing is
  verified locally.
- On success the token + profile are stored through sigecon.session.
- Only local next= URLs are followed after login.
"""

from urllib.parse import urlparse

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required, login_user, logout_user

from ...api import ApiError, ApiUnauthorized
from ...extensions import api
from ...formatting import digits_only, format_cpf
from ...session import SessionUser, init_session, teardown_session

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _safe_next_url(raw_next: str | None, fallback_endpoint: str) -> str:
    """
    Return a safe local next URL.

    Rules:
    - Only allow relative URLs (no scheme/netloc).
    - Fall back to an internal endpoint if invalid/empty.
    """
    if not raw_next:
        return url_for(fallback_endpoint)

    parsed = urlparse(raw_next)
    if parsed.scheme or parsed.netloc or not raw_next.startswith("/"):
        return url_for(fallback_endpoint)

    return raw_next


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["GET", "POST"])
def login():
    """
    Authenticate a user against the backend.

    Logic:
    - CPF is sent digits-only
    - Backend message shown on failure, generic message otherwise
    """
    if current_user.is_authenticated:
        return redirect(url_for("contracts.list_contracts"))

    if request.method == "POST":
        cpf = digits_only(request.form.get("cpf"))
        senha = request.form.get("senha", "")

        if not cpf or not senha:
            flash("Informe CPF e senha.", "danger")
            return render_template("auth/login.html", cpf=format_cpf(cpf))

        try:
            token, profile = api.login(cpf, senha)
        except (ApiError, ApiUnauthorized) as exc:
            current_app.logger.warning("Login failed for CPF ending %s", cpf[-2:])
            flash(exc.message, "danger")
            return render_template("auth/login.html", cpf=format_cpf(cpf))

        init_session(token, profile)
        login_user(SessionUser(profile))
        flash(f"Bem-vindo(a), {profile.nome or 'usuário'}!", "success")

        return redirect(_safe_next_url(request.args.get("next"), "contracts.list_contracts"))

    return render_template("auth/login.html", cpf="")


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user and forget the token."""
    logout_user()
    teardown_session()
    flash("Você saiu do sistema.", "info")
    return redirect(url_for("auth.login"))
