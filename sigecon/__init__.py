"""
sigecon/__init__.py

Flask application factory for SIGECON, the contract and order management
front-end of the municipal administration.

Requirements:
- Presentation layer only: every piece of state lives in the REST backend.
- The bearer token is kept server-side in the signed session, never in the page.
- UI is never trusted; role checks are repeated in each route.

Navigation:
- Sidebar contains 2 sections:
  1) Gestão (dashboard, contratos, ordens)
  2) Conta (usuários)
Items are filtered for visibility, BUT all permissions are enforced in the routes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import click
from flask import Flask, flash, redirect, request, url_for
from flask_login import current_user, logout_user

from .api import ApiError, ApiUnauthorized
from .extensions import api, csrf, extractor, login_manager
from .formatting import (
    contract_row_class,
    fmt_date_br,
    fmt_decimal_input,
    fmt_money,
    fmt_money_or_dash,
    fmt_num,
    format_cpf,
)
from .session import load_session_user, teardown_session

# Blueprint imports kept inside create_app() to reduce import side effects.


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------

NAV_SECTIONS = [
    {
        "key": "management",
        "label": "Gestão",
        "auth_required": True,
        "items": [
            {"label": "Dashboard", "endpoint": "dashboard.index", "admin_only": False},
            {"label": "Contratos", "endpoint": "contracts.list_contracts", "admin_only": False},
            {"label": "Importar contrato (PDF)", "endpoint": "contracts.import_contract", "admin_only": True},
            {"label": "Ordens", "endpoint": "orders.list_orders", "admin_only": False},
        ],
    },
    {
        "key": "account",
        "label": "Conta",
        "auth_required": True,
        "items": [
            {"label": "Meu perfil", "endpoint": "users.profile", "admin_only": False},
            {"label": "Usuários do sistema", "endpoint": "users.list_users", "admin_only": True},
        ],
    },
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("sigecon").setLevel(level)
    app.logger.setLevel(level)


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object("config.Config")
    if overrides:
        app.config.update(overrides)

    _configure_logging(app)

    # Extensions
    api.init_app(app)
    extractor.init_app(app)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message = "Entre para acessar o sistema."
    login_manager.login_message_category = "info"
    login_manager.user_loader(load_session_user)

    # ----------------------------------------------------------------------
    # Expired / invalid token: drop the session and go back to login.
    # ----------------------------------------------------------------------
    @app.errorhandler(ApiUnauthorized)
    def _handle_unauthorized(exc: ApiUnauthorized):
        app.logger.info("Backend rejected the token on %s; clearing session.", request.path)
        teardown_session()
        logout_user()
        flash("Sessão expirada. Entre novamente.", "warning")
        return redirect(url_for("auth.login", next=request.path))

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.contracts import contracts_bp
    from .blueprints.dashboard import dashboard_bp
    from .blueprints.orders import orders_bp
    from .blueprints.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(users_bp)

    # ----------------------------------------------------------------------
    # Template filters
    # ----------------------------------------------------------------------
    app.add_template_filter(fmt_money, "money")
    app.add_template_filter(fmt_money_or_dash, "money_or_dash")
    app.add_template_filter(fmt_num, "qty")
    app.add_template_filter(fmt_decimal_input, "decimal_input")
    app.add_template_filter(fmt_date_br, "date_br")
    app.add_template_filter(format_cpf, "cpf")
    app.add_template_filter(contract_row_class, "contract_row_class")

    # ----------------------------------------------------------------------
    # Context globals (navigation)
    # ----------------------------------------------------------------------
    @app.context_processor
    def inject_globals():
        """
        Inject navigation filtered by user.

        SECURITY NOTE:
        - This only filters visibility. Routes enforce permissions.
        """
        visible_sections = []

        for section in NAV_SECTIONS:
            if section.get("auth_required", False) and not current_user.is_authenticated:
                continue

            visible_items = [
                item
                for item in section.get("items", [])
                if not item.get("admin_only", False) or current_user.is_admin
            ]

            if visible_items:
                visible_sections.append(
                    {"key": section["key"], "label": section["label"], "items": visible_items}
                )

        return {"config": app.config, "nav_sections": visible_sections}

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("contract-balance")
    @click.argument("contract_id")
    @click.option("--token", envvar="SIGECON_TOKEN", required=True, help="Bearer token for the backend.")
    def contract_balance_command(contract_id: str, token: str):
        """Print total, used, remaining and status of a contract."""
        from .models import UserProfile
        from .reconciliation import contract_financial_summary
        from .session import init_session

        with app.test_request_context():
            init_session(token, UserProfile())
            try:
                contract = api.get_contract(contract_id)
            except (ApiError, ApiUnauthorized) as exc:
                raise click.ClickException(exc.message) from exc

        summary = contract_financial_summary(contract)
        click.echo(f"Contrato: {contract.display_name()}")
        click.echo(f"Valor total:     {fmt_money(summary.total)}")
        click.echo(f"Valor utilizado: {fmt_money_or_dash(summary.used)}")
        click.echo(f"Saldo restante:  {fmt_money_or_dash(summary.remaining)}")
        click.echo(f"Situação:        {summary.status.label}")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Home: redirect to contracts or login."""
        if current_user.is_authenticated:
            return redirect(url_for("contracts.list_contracts"))
        return redirect(url_for("auth.login"))

    return app
