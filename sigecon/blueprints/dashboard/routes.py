"""
Dashboard: overview of contracts and recent orders.

Figures:
- active contracts: status other than ENCERRADO
- available balance: sum of known remaining amounts of active contracts
- spent this month: order totals issued in the current month
- latest orders: 5 most recent by issue date
"""

from __future__ import annotations

from datetime import date

from flask import Blueprint, render_template
from flask_login import login_required

from ...api import ApiError
from ...extensions import api
from ...reconciliation import ZERO, ContractStatus, contract_financial_summary

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")

LATEST_ORDERS = 5


def dashboard_figures(contracts, orders, today: date):
    summaries = [contract_financial_summary(c) for c in contracts]
    active = [s for s in summaries if s.status != ContractStatus.ENCERRADO]

    available = sum((s.remaining for s in active if s.remaining is not None), ZERO)

    spent_month = sum(
        (
            o.total_amount
            for o in orders
            if o.issue_date and (o.issue_date.year, o.issue_date.month) == (today.year, today.month)
        ),
        ZERO,
    )

    latest = sorted(
        orders,
        key=lambda o: (o.issue_date is not None, o.issue_date or date.min),
        reverse=True,
    )[:LATEST_ORDERS]

    return {
        "active_contracts": len(active),
        "available_balance": available,
        "spent_month": spent_month,
        "latest_orders": latest,
    }


@dashboard_bp.route("/")
@login_required
def index():
    errors = []
    try:
        contracts = api.list_contracts()
    except ApiError as exc:
        errors.append(exc.message)
        contracts = []
    try:
        orders = api.list_orders()
    except ApiError as exc:
        errors.append(exc.message)
        orders = []

    return render_template(
        "dashboard/index.html",
        errors=errors,
        **dashboard_figures(contracts, orders, date.today()),
    )
