"""
sigecon/blueprints/orders/routes.py

Order (requisição) routes

Includes:
- Issue form: pick a contract, type quantities per item, submit once
- List of orders already issued
- Detail: edit item quantities, delete, spreadsheet (XLSX) download

Quantity rules (see reconciliation.OrderDraft):
- typed values are clamped to the available balance and floored
- empty / zero / invalid quantities leave the item out of the order
- action=preview recomputes the draft without calling the backend

IMPORTANT:
- Balances are never computed locally after a submission; the contract is
  reloaded from the backend.
"""

from __future__ import annotations

from datetime import date
from io import BytesIO

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)
from flask_login import login_required

from ...api import ApiError
from ...audit import log_action, serialize_dto
from ...extensions import api
from ...models import Contract, Order
from ...reconciliation import OrderDraft, item_number, normalize_order_quantity, prepare_contract_items

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")

ORDER_TYPES = [
    ("ORDEM DE FORNECIMENTO", "Ordem de fornecimento"),
    ("ORDEM DE SERVIÇO", "Ordem de serviço"),
    ("ORDEM", "Outro (genérico)"),
]

EXPENSE_OPTIONS = [
    "SERVIÇOS / OBRAS DE ENGENHARIA",
    "AQUIS. BENS / MAT. DE CONSUMO",
    "OUTROS  (Diárias; Passagens; etc.)",
]

MODALITY_OPTIONS = [
    "DISPENSA DE LICITAÇÃO",
    "INEXIGIBILIDADE DE LICITAÇÃO",
    "CONC. PÚBLICA",
    "PREGÃO ELETRÔNICO",
    "OUTROS",
]

XLSX_TEXT_FIELDS = (
    "orderTypeText",
    "deText",
    "paraText",
    "nomeRazao",
    "endereco",
    "celularTexto",
    "justificativaCampo",
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _qty_field(item) -> str:
    return f"qty-{item.id}"


def _fill_draft(draft: OrderDraft) -> None:
    """Copy typed quantities from the form into the draft (clamped)."""
    for item in draft.items:
        draft.set_quantity(item.id, request.form.get(_qty_field(item), ""))


def _order_form_defaults() -> dict:
    return {
        "orderType": ORDER_TYPES[0][0],
        "orderNumber": "",
        "issueDate": date.today().isoformat(),
        "referencePeriod": "",
        "justification": "",
    }


def _order_form_from_request() -> dict:
    form = _order_form_defaults()
    for key in form:
        if key in request.form:
            form[key] = (request.form.get(key) or "").strip()
    return form


def _load_contracts():
    try:
        return api.list_contracts(), None
    except ApiError as exc:
        return [], exc.message


def _load_orders():
    try:
        return api.list_orders(), None
    except ApiError as exc:
        return [], exc.message


def _xlsx_defaults(order: Order) -> dict:
    """Initial values of the spreadsheet form for an order."""
    defaults = dict(current_app.config.get("XLSX_DEFAULTS", {}))
    justification = order.justification or ""
    if order.reference_period:
        justification += f" Período de Referência: {order.reference_period}."
    defaults.update(
        {
            "orderTypeText": order.order_type or "",
            "justificativaCampo": justification,
        }
    )
    defaults.setdefault("tiposDespesaSelecionados", [])
    defaults.setdefault("modalidadesSelecionadas", [])
    return defaults


def _xlsx_extras_from_request() -> dict:
    extras = {key: (request.form.get(key) or "").strip() for key in XLSX_TEXT_FIELDS}
    extras["tiposDespesaSelecionados"] = [
        v for v in request.form.getlist("tiposDespesaSelecionados") if v in EXPENSE_OPTIONS
    ]
    extras["modalidadesSelecionadas"] = [
        v for v in request.form.getlist("modalidadesSelecionadas") if v in MODALITY_OPTIONS
    ]
    return extras


def _render_list(contracts, contracts_error, contract: Contract | None, draft: OrderDraft | None, form: dict):
    orders, orders_error = _load_orders()
    return render_template(
        "orders/list.html",
        contracts=contracts,
        contracts_error=contracts_error,
        selected_contract=contract,
        draft=draft,
        form=form,
        order_types=ORDER_TYPES,
        orders=orders,
        orders_error=orders_error,
        item_number=item_number,
        qty_field=_qty_field,
    )


# ---------------------------------------------------------------------
# Issue + list
# ---------------------------------------------------------------------
@orders_bp.route("/", methods=["GET", "POST"])
@login_required
def list_orders():
    contracts, contracts_error = _load_contracts()
    contract_id = (request.values.get("contract_id") or "").strip()

    contract = None
    draft = None
    if contract_id:
        try:
            contract = api.get_contract(contract_id)
        except ApiError as exc:
            flash(exc.message, "danger")
        else:
            draft = OrderDraft(items=prepare_contract_items(contract.items).sorted_items)

    if request.method == "GET":
        return _render_list(contracts, contracts_error, contract, draft, _order_form_defaults())

    form = _order_form_from_request()

    if not contract_id:
        flash("Selecione um contrato para emitir a ordem.", "danger")
        return _render_list(contracts, contracts_error, None, None, form)

    if contract is None or draft is None or not draft.items:
        flash("Contrato selecionado inválido.", "danger")
        return _render_list(contracts, contracts_error, contract, draft, form)

    _fill_draft(draft)

    if request.form.get("action") == "preview":
        return _render_list(contracts, contracts_error, contract, draft, form)

    if draft.is_empty():
        flash("Informe a quantidade para pelo menos um item.", "danger")
        return _render_list(contracts, contracts_error, contract, draft, form)

    payload = {
        "contractId": contract.id,
        "orderType": form["orderType"],
        "orderNumber": form["orderNumber"] or None,
        "issueDate": form["issueDate"] or None,
        "referencePeriod": form["referencePeriod"] or None,
        "justification": form["justification"] or None,
        "items": draft.payload(),
    }

    try:
        created = api.create_order(payload)
    except ApiError as exc:
        flash(exc.message, "danger")
        return _render_list(contracts, contracts_error, contract, draft, form)

    log_action("Order", created.id, "CREATE", after=serialize_dto(created))
    if created.order_number:
        flash(f"Ordem {created.order_number} criada com sucesso.", "success")
    else:
        flash("Ordem criada com sucesso.", "success")

    # Keep the contract selected; quantities start over from the reloaded balance.
    return redirect(url_for("orders.list_orders", contract_id=contract.id))


# ---------------------------------------------------------------------
# Detail / edit / delete
# ---------------------------------------------------------------------
def _load_order_or_404(order_id) -> Order:
    try:
        return api.get_order(order_id)
    except ApiError as exc:
        if exc.status_code == 404:
            abort(404)
        raise


def _render_detail(order: Order, draft: OrderDraft, edit_mode: bool, xlsx: dict):
    contract = None
    if order.contract_id:
        try:
            contract = api.get_contract(order.contract_id)
        except ApiError as exc:
            current_app.logger.warning("Contract %s of order %s not loaded: %s", order.contract_id, order.id, exc.message)

    return render_template(
        "orders/detail.html",
        order=order,
        contract=contract,
        draft=draft,
        edit_mode=edit_mode,
        xlsx=xlsx,
        expense_options=EXPENSE_OPTIONS,
        modality_options=MODALITY_OPTIONS,
        item_number=item_number,
        qty_field=_qty_field,
    )


def _draft_from_order(order: Order) -> OrderDraft:
    """Current quantities as stored, without clamping to the remaining balance."""
    draft = OrderDraft(items=list(order.items), id_field="orderItemId")
    for item in order.items:
        stored = normalize_order_quantity(item.quantity)
        if stored:
            draft.quantities[str(item.id)] = stored
    return draft


@orders_bp.route("/<order_id>")
@login_required
def order_detail(order_id):
    try:
        order = _load_order_or_404(order_id)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("orders.list_orders"))

    edit_mode = request.args.get("edit") == "1"
    return _render_detail(order, _draft_from_order(order), edit_mode, _xlsx_defaults(order))


@orders_bp.route("/<order_id>/items", methods=["POST"])
@login_required
def update_order_items(order_id):
    try:
        order = _load_order_or_404(order_id)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("orders.list_orders"))

    draft = OrderDraft(items=list(order.items), id_field="orderItemId")
    _fill_draft(draft)

    if request.form.get("action") == "preview":
        return _render_detail(order, draft, True, _xlsx_defaults(order))

    if draft.is_empty():
        flash("Informe uma quantidade válida para pelo menos um item.", "danger")
        return _render_detail(order, draft, True, _xlsx_defaults(order))

    before = serialize_dto(order)
    try:
        updated = api.update_order(order_id, {"items": draft.payload()})
    except ApiError as exc:
        flash(exc.message, "danger")
        return _render_detail(order, draft, True, _xlsx_defaults(order))

    log_action("Order", order_id, "UPDATE", before=before, after=serialize_dto(updated))
    flash("Itens da ordem atualizados com sucesso.", "success")
    return redirect(url_for("orders.order_detail", order_id=order_id))


@orders_bp.route("/<order_id>/delete", methods=["POST"])
@login_required
def delete_order(order_id):
    try:
        api.delete_order(order_id)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("orders.order_detail", order_id=order_id))

    log_action("Order", order_id, "DELETE")
    flash("Ordem excluída.", "success")
    return redirect(url_for("orders.list_orders"))


# ---------------------------------------------------------------------
# Spreadsheet
# ---------------------------------------------------------------------
@orders_bp.route("/<order_id>/xlsx", methods=["POST"])
@login_required
def download_xlsx(order_id):
    """Backend fills its XLSX template with the order and these texts."""
    try:
        order = _load_order_or_404(order_id)
        content = api.download_order_xlsx(order_id, _xlsx_extras_from_request())
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("orders.order_detail", order_id=order_id))

    log_action("Order", order_id, "EXPORT")
    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=order.xlsx_filename(),
    )
