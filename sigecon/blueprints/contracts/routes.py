"""
sigecon/blueprints/contracts/routes.py

Contract routes

Includes:
- List with financial summary and balance status (OK / BAIXO / ENCERRADO)
- Manual creation and PDF import (admin)
- Detail: header edit, delete, financial summary, item table
- Item add / update / delete through PUT|DELETE /contracts/:id/items

IMPORTANT:
- UI is never trusted. Item permissions are re-checked here (contract_items.py)
  and rejected BEFORE any backend call.
- The page always shows the contract as returned by the backend after a
  change; nothing is updated optimistically.
"""

from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import login_required

from ...api import ApiError
from ...audit import log_action, serialize_dto
from ...contract_items import (
    ItemValidationError,
    build_contract_item_payload,
    check_item_deletion,
    parse_item_no,
)
from ...extensions import api, extractor
from ...reconciliation import contract_financial_summary, item_number, prepare_contract_items
from ...security import admin_required, can_create_items, can_delete_items, can_edit_field, current_role

contracts_bp = Blueprint("contracts", __name__, url_prefix="/contracts")

MSG_ITEM_ADDED = "Novo item adicionado ao contrato."
MSG_ITEM_UPDATED = "Item atualizado com sucesso."
MSG_ITEM_REMOVED = "Item removido com sucesso."


# ---------------------------------------------------------------------
# Form helpers
# ---------------------------------------------------------------------
def _contract_form_payload() -> dict:
    """Header fields from the form (dates as YYYY-MM-DD or None)."""
    return {
        "number": (request.form.get("number") or "").strip(),
        "supplier": (request.form.get("supplier") or "").strip(),
        "startDate": (request.form.get("startDate") or "").strip() or None,
        "endDate": (request.form.get("endDate") or "").strip() or None,
    }


def _detail_url(contract_id, **kwargs) -> str:
    return url_for("contracts.contract_detail", contract_id=contract_id, **kwargs)


# ---------------------------------------------------------------------
# List
# ---------------------------------------------------------------------
@contracts_bp.route("/")
@login_required
def list_contracts():
    error = None
    rows = []
    try:
        contracts = api.list_contracts()
    except ApiError as exc:
        error = exc.message
        contracts = []

    for contract in contracts:
        rows.append({"contract": contract, "summary": contract_financial_summary(contract)})

    return render_template(
        "contracts/list.html",
        rows=rows,
        error=error,
        allow_create=can_create_items(current_role()),
    )


# ---------------------------------------------------------------------
# Create (manual)
# ---------------------------------------------------------------------
@contracts_bp.route("/new", methods=["GET", "POST"])
@login_required
@admin_required
def create_contract():
    if request.method == "POST":
        payload = _contract_form_payload()
        if not payload["number"]:
            flash("O número do contrato é obrigatório.", "danger")
            return render_template("contracts/new.html", form=payload)

        try:
            contract = api.create_contract(payload)
        except ApiError as exc:
            flash(exc.message, "danger")
            return render_template("contracts/new.html", form=payload)

        log_action("Contract", contract.id, "CREATE", after=serialize_dto(contract))
        flash("Contrato criado.", "success")
        return redirect(_detail_url(contract.id))

    return render_template("contracts/new.html", form={})


# ---------------------------------------------------------------------
# Import from PDF
# ---------------------------------------------------------------------
@contracts_bp.route("/import", methods=["GET", "POST"])
@login_required
@admin_required
def import_contract():
    """
    Upload flow:
    1) PDF -> extraction service (POST /extract)
    2) extracted table -> backend (POST /contracts/import)
    """
    if request.method == "POST":
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            flash("Anexe o PDF do contrato.", "danger")
            return render_template("contracts/import.html")

        try:
            extracted = extractor.extract_contract_table(upload.stream, upload.filename)
            contract = api.import_contract(extracted, upload.filename)
        except ApiError as exc:
            flash(exc.message, "danger")
            return render_template("contracts/import.html")

        issues = extracted.get("issues") or []
        log_action("Contract", contract.id, "CREATE", after={"fileName": upload.filename})
        flash("Contrato importado com sucesso.", "success")
        for issue in issues:
            flash(f"Atenção na extração: {issue}", "warning")

        if contract.id is None:
            return redirect(url_for("contracts.list_contracts"))
        return redirect(_detail_url(contract.id))

    return render_template("contracts/import.html")


# ---------------------------------------------------------------------
# Detail / header edit
# ---------------------------------------------------------------------
@contracts_bp.route("/<contract_id>", methods=["GET", "POST"])
@login_required
def contract_detail(contract_id):
    try:
        contract = api.get_contract(contract_id)
    except ApiError as exc:
        if exc.status_code == 404:
            abort(404)
        return render_template("contracts/detail.html", contract=None, error=exc.message)

    if request.method == "POST":
        before = serialize_dto(contract)
        payload = _contract_form_payload()
        if not payload["number"]:
            flash("O número do contrato é obrigatório.", "danger")
            return redirect(_detail_url(contract_id))

        try:
            contract = api.update_contract(contract_id, payload)
        except ApiError as exc:
            flash(exc.message, "danger")
            return redirect(_detail_url(contract_id))

        log_action("Contract", contract_id, "UPDATE", before=before, after=serialize_dto(contract))
        flash("Alterações salvas.", "success")
        return redirect(_detail_url(contract_id))

    role = current_role()
    prepared = prepare_contract_items(contract.items)

    active_item = None
    selected = parse_item_no(request.args.get("item"))
    if selected is not None:
        active_item = next((it for it in prepared.sorted_items if item_number(it) == selected), None)

    return render_template(
        "contracts/detail.html",
        contract=contract,
        error=None,
        summary=contract_financial_summary(contract),
        items=prepared.sorted_items,
        items_total=prepared.total_geral,
        active_item=active_item,
        item_number=item_number,
        can_add_items=can_create_items(role),
        can_delete_items=can_delete_items(role),
        editable={field: can_edit_field(role, field) for field in ("description", "unit", "quantity", "unitPrice")},
    )


@contracts_bp.route("/<contract_id>/delete", methods=["POST"])
@login_required
def delete_contract(contract_id):
    try:
        api.delete_contract(contract_id)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(_detail_url(contract_id))

    log_action("Contract", contract_id, "DELETE")
    flash("Contrato excluído.", "success")
    return redirect(url_for("contracts.list_contracts"))


# ---------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------
@contracts_bp.route("/<contract_id>/items", methods=["POST"])
@login_required
def save_item(contract_id):
    """Add (no item_no) or update (item_no) one contract item."""
    item_no = request.form.get("item_no")
    is_new = not (item_no or "").strip()

    try:
        payload = build_contract_item_payload(current_role(), request.form, item_no)
    except ItemValidationError as exc:
        flash(exc.message, "danger")
        if is_new:
            return redirect(_detail_url(contract_id))
        return redirect(_detail_url(contract_id, item=item_no))

    fallback = "Não foi possível adicionar o item." if is_new else "Não foi possível atualizar o item."
    try:
        api.save_contract_item(contract_id, payload, fallback)
    except ApiError as exc:
        flash(exc.message, "danger")
        if is_new:
            return redirect(_detail_url(contract_id))
        return redirect(_detail_url(contract_id, item=item_no))

    log_action(
        "ContractItem",
        f"{contract_id}/{payload.get('itemNo', 'new')}",
        "CREATE" if is_new else "UPDATE",
        after=payload,
    )
    flash(MSG_ITEM_ADDED if is_new else MSG_ITEM_UPDATED, "success")
    return redirect(_detail_url(contract_id))


@contracts_bp.route("/<contract_id>/items/<item_no>/delete", methods=["POST"])
@login_required
def delete_item(contract_id, item_no):
    try:
        number = check_item_deletion(current_role(), item_no)
    except ItemValidationError as exc:
        flash(exc.message, "danger")
        return redirect(_detail_url(contract_id, item=item_no))

    try:
        api.delete_contract_item(contract_id, number)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(_detail_url(contract_id, item=item_no))

    log_action("ContractItem", f"{contract_id}/{number}", "DELETE")
    flash(MSG_ITEM_REMOVED, "success")
    return redirect(_detail_url(contract_id))
