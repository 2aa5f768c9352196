"""
User routes.

- /users/me: every logged-in user sees their profile, changes name and password.
- /users/:   ADMIN lists users and creates new ones (ADMIN or OPERADOR).

Rules enforced here:
- Name cannot be blank.
- New password must be typed twice; the backend checks the current one.
- New users need nome, CPF (sent digits-only) and role.
- UI never trusted: admin pages are re-checked with admin_required.

Audit:
- CREATE / UPDATE logged
"""

from flask import (
    Blueprint,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import login_required

from ...api import ApiError
from ...audit import log_action
from ...extensions import api
from ...formatting import digits_only, format_cpf
from ...security import ROLE_OPERADOR, ROLES, admin_required
from ...session import load_session, update_session_user

users_bp = Blueprint(
    "users",
    __name__,
    url_prefix="/users",
)


# ---------------------------------------------------------------------
# MY PROFILE
# ---------------------------------------------------------------------

@users_bp.route("/me")
@login_required
def profile():
    """Current user's data, loaded fresh from the backend."""
    error = None
    try:
        me = api.get_me()
    except ApiError as exc:
        error = exc.message
        me = load_session().user

    return render_template("users/profile.html", profile=me, error=error)


@users_bp.route("/me/name", methods=["POST"])
@login_required
def update_name():
    new_name = (request.form.get("nome") or "").strip()
    if not new_name:
        flash("O nome não pode ficar em branco.", "danger")
        return redirect(url_for("users.profile"))

    try:
        updated = api.update_my_name(new_name)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("users.profile"))

    if not updated.nome:
        updated.nome = new_name

    cached = load_session().user
    if cached is not None:
        cached.nome = updated.nome
        update_session_user(cached)

    log_action("User", updated.id if updated.id is not None else "me", "UPDATE", after={"nome": updated.nome})
    flash("Nome atualizado com sucesso.", "success")
    return redirect(url_for("users.profile"))


@users_bp.route("/me/password", methods=["POST"])
@login_required
def change_password():
    senha_atual = request.form.get("senhaAtual") or ""
    senha_nova = request.form.get("senhaNova") or ""
    confirmacao = request.form.get("senhaNovaConfirm") or ""

    if not senha_atual or not senha_nova:
        flash("Informe a senha atual e a nova senha.", "danger")
        return redirect(url_for("users.profile"))

    if senha_nova != confirmacao:
        flash("A confirmação da nova senha não confere.", "danger")
        return redirect(url_for("users.profile"))

    try:
        api.change_my_password(senha_atual, senha_nova)
    except ApiError as exc:
        flash(exc.message, "danger")
        return redirect(url_for("users.profile"))

    log_action("User", "me", "UPDATE", after={"senha": "***"})
    flash("Senha alterada com sucesso.", "success")
    return redirect(url_for("users.profile"))


# ---------------------------------------------------------------------
# LIST / CREATE USERS (ADMIN)
# ---------------------------------------------------------------------

def _render_users(form: dict, initial_password: str | None = None):
    error = None
    try:
        users = api.list_users()
    except ApiError as exc:
        error = exc.message
        users = []

    return render_template(
        "users/list.html",
        users=users,
        error=error,
        form=form,
        roles=ROLES,
        initial_password=initial_password,
    )


@users_bp.route("/", methods=["GET", "POST"])
@login_required
@admin_required
def list_users():
    """
    Admin view: list all users and create a new one.

    The backend may answer the creation with 'senha_inicial'; it is shown
    once on the rendered page and never stored in the session.
    """
    empty_form = {"nome": "", "cpf": "", "role": ROLE_OPERADOR}

    if request.method == "POST":
        form = {
            "nome": (request.form.get("nome") or "").strip(),
            "cpf": format_cpf(request.form.get("cpf")),
            "role": (request.form.get("role") or "").strip().upper(),
        }
        cpf = digits_only(form["cpf"])

        if not form["nome"] or not cpf or not form["role"]:
            flash("Preencha todos os campos.", "danger")
            return _render_users(form)

        if form["role"] not in ROLES:
            flash("Perfil inválido.", "danger")
            return _render_users(form)

        try:
            result = api.create_user(form["nome"], cpf, form["role"])
        except ApiError as exc:
            flash(exc.message, "danger")
            return _render_users(form)

        log_action("User", result.get("id"), "CREATE", after={"nome": form["nome"], "role": form["role"]})
        flash("Usuário criado com sucesso.", "success")
        return _render_users(empty_form, initial_password=result.get("senha_inicial"))

    return _render_users(empty_form)
