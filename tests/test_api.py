"""
REST and extraction clients against a fake transport.
"""

from decimal import Decimal
from io import BytesIO

import httpx
import pytest

from sigecon.api import ApiError, ApiUnauthorized, encode_json, extract_error_message
from sigecon.extensions import api, extractor
from sigecon.models import UserProfile
from sigecon.session import init_session


def _response(status, **kwargs):
    return httpx.Response(status, request=httpx.Request("GET", "http://backend.test/x"), **kwargs)


def test_extract_error_message_prefers_body_keys():
    assert extract_error_message(_response(400, json={"message": "Saldo insuficiente."}), "x") == "Saldo insuficiente."
    assert extract_error_message(_response(400, json={"error": "Inválido"}), "x") == "Inválido"
    assert extract_error_message(_response(400, json={"detail": "Detalhe"}), "x") == "Detalhe"
    assert extract_error_message(_response(400, json={"message": "  "}), "padrão") == "padrão"
    assert extract_error_message(_response(500, content=b"<html>"), "padrão") == "padrão"
    assert extract_error_message(_response(500, json=["a"]), "padrão") == "padrão"


def test_encode_json_sends_decimals_as_numbers():
    assert encode_json({"quantity": Decimal("2.50")}) == b'{"quantity": 2.5}'


def test_encode_json_refuses_values_that_overflow_a_float():
    with pytest.raises(ValueError):
        encode_json({"quantity": Decimal("1e400")})


def test_bearer_token_attached_from_session(app, backend):
    backend.on("GET", "/contracts", payload=[])

    with app.test_request_context():
        init_session("abc123", UserProfile(id=1))
        assert api.list_contracts() == []

    call = backend.calls_to("GET", "/contracts")[0]
    assert call.headers["authorization"] == "Bearer abc123"


def test_no_authorization_header_without_token(app, backend):
    backend.on("GET", "/contracts", payload=[])

    with app.test_request_context():
        api.list_contracts()

    assert "authorization" not in backend.calls[0].headers


def test_login_sends_cpf_under_cnpj_key(app, backend):
    backend.on("POST", "/auth/login", payload={"token": "t", "user": {"id": 1, "nome": "Ana", "role": "operador"}})

    with app.test_request_context():
        token, profile = api.login("12345678901", "segredo")

    assert token == "t"
    assert profile.role == "OPERADOR"
    assert backend.calls[0].body == {"cnpj": "12345678901", "senha": "segredo"}


def test_login_without_token_is_an_error(app, backend):
    backend.on("POST", "/auth/login", payload={"user": {}})

    with app.test_request_context():
        with pytest.raises(ApiError) as exc:
            api.login("1", "2")
    assert exc.value.message == "CPF ou senha inválidos."


def test_unauthorized_is_not_an_api_error(app, backend):
    backend.on("GET", "/orders", status=401, payload={"message": "Token expirado."})

    with app.test_request_context():
        with pytest.raises(ApiUnauthorized) as exc:
            api.list_orders()

    assert exc.value.message == "Token expirado."
    assert not isinstance(exc.value, ApiError)


def test_backend_message_used_for_errors(app, backend):
    backend.on("PUT", "/contracts/7/items", status=422, payload={"message": "Quantidade inválida."})

    with app.test_request_context():
        with pytest.raises(ApiError) as exc:
            api.save_contract_item(7, {"itemNo": 1, "quantity": Decimal("3")}, "Não foi possível atualizar o item.")

    assert exc.value.message == "Quantidade inválida."
    assert exc.value.status_code == 422
    assert backend.calls[0].body == {"itemNo": 1, "quantity": 3}


def test_transport_failure_uses_fallback_message(app, backend):
    backend.on("GET", "/contracts/7", error=httpx.ConnectError("connection refused"))

    with app.test_request_context():
        with pytest.raises(ApiError) as exc:
            api.get_contract(7)

    assert exc.value.message == "Não foi possível carregar o contrato."
    assert exc.value.status_code is None


def test_import_contract_maps_extraction_fields(app, backend):
    backend.on("POST", "/contracts/import", payload={"id": 8, "number": "010/2025"})
    extracted = {
        "columns": ["item", "descricao"],
        "rows": [["1", "Cimento"]],
        "soma_valor_total": 3550.0,
        "soma_valor_unit": 35.5,
    }

    with app.test_request_context():
        contract = api.import_contract(extracted, "contrato.pdf")

    assert contract.id == 8
    assert backend.calls[0].body == {
        "fileName": "contrato.pdf",
        "columns": ["item", "descricao"],
        "rows": [["1", "Cimento"]],
        "total": 3550.0,
        "totalUnit": 35.5,
        "issues": [],
    }


def test_create_user_returns_initial_password(app, backend):
    backend.on("POST", "/usuarios", status=201, payload={"id": 5, "senha_inicial": "Xy12ab"})

    with app.test_request_context():
        result = api.create_user("Bruno", "98765432100", "OPERADOR")

    assert result["senha_inicial"] == "Xy12ab"
    assert backend.calls[0].body == {"nome": "Bruno", "cpf": "98765432100", "role": "OPERADOR"}


def test_change_password_payload(app, backend):
    backend.on("PUT", "/usuarios/me/senha", status=204)

    with app.test_request_context():
        api.change_my_password("velha", "nova")

    assert backend.calls[0].body == {"senhaAtual": "velha", "senhaNova": "nova"}


def test_extractor_uploads_file_field_and_reports_progress(app, extraction_service):
    extraction_service.on("POST", "/extract", payload={"columns": [], "rows": [], "issues": []})
    seen = []
    pdf = b"%PDF-1.4 fake"

    with app.test_request_context():
        data = extractor.extract_contract_table(
            BytesIO(pdf), "contrato.pdf", on_progress=lambda loaded, total: seen.append((loaded, total))
        )

    assert data["rows"] == []
    call = extraction_service.calls[0]
    assert b'name="file"; filename="contrato.pdf"' in call.content
    assert pdf in call.content
    assert "authorization" not in call.headers
    assert seen and seen[-1] == (len(pdf), len(pdf))


def test_extractor_error_message(app, extraction_service):
    extraction_service.on("POST", "/extract", status=422, payload={"detail": "PDF sem tabela."})

    with app.test_request_context():
        with pytest.raises(ApiError) as exc:
            extractor.extract_contract_table(BytesIO(b"x"), "a.pdf", on_progress=None)

    assert exc.value.message == "PDF sem tabela."
