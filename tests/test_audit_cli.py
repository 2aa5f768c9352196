import json
from unittest import mock

from sigecon.audit import audit_logger, log_action, serialize_dto
from sigecon.models import Contract


def test_serialize_dto_skips_collections(contract_payload):
    snapshot = serialize_dto(Contract.from_api(contract_payload))

    assert snapshot["number"] == "009/2025"
    assert snapshot["used_amount"] == "1000.00"
    assert snapshot["remaining_amount"] is None
    assert "items" not in snapshot


def test_mutations_are_audited(operador_client, backend, contract_payload):
    backend.on("PUT", "/contracts/7/items", payload=contract_payload)

    with mock.patch.object(audit_logger, "info") as info:
        operador_client.post("/contracts/7/items", data={"item_no": "1", "quantity": "3"})

    entry = json.loads(info.call_args[0][0])
    assert entry["user"] == "Ana Souza"
    assert entry["role"] == "OPERADOR"
    assert entry["entity_type"] == "ContractItem"
    assert entry["entity_id"] == "7/1"
    assert entry["action"] == "UPDATE"
    assert entry["after"] == {"itemNo": 1, "quantity": "3"}


def test_log_action_outside_request():
    with mock.patch.object(audit_logger, "info") as info:
        log_action("Contract", 1, "DELETE")

    entry = json.loads(info.call_args[0][0])
    assert entry["user"] is None
    assert entry["ip_address"] is None


def test_contract_balance_command(app, backend, contract_payload):
    backend.on("GET", "/contracts/7", payload=contract_payload)

    result = app.test_cli_runner().invoke(args=["contract-balance", "7", "--token", "abc"])

    assert result.exit_code == 0, result.output
    assert "Valor total:     R$ 4.750,00" in result.output
    assert "Saldo restante:  R$ 3.750,00" in result.output
    assert "Situação:        Saldo OK" in result.output
    assert backend.calls[0].headers["authorization"] == "Bearer abc"


def test_contract_balance_command_reports_backend_errors(app, backend):
    backend.on("GET", "/contracts/7", status=500, payload={"message": "Falha interna."})

    result = app.test_cli_runner().invoke(args=["contract-balance", "7", "--token", "abc"])

    assert result.exit_code != 0
    assert "Falha interna." in result.output
