"""
Shared fixtures.

The REST backend and the extraction service are replaced by FakeBackend
instances plugged into httpx through MockTransport (API_TRANSPORT /
EXTRACTOR_TRANSPORT config keys). Every request is recorded.
"""

import json
from dataclasses import dataclass
from typing import Any

import httpx
import pytest

from sigecon import create_app


@dataclass
class Call:
    method: str
    path: str
    headers: httpx.Headers
    body: Any
    content: bytes


class FakeBackend:
    """Answers canned responses per (method, path) and records every call."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, payload=None, status=200, content=None, headers=None, error=None):
        self.routes[(method.upper(), path)] = {
            "payload": payload,
            "status": status,
            "content": content,
            "headers": headers or {},
            "error": error,
        }

    def calls_to(self, method, path):
        return [c for c in self.calls if c.method == method.upper() and c.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        content = request.read()
        body = None
        if request.headers.get("content-type", "").startswith("application/json") and content:
            body = json.loads(content)
        self.calls.append(Call(request.method, request.url.path, request.headers, body, content))

        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Recurso não encontrado."})
        if route["error"] is not None:
            raise route["error"]
        if route["content"] is not None:
            return httpx.Response(route["status"], content=route["content"], headers=route["headers"])
        if route["payload"] is None:
            return httpx.Response(route["status"])
        return httpx.Response(route["status"], json=route["payload"], headers=route["headers"])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


CONTRACT_PAYLOAD = {
    "id": 7,
    "numero": "009/2025",
    "fornecedor": "S. T. Borba",
    "startDate": "2025-01-09T00:00:00.000Z",
    "endDate": "2025-12-31",
    "usedAmount": "1.000,00",
    "items": [
        {
            "id": 12,
            "itemNo": "2",
            "description": "Areia lavada",
            "unit": "M3",
            "quantity": 10,
            "unitPrice": 120,
            "totalPrice": 1200,
        },
        {
            "id": 11,
            "itemNo": "1",
            "description": "Cimento CP-II",
            "unit": "SC",
            "quantity": 100,
            "unitPrice": "35,50",
            "totalPrice": "3.550,00",
            "availableQuantity": 50,
        },
        {
            "id": 13,
            "itemNo": None,
            "description": "VALOR TOTAL DO CONTRATO",
            "quantity": None,
            "unitPrice": None,
            "totalPrice": "4.750,00",
        },
    ],
}


def user_payload(role):
    return {"id": 1, "nome": "Ana Souza", "cpf": "12345678901", "role": role, "ativo": True}


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def extraction_service():
    return FakeBackend()


@pytest.fixture
def app(backend, extraction_service):
    return create_app(
        {
            "TESTING": True,
            "WTF_CSRF_ENABLED": False,
            "SECRET_KEY": "test-secret",
            "API_URL": "http://backend.test",
            "EXTRACTOR_URL": "http://extractor.test",
            "API_TRANSPORT": backend.transport,
            "EXTRACTOR_TRANSPORT": extraction_service.transport,
        }
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def contract_payload():
    return json.loads(json.dumps(CONTRACT_PAYLOAD))


def _login(client, backend, role):
    backend.on(
        "POST",
        "/auth/login",
        payload={"token": f"token-{role.lower()}", "user": user_payload(role)},
    )
    response = client.post("/auth/login", data={"cpf": "123.456.789-01", "senha": "segredo"})
    assert response.status_code == 302
    return client


@pytest.fixture
def operador_client(client, backend):
    return _login(client, backend, "OPERADOR")


@pytest.fixture
def admin_client(client, backend):
    return _login(client, backend, "ADMIN")


@pytest.fixture
def flashes():
    """Read (without consuming) the messages queued in the session."""

    def read(test_client):
        with test_client.session_transaction() as sess:
            return list(sess.get("_flashes", []))

    return read
