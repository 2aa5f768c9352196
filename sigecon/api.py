"""
sigecon/api.py

HTTP client for the SIGECON REST backend.

Rules:
- One httpx.Client per Flask app (created in init_app, stored in app.extensions).
- The bearer token of the current request is attached by a request hook,
  so no call site handles Authorization headers.
- No retries and no cancellation. A call either returns the parsed payload or
  raises ApiError with a human message.
- Payloads are turned into DTOs (sigecon.models) here and nowhere else.

Error messages:
- Taken from the response body (message / error / detail) when present.
- Otherwise the Portuguese fallback passed by the operation.
- Transport errors never leak their raw text to the user.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
from flask import Flask, current_app

from .models import Contract, Order, UserProfile
from .session import current_token

logger = logging.getLogger(__name__)

EXTENSION_KEY = "sigecon_api"


class ApiError(Exception):
    """A backend call failed; .message is safe to show to the user."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ApiUnauthorized(Exception):
    """
    401 from the backend: the token is missing, invalid or expired.

    Not an ApiError: routes catch ApiError to show inline messages, this one
    goes to the app-level handler that clears the session. Only the login
    route catches it.
    """

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def extract_error_message(response: httpx.Response, fallback: str) -> str:
    """Human message from an error response body, or the fallback."""
    try:
        body = response.json()
    except ValueError:
        return fallback

    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(payload: Any) -> bytes:
    """JSON body with Decimals sent as plain numbers. Non-finite values raise ValueError."""
    return json.dumps(payload, default=_json_default, ensure_ascii=False, allow_nan=False).encode("utf-8")


def _attach_token(request: httpx.Request) -> None:
    token = current_token()
    if token:
        request.headers["Authorization"] = f"Bearer {token}"


def _log_response(response: httpx.Response) -> None:
    logger.debug(
        "%s %s -> %s",
        response.request.method,
        response.request.url.path,
        response.status_code,
    )


class ApiClient:
    """Flask extension: `api.init_app(app)` then call methods inside a request."""

    def __init__(self, app: Optional[Flask] = None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        client = httpx.Client(
            base_url=app.config["API_URL"],
            timeout=app.config.get("API_TIMEOUT", 30.0),
            transport=app.config.get("API_TRANSPORT"),
            event_hooks={"request": [_attach_token], "response": [_log_response]},
        )
        app.extensions[EXTENSION_KEY] = client

    @property
    def client(self) -> httpx.Client:
        return current_app.extensions[EXTENSION_KEY]

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------
    def _request(self, method: str, path: str, fallback: str, **kwargs: Any) -> httpx.Response:
        if "json" in kwargs:
            kwargs["content"] = encode_json(kwargs.pop("json"))
            kwargs["headers"] = {"Content-Type": "application/json"}
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(fallback) from exc

        if response.is_success:
            return response

        message = extract_error_message(response, fallback)
        logger.warning("%s %s -> %s (%s)", method, path, response.status_code, message)
        if response.status_code == 401:
            raise ApiUnauthorized(message, 401)
        raise ApiError(message, response.status_code)

    def _json(self, method: str, path: str, fallback: str, **kwargs: Any) -> Any:
        response = self._request(method, path, fallback, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s %s returned invalid JSON", method, path)
            raise ApiError(fallback, response.status_code) from exc

    # -----------------------------------------------------------------
    # Auth / users
    # -----------------------------------------------------------------
    def login(self, cpf: str, senha: str):
        """Returns (token, UserProfile). The backend names the login field 'cnpj'."""
        data = self._json(
            "POST", "/auth/login", "CPF ou senha inválidos.",
            json={"cnpj": cpf, "senha": senha},
        )
        if not isinstance(data, dict) or not data.get("token"):
            raise ApiError("CPF ou senha inválidos.")
        return data["token"], UserProfile.from_api(data.get("user") or {})

    def get_me(self) -> UserProfile:
        data = self._json("GET", "/usuarios/me", "Erro ao carregar dados do usuário.")
        return UserProfile.from_api(data or {})

    def update_my_name(self, nome: str) -> UserProfile:
        data = self._json("PUT", "/usuarios/me/nome", "Erro ao atualizar nome.", json={"nome": nome})
        return UserProfile.from_api(data or {"nome": nome})

    def change_my_password(self, senha_atual: str, senha_nova: str) -> None:
        self._request(
            "PUT", "/usuarios/me/senha", "Erro ao alterar a senha.",
            json={"senhaAtual": senha_atual, "senhaNova": senha_nova},
        )

    def list_users(self) -> List[UserProfile]:
        data = self._json("GET", "/usuarios", "Erro ao carregar lista de usuários.")
        return [UserProfile.from_api(u) for u in (data or [])]

    def create_user(self, nome: str, cpf: str, role: str) -> Dict[str, Any]:
        """ADMIN only. The response may carry 'senha_inicial'."""
        data = self._json(
            "POST", "/usuarios", "Erro ao criar usuário.",
            json={"nome": nome, "cpf": cpf, "role": role},
        )
        return data or {}

    # -----------------------------------------------------------------
    # Contracts
    # -----------------------------------------------------------------
    def list_contracts(self) -> List[Contract]:
        data = self._json("GET", "/contracts", "Não foi possível carregar os contratos.")
        return [Contract.from_api(c) for c in (data or [])]

    def get_contract(self, contract_id: Any) -> Contract:
        data = self._json("GET", f"/contracts/{contract_id}", "Não foi possível carregar o contrato.")
        return Contract.from_api(data or {})

    def create_contract(self, payload: Dict[str, Any]) -> Contract:
        data = self._json("POST", "/contracts", "Não foi possível criar o contrato.", json=payload)
        return Contract.from_api(data or {})

    def update_contract(self, contract_id: Any, payload: Dict[str, Any]) -> Contract:
        data = self._json(
            "PUT", f"/contracts/{contract_id}", "Não foi possível salvar as alterações.", json=payload
        )
        return Contract.from_api(data or {})

    def delete_contract(self, contract_id: Any) -> None:
        self._request("DELETE", f"/contracts/{contract_id}", "Não foi possível excluir o contrato.")

    def save_contract_item(self, contract_id: Any, payload: Dict[str, Any], fallback: str) -> Contract:
        """Add (no itemNo) or update (itemNo) an item. Returns the reloaded contract."""
        data = self._json("PUT", f"/contracts/{contract_id}/items", fallback, json=payload)
        return Contract.from_api(data or {})

    def delete_contract_item(self, contract_id: Any, item_no: int) -> Contract:
        data = self._json(
            "DELETE", f"/contracts/{contract_id}/items/{item_no}", "Não foi possível remover o item."
        )
        return Contract.from_api(data or {})

    def import_contract(self, extract_data: Dict[str, Any], file_name: str) -> Contract:
        """Create a contract and its items from the extraction result."""
        payload = {
            "fileName": file_name,
            "columns": extract_data.get("columns"),
            "rows": extract_data.get("rows"),
            "total": extract_data.get("soma_valor_total"),
            "totalUnit": extract_data.get("soma_valor_unit"),
            "issues": extract_data.get("issues") or [],
        }
        data = self._json(
            "POST", "/contracts/import", "Não foi possível importar o contrato.", json=payload
        )
        return Contract.from_api(data or {})

    # -----------------------------------------------------------------
    # Orders
    # -----------------------------------------------------------------
    def list_orders(self) -> List[Order]:
        data = self._json("GET", "/orders", "Não foi possível carregar as ordens já emitidas.")
        return [Order.from_api(o) for o in (data or [])]

    def get_order(self, order_id: Any) -> Order:
        data = self._json("GET", f"/orders/{order_id}", "Não foi possível carregar a ordem.")
        return Order.from_api(data or {})

    def create_order(self, payload: Dict[str, Any]) -> Order:
        data = self._json(
            "POST", "/orders",
            "Não foi possível criar a ordem. Verifique os dados e tente novamente.",
            json=payload,
        )
        return Order.from_api(data or {})

    def update_order(self, order_id: Any, payload: Dict[str, Any]) -> Order:
        data = self._json(
            "PUT", f"/orders/{order_id}", "Não foi possível salvar as alterações da ordem.", json=payload
        )
        return Order.from_api(data or {})

    def delete_order(self, order_id: Any) -> None:
        self._request("DELETE", f"/orders/{order_id}", "Não foi possível excluir a ordem.")

    def download_order_xlsx(self, order_id: Any, extras: Dict[str, Any]) -> bytes:
        response = self._request(
            "POST", f"/orders/{order_id}/xlsx", "Não foi possível baixar a ordem em XLSX.", json=extras
        )
        return response.content
