"""
sigecon/contract_items.py

Commands on contract items (add / update / delete), validated before any
network call.

Payload for PUT /contracts/:id/items:
- new item: {description, unit, quantity, unitPrice, totalPrice}
- update:   {itemNo, <changed fields>[, totalPrice]}

totalPrice is recomputed as quantity x unitPrice whenever both are sent.
An update form carries the loaded values as orig_<field>; fields still equal
to them are not sent.
Field permissions come from security.can_edit_field().
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from .reconciliation import num
from .security import can_create_items, can_delete_items, can_edit_field

MSG_NEW_ITEM_FIELDS = "Preencha descrição, unidade, quantidade e valor unitário para adicionar um novo item."
MSG_NEW_ITEM_FORBIDDEN = "Apenas administradores podem adicionar itens ao contrato."
MSG_ITEM_NO = "Não foi possível identificar o número do item."
MSG_QUANTITY_REQUIRED = "Informe a nova quantidade para atualizar o item."
MSG_NOTHING_TO_UPDATE = "Informe ao menos um campo para atualizar o item."
MSG_DELETE_FORBIDDEN = "Apenas administradores podem excluir itens do contrato."
MSG_INVALID_NUMBER = "Informe valores numéricos válidos para quantidade e valor unitário."

# Typed figures at or above this are rejected.
MAX_ITEM_FIGURE = Decimal("1e15")

_FIGURES = ("quantity", "unitPrice")


class ItemValidationError(ValueError):
    """Rejected before the request is sent; the message is shown inline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _clean(form: Mapping[str, Any], name: str) -> str:
    return str(form.get(name) or "").strip()


def _number(form: Mapping[str, Any], name: str):
    raw = _clean(form, name)
    if not raw:
        return None
    value = num(raw)
    if value is None or abs(value) >= MAX_ITEM_FIGURE:
        raise ItemValidationError(MSG_INVALID_NUMBER)
    return value


def _same_as_loaded(form: Mapping[str, Any], name: str, value: Any) -> bool:
    """True when the form says the field still holds the value it was loaded with."""
    loaded = form.get("orig_" + name)
    if loaded is None or value is None:
        return False
    if name in _FIGURES:
        return num(loaded) == value
    return str(loaded).strip() == value


def parse_item_no(raw: Any) -> Optional[int]:
    """Item number from a form field; None when missing or not numeric."""
    text = str(raw if raw is not None else "").strip()
    if not text.isdigit():
        return None
    return int(text)


def build_contract_item_payload(
    role: str | None,
    form: Mapping[str, Any],
    item_no: Any = None,
) -> Dict[str, Any]:
    """
    Validate a submitted item form and build the request body.

    item_no empty -> new item; otherwise an update of that item.
    Raises ItemValidationError with a Portuguese message.
    """
    description = _clean(form, "description")
    unit = _clean(form, "unit")
    quantity = _number(form, "quantity")
    unit_price = _number(form, "unitPrice")

    if item_no is None or str(item_no).strip() == "":
        if not can_create_items(role):
            raise ItemValidationError(MSG_NEW_ITEM_FORBIDDEN)
        if not description or not unit or quantity is None or unit_price is None:
            raise ItemValidationError(MSG_NEW_ITEM_FIELDS)
        return {
            "description": description,
            "unit": unit,
            "quantity": quantity,
            "unitPrice": unit_price,
            "totalPrice": quantity * unit_price,
        }

    number = parse_item_no(item_no)
    if number is None:
        raise ItemValidationError(MSG_ITEM_NO)

    submitted = {
        "description": description or None,
        "unit": unit or None,
        "quantity": quantity,
        "unitPrice": unit_price,
    }
    unchanged = {name for name, value in submitted.items() if _same_as_loaded(form, name, value)}
    # Quantity and unit price travel together so totalPrice stays consistent.
    if not unchanged.issuperset(_FIGURES):
        unchanged.difference_update(_FIGURES)

    # Fields outside the role's capabilities are dropped, not sent.
    changes = {
        name: value
        for name, value in submitted.items()
        if value is not None and name not in unchanged and can_edit_field(role, name)
    }

    if not can_edit_field(role, "description") and "quantity" not in changes:
        raise ItemValidationError(MSG_QUANTITY_REQUIRED)
    if not changes:
        raise ItemValidationError(MSG_NOTHING_TO_UPDATE)

    payload: Dict[str, Any] = {"itemNo": number, **changes}
    if "quantity" in changes and "unitPrice" in changes:
        payload["totalPrice"] = changes["quantity"] * changes["unitPrice"]
    return payload


def check_item_deletion(role: str | None, item_no: Any) -> int:
    """Item number to delete, or ItemValidationError."""
    if not can_delete_items(role):
        raise ItemValidationError(MSG_DELETE_FORBIDDEN)
    number = parse_item_no(item_no)
    if number is None:
        raise ItemValidationError(MSG_ITEM_NO)
    return number
