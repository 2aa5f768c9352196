"""
SIGECON – Domain DTOs

The backend is the only owner of state; these dataclasses are read-only views
of its JSON payloads.

Normalization happens ONCE, in each from_api() classmethod:
- camelCase / snake_case variants (itemNo / item_no, unitPrice / unit_price)
- Portuguese variants on contracts (numero / fornecedor)
- amounts parsed with reconciliation.num() into Decimal
- dates parsed into datetime.date

Nothing outside this module should look at raw payload keys.

IMPORTANT:
- usedAmount / remainingAmount stay None when the backend omits them.
  "Unknown" is not the same as zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from .formatting import initials, normalize_date_for_input, parse_api_date
from .reconciliation import ZERO, num


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First non-null value among keys."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


# ---------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------
@dataclass
class ContractItem:
    """One line of a contract (may be extraction noise until filtered)."""

    id: Any = None
    item_no: Any = None
    description: str = ""
    unit: str = ""
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    available_quantity: Optional[Decimal] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "ContractItem":
        return cls(
            id=payload.get("id"),
            item_no=_pick(payload, "itemNo", "item_no"),
            description=_text(payload.get("description")),
            unit=_text(payload.get("unit")),
            quantity=num(payload.get("quantity")),
            unit_price=num(_pick(payload, "unitPrice", "unit_price")),
            total_price=num(_pick(payload, "totalPrice", "total_price")),
            available_quantity=num(_pick(payload, "availableQuantity", "available_quantity")),
        )

    @property
    def available(self) -> Optional[Decimal]:
        """Quantity that can still be ordered (contract quantity when not reported)."""
        if self.available_quantity is not None:
            return self.available_quantity
        return self.quantity


@dataclass
class Contract:
    id: Any = None
    number: str = ""
    supplier: str = ""
    description: str = ""
    start_date: str = ""
    end_date: str = ""
    items: List[ContractItem] = field(default_factory=list)
    total_amount: Optional[Decimal] = None
    used_amount: Optional[Decimal] = None
    remaining_amount: Optional[Decimal] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Contract":
        return cls(
            id=payload.get("id"),
            number=_text(_pick(payload, "number", "numero")),
            supplier=_text(_pick(payload, "supplier", "fornecedor")),
            description=_text(_pick(payload, "description", "descricao")),
            start_date=normalize_date_for_input(_pick(payload, "startDate", "start_date")),
            end_date=normalize_date_for_input(_pick(payload, "endDate", "end_date")),
            items=[ContractItem.from_api(it) for it in (payload.get("items") or [])],
            total_amount=num(_pick(payload, "totalAmount", "total_amount")),
            used_amount=num(_pick(payload, "usedAmount", "used_amount")),
            remaining_amount=num(_pick(payload, "remainingAmount", "remaining_amount")),
        )

    def display_name(self) -> str:
        if self.supplier:
            return f"{self.number} — {self.supplier}"
        return self.number


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
@dataclass
class OrderItem:
    id: Any = None
    item_no: Any = None
    description: str = ""
    unit: str = ""
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    total_price: Decimal = ZERO
    available_quantity: Optional[Decimal] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "OrderItem":
        return cls(
            id=payload.get("id"),
            item_no=_pick(payload, "itemNo", "item_no"),
            description=_text(payload.get("description")),
            unit=_text(payload.get("unit")),
            quantity=num(payload.get("quantity")) or ZERO,
            unit_price=num(_pick(payload, "unitPrice", "unit_price")) or ZERO,
            total_price=num(_pick(payload, "totalPrice", "total_price")) or ZERO,
            available_quantity=num(_pick(payload, "availableQuantity", "available_quantity")),
        )

    @property
    def available(self) -> Optional[Decimal]:
        return self.available_quantity


@dataclass
class Order:
    """Full order (detail endpoint) or a summary row (list endpoint, no items)."""

    id: Any = None
    order_number: str = ""
    order_type: str = ""
    issue_date: Optional[date] = None
    justification: str = ""
    reference_period: str = ""
    contract_id: Any = None
    contract_number: str = ""
    supplier: str = ""
    items: List[OrderItem] = field(default_factory=list)
    total_amount: Decimal = ZERO

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Order":
        items = [OrderItem.from_api(it) for it in (payload.get("items") or [])]
        total = num(_pick(payload, "totalAmount", "total_amount"))
        if total is None:
            total = sum((it.quantity * it.unit_price for it in items), ZERO)
        return cls(
            id=payload.get("id"),
            order_number=_text(_pick(payload, "orderNumber", "order_number")),
            order_type=_text(_pick(payload, "orderType", "order_type")),
            issue_date=parse_api_date(_pick(payload, "issueDate", "issue_date")),
            justification=_text(payload.get("justification")),
            reference_period=_text(_pick(payload, "referencePeriod", "reference_period")),
            contract_id=_pick(payload, "contractId", "contract_id"),
            contract_number=_text(_pick(payload, "contractNumber", "contract_number")),
            supplier=_text(_pick(payload, "supplier", "fornecedor")),
            items=items,
            total_amount=total,
        )

    def title(self) -> str:
        return f"{self.order_type or 'Ordem'} nº {self.order_number or self.id}"

    def xlsx_filename(self) -> str:
        return f"ordem_{self.order_number or self.id}.xlsx"


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
@dataclass
class UserProfile:
    id: Any = None
    nome: str = ""
    cpf: str = ""
    role: str = ""
    ativo: Optional[bool] = None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "UserProfile":
        return cls(
            id=payload.get("id"),
            nome=_text(_pick(payload, "nome", "name")),
            cpf=_text(payload.get("cpf")),
            role=_text(payload.get("role")).upper(),
            ativo=_pick(payload, "ativo", "active"),
        )

    def to_session(self) -> Dict[str, Any]:
        """Plain dict stored in the session cookie (read back with from_api)."""
        return {
            "id": self.id,
            "nome": self.nome,
            "cpf": self.cpf,
            "role": self.role,
            "ativo": self.ativo,
        }

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def initials(self) -> str:
        return initials(self.nome)
