"""
sigecon/reconciliation.py

Contract balance and order quantity reconciliation.

Everything in this module is pure: no HTTP, no Flask. It works on the DTOs from
sigecon.models and returns Decimals / plain strings.

Rules:
- Summary/footer rows injected by the PDF extraction are never line items.
- The contract total is ALWAYS the sum of the filtered items, never the raw
  backend totalAmount, so the summary matches the item table.
- Order quantities are whole units. Fractional input is floored.
- The client holds no ledger: balances are re-read from the backend after
  every submission. Nothing here is authoritative.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

ZERO = Decimal("0")

# A remaining balance at or below this share of the total is "low".
LOW_BALANCE_RATIO = Decimal("0.10")

# Typed quantities at or above this are unusable.
MAX_ORDER_QUANTITY = Decimal("1e12")


# ---------------------------------------------------------------------
# Numeric parsing
# ---------------------------------------------------------------------
# Shape checks run before the fallback so that 1234.56 stays 1234.56.
_THOUSANDS_COMMA_DECIMAL = re.compile(r"\d{1,3}(\.\d{3})+,\d{2}")
_COMMA_DECIMAL = re.compile(r"\d+,\d{2}")
_DOT_DECIMAL = re.compile(r"\d+\.\d{2}")
_INTEGER = re.compile(r"\d+")
_PLAIN_NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_THOUSANDS_ONLY = re.compile(r"\d{1,3}(\.\d{3})+")
# Typed order quantities: sign, digits, one decimal point. No exponent.
_QUANTITY = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)")

_WHITESPACE = re.compile(r"\s+")
_CURRENCY = re.compile(r"R\$", re.IGNORECASE)
_TOTAL_WORD = re.compile(r"\btotal\b", re.IGNORECASE | re.ASCII)
_DIGITS = re.compile(r"\d+")


def _finite(value: Decimal) -> Optional[Decimal]:
    return value if value.is_finite() else None


def _sanitize(value: Any) -> str:
    """Drop whitespace and the literal R$ (any case)."""
    return _CURRENCY.sub("", _WHITESPACE.sub("", str(value)))


def num(value: Any) -> Optional[Decimal]:
    """
    Parse a number as the backend and the PDF extraction send it.

    Accepted string shapes, in priority order:
    1) 1.234,56  (thousands dot + comma decimal)
    2) 1234,56   (comma decimal)
    3) 1234.56   (dot decimal, exactly 2 fraction digits)
    4) 1234      (digits only)
    Anything else: drop every dot, turn the first comma into a dot.

    Returns None when the result is not a finite number (including "").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _finite(value)
    if isinstance(value, (int, float)):
        return _finite(Decimal(str(value)))

    raw = _sanitize(value)

    if _THOUSANDS_COMMA_DECIMAL.fullmatch(raw):
        raw = raw.replace(".", "").replace(",", ".")
    elif _COMMA_DECIMAL.fullmatch(raw):
        raw = raw.replace(",", ".")
    elif _DOT_DECIMAL.fullmatch(raw) or _INTEGER.fullmatch(raw):
        pass
    else:
        raw = raw.replace(".", "").replace(",", ".", 1)
        if not _PLAIN_NUMBER.fullmatch(raw):
            return None

    try:
        return _finite(Decimal(raw))
    except InvalidOperation:
        return None


def item_number(item: Any) -> Optional[int]:
    """Numeric item number (first run of digits), or None."""
    raw = item.item_no
    if raw is None:
        return None
    match = _DIGITS.search(str(raw))
    if not match:
        return None
    return int(match.group())


# ---------------------------------------------------------------------
# Contract items
# ---------------------------------------------------------------------
def _blank(value: Optional[Decimal]) -> bool:
    return value is None or value == ZERO


def is_line_item(item: Any) -> bool:
    """
    True for a real contract line item.

    Rejected rows:
    - empty description, or description containing the word "total"
    - "TOTAL DO CONTRATO" pattern: no quantity, no unit price, but a total
    - no figure at all, or every figure is zero
    """
    description = str(item.description or "").strip()
    if not description:
        return False
    if _TOTAL_WORD.search(description):
        return False

    quantity = num(item.quantity)
    unit_price = num(item.unit_price)
    total_price = num(item.total_price)

    if _blank(quantity) and _blank(unit_price) and total_price is not None:
        return False

    figures = [n for n in (quantity, unit_price, total_price) if n is not None]
    return any(n != ZERO for n in figures)


def _item_sort_key(item: Any):
    number = item_number(item)
    # Items without a number go last; sorted() keeps input order for ties.
    return (number is None, number or 0)


@dataclass(frozen=True)
class PreparedItems:
    sorted_items: List[Any]
    total_geral: Decimal


def prepare_contract_items(items: Optional[Iterable[Any]]) -> PreparedItems:
    """Filter out summary rows, sort by item number and sum totalPrice."""
    valid = [item for item in (items or []) if is_line_item(item)]
    sorted_items = sorted(valid, key=_item_sort_key)
    total = sum((num(item.total_price) or ZERO for item in sorted_items), ZERO)
    return PreparedItems(sorted_items=sorted_items, total_geral=total)


# ---------------------------------------------------------------------
# Contract balance
# ---------------------------------------------------------------------
class ContractStatus(str, Enum):
    OK = "OK"
    BAIXO = "BAIXO"
    ENCERRADO = "ENCERRADO"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    ContractStatus.OK: "Saldo OK",
    ContractStatus.BAIXO: "Saldo baixo",
    ContractStatus.ENCERRADO: "Encerrado",
}


def classify_contract_status(total_amount: Any, remaining_amount: Any) -> ContractStatus:
    """
    Threshold classifier (order matters):
    1) total <= 0              -> OK (nothing to judge)
    2) remaining <= 0          -> ENCERRADO
    3) remaining/total <= 10%  -> BAIXO
    4) otherwise               -> OK

    An unknown remaining amount counts as the full total.
    """
    total = num(total_amount) or ZERO
    if total <= ZERO:
        return ContractStatus.OK

    remaining = num(remaining_amount)
    if remaining is None:
        remaining = total

    if remaining <= ZERO:
        return ContractStatus.ENCERRADO
    if remaining / total <= LOW_BALANCE_RATIO:
        return ContractStatus.BAIXO
    return ContractStatus.OK


@dataclass(frozen=True)
class FinancialSummary:
    """
    Contract totals as displayed.

    used / remaining are None when the backend did not report them; templates
    render None as a dash instead of a misleading zero.
    """

    total: Decimal
    used: Optional[Decimal]
    remaining: Optional[Decimal]

    @property
    def status(self) -> ContractStatus:
        return classify_contract_status(self.total, self.remaining)


def contract_financial_summary(contract: Any) -> FinancialSummary:
    total = prepare_contract_items(contract.items).total_geral
    used = num(contract.used_amount)
    remaining = num(contract.remaining_amount)

    if remaining is None and used is not None:
        remaining = total - used

    return FinancialSummary(total=total, used=used, remaining=remaining)


# ---------------------------------------------------------------------
# Order quantities
# ---------------------------------------------------------------------
def parse_quantity_input(raw: Any) -> Optional[Decimal]:
    """
    Parse a typed quantity.

    A comma is the decimal separator and dots are then thousand separators.
    Without a comma, dots are thousand separators only in the 1.234 shape;
    a lone dot elsewhere (12.7) is a decimal point.
    """
    text = _WHITESPACE.sub("", str(raw if raw is not None else ""))
    if not text:
        return None

    if "," in text or _THOUSANDS_ONLY.fullmatch(text):
        text = text.replace(".", "").replace(",", ".", 1)

    if not _QUANTITY.fullmatch(text):
        return None
    try:
        return _finite(Decimal(text))
    except InvalidOperation:
        return None


def normalize_order_quantity(raw: Any, available: Any = None) -> str:
    """
    Stored form of a typed order quantity.

    - invalid, zero, negative or absurdly large -> "" (item not part of the order)
    - above the available balance -> clamped to it
    - floored to whole units and returned as a string
    """
    value = parse_quantity_input(raw)
    if value is None or value <= ZERO or value >= MAX_ORDER_QUANTITY:
        return ""

    limit = num(available)
    if limit is not None and value > limit:
        value = limit

    whole = int(value.to_integral_value(rounding=ROUND_FLOOR))
    if whole <= 0:
        return ""
    return str(whole)


def order_line_total(quantity: Any, unit_price: Any) -> Decimal:
    """quantity x unit price, or 0 when the quantity is empty/invalid."""
    q = num(quantity) if quantity not in (None, "") else None
    if q is None or q <= ZERO:
        return ZERO
    return q * (num(unit_price) or ZERO)


def order_total(items: Iterable[Any], quantities: Mapping[str, str]) -> Decimal:
    """Sum of line totals for items with a positive stored quantity."""
    return sum(
        (order_line_total(quantities.get(str(item.id)), item.unit_price) for item in items),
        ZERO,
    )


def build_order_items_payload(
    items: Iterable[Any],
    quantities: Mapping[str, str],
    id_field: str = "contractItemId",
) -> List[Dict[str, Any]]:
    """
    Items sent to the backend.

    id_field is "contractItemId" when issuing a new order and "orderItemId"
    when editing the items of an existing one. Empty quantities are skipped.
    """
    payload: List[Dict[str, Any]] = []
    for item in items:
        stored = quantities.get(str(item.id)) or ""
        if not stored:
            continue
        quantity = int(stored)
        if quantity <= 0:
            continue
        payload.append({id_field: item.id, "quantity": quantity})
    return payload


@dataclass
class OrderDraft:
    """
    Client-side draft of an order: typed quantities keyed by item id.

    Works for contract items (issuing) and order items (editing); both expose
    id, unit_price and available.
    """

    items: List[Any]
    id_field: str = "contractItemId"
    quantities: Dict[str, str] = field(default_factory=dict)

    def set_quantity(self, item_id: Any, raw: Any) -> str:
        key = str(item_id)
        item = next((it for it in self.items if str(it.id) == key), None)
        if item is None:
            raise KeyError(item_id)

        stored = normalize_order_quantity(raw, item.available)
        if stored:
            self.quantities[key] = stored
        else:
            self.quantities.pop(key, None)
        return stored

    def quantity_for(self, item: Any) -> str:
        return self.quantities.get(str(item.id), "")

    def line_total(self, item: Any) -> Decimal:
        return order_line_total(self.quantity_for(item), item.unit_price)

    @property
    def total(self) -> Decimal:
        return order_total(self.items, self.quantities)

    def payload(self) -> List[Dict[str, Any]]:
        return build_order_items_payload(self.items, self.quantities, self.id_field)

    def is_empty(self) -> bool:
        return not self.payload()
