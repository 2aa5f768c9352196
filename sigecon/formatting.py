"""
Formatting helpers shared by routes and templates. This includes:
- format_cpf: progressive ###.###.###-## mask for CPF inputs.
- fmt_money / fmt_num: pt-BR display of amounts and quantities.
- fmt_decimal_input: exact, re-parseable value for edit form inputs.
- normalize_date_for_input / parse_api_date / fmt_date_br: date handling.
- contract_row_class: CSS class for contract rows based on balance status.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .reconciliation import ContractStatus, num

_NON_DIGITS = re.compile(r"\D")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_BR_DATE = re.compile(r"(\d{2})/(\d{2})/(\d{4})")

DASH = "—"


def digits_only(value: Any) -> str:
    """Keep only digits (CPF/CNPJ inputs)."""
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def format_cpf(value: Any) -> str:
    """
    Mask a CPF as it is typed: 123 -> 123, 1234 -> 123.4,
    12345678901 -> 123.456.789-01.

    Non-digits are dropped and at most 11 digits are kept. A separator is
    emitted only once the group after it has at least one digit.
    """
    digits = digits_only(value)[:11]
    part1, part2, part3, part4 = digits[:3], digits[3:6], digits[6:9], digits[9:11]

    formatted = part1
    if part2:
        formatted += "." + part2
    if part3:
        formatted += "." + part3
    if part4:
        formatted += "-" + part4
    return formatted


def _group_thousands(integer_part: str) -> str:
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    return ".".join(groups)


def _pt_br(value: Decimal, places: int, keep_zeros: bool) -> str:
    quantum = Decimal(1).scaleb(-places)
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    integer_part, _, fraction = f"{abs(rounded):.{places}f}".partition(".")
    if not keep_zeros:
        fraction = fraction.rstrip("0")
    text = _group_thousands(integer_part)
    if fraction:
        text += "," + fraction
    return sign + text


def fmt_money(value: Any) -> str:
    """R$ 1.234,56 (invalid/missing values display as R$ 0,00)."""
    amount = num(value) or Decimal("0")
    text = _pt_br(amount, 2, keep_zeros=True)
    if text.startswith("-"):
        return "-R$ " + text[1:]
    return "R$ " + text


def fmt_money_or_dash(value: Any) -> str:
    """Like fmt_money, but an unknown amount (None) displays as a dash."""
    if value is None:
        return DASH
    return fmt_money(value)


def fmt_num(value: Any) -> str:
    """Up to 2 fraction digits, pt-BR separators; empty for invalid values."""
    n = num(value)
    if n is None:
        return ""
    return _pt_br(n, 2, keep_zeros=False)


def fmt_decimal_input(value: Any) -> str:
    """Exact value for a form input: every stored digit, comma decimal, no grouping."""
    n = num(value)
    if n is None:
        return ""
    return format(n, "f").replace(".", ",")


def parse_api_date(value: Any) -> Optional[date]:
    """Accept date/datetime objects, ISO strings (with or without time) and dd/mm/yyyy."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _BR_DATE.match(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_date_for_input(value: Any) -> str:
    """YYYY-MM-DD for <input type="date">; unparseable values keep their first 10 chars."""
    if not value:
        return ""
    parsed = parse_api_date(value)
    if parsed is None:
        return str(value)[:10]
    return parsed.isoformat()


def fmt_date_br(value: Any) -> str:
    parsed = parse_api_date(value)
    if parsed is None:
        return DASH
    return parsed.strftime("%d/%m/%Y")


def initials(name: Any) -> str:
    """Up to two uppercase initials for the avatar."""
    parts = [p for p in str(name or "").split(" ") if p]
    return "".join(p[0].upper() for p in parts[:2])


def contract_row_class(status: ContractStatus) -> str:
    """
    CSS class for a contract row:
    1) ENCERRADO -> red
    2) BAIXO     -> yellow
    """
    if status == ContractStatus.ENCERRADO:
        return "row-closed"
    if status == ContractStatus.BAIXO:
        return "row-low"
    return ""
