"""Amounts are carried as integer cents; JSON numbers are converted at the edge."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import InvalidInput

_CENT = Decimal("0.01")


def parse_amount(value: Any, *, field: str) -> int:
    if value is None:
        raise InvalidInput(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidInput(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInput(f"{field} must be a number") from exc
    if not amount.is_finite():
        raise InvalidInput(f"{field} must be a finite number")
    try:
        exact = amount == amount.quantize(_CENT)
    except InvalidOperation as exc:
        raise InvalidInput(f"{field} is out of range") from exc
    if not exact:
        raise InvalidInput(f"{field} supports at most two decimal places")
    if amount <= 0:
        raise InvalidInput(f"{field} must be greater than zero")
    return int(amount * 100)


def format_amount(cents: int) -> int | float:
    if cents % 100 == 0:
        return cents // 100
    return float(Decimal(cents) / 100)
