"""Money totals for quotes and invoices."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from .models import LineItem


class Totals(BaseModel):
    subtotal: float
    tax: float
    total: float

    model_config = {"frozen": True}


def _line_total(line: LineItem | Mapping[str, Any]) -> Decimal:
    value = line.total if isinstance(line, LineItem) else line.get("total") or 0
    return Decimal(str(value))


def compute_totals(
    line_items: Iterable[LineItem | Mapping[str, Any]],
    tax_rate: float,
    tax_enabled: bool,
) -> Totals:
    """Sum line totals and apply a percentage tax.

    ``tax`` is zero whenever *tax_enabled* is false, whatever the rate.
    Arithmetic is decimal on the shortest repr of each amount, so
    ``20 * 8%`` is exactly ``1.6`` and nothing is rounded away: the
    subtotal is the sum of the line totals. Rounding to cents is left to
    display code.
    """
    subtotal = sum((_line_total(line) for line in line_items), Decimal(0))
    tax = subtotal * Decimal(str(tax_rate)) / 100 if tax_enabled else Decimal(0)
    return Totals(subtotal=float(subtotal), tax=float(tax), total=float(subtotal + tax))
