"""
Amounts -- pure derivation of transaction totals from member items.

The single formula shared by the reconciler (which writes it) and the
movement pre-flight (which projects it before any write):

    subtotal = sum(item.value_for(basis))
    tax      = round(subtotal * rate / 100)
    amount   = subtotal + tax
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Sequence

from inventory_kernel.domain.dtos import AmountBreakdown, Item, ValuationBasis
from inventory_kernel.domain.values import (
    compute_tax,
    format_amount,
    parse_amount,
    round_money,
    sum_amounts,
)


def compute_breakdown(
    items: Sequence[Item],
    basis: ValuationBasis,
    tax_rate_pct: Decimal | None = None,
    missing_item_ids: Iterable[str] = (),
) -> AmountBreakdown:
    subtotal = round_money(sum_amounts(item.value_for(basis) for item in items))
    tax = compute_tax(subtotal, tax_rate_pct)
    purchase_total = sum_amounts(item.purchase_price for item in items)
    return AmountBreakdown(
        subtotal=format_amount(subtotal),
        tax_amount=format_amount(tax),
        amount=format_amount(subtotal + tax),
        sum_item_purchase_prices=format_amount(purchase_total),
        item_count=len(items),
        missing_item_ids=tuple(missing_item_ids),
    )


def is_negative(breakdown: AmountBreakdown) -> bool:
    return parse_amount(breakdown.subtotal) < 0 or parse_amount(breakdown.amount) < 0
