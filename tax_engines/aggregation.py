"""
Result Aggregator - Fold taxed items and shipping into one result.

Subtotal and total tax are accumulated as items are added (input order is
preserved in the result).  ``finalize()`` runs once and:

    - groups every AppliedTax line (items, then shipping) by jurisdiction
      code, in order of first appearance;
    - total_amount = subtotal + shipping amount + total_tax;
    - effective_tax_rate = total_tax / subtotal (0 when subtotal is 0).

Zero-amount lines recorded for exemption-suppressed rates are audit-only and
are left out of the breakdowns.

Invariant: sum(breakdown.total_tax_amount) == total_tax.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from tax_kernel.domain.dtos import (
    AppliedTax,
    ShippingTax,
    TaxBreakdown,
    TaxCalculationResult,
    TaxedItem,
)
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

ZERO = Decimal("0")


def effective_rate(total_tax: Decimal, subtotal: Decimal) -> Decimal:
    if subtotal == ZERO:
        return ZERO
    return total_tax / subtotal


def build_breakdowns(lines: Iterable[AppliedTax]) -> tuple[TaxBreakdown, ...]:
    """Group lines by jurisdiction code, preserving first-appearance order."""
    groups: dict[str, list[AppliedTax]] = {}
    for line in lines:
        if line.exemption_certificate is not None:
            continue
        groups.setdefault(line.jurisdiction_code, []).append(line)

    breakdowns = []
    for code, members in groups.items():
        first = members[0]
        breakdowns.append(TaxBreakdown(
            jurisdiction_code=code,
            jurisdiction_name=first.jurisdiction_name,
            jurisdiction_type=first.jurisdiction_type,
            total_tax_amount=sum((m.tax_amount for m in members), ZERO),
            rates=tuple(members),
        ))
    return tuple(breakdowns)


class TaxResultBuilder:
    """
    Mutable accumulator for one calculation; ``finalize()`` freezes it.

    Raises:
        RuntimeError: On any mutation or second finalize after finalize().
    """

    def __init__(self, calculated_at: datetime, order_id: str | None = None):
        self._calculated_at = calculated_at
        self._order_id = order_id
        self._items: list[TaxedItem] = []
        self._shipping: ShippingTax | None = None
        self._subtotal = ZERO
        self._total_tax = ZERO
        self._jurisdictions_used: list[str] = []
        self._finalized = False

    @property
    def subtotal(self) -> Decimal:
        return self._subtotal

    @property
    def total_tax(self) -> Decimal:
        return self._total_tax

    def add_item(self, item: TaxedItem) -> None:
        self._check_open()
        self._items.append(item)
        self._subtotal += item.subtotal
        self._total_tax += item.tax_amount

    def set_shipping(self, shipping: ShippingTax) -> None:
        self._check_open()
        if self._shipping is not None:
            self._total_tax -= self._shipping.tax_amount
        self._shipping = shipping
        self._total_tax += shipping.tax_amount

    def record_jurisdictions(self, codes: Iterable[str]) -> None:
        """Record resolved jurisdiction codes (distinct, first-seen order)."""
        self._check_open()
        for code in codes:
            if code not in self._jurisdictions_used:
                self._jurisdictions_used.append(code)

    def finalize(self) -> TaxCalculationResult:
        self._check_open()
        self._finalized = True

        lines = [line for item in self._items for line in item.taxes]
        shipping_amount = ZERO
        shipping_tax = ZERO
        if self._shipping is not None:
            lines.extend(self._shipping.taxes)
            shipping_amount = self._shipping.amount
            shipping_tax = self._shipping.tax_amount

        result = TaxCalculationResult(
            items=tuple(self._items),
            shipping=self._shipping,
            shipping_tax=shipping_tax,
            total_tax=self._total_tax,
            subtotal=self._subtotal,
            total_amount=self._subtotal + shipping_amount + self._total_tax,
            effective_tax_rate=effective_rate(self._total_tax, self._subtotal),
            breakdowns=build_breakdowns(lines),
            jurisdictions_used=tuple(self._jurisdictions_used),
            calculated_at=self._calculated_at,
            order_id=self._order_id,
        )

        logger.debug("tax_result_finalized", extra={
            "order_id": self._order_id,
            "item_count": len(result.items),
            "breakdown_count": len(result.breakdowns),
            "total_tax": str(result.total_tax),
        })
        return result

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("Tax result has already been finalized")
