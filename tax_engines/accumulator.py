"""
Module: tax_engines.accumulator
Responsibility:
    Stack the selected rates over one taxable base (an item or the shipping
    charge) and produce the per-rate audit lines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only tax_kernel domain types and sibling engines.

Algorithm:
    cumulative = 0
    for rate in selected rates (priority order):
        skip if not effective now, or suppressed by an exemption
        base = subtotal                 (non-compound)
             = subtotal + cumulative    (compound)
        tax  = base * rate              (percentage / compound kinds)
             = rate * quantity          (flat kind)
        cumulative += tax
        emit AppliedTax(base, tax)
    item tax = cumulative

Invariants enforced:
    - Decimal arithmetic only; nothing is rounded here.  Rounding policy is a
      presentation concern of the caller.
    - Items flagged ``is_exempt`` short-circuit to zero tax with no lines.
    - Exemption-suppressed rates contribute nothing.  They produce a
      zero-amount line only when ``record_exempt_rates`` is set.
    - Rate kinds are a closed set; an unknown kind raises ValueError.

Failure modes:
    - ValueError for a rate kind outside RateKind.
    - KeyError if a rate's jurisdiction is missing from the supplied map
      (selection guarantees this cannot happen for selected rates).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from tax_engines.exemptions import ExemptionEvaluator
from tax_kernel.domain.dtos import (
    AppliedTax,
    Jurisdiction,
    ShippingTax,
    TaxableItem,
    TaxedItem,
    TaxExemption,
    TaxRate,
)
from tax_kernel.domain.values import RateKind
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.accumulator")

ZERO = Decimal("0")


def _percentage_tax(rate: TaxRate, base: Decimal, quantity: int) -> Decimal:
    return base * rate.rate


def _flat_tax(rate: TaxRate, base: Decimal, quantity: int) -> Decimal:
    return rate.rate * Decimal(quantity)


def tax_for_rate(rate: TaxRate, base: Decimal, quantity: int) -> Decimal:
    """
    Tax produced by one rate on one base.

    Raises:
        ValueError: If the rate kind is unknown.
    """
    match rate.kind:
        case RateKind.PERCENTAGE | RateKind.COMPOUND:
            return _percentage_tax(rate, base, quantity)
        case RateKind.FLAT:
            return _flat_tax(rate, base, quantity)
        case _:
            logger.error("rate_kind_unknown", extra={
                "rate_id": str(rate.id),
                "kind": str(rate.kind),
            })
            raise ValueError(f"Unknown rate kind: {rate.kind}")


class TaxAccumulator:
    """
    Applies selected rates to items and to the shipping charge.

    Contract:
        ``rates`` passed in must already be selected and ordered by
        ``RateSelector``; the accumulator applies them in the given order.
    """

    def __init__(
        self,
        exemption_evaluator: ExemptionEvaluator | None = None,
        record_exempt_rates: bool = False,
    ):
        self._exemptions = exemption_evaluator or ExemptionEvaluator()
        self._record_exempt_rates = record_exempt_rates

    def tax_item(
        self,
        item: TaxableItem,
        rates: Sequence[TaxRate],
        jurisdictions: Mapping[UUID, Jurisdiction],
        exemptions: Sequence[TaxExemption],
        at: datetime,
    ) -> TaxedItem:
        """Tax one item."""
        if item.is_exempt:
            logger.debug("item_exempt", extra={
                "item_id": item.item_id,
                "sku": item.sku,
            })
            return self._taxed_item(item, ZERO, ())

        total, lines = self._accumulate(
            item.subtotal, item.quantity, rates, jurisdictions, exemptions, at,
        )
        logger.debug("item_taxed", extra={
            "item_id": item.item_id,
            "category": item.category.value,
            "subtotal": str(item.subtotal),
            "tax_amount": str(total),
            "line_count": len(lines),
        })
        return self._taxed_item(item, total, lines)

    def tax_shipping(
        self,
        amount: Decimal,
        rates: Sequence[TaxRate],
        jurisdictions: Mapping[UUID, Jurisdiction],
        exemptions: Sequence[TaxExemption],
        at: datetime,
    ) -> ShippingTax:
        """Tax the shipping charge (quantity fixed at 1)."""
        total, lines = self._accumulate(
            amount, 1, rates, jurisdictions, exemptions, at,
        )
        logger.debug("shipping_taxed", extra={
            "amount": str(amount),
            "tax_amount": str(total),
            "line_count": len(lines),
        })
        return ShippingTax(amount=amount, tax_amount=total, taxes=lines)

    def _accumulate(
        self,
        subtotal: Decimal,
        quantity: int,
        rates: Sequence[TaxRate],
        jurisdictions: Mapping[UUID, Jurisdiction],
        exemptions: Sequence[TaxExemption],
        at: datetime,
    ) -> tuple[Decimal, tuple[AppliedTax, ...]]:
        cumulative = ZERO
        lines: list[AppliedTax] = []

        for rate in rates:
            if not rate.is_effective(at):
                continue

            jurisdiction = jurisdictions[rate.jurisdiction_id]
            base = subtotal + cumulative if rate.applies_compounding else subtotal

            exemption = self._exemptions.find_exemption(rate, exemptions, at)
            if exemption is not None:
                logger.debug("rate_exempted", extra={
                    "rate_id": str(rate.id),
                    "rate_name": rate.name,
                    "certificate": exemption.certificate,
                })
                if self._record_exempt_rates:
                    lines.append(
                        self._line(rate, jurisdiction, base, ZERO, exemption.certificate)
                    )
                continue

            tax = tax_for_rate(rate, base, quantity)
            cumulative += tax
            lines.append(self._line(rate, jurisdiction, base, tax))

        return cumulative, tuple(lines)

    @staticmethod
    def _line(
        rate: TaxRate,
        jurisdiction: Jurisdiction,
        base: Decimal,
        tax: Decimal,
        certificate: str | None = None,
    ) -> AppliedTax:
        return AppliedTax(
            jurisdiction_code=jurisdiction.code,
            jurisdiction_name=jurisdiction.name,
            tax_rate_name=rate.name,
            tax_type=rate.kind,
            rate=rate.rate,
            taxable_amount=base,
            tax_amount=tax,
            is_compound=rate.applies_compounding,
            jurisdiction_type=jurisdiction.jurisdiction_type,
            rate_id=rate.id,
            exemption_certificate=certificate,
        )

    @staticmethod
    def _taxed_item(
        item: TaxableItem,
        tax: Decimal,
        lines: tuple[AppliedTax, ...],
    ) -> TaxedItem:
        return TaxedItem(
            item_id=item.item_id,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
            category=item.category,
            tax_amount=tax,
            taxes=lines,
        )
