"""
Rate Selector - Choose and order the rates that apply to one taxable base.

A rate is selected when it is:
    - active, and the evaluation time lies within [start_date, end_date]
      (open bounds are unbounded);
    - of the requested category;
    - well formed (non-negative rate, max_threshold >= min_threshold);
    - (when an amount is given) within [min_threshold, max_threshold];
    - (for shipping) flagged shipping-taxable;
    - owned by one of the resolved jurisdictions, when those are given.

Selected rates are ordered by (rate priority, jurisdiction priority, rate id)
so stacking is deterministic regardless of repository order.

Misconfigured rates are skipped and logged, never raised on: configuration
errors are rejected at administration time, and one bad row must not make an
address unserviceable.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from tax_kernel.domain.dtos import Jurisdiction, TaxRate
from tax_kernel.domain.values import TaxCategory
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.rates")


class RateSelector:
    """Filters and orders candidate rates for a category."""

    def select(
        self,
        rates: Iterable[TaxRate],
        category: TaxCategory,
        at: datetime,
        amount: Decimal | None = None,
        jurisdictions: Mapping[UUID, Jurisdiction] | None = None,
        shipping_only: bool = False,
    ) -> tuple[TaxRate, ...]:
        """
        Select applicable rates.

        Args:
            rates: Candidate rates (typically already narrowed by the
                repository to the resolved jurisdictions).
            category: Category of the item or charge being taxed.
            at: Evaluation time for effective windows.
            amount: Base amount checked against thresholds; None skips the
                threshold check.
            jurisdictions: Resolved jurisdictions by id.  When given, rates
                of other jurisdictions are dropped and jurisdiction priority
                becomes the secondary sort key.
            shipping_only: Additionally require ``is_shipping_taxable``.

        Returns:
            Selected rates, lowest priority first.
        """
        selected: list[TaxRate] = []
        for rate in rates:
            if jurisdictions is not None and rate.jurisdiction_id not in jurisdictions:
                continue
            if rate.category != category:
                continue
            if shipping_only and not rate.is_shipping_taxable:
                continue
            if not rate.is_effective(at):
                continue
            if not rate.is_well_formed:
                logger.warning("rate_misconfigured_skipped", extra={
                    "rate_id": str(rate.id),
                    "rate_name": rate.name,
                    "rate": str(rate.rate),
                    "min_threshold": str(rate.min_threshold) if rate.min_threshold is not None else None,
                    "max_threshold": str(rate.max_threshold) if rate.max_threshold is not None else None,
                })
                continue
            if amount is not None and not rate.within_thresholds(amount):
                continue
            selected.append(rate)

        def sort_key(rate: TaxRate) -> tuple[int, int, str]:
            owner = jurisdictions.get(rate.jurisdiction_id) if jurisdictions else None
            return (rate.priority, owner.priority if owner else 0, str(rate.id))

        selected.sort(key=sort_key)

        logger.debug("rates_selected", extra={
            "category": category.value,
            "amount": str(amount) if amount is not None else None,
            "shipping_only": shipping_only,
            "selected": [rate.name for rate in selected],
        })
        return tuple(selected)
