"""
Exemption Evaluator - Decide whether a customer exemption suppresses a rate.

An exemption covers a rate when it is currently effective and its optional
jurisdiction and category scopes both match the rate (unset scope = all).
Suppression is all-or-nothing per rate: there are no partial exemptions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from tax_kernel.domain.dtos import TaxExemption, TaxRate


class ExemptionEvaluator:
    """Finds the exemption, if any, that suppresses a rate."""

    def find_exemption(
        self,
        rate: TaxRate,
        exemptions: Sequence[TaxExemption],
        at: datetime,
    ) -> TaxExemption | None:
        """First effective exemption (in the given order) covering ``rate``."""
        for exemption in exemptions:
            if not exemption.is_effective(at):
                continue
            if exemption.applies_to(rate.jurisdiction_id, rate.category):
                return exemption
        return None

    def is_exempt(
        self,
        rate: TaxRate,
        exemptions: Sequence[TaxExemption],
        at: datetime,
    ) -> bool:
        return self.find_exemption(rate, exemptions, at) is not None
