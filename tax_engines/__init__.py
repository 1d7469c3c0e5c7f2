"""
Module: tax_engines
Responsibility:
    Package entrypoint re-exporting the pure tax calculation engines.  This
    is the import surface for tax_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import tax_kernel (domain, logging) and sibling engine modules.
    MUST NOT import tax_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Evaluation times are
      passed in by the caller, which owns the clock.
    - Decimal-only arithmetic; no rounding.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from tax_engines import (
        JurisdictionResolver, RateSelector, TaxAccumulator, TaxResultBuilder,
    )
"""

from tax_engines.accumulator import TaxAccumulator, tax_for_rate
from tax_engines.aggregation import TaxResultBuilder, build_breakdowns, effective_rate
from tax_engines.exemptions import ExemptionEvaluator
from tax_engines.jurisdiction import JurisdictionResolver
from tax_engines.rates import RateSelector

__all__ = [
    "JurisdictionResolver",
    "RateSelector",
    "ExemptionEvaluator",
    "TaxAccumulator",
    "tax_for_rate",
    "TaxResultBuilder",
    "build_breakdowns",
    "effective_rate",
]
