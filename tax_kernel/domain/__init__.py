"""
Pure domain layer.

Immutable value objects and DTOs with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through an injected ``Clock``.
"""

from tax_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from tax_kernel.domain.dtos import (
    AppliedTax,
    Jurisdiction,
    ShippingTax,
    TaxableItem,
    TaxBreakdown,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxedItem,
    TaxExemption,
    TaxRate,
)
from tax_kernel.domain.values import (
    Address,
    JurisdictionType,
    RateKind,
    TaxCategory,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Values
    "Address",
    "JurisdictionType",
    "RateKind",
    "TaxCategory",
    # Configuration snapshots
    "Jurisdiction",
    "TaxRate",
    "TaxExemption",
    # Request / result
    "TaxableItem",
    "TaxCalculationRequest",
    "AppliedTax",
    "TaxedItem",
    "ShippingTax",
    "TaxBreakdown",
    "TaxCalculationResult",
]
