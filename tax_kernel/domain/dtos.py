"""
DTOs -- Immutable configuration snapshots and calculation records.

Responsibility:
    Defines the data that flows through a tax calculation:
    configuration entities (Jurisdiction, TaxRate, TaxExemption), the input
    (TaxableItem, TaxCalculationRequest), and the auditable output
    (AppliedTax, TaxedItem, ShippingTax, TaxBreakdown, TaxCalculationResult).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies; ORM models convert to these via ``to_dto()``.

Invariants enforced:
    - All DTOs are ``frozen=True``; collections are tuples.
    - All monetary and rate fields are ``Decimal`` -- NEVER ``float``.
    - Configuration DTOs never raise on inconsistent thresholds or negative
      rates: those are rejected at administration time, and the engine skips
      such rates via ``TaxRate.is_well_formed``.

Audit relevance:
    AppliedTax records the base and amount of every rate contribution, so a
    result can be re-derived by hand from its lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from tax_kernel.domain.values import (
    Address,
    JurisdictionType,
    RateKind,
    TaxCategory,
)

ZERO = Decimal("0")


def _within_window(
    at: datetime,
    start: datetime | None,
    end: datetime | None,
) -> bool:
    """Open bounds are treated as -inf / +inf."""
    if start is not None and at < start:
        return False
    if end is not None and at > end:
        return False
    return True


# ---------------------------------------------------------------------------
# Configuration snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Jurisdiction:
    """
    A geographic tax authority with attribute-based address filters.

    Unset filters (``None``) act as wildcards; the country always has to
    match.
    """

    id: UUID
    code: str
    name: str
    jurisdiction_type: JurisdictionType
    country: str
    state_province: str | None = None
    county: str | None = None
    city: str | None = None
    postal_code: str | None = None
    parent_id: UUID | None = None
    is_active: bool = True
    priority: int = 0

    def matches(self, address: Address) -> bool:
        """True when the country and every specified filter equal the address."""
        if self.country != address.country:
            return False
        filters = (
            (self.state_province, address.state_province),
            (self.county, address.county),
            (self.city, address.city),
            (self.postal_code, address.postal_code),
        )
        return all(wanted is None or wanted == actual for wanted, actual in filters)


@dataclass(frozen=True)
class TaxRate:
    """
    One rate belonging to exactly one jurisdiction.

    ``rate`` is a fraction for percentage/compound kinds (0.0825 for 8.25%)
    and a per-unit amount for the flat kind.
    """

    id: UUID
    jurisdiction_id: UUID
    name: str
    rate: Decimal
    kind: RateKind = RateKind.PERCENTAGE
    category: TaxCategory = TaxCategory.GENERAL
    is_compound: bool = False
    is_shipping_taxable: bool = False
    min_threshold: Decimal | None = None
    max_threshold: Decimal | None = None
    priority: int = 0
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None

    @property
    def applies_compounding(self) -> bool:
        """Compound flag set, or the dedicated COMPOUND kind."""
        return self.is_compound or self.kind == RateKind.COMPOUND

    @property
    def is_well_formed(self) -> bool:
        """Non-negative rate and a coherent threshold range."""
        if self.rate < ZERO:
            return False
        if (
            self.min_threshold is not None
            and self.max_threshold is not None
            and self.max_threshold < self.min_threshold
        ):
            return False
        return True

    def is_effective(self, at: datetime) -> bool:
        """Active and ``at`` within [start_date, end_date]."""
        return self.is_active and _within_window(at, self.start_date, self.end_date)

    def within_thresholds(self, amount: Decimal) -> bool:
        """Amount within [min_threshold, max_threshold]; open bounds unconstrained."""
        if self.min_threshold is not None and amount < self.min_threshold:
            return False
        if self.max_threshold is not None and amount > self.max_threshold:
            return False
        return True


@dataclass(frozen=True)
class TaxExemption:
    """
    A customer-scoped exemption certificate.

    ``jurisdiction_id`` / ``category`` of ``None`` mean "all".
    """

    id: UUID
    customer_id: str
    certificate: str
    jurisdiction_id: UUID | None = None
    category: TaxCategory | None = None
    reason: str = ""
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None

    def is_effective(self, at: datetime) -> bool:
        return self.is_active and _within_window(at, self.start_date, self.end_date)

    def applies_to(self, jurisdiction_id: UUID, category: TaxCategory) -> bool:
        if self.jurisdiction_id is not None and self.jurisdiction_id != jurisdiction_id:
            return False
        if self.category is not None and self.category != category:
            return False
        return True


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxableItem:
    """One order line to be taxed."""

    item_id: str
    sku: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    category: TaxCategory = TaxCategory.GENERAL
    is_exempt: bool = False
    description: str | None = None


@dataclass(frozen=True)
class TaxCalculationRequest:
    """Everything needed to tax one order."""

    shipping_address: Address | None
    items: tuple[TaxableItem, ...] = ()
    shipping_amount: Decimal = ZERO
    order_id: str | None = None
    customer_id: str | None = None
    billing_address: Address | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    @property
    def subtotal(self) -> Decimal:
        """Sum of item subtotals."""
        return sum((item.subtotal for item in self.items), ZERO)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppliedTax:
    """
    One rate's contribution to one taxed line.

    ``exemption_certificate`` is only set on zero-amount lines recorded for
    exemption-suppressed rates (opt-in).
    """

    jurisdiction_code: str
    jurisdiction_name: str
    tax_rate_name: str
    tax_type: RateKind
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    is_compound: bool = False
    jurisdiction_type: JurisdictionType | None = None
    rate_id: UUID | None = None
    exemption_certificate: str | None = None

    @property
    def rate_percent(self) -> Decimal:
        """Rate as percentage (e.g., 8.25 for 8.25%)."""
        return self.rate * Decimal("100")


@dataclass(frozen=True)
class TaxedItem:
    """An item echoed back with its tax."""

    item_id: str
    sku: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    category: TaxCategory
    tax_amount: Decimal = ZERO
    taxes: tuple[AppliedTax, ...] = ()


@dataclass(frozen=True)
class ShippingTax:
    """Tax levied on the shipping charge."""

    amount: Decimal
    tax_amount: Decimal = ZERO
    taxes: tuple[AppliedTax, ...] = ()


@dataclass(frozen=True)
class TaxBreakdown:
    """Taxes grouped by jurisdiction."""

    jurisdiction_code: str
    jurisdiction_name: str
    jurisdiction_type: JurisdictionType | None
    total_tax_amount: Decimal
    rates: tuple[AppliedTax, ...] = ()


@dataclass(frozen=True)
class TaxCalculationResult:
    """
    Final, immutable calculation result.

    Produced only by ``TaxResultBuilder.finalize()``.
    """

    items: tuple[TaxedItem, ...]
    shipping: ShippingTax | None
    shipping_tax: Decimal
    total_tax: Decimal
    subtotal: Decimal
    total_amount: Decimal
    effective_tax_rate: Decimal
    breakdowns: tuple[TaxBreakdown, ...]
    jurisdictions_used: tuple[str, ...]
    calculated_at: datetime
    order_id: str | None = None

    def breakdown_for(self, jurisdiction_code: str) -> TaxBreakdown | None:
        """Breakdown for one jurisdiction code, if any tax was levied there."""
        for breakdown in self.breakdowns:
            if breakdown.jurisdiction_code == jurisdiction_code:
                return breakdown
        return None

    @property
    def applied_taxes(self) -> tuple[AppliedTax, ...]:
        """All audit lines, items first (input order), then shipping."""
        lines = [tax for item in self.items for tax in item.taxes]
        if self.shipping is not None:
            lines.extend(self.shipping.taxes)
        return tuple(lines)
