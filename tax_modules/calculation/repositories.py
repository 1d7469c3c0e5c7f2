"""
Repository ports and implementations for tax configuration.

Contract:
    The calculation service reads configuration only through these
    read-only ports.  Every method returns frozen kernel DTOs, never ORM
    objects, so the engine holds no reference to a session or store.

Implementations:
    InMemory*      -- snapshot-backed; used by the CLI and tests.
    SqlAlchemy*    -- session-backed; queries the ORM models in ``orm.py``.

Architecture: tax_modules/calculation.  May import tax_kernel; never
imported by tax_engines.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence, runtime_checkable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from tax_kernel.domain.dtos import Jurisdiction, TaxExemption, TaxRate
from tax_kernel.domain.values import Address, TaxCategory
from tax_modules.calculation.orm import (
    TaxExemptionModel,
    TaxJurisdictionModel,
    TaxRateModel,
)


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


@runtime_checkable
class JurisdictionRepository(Protocol):
    """Read access to jurisdictions."""

    def find_by_address(
        self,
        country: str,
        state_province: str | None = None,
        county: str | None = None,
        city: str | None = None,
        postal_code: str | None = None,
    ) -> list[Jurisdiction]:
        """Active jurisdictions whose filters all match the given fields."""
        ...

    def find_by_code(self, code: str) -> Jurisdiction | None:
        ...

    def find_all(
        self,
        country: str | None = None,
        active_only: bool = True,
    ) -> list[Jurisdiction]:
        ...


@runtime_checkable
class TaxRateRepository(Protocol):
    """Read access to tax rates."""

    def find_applicable_rates(
        self,
        jurisdiction_ids: Sequence[UUID],
        category: TaxCategory | None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        """Rates of the given jurisdictions; ``category=None`` means any."""
        ...

    def find_all(
        self,
        jurisdiction_id: UUID | None = None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        ...


@runtime_checkable
class ExemptionRepository(Protocol):
    """Read access to customer exemptions."""

    def find_active_exemptions(self, customer_id: str) -> list[TaxExemption]:
        """Exemptions flagged active for the customer (windows unchecked)."""
        ...

    def find_by_customer(
        self,
        customer_id: str,
        active_only: bool = True,
    ) -> list[TaxExemption]:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryJurisdictionRepository:
    """Jurisdictions held in insertion order."""

    def __init__(self, jurisdictions: Iterable[Jurisdiction] = ()):
        self._items: dict[UUID, Jurisdiction] = {}
        for jurisdiction in jurisdictions:
            self.add(jurisdiction)

    def add(self, jurisdiction: Jurisdiction) -> None:
        self._items[jurisdiction.id] = jurisdiction

    def find_by_address(
        self,
        country: str,
        state_province: str | None = None,
        county: str | None = None,
        city: str | None = None,
        postal_code: str | None = None,
    ) -> list[Jurisdiction]:
        address = Address(
            country=country,
            state_province=state_province,
            county=county,
            city=city,
            postal_code=postal_code,
        )
        return [j for j in self._items.values() if j.is_active and j.matches(address)]

    def find_by_code(self, code: str) -> Jurisdiction | None:
        for jurisdiction in self._items.values():
            if jurisdiction.code == code:
                return jurisdiction
        return None

    def find_all(
        self,
        country: str | None = None,
        active_only: bool = True,
    ) -> list[Jurisdiction]:
        return [
            j for j in self._items.values()
            if (country is None or j.country == country)
            and (not active_only or j.is_active)
        ]


class InMemoryTaxRateRepository:
    """Rates held in insertion order."""

    def __init__(self, rates: Iterable[TaxRate] = ()):
        self._items: dict[UUID, TaxRate] = {}
        for rate in rates:
            self.add(rate)

    def add(self, rate: TaxRate) -> None:
        self._items[rate.id] = rate

    def find_applicable_rates(
        self,
        jurisdiction_ids: Sequence[UUID],
        category: TaxCategory | None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        wanted = set(jurisdiction_ids)
        return [
            r for r in self._items.values()
            if r.jurisdiction_id in wanted
            and (category is None or r.category == category)
            and (not active_only or r.is_active)
        ]

    def find_all(
        self,
        jurisdiction_id: UUID | None = None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        return [
            r for r in self._items.values()
            if (jurisdiction_id is None or r.jurisdiction_id == jurisdiction_id)
            and (not active_only or r.is_active)
        ]


class InMemoryExemptionRepository:
    """Exemptions held in insertion order."""

    def __init__(self, exemptions: Iterable[TaxExemption] = ()):
        self._items: dict[UUID, TaxExemption] = {}
        for exemption in exemptions:
            self.add(exemption)

    def add(self, exemption: TaxExemption) -> None:
        self._items[exemption.id] = exemption

    def find_active_exemptions(self, customer_id: str) -> list[TaxExemption]:
        return self.find_by_customer(customer_id, active_only=True)

    def find_by_customer(
        self,
        customer_id: str,
        active_only: bool = True,
    ) -> list[TaxExemption]:
        return [
            e for e in self._items.values()
            if e.customer_id == customer_id and (not active_only or e.is_active)
        ]


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------


def _matches_or_wildcard(column, value: str | None):
    """NULL filter matches anything; a set filter must equal the value."""
    if value is None:
        return column.is_(None)
    return or_(column.is_(None), column == value)


class SqlAlchemyJurisdictionRepository:
    """Jurisdictions from ``tax_jurisdictions``."""

    def __init__(self, session: Session):
        self._session = session

    def find_by_address(
        self,
        country: str,
        state_province: str | None = None,
        county: str | None = None,
        city: str | None = None,
        postal_code: str | None = None,
    ) -> list[Jurisdiction]:
        stmt = (
            select(TaxJurisdictionModel)
            .where(TaxJurisdictionModel.country == country)
            .where(TaxJurisdictionModel.is_active.is_(True))
            .where(_matches_or_wildcard(TaxJurisdictionModel.state_province, state_province))
            .where(_matches_or_wildcard(TaxJurisdictionModel.county, county))
            .where(_matches_or_wildcard(TaxJurisdictionModel.city, city))
            .where(_matches_or_wildcard(TaxJurisdictionModel.postal_code, postal_code))
            .order_by(TaxJurisdictionModel.priority, TaxJurisdictionModel.code)
        )
        return [row.to_dto() for row in self._session.scalars(stmt)]

    def find_by_code(self, code: str) -> Jurisdiction | None:
        stmt = select(TaxJurisdictionModel).where(TaxJurisdictionModel.code == code)
        row = self._session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    def find_all(
        self,
        country: str | None = None,
        active_only: bool = True,
    ) -> list[Jurisdiction]:
        stmt = select(TaxJurisdictionModel)
        if country is not None:
            stmt = stmt.where(TaxJurisdictionModel.country == country)
        if active_only:
            stmt = stmt.where(TaxJurisdictionModel.is_active.is_(True))
        stmt = stmt.order_by(TaxJurisdictionModel.priority, TaxJurisdictionModel.code)
        return [row.to_dto() for row in self._session.scalars(stmt)]


class SqlAlchemyTaxRateRepository:
    """Rates from ``tax_rates``."""

    def __init__(self, session: Session):
        self._session = session

    def find_applicable_rates(
        self,
        jurisdiction_ids: Sequence[UUID],
        category: TaxCategory | None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        if not jurisdiction_ids:
            return []
        stmt = select(TaxRateModel).where(
            TaxRateModel.jurisdiction_id.in_(list(jurisdiction_ids))
        )
        if category is not None:
            stmt = stmt.where(TaxRateModel.tax_category == category.value)
        if active_only:
            stmt = stmt.where(TaxRateModel.is_active.is_(True))
        stmt = stmt.order_by(TaxRateModel.priority)
        return [row.to_dto() for row in self._session.scalars(stmt)]

    def find_all(
        self,
        jurisdiction_id: UUID | None = None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        stmt = select(TaxRateModel)
        if jurisdiction_id is not None:
            stmt = stmt.where(TaxRateModel.jurisdiction_id == jurisdiction_id)
        if active_only:
            stmt = stmt.where(TaxRateModel.is_active.is_(True))
        stmt = stmt.order_by(TaxRateModel.priority, TaxRateModel.name)
        return [row.to_dto() for row in self._session.scalars(stmt)]


class SqlAlchemyExemptionRepository:
    """Exemptions from ``tax_exemptions``."""

    def __init__(self, session: Session):
        self._session = session

    def find_active_exemptions(self, customer_id: str) -> list[TaxExemption]:
        return self.find_by_customer(customer_id, active_only=True)

    def find_by_customer(
        self,
        customer_id: str,
        active_only: bool = True,
    ) -> list[TaxExemption]:
        stmt = select(TaxExemptionModel).where(TaxExemptionModel.customer_id == customer_id)
        if active_only:
            stmt = stmt.where(TaxExemptionModel.is_active.is_(True))
        stmt = stmt.order_by(TaxExemptionModel.certificate)
        return [row.to_dto() for row in self._session.scalars(stmt)]
