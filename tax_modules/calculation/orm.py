"""
Tax Configuration ORM Models (``tax_modules.calculation.orm``).

Responsibility:
    SQLAlchemy ORM models persisting jurisdictions, rates, and exemptions.
    Each ORM class mirrors a kernel DTO and provides ``to_dto()`` /
    ``from_dto()`` conversion.  The engine only ever sees the DTOs.

Architecture position:
    **Modules layer** -- persistence companions to the pure kernel DTOs.
    Inherits from ``TrackedBase`` which provides id (UUID PK), created_at,
    updated_at, created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - Amount and rate fields use Decimal (Numeric) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - Jurisdiction codes and exemption certificates are unique.
    - ``to_dto()`` always returns timezone-aware UTC datetimes.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tax_kernel.db.base import TrackedBase
from tax_kernel.db.types import as_decimal, as_utc
from tax_kernel.domain.dtos import Jurisdiction, TaxExemption, TaxRate
from tax_kernel.domain.values import JurisdictionType, RateKind, TaxCategory


def _enum_value(value) -> str | None:
    if value is None:
        return None
    return value.value if hasattr(value, "value") else value


# ---------------------------------------------------------------------------
# TaxJurisdictionModel
# ---------------------------------------------------------------------------

class TaxJurisdictionModel(TrackedBase):
    """
    ORM model for ``Jurisdiction``.

    Guarantees:
        - ``code`` is unique (uq_tax_jurisdiction_code).
        - Address filters are nullable; NULL means wildcard.
    """

    __tablename__ = "tax_jurisdictions"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    jurisdiction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    state_province: Mapped[str | None] = mapped_column(String(50), nullable=True)
    county: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_jurisdictions.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    parent: Mapped["TaxJurisdictionModel | None"] = relationship(
        "TaxJurisdictionModel", remote_side="TaxJurisdictionModel.id", lazy="select",
    )

    __table_args__ = (
        UniqueConstraint("code", name="uq_tax_jurisdiction_code"),
        Index("idx_tax_jurisdiction_location", "country", "state_province"),
        Index("idx_tax_jurisdiction_active", "is_active"),
    )

    def to_dto(self) -> Jurisdiction:
        return Jurisdiction(
            id=self.id,
            code=self.code,
            name=self.name,
            jurisdiction_type=JurisdictionType(self.jurisdiction_type),
            country=self.country,
            state_province=self.state_province,
            county=self.county,
            city=self.city,
            postal_code=self.postal_code,
            parent_id=self.parent_id,
            is_active=self.is_active,
            priority=self.priority,
        )

    @classmethod
    def from_dto(cls, dto: Jurisdiction, created_by_id: UUID) -> "TaxJurisdictionModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            jurisdiction_type=_enum_value(dto.jurisdiction_type),
            country=dto.country,
            state_province=dto.state_province,
            county=dto.county,
            city=dto.city,
            postal_code=dto.postal_code,
            parent_id=dto.parent_id,
            is_active=dto.is_active,
            priority=dto.priority,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TaxJurisdictionModel {self.code}: {self.name} ({self.jurisdiction_type})>"


# ---------------------------------------------------------------------------
# TaxRateModel
# ---------------------------------------------------------------------------

class TaxRateModel(TrackedBase):
    """
    ORM model for ``TaxRate``.

    Contract:
        ``rate`` shares the Numeric(38, 9) precision of amounts, enough for
        any statutory rate.  ``is_shipping_taxable`` defaults to false, matching
        ``TaxRate``: a rate applies to shipping only when flagged.
    """

    __tablename__ = "tax_rates"

    jurisdiction_id: Mapped[UUID] = mapped_column(
        ForeignKey("tax_jurisdictions.id", ondelete="CASCADE"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False, default=RateKind.PERCENTAGE.value)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    tax_category: Mapped[str] = mapped_column(
        String(50), nullable=False, default=TaxCategory.GENERAL.value,
    )
    is_compound: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_shipping_taxable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_threshold: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_threshold: Mapped[Decimal | None] = mapped_column(nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    jurisdiction: Mapped["TaxJurisdictionModel"] = relationship(
        "TaxJurisdictionModel", lazy="select",
    )

    __table_args__ = (
        Index("idx_tax_rate_jurisdiction", "jurisdiction_id"),
        Index("idx_tax_rate_category_active", "tax_category", "is_active"),
    )

    def to_dto(self) -> TaxRate:
        return TaxRate(
            id=self.id,
            jurisdiction_id=self.jurisdiction_id,
            name=self.name,
            rate=as_decimal(self.rate),
            kind=RateKind(self.kind),
            category=TaxCategory(self.tax_category),
            is_compound=self.is_compound,
            is_shipping_taxable=self.is_shipping_taxable,
            min_threshold=as_decimal(self.min_threshold),
            max_threshold=as_decimal(self.max_threshold),
            priority=self.priority,
            is_active=self.is_active,
            start_date=as_utc(self.start_date),
            end_date=as_utc(self.end_date),
        )

    @classmethod
    def from_dto(cls, dto: TaxRate, created_by_id: UUID) -> "TaxRateModel":
        return cls(
            id=dto.id,
            jurisdiction_id=dto.jurisdiction_id,
            name=dto.name,
            kind=_enum_value(dto.kind),
            rate=dto.rate,
            tax_category=_enum_value(dto.category),
            is_compound=dto.is_compound,
            is_shipping_taxable=dto.is_shipping_taxable,
            min_threshold=dto.min_threshold,
            max_threshold=dto.max_threshold,
            priority=dto.priority,
            is_active=dto.is_active,
            start_date=dto.start_date,
            end_date=dto.end_date,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TaxRateModel {self.name}: {self.rate} ({self.tax_category})>"


# ---------------------------------------------------------------------------
# TaxExemptionModel
# ---------------------------------------------------------------------------

class TaxExemptionModel(TrackedBase):
    """
    ORM model for ``TaxExemption``.

    Guarantees:
        - ``certificate`` is unique (uq_tax_exemption_certificate).
        - NULL ``jurisdiction_id`` / ``tax_category`` mean "all".
    """

    __tablename__ = "tax_exemptions"

    customer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    certificate: Mapped[str] = mapped_column(String(100), nullable=False)
    jurisdiction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tax_jurisdictions.id", ondelete="CASCADE"), nullable=True,
    )
    tax_category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reason: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("certificate", name="uq_tax_exemption_certificate"),
        Index("idx_tax_exemption_customer", "customer_id"),
    )

    def to_dto(self) -> TaxExemption:
        return TaxExemption(
            id=self.id,
            customer_id=self.customer_id,
            certificate=self.certificate,
            jurisdiction_id=self.jurisdiction_id,
            category=TaxCategory(self.tax_category) if self.tax_category else None,
            reason=self.reason,
            is_active=self.is_active,
            start_date=as_utc(self.start_date),
            end_date=as_utc(self.end_date),
        )

    @classmethod
    def from_dto(cls, dto: TaxExemption, created_by_id: UUID) -> "TaxExemptionModel":
        return cls(
            id=dto.id,
            customer_id=dto.customer_id,
            certificate=dto.certificate,
            jurisdiction_id=dto.jurisdiction_id,
            tax_category=_enum_value(dto.category),
            reason=dto.reason,
            is_active=dto.is_active,
            start_date=dto.start_date,
            end_date=dto.end_date,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<TaxExemptionModel {self.certificate}: customer={self.customer_id}>"
