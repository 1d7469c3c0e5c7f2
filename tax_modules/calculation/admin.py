"""
Tax Administration Service -- Configuration commands for jurisdictions, rates,
and exemptions.

Responsibility:
    The only writer of tax configuration.  Validates configuration invariants
    before anything is persisted, so the calculation engine can treat the
    stored data as read-only snapshots.

Invariants:
    - This service owns the transaction boundary: commit on success,
      rollback and re-raise on any failure.
    - Jurisdiction codes and exemption certificates are unique.
    - Rates: value >= 0; max_threshold >= min_threshold when both set; the
      owning jurisdiction must exist.
    - Exemptions: customer id and certificate required; end_date >= start_date
      when both set; a referenced jurisdiction must exist.
    - ``bulk_create_rates`` is all-or-nothing.
    - Every command records its actor in created_by_id / updated_by_id and
      takes timestamps from the injected clock.

Usage:
    admin = TaxAdminService(session, clock)
    ca = admin.create_jurisdiction(
        code="US-CA", name="California", jurisdiction_type=JurisdictionType.STATE,
        country="US", state_province="CA", actor_id=actor_id,
    )
    admin.create_rate(RateDefinition(ca.id, "CA Sales Tax", Decimal("0.0725")), actor_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from tax_kernel.db.types import as_utc
from tax_kernel.domain.clock import Clock, SystemClock
from tax_kernel.domain.dtos import Jurisdiction, TaxExemption, TaxRate
from tax_kernel.domain.values import JurisdictionType, RateKind, TaxCategory
from tax_kernel.exceptions import (
    ExemptionAlreadyExistsError,
    ExemptionNotFoundError,
    InvalidExemptionWindowError,
    InvalidThresholdRangeError,
    JurisdictionAlreadyExistsError,
    JurisdictionNotFoundError,
    NegativeRateError,
    RequestValidationError,
    TaxRateNotFoundError,
)
from tax_kernel.logging_config import LogContext, get_logger
from tax_modules.calculation.orm import (
    TaxExemptionModel,
    TaxJurisdictionModel,
    TaxRateModel,
)

logger = get_logger("modules.calculation.admin")

T = TypeVar("T")

_JURISDICTION_FIELDS = {
    "name", "state_province", "county", "city", "postal_code",
    "parent_id", "priority", "is_active",
}
_RATE_FIELDS = {
    "name", "rate", "kind", "category", "is_compound", "is_shipping_taxable",
    "min_threshold", "max_threshold", "priority", "is_active",
    "start_date", "end_date",
}
_EXEMPTION_FIELDS = {
    "jurisdiction_id", "category", "reason", "is_active", "start_date", "end_date",
}


@dataclass(frozen=True)
class RateDefinition:
    """Input for creating one tax rate."""

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
    start_date: datetime | None = None
    end_date: datetime | None = None


def _require(value: str | None, field: str) -> None:
    if value is None or not str(value).strip():
        raise RequestValidationError(f"{field} is required", field=field)


def _check_rate(name: str, rate: Decimal, min_threshold, max_threshold) -> None:
    _require(name, "name")
    bounds = (("rate", rate), ("min_threshold", min_threshold), ("max_threshold", max_threshold))
    for field, value in bounds:
        if value is not None and not value.is_finite():
            raise RequestValidationError(f"{field} must be a finite number: {value}", field=field)
    if rate < 0:
        raise NegativeRateError(name, rate)
    if min_threshold is not None and max_threshold is not None and max_threshold < min_threshold:
        raise InvalidThresholdRangeError(name, min_threshold, max_threshold)


def _check_window(certificate: str, start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and end < start:
        raise InvalidExemptionWindowError(certificate)


class TaxAdminService:
    """
    Administrative commands over the tax configuration tables.

    Contract:
        Callers supply a ``Session`` and optional ``Clock``.  Each command
        runs in its own transaction and returns the resulting DTO.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # =========================================================================
    # Jurisdictions
    # =========================================================================

    def create_jurisdiction(
        self,
        code: str,
        name: str,
        jurisdiction_type: JurisdictionType,
        country: str,
        actor_id: UUID,
        state_province: str | None = None,
        county: str | None = None,
        city: str | None = None,
        postal_code: str | None = None,
        parent_id: UUID | None = None,
        priority: int = 0,
    ) -> Jurisdiction:
        def command() -> Jurisdiction:
            _require(code, "code")
            _require(name, "name")
            _require(country, "country")
            if self._jurisdiction_by_code(code) is not None:
                raise JurisdictionAlreadyExistsError(code)
            if parent_id is not None:
                self._get_jurisdiction(parent_id)

            dto = Jurisdiction(
                id=uuid4(),
                code=code,
                name=name,
                jurisdiction_type=JurisdictionType(jurisdiction_type),
                country=country,
                state_province=state_province,
                county=county,
                city=city,
                postal_code=postal_code,
                parent_id=parent_id,
                priority=priority,
            )
            self._add(TaxJurisdictionModel.from_dto(dto, created_by_id=actor_id))
            return dto

        return self._run("tax_jurisdiction_created", actor_id, command, code=code)

    def update_jurisdiction(
        self,
        jurisdiction_id: UUID,
        actor_id: UUID,
        **changes: Any,
    ) -> Jurisdiction:
        """
        Update jurisdiction fields.

        Accepted fields: name, state_province, county, city, postal_code,
        parent_id, priority, is_active.  ``code`` and ``country`` are fixed.
        """
        def command() -> Jurisdiction:
            model = self._get_jurisdiction(jurisdiction_id)
            self._apply(model, changes, _JURISDICTION_FIELDS)
            if "name" in changes:
                _require(model.name, "name")
            if changes.get("parent_id") is not None:
                if changes["parent_id"] == jurisdiction_id:
                    raise RequestValidationError(
                        "A jurisdiction cannot be its own parent", field="parent_id",
                    )
                self._get_jurisdiction(changes["parent_id"])
            self._touch(model, actor_id)
            return model.to_dto()

        return self._run(
            "tax_jurisdiction_updated", actor_id, command,
            jurisdiction_id=str(jurisdiction_id), fields=sorted(changes),
        )

    def activate_jurisdiction(self, jurisdiction_id: UUID, actor_id: UUID) -> Jurisdiction:
        return self.update_jurisdiction(jurisdiction_id, actor_id, is_active=True)

    def deactivate_jurisdiction(self, jurisdiction_id: UUID, actor_id: UUID) -> Jurisdiction:
        return self.update_jurisdiction(jurisdiction_id, actor_id, is_active=False)

    def delete_jurisdiction(self, jurisdiction_id: UUID, actor_id: UUID) -> None:
        """Delete a jurisdiction together with its rates and scoped exemptions."""
        def command() -> None:
            model = self._get_jurisdiction(jurisdiction_id)
            self._session.execute(
                delete(TaxRateModel).where(TaxRateModel.jurisdiction_id == jurisdiction_id)
            )
            self._session.execute(
                delete(TaxExemptionModel).where(
                    TaxExemptionModel.jurisdiction_id == jurisdiction_id
                )
            )
            for child in self._session.scalars(
                select(TaxJurisdictionModel).where(
                    TaxJurisdictionModel.parent_id == jurisdiction_id
                )
            ):
                child.parent_id = None
                self._touch(child, actor_id)
            self._session.delete(model)

        self._run(
            "tax_jurisdiction_deleted", actor_id, command,
            jurisdiction_id=str(jurisdiction_id),
        )

    # =========================================================================
    # Rates
    # =========================================================================

    def create_rate(self, definition: RateDefinition, actor_id: UUID) -> TaxRate:
        def command() -> TaxRate:
            return self._create_rate(definition, actor_id)

        return self._run(
            "tax_rate_created", actor_id, command,
            jurisdiction_id=str(definition.jurisdiction_id),
            rate_name=definition.name,
            rate=str(definition.rate),
        )

    def bulk_create_rates(
        self,
        definitions: Sequence[RateDefinition],
        actor_id: UUID,
    ) -> list[TaxRate]:
        """Create several rates atomically; any invalid definition aborts all."""
        def command() -> list[TaxRate]:
            for definition in definitions:
                _check_rate(
                    definition.name, definition.rate,
                    definition.min_threshold, definition.max_threshold,
                )
            return [self._create_rate(definition, actor_id) for definition in definitions]

        return self._run(
            "tax_rates_bulk_created", actor_id, command, rate_count=len(definitions),
        )

    def update_rate(self, rate_id: UUID, actor_id: UUID, **changes: Any) -> TaxRate:
        """
        Update rate fields.

        Accepted fields: name, rate, kind, category, is_compound,
        is_shipping_taxable, min_threshold, max_threshold, priority,
        is_active, start_date, end_date.
        """
        def command() -> TaxRate:
            model = self._session.get(TaxRateModel, rate_id)
            if model is None:
                raise TaxRateNotFoundError(rate_id)
            self._apply(model, changes, _RATE_FIELDS)
            dto = model.to_dto()
            _check_rate(dto.name, dto.rate, dto.min_threshold, dto.max_threshold)
            self._touch(model, actor_id)
            return dto

        return self._run(
            "tax_rate_updated", actor_id, command,
            rate_id=str(rate_id), fields=sorted(changes),
        )

    def activate_rate(self, rate_id: UUID, actor_id: UUID) -> TaxRate:
        return self.update_rate(rate_id, actor_id, is_active=True)

    def deactivate_rate(self, rate_id: UUID, actor_id: UUID) -> TaxRate:
        return self.update_rate(rate_id, actor_id, is_active=False)

    def delete_rate(self, rate_id: UUID, actor_id: UUID) -> None:
        def command() -> None:
            model = self._session.get(TaxRateModel, rate_id)
            if model is None:
                raise TaxRateNotFoundError(rate_id)
            self._session.delete(model)

        self._run("tax_rate_deleted", actor_id, command, rate_id=str(rate_id))

    # =========================================================================
    # Exemptions
    # =========================================================================

    def create_exemption(
        self,
        customer_id: str,
        certificate: str,
        actor_id: UUID,
        jurisdiction_id: UUID | None = None,
        category: TaxCategory | None = None,
        reason: str = "",
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> TaxExemption:
        def command() -> TaxExemption:
            _require(customer_id, "customer_id")
            _require(certificate, "certificate")
            existing = self._session.scalars(
                select(TaxExemptionModel).where(TaxExemptionModel.certificate == certificate)
            ).first()
            if existing is not None:
                raise ExemptionAlreadyExistsError(certificate)
            if jurisdiction_id is not None:
                self._get_jurisdiction(jurisdiction_id)
            start, end = as_utc(start_date), as_utc(end_date)
            _check_window(certificate, start, end)

            dto = TaxExemption(
                id=uuid4(),
                customer_id=customer_id,
                certificate=certificate,
                jurisdiction_id=jurisdiction_id,
                category=TaxCategory(category) if category is not None else None,
                reason=reason,
                start_date=start,
                end_date=end,
            )
            self._add(TaxExemptionModel.from_dto(dto, created_by_id=actor_id))
            return dto

        return self._run(
            "tax_exemption_created", actor_id, command,
            customer_id=customer_id, certificate=certificate,
        )

    def update_exemption(
        self,
        exemption_id: UUID,
        actor_id: UUID,
        **changes: Any,
    ) -> TaxExemption:
        """
        Update exemption fields.

        Accepted fields: jurisdiction_id, category, reason, is_active,
        start_date, end_date.
        """
        def command() -> TaxExemption:
            model = self._session.get(TaxExemptionModel, exemption_id)
            if model is None:
                raise ExemptionNotFoundError(exemption_id)
            if changes.get("jurisdiction_id") is not None:
                self._get_jurisdiction(changes["jurisdiction_id"])
            self._apply(model, changes, _EXEMPTION_FIELDS)
            dto = model.to_dto()
            _check_window(dto.certificate, dto.start_date, dto.end_date)
            self._touch(model, actor_id)
            return dto

        return self._run(
            "tax_exemption_updated", actor_id, command,
            exemption_id=str(exemption_id), fields=sorted(changes),
        )

    def deactivate_exemption(self, exemption_id: UUID, actor_id: UUID) -> TaxExemption:
        return self.update_exemption(exemption_id, actor_id, is_active=False)

    def delete_exemption(self, exemption_id: UUID, actor_id: UUID) -> None:
        def command() -> None:
            model = self._session.get(TaxExemptionModel, exemption_id)
            if model is None:
                raise ExemptionNotFoundError(exemption_id)
            self._session.delete(model)

        self._run(
            "tax_exemption_deleted", actor_id, command, exemption_id=str(exemption_id),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(self, event: str, actor_id: UUID, command: Callable[[], T], **fields: Any) -> T:
        """Run one command in a transaction: commit on success, rollback on failure."""
        with LogContext.bind(actor_id=actor_id):
            try:
                result = command()
                self._session.flush()
                self._session.commit()
            except Exception as exc:
                self._session.rollback()
                logger.warning("tax_admin_command_failed", extra={
                    **fields,
                    "command": event,
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                })
                raise
            logger.info(event, extra=fields)
            return result

    def _create_rate(self, definition: RateDefinition, actor_id: UUID) -> TaxRate:
        _check_rate(
            definition.name, definition.rate,
            definition.min_threshold, definition.max_threshold,
        )
        self._get_jurisdiction(definition.jurisdiction_id)
        dto = TaxRate(
            id=uuid4(),
            jurisdiction_id=definition.jurisdiction_id,
            name=definition.name,
            rate=definition.rate,
            kind=RateKind(definition.kind),
            category=TaxCategory(definition.category),
            is_compound=definition.is_compound,
            is_shipping_taxable=definition.is_shipping_taxable,
            min_threshold=definition.min_threshold,
            max_threshold=definition.max_threshold,
            priority=definition.priority,
            start_date=as_utc(definition.start_date),
            end_date=as_utc(definition.end_date),
        )
        self._add(TaxRateModel.from_dto(dto, created_by_id=actor_id))
        return dto

    def _add(self, model) -> None:
        now = self._clock.now()
        model.created_at = now
        model.updated_at = now
        self._session.add(model)

    def _touch(self, model, actor_id: UUID) -> None:
        model.updated_at = self._clock.now()
        model.updated_by_id = actor_id

    @staticmethod
    def _apply(model, changes: dict[str, Any], allowed: set[str]) -> None:
        unknown = set(changes) - allowed
        if unknown:
            raise RequestValidationError(
                f"Fields cannot be updated: {sorted(unknown)}",
                field=sorted(unknown)[0],
            )
        for key, value in changes.items():
            if key == "category":
                model.tax_category = TaxCategory(value).value if value is not None else None
            elif key == "kind":
                model.kind = RateKind(value).value
            elif key in ("start_date", "end_date"):
                setattr(model, key, as_utc(value))
            else:
                setattr(model, key, value)

    def _jurisdiction_by_code(self, code: str) -> TaxJurisdictionModel | None:
        return self._session.scalars(
            select(TaxJurisdictionModel).where(TaxJurisdictionModel.code == code)
        ).first()

    def _get_jurisdiction(self, jurisdiction_id: UUID) -> TaxJurisdictionModel:
        model = self._session.get(TaxJurisdictionModel, jurisdiction_id)
        if model is None:
            raise JurisdictionNotFoundError(jurisdiction_id)
        return model
