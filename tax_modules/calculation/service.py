"""
Tax Calculation Service -- Orchestrates the tax engines over repository ports.

Responsibility:
    Thin glue connecting read-only configuration repositories to the pure
    engines in ``tax_engines``.  All tax arithmetic is delegated; this
    service owns validation order, I/O sequencing, and error translation.

Architecture:
    tax_modules -- glue layer (this module).
    1. Validates the request (no I/O).
    2. Fetches jurisdictions, rates, and exemptions through the ports.
    3. Calls ``JurisdictionResolver``, ``RateSelector``,
       ``TaxAccumulator`` and ``TaxResultBuilder`` (pure, stateless).

Invariants:
    - Validation runs before any repository access.
    - A calculation either returns a complete result or raises; partial
      results are never produced.
    - Non-kernel exceptions from repositories surface as ``RepositoryError``
      with the original exception chained.
    - "Now" comes from the injected ``Clock``, read once per calculation.
    - Amounts are ``Decimal`` throughout -- NEVER ``float``.

Failure modes:
    - RequestValidationError subclasses for malformed requests.
    - NoApplicableJurisdictionsError when the address is not serviceable.
    - RepositoryError when a port fails.

Usage:
    service = TaxCalculationService(jurisdiction_repo, rate_repo, exemption_repo)
    result = service.calculate(request)
"""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, Sequence, TypeVar
from uuid import UUID

from tax_engines.accumulator import TaxAccumulator, tax_for_rate
from tax_engines.aggregation import TaxResultBuilder
from tax_engines.exemptions import ExemptionEvaluator
from tax_engines.jurisdiction import JurisdictionResolver
from tax_engines.rates import RateSelector
from tax_kernel.domain.clock import Clock, SystemClock
from tax_kernel.domain.dtos import (
    Jurisdiction,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxExemption,
    TaxRate,
)
from tax_kernel.domain.values import Address, TaxCategory
from tax_kernel.exceptions import (
    NegativeAmountError,
    NegativeQuantityError,
    NoApplicableJurisdictionsError,
    NoItemsError,
    NonFiniteAmountError,
    RepositoryError,
    ShippingAddressRequiredError,
    TaxKernelError,
)
from tax_kernel.logging_config import LogContext, get_logger
from tax_modules.calculation.config import TaxCalculationConfig
from tax_modules.calculation.repositories import (
    ExemptionRepository,
    JurisdictionRepository,
    TaxRateRepository,
)

logger = get_logger("modules.calculation.service")

ZERO = Decimal("0")

T = TypeVar("T")


def validate_request(request: TaxCalculationRequest) -> None:
    """
    Reject malformed requests.  Performs no I/O.

    Raises:
        ShippingAddressRequiredError: No shipping address or country.
        NoItemsError: Empty item list.
        NegativeQuantityError: Any item quantity < 0.
        NegativeAmountError: Any unit price / subtotal < 0, or negative
            shipping amount.
        NonFiniteAmountError: Any of those amounts is NaN or infinite.
    """
    if request.shipping_address is None or not request.shipping_address.has_country:
        raise ShippingAddressRequiredError()
    if not request.items:
        raise NoItemsError()
    for item in request.items:
        if item.quantity < 0:
            raise NegativeQuantityError(item.item_id, item.quantity)
        _check_amount("unit_price", item.unit_price, item.item_id)
        _check_amount("subtotal", item.subtotal, item.item_id)
    _check_amount("shipping_amount", request.shipping_amount)


def _check_amount(field: str, amount: Decimal, item_id: str | None = None) -> None:
    # NaN compares raise InvalidOperation, so finiteness is checked first
    if not amount.is_finite():
        raise NonFiniteAmountError(field, amount, item_id)
    if amount < ZERO:
        raise NegativeAmountError(field, amount, item_id)


class TaxCalculationService:
    """
    Computes order taxes from configuration fetched through ports.

    Contract:
        Callers supply the three repositories, and optionally a ``Clock`` and
        a ``TaxCalculationConfig``.  The service holds no per-calculation
        state; concurrent calls are independent.

    Engine composition:
        - ``JurisdictionResolver``: address -> ordered jurisdictions.
        - ``RateSelector``: category/time/threshold filtering and ordering.
        - ``TaxAccumulator``: rate stacking with exemptions.
        - ``TaxResultBuilder``: totals, breakdowns, effective rate.
    """

    def __init__(
        self,
        jurisdictions: JurisdictionRepository,
        rates: TaxRateRepository,
        exemptions: ExemptionRepository,
        clock: Clock | None = None,
        config: TaxCalculationConfig | None = None,
    ):
        self._jurisdictions = jurisdictions
        self._rates = rates
        self._exemptions = exemptions
        self._clock = clock or SystemClock()
        self._config = config or TaxCalculationConfig()

        # Stateless engines
        self._resolver = JurisdictionResolver()
        self._selector = RateSelector()
        self._accumulator = TaxAccumulator(
            ExemptionEvaluator(),
            record_exempt_rates=self._config.record_exempt_rates,
        )

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate(self, request: TaxCalculationRequest) -> TaxCalculationResult:
        """
        Calculate taxes for an order, loading the customer's exemptions.

        Exemptions are loaded only once the address has resolved to at least
        one jurisdiction, so an unserviceable address never touches the
        exemption store.

        Raises:
            RequestValidationError: Malformed request (before any I/O).
            NoApplicableJurisdictionsError: Address is not serviceable.
            RepositoryError: A repository call failed.
        """
        validate_request(request)
        return self._calculate(request, None)

    def calculate_with_exemptions(
        self,
        request: TaxCalculationRequest,
        exemptions: Sequence[TaxExemption],
    ) -> TaxCalculationResult:
        """Calculate taxes with a caller-supplied exemption list."""
        validate_request(request)
        return self._calculate(request, list(exemptions))

    def _calculate(
        self,
        request: TaxCalculationRequest,
        exemptions: list[TaxExemption] | None,
    ) -> TaxCalculationResult:
        t0 = time.monotonic()
        with LogContext.bind(order_id=request.order_id, customer_id=request.customer_id):
            now = self._clock.now()
            address = request.shipping_address
            logger.info("tax_calculation_started", extra={
                "country": address.country,
                "state_province": address.state_province,
                "item_count": len(request.items),
                "shipping_amount": str(request.shipping_amount),
            })

            resolved = self._resolve(address)
            if not resolved:
                logger.warning("tax_no_applicable_jurisdictions", extra={
                    "country": address.country,
                    "state_province": address.state_province,
                    "postal_code": address.postal_code,
                })
                raise NoApplicableJurisdictionsError(
                    address.country, address.state_province, address.postal_code,
                )

            if exemptions is None:
                exemptions = self._load_exemptions(request.customer_id)

            by_id = {j.id: j for j in resolved}
            jurisdiction_ids = [j.id for j in resolved]
            builder = TaxResultBuilder(calculated_at=now, order_id=request.order_id)
            candidates: dict[TaxCategory, list[TaxRate]] = {}

            for item in request.items:
                if item.category not in candidates:
                    candidates[item.category] = self._fetch(
                        "find_applicable_rates",
                        self._rates.find_applicable_rates,
                        jurisdiction_ids, item.category, True,
                    )
                selected = self._selector.select(
                    candidates[item.category],
                    item.category,
                    now,
                    amount=item.subtotal,
                    jurisdictions=by_id,
                )
                builder.add_item(
                    self._accumulator.tax_item(item, selected, by_id, exemptions, now)
                )

            if request.shipping_amount > ZERO:
                builder.set_shipping(
                    self._tax_shipping(request.shipping_amount, jurisdiction_ids, by_id, exemptions, now)
                )

            builder.record_jurisdictions(j.code for j in resolved)
            result = builder.finalize()

            logger.info("tax_calculation_completed", extra={
                "exemption_count": len(exemptions),
                "subtotal": str(result.subtotal),
                "total_tax": str(result.total_tax),
                "shipping_tax": str(result.shipping_tax),
                "total_amount": str(result.total_amount),
                "effective_tax_rate": str(result.effective_tax_rate),
                "jurisdictions_used": list(result.jurisdictions_used),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
            return result

    def _load_exemptions(self, customer_id: str | None) -> list[TaxExemption]:
        if not customer_id:
            return []
        return self._fetch(
            "find_active_exemptions",
            self._exemptions.find_active_exemptions,
            customer_id,
        )

    def _tax_shipping(
        self,
        amount: Decimal,
        jurisdiction_ids: list[UUID],
        by_id: dict[UUID, Jurisdiction],
        exemptions: list[TaxExemption],
        now: datetime,
    ):
        candidates = self._fetch(
            "find_applicable_rates",
            self._rates.find_applicable_rates,
            jurisdiction_ids, TaxCategory.SHIPPING, True,
        )
        selected = self._selector.select(
            candidates,
            TaxCategory.SHIPPING,
            now,
            amount=amount if self._config.apply_shipping_thresholds else None,
            jurisdictions=by_id,
            shipping_only=True,
        )
        return self._accumulator.tax_shipping(amount, selected, by_id, exemptions, now)

    # =========================================================================
    # Estimation and address checks
    # =========================================================================

    def estimate_tax(self, address: Address, subtotal: Decimal) -> Decimal:
        """
        Quick estimate: sum of the estimate-category rates on ``subtotal``.

        No compounding, no exemptions.  Returns 0 when the address resolves
        to no jurisdiction.

        Raises:
            NegativeAmountError / NonFiniteAmountError: Unusable subtotal.
        """
        _check_amount("subtotal", subtotal)
        now = self._clock.now()
        resolved = self._resolve(address)
        if not resolved:
            logger.info("tax_estimate_no_jurisdictions", extra={
                "country": address.country,
                "state_province": address.state_province,
            })
            return ZERO

        category = self._config.estimate_category
        by_id = {j.id: j for j in resolved}
        candidates = self._fetch(
            "find_applicable_rates",
            self._rates.find_applicable_rates,
            list(by_id), category, True,
        )
        selected = self._selector.select(
            candidates, category, now, amount=subtotal, jurisdictions=by_id,
        )
        estimate = sum((tax_for_rate(rate, subtotal, 1) for rate in selected), ZERO)

        logger.info("tax_estimated", extra={
            "country": address.country,
            "subtotal": str(subtotal),
            "estimate": str(estimate),
            "rate_count": len(selected),
        })
        return estimate

    def validate_address(self, address: Address) -> bool:
        """True iff at least one active jurisdiction resolves for the address."""
        if not address.has_country:
            return False
        return bool(self._resolve(address))

    # =========================================================================
    # Read queries
    # =========================================================================

    def get_jurisdiction_by_code(self, code: str) -> Jurisdiction | None:
        return self._fetch("find_by_code", self._jurisdictions.find_by_code, code)

    def list_jurisdictions(
        self,
        country: str | None = None,
        active_only: bool = True,
    ) -> list[Jurisdiction]:
        return self._fetch(
            "find_all_jurisdictions", self._jurisdictions.find_all, country, active_only,
        )

    def list_rates(
        self,
        jurisdiction_id: UUID | None = None,
        active_only: bool = True,
    ) -> list[TaxRate]:
        return self._fetch("find_all_rates", self._rates.find_all, jurisdiction_id, active_only)

    def list_exemptions(
        self,
        customer_id: str,
        active_only: bool = True,
    ) -> list[TaxExemption]:
        return self._fetch(
            "find_by_customer", self._exemptions.find_by_customer, customer_id, active_only,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve(self, address: Address) -> tuple[Jurisdiction, ...]:
        candidates = self._fetch(
            "find_by_address",
            self._jurisdictions.find_by_address,
            address.country,
            address.state_province,
            address.county,
            address.city,
            address.postal_code,
        )
        return self._resolver.resolve(address, candidates)

    def _fetch(self, operation: str, call: Callable[..., T], *args) -> T:
        try:
            return call(*args)
        except TaxKernelError:
            raise
        except Exception as exc:
            logger.error("tax_repository_failed", extra={
                "operation": operation,
                "error_type": type(exc).__name__,
            })
            raise RepositoryError(operation, exc) from exc
