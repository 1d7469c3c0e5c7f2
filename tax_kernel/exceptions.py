"""
Typed Exception Hierarchy for the Tax Kernel.

Every error raised by the engine, the calculation service, or the
administrative commands is a subclass of ``TaxKernelError``.  Each class
carries a static ``code`` (machine-readable, API-safe) and stores its context
as attributes, so callers catch by type and map by code instead of parsing
message strings.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TaxKernelError (base)
    |
    +-- RequestValidationError
    |   +-- ShippingAddressRequiredError
    |   +-- NoItemsError
    |   +-- NegativeQuantityError
    |   +-- NegativeAmountError
    |   +-- NonFiniteAmountError
    |
    +-- JurisdictionError
    |   +-- NoApplicableJurisdictionsError
    |   +-- JurisdictionNotFoundError
    |   +-- JurisdictionAlreadyExistsError
    |
    +-- RateConfigurationError
    |   +-- NegativeRateError
    |   +-- InvalidThresholdRangeError
    |   +-- TaxRateNotFoundError
    |
    +-- ExemptionError
    |   +-- ExemptionNotFoundError
    |   +-- ExemptionAlreadyExistsError
    |   +-- InvalidExemptionWindowError
    |
    +-- RepositoryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised                      | HTTP
-------------|------------------------------|----------------------------------|-----
Request      | INVALID_REQUEST              | Malformed request payload        | 400
             | SHIPPING_ADDRESS_REQUIRED    | No shipping country              | 400
             | NO_ITEMS_TO_CALCULATE        | Empty item list                  | 400
             | NEGATIVE_QUANTITY            | Item quantity < 0                | 400
             | NEGATIVE_AMOUNT              | Price/subtotal/shipping < 0      | 400
             | NON_FINITE_AMOUNT            | NaN or infinite amount           | 400
-------------|------------------------------|----------------------------------|-----
Jurisdiction | NO_APPLICABLE_JURISDICTIONS  | Address is not serviceable       | 422
             | JURISDICTION_NOT_FOUND       | Unknown jurisdiction id/code     | 404
             | JURISDICTION_ALREADY_EXISTS  | Duplicate jurisdiction code      | 409
-------------|------------------------------|----------------------------------|-----
Rate         | NEGATIVE_TAX_RATE            | Rate value < 0                   | 400
             | INVALID_THRESHOLD_RANGE      | max_threshold < min_threshold    | 400
             | TAX_RATE_NOT_FOUND           | Unknown rate id                  | 404
-------------|------------------------------|----------------------------------|-----
Exemption    | EXEMPTION_NOT_FOUND          | Unknown exemption id             | 404
             | EXEMPTION_ALREADY_EXISTS     | Duplicate certificate            | 409
             | INVALID_EXEMPTION_WINDOW     | end_date < start_date            | 400
-------------|------------------------------|----------------------------------|-----
Repository   | REPOSITORY_ERROR             | Lookup failed in a collaborator  | 500

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = service.calculate(request)
    except RequestValidationError as e:
        return bad_request(code=e.code)
    except NoApplicableJurisdictionsError as e:
        return not_serviceable(country=e.country)
    except RepositoryError as e:
        log.error("lookup failed", extra={"operation": e.operation})
        return server_error(code=e.code)

A calculation either succeeds completely or raises; partial results are never
returned.
"""

from decimal import Decimal
from uuid import UUID


class TaxKernelError(Exception):
    """
    Base exception for all tax kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "TAX_KERNEL_ERROR"


# Request validation exceptions


class RequestValidationError(TaxKernelError):
    """Caller input is malformed. Raised before any repository access."""

    code: str = "INVALID_REQUEST"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ShippingAddressRequiredError(RequestValidationError):
    """Shipping address (country) is missing."""

    code: str = "SHIPPING_ADDRESS_REQUIRED"

    def __init__(self):
        super().__init__(
            "Shipping address with a country is required",
            field="shipping_address.country",
        )


class NoItemsError(RequestValidationError):
    """Request carries no taxable items."""

    code: str = "NO_ITEMS_TO_CALCULATE"

    def __init__(self):
        super().__init__("No items provided for tax calculation", field="items")


class NegativeQuantityError(RequestValidationError):
    """An item has a negative quantity."""

    code: str = "NEGATIVE_QUANTITY"

    def __init__(self, item_id: str, quantity: int):
        self.item_id = item_id
        self.quantity = quantity
        super().__init__(
            f"Quantity cannot be negative for item {item_id}: {quantity}",
            field="quantity",
        )


class NegativeAmountError(RequestValidationError):
    """A price, subtotal, or shipping amount is negative."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, field: str, amount: Decimal, item_id: str | None = None):
        self.item_id = item_id
        self.amount = str(amount)
        where = f" for item {item_id}" if item_id else ""
        super().__init__(f"{field} cannot be negative{where}: {amount}", field=field)


class NonFiniteAmountError(RequestValidationError):
    """A price, subtotal, or shipping amount is NaN or infinite."""

    code: str = "NON_FINITE_AMOUNT"

    def __init__(self, field: str, amount: Decimal, item_id: str | None = None):
        self.item_id = item_id
        self.amount = str(amount)
        where = f" for item {item_id}" if item_id else ""
        super().__init__(f"{field} must be a finite number{where}: {amount}", field=field)


# Jurisdiction exceptions


class JurisdictionError(TaxKernelError):
    """Base exception for jurisdiction-related errors."""

    code: str = "JURISDICTION_ERROR"


class NoApplicableJurisdictionsError(JurisdictionError):
    """No active jurisdiction matches the address (not serviceable)."""

    code: str = "NO_APPLICABLE_JURISDICTIONS"

    def __init__(
        self,
        country: str,
        state_province: str | None = None,
        postal_code: str | None = None,
    ):
        self.country = country
        self.state_province = state_province
        self.postal_code = postal_code
        location = "/".join(p for p in (country, state_province, postal_code) if p)
        super().__init__(f"No applicable jurisdictions found for address: {location}")


class JurisdictionNotFoundError(JurisdictionError):
    """Jurisdiction with the given id or code was not found."""

    code: str = "JURISDICTION_NOT_FOUND"

    def __init__(self, reference: UUID | str):
        self.reference = str(reference)
        super().__init__(f"Jurisdiction not found: {reference}")


class JurisdictionAlreadyExistsError(JurisdictionError):
    """A jurisdiction with this code already exists."""

    code: str = "JURISDICTION_ALREADY_EXISTS"

    def __init__(self, jurisdiction_code: str):
        self.jurisdiction_code = jurisdiction_code
        super().__init__(f"Jurisdiction already exists: {jurisdiction_code}")


# Rate configuration exceptions


class RateConfigurationError(TaxKernelError):
    """Base exception for tax rate configuration errors."""

    code: str = "RATE_CONFIGURATION_ERROR"


class NegativeRateError(RateConfigurationError):
    """Tax rate value is negative."""

    code: str = "NEGATIVE_TAX_RATE"

    def __init__(self, rate_name: str, rate: Decimal):
        self.rate_name = rate_name
        self.rate = str(rate)
        super().__init__(f"Tax rate cannot be negative: {rate_name} = {rate}")


class InvalidThresholdRangeError(RateConfigurationError):
    """max_threshold is below min_threshold."""

    code: str = "INVALID_THRESHOLD_RANGE"

    def __init__(self, rate_name: str, min_threshold: Decimal, max_threshold: Decimal):
        self.rate_name = rate_name
        self.min_threshold = str(min_threshold)
        self.max_threshold = str(max_threshold)
        super().__init__(
            f"Max threshold must be >= min threshold for {rate_name}: "
            f"min={min_threshold}, max={max_threshold}"
        )


class TaxRateNotFoundError(RateConfigurationError):
    """Tax rate with the given id was not found."""

    code: str = "TAX_RATE_NOT_FOUND"

    def __init__(self, rate_id: UUID):
        self.rate_id = str(rate_id)
        super().__init__(f"Tax rate not found: {rate_id}")


# Exemption exceptions


class ExemptionError(TaxKernelError):
    """Base exception for tax exemption errors."""

    code: str = "EXEMPTION_ERROR"


class ExemptionNotFoundError(ExemptionError):
    """Exemption with the given id was not found."""

    code: str = "EXEMPTION_NOT_FOUND"

    def __init__(self, exemption_id: UUID):
        self.exemption_id = str(exemption_id)
        super().__init__(f"Tax exemption not found: {exemption_id}")


class ExemptionAlreadyExistsError(ExemptionError):
    """An exemption with this certificate already exists."""

    code: str = "EXEMPTION_ALREADY_EXISTS"

    def __init__(self, certificate: str):
        self.certificate = certificate
        super().__init__(f"Tax exemption already exists for certificate: {certificate}")


class InvalidExemptionWindowError(ExemptionError):
    """Exemption end date precedes its start date."""

    code: str = "INVALID_EXEMPTION_WINDOW"

    def __init__(self, certificate: str):
        self.certificate = certificate
        super().__init__(f"End date must be after start date for exemption {certificate}")


# Infrastructure exceptions


class RepositoryError(TaxKernelError):
    """
    A repository lookup failed.

    Wraps the underlying exception (available as ``__cause__``) with the name
    of the operation that was in flight.  Never retried by the engine.
    """

    code: str = "REPOSITORY_ERROR"

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause_type = type(cause).__name__
        super().__init__(f"Repository operation failed: {operation}: {cause}")
