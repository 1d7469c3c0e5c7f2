"""
Tax Calculation Module.

Handles order tax calculation over configured jurisdictions, rates, and
customer exemptions, plus the administrative commands that maintain that
configuration.

Key capabilities:
- Destination-based jurisdiction resolution
- Priority-ordered rate stacking with compounding
- Customer exemptions at rate granularity
- Per-jurisdiction breakdowns for audit
- Quick estimates and address serviceability checks
"""

from tax_modules.calculation.admin import RateDefinition, TaxAdminService
from tax_modules.calculation.config import (
    ConfigurationSnapshot,
    TaxCalculationConfig,
    load_config,
    load_snapshot,
    snapshot_from_dict,
)
from tax_modules.calculation.repositories import (
    ExemptionRepository,
    InMemoryExemptionRepository,
    InMemoryJurisdictionRepository,
    InMemoryTaxRateRepository,
    JurisdictionRepository,
    SqlAlchemyExemptionRepository,
    SqlAlchemyJurisdictionRepository,
    SqlAlchemyTaxRateRepository,
    TaxRateRepository,
)
from tax_modules.calculation.service import TaxCalculationService, validate_request
from tax_modules.calculation.wire import (
    parse_request_json,
    request_from_dict,
    result_to_dict,
)

__all__ = [
    # Service
    "TaxCalculationService",
    "validate_request",
    "TaxAdminService",
    "RateDefinition",
    # Config
    "TaxCalculationConfig",
    "ConfigurationSnapshot",
    "load_config",
    "load_snapshot",
    "snapshot_from_dict",
    # Repositories
    "JurisdictionRepository",
    "TaxRateRepository",
    "ExemptionRepository",
    "InMemoryJurisdictionRepository",
    "InMemoryTaxRateRepository",
    "InMemoryExemptionRepository",
    "SqlAlchemyJurisdictionRepository",
    "SqlAlchemyTaxRateRepository",
    "SqlAlchemyExemptionRepository",
    # Wire
    "parse_request_json",
    "request_from_dict",
    "result_to_dict",
]
