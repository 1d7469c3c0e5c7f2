"""
Tax Calculation Configuration.

Defines the calculation settings and the YAML loaders for settings files and
configuration snapshots (jurisdictions, rates, exemptions).

Snapshot files reference jurisdictions by ``code``.  Ids may be given
explicitly; otherwise they are derived deterministically from the code (and
rate name / certificate), so the same file always yields the same ids and the
same tie-break order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Self
from uuid import NAMESPACE_URL, UUID, uuid5

import yaml

from tax_kernel.domain.dtos import Jurisdiction, TaxExemption, TaxRate
from tax_kernel.domain.values import JurisdictionType, RateKind, TaxCategory
from tax_kernel.exceptions import JurisdictionNotFoundError
from tax_kernel.logging_config import get_logger
from tax_modules.calculation.repositories import (
    InMemoryExemptionRepository,
    InMemoryJurisdictionRepository,
    InMemoryTaxRateRepository,
)

logger = get_logger("modules.calculation.config")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_ID_NAMESPACE = uuid5(NAMESPACE_URL, "urn:tax-engine:snapshot")


@dataclass
class TaxCalculationConfig:
    """
    Configuration schema for the calculation service.

        config = TaxCalculationConfig(record_exempt_rates=True)
    """

    # Category used by estimate_tax
    estimate_category: TaxCategory = TaxCategory.GENERAL

    # Emit zero-amount audit lines for exemption-suppressed rates
    record_exempt_rates: bool = False

    # Apply min/max thresholds to the shipping base
    apply_shipping_thresholds: bool = False

    log_level: str = "INFO"

    def __post_init__(self):
        if not isinstance(self.estimate_category, TaxCategory):
            try:
                self.estimate_category = TaxCategory(str(self.estimate_category).lower())
            except ValueError:
                raise ValueError(
                    f"estimate_category must be one of "
                    f"{sorted(c.value for c in TaxCategory)}, "
                    f"got '{self.estimate_category}'"
                ) from None

        self.log_level = str(self.log_level).upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )

        logger.info(
            "tax_calculation_config_initialized",
            extra={
                "estimate_category": self.estimate_category.value,
                "record_exempt_rates": self.record_exempt_rates,
                "apply_shipping_thresholds": self.apply_shipping_thresholds,
                "log_level": self.log_level,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with default settings."""
        logger.info("tax_calculation_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g., loaded from YAML)."""
        logger.info(
            "tax_calculation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        unknown = set(data) - {
            "estimate_category",
            "record_exempt_rates",
            "apply_shipping_thresholds",
            "log_level",
        }
        if unknown:
            raise ValueError(f"Unknown tax calculation config keys: {sorted(unknown)}")
        return cls(**data)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | str) -> TaxCalculationConfig:
    """Load ``TaxCalculationConfig`` from a YAML file (top-level mapping)."""
    data = load_yaml_file(path)
    return TaxCalculationConfig.from_dict(data.get("tax_calculation", data))


def parse_decimal(value: Any, field: str) -> Decimal:
    """
    Parse a configuration decimal.

    YAML floats are accepted through their shortest repr (``0.0725`` ->
    ``Decimal("0.0725")``) since configuration is human-written; strings are
    preferred.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field}: expected a number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field}: cannot parse decimal from {value!r}") from None
    if not parsed.is_finite():
        raise ValueError(f"{field}: expected a finite number, got {value!r}")
    return parsed


def parse_datetime(value: Any) -> datetime | None:
    """Parse a timestamp (datetime, date, or ISO string); naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Cannot parse datetime from {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_id(data: dict[str, Any], *natural_key: str) -> UUID:
    if data.get("id"):
        return UUID(str(data["id"]))
    return uuid5(_ID_NAMESPACE, "/".join(natural_key))


def _optional_decimal(data: dict[str, Any], key: str) -> Decimal | None:
    value = data.get(key)
    return parse_decimal(value, key) if value is not None else None


def parse_jurisdiction(data: dict[str, Any]) -> Jurisdiction:
    code = data["code"]
    return Jurisdiction(
        id=_parse_id(data, "jurisdiction", code),
        code=code,
        name=data.get("name", code),
        jurisdiction_type=JurisdictionType(str(data.get("type", "state")).lower()),
        country=data["country"],
        state_province=data.get("state_province"),
        county=data.get("county"),
        city=data.get("city"),
        postal_code=str(data["postal_code"]) if data.get("postal_code") is not None else None,
        is_active=bool(data.get("is_active", True)),
        priority=int(data.get("priority", 0)),
    )


def parse_rate(data: dict[str, Any], jurisdictions: dict[str, Jurisdiction]) -> TaxRate:
    code = data["jurisdiction"]
    if code not in jurisdictions:
        raise JurisdictionNotFoundError(code)
    category = TaxCategory(str(data.get("category", "general")).lower())
    return TaxRate(
        id=_parse_id(data, "rate", code, data["name"], category.value),
        jurisdiction_id=jurisdictions[code].id,
        name=data["name"],
        rate=parse_decimal(data["rate"], "rate"),
        kind=RateKind(str(data.get("kind", "percentage")).lower()),
        category=category,
        is_compound=bool(data.get("is_compound", False)),
        is_shipping_taxable=bool(data.get("is_shipping_taxable", False)),
        min_threshold=_optional_decimal(data, "min_threshold"),
        max_threshold=_optional_decimal(data, "max_threshold"),
        priority=int(data.get("priority", 0)),
        is_active=bool(data.get("is_active", True)),
        start_date=parse_datetime(data.get("start_date")),
        end_date=parse_datetime(data.get("end_date")),
    )


def parse_exemption(
    data: dict[str, Any],
    jurisdictions: dict[str, Jurisdiction],
) -> TaxExemption:
    jurisdiction_id = None
    if data.get("jurisdiction"):
        code = data["jurisdiction"]
        if code not in jurisdictions:
            raise JurisdictionNotFoundError(code)
        jurisdiction_id = jurisdictions[code].id
    category = data.get("category")
    return TaxExemption(
        id=_parse_id(data, "exemption", data["certificate"]),
        customer_id=str(data["customer_id"]),
        certificate=data["certificate"],
        jurisdiction_id=jurisdiction_id,
        category=TaxCategory(str(category).lower()) if category else None,
        reason=data.get("reason", ""),
        is_active=bool(data.get("is_active", True)),
        start_date=parse_datetime(data.get("start_date")),
        end_date=parse_datetime(data.get("end_date")),
    )


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """In-memory repositories built from one snapshot file."""

    jurisdictions: InMemoryJurisdictionRepository
    rates: InMemoryTaxRateRepository
    exemptions: InMemoryExemptionRepository


def snapshot_from_dict(data: dict[str, Any]) -> ConfigurationSnapshot:
    """
    Build repositories from parsed snapshot data.

    Raises:
        KeyError: if a required key is missing.
        ValueError: if a value cannot be parsed or a code is duplicated.
        JurisdictionNotFoundError: if a rate/exemption references an
            unknown jurisdiction code.
    """
    by_code: dict[str, Jurisdiction] = {}
    for entry in data.get("jurisdictions") or []:
        jurisdiction = parse_jurisdiction(entry)
        if jurisdiction.code in by_code:
            raise ValueError(f"Duplicate jurisdiction code in snapshot: {jurisdiction.code}")
        by_code[jurisdiction.code] = jurisdiction

    rates = [parse_rate(entry, by_code) for entry in data.get("rates") or []]
    exemptions = [parse_exemption(entry, by_code) for entry in data.get("exemptions") or []]

    logger.info(
        "tax_snapshot_loaded",
        extra={
            "jurisdiction_count": len(by_code),
            "rate_count": len(rates),
            "exemption_count": len(exemptions),
        },
    )
    return ConfigurationSnapshot(
        jurisdictions=InMemoryJurisdictionRepository(by_code.values()),
        rates=InMemoryTaxRateRepository(rates),
        exemptions=InMemoryExemptionRepository(exemptions),
    )


def load_snapshot(path: Path | str) -> ConfigurationSnapshot:
    """Load a YAML configuration snapshot into in-memory repositories."""
    return snapshot_from_dict(load_yaml_file(path))
