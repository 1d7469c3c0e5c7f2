"""
Values -- Closed enumerations and the Address value object.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Enumerations are closed: adding a member is a code change, and every
      dispatch over them ends in a branch that raises for unknown members.
    - Address is immutable once constructed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TaxCategory(str, Enum):
    """Classification of a taxable item or charge, used to select rates."""

    GENERAL = "general"
    FOOD = "food"
    CLOTHING = "clothing"
    DIGITAL = "digital"
    SHIPPING = "shipping"
    SERVICE = "service"
    EXEMPT = "exempt"


class RateKind(str, Enum):
    """How a rate value turns into a tax amount."""

    PERCENTAGE = "percentage"  # base * rate
    FLAT = "flat"  # rate * quantity
    COMPOUND = "compound"  # (subtotal + prior tax) * rate


class JurisdictionType(str, Enum):
    """Level of a tax authority."""

    FEDERAL = "federal"
    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    DISTRICT = "district"


@dataclass(frozen=True)
class Address:
    """
    Destination address used for jurisdiction matching.

    Only ``country`` is required for a calculation; every other field is
    compared against jurisdiction filters when that filter is set.
    """

    country: str = ""
    state_province: str | None = None
    county: str | None = None
    city: str | None = None
    postal_code: str | None = None
    line1: str | None = None
    line2: str | None = None

    @property
    def has_country(self) -> bool:
        return bool(self.country and self.country.strip())
