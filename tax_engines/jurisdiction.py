"""
Jurisdiction Resolver - Decide which tax authorities govern an address.

Matching is attribute-based: a jurisdiction applies when its country equals
the address country and every filter it specifies (state/province, county,
city, postal code) equals the corresponding address field.  Unset filters are
wildcards.  There is no tree traversal; ``parent_id`` is informational.

Pure functions with no I/O - candidates are fetched by the caller.

Usage:
    from tax_engines.jurisdiction import JurisdictionResolver

    resolved = JurisdictionResolver().resolve(address, candidates)
    if not resolved:
        ...  # the caller decides whether that is an error
"""

from __future__ import annotations

from typing import Iterable

from tax_kernel.domain.dtos import Jurisdiction
from tax_kernel.domain.values import Address
from tax_kernel.logging_config import get_logger

logger = get_logger("engines.jurisdiction")


def jurisdiction_sort_key(jurisdiction: Jurisdiction) -> tuple[int, str]:
    return (jurisdiction.priority, jurisdiction.code)


class JurisdictionResolver:
    """
    Filters candidate jurisdictions down to the active ones matching an address.

    Guarantees:
        - Output order is (priority, code), independent of candidate order.
        - A jurisdiction appears at most once even if a repository returns
          duplicates.
        - An empty result is returned as-is, never raised on.
    """

    def resolve(
        self,
        address: Address,
        candidates: Iterable[Jurisdiction],
    ) -> tuple[Jurisdiction, ...]:
        seen: set = set()
        matched: list[Jurisdiction] = []
        considered = 0
        for jurisdiction in candidates:
            considered += 1
            if jurisdiction.id in seen:
                continue
            if not jurisdiction.is_active:
                continue
            if not jurisdiction.matches(address):
                continue
            seen.add(jurisdiction.id)
            matched.append(jurisdiction)

        matched.sort(key=jurisdiction_sort_key)

        logger.debug("jurisdictions_resolved", extra={
            "country": address.country,
            "state_province": address.state_province,
            "candidate_count": considered,
            "matched_codes": [j.code for j in matched],
        })
        return tuple(matched)
