"""
Pytest fixtures for the tax engine test suite.

Provides:
- Structured logging configured once per session, plus ``captured_logs``
- Deterministic clock and actor id
- In-memory SQLite sessions with all tax tables created
- Builders for jurisdictions, rates, exemptions, items and requests
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from tax_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from tax_kernel.domain.clock import DeterministicClock
from tax_kernel.domain.dtos import (
    Jurisdiction,
    TaxableItem,
    TaxCalculationRequest,
    TaxExemption,
    TaxRate,
)
from tax_kernel.domain.values import (
    Address,
    JurisdictionType,
    RateKind,
    TaxCategory,
)
from tax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all administrative commands
TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-0000000000ac")

# Fixed "now" used by the deterministic clock
TEST_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tax_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.calculate(request)
            logs = captured_logs()
            assert any(r["message"] == "tax_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tax_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and actor
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    """Provide a deterministic clock fixed at TEST_NOW."""
    return DeterministicClock(TEST_NOW)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh in-memory SQLite database per test, with every tax table created."""
    init_engine_from_url("sqlite://")
    create_tables()
    sess = get_session()
    yield sess
    sess.close()
    reset_engine()


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_jurisdiction():
    def _make(
        code: str = "US-CA",
        country: str = "US",
        state_province: str | None = "CA",
        jurisdiction_type: JurisdictionType = JurisdictionType.STATE,
        priority: int = 0,
        **kwargs,
    ) -> Jurisdiction:
        return Jurisdiction(
            id=kwargs.pop("id", uuid4()),
            code=code,
            name=kwargs.pop("name", code),
            jurisdiction_type=jurisdiction_type,
            country=country,
            state_province=state_province,
            priority=priority,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_rate():
    def _make(
        jurisdiction: Jurisdiction,
        rate: str = "0.0825",
        name: str | None = None,
        category: TaxCategory = TaxCategory.GENERAL,
        kind: RateKind = RateKind.PERCENTAGE,
        priority: int = 0,
        **kwargs,
    ) -> TaxRate:
        return TaxRate(
            id=kwargs.pop("id", uuid4()),
            jurisdiction_id=jurisdiction.id,
            name=name or f"{jurisdiction.code} {category.value} {rate}",
            rate=Decimal(rate),
            kind=kind,
            category=category,
            priority=priority,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_exemption():
    def _make(
        customer_id: str = "CUST-1",
        certificate: str = "CERT-1",
        jurisdiction: Jurisdiction | None = None,
        category: TaxCategory | None = None,
        **kwargs,
    ) -> TaxExemption:
        return TaxExemption(
            id=kwargs.pop("id", uuid4()),
            customer_id=customer_id,
            certificate=certificate,
            jurisdiction_id=jurisdiction.id if jurisdiction is not None else None,
            category=category,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_item():
    def _make(
        subtotal: str = "100.00",
        quantity: int = 1,
        category: TaxCategory = TaxCategory.GENERAL,
        item_id: str = "item-1",
        **kwargs,
    ) -> TaxableItem:
        amount = Decimal(subtotal)
        return TaxableItem(
            item_id=item_id,
            sku=kwargs.pop("sku", f"SKU-{item_id}"),
            quantity=quantity,
            unit_price=kwargs.pop("unit_price", amount / quantity if quantity else amount),
            subtotal=amount,
            category=category,
            **kwargs,
        )

    return _make


@pytest.fixture
def ca_address() -> Address:
    return Address(country="US", state_province="CA", city="Sacramento", postal_code="95814")


@pytest.fixture
def make_request(ca_address):
    def _make(
        items,
        shipping_amount: str = "0",
        customer_id: str | None = None,
        address: Address | None = None,
        order_id: str | None = "ORD-1",
    ) -> TaxCalculationRequest:
        return TaxCalculationRequest(
            shipping_address=address if address is not None else ca_address,
            items=tuple(items),
            shipping_amount=Decimal(shipping_amount),
            order_id=order_id,
            customer_id=customer_id,
        )

    return _make
