"""Unit tests for engine initialization and transactional scopes."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from tax_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from tax_kernel.db.types import as_decimal, as_utc
from tax_modules.calculation.orm import TaxJurisdictionModel


@pytest.fixture
def memory_engine():
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_engine()
    drop_tables()
    reset_engine()


def _jurisdiction(code):
    return TaxJurisdictionModel(
        id=uuid4(),
        code=code,
        name=code,
        jurisdiction_type="state",
        country="US",
        created_by_id=uuid4(),
    )


def _count():
    with session_scope() as session:
        return session.scalar(select(func.count()).select_from(TaxJurisdictionModel))


class TestEngineLifecycle:
    def test_uninitialized_engine_raises(self):
        reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_tables_created(self, memory_engine, captured_logs):
        create_tables()

        record = next(r for r in captured_logs() if r["message"] == "tables_created")
        assert "tax_rates" in record["tables"]


class TestSessionScope:
    def test_commits_on_success(self, memory_engine):
        with session_scope() as session:
            session.add(_jurisdiction("US-CA"))

        assert _count() == 1

    def test_rolls_back_on_failure(self, memory_engine):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(_jurisdiction("US-CA"))
                session.flush()
                raise ValueError("abort")

        assert _count() == 0


class TestTypeHelpers:
    def test_as_utc(self):
        naive = datetime(2024, 1, 1, 8, 0)

        assert as_utc(naive) == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        assert as_utc(None) is None

    def test_as_decimal(self):
        assert str(as_decimal("0.0725")) == "0.0725"
        assert as_decimal(None) is None
