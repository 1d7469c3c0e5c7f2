"""
Tests for the Tax Accumulator.

Covers:
- Percentage stacking on the item subtotal
- Compound rates on subtotal plus prior tax
- Flat per-unit rates
- Exempt items and exemption-suppressed rates
- Shipping
- Unknown rate kinds
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from tax_engines.accumulator import TaxAccumulator, tax_for_rate
from tax_kernel.domain.dtos import (
    Jurisdiction,
    TaxableItem,
    TaxExemption,
    TaxRate,
)
from tax_kernel.domain.values import JurisdictionType, RateKind, TaxCategory

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _item(subtotal="100.00", quantity=1, **kwargs):
    amount = Decimal(subtotal)
    return TaxableItem(
        item_id=kwargs.pop("item_id", "item-1"),
        sku="SKU-1",
        quantity=quantity,
        unit_price=amount / quantity,
        subtotal=amount,
        **kwargs,
    )


class TestTaxForRate:
    """Tests for the single-rate formula."""

    def setup_method(self):
        self.jurisdiction_id = uuid4()

    def _rate(self, rate, kind):
        return TaxRate(
            id=uuid4(),
            jurisdiction_id=self.jurisdiction_id,
            name="r",
            rate=Decimal(rate),
            kind=kind,
        )

    def test_percentage(self):
        assert tax_for_rate(self._rate("0.0825", RateKind.PERCENTAGE), Decimal("100"), 1) == Decimal("8.25")

    def test_compound_kind_uses_percentage_formula(self):
        assert tax_for_rate(self._rate("0.02", RateKind.COMPOUND), Decimal("105"), 1) == Decimal("2.10")

    def test_flat_is_per_unit(self):
        """Flat rates multiply by quantity and ignore the base."""
        assert tax_for_rate(self._rate("0.50", RateKind.FLAT), Decimal("999"), 3) == Decimal("1.50")

    def test_unknown_kind_raises(self):
        """Rate kinds are a closed set."""
        rate = self._rate("0.05", RateKind.PERCENTAGE)
        object.__setattr__(rate, "kind", "mystery")

        with pytest.raises(ValueError, match="Unknown rate kind"):
            tax_for_rate(rate, Decimal("100"), 1)


class TestItemAccumulation:
    """Tests for stacking rates on one item."""

    def setup_method(self):
        self.accumulator = TaxAccumulator()
        self.state = Jurisdiction(
            id=uuid4(),
            code="US-CA",
            name="California",
            jurisdiction_type=JurisdictionType.STATE,
            country="US",
            state_province="CA",
        )
        self.jurisdictions = {self.state.id: self.state}

    def _rate(self, rate, **kwargs):
        return TaxRate(
            id=uuid4(),
            jurisdiction_id=self.state.id,
            name=kwargs.pop("name", f"rate {rate}"),
            rate=Decimal(rate),
            **kwargs,
        )

    def test_non_compound_rates_share_the_subtotal(self):
        """Each non-compound rate is applied to the item subtotal."""
        rates = [self._rate("0.05"), self._rate("0.02")]

        taxed = self.accumulator.tax_item(_item(), rates, self.jurisdictions, [], NOW)

        assert taxed.tax_amount == Decimal("7.00")
        assert [t.taxable_amount for t in taxed.taxes] == [Decimal("100.00"), Decimal("100.00")]

    def test_compound_rate_includes_prior_tax(self):
        """5% then a compound 2% on 100.00 gives 5.00 + 2.10 = 7.10."""
        rates = [self._rate("0.05"), self._rate("0.02", is_compound=True)]

        taxed = self.accumulator.tax_item(_item(), rates, self.jurisdictions, [], NOW)

        assert taxed.tax_amount == Decimal("7.10")
        compound = taxed.taxes[1]
        assert compound.is_compound
        assert compound.taxable_amount == Decimal("105.00")
        assert compound.tax_amount == Decimal("2.10")

    def test_compound_kind_behaves_like_compound_flag(self):
        rates = [self._rate("0.05"), self._rate("0.02", kind=RateKind.COMPOUND)]

        taxed = self.accumulator.tax_item(_item(), rates, self.jurisdictions, [], NOW)

        assert taxed.tax_amount == Decimal("7.10")

    def test_flat_rate_counts_toward_compound_base(self):
        """A flat tax raises the base of later compound rates."""
        rates = [
            self._rate("1.00", kind=RateKind.FLAT),
            self._rate("0.10", is_compound=True),
        ]

        taxed = self.accumulator.tax_item(
            _item("50.00", quantity=2), rates, self.jurisdictions, [], NOW,
        )

        # flat 1.00 * 2 = 2.00; compound 10% of 52.00 = 5.20
        assert taxed.tax_amount == Decimal("7.20")

    def test_no_rounding(self):
        """Amounts keep full Decimal precision."""
        taxed = self.accumulator.tax_item(
            _item("10.00"), [self._rate("0.0825")], self.jurisdictions, [], NOW,
        )

        assert taxed.tax_amount == Decimal("0.825")

    def test_audit_line_fields(self):
        """Each line records jurisdiction, rate and amounts."""
        rate = self._rate("0.0725", name="CA State")

        line = self.accumulator.tax_item(
            _item(), [rate], self.jurisdictions, [], NOW,
        ).taxes[0]

        assert line.jurisdiction_code == "US-CA"
        assert line.jurisdiction_name == "California"
        assert line.jurisdiction_type == JurisdictionType.STATE
        assert line.tax_rate_name == "CA State"
        assert line.tax_type == RateKind.PERCENTAGE
        assert line.rate == Decimal("0.0725")
        assert line.rate_percent == Decimal("7.25")
        assert line.rate_id == rate.id
        assert line.exemption_certificate is None

    def test_non_effective_rate_skipped(self):
        """Rates outside their window at evaluation time contribute nothing."""
        expired = self._rate("0.05", end_date=NOW - timedelta(days=1))

        taxed = self.accumulator.tax_item(_item(), [expired], self.jurisdictions, [], NOW)

        assert taxed.tax_amount == Decimal("0")
        assert taxed.taxes == ()

    def test_exempt_item_has_no_tax(self):
        """Items flagged exempt skip every rate."""
        taxed = self.accumulator.tax_item(
            _item(is_exempt=True), [self._rate("0.05")], self.jurisdictions, [], NOW,
        )

        assert taxed.tax_amount == Decimal("0")
        assert taxed.taxes == ()
        assert taxed.subtotal == Decimal("100.00")

    def test_item_fields_echoed(self):
        item = _item("30.00", quantity=3, category=TaxCategory.CLOTHING, item_id="shirt")

        taxed = self.accumulator.tax_item(item, [], self.jurisdictions, [], NOW)

        assert taxed.item_id == "shirt"
        assert taxed.quantity == 3
        assert taxed.unit_price == Decimal("10.00")
        assert taxed.category == TaxCategory.CLOTHING


class TestExemptionSuppression:
    """Tests for exemption-suppressed rates."""

    def setup_method(self):
        self.state = Jurisdiction(
            id=uuid4(),
            code="US-CA",
            name="California",
            jurisdiction_type=JurisdictionType.STATE,
            country="US",
        )
        self.jurisdictions = {self.state.id: self.state}
        self.first = TaxRate(
            id=uuid4(), jurisdiction_id=self.state.id, name="A", rate=Decimal("0.05"),
        )
        self.second = TaxRate(
            id=uuid4(),
            jurisdiction_id=self.state.id,
            name="B",
            rate=Decimal("0.02"),
            is_compound=True,
            category=TaxCategory.GENERAL,
        )
        self.exempt_a = TaxExemption(
            id=uuid4(),
            customer_id="CUST-1",
            certificate="CERT-A",
            jurisdiction_id=self.state.id,
        )

    def test_suppressed_rate_contributes_nothing(self):
        """A suppressed rate adds no tax and no line by default."""
        other = TaxExemption(
            id=uuid4(),
            customer_id="CUST-1",
            certificate="CERT-FOOD",
            category=TaxCategory.FOOD,
        )

        taxed = TaxAccumulator().tax_item(
            _item(), [self.first], self.jurisdictions, [self.exempt_a, other], NOW,
        )

        assert taxed.tax_amount == Decimal("0")
        assert taxed.taxes == ()

    def test_suppressed_rate_not_in_compound_base(self):
        """Exempting the first rate leaves the compound base at the subtotal."""
        first_only = TaxExemption(
            id=uuid4(),
            customer_id="CUST-1",
            certificate="CERT-A",
            category=TaxCategory.GENERAL,
            jurisdiction_id=uuid4(),
        )
        taxed = TaxAccumulator().tax_item(
            _item(), [self.first, self.second], self.jurisdictions, [first_only], NOW,
        )
        # exemption scoped to another jurisdiction suppresses nothing
        assert taxed.tax_amount == Decimal("7.10")

    def test_zero_lines_recorded_when_enabled(self):
        """With record_exempt_rates, suppressed rates leave a zero audit line."""
        accumulator = TaxAccumulator(record_exempt_rates=True)

        taxed = accumulator.tax_item(
            _item(), [self.first], self.jurisdictions, [self.exempt_a], NOW,
        )

        assert taxed.tax_amount == Decimal("0")
        assert len(taxed.taxes) == 1
        assert taxed.taxes[0].tax_amount == Decimal("0")
        assert taxed.taxes[0].exemption_certificate == "CERT-A"


class TestShippingAccumulation:
    """Tests for taxing the shipping charge."""

    def test_shipping_taxed_with_quantity_one(self):
        state = Jurisdiction(
            id=uuid4(),
            code="US-CA",
            name="California",
            jurisdiction_type=JurisdictionType.STATE,
            country="US",
        )
        rates = [
            TaxRate(id=uuid4(), jurisdiction_id=state.id, name="ship", rate=Decimal("0.0725"),
                    is_shipping_taxable=True),
            TaxRate(id=uuid4(), jurisdiction_id=state.id, name="fee", rate=Decimal("0.25"),
                    kind=RateKind.FLAT, is_shipping_taxable=True),
        ]

        shipping = TaxAccumulator().tax_shipping(
            Decimal("10.00"), rates, {state.id: state}, [], NOW,
        )

        assert shipping.amount == Decimal("10.00")
        assert shipping.tax_amount == Decimal("0.975")
        assert len(shipping.taxes) == 2
