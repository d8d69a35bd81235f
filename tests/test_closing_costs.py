from __future__ import annotations

import pytest

from fthb.core.closing_costs import estimate_closing_costs
from fthb.core.errors import DomainError
from fthb.core.policy_canada import cmhc_premium_rate_from_ltv, requires_mortgage_insurance


class TestClosingCosts:
    def test_conventional_purchase(self):
        c = estimate_closing_costs(500_000, 20)
        assert c.cmhc_premium == 0
        assert c.appraisal_fee == 0
        assert c.property_transfer_tax == 0
        assert c.total == 2_100

    def test_ten_percent_down(self):
        c = estimate_closing_costs(500_000, 10)
        assert c.cmhc_premium == pytest.approx(12_600)
        assert c.appraisal_fee == 300
        assert c.total == 15_000

    def test_five_percent_down(self):
        c = estimate_closing_costs(500_000, 5)
        assert c.cmhc_premium == pytest.approx(14_725)
        assert c.total == 17_125

    def test_fifteen_percent_down(self):
        c = estimate_closing_costs(500_000, 15)
        assert c.cmhc_premium == pytest.approx(10_200)
        assert c.total == 12_600

    def test_total_is_whole_dollars(self):
        c = estimate_closing_costs(412_345, 7.5)
        assert isinstance(c.total, int)
        parts = c.legal_fees + c.home_inspection + c.appraisal_fee + c.cmhc_premium
        assert c.total == pytest.approx(parts, abs=0.5)

    def test_to_dict(self):
        d = estimate_closing_costs(500_000, 20).to_dict()
        assert set(d) == {
            "property_transfer_tax", "legal_fees", "home_inspection", "appraisal_fee", "cmhc_premium", "total",
        }

    @pytest.mark.parametrize("price", [0, -100_000])
    def test_non_positive_price(self, price):
        with pytest.raises(DomainError):
            estimate_closing_costs(price, 10)

    @pytest.mark.parametrize("down", [-1, 100.5])
    def test_down_payment_out_of_range(self, down):
        with pytest.raises(DomainError):
            estimate_closing_costs(500_000, down)


class TestCMHCPremium:
    @pytest.mark.parametrize(
        "ltv, rate",
        [
            (0.50, 0.0),
            (0.80, 0.0),
            (0.82, 0.024),
            (0.85, 0.024),
            (0.90, 0.028),
            (0.95, 0.031),
            (0.97, 0.040),
        ],
    )
    def test_tiers(self, ltv, rate):
        assert cmhc_premium_rate_from_ltv(ltv) == pytest.approx(rate)

    def test_nan_is_zero(self):
        assert cmhc_premium_rate_from_ltv(float("nan")) == 0.0

    def test_over_100_percent_warns(self):
        with pytest.warns(UserWarning):
            assert cmhc_premium_rate_from_ltv(1.05) == pytest.approx(0.040)

    def test_insurance_threshold(self):
        assert requires_mortgage_insurance(19.99)
        assert not requires_mortgage_insurance(20)
