"""Tests for BC transfer-tax relief, GST relief and government programs."""

from __future__ import annotations

import pytest

from fthb.core.government_programs import (
    HBP_MAX_WITHDRAWAL,
    calculate_total_incentives,
    check_first_time_buyer_eligibility,
    fhsa_marginal_tax_rate,
    fhsa_tax_benefit,
    hbp_benefit,
    home_owner_grant,
    incentive_summary_lines,
    incentives_frame,
)
from fthb.core.taxes import calc_ptt_bc, gst_rebate, new_home_ptt_savings, ptt_savings


class TestBCPTT:
    @pytest.mark.parametrize(
        "price, expected",
        [
            (0, 0),
            (200_000, 2_000),
            (500_000, 8_000),
            (1_200_000, 22_000),
            (2_500_000, 53_000),
            (3_500_000, 93_000),
        ],
    )
    def test_tiers(self, price, expected):
        assert calc_ptt_bc(price) == pytest.approx(expected, abs=1e-6)


class TestPTTSavings:
    @pytest.mark.parametrize("price", [100_000, 250_000, 450_000, 500_000])
    def test_full_relief_up_to_threshold(self, price):
        assert ptt_savings(price) == round(calc_ptt_bc(price))

    def test_phase_out_at_600k(self):
        s = ptt_savings(600_000)
        assert 0 < s < ptt_savings(500_000)
        assert s == pytest.approx(8_000 * (1 - (600_000 - 500_000) / 335_000), abs=1)

    def test_continuous_at_lower_threshold(self):
        assert ptt_savings(500_001) == pytest.approx(ptt_savings(500_000), abs=1)

    def test_approaches_zero_at_upper_threshold(self):
        assert ptt_savings(834_999) <= 1
        assert ptt_savings(835_000) == 0
        assert ptt_savings(900_000) == 0

    def test_not_first_time_buyer(self):
        assert ptt_savings(400_000, first_time_buyer=False) == 0

    def test_new_home_thresholds(self):
        assert new_home_ptt_savings(1_000_000, True) == 18_000
        assert new_home_ptt_savings(1_100_000, True) == 20_000
        assert new_home_ptt_savings(1_125_000, True) == 10_000
        assert new_home_ptt_savings(1_150_000, True) == 0

    def test_new_home_requires_new_and_first_time(self):
        assert new_home_ptt_savings(800_000, False) == 0
        assert new_home_ptt_savings(800_000, True, first_time_buyer=False) == 0


class TestGSTRebate:
    @pytest.mark.parametrize("price", [200_000, 400_000, 900_000])
    def test_resale_gets_nothing(self, price):
        assert gst_rebate(price, new_home=False) == 0

    def test_standard_rebate(self):
        assert gst_rebate(300_000, True, first_time_buyer=False) == 5_400
        assert gst_rebate(400_000, True, first_time_buyer=False) == 3_600
        assert gst_rebate(500_000, True, first_time_buyer=False) == 0

    def test_first_time_buyer_relief(self):
        assert gst_rebate(800_000, True) == 40_000
        assert gst_rebate(1_250_000, True) == 31_250
        assert gst_rebate(1_600_000, True) == 0

    def test_standard_band_applies_to_first_time_buyers(self):
        # Up to $450k only the standard rebate applies, even for first-time buyers.
        assert gst_rebate(300_000, True) == 5_400
        assert gst_rebate(440_000, True) == 792
        assert gst_rebate(450_000, True) == 0
        assert gst_rebate(460_000, True) == 23_000


class TestFHSA:
    def test_brackets(self):
        assert fhsa_marginal_tax_rate(40_000) == pytest.approx(0.2006)
        assert fhsa_marginal_tax_rate(47_937) == pytest.approx(0.2006)
        assert fhsa_marginal_tax_rate(47_938) == pytest.approx(0.2770)
        assert fhsa_marginal_tax_rate(250_000) == pytest.approx(0.4910)

    def test_benefit_is_capped_contribution_times_rate(self):
        assert fhsa_tax_benefit(100_000) == 2_493
        assert fhsa_tax_benefit(100_000, contribution=20_000) == 2_493
        assert fhsa_tax_benefit(100_000, contribution=4_000) == 1_246

    def test_negative_contribution(self):
        assert fhsa_tax_benefit(100_000, contribution=-5) == 0


class TestHBP:
    def test_capped_at_maximum(self):
        b = hbp_benefit(50_000)
        assert b.available_withdrawal == HBP_MAX_WITHDRAWAL == 35_000
        assert b.annual_repayment == 2_333
        assert b.benefit == 3_500

    def test_limited_by_balance(self):
        b = hbp_benefit(20_000)
        assert (b.available_withdrawal, b.annual_repayment, b.benefit) == (20_000, 1_333, 2_000)

    def test_limited_by_request(self):
        b = hbp_benefit(50_000, withdrawal=10_000)
        assert (b.available_withdrawal, b.annual_repayment, b.benefit) == (10_000, 667, 1_000)

    def test_negative_balance(self):
        assert hbp_benefit(-1).benefit == 0


class TestHomeOwnerGrant:
    def test_basic_and_additional(self):
        assert home_owner_grant(2_000_000) == 570
        assert home_owner_grant(2_000_000, senior_or_veteran=True) == 845

    def test_threshold(self):
        assert home_owner_grant(2_175_000) == 570
        assert home_owner_grant(2_200_000) == 0


class TestTotals:
    def test_resale_with_rrsp(self):
        inc = calculate_total_incentives(600_000, 90_000, new_home=False, has_rrsp=True, rrsp_balance=35_000)
        assert inc.ptt == 5_612
        assert inc.gst == 0
        assert inc.fhsa_benefit == 2_216
        assert inc.hbp_benefit == 3_500
        assert inc.owner_grant == 570
        assert inc.total == 11_898

    def test_hbp_ignored_without_rrsp(self):
        inc = calculate_total_incentives(600_000, 90_000, has_rrsp=False, rrsp_balance=35_000)
        assert inc.hbp_benefit == 0

    def test_new_home_uses_new_home_exemption(self):
        inc = calculate_total_incentives(1_000_000, 90_000, new_home=True)
        assert inc.ptt == 18_000
        assert inc.gst == 50_000

    @pytest.mark.parametrize("price", [350_000, 700_000, 1_120_000, 2_500_000])
    def test_total_is_sum_of_parts(self, price):
        for new_home in (False, True):
            inc = calculate_total_incentives(price, 120_000, new_home, True, 10_000)
            assert inc.total == inc.ptt + inc.gst + inc.fhsa_benefit + inc.hbp_benefit + inc.owner_grant

    def test_summary_lines_skip_zero_components(self):
        inc = calculate_total_incentives(600_000, 90_000)
        lines = incentive_summary_lines(inc)
        assert lines[-1] == f"Total incentives: ${inc.total:,}"
        assert not any(line.startswith("GST rebate") for line in lines)
        assert lines[0].startswith("Property Transfer Tax savings")

    def test_frame(self):
        inc = calculate_total_incentives(600_000, 90_000)
        df = incentives_frame(inc)
        assert list(df.columns) == ["incentive", "amount"]
        assert len(df) == 6
        assert df.iloc[-1]["amount"] == inc.total


class TestEligibility:
    def test_eligible(self):
        result = check_first_time_buyer_eligibility(False, True, True, 2)
        assert result.eligible
        assert result.reasons == []

    def test_every_failure_reported(self):
        result = check_first_time_buyer_eligibility(True, False, False, 0.5)
        assert not result.eligible
        assert len(result.reasons) == 4
        assert result.reasons[0].startswith("Must not have previously owned")
