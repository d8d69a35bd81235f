#!/usr/bin/env python3
"""Truth-table QA: small, exact, calculator-level invariants.

These checks are intentionally numeric and explicit. They exist to prove that:
- Mortgage payments and their inverse agree.
- Transfer-tax relief is full below its threshold and fades continuously to zero.
- GST relief never applies to resale homes.
- Personalized rates respect their floor for every profile.
- Incentive totals are the exact sum of their parts.

Run:
  python -m fthb.qa.qa_truth_tables
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np

# Ensure repo root is on sys.path regardless of where this script is invoked from.
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _die(msg: str, code: int = 1) -> None:
    print(f"\n[TRUTH TABLES FAILED] {msg}\n")
    raise SystemExit(code)


def _assert_close(name: str, got: float, exp: float, *, atol: float = 1e-9, rtol: float = 0.0) -> None:
    try:
        g = float(got)
        e = float(exp)
    except Exception:
        _die(f"{name}: non-numeric (got={got}, exp={exp})")
    if not (math.isfinite(g) and math.isfinite(e)):
        _die(f"{name}: non-finite (got={g}, exp={e})")
    if abs(g - e) > (atol + rtol * abs(e)):
        _die(f"{name}: got {g:.12g} expected {e:.12g} (atol={atol}, rtol={rtol})")


def test_payment_round_trip() -> None:
    from fthb.core.mortgage import compute_monthly_payment, principal_from_payment

    for rate in (0.0, 0.0345, 0.045, 0.0725):
        for years in (5, 25, 30):
            pmt = compute_monthly_payment(400_000, rate, years)
            _assert_close(f"principal({rate},{years})", principal_from_payment(pmt, rate, years), 400_000, atol=1e-6)

    # Zero rate is straight division.
    _assert_close("zero-rate payment", compute_monthly_payment(300_000, 0.0, 25), 1_000.0)
    # Hand-checked: 500k at 5% over 25 years.
    _assert_close("500k@5%/25y", compute_monthly_payment(500_000, 0.05, 25), 2922.95, atol=0.05)


def test_stress_test_rate() -> None:
    from fthb.core.policy_canada import stress_test_rate

    _assert_close("stress(0.03)", stress_test_rate(0.03), 0.0525)
    _assert_close("stress(0.04)", stress_test_rate(0.04), 0.06)
    for x in np.linspace(0.0, 0.12, 121):
        _assert_close(f"stress({x:.4f})", stress_test_rate(float(x)), max(float(x) + 0.02, 0.0525))


def test_ptt_exemption_shape() -> None:
    from fthb.core.taxes import calc_ptt_bc, ptt_savings

    for p in np.linspace(0, 500_000, 51):
        if ptt_savings(float(p)) != round(calc_ptt_bc(float(p))):
            _die(f"ptt_savings({p}) should equal the full tax below 500k")

    prices = np.linspace(500_000, 835_000, 3_351)
    savings = np.array([ptt_savings(float(p)) for p in prices])
    if np.any(np.diff(savings) > 0):
        _die("ptt_savings must not increase across the phase-out band")
    # 100-dollar steps: neighbouring values may differ by at most the per-step slope plus rounding.
    max_step = float(np.max(np.abs(np.diff(savings))))
    if max_step > 8_000 * 100 / 335_000 + 1:
        _die(f"ptt_savings jumps by {max_step} within the phase-out band")
    if savings[-1] != 0:
        _die(f"ptt_savings at 835k should be 0, got {savings[-1]}")

    _assert_close("ptt_savings(600k)", ptt_savings(600_000), round(8_000 * (1 - 100_000 / 335_000)), atol=0.5)
    if ptt_savings(400_000, first_time_buyer=False) != 0:
        _die("non first-time buyers get no exemption")


def test_new_home_exemption_shape() -> None:
    from fthb.core.taxes import new_home_ptt_savings

    _assert_close("new_home(1.1M)", new_home_ptt_savings(1_100_000, True), 20_000)
    _assert_close("new_home(1.125M)", new_home_ptt_savings(1_125_000, True), 10_000)
    _assert_close("new_home(1.15M)", new_home_ptt_savings(1_150_000, True), 0)
    _assert_close("resale", new_home_ptt_savings(900_000, False), 0)


def test_gst_rebate_resale_is_zero() -> None:
    from fthb.core.taxes import gst_rebate

    for p in np.linspace(100_000, 2_000_000, 40):
        if gst_rebate(float(p), new_home=False) != 0:
            _die(f"gst_rebate({p}) on resale must be 0")
    _assert_close("gst std 300k", gst_rebate(300_000, True, False), 300_000 * 0.05 * 0.36, atol=0.5)
    _assert_close("gst fthb 800k", gst_rebate(800_000, True, True), 40_000)
    _assert_close("gst fthb 300k", gst_rebate(300_000, True, True), 5_400)
    _assert_close("gst fthb 1.25M", gst_rebate(1_250_000, True, True), 62_500 * 0.5, atol=0.5)


def test_rate_floor() -> None:
    from fthb.core.rates import RATE_FLOOR, personalize_rate

    for base in np.linspace(0.0, 0.08, 33):
        for score in (300, 599, 600, 619, 620, 679, 680, 739, 740, 900):
            for down in (0.0, 5.0, 19.99, 20.0, 34.99, 35.0, 100.0):
                for ftb in (True, False):
                    r = personalize_rate(float(base), score, down, ftb)
                    if r < RATE_FLOOR - 1e-12:
                        _die(f"personalize_rate({base}, {score}, {down}, {ftb}) = {r} is below the floor")
    _assert_close("best profile near floor", personalize_rate(0.026, 800, 40, True), 0.025)


def test_incentive_total_is_sum() -> None:
    from fthb.core.government_programs import calculate_total_incentives

    for price in np.linspace(200_000, 1_600_000, 29):
        for new_home in (False, True):
            inc = calculate_total_incentives(float(price), 95_000, new_home, True, 20_000)
            parts = inc.ptt + inc.gst + inc.fhsa_benefit + inc.hbp_benefit + inc.owner_grant
            if inc.total != parts:
                _die(f"total {inc.total} != sum of parts {parts} at {price}")


def test_overall_progress_table() -> None:
    from fthb.core.milestones import compute_overall_progress

    expected = [0, 13, 25, 38, 50, 63, 75, 88, 100]
    got = [compute_overall_progress(n) for n in range(9)]
    if got != expected:
        _die(f"overall progress table {got} != {expected}")


def main(argv: list[str] | None = None) -> None:
    test_payment_round_trip()
    test_stress_test_rate()
    test_ptt_exemption_shape()
    test_new_home_exemption_shape()
    test_gst_rebate_resale_is_zero()
    test_rate_floor()
    test_incentive_total_is_sum()
    test_overall_progress_table()
    print("[TRUTH TABLES OK]")


if __name__ == "__main__":
    main()
