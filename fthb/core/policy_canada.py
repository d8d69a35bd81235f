"""Canada-specific lending policy helpers.

These are *rules-of-thumb* used for affordability and rate guidance; lenders and
insurers apply additional criteria. Rates are decimal fractions (0.05 == 5%).
"""

from __future__ import annotations

import datetime as dt
import warnings

# Last reviewed for correctness (YYYY-MM-DD).
# Update this when modifying any thresholds in this module.
POLICY_LAST_REVIEWED = dt.date(2026, 9, 14)

#: OSFI B-20 minimum qualifying rate floor.
STRESS_TEST_FLOOR = 0.0525
#: Buffer added to the contract rate for the B-20 qualifying rate.
STRESS_TEST_BUFFER = 0.02

#: Gross debt service ceiling (housing costs / gross income).
MAX_GDS_RATIO = 0.32
#: Total debt service ceiling (housing + other debts / gross income).
MAX_TDS_RATIO = 0.40

#: Smallest down payment an insured purchase may carry.
MIN_DOWN_PAYMENT_FRACTION = 0.05

#: Down payment below which mortgage default insurance is required.
INSURED_DOWN_PAYMENT_THRESHOLD = 0.20

# (upper LTV bound, premium rate), evaluated top-down; first match wins.
_CMHC_PREMIUM_TIERS = [
    (0.80, 0.0),
    (0.85, 0.024),
    (0.90, 0.028),
    (0.95, 0.031),
]
_CMHC_PREMIUM_ABOVE_95 = 0.040


def stress_test_rate(actual_rate: float, *, floor: float = STRESS_TEST_FLOOR) -> float:
    """Compute the OSFI B-20 stress test qualifying rate.

    The qualifying rate is the greater of the contract rate plus two percentage
    points and the floor rate.

    Args:
        actual_rate: Contract rate as a decimal (e.g. 0.045).
        floor: Qualifying-rate floor as a decimal.

    Returns:
        The qualifying rate as a decimal.
    """
    return max(float(actual_rate) + STRESS_TEST_BUFFER, float(floor))


def cmhc_premium_rate_from_ltv(ltv: float) -> float:
    """Mortgage default insurance premium rate for a loan-to-value ratio.

    Args:
        ltv: Loan-to-value as a fraction (e.g. 0.95 for 95%).

    Returns:
        Premium rate as a decimal fraction of the loan.
    """
    try:
        x = float(ltv)
        if x != x:
            return 0.0
    except Exception:
        return 0.0

    for upper, rate in _CMHC_PREMIUM_TIERS:
        if x <= upper + 1e-12:
            return rate
    if x > 1.0:
        warnings.warn(
            f"cmhc_premium_rate_from_ltv: LTV={x:.4f} exceeds 100%; using the top premium tier.",
            stacklevel=2,
        )
    return _CMHC_PREMIUM_ABOVE_95


def requires_mortgage_insurance(down_payment_percent: float) -> bool:
    """True when a down payment (in percent) is below the conventional 20% threshold."""
    return float(down_payment_percent) < INSURED_DOWN_PAYMENT_THRESHOLD * 100.0
