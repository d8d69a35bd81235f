"""BC property transfer tax and GST relief for home buyers."""

from __future__ import annotations

import datetime

from fthb.core.money import _safe_float, round_half_up

# Policy freshness marker (used by CI reminder workflows)
TAX_RULES_LAST_REVIEWED = datetime.date(2026, 9, 14)

# BC PTT: 1% on first $200k, 2% on $200k–$2M, 3% on $2M–$3M, 5% above $3M.
# Each entry is (upper bound of the tier, marginal rate).
BC_PTT_BRACKETS = [
    (200_000.0, 0.01),
    (2_000_000.0, 0.02),
    (3_000_000.0, 0.03),
    (float("inf"), 0.05),
]

#: First-time buyer exemption: full PTT relief up to this price ...
FTHB_FULL_EXEMPTION_PRICE = 500_000.0
#: ... phasing out linearly to nothing at this price.
FTHB_PHASE_OUT_PRICE = 835_000.0

#: Newly built homes get a more generous threshold pair.
NEW_HOME_FULL_EXEMPTION_PRICE = 1_100_000.0
NEW_HOME_PHASE_OUT_PRICE = 1_150_000.0

GST_RATE = 0.05
#: Standard new-housing rebate: 36% of GST, full to $350k, nothing by $450k.
GST_NEW_HOUSING_REBATE_RATE = 0.36
GST_REBATE_FULL_PRICE = 350_000.0
GST_REBATE_PHASE_OUT_PRICE = 450_000.0
#: First-time buyer GST relief above the standard band: all of the GST, full to $1M, nothing by $1.5M.
GST_FTHB_FULL_PRICE = 1_000_000.0
GST_FTHB_PHASE_OUT_PRICE = 1_500_000.0


def _calc_bracket_tax(amount: float, brackets: list[tuple[float, float]]) -> float:
    """Progressive tax over ``(upper_bound, rate)`` tiers."""
    tax = 0.0
    lower = 0.0
    for upper, rate in brackets:
        if amount <= lower:
            break
        taxable = min(amount, upper) - lower
        tax += taxable * rate
        lower = upper
    return tax


def calc_ptt_bc(price: float) -> float:
    """Full BC property transfer tax before any exemption."""
    p = max(0.0, _safe_float(price))
    return _calc_bracket_tax(p, BC_PTT_BRACKETS)


def _phase_out(value: float, price: float, full_to: float, zero_at: float) -> float:
    """Scale ``value`` from 100% at ``full_to`` down to 0% at ``zero_at``."""
    if price <= full_to:
        return value
    if price >= zero_at:
        return 0.0
    return value * (1.0 - (price - full_to) / (zero_at - full_to))


def _phased_ptt_exemption(price: float, full_to: float, zero_at: float) -> int:
    p = max(0.0, _safe_float(price))
    if p <= full_to:
        return round_half_up(calc_ptt_bc(p))
    return round_half_up(_phase_out(calc_ptt_bc(full_to), p, full_to, zero_at))


def ptt_savings(price: float, first_time_buyer: bool = True) -> int:
    """PTT saved through the BC first-time buyer exemption.

    Below $500k the whole tax is exempt. Above it, the exemption on the first
    $500k shrinks linearly and reaches zero at $835k, so savings are continuous
    across both thresholds.
    """
    if not first_time_buyer:
        return 0
    return _phased_ptt_exemption(price, FTHB_FULL_EXEMPTION_PRICE, FTHB_PHASE_OUT_PRICE)


def new_home_ptt_savings(price: float, new_home: bool, first_time_buyer: bool = True) -> int:
    """PTT saved through the newly built home exemption ($1.1M full, zero at $1.15M)."""
    if not (new_home and first_time_buyer):
        return 0
    return _phased_ptt_exemption(price, NEW_HOME_FULL_EXEMPTION_PRICE, NEW_HOME_PHASE_OUT_PRICE)


def gst_rebate(price: float, new_home: bool, first_time_buyer: bool = True) -> int:
    """GST relief on a newly built home.

    Resale homes carry no GST, so relief is zero unless ``new_home``. Up to
    $450k every buyer gets the standard new-housing rebate. Above that,
    first-time buyers get the enhanced relief on the full GST, phasing out
    between $1M and $1.5M; nobody else gets anything.
    """
    if not new_home:
        return 0
    p = max(0.0, _safe_float(price))
    gst = p * GST_RATE

    if p <= GST_REBATE_PHASE_OUT_PRICE:
        return round_half_up(
            _phase_out(gst * GST_NEW_HOUSING_REBATE_RATE, p, GST_REBATE_FULL_PRICE, GST_REBATE_PHASE_OUT_PRICE)
        )
    if not first_time_buyer:
        return 0
    return round_half_up(_phase_out(gst, p, GST_FTHB_FULL_PRICE, GST_FTHB_PHASE_OUT_PRICE))
