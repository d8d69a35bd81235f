"""Government programs available to first-time home buyers in BC.

Models the First Home Savings Account (FHSA), the RRSP Home Buyers' Plan (HBP)
and the BC Home Owner Grant, and rolls them up with the transfer-tax and GST
relief from :mod:`fthb.core.taxes` into a single incentive breakdown.

These are planning-level approximations, not a complete tax engine. Users
should consult a tax professional for their specific situation.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field

import pandas as pd

from fthb.core.money import _safe_float, round_half_up
from fthb.core.taxes import gst_rebate, new_home_ptt_savings, ptt_savings

# Last reviewed for correctness (YYYY-MM-DD).
PROGRAMS_LAST_REVIEWED = dt.date(2026, 9, 14)

# ---------------------------------------------------------------------------
# First Home Savings Account (FHSA)
# ---------------------------------------------------------------------------

#: Annual contribution limit per CRA.
FHSA_ANNUAL_LIMIT = 8_000.0

#: Combined federal + BC marginal rates, as (upper income bound, rate).
FHSA_MARGINAL_BRACKETS = [
    (47_937.0, 0.2006),
    (95_875.0, 0.2770),
    (110_076.0, 0.3116),
    (148_537.0, 0.3287),
    (227_091.0, 0.3816),
    (float("inf"), 0.4910),
]


def fhsa_marginal_tax_rate(income: float) -> float:
    """Combined marginal tax rate for an annual income."""
    x = max(0.0, _safe_float(income))
    for upper, rate in FHSA_MARGINAL_BRACKETS:
        if x <= upper:
            return rate
    return FHSA_MARGINAL_BRACKETS[-1][1]


def fhsa_tax_benefit(income: float, contribution: float = FHSA_ANNUAL_LIMIT) -> int:
    """First-year tax saved by deducting an FHSA contribution.

    The contribution is clamped to the annual limit; the saving is the clamped
    contribution times the marginal rate.
    """
    c = max(0.0, min(_safe_float(contribution), FHSA_ANNUAL_LIMIT))
    return round_half_up(c * fhsa_marginal_tax_rate(income))


# ---------------------------------------------------------------------------
# RRSP Home Buyers' Plan (HBP)
# ---------------------------------------------------------------------------

#: HBP withdrawal ceiling per person.
HBP_MAX_WITHDRAWAL = 35_000.0

#: Repayment window (years). 15-year schedule mandated by CRA.
HBP_REPAYMENT_YEARS = 15

#: Growth assumed on the withdrawn amount, over two years, to value the
#: interest-free loan from the RRSP.
HBP_OPPORTUNITY_RATE = 0.05
HBP_OPPORTUNITY_YEARS = 2


@dataclass(frozen=True)
class HBPBenefit:
    available_withdrawal: int
    annual_repayment: int
    benefit: int


def hbp_benefit(rrsp_balance: float, withdrawal: float = HBP_MAX_WITHDRAWAL) -> HBPBenefit:
    """Value of an RRSP withdrawal under the Home Buyers' Plan.

    Args:
        rrsp_balance: Current RRSP balance.
        withdrawal: Amount the buyer wants to withdraw.

    Returns:
        The withdrawal actually available (bounded by the request, the ceiling
        and the balance), its annual repayment over 15 years, and the planning
        benefit of using it.
    """
    available = max(0.0, min(_safe_float(withdrawal), HBP_MAX_WITHDRAWAL, _safe_float(rrsp_balance)))
    return HBPBenefit(
        available_withdrawal=round_half_up(available),
        annual_repayment=round_half_up(available / HBP_REPAYMENT_YEARS),
        benefit=round_half_up(available * HBP_OPPORTUNITY_RATE * HBP_OPPORTUNITY_YEARS),
    )


# ---------------------------------------------------------------------------
# BC Home Owner Grant
# ---------------------------------------------------------------------------

#: Assessed value above which the grant is not available.
HOME_OWNER_GRANT_THRESHOLD = 2_175_000.0
HOME_OWNER_GRANT_BASIC = 570
#: Additional grant for seniors, veterans and persons with disabilities.
HOME_OWNER_GRANT_ADDITIONAL = 275


def home_owner_grant(assessed_value: float, senior_or_veteran: bool = False) -> int:
    """Annual BC Home Owner Grant for an assessed value."""
    if _safe_float(assessed_value) > HOME_OWNER_GRANT_THRESHOLD:
        return 0
    grant = HOME_OWNER_GRANT_BASIC
    if senior_or_veteran:
        grant += HOME_OWNER_GRANT_ADDITIONAL
    return grant


# ---------------------------------------------------------------------------
# Roll-up
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IncentiveBreakdown:
    """Whole-dollar value of each incentive; ``total`` is their exact sum."""

    ptt: int
    gst: int
    fhsa_benefit: int
    hbp_benefit: int
    owner_grant: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_total_incentives(
    home_price: float,
    income: float,
    new_home: bool = False,
    has_rrsp: bool = False,
    rrsp_balance: float = 0.0,
) -> IncentiveBreakdown:
    """All first-time buyer incentives for a purchase.

    Transfer-tax relief uses the new-home exemption for new construction and
    the standard exemption otherwise. The buyer is assumed to be a first-time
    buyer; see :func:`check_first_time_buyer_eligibility`.
    """
    if new_home:
        ptt = new_home_ptt_savings(home_price, True, True)
    else:
        ptt = ptt_savings(home_price, True)
    gst = gst_rebate(home_price, new_home, True)
    fhsa = fhsa_tax_benefit(income)
    hbp = hbp_benefit(rrsp_balance).benefit if has_rrsp else 0
    grant = home_owner_grant(home_price)

    return IncentiveBreakdown(
        ptt=ptt,
        gst=gst,
        fhsa_benefit=fhsa,
        hbp_benefit=hbp,
        owner_grant=grant,
        total=ptt + gst + fhsa + hbp + grant,
    )


_SUMMARY_LABELS = [
    ("ptt", "Property Transfer Tax savings"),
    ("gst", "GST rebate"),
    ("fhsa_benefit", "FHSA tax savings"),
    ("hbp_benefit", "RRSP Home Buyers' Plan benefit"),
    ("owner_grant", "BC Home Owner Grant (annual)"),
]


def incentive_summary_lines(incentives: IncentiveBreakdown) -> list[str]:
    """Human-readable lines for each non-zero incentive, then the total."""
    lines = []
    for attr, label in _SUMMARY_LABELS:
        amount = getattr(incentives, attr)
        if amount > 0:
            lines.append(f"{label}: ${amount:,}")
    lines.append(f"Total incentives: ${incentives.total:,}")
    return lines


def incentives_frame(incentives: IncentiveBreakdown) -> pd.DataFrame:
    """One row per incentive plus a total row, for tabular display."""
    rows = [{"incentive": label, "amount": getattr(incentives, attr)} for attr, label in _SUMMARY_LABELS]
    rows.append({"incentive": "Total", "amount": incentives.total})
    return pd.DataFrame(rows, columns=["incentive", "amount"])


# ---------------------------------------------------------------------------
# Eligibility (informational; does not gate the calculators)
# ---------------------------------------------------------------------------

#: Residency needed for the BC first-time buyer exemption.
BC_RESIDENCY_YEARS_REQUIRED = 1


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reasons: list[str] = field(default_factory=list)


def check_first_time_buyer_eligibility(
    has_owned_home: bool,
    is_canadian_citizen: bool,
    will_occupy_as_residence: bool,
    bc_resident_years: float,
) -> Eligibility:
    """Check the BC first-time buyer exemption criteria.

    Returns every failed criterion, not just the first.
    """
    reasons = []
    if has_owned_home:
        reasons.append("Must not have previously owned a principal residence anywhere in the world")
    if not is_canadian_citizen:
        reasons.append("Must be a Canadian citizen or permanent resident")
    if not will_occupy_as_residence:
        reasons.append("Property must be your principal residence")
    if _safe_float(bc_resident_years) < BC_RESIDENCY_YEARS_REQUIRED:
        reasons.append("Must be a BC resident for at least 12 months (or filed 2 of last 6 years of taxes in BC)")
    return Eligibility(eligible=not reasons, reasons=reasons)
