"""Mortgage payment and affordability calculations.

All rates are annual nominal decimals compounded monthly (``rate / 12``), the
convention used by the quiz and by lender payment quotes.
"""

from __future__ import annotations

from dataclasses import dataclass

from fthb.core.errors import DomainError
from fthb.core.money import _safe_float, floor_dollars, round_half_up
from fthb.core.policy_canada import MAX_GDS_RATIO, MAX_TDS_RATIO, MIN_DOWN_PAYMENT_FRACTION

#: Share of the maximum housing payment assigned to each cost.
MORTGAGE_SHARE = 0.80
PROPERTY_TAX_SHARE = 0.15
HEATING_SHARE = 0.05

#: Quiz savings split: the rest is kept back as an emergency buffer.
QUIZ_DOWN_PAYMENT_SHARE = 0.80
#: Closing costs assumed by the quiz, as a fraction of the price.
QUIZ_CLOSING_COST_RATE = 0.03
QUIZ_AMORTIZATION_YEARS = 25


@dataclass(frozen=True)
class Affordability:
    max_home_price: int
    max_loan: int
    max_monthly_payment: int
    est_property_tax: int
    est_heating: int


@dataclass(frozen=True)
class Breakdown:
    """Quiz result: what the buyer can afford and how it is funded.

    All fields are whole dollars, floored.
    """

    affordable_price: int
    mortgage: int
    down_payment: int
    closing_costs: int
    buffer: int


def _check_loan_terms(annual_rate: float, years: float) -> tuple[float, int]:
    rate = float(annual_rate)
    if rate != rate or rate < 0:
        raise DomainError(f"annual rate must be >= 0, got {annual_rate!r}")
    if not years or float(years) <= 0:
        raise DomainError(f"amortization years must be > 0, got {years!r}")
    return rate, int(round(float(years) * 12))


def compute_monthly_payment(principal: float, annual_rate: float, years: float) -> float:
    """Fixed monthly payment for a fully amortizing loan.

    Args:
        principal: Loan principal, must be positive.
        annual_rate: Annual nominal rate as a decimal; zero is allowed.
        years: Amortization in years, must be positive.

    Returns:
        Unrounded monthly payment.

    Raises:
        DomainError: For a non-positive principal or term, or a negative rate.
    """
    p = _safe_float(principal)
    if p <= 0:
        raise DomainError(f"principal must be > 0, got {principal!r}")
    rate, n = _check_loan_terms(annual_rate, years)
    if rate == 0:
        return p / n
    r = rate / 12.0
    growth = (1.0 + r) ** n
    return p * (r * growth) / (growth - 1.0)


def principal_from_payment(monthly_payment: float, annual_rate: float, years: float) -> float:
    """Largest principal a monthly payment can amortize (inverse of :func:`compute_monthly_payment`)."""
    pmt = max(0.0, _safe_float(monthly_payment))
    rate, n = _check_loan_terms(annual_rate, years)
    if rate == 0:
        return pmt * n
    r = rate / 12.0
    growth = (1.0 + r) ** n
    return pmt * (growth - 1.0) / (r * growth)


def compute_total_interest(monthly_payment: float, principal: float, years: float) -> float:
    """Interest paid over the full amortization."""
    return float(monthly_payment) * float(years) * 12.0 - float(principal)


def compute_affordability(
    annual_income: float,
    down_payment: float,
    monthly_debts: float = 0.0,
    rate: float = 0.05,
    years: float = 25,
    max_gds: float = MAX_GDS_RATIO,
    max_tds: float = MAX_TDS_RATIO,
) -> Affordability:
    """Maximum home price under gross/total debt service limits.

    The allowed housing payment is the smaller of the GDS and TDS limits. It is
    split 80/15/5 between mortgage, property tax and heating, and the mortgage
    share is inverted to a loan amount. This is an approximation; it does not
    model condo fees or insurance premiums.

    When existing debts already consume the TDS room the housing payment is
    zero and the buyer can afford only their down payment.
    """
    income = _safe_float(annual_income)
    if income < 0:
        raise DomainError(f"annual income must be >= 0, got {annual_income!r}")
    down = max(0.0, _safe_float(down_payment))
    debts = max(0.0, _safe_float(monthly_debts))

    monthly_income = income / 12.0
    max_housing = min(monthly_income * float(max_gds), monthly_income * float(max_tds) - debts)
    max_housing = max(0.0, max_housing)

    mortgage_payment = max_housing * MORTGAGE_SHARE
    loan = principal_from_payment(mortgage_payment, rate, years)

    return Affordability(
        max_home_price=floor_dollars(loan + down),
        max_loan=floor_dollars(loan),
        max_monthly_payment=round_half_up(mortgage_payment),
        est_property_tax=round_half_up(max_housing * PROPERTY_TAX_SHARE),
        est_heating=round_half_up(max_housing * HEATING_SHARE),
    )


def compute_quiz_breakdown(income: float, savings: float, rate: float = 0.045) -> Breakdown:
    """Turn quiz answers into an affordability breakdown.

    80% of savings goes to the down payment and 20% stays as a buffer. The
    price is capped so the down payment is at least the 5% minimum; closing
    costs are a flat 3% of the price.
    """
    savings = max(0.0, _safe_float(savings))
    down = round(savings * QUIZ_DOWN_PAYMENT_SHARE, 2)
    buffer = round(savings - down, 2)

    affordability = compute_affordability(income, down, 0.0, rate, QUIZ_AMORTIZATION_YEARS)
    price = float(affordability.max_home_price)

    if down > 0:
        price = min(price, round(down / MIN_DOWN_PAYMENT_FRACTION, 2))

    down_floor = floor_dollars(down)
    price_floor = floor_dollars(price)
    return Breakdown(
        affordable_price=price_floor,
        mortgage=max(0, price_floor - down_floor),
        down_payment=down_floor,
        closing_costs=floor_dollars(price * QUIZ_CLOSING_COST_RATE),
        buffer=floor_dollars(buffer),
    )
