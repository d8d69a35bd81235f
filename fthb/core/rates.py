"""Mortgage rate personalization and approval-odds heuristics.

Advertised lender rates are adjusted for the borrower's credit score, down
payment and first-time buyer status, then quoted with a monthly payment at
both the personalized rate and the B-20 stress test rate.

The bundled rate sheet is a static fallback snapshot of BC lender rates; it
is not live market data.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass
from typing import Any, Literal, Mapping

import pandas as pd

from fthb.core.defaults import Settings
from fthb.core.errors import DomainError
from fthb.core.money import round_half_up
from fthb.core.mortgage import compute_monthly_payment
from fthb.core.policy_canada import stress_test_rate
from fthb.core.validation import RateRequest, parse_input

# Last reviewed for correctness (YYYY-MM-DD).
RATE_SHEET_LAST_REVIEWED = dt.date(2026, 9, 14)

#: No personalized rate is quoted below this.
RATE_FLOOR = 0.025

# (minimum score, adjustment): first match wins; scores below every entry use the last.
_CREDIT_ADJUSTMENTS = [
    (740, -0.0025),
    (680, -0.0010),
    (620, 0.0010),
    (600, 0.0025),
]
_CREDIT_ADJUSTMENT_POOR = 0.0050

_LOW_DOWN_PAYMENT_PCT = 20.0
_LOW_DOWN_PAYMENT_ADJUSTMENT = 0.0010
_LARGE_DOWN_PAYMENT_PCT = 35.0
_LARGE_DOWN_PAYMENT_ADJUSTMENT = -0.0005
_FIRST_TIME_BUYER_ADJUSTMENT = -0.0005

# Approval-odds screen: a 25-year loan at 5% is used as the reference payment.
_ODDS_REFERENCE_RATE = 0.05
_ODDS_REFERENCE_YEARS = 25
_HIGH_ODDS_MIN_SCORE = 680
_HIGH_ODDS_MAX_DTI = 0.36
_HIGH_ODDS_MAX_LOAN_MULTIPLE = 5.0
_LOW_ODDS_MIN_SCORE = 620
_LOW_ODDS_MAX_DTI = 0.43
_LOW_ODDS_MAX_LOAN_MULTIPLE = 6.0

ApprovalOdds = Literal["high", "medium", "low"]

# Advertised 5-year rates: (lender, type, rate).
FALLBACK_LENDERS = [
    ("TD Bank", "fixed", 0.0374),
    ("RBC", "fixed", 0.0379),
    ("Scotiabank", "fixed", 0.0384),
    ("BMO", "fixed", 0.0369),
    ("CIBC", "fixed", 0.0389),
    ("MCAP", "variable", 0.0345),
    ("Vancity", "fixed", 0.0369),
    ("Coast Capital", "fixed", 0.0379),
    ("Tangerine", "fixed", 0.0399),
    ("First National", "variable", 0.0350),
]

#: Spread applied to the 5-year rate for every other term.
TERM_ADJUSTMENTS = {
    1: -0.0020,
    2: -0.0015,
    3: -0.0010,
    4: -0.0005,
    5: 0.0,
    6: 0.0003,
    7: 0.0005,
    8: 0.0008,
    9: 0.0010,
    10: 0.0012,
}

RATE_SHEET_COLUMNS = ["lender", "type", "term", "rate", "province"]


@dataclass(frozen=True)
class RateQuote:
    lender: str
    type: str
    term: int
    advertised_rate: float
    personalized_rate: float
    monthly_payment: int
    stress_test_payment: int
    approval_odds: ApprovalOdds

    def to_dict(self) -> dict:
        return asdict(self)


def personalize_rate(
    base_rate: float,
    credit_score: int,
    down_payment_percent: float,
    first_time_buyer: bool = True,
) -> float:
    """Adjust an advertised rate for the borrower's profile.

    Credit score moves the rate the most (from -0.25% to +0.50%); a down
    payment under 20% adds 0.10% and one of 35% or more takes off 0.05%;
    first-time buyers get a further 0.05% off. The result never drops below
    :data:`RATE_FLOOR`.
    """
    rate = float(base_rate)

    score = int(credit_score)
    for minimum, adjustment in _CREDIT_ADJUSTMENTS:
        if score >= minimum:
            rate += adjustment
            break
    else:
        rate += _CREDIT_ADJUSTMENT_POOR

    down = float(down_payment_percent)
    if down < _LOW_DOWN_PAYMENT_PCT:
        rate += _LOW_DOWN_PAYMENT_ADJUSTMENT
    elif down >= _LARGE_DOWN_PAYMENT_PCT:
        rate += _LARGE_DOWN_PAYMENT_ADJUSTMENT

    if first_time_buyer:
        rate += _FIRST_TIME_BUYER_ADJUSTMENT

    return round(max(rate, RATE_FLOOR), 6)


def determine_approval_odds(
    credit_score: int,
    annual_income: float,
    loan_amount: float,
    monthly_debts: float = 0.0,
) -> ApprovalOdds:
    """Coarse likelihood that a lender approves the loan.

    "high" needs good credit, a debt-to-income ratio under 36% and a loan of
    at most five times income. Poor credit, a ratio over 43% or a loan over six
    times income is "low". Everything else is "medium".

    Raises:
        DomainError: For a non-positive income or loan amount.
    """
    income = float(annual_income)
    if income <= 0:
        raise DomainError(f"annual income must be > 0, got {annual_income!r}")
    payment = compute_monthly_payment(loan_amount, _ODDS_REFERENCE_RATE, _ODDS_REFERENCE_YEARS)
    dti = (payment + float(monthly_debts)) * 12.0 / income
    loan_multiple = float(loan_amount) / income

    if credit_score >= _HIGH_ODDS_MIN_SCORE and dti < _HIGH_ODDS_MAX_DTI and loan_multiple <= _HIGH_ODDS_MAX_LOAN_MULTIPLE:
        return "high"
    if credit_score < _LOW_ODDS_MIN_SCORE or dti > _LOW_ODDS_MAX_DTI or loan_multiple > _LOW_ODDS_MAX_LOAN_MULTIPLE:
        return "low"
    return "medium"


def build_rate_sheet(province: str = "BC") -> pd.DataFrame:
    """Advertised rates for every fallback lender and term (1-10 years)."""
    rows = [
        {
            "lender": lender,
            "type": kind,
            "term": term,
            "rate": round(base + adjustment, 6),
            "province": province,
        }
        for lender, kind, base in FALLBACK_LENDERS
        for term, adjustment in TERM_ADJUSTMENTS.items()
    ]
    return pd.DataFrame(rows, columns=RATE_SHEET_COLUMNS)


def current_rates(term: int | None = None, sheet: pd.DataFrame | None = None) -> pd.DataFrame:
    """Rate sheet rows, optionally restricted to one term, in sheet order."""
    df = build_rate_sheet() if sheet is None else sheet
    if term is not None:
        df = df[df["term"] == int(term)]
    return df.reset_index(drop=True)


def personalize_rates(
    request: RateRequest | Mapping[str, Any],
    sheet: pd.DataFrame | None = None,
    settings: Settings | None = None,
) -> list[RateQuote]:
    """Quote every lender on the sheet for a borrower, cheapest first.

    Without an explicit ``loan_amount`` the loan is assumed to be
    ``income * settings.loan_to_income_multiple``. Payments are whole dollars.

    Raises:
        ValidationError: When ``request`` fails validation.
    """
    req = parse_input(RateRequest, request)
    settings = settings or Settings()
    loan = req.loan_amount if req.loan_amount is not None else req.income * settings.loan_to_income_multiple
    odds = determine_approval_odds(req.credit_score, req.income, loan, req.monthly_debts)

    quotes = []
    for row in current_rates(req.term, sheet).itertuples(index=False):
        rate = personalize_rate(row.rate, req.credit_score, req.down_payment_percent, req.first_time_buyer)
        quotes.append(
            RateQuote(
                lender=row.lender,
                type=row.type,
                term=int(row.term),
                advertised_rate=float(row.rate),
                personalized_rate=rate,
                monthly_payment=round_half_up(compute_monthly_payment(loan, rate, req.amortization_years)),
                stress_test_payment=round_half_up(
                    compute_monthly_payment(loan, stress_test_rate(rate), req.amortization_years)
                ),
                approval_odds=odds,
            )
        )
    quotes.sort(key=lambda q: q.personalized_rate)
    return quotes


# Borrower profiles compared side by side: (label, credit score, down payment %).
COMPARISON_SCENARIOS = [
    ("Excellent credit, 20% down", 750, 20.0),
    ("Good credit, 15% down", 700, 15.0),
    ("Fair credit, 10% down", 650, 10.0),
]


def compare_rate_scenarios(sheet: pd.DataFrame | None = None, lenders: int = 3) -> pd.DataFrame:
    """Personalized 5-year rates for each comparison profile over the first few lenders."""
    five_year = current_rates(5, sheet).head(lenders)
    rows = []
    for label, score, down in COMPARISON_SCENARIOS:
        for row in five_year.itertuples(index=False):
            rate = personalize_rate(row.rate, score, down, True)
            rows.append(
                {
                    "scenario": label,
                    "credit_score": score,
                    "down_payment_percent": down,
                    "lender": row.lender,
                    "advertised_rate": float(row.rate),
                    "personalized_rate": rate,
                    "savings_vs_advertised": round(float(row.rate) - rate, 6),
                }
            )
    return pd.DataFrame(rows)
