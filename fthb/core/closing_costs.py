"""Closing-cost estimate for a purchase."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from fthb.core.errors import DomainError
from fthb.core.money import _safe_float, round_half_up
from fthb.core.policy_canada import cmhc_premium_rate_from_ltv, requires_mortgage_insurance

LEGAL_FEES = 1_500.0
HOME_INSPECTION = 600.0
#: Lenders order an appraisal on insured (high-ratio) purchases.
APPRAISAL_FEE = 300.0


@dataclass(frozen=True)
class ClosingCosts:
    property_transfer_tax: float
    legal_fees: float
    home_inspection: float
    appraisal_fee: float
    cmhc_premium: float
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


def estimate_closing_costs(home_price: float, down_payment_percent: float) -> ClosingCosts:
    """Estimate cash costs due at closing.

    Transfer tax is reported as zero here; first-time buyer relief is shown
    separately in the incentive breakdown. The default-insurance premium is
    included for down payments under 20% even though lenders usually add it
    to the mortgage.

    Args:
        home_price: Purchase price.
        down_payment_percent: Down payment in percent of price (e.g. 10 for 10%).
    """
    price = _safe_float(home_price)
    down_pct = _safe_float(down_payment_percent)
    if price <= 0:
        raise DomainError(f"home price must be > 0, got {home_price!r}")
    if not 0 <= down_pct <= 100:
        raise DomainError(f"down payment percent must be within 0..100, got {down_payment_percent!r}")

    insured = requires_mortgage_insurance(down_pct)
    appraisal = APPRAISAL_FEE if insured else 0.0
    premium = 0.0
    if insured:
        loan = price * (1.0 - down_pct / 100.0)
        premium = loan * cmhc_premium_rate_from_ltv(loan / price)

    ptt = 0.0
    return ClosingCosts(
        property_transfer_tax=ptt,
        legal_fees=LEGAL_FEES,
        home_inspection=HOME_INSPECTION,
        appraisal_fee=appraisal,
        cmhc_premium=premium,
        total=round_half_up(ptt + LEGAL_FEES + HOME_INSPECTION + appraisal + premium),
    )
