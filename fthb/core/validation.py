"""Input models and validation helpers.

Every request that crosses into the engine (quiz answers, rate requests,
milestone updates, appointment references) is parsed through a pydantic model
here. :func:`parse_input` turns pydantic's error list into a single
:class:`~fthb.core.errors.ValidationError` naming the first offending field.

:func:`get_quiz_warnings` is the non-raising companion: it returns friendly
messages for inputs that are valid but likely to surprise the user.
"""

from __future__ import annotations

import datetime as _dt
from typing import Any, List, Literal, Mapping, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from fthb.core.errors import ValidationError
from fthb.core.policy_canada import INSURED_DOWN_PAYMENT_THRESHOLD

ModelT = TypeVar("ModelT", bound=BaseModel)

PropertyType = Literal["condo", "townhome", "detached"]
Timeline = Literal["1-3", "3-6", "6-12"]


class QuizInput(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    income: float = Field(gt=0, description="Gross annual household income")
    savings: float = Field(ge=0, description="Total savings available for the purchase")
    has_retirement_savings: bool = False
    property_type: PropertyType
    timeline: Timeline
    new_construction: bool = False


class RateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    income: float = Field(gt=0)
    credit_score: int = Field(ge=300, le=900)
    down_payment_percent: float = Field(ge=0, le=100)
    amortization_years: int = Field(default=25, ge=5, le=30)
    term: Optional[int] = Field(default=5, ge=1, le=10)
    loan_amount: Optional[float] = Field(default=None, gt=0)
    monthly_debts: float = Field(default=0.0, ge=0)
    first_time_buyer: bool = True


class AppointmentRef(BaseModel):
    """A booked viewing, as reported by the appointment feature."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    appointment_id: str = Field(min_length=1)
    property_address: str = Field(min_length=5)
    scheduled_for: Optional[_dt.datetime] = None


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def parse_input(model: Type[ModelT], data: Mapping[str, Any] | ModelT) -> ModelT:
    """Validate ``data`` against ``model``.

    Raises:
        ValidationError: Naming the first offending field.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        raise ValidationError(_field_path(first.get("loc", ())), first.get("msg", "invalid value")) from None


def get_quiz_warnings(quiz: QuizInput, affordable_price: float | None = None) -> List[str]:
    """Return human-readable warnings for valid but unusual quiz answers."""
    warnings: List[str] = []
    if quiz.savings == 0:
        warnings.append("No savings entered: a down payment of at least 5% of the price is required.")
    if affordable_price and affordable_price > 0:
        down_share = (quiz.savings * 0.8) / affordable_price
        if down_share < INSURED_DOWN_PAYMENT_THRESHOLD:
            warnings.append(
                "Down payment is under 20% of the price: mortgage default insurance will apply."
            )
    if quiz.has_retirement_savings and quiz.timeline == "1-3":
        warnings.append(
            "RRSP withdrawals under the Home Buyers' Plan need the funds to sit in the RRSP for 90 days first."
        )
    return warnings
