"""The eight-step home-buying journey and its per-user progress record.

Milestones 2-5 unlock in order: each becomes available once its predecessor is
completed. Milestone 1 and milestones 6-8 are always available. Only
``in_progress`` and ``completed`` are ever stored as user decisions; the
``locked``/``available`` status a caller sees is derived from the rule above
every time it is read, so it cannot drift from the completion state.

Each milestone carries one kind of payload. Payloads are a closed set of
tagged pydantic models (discriminated on ``kind``) rather than free-form
dicts, so callers can only attach data the milestone understands.
"""

from __future__ import annotations

import datetime as dt
import enum
import math
from typing import Annotated, Dict, List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from fthb.core.errors import ValidationError
from fthb.core.government_programs import IncentiveBreakdown
from fthb.core.mortgage import Breakdown


class Milestone(enum.IntEnum):
    CREDIT_SCORE = 1
    FHSA = 2
    PRE_APPROVAL = 3
    INCENTIVES = 4
    NEIGHBORHOODS = 5
    PROPERTY_SEARCH = 6
    BOOK_VIEWING = 7
    MAKE_OFFER = 8

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def title(self) -> str:
        return MILESTONE_TITLES[self]

    @classmethod
    def parse(cls, value: "int | str | Milestone") -> "Milestone":
        """Accept a number (``4``, ``"4"``) or a key (``"incentives"``)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        try:
            if text.isdigit():
                return cls(int(text))
            return cls[text.upper()]
        except (KeyError, ValueError):
            raise ValidationError("milestone_id", f"unknown milestone {value!r}") from None


MILESTONE_TITLES = {
    Milestone.CREDIT_SCORE: "Check Your Credit Score",
    Milestone.FHSA: "Open FHSA Account",
    Milestone.PRE_APPROVAL: "Get Pre-Approved",
    Milestone.INCENTIVES: "Unlock BC Incentives",
    Milestone.NEIGHBORHOODS: "Explore Neighborhoods",
    Milestone.PROPERTY_SEARCH: "Search Properties",
    Milestone.BOOK_VIEWING: "Book Viewings",
    Milestone.MAKE_OFFER: "Make an Offer",
}

TOTAL_MILESTONES = len(Milestone)

#: Milestones that unlock one after another.
SEQUENTIAL_MILESTONES = (Milestone.FHSA, Milestone.PRE_APPROVAL, Milestone.INCENTIVES, Milestone.NEIGHBORHOODS)


class MilestoneStatus(str, enum.Enum):
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Ordering used to reject status regressions.
STATUS_RANK = {
    MilestoneStatus.LOCKED: 0,
    MilestoneStatus.AVAILABLE: 1,
    MilestoneStatus.IN_PROGRESS: 2,
    MilestoneStatus.COMPLETED: 3,
}


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def merge(self, newer: "_Payload") -> "_Payload":
        """Combine with a newer payload of the same kind.

        Only fields the newer payload actually carries are applied, so a
        default never overwrites a stored value. List fields keep every
        distinct entry (existing order first); other fields take the newer
        value unless it is ``None``.
        """
        if type(newer) is not type(self):
            raise ValidationError("data.kind", f"cannot merge {newer.kind!r} into {self.kind!r}")  # type: ignore[attr-defined]
        merged = {}
        for name in type(self).model_fields:
            old, new = getattr(self, name), getattr(newer, name)
            if name not in newer.model_fields_set:
                merged[name] = old
            elif isinstance(old, list) and isinstance(new, list):
                merged[name] = old + [item for item in new if item not in old]
            else:
                merged[name] = old if new is None else new
        return type(self).model_validate(merged)


class CreditScorePayload(_Payload):
    kind: Literal["credit_score"] = "credit_score"
    credit_score: int = Field(ge=300, le=900)
    method: Literal["manual", "api"] = "manual"


class FHSAPayload(_Payload):
    kind: Literal["fhsa"] = "fhsa"
    has_account: Optional[bool] = None
    proof_url: Optional[str] = None
    opened_at: Optional[dt.datetime] = None
    skipped: Optional[bool] = None


class PreApprovalPayload(_Payload):
    kind: Literal["pre_approval"] = "pre_approval"
    credit_score: Optional[int] = Field(default=None, ge=300, le=900)
    down_payment_percent: Optional[float] = Field(default=None, ge=0, le=100)
    amortization_years: Optional[int] = Field(default=None, ge=5, le=30)
    term: Optional[int] = Field(default=None, ge=1, le=10)
    preferred_lenders: List[str] = Field(default_factory=list)
    documents_uploaded: List[str] = Field(default_factory=list)


class QuizResultPayload(_Payload):
    kind: Literal["quiz_result"] = "quiz_result"
    quiz_response_id: Optional[str] = None
    total_savings: Optional[float] = None
    breakdown: Optional[Breakdown] = None
    incentives: Optional[IncentiveBreakdown] = None


class NeighborhoodsPayload(_Payload):
    kind: Literal["neighborhoods"] = "neighborhoods"
    interested_neighborhoods: List[str] = Field(default_factory=list)
    explored_count: Optional[int] = Field(default=None, ge=0)


class PropertySearchPayload(_Payload):
    kind: Literal["property_search"] = "property_search"
    source: Optional[str] = None
    saved_listings: List[str] = Field(default_factory=list)


class AppointmentPayload(_Payload):
    kind: Literal["appointment"] = "appointment"
    appointment_ids: List[str] = Field(default_factory=list)
    property_address: Optional[str] = None
    scheduled_for: Optional[dt.datetime] = None


class OfferPayload(_Payload):
    kind: Literal["offer"] = "offer"
    offer_ids: List[str] = Field(default_factory=list)
    submitted_offer_id: Optional[str] = None


MilestonePayload = Annotated[
    Union[
        CreditScorePayload,
        FHSAPayload,
        PreApprovalPayload,
        QuizResultPayload,
        NeighborhoodsPayload,
        PropertySearchPayload,
        AppointmentPayload,
        OfferPayload,
    ],
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER: TypeAdapter = TypeAdapter(MilestonePayload)

PAYLOAD_TYPES = {
    Milestone.CREDIT_SCORE: CreditScorePayload,
    Milestone.FHSA: FHSAPayload,
    Milestone.PRE_APPROVAL: PreApprovalPayload,
    Milestone.INCENTIVES: QuizResultPayload,
    Milestone.NEIGHBORHOODS: NeighborhoodsPayload,
    Milestone.PROPERTY_SEARCH: PropertySearchPayload,
    Milestone.BOOK_VIEWING: AppointmentPayload,
    Milestone.MAKE_OFFER: OfferPayload,
}


def parse_payload(milestone: Milestone, data: object) -> Optional[_Payload]:
    """Validate ``data`` as the payload kind ``milestone`` accepts.

    ``data`` may be a payload instance or a plain mapping; a mapping without
    ``kind`` is read as the milestone's own kind.

    Raises:
        ValidationError: For a wrong kind or invalid fields.
    """
    if data is None:
        return None
    expected = PAYLOAD_TYPES[milestone]
    if isinstance(data, _Payload):
        payload = data
    elif isinstance(data, dict):
        raw = dict(data)
        raw.setdefault("kind", expected.model_fields["kind"].default)
        try:
            payload = _PAYLOAD_ADAPTER.validate_python(raw)
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"data.{loc}" if loc else "data", first.get("msg", "invalid value")) from None
    else:
        raise ValidationError("data", f"expected an object, got {type(data).__name__}")
    if not isinstance(payload, expected):
        raise ValidationError(
            "data.kind",
            f"milestone {milestone.key} accepts {expected.model_fields['kind'].default!r} data, got {payload.kind!r}",  # type: ignore[attr-defined]
        )
    return payload


def load_payload(raw: Optional[dict]) -> Optional[_Payload]:
    """Rebuild a stored payload from its JSON form."""
    if raw is None:
        return None
    return _PAYLOAD_ADAPTER.validate_python(raw)


def merge_payload(existing: Optional[_Payload], incoming: Optional[_Payload]) -> Optional[_Payload]:
    if existing is None:
        return incoming
    if incoming is None:
        return existing
    return existing.merge(incoming)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class MilestoneState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: MilestoneStatus
    data: Optional[MilestonePayload] = None
    completed_at: Optional[dt.datetime] = None


class MilestoneRecord(BaseModel):
    """A user's journey: one state per milestone plus the derived progress percentage."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    milestones: Dict[Milestone, MilestoneState]
    overall_progress: int = Field(ge=0, le=100)
    created_at: dt.datetime
    updated_at: dt.datetime
    quiz_response_id: Optional[str] = None

    def state(self, milestone: Milestone) -> MilestoneState:
        return self.milestones[milestone]

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.milestones.values() if s.status == MilestoneStatus.COMPLETED)


def initial_status(milestone: Milestone) -> MilestoneStatus:
    if milestone in SEQUENTIAL_MILESTONES:
        return MilestoneStatus.LOCKED
    return MilestoneStatus.AVAILABLE


def compute_overall_progress(completed_count: int) -> int:
    """Percentage of milestones completed, rounded half up (3 of 8 -> 38)."""
    count = max(0, min(int(completed_count), TOTAL_MILESTONES))
    return int(math.floor(count * 100 / TOTAL_MILESTONES + 0.5))


def new_progress_record(
    user_id: str,
    now: dt.datetime,
    quiz_response_id: str | None = None,
) -> MilestoneRecord:
    """A fresh record: milestone 1 and 6-8 available, 2-5 locked, nothing completed."""
    return MilestoneRecord(
        user_id=user_id,
        milestones={m: MilestoneState(status=initial_status(m)) for m in Milestone},
        overall_progress=0,
        created_at=now,
        updated_at=now,
        quiz_response_id=quiz_response_id,
    )


def milestone_status(record: MilestoneRecord, milestone: Milestone) -> MilestoneStatus:
    """Status of ``milestone`` as the user should see it."""
    stored = record.milestones[milestone].status
    if stored in (MilestoneStatus.COMPLETED, MilestoneStatus.IN_PROGRESS):
        return stored
    if milestone not in SEQUENTIAL_MILESTONES:
        return MilestoneStatus.AVAILABLE
    previous = record.milestones[Milestone(milestone - 1)].status
    return MilestoneStatus.AVAILABLE if previous == MilestoneStatus.COMPLETED else MilestoneStatus.LOCKED


def derived_statuses(record: MilestoneRecord) -> Dict[Milestone, MilestoneStatus]:
    return {m: milestone_status(record, m) for m in Milestone}


def replace_milestone(
    record: MilestoneRecord,
    milestone: Milestone,
    state: MilestoneState,
    now: dt.datetime,
) -> MilestoneRecord:
    """Copy of ``record`` with one milestone replaced and progress recomputed."""
    milestones = dict(record.milestones)
    milestones[milestone] = state
    completed = sum(1 for s in milestones.values() if s.status == MilestoneStatus.COMPLETED)
    return record.model_copy(
        update={
            "milestones": milestones,
            "overall_progress": compute_overall_progress(completed),
            "updated_at": now,
        }
    )
