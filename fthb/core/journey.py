"""Journey orchestration: the side effects other features have on progress.

Quiz submission seeds a user's record; booking a viewing and drafting or
submitting an offer advance later milestones. These progress updates are best
effort: the primary operation (saving the quiz, the appointment, the offer)
has already succeeded, so a progress failure is logged instead of raised.
Transient failures (write conflicts, database outages) are queued for
:meth:`JourneyOrchestrator.retry_pending`; failures that replaying cannot fix,
such as a user with no progress record, are logged and dropped. Completion is
idempotent, so replaying a queued advance is safe.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, List, Mapping, Optional

from sqlalchemy import exc as sa_exc

from fthb.core.defaults import Settings
from fthb.core.errors import ConcurrencyError, FthbError, ValidationError
from fthb.core.government_programs import IncentiveBreakdown, calculate_total_incentives
from fthb.core.milestones import (
    AppointmentPayload,
    Milestone,
    MilestoneStatus,
    OfferPayload,
    PropertySearchPayload,
    QuizResultPayload,
)
from fthb.core.mortgage import Breakdown, compute_quiz_breakdown
from fthb.core.progress import ProgressTracker
from fthb.core.validation import AppointmentRef, QuizInput, get_quiz_warnings, parse_input

logger = logging.getLogger(__name__)

#: Failures worth replaying later. Anything else is logged and dropped.
RETRYABLE_ERRORS = (ConcurrencyError, sa_exc.OperationalError, sa_exc.TimeoutError, OSError)


@dataclass(frozen=True)
class QuizResult:
    quiz_response_id: str
    session_id: str
    owner_id: str
    breakdown: Breakdown
    incentives: IncentiveBreakdown
    warnings: List[str] = field(default_factory=list)
    progress_seeded: bool = False


@dataclass(frozen=True)
class AdvanceRequest:
    """A progress update that failed and should be replayed."""

    action: str  # "start", "complete", "update" or "data"
    user_id: str
    milestone: Milestone
    status: Optional[MilestoneStatus] = None
    data: Any = None
    quiz_response_id: Optional[str] = None


class JourneyOrchestrator:
    def __init__(self, tracker: ProgressTracker | None = None, settings: Settings | None = None) -> None:
        self.tracker = tracker if tracker is not None else ProgressTracker()
        self.settings = settings or Settings()
        self.pending: Deque[AdvanceRequest] = deque()

    # -- quiz --------------------------------------------------------------

    def _evaluate(self, quiz: QuizInput) -> tuple[Breakdown, IncentiveBreakdown]:
        breakdown = compute_quiz_breakdown(quiz.income, quiz.savings, self.settings.quiz_rate)
        rrsp_balance = self.settings.assumed_rrsp_balance if quiz.has_retirement_savings else 0.0
        incentives = calculate_total_incentives(
            breakdown.affordable_price,
            quiz.income,
            new_home=quiz.new_construction,
            has_rrsp=quiz.has_retirement_savings,
            rrsp_balance=rrsp_balance,
        )
        return breakdown, incentives

    def submit_quiz(
        self,
        quiz: QuizInput | Mapping[str, Any],
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> QuizResult:
        """Evaluate quiz answers and start the submitter's journey.

        Progress is keyed by ``user_id`` when known, otherwise by the session.
        A missing session id is generated.

        Raises:
            ValidationError: When the answers are invalid. Nothing is stored.
        """
        answers = parse_input(QuizInput, quiz)
        breakdown, incentives = self._evaluate(answers)
        quiz_response_id = uuid.uuid4().hex
        session_id = session_id or uuid.uuid4().hex
        owner_id = user_id or session_id

        payload = QuizResultPayload(
            quiz_response_id=quiz_response_id,
            total_savings=incentives.total,
            breakdown=breakdown,
            incentives=incentives,
        )
        seeded = self._attempt(
            AdvanceRequest("start", owner_id, Milestone.INCENTIVES, data=payload, quiz_response_id=quiz_response_id)
        )
        return QuizResult(
            quiz_response_id=quiz_response_id,
            session_id=session_id,
            owner_id=owner_id,
            breakdown=breakdown,
            incentives=incentives,
            warnings=get_quiz_warnings(answers, breakdown.affordable_price),
            progress_seeded=seeded,
        )

    def resubmit_quiz(
        self,
        owner_id: str,
        quiz: QuizInput | Mapping[str, Any],
        quiz_response_id: str | None = None,
    ) -> QuizResult:
        """Recalculate edited answers and refresh milestone 4's data.

        Milestone 4 stays completed with its original timestamp.
        """
        answers = parse_input(QuizInput, quiz)
        breakdown, incentives = self._evaluate(answers)
        quiz_response_id = quiz_response_id or uuid.uuid4().hex
        payload = QuizResultPayload(
            quiz_response_id=quiz_response_id,
            total_savings=incentives.total,
            breakdown=breakdown,
            incentives=incentives,
        )
        seeded = self._attempt(
            AdvanceRequest("start", owner_id, Milestone.INCENTIVES, data=payload, quiz_response_id=quiz_response_id)
        )
        return QuizResult(
            quiz_response_id=quiz_response_id,
            session_id=owner_id,
            owner_id=owner_id,
            breakdown=breakdown,
            incentives=incentives,
            warnings=get_quiz_warnings(answers, breakdown.affordable_price),
            progress_seeded=seeded,
        )

    # -- appointments and offers ------------------------------------------

    def on_appointment_created(self, user_id: str, appointment: AppointmentRef | Mapping[str, Any]) -> bool:
        """Booking a viewing implies the buyer searched properties and booked a viewing."""
        ref = parse_input(AppointmentRef, appointment)
        ok = True
        try:
            record = self.tracker.get_progress(user_id)
        except FthbError:
            logger.warning("could not read progress for %s after appointment %s", user_id, ref.appointment_id, exc_info=True)
            record = None
        if record is None or record.milestones[Milestone.PROPERTY_SEARCH].status != MilestoneStatus.COMPLETED:
            ok &= self._attempt(
                AdvanceRequest(
                    "complete", user_id, Milestone.PROPERTY_SEARCH, data=PropertySearchPayload(source="appointment")
                )
            )
        ok &= self._attempt(
            AdvanceRequest(
                "complete",
                user_id,
                Milestone.BOOK_VIEWING,
                data=AppointmentPayload(
                    appointment_ids=[ref.appointment_id],
                    property_address=ref.property_address,
                    scheduled_for=ref.scheduled_for,
                ),
            )
        )
        return ok

    def on_offer_created(self, user_id: str, offer_id: str) -> bool:
        """A drafted offer starts milestone 8 and is recorded against it."""
        if not offer_id:
            raise ValidationError("offer_id", "offer id is required")
        try:
            record = self.tracker.get_progress(user_id)
            done = record.milestones[Milestone.MAKE_OFFER].status == MilestoneStatus.COMPLETED
        except FthbError:
            logger.warning("could not read progress for %s after offer %s", user_id, offer_id, exc_info=True)
            done = False
        payload = OfferPayload(offer_ids=[offer_id])
        if done:
            return self._attempt(AdvanceRequest("data", user_id, Milestone.MAKE_OFFER, data=payload))
        return self._attempt(
            AdvanceRequest("update", user_id, Milestone.MAKE_OFFER, status=MilestoneStatus.IN_PROGRESS, data=payload)
        )

    def on_offer_status_changed(self, user_id: str, offer_id: str, previous: str, current: str) -> bool:
        """Submitting a draft offer completes milestone 8; other changes are ignored."""
        if (previous, current) != ("draft", "submitted"):
            return True
        return self._attempt(
            AdvanceRequest(
                "complete",
                user_id,
                Milestone.MAKE_OFFER,
                data=OfferPayload(offer_ids=[offer_id], submitted_offer_id=offer_id),
            )
        )

    # -- retry -------------------------------------------------------------

    def retry_pending(self) -> int:
        """Replay queued advances once each; returns how many still fail."""
        for _ in range(len(self.pending)):
            request = self.pending.popleft()
            self._attempt(request)
        return len(self.pending)

    def _attempt(self, request: AdvanceRequest) -> bool:
        try:
            self._apply(request)
        except RETRYABLE_ERRORS:
            logger.warning(
                "progress %s of %s for %s failed; queued for retry",
                request.action, request.milestone.key, request.user_id,
                exc_info=True,
            )
            self.pending.append(request)
            return False
        except Exception:
            logger.warning(
                "progress %s of %s for %s failed; dropped",
                request.action, request.milestone.key, request.user_id,
                exc_info=True,
            )
            return False
        return True

    def _apply(self, request: AdvanceRequest) -> None:
        if request.action == "start":
            self.tracker.start_journey(request.user_id, request.data, request.quiz_response_id)
        elif request.action == "complete":
            self.tracker.complete_milestone(request.user_id, request.milestone, request.data)
        elif request.action == "update":
            self.tracker.update_milestone(request.user_id, request.milestone, request.status, request.data)
        elif request.action == "data":
            self.tracker.set_milestone_data(request.user_id, request.milestone, request.data)
        else:
            raise ValueError(f"unknown progress action: {request.action}")
