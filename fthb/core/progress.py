"""Milestone progress service.

:class:`ProgressTracker` is the only code that changes a user's journey. Each
operation touches a single milestone through
:meth:`ProgressStore.update_milestone`; callers never read a record, edit it
and write it back.

Not-found policy: reads and updates of a user without a record raise
:class:`~fthb.core.errors.ProgressNotFoundError`. Records are created only by
:meth:`ProgressTracker.start_journey`, which the quiz flow calls.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any

import pandas as pd

from fthb.core.errors import InvalidTransitionError, ProgressNotFoundError, ValidationError
from fthb.core.milestones import (
    STATUS_RANK,
    TOTAL_MILESTONES,
    Milestone,
    MilestoneRecord,
    MilestoneState,
    MilestoneStatus,
    derived_statuses,
    merge_payload,
    milestone_status,
    new_progress_record,
    parse_payload,
    replace_milestone,
)
from fthb.core.progress_store import Clock, InMemoryProgressStore, ProgressStore, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MilestoneAck:
    """Result of a milestone operation."""

    user_id: str
    milestone: Milestone
    status: MilestoneStatus
    overall_progress: int
    completed_count: int


@dataclass(frozen=True)
class ProgressStats:
    overall_progress: int
    completed: int
    in_progress: int
    available: int
    locked: int
    total: int
    last_updated: dt.datetime


def _parse_status(value: Any) -> MilestoneStatus:
    try:
        return MilestoneStatus(value)
    except ValueError:
        raise ValidationError("status", f"unknown status {value!r}") from None


class ProgressTracker:
    def __init__(self, store: ProgressStore | None = None, clock: Clock = utcnow) -> None:
        self.store: ProgressStore = store if store is not None else InMemoryProgressStore(clock)
        self._clock = clock

    # -- reads -------------------------------------------------------------

    def get_progress(self, user_id: str) -> MilestoneRecord:
        record = self.store.get(user_id)
        if record is None:
            raise ProgressNotFoundError(user_id)
        return record

    def progress_stats(self, user_id: str) -> ProgressStats:
        record = self.get_progress(user_id)
        statuses = list(derived_statuses(record).values())
        return ProgressStats(
            overall_progress=record.overall_progress,
            completed=statuses.count(MilestoneStatus.COMPLETED),
            in_progress=statuses.count(MilestoneStatus.IN_PROGRESS),
            available=statuses.count(MilestoneStatus.AVAILABLE),
            locked=statuses.count(MilestoneStatus.LOCKED),
            total=TOTAL_MILESTONES,
            last_updated=record.updated_at,
        )

    def progress_frame(self, limit: int = 50) -> pd.DataFrame:
        """Most recently updated records, one row each with every milestone's status."""
        rows = []
        for record in self.store.list_records(limit):
            row: dict[str, Any] = {
                "user_id": record.user_id,
                "overall_progress": record.overall_progress,
                "completed": record.completed_count,
                "updated_at": record.updated_at,
            }
            for m, status in derived_statuses(record).items():
                row[m.key] = status.value
            rows.append(row)
        columns = ["user_id", "overall_progress", "completed", "updated_at"] + [m.key for m in Milestone]
        return pd.DataFrame(rows, columns=columns)

    # -- writes ------------------------------------------------------------

    def start_journey(
        self,
        user_id: str,
        quiz_payload: Any = None,
        quiz_response_id: str | None = None,
    ) -> tuple[MilestoneRecord, bool]:
        """Create the user's record, seeded with milestone 4 when quiz results are given.

        Safe to call again: an existing record is kept and only milestone 4's
        data is refreshed. Returns the record and whether it was created.
        """
        payload = parse_payload(Milestone.INCENTIVES, quiz_payload)
        now = self._clock()
        record = new_progress_record(user_id, now, quiz_response_id)
        if payload is not None:
            seeded = MilestoneState(status=MilestoneStatus.COMPLETED, data=payload, completed_at=now)
            record = replace_milestone(record, Milestone.INCENTIVES, seeded, now)

        if self.store.create(record):
            logger.info("started journey for %s (progress %d%%)", user_id, record.overall_progress)
            return record, True

        if payload is not None:
            self.complete_milestone(user_id, Milestone.INCENTIVES, payload)
        return self.get_progress(user_id), False

    def complete_milestone(self, user_id: str, milestone: Any, data: Any = None) -> MilestoneAck:
        """Mark a milestone completed.

        Idempotent: completing an already-completed milestone keeps its original
        ``completed_at`` and merges ``data`` into the stored payload.
        """
        m = Milestone.parse(milestone)
        payload = parse_payload(m, data)
        now = self._clock()

        def change(record: MilestoneRecord, state: MilestoneState) -> MilestoneState:
            merged = merge_payload(state.data, payload)
            if state.status == MilestoneStatus.COMPLETED:
                return state.model_copy(update={"data": merged})
            return MilestoneState(status=MilestoneStatus.COMPLETED, data=merged, completed_at=now)

        record = self.store.update_milestone(user_id, m, change)
        logger.debug("completed %s for %s", m.key, user_id)
        return self._ack(record, m)

    def update_milestone(self, user_id: str, milestone: Any, status: Any, data: Any = None) -> MilestoneAck:
        """Move a milestone forward to ``status``, attaching ``data``.

        Statuses never move backwards. ``locked`` and ``available`` are derived
        from the journey, so they are accepted only when they already hold.

        Raises:
            InvalidTransitionError: On a regression, or when starting a locked milestone.
        """
        m = Milestone.parse(milestone)
        target = _parse_status(status)
        if target == MilestoneStatus.COMPLETED:
            return self.complete_milestone(user_id, m, data)
        payload = parse_payload(m, data)

        def change(record: MilestoneRecord, state: MilestoneState) -> MilestoneState:
            current = milestone_status(record, m)
            if STATUS_RANK[target] < STATUS_RANK[current]:
                raise InvalidTransitionError(f"{m.key} is {current.value}; cannot move back to {target.value}")
            if target == MilestoneStatus.IN_PROGRESS and current == MilestoneStatus.LOCKED:
                raise InvalidTransitionError(f"{m.key} is locked until {Milestone(m - 1).key} is completed")
            if target != MilestoneStatus.IN_PROGRESS and target != current:
                raise InvalidTransitionError(f"{m.key} becomes {target.value} only through the journey")
            merged = merge_payload(state.data, payload)
            if target == MilestoneStatus.IN_PROGRESS:
                return state.model_copy(update={"status": MilestoneStatus.IN_PROGRESS, "data": merged})
            return state.model_copy(update={"data": merged})

        record = self.store.update_milestone(user_id, m, change)
        return self._ack(record, m)

    def set_milestone_data(self, user_id: str, milestone: Any, data: Any) -> MilestoneAck:
        """Merge ``data`` into a milestone's payload without touching its status."""
        m = Milestone.parse(milestone)
        payload = parse_payload(m, data)
        if payload is None:
            raise ValidationError("data", "data is required")

        def change(record: MilestoneRecord, state: MilestoneState) -> MilestoneState:
            return state.model_copy(update={"data": merge_payload(state.data, payload)})

        record = self.store.update_milestone(user_id, m, change)
        return self._ack(record, m)

    def _ack(self, record: MilestoneRecord, milestone: Milestone) -> MilestoneAck:
        return MilestoneAck(
            user_id=record.user_id,
            milestone=milestone,
            status=milestone_status(record, milestone),
            overall_progress=record.overall_progress,
            completed_count=record.completed_count,
        )


def milestone_view(record: MilestoneRecord) -> list[dict[str, Any]]:
    """Per-milestone rows for display: id, key, title, derived status, data."""
    rows = []
    for m, status in derived_statuses(record).items():
        state = record.milestones[m]
        rows.append(
            {
                "id": int(m),
                "key": m.key,
                "title": m.title,
                "status": status.value,
                "completed_at": state.completed_at.isoformat() if state.completed_at else None,
                "data": state.data.model_dump(mode="json") if state.data is not None else None,
            }
        )
    return rows


def record_to_dict(record: MilestoneRecord) -> dict[str, Any]:
    return {
        "user_id": record.user_id,
        "overall_progress": record.overall_progress,
        "completed_count": record.completed_count,
        "quiz_response_id": record.quiz_response_id,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
        "milestones": milestone_view(record),
    }
