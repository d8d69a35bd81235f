"""Tests for the milestone model: statuses, payload kinds and progress percentages."""

from __future__ import annotations

import datetime as dt

import pytest

from fthb.core.errors import ValidationError
from fthb.core.milestones import (
    AppointmentPayload,
    CreditScorePayload,
    Milestone,
    MilestoneState,
    MilestoneStatus,
    OfferPayload,
    QuizResultPayload,
    compute_overall_progress,
    derived_statuses,
    load_payload,
    merge_payload,
    new_progress_record,
    parse_payload,
    replace_milestone,
)
from fthb.core.mortgage import compute_quiz_breakdown

NOW = dt.datetime(2026, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def _complete(record, milestone):
    state = MilestoneState(status=MilestoneStatus.COMPLETED, completed_at=NOW)
    return replace_milestone(record, milestone, state, NOW)


class TestMilestoneEnum:
    def test_titles_and_keys(self):
        assert len(Milestone) == 8
        assert Milestone.INCENTIVES.title == "Unlock BC Incentives"
        assert Milestone.MAKE_OFFER.key == "make_offer"

    @pytest.mark.parametrize("value", [4, "4", " 4 ", "incentives", "INCENTIVES", Milestone.INCENTIVES])
    def test_parse(self, value):
        assert Milestone.parse(value) is Milestone.INCENTIVES

    @pytest.mark.parametrize("value", [0, 9, "nine", ""])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(ValidationError) as exc_info:
            Milestone.parse(value)
        assert exc_info.value.field == "milestone_id"


class TestStatuses:
    def test_fresh_record(self):
        record = new_progress_record("u1", NOW)
        statuses = derived_statuses(record)
        assert statuses[Milestone.CREDIT_SCORE] == MilestoneStatus.AVAILABLE
        for m in (Milestone.FHSA, Milestone.PRE_APPROVAL, Milestone.INCENTIVES, Milestone.NEIGHBORHOODS):
            assert statuses[m] == MilestoneStatus.LOCKED
        for m in (Milestone.PROPERTY_SEARCH, Milestone.BOOK_VIEWING, Milestone.MAKE_OFFER):
            assert statuses[m] == MilestoneStatus.AVAILABLE
        assert record.overall_progress == 0
        assert record.completed_count == 0

    def test_completion_unlocks_next_only(self):
        record = _complete(new_progress_record("u1", NOW), Milestone.CREDIT_SCORE)
        statuses = derived_statuses(record)
        assert statuses[Milestone.FHSA] == MilestoneStatus.AVAILABLE
        assert statuses[Milestone.PRE_APPROVAL] == MilestoneStatus.LOCKED

    def test_seeded_incentives_unlock_neighborhoods(self):
        record = _complete(new_progress_record("u1", NOW), Milestone.INCENTIVES)
        statuses = derived_statuses(record)
        assert statuses[Milestone.INCENTIVES] == MilestoneStatus.COMPLETED
        assert statuses[Milestone.NEIGHBORHOODS] == MilestoneStatus.AVAILABLE
        assert statuses[Milestone.FHSA] == MilestoneStatus.LOCKED
        assert record.overall_progress == 13


class TestOverallProgress:
    @pytest.mark.parametrize(
        "completed, expected",
        [(0, 0), (1, 13), (2, 25), (3, 38), (4, 50), (5, 63), (6, 75), (7, 88), (8, 100)],
    )
    def test_rounding(self, completed, expected):
        assert compute_overall_progress(completed) == expected

    def test_clamped(self):
        assert compute_overall_progress(-2) == 0
        assert compute_overall_progress(12) == 100

    def test_replace_recomputes(self):
        record = new_progress_record("u1", NOW)
        for m in Milestone:
            record = _complete(record, m)
        assert record.overall_progress == 100
        assert record.completed_count == 8


class TestPayloads:
    def test_mapping_defaults_to_milestone_kind(self):
        payload = parse_payload(Milestone.CREDIT_SCORE, {"credit_score": 720})
        assert isinstance(payload, CreditScorePayload)
        assert payload.method == "manual"

    def test_none_is_no_payload(self):
        assert parse_payload(Milestone.FHSA, None) is None

    def test_out_of_range_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(Milestone.CREDIT_SCORE, {"credit_score": 1200})
        assert exc_info.value.field.startswith("data")
        assert "credit_score" in exc_info.value.field

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(Milestone.FHSA, {"has_account": True, "favourite_colour": "blue"})
        assert exc_info.value.field.startswith("data")

    def test_wrong_kind_for_milestone(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(Milestone.FHSA, {"kind": "offer", "offer_ids": ["o1"]})
        assert exc_info.value.field == "data.kind"

    def test_wrong_instance_for_milestone(self):
        with pytest.raises(ValidationError):
            parse_payload(Milestone.BOOK_VIEWING, OfferPayload(offer_ids=["o1"]))

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(Milestone.FHSA, ["not", "a", "dict"])
        assert exc_info.value.field == "data"

    def test_merge_unions_lists_and_keeps_values(self):
        old = AppointmentPayload(appointment_ids=["a1"], property_address="1 Main St")
        new = AppointmentPayload(appointment_ids=["a1", "a2"])
        merged = merge_payload(old, new)
        assert merged.appointment_ids == ["a1", "a2"]
        assert merged.property_address == "1 Main St"

    def test_merge_ignores_defaults_the_newer_payload_did_not_send(self):
        old = CreditScorePayload(credit_score=700, method="api")
        new = parse_payload(Milestone.CREDIT_SCORE, {"credit_score": 720})
        merged = merge_payload(old, new)
        assert merged.credit_score == 720
        assert merged.method == "api"

    def test_merge_applies_explicit_default(self):
        old = CreditScorePayload(credit_score=700, method="api")
        new = CreditScorePayload(credit_score=700, method="manual")
        assert merge_payload(old, new).method == "manual"

    def test_merge_with_none(self):
        offer = OfferPayload(offer_ids=["o1"])
        assert merge_payload(None, offer) is offer
        assert merge_payload(offer, None) is offer

    def test_merge_mismatched_kinds(self):
        with pytest.raises(ValidationError):
            merge_payload(OfferPayload(), AppointmentPayload())

    def test_quiz_payload_survives_json(self):
        payload = QuizResultPayload(
            quiz_response_id="q1",
            total_savings=50_000,
            breakdown=compute_quiz_breakdown(90_000, 50_000, 0.045),
        )
        restored = load_payload(payload.model_dump(mode="json"))
        assert isinstance(restored, QuizResultPayload)
        assert restored.breakdown.down_payment == 40_000
        assert restored == payload
