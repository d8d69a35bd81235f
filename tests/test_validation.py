from __future__ import annotations

import pytest

from fthb.core.defaults import Settings
from fthb.core.errors import FthbError, ValidationError
from fthb.core.validation import AppointmentRef, QuizInput, RateRequest, get_quiz_warnings, parse_input

QUIZ = {"income": 90_000, "savings": 50_000, "property_type": "townhome", "timeline": "6-12"}


class TestParseInput:
    def test_valid_quiz(self):
        quiz = parse_input(QuizInput, QUIZ)
        assert quiz.income == 90_000
        assert quiz.has_retirement_savings is False
        assert quiz.new_construction is False

    def test_passthrough_instance(self):
        quiz = parse_input(QuizInput, QUIZ)
        assert parse_input(QuizInput, quiz) is quiz

    def test_missing_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(QuizInput, {k: v for k, v in QUIZ.items() if k != "timeline"})
        assert exc_info.value.field == "timeline"

    def test_extra_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(QuizInput, {**QUIZ, "pets": 2})
        assert exc_info.value.field == "pets"

    def test_error_is_catchable_as_value_error(self):
        with pytest.raises(ValueError):
            parse_input(QuizInput, {**QUIZ, "income": -5})
        with pytest.raises(FthbError):
            parse_input(QuizInput, {**QUIZ, "income": -5})

    def test_message_names_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(QuizInput, {**QUIZ, "income": -5})
        assert str(exc_info.value).startswith("income: ")

    def test_rate_request_defaults(self):
        req = parse_input(RateRequest, {"income": 80_000, "credit_score": 700, "down_payment_percent": 10})
        assert req.amortization_years == 25
        assert req.term == 5
        assert req.loan_amount is None
        assert req.first_time_buyer is True

    @pytest.mark.parametrize(
        "override, field",
        [
            ({"amortization_years": 35}, "amortization_years"),
            ({"term": 11}, "term"),
            ({"down_payment_percent": 120}, "down_payment_percent"),
            ({"loan_amount": 0}, "loan_amount"),
        ],
    )
    def test_rate_request_bounds(self, override, field):
        base = {"income": 80_000, "credit_score": 700, "down_payment_percent": 10}
        with pytest.raises(ValidationError) as exc_info:
            parse_input(RateRequest, {**base, **override})
        assert exc_info.value.field == field

    def test_appointment_ignores_extra_fields(self):
        ref = parse_input(AppointmentRef, {"appointment_id": "a1", "property_address": "1 Main St", "agent": "x"})
        assert ref.scheduled_for is None


class TestQuizWarnings:
    def test_no_savings(self):
        quiz = parse_input(QuizInput, {**QUIZ, "savings": 0})
        warnings = get_quiz_warnings(quiz, 300_000)
        assert any(w.startswith("No savings") for w in warnings)

    def test_large_down_payment_is_quiet(self):
        quiz = parse_input(QuizInput, {**QUIZ, "savings": 200_000})
        assert get_quiz_warnings(quiz, 500_000) == []

    def test_rrsp_short_timeline(self):
        quiz = parse_input(QuizInput, {**QUIZ, "savings": 200_000, "has_retirement_savings": True, "timeline": "1-3"})
        warnings = get_quiz_warnings(quiz, 500_000)
        assert len(warnings) == 1
        assert "90 days" in warnings[0]


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.quiz_rate == 0.045
        assert s.assumed_rrsp_balance == 35_000
        assert s.database_url.startswith("sqlite")

    def test_overrides_coerce(self):
        s = Settings().with_overrides({"quiz_rate": "0.05", "max_retries": "9", "log_level": "DEBUG"})
        assert s.quiz_rate == 0.05
        assert s.max_retries == 9
        assert s.log_level == "DEBUG"

    def test_unknown_key(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings().with_overrides({"nope": 1})
        assert exc_info.value.field == "nope"

    def test_bad_value(self):
        with pytest.raises(ValidationError):
            Settings().with_overrides({"max_retries": "many"})

    def test_from_env(self):
        s = Settings.from_env({"FTHB_DATABASE_URL": "sqlite://", "FTHB_QUIZ_RATE": "0.055", "UNRELATED": "x"})
        assert s.database_url == "sqlite://"
        assert s.quiz_rate == 0.055
        assert s.log_level == "WARNING"

    def test_to_dict(self):
        assert Settings().to_dict()["loan_to_income_multiple"] == 4.5
