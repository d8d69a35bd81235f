"""Tests for the ``python -m fthb`` entry point."""

from __future__ import annotations

import json

import pytest

from fthb.__main__ import _apply_overrides, main


@pytest.fixture
def db(tmp_path):
    return f"sqlite:///{tmp_path / 'progress.db'}"


def _json_out(capsys):
    return json.loads(capsys.readouterr().out)


class TestSettings:
    def test_example(self, capsys):
        assert main(["--example"]) == 0
        out = _json_out(capsys)
        assert out["quiz_rate"] == 0.045
        assert out["max_retries"] == 5

    def test_no_command(self, capsys):
        assert main([]) == 2

    def test_unknown_setting(self, capsys):
        assert main(["--set", "favourite_colour=blue", "--example"]) == 1
        assert "Config error" in capsys.readouterr().err

    def test_bad_value(self, capsys):
        assert main(["--set", "quiz_rate=abc", "--example"]) == 1

    def test_missing_config_file(self, tmp_path, capsys):
        assert main(["--config", str(tmp_path / "nope.json"), "--example"]) == 1

    def test_config_file(self, tmp_path, db, capsys):
        cfg = tmp_path / "settings.json"
        cfg.write_text(json.dumps({"_comment": "test", "quiz_rate": 0.06}))
        assert main(["--config", str(cfg), "--db", db, "--json", "quiz", "--income", "90000", "--savings", "50000"]) == 0
        higher_rate = _json_out(capsys)
        assert main(["--db", db, "--json", "quiz", "--income", "90000", "--savings", "50000"]) == 0
        default_rate = _json_out(capsys)
        assert higher_rate["breakdown"]["affordable_price"] < default_rate["breakdown"]["affordable_price"]

    def test_apply_overrides_coercion(self, capsys):
        d = _apply_overrides({}, ["a=1", "b=2.5", "c=true", "d=text", "broken"])
        assert d == {"a": 1, "b": 2.5, "c": True, "d": "text"}
        assert "malformed" in capsys.readouterr().err


class TestQuizAndProgress:
    def test_quiz_then_progress(self, db, capsys):
        assert main(["--db", db, "--json", "quiz", "--income", "90000", "--savings", "50000", "--rrsp", "--user", "alice"]) == 0
        result = _json_out(capsys)
        assert result["owner_id"] == "alice"
        assert result["breakdown"]["down_payment"] == 40_000
        assert result["incentives"]["hbp_benefit"] == 3_500
        assert result["progress_seeded"] is True

        assert main(["--db", db, "--json", "progress", "show", "alice"]) == 0
        record = _json_out(capsys)
        assert record["overall_progress"] == 13
        assert record["milestones"][3]["status"] == "completed"

        assert main(["--db", db, "--json", "progress", "complete", "alice", "1", "--data", '{"credit_score": 720}']) == 0
        ack = _json_out(capsys)
        assert ack["status"] == "completed"
        assert ack["overall_progress"] == 25

        assert main(["--db", db, "--json", "progress", "stats", "alice"]) == 0
        stats = _json_out(capsys)
        assert stats["completed"] == 2
        assert stats["total"] == 8

    def test_text_output(self, db, capsys):
        assert main(["--db", db, "quiz", "--income", "90000", "--savings", "50000", "--user", "bob"]) == 0
        out = capsys.readouterr().out
        assert "Affordable price" in out
        assert "Total incentives" in out

        assert main(["--db", db, "progress", "show", "bob"]) == 0
        assert "13% complete" in capsys.readouterr().out

        assert main(["--db", db, "progress", "update", "bob", "make_offer", "in_progress"]) == 0
        assert "in_progress" in capsys.readouterr().out

        assert main(["--db", db, "progress", "list"]) == 0
        assert "bob" in capsys.readouterr().out

    def test_missing_user(self, db, capsys):
        assert main(["--db", db, "progress", "show", "nobody"]) == 1
        assert "no progress record" in capsys.readouterr().err

    def test_invalid_transition(self, db, capsys):
        main(["--db", db, "quiz", "--income", "90000", "--savings", "50000", "--user", "carol"])
        capsys.readouterr()
        assert main(["--db", db, "progress", "update", "carol", "3", "in_progress"]) == 1
        assert "locked" in capsys.readouterr().err

    def test_bad_data_json(self, db, capsys):
        main(["--db", db, "quiz", "--income", "90000", "--savings", "50000", "--user", "dave"])
        capsys.readouterr()
        assert main(["--db", db, "progress", "complete", "dave", "1", "--data", "{oops"]) == 1
        assert "--data" in capsys.readouterr().err

    def test_invalid_quiz(self, db, capsys):
        assert main(["--db", db, "quiz", "--income", "0", "--savings", "50000"]) == 1
        assert "income" in capsys.readouterr().err


class TestCalculators:
    def test_rates(self, capsys):
        assert main(["--json", "rates", "--income", "100000", "--credit-score", "750", "--down-payment-percent", "20"]) == 0
        quotes = _json_out(capsys)
        assert len(quotes) == 10
        assert quotes[0]["lender"] == "MCAP"

    def test_rates_all_terms(self, capsys):
        args = ["--json", "rates", "--income", "100000", "--credit-score", "750", "--down-payment-percent", "20"]
        assert main(args + ["--all-terms"]) == 0
        quotes = _json_out(capsys)
        assert len(quotes) == 100
        assert {q["term"] for q in quotes} == set(range(1, 11))

    def test_rates_single_term(self, capsys):
        args = ["--json", "rates", "--income", "100000", "--credit-score", "750", "--down-payment-percent", "20"]
        assert main(args + ["--term", "3"]) == 0
        assert {q["term"] for q in _json_out(capsys)} == {3}

    def test_rates_invalid_score(self, capsys):
        assert main(["rates", "--income", "100000", "--credit-score", "200", "--down-payment-percent", "20"]) == 1
        assert "credit_score" in capsys.readouterr().err

    def test_incentives(self, capsys):
        args = ["--json", "incentives", "--price", "600000", "--income", "90000", "--rrsp-balance", "35000"]
        assert main(args) == 0
        inc = _json_out(capsys)
        assert inc["total"] == 11_898

    def test_closing_costs(self, capsys):
        assert main(["--json", "closing-costs", "--price", "500000", "--down-payment-percent", "10"]) == 0
        assert _json_out(capsys)["total"] == 15_000

    def test_closing_costs_text(self, capsys):
        assert main(["closing-costs", "--price", "500000", "--down-payment-percent", "20"]) == 0
        assert "legal fees" in capsys.readouterr().out
