"""Run the QA suites and the policy freshness check under pytest."""

from __future__ import annotations

import datetime as dt
import importlib.util
from pathlib import Path

import pytest

import run_all_qa
from fthb.qa import qa_journey, qa_truth_tables

ROOT = Path(__file__).resolve().parents[1]


def _load_freshness():
    path = ROOT / "tools" / "maintenance" / "check_policy_freshness.py"
    spec = importlib.util.spec_from_file_location("check_policy_freshness", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.parametrize(
    "name",
    sorted(n for n in dir(qa_truth_tables) if n.startswith("test_")),
)
def test_truth_table(name):
    getattr(qa_truth_tables, name)()


@pytest.mark.parametrize("seed", [1, 7, 2024])
def test_journey_random_sequences(seed):
    qa_journey.test_random_sequences(seed=seed, steps=150)


def test_journey_concurrency():
    qa_journey.test_concurrent_completions(workers=8)


def test_run_all_qa(capsys):
    assert run_all_qa.main([]) == 0
    assert "truth_tables" in capsys.readouterr().out


def test_run_all_qa_unknown_suite(capsys):
    assert run_all_qa.main(["--only", "nope"]) == 1


class TestPolicyFreshness:
    def test_markers_are_current(self, capsys):
        from fthb.core.taxes import TAX_RULES_LAST_REVIEWED

        freshness = _load_freshness()
        assert freshness.check(TAX_RULES_LAST_REVIEWED) == []
        assert "OK:" in capsys.readouterr().out

    def test_stale_markers_are_reported(self, capsys):
        freshness = _load_freshness()
        overdue = freshness.check(dt.date(2100, 1, 1))
        assert len(overdue) == 4
        assert "::error::" in capsys.readouterr().out
