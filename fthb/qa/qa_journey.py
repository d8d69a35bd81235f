#!/usr/bin/env python3
"""Journey QA: milestone state machine invariants under random operation sequences.

A seeded RNG drives completes, in-progress updates and data merges against a
fresh record, then checks after every step that:
- overall progress equals the rounded completed share;
- completed milestones stay completed with their first timestamp;
- milestones 2-5 are never available before their predecessor completes;
- several threads completing different milestones lose no update.

Run:
  python -m fthb.qa.qa_journey --seed 7 --steps 300
"""

from __future__ import annotations

import argparse
import datetime as dt
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np

_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _die(msg: str, code: int = 1) -> None:
    print(f"\n[JOURNEY QA FAILED] {msg}\n")
    raise SystemExit(code)


class _TickingClock:
    def __init__(self) -> None:
        self.now = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        self.now += dt.timedelta(seconds=1)
        return self.now


def _check_record(record, first_completed: dict) -> None:
    from fthb.core.milestones import (
        SEQUENTIAL_MILESTONES,
        Milestone,
        MilestoneStatus,
        compute_overall_progress,
        milestone_status,
    )

    completed = [m for m in Milestone if record.milestones[m].status == MilestoneStatus.COMPLETED]
    if record.overall_progress != compute_overall_progress(len(completed)):
        _die(f"overall_progress {record.overall_progress} does not match {len(completed)} completed")
    if not 0 <= record.overall_progress <= 100:
        _die(f"overall_progress out of range: {record.overall_progress}")

    for m in completed:
        stamp = record.milestones[m].completed_at
        if m in first_completed and first_completed[m] != stamp:
            _die(f"{m.key} completed_at moved from {first_completed[m]} to {stamp}")
        first_completed.setdefault(m, stamp)
    for m in first_completed:
        if m not in completed:
            _die(f"{m.key} regressed from completed")

    for m in SEQUENTIAL_MILESTONES:
        if milestone_status(record, m) == MilestoneStatus.AVAILABLE:
            if record.milestones[Milestone(m - 1)].status != MilestoneStatus.COMPLETED:
                _die(f"{m.key} available before {Milestone(m - 1).key} completed")


def test_random_sequences(seed: int = 7, steps: int = 300) -> None:
    from fthb.core.errors import InvalidTransitionError
    from fthb.core.milestones import Milestone
    from fthb.core.progress import ProgressTracker
    from fthb.core.progress_store import InMemoryProgressStore

    rng = np.random.default_rng(seed)
    clock = _TickingClock()
    tracker = ProgressTracker(InMemoryProgressStore(clock), clock)
    tracker.start_journey("qa-user")
    first_completed: dict = {}

    neighborhoods = ["Kitsilano", "Mount Pleasant", "Burnaby Heights", "New Westminster"]
    for _ in range(steps):
        m = Milestone(int(rng.integers(1, 9)))
        op = int(rng.integers(0, 3))
        try:
            if op == 0:
                tracker.complete_milestone("qa-user", m)
            elif op == 1:
                tracker.update_milestone("qa-user", m, "in_progress")
            elif m == Milestone.NEIGHBORHOODS:
                tracker.set_milestone_data(
                    "qa-user", m, {"interested_neighborhoods": [neighborhoods[int(rng.integers(0, 4))]]}
                )
        except InvalidTransitionError:
            pass
        _check_record(tracker.get_progress("qa-user"), first_completed)


def test_concurrent_completions(workers: int = 8) -> None:
    from fthb.core.milestones import Milestone
    from fthb.core.progress import ProgressTracker
    from fthb.core.progress_store import InMemoryProgressStore

    tracker = ProgressTracker(InMemoryProgressStore())
    tracker.start_journey("qa-concurrent")
    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(lambda m: tracker.complete_milestone("qa-concurrent", m), list(Milestone) * 3))
    record = tracker.get_progress("qa-concurrent")
    if record.overall_progress != 100 or record.completed_count != 8:
        _die(f"lost updates: {record.completed_count} completed, progress {record.overall_progress}")


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Milestone state machine QA.")
    ap.add_argument("--seed", type=int, default=7)
    ap.add_argument("--steps", type=int, default=300)
    args = ap.parse_args(argv)

    test_random_sequences(args.seed, args.steps)
    test_concurrent_completions()
    print("[JOURNEY QA OK]")


if __name__ == "__main__":
    main()
