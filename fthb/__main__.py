"""CLI / headless entry point for the first-time home buyer engine.

Usage
-----
Evaluate quiz answers (and start the journey for a user):
    python -m fthb quiz --income 90000 --savings 50000 --rrsp --user alice

Personalized rate quotes:
    python -m fthb rates --income 90000 --credit-score 720 --down-payment-percent 10

Incentives and closing costs for a price:
    python -m fthb incentives --price 600000 --income 90000
    python -m fthb closing-costs --price 600000 --down-payment-percent 10

Milestone progress:
    python -m fthb progress show alice
    python -m fthb progress complete alice 1 --data '{"credit_score": 720}'
    python -m fthb progress update alice 8 in_progress
    python -m fthb progress stats alice
    python -m fthb progress list

Dump the default settings, or override them:
    python -m fthb --example
    python -m fthb --config settings.json --set quiz_rate=0.05 quiz ...

Progress is kept in the database named by ``--db`` (default from
``FTHB_DATABASE_URL``, else ``sqlite:///fthb_progress.db``).
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

from fthb.core.defaults import Settings
from fthb.core.errors import FthbError


def _apply_overrides(d: dict, overrides: list[str]) -> dict:
    """Apply --set key=value overrides, with basic type coercion."""
    for kv in overrides or []:
        if "=" not in kv:
            print(f"Warning: ignoring malformed --set argument (expected key=value): {kv!r}", file=sys.stderr)
            continue
        key, _, raw = kv.partition("=")
        key = key.strip()
        raw = raw.strip()
        # Coerce type: try bool → int → float → str
        coerced: bool | int | float | str
        if raw.lower() in ("true", "false"):
            coerced = raw.lower() == "true"
        else:
            try:
                coerced = int(raw)
            except ValueError:
                try:
                    coerced = float(raw)
                except ValueError:
                    coerced = raw
        d[key] = coerced
    return d


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            raise FileNotFoundError(f"config file not found: {config_path}")
        with config_path.open() as fh:
            overrides.update(json.load(fh))
        overrides.pop("_comment", None)
    _apply_overrides(overrides, args.overrides)
    if args.db:
        overrides["database_url"] = args.db
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings.from_env().with_overrides(overrides)


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {k: _jsonable(v) for k, v in dataclasses.asdict(value).items()}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value") and not isinstance(value, (int, float, str, bool)):
        return value.value
    return value


def _emit(payload: Any) -> None:
    print(json.dumps(_jsonable(payload), indent=2))


def _parse_data(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FthbError(f"--data is not valid JSON: {exc}") from None
    if not isinstance(data, dict):
        raise FthbError("--data must be a JSON object")
    return data


def _tracker(settings: Settings):
    from fthb.core.progress import ProgressTracker
    from fthb.core.progress_store import SqlProgressStore

    return ProgressTracker(SqlProgressStore(settings.database_url, max_retries=settings.max_retries))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_quiz(args: argparse.Namespace, settings: Settings) -> int:
    from fthb.core.journey import JourneyOrchestrator

    orchestrator = JourneyOrchestrator(_tracker(settings), settings)
    result = orchestrator.submit_quiz(
        {
            "income": args.income,
            "savings": args.savings,
            "has_retirement_savings": args.rrsp,
            "property_type": args.property_type,
            "timeline": args.timeline,
            "new_construction": args.new_home,
        },
        user_id=args.user,
        session_id=args.session,
    )
    if args.json:
        _emit(result)
        return 0

    from fthb.core.government_programs import incentive_summary_lines

    b = result.breakdown
    print(f"Affordable price:  ${b.affordable_price:,}")
    print(f"  Mortgage:        ${b.mortgage:,}")
    print(f"  Down payment:    ${b.down_payment:,}")
    print(f"  Closing costs:   ${b.closing_costs:,}")
    print(f"  Buffer:          ${b.buffer:,}")
    for line in incentive_summary_lines(result.incentives):
        print(line)
    for warning in result.warnings:
        print(f"Note: {warning}", file=sys.stderr)
    print(f"Progress tracked as {result.owner_id} (quiz {result.quiz_response_id})", file=sys.stderr)
    return 0


def _cmd_rates(args: argparse.Namespace, settings: Settings) -> int:
    from fthb.core.rates import personalize_rates

    request = {
        "income": args.income,
        "credit_score": args.credit_score,
        "down_payment_percent": args.down_payment_percent,
        "amortization_years": args.amortization or settings.default_amortization_years,
        "term": None if args.all_terms else (args.term or settings.default_term_years),
        "loan_amount": args.loan_amount,
        "monthly_debts": args.monthly_debts,
    }
    quotes = personalize_rates(request, settings=settings)
    if args.json:
        _emit(quotes)
        return 0

    import pandas as pd

    df = pd.DataFrame([q.to_dict() for q in quotes])
    print(df.to_string(index=False))
    return 0


def _cmd_incentives(args: argparse.Namespace, settings: Settings) -> int:
    from fthb.core.government_programs import calculate_total_incentives, incentives_frame

    incentives = calculate_total_incentives(
        args.price,
        args.income,
        new_home=args.new_home,
        has_rrsp=args.rrsp_balance > 0,
        rrsp_balance=args.rrsp_balance,
    )
    if args.json:
        _emit(incentives)
    else:
        print(incentives_frame(incentives).to_string(index=False))
    return 0


def _cmd_closing_costs(args: argparse.Namespace, settings: Settings) -> int:
    from fthb.core.closing_costs import estimate_closing_costs

    costs = estimate_closing_costs(args.price, args.down_payment_percent)
    if args.json:
        _emit(costs)
    else:
        for key, value in costs.to_dict().items():
            print(f"{key.replace('_', ' '):<24} ${value:,.0f}")
    return 0


def _cmd_progress(args: argparse.Namespace, settings: Settings) -> int:
    from fthb.core.progress import record_to_dict

    tracker = _tracker(settings)
    action = args.progress_action

    if action == "list":
        df = tracker.progress_frame(args.limit)
        if args.json:
            print(df.to_json(orient="records", date_format="iso", indent=2))
        else:
            print(df.to_string(index=False) if not df.empty else "No progress records.")
        return 0

    if action == "show":
        record = tracker.get_progress(args.user)
        if args.json:
            _emit(record_to_dict(record))
            return 0
        print(f"{record.user_id}: {record.overall_progress}% complete")
        for row in record_to_dict(record)["milestones"]:
            print(f"  {row['id']}. {row['title']:<26} {row['status']}")
        return 0

    if action == "stats":
        _emit(tracker.progress_stats(args.user))
        return 0

    if action == "complete":
        ack = tracker.complete_milestone(args.user, args.milestone, _parse_data(args.data))
    else:
        ack = tracker.update_milestone(args.user, args.milestone, args.status, _parse_data(args.data))
    if args.json:
        _emit(ack)
    else:
        print(f"{ack.milestone.title}: {ack.status.value} ({ack.overall_progress}% overall)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m fthb",
        description="First-time home buyer engine: affordability, incentives, rates and journey progress.",
    )
    parser.add_argument("--config", "-c", metavar="FILE", help="JSON file of settings overrides.")
    parser.add_argument(
        "--set", "-s",
        dest="overrides",
        metavar="key=value",
        action="append",
        help="Override a setting. Repeat for multiple overrides.",
    )
    parser.add_argument("--db", metavar="URL", help="SQLAlchemy database URL for progress records.")
    parser.add_argument("--log-level", metavar="LEVEL", help="Logging level (default WARNING).")
    parser.add_argument("--example", action="store_true", help="Print the default settings as JSON and exit.")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of text.")

    sub = parser.add_subparsers(dest="command")

    quiz = sub.add_parser("quiz", help="Evaluate quiz answers.")
    quiz.add_argument("--income", type=float, required=True)
    quiz.add_argument("--savings", type=float, required=True)
    quiz.add_argument("--rrsp", action="store_true", help="The buyer has RRSP savings.")
    quiz.add_argument("--property-type", default="condo", choices=["condo", "townhome", "detached"])
    quiz.add_argument("--timeline", default="3-6", choices=["1-3", "3-6", "6-12"])
    quiz.add_argument("--new-home", action="store_true", help="Newly built home.")
    quiz.add_argument("--user", help="User id to track progress under.")
    quiz.add_argument("--session", help="Anonymous session id.")

    rates = sub.add_parser("rates", help="Personalized mortgage rate quotes.")
    rates.add_argument("--income", type=float, required=True)
    rates.add_argument("--credit-score", type=int, required=True)
    rates.add_argument("--down-payment-percent", type=float, required=True)
    rates.add_argument("--amortization", type=int)
    term = rates.add_mutually_exclusive_group()
    term.add_argument("--term", type=int)
    term.add_argument("--all-terms", action="store_true", help="Quote every term from 1 to 10 years.")
    rates.add_argument("--loan-amount", type=float)
    rates.add_argument("--monthly-debts", type=float, default=0.0)

    incentives = sub.add_parser("incentives", help="First-time buyer incentives for a price.")
    incentives.add_argument("--price", type=float, required=True)
    incentives.add_argument("--income", type=float, required=True)
    incentives.add_argument("--new-home", action="store_true")
    incentives.add_argument("--rrsp-balance", type=float, default=0.0)

    closing = sub.add_parser("closing-costs", help="Closing-cost estimate.")
    closing.add_argument("--price", type=float, required=True)
    closing.add_argument("--down-payment-percent", type=float, required=True)

    progress = sub.add_parser("progress", help="Milestone progress.")
    psub = progress.add_subparsers(dest="progress_action", required=True)
    show = psub.add_parser("show")
    show.add_argument("user")
    stats = psub.add_parser("stats")
    stats.add_argument("user")
    complete = psub.add_parser("complete")
    complete.add_argument("user")
    complete.add_argument("milestone", help="Milestone number (1-8) or key.")
    complete.add_argument("--data", metavar="JSON")
    update = psub.add_parser("update")
    update.add_argument("user")
    update.add_argument("milestone")
    update.add_argument("status", choices=["locked", "available", "in_progress", "completed"])
    update.add_argument("--data", metavar="JSON")
    listing = psub.add_parser("list")
    listing.add_argument("--limit", type=int, default=50)

    return parser


_COMMANDS = {
    "quiz": _cmd_quiz,
    "rates": _cmd_rates,
    "incentives": _cmd_incentives,
    "closing-costs": _cmd_closing_costs,
    "progress": _cmd_progress,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
    except (FileNotFoundError, json.JSONDecodeError, FthbError) as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.example:
        print(json.dumps(Settings().to_dict(), indent=2))
        return 0

    if not args.command:
        parser.print_help(sys.stderr)
        return 2

    try:
        return _COMMANDS[args.command](args, settings)
    except FthbError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
