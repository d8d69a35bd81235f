"""Policy freshness checker.

Transfer-tax tiers, program limits, lending rules and the fallback rate sheet
all drift over time. Each policy module carries a *last reviewed* marker;
this script fails once any marker is a year old.

Usage:
  python tools/maintenance/check_policy_freshness.py [MAX_DAYS] [WARN_DAYS]

Exits non-zero if any marker is older than MAX_DAYS (default: 365) and emits
GitHub Actions warnings once a marker passes WARN_DAYS (default: 330).
"""

from __future__ import annotations

import datetime as dt
import importlib
import sys
from pathlib import Path
from typing import Iterable, Tuple

# Ensure repo root is on sys.path so `import fthb.*` works when run as a script.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

MARKERS: Iterable[Tuple[str, str]] = [
    ("fthb.core.taxes", "TAX_RULES_LAST_REVIEWED"),
    ("fthb.core.policy_canada", "POLICY_LAST_REVIEWED"),
    ("fthb.core.government_programs", "PROGRAMS_LAST_REVIEWED"),
    ("fthb.core.rates", "RATE_SHEET_LAST_REVIEWED"),
]


def _get_marker(mod_name: str, attr: str) -> dt.date | None:
    try:
        m = importlib.import_module(mod_name)
    except ImportError:
        return None
    v = getattr(m, attr, None)
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, dt.date):
        return v
    return None


def check(today: dt.date, max_days: int = 365, warn_days: int = 330) -> list[str]:
    """Return the markers that are overdue, printing a status line for each."""
    overdue = []
    for mod_name, attr in MARKERS:
        d = _get_marker(mod_name, attr)
        if d is None:
            print(f"::warning::Missing policy marker {mod_name}.{attr} (cannot verify freshness)")
            continue

        age = (today - d).days
        if age >= max_days:
            print(f"::error::{mod_name}.{attr} is {age} days old (last reviewed {d.isoformat()}). Update required.")
            overdue.append(f"{mod_name}.{attr}")
        elif age >= warn_days:
            print(
                f"::warning::{mod_name}.{attr} is {age} days old (last reviewed {d.isoformat()}). Plan an annual policy review."
            )
        else:
            print(f"OK: {mod_name}.{attr} last reviewed {d.isoformat()} ({age} days ago)")
    return overdue


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    max_days = int(args[0]) if len(args) > 0 else 365
    warn_days = int(args[1]) if len(args) > 1 else 330
    return 1 if check(dt.date.today(), max_days, warn_days) else 0


if __name__ == "__main__":
    raise SystemExit(main())
