"""Runtime settings: quiz assumptions, store location and retry budget.

Policy thresholds live in their policy modules; this holds the knobs an
operator may reasonably change per deployment.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Mapping

from fthb.core.errors import ValidationError

DEFAULT_DATABASE_URL = "sqlite:///fthb_progress.db"


@dataclass(frozen=True)
class Settings:
    #: Rate assumed when turning quiz answers into a price.
    quiz_rate: float = 0.045
    quiz_amortization_years: int = 25
    #: RRSP balance assumed when the quiz only says the buyer has one.
    assumed_rrsp_balance: float = 35_000.0
    #: Loan size assumed for rate quotes when none is given (x income).
    loan_to_income_multiple: float = 4.5
    default_amortization_years: int = 25
    default_term_years: int = 5
    database_url: str = DEFAULT_DATABASE_URL
    #: Optimistic-concurrency attempts per milestone update.
    max_retries: int = 5
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Defaults overlaid with ``FTHB_*`` environment variables."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        if env.get("FTHB_DATABASE_URL"):
            overrides["database_url"] = env["FTHB_DATABASE_URL"]
        if env.get("FTHB_LOG_LEVEL"):
            overrides["log_level"] = env["FTHB_LOG_LEVEL"]
        if env.get("FTHB_QUIZ_RATE"):
            overrides["quiz_rate"] = env["FTHB_QUIZ_RATE"]
        return cls().with_overrides(overrides)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "Settings":
        """Return a copy with ``overrides`` applied, coerced to each field's type.

        Raises:
            ValidationError: For an unknown key or a value that does not coerce.
        """
        fields = {f.name: f for f in dataclasses.fields(self)}
        changes: dict[str, Any] = {}
        for key, raw in (overrides or {}).items():
            if key not in fields:
                raise ValidationError(key, "unknown setting")
            default = getattr(self, key)
            try:
                if isinstance(default, bool):
                    value: Any = raw if isinstance(raw, bool) else str(raw).strip().lower() in {"1", "true", "yes", "on"}
                elif isinstance(default, int):
                    value = int(raw)
                elif isinstance(default, float):
                    value = float(raw)
                else:
                    value = str(raw)
            except (TypeError, ValueError):
                raise ValidationError(key, f"expected {type(default).__name__}, got {raw!r}") from None
            changes[key] = value
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)
