"""Exception types shared by the calculators, the progress tracker and the CLI."""

from __future__ import annotations


class FthbError(Exception):
    """Base class for every error raised on purpose by this package."""


class ValidationError(FthbError, ValueError):
    """Client-correctable input error.

    ``field`` is the dotted path of the offending input (``"income"``,
    ``"data.credit_score"``) so callers can point the user at it.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)


class DomainError(FthbError, ValueError):
    """A calculator received numerically meaningless input (e.g. a negative rate)."""


class ProgressNotFoundError(FthbError, LookupError):
    """No progress record exists for the requested user."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"no progress record for user {user_id!r}")


class InvalidTransitionError(FthbError):
    """A milestone status change would move backwards or skip a lock."""


class ConcurrencyError(FthbError):
    """Optimistic retries on a milestone update were exhausted."""
