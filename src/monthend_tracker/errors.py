"""Exception types shared across the tracker."""

from __future__ import annotations


class MonthEndError(Exception):
    """Base class for month-end tracking failures."""


class FetchError(MonthEndError):
    """Energy reading could not be fetched or parsed."""

    def __init__(self, address: str, message: str) -> None:
        super().__init__(f"{address}: {message}")
        self.address = address


class PersistenceError(MonthEndError):
    """Device registry read or write failed."""


class CycleError(MonthEndError):
    """Uncaught failure inside a per-minute step."""

    def __init__(self, minute_key: str, cause: BaseException) -> None:
        super().__init__(f"minute {minute_key} failed: {cause!r}")
        self.minute_key = minute_key
        self.cause = cause
