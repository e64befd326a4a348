from __future__ import annotations

from typing import Iterable


class SatBotError(Exception):
    """Base class for every error raised by the bill bot"""


class ElementNotFoundError(SatBotError):
    def __init__(self, selector: str, reason: str | None = None):
        self.selector = selector
        message = f"Element {selector} not found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class RetryExhaustedError(SatBotError):
    """Raised once an action failed on every allowed attempt"""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {last_error}")


class BillValidationError(SatBotError):
    """Structured failure that reaches the caller unchanged"""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AggregatedValidationError(BillValidationError):
    pass


class TotalsMismatchError(BillValidationError):
    def __init__(self, mismatches: dict[str, str]):
        # field key -> expected rendered value
        self.mismatches = mismatches
        details = [f"{key} should read {expected}" for key, expected in mismatches.items()]
        super().__init__(["Totals do not match expected values", *details])


class MissingCredentialError(SatBotError):
    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing stored credentials: {', '.join(self.fields)}")


class BrowserConnectionError(SatBotError):
    pass


class BillGenerationError(SatBotError):
    """Generic wrapper for anything unexpected during a bill run"""

    def __init__(self, message: str | None = None):
        super().__init__(f"Failed to generate the bill: {message or 'Unknown error'}")
