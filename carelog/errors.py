# carelog/errors.py
from typing import Optional


class CareLogError(Exception):
    """Base error. Carries the attempted action and, when known, the underlying cause."""

    def __init__(self, action: str, message: str, cause: Optional[BaseException] = None):
        self.action = action
        self.message = message
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        text = f"{self.action}: {self.message}"
        if self.cause is not None:
            text += f" ({self.cause})"
        return text


class ValidationError(CareLogError):
    pass


class NotFoundError(CareLogError):
    pass


class PersistenceError(CareLogError):
    pass


class ToggleInProgressError(CareLogError):
    pass


class ConsistencyWarning:
    """Non-fatal notice returned alongside a successful outcome."""

    def __init__(self, action: str, message: str):
        self.action = action
        self.message = message

    def __str__(self) -> str:
        return f"{self.action}: {self.message}"

    def __repr__(self) -> str:
        return f"ConsistencyWarning({self.action!r}, {self.message!r})"
