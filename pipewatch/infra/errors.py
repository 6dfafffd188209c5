"""Custom exception hierarchy for pipewatch.

All service-specific exceptions inherit from PipeWatchError,
which carries an error code for HTTP error mapping.
"""

from __future__ import annotations


class PipeWatchError(Exception):
    """Base exception for all pipewatch errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class RoutingError(PipeWatchError):
    """Event delivered from a source this service does not watch."""

    def __init__(self, message: str, *, code: str = "WRONG_SOURCE") -> None:
        super().__init__(message, code=code)


class EventParseError(PipeWatchError):
    """Inbound payload does not match the CodePipeline event shape."""

    def __init__(self, message: str, *, code: str = "PARSE_ERROR") -> None:
        super().__init__(message, code=code)


class ExecutionError(PipeWatchError):
    """Errors in execution record handling."""

    def __init__(self, message: str, *, code: str = "EXECUTION_ERROR") -> None:
        super().__init__(message, code=code)


class LockTimeoutError(ExecutionError):
    """Raised when the execution lock could not be won within the retry cap."""

    def __init__(self, message: str = "Execution lock not acquired") -> None:
        super().__init__(message, code="LOCK_TIMEOUT")


class NotifierError(PipeWatchError):
    """Errors in notification channel adapters (Telegram, etc.)."""

    def __init__(self, message: str, *, code: str = "NOTIFIER_ERROR") -> None:
        super().__init__(message, code=code)
