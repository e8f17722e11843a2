from __future__ import annotations

from typing import Any, Optional

from debt_scheduler.utils.error_codes import ERROR_MESSAGES, ErrorCode


def _normalize_error_code(value: ErrorCode | str | None) -> ErrorCode:
    if value is None:
        return ErrorCode.S010
    if isinstance(value, ErrorCode):
        return value
    try:
        return ErrorCode(str(value))
    except ValueError:
        return ErrorCode.S010


class SchedulerException(Exception):
    """Base exception for the debt scheduler.

    Workers never let these escape to the supervisor for classified outcomes;
    anything that does escape is treated as a worker crash.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | str = ErrorCode.S010,
        details: Optional[dict[str, Any]] = None,
    ):
        normalized = _normalize_error_code(code)
        if message is None:
            message = ERROR_MESSAGES.get(normalized, ERROR_MESSAGES[ErrorCode.S010])

        self.message = message
        self.code = normalized.value
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationException(SchedulerException, RuntimeError):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S001, details=details)


class ScheduleParseException(SchedulerException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S002, details=details)


class SettlementTransportException(SchedulerException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S003, details=details)


class MalformedSettlementResponse(SchedulerException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S004, details=details)


class NotificationException(SchedulerException):
    def __init__(self, message: str | None = None, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=ErrorCode.S005, details=details)
