from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard scheduler error codes."""

    S001 = "S001"  # Config: Invalid configuration
    S002 = "S002"  # Schedule: Invalid cron expression
    S003 = "S003"  # Settlement: Transport failure
    S004 = "S004"  # Settlement: Malformed response
    S005 = "S005"  # Notification: Delivery failure
    S010 = "S010"  # Internal: Internal error


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.S001: "Invalid configuration",
    ErrorCode.S002: "Invalid schedule expression",
    ErrorCode.S003: "Settlement service unreachable",
    ErrorCode.S004: "Malformed settlement response",
    ErrorCode.S005: "Notification delivery failed",
    ErrorCode.S010: "Internal scheduler error",
}
