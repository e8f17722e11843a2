"""Failure classification for settlement client errors.

The settlement service reports failures as free text. Every rule that turns
that text into a failure kind lives here so a backend with structured error
kinds can replace this module without touching the workers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from debt_scheduler.core.settlement.models import Err, SettlementResult

T = TypeVar("T")


class FailureKind(str, Enum):
    RETRYABLE = "retryable"
    TERMINAL_EXHAUSTION = "terminal_exhaustion"
    UNEXPECTED = "unexpected"
    IDEMPOTENT_NOOP = "idempotent_noop"


# Solana dropped or expired the transaction; paying the same epoch again is safe.
TRANSIENT_CONFIRMATION_ERROR = (
    "Unhandled Solana RPC error: unable to confirm transaction. This can happen in "
    "situations such as transaction expiration and insufficient fee-payer funds"
)

# The sweep walked past the last finalized distribution.
SWEEP_EXHAUSTED_MARKERS: tuple[str, ...] = (
    "Record account not found at address",
    "Failed to fetch record",
)


@dataclass(frozen=True)
class Success(Generic[T]):
    payload: T


@dataclass(frozen=True)
class RetryableFailure:
    reason: str


@dataclass(frozen=True)
class TerminalFailure:
    reason: str


@dataclass(frozen=True)
class UnexpectedFailure:
    reason: str


OperationResult = Union[Success[Any], RetryableFailure, TerminalFailure, UnexpectedFailure]


def classify_pay_debt_failure(reason: str) -> FailureKind:
    text = reason or ""
    if TRANSIENT_CONFIRMATION_ERROR in text:
        return FailureKind.RETRYABLE
    if any(marker in text for marker in SWEEP_EXHAUSTED_MARKERS):
        return FailureKind.TERMINAL_EXHAUSTION
    return FailureKind.UNEXPECTED


def classify_pay_debt(result: SettlementResult) -> OperationResult:
    if isinstance(result, Err):
        kind = classify_pay_debt_failure(result.reason)
        if kind is FailureKind.RETRYABLE:
            return RetryableFailure(result.reason)
        if kind is FailureKind.TERMINAL_EXHAUSTION:
            return TerminalFailure(result.reason)
        return UnexpectedFailure(result.reason)
    return Success(result.value)


def classify_initialize_failure(reason: str) -> FailureKind:
    # "already initialized" and every other initializer failure are handled the
    # same way: logged, never escalated. The next tick is the retry.
    return FailureKind.IDEMPOTENT_NOOP
