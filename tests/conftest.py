"""
Debt scheduler: pytest fixtures.

Provides:
- A scripted in-memory settlement client (records every call)
- A recording debt summary notifier
- Canonical settlement error texts
"""
from __future__ import annotations

from collections import deque
from typing import Any, Callable, Iterable

import pytest

from debt_scheduler.core.settlement.classification import TRANSIENT_CONFIRMATION_ERROR
from debt_scheduler.core.settlement.models import DebtCollection, DebtSummary, Err, Ok

# =============================================================================
# Constants
# =============================================================================
RECORD_NOT_FOUND = "Record account not found at address 9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
FAILED_TO_FETCH = "Failed to fetch record: account data too small"


# =============================================================================
# Fakes
# =============================================================================
class ScriptedSettlementClient:
    """Settlement client replaying scripted results.

    ``pay_debt`` falls back to a terminal "record not found" failure once the
    script is exhausted so a sweep under test always terminates.
    """

    def __init__(
        self,
        *,
        pay_debt: Iterable[Any] = (),
        current_epoch: Any = Ok(100),
        calculate: Iterable[Any] = (),
        finalize: Any = Ok(None),
        initialize: Any = Ok("initialized distribution"),
        collect_all: Any = Ok(None),
    ) -> None:
        self._pay_debt = deque(pay_debt)
        self._calculate = deque(calculate)
        self._current_epoch = current_epoch
        self._finalize = finalize
        self._initialize = initialize
        self._collect_all = collect_all
        self.calls: list[tuple[Any, ...]] = []

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    async def pay_debt(self, epoch: int):
        self.calls.append(("pay_debt", epoch))
        if self._pay_debt:
            return self._pay_debt.popleft()
        return Err(RECORD_NOT_FOUND)

    async def initialize_distribution(self):
        self.calls.append(("initialize_distribution",))
        return self._initialize

    async def calculate_distribution(self, epoch: int, *, post_to_channel: bool):
        self.calls.append(("calculate_distribution", epoch, post_to_channel))
        if self._calculate:
            return self._calculate.popleft()
        return Ok(None)

    async def finalize_distribution(self, epoch: int):
        self.calls.append(("finalize_distribution", epoch))
        return self._finalize

    async def current_epoch(self):
        self.calls.append(("current_epoch",))
        return self._current_epoch

    async def collect_all_debt(self):
        self.calls.append(("collect_all_debt",))
        return self._collect_all


class RecordingNotifier:
    def __init__(self) -> None:
        self.summaries: list[DebtSummary] = []

    async def post_debt_summary(self, summary: DebtSummary) -> None:
        self.summaries.append(summary)


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture
def make_client() -> Callable[..., ScriptedSettlementClient]:
    return ScriptedSettlementClient


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def paid() -> Callable[..., Ok]:
    """Build a successful pay_debt result."""

    def _paid(total_debt: int = 0, total_paid: int = 0, insufficient_funds_count: int = 0) -> Ok:
        return Ok(
            DebtCollection(
                total_debt=total_debt,
                total_paid=total_paid,
                insufficient_funds_count=insufficient_funds_count,
            )
        )

    return _paid


@pytest.fixture
def transient_error() -> Err:
    return Err(TRANSIENT_CONFIRMATION_ERROR)


@pytest.fixture
def record_not_found() -> Err:
    return Err(RECORD_NOT_FOUND)


@pytest.fixture
def failed_to_fetch() -> Err:
    return Err(FAILED_TO_FETCH)
