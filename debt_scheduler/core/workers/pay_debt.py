from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from debt_scheduler.core.notifications.slack import DebtSummaryNotifier
from debt_scheduler.core.settlement.classification import (
    RetryableFailure,
    TerminalFailure,
    UnexpectedFailure,
    classify_pay_debt,
)
from debt_scheduler.core.settlement.client import SettlementClient
from debt_scheduler.core.settlement.models import DebtCollection, DebtSummary
from debt_scheduler.core.workers.base import Worker, WorkerExit
from debt_scheduler.utils.metrics import (
    SWEEP_CURRENT_EPOCH,
    SWEEP_TOTAL_DEBT,
    SWEEP_TOTAL_PAID,
    WORKER_EVENTS_TOTAL,
)
from debt_scheduler.utils.observability import emit_best_effort, set_gauge_best_effort

logger = logging.getLogger(__name__)


@dataclass
class SweepState:
    genesis_epoch: int
    current_epoch: int
    total_debt: int = 0
    total_paid: int = 0
    insufficient_funds_count: int = 0

    @classmethod
    def starting_at(cls, genesis_epoch: int) -> "SweepState":
        return cls(genesis_epoch=genesis_epoch, current_epoch=genesis_epoch)

    def absorb(self, batch: DebtCollection) -> None:
        """Fold one paid epoch into the running totals and move to the next epoch."""
        self.total_debt += batch.total_debt
        self.total_paid += batch.total_paid
        self.insufficient_funds_count += batch.insufficient_funds_count
        self.current_epoch += 1

    def summary(self) -> DebtSummary:
        return DebtSummary(
            insufficient_funds_count=self.insufficient_funds_count,
            total_debt=self.total_debt,
            total_paid=self.total_paid,
        )


class DebtSweepWorker(Worker):
    """Pays debt epoch by epoch from the genesis epoch until the ledger runs out.

    There is no way to know up front how many epochs are payable, so the sweep
    stops when the settlement service reports that the next epoch's record
    does not exist. A transient confirmation failure retries the same epoch
    forever; any other failure stops the sweep without a summary.
    """

    name = "pay_debt"

    def __init__(
        self,
        *,
        client: SettlementClient,
        notifier: DebtSummaryNotifier,
        genesis_epoch: int,
        step_delay_seconds: float = 0.01,
    ) -> None:
        self._client = client
        self._notifier = notifier
        self._step_delay_seconds = step_delay_seconds
        self.state = SweepState.starting_at(genesis_epoch)
        self.retries = 0

    async def run(self) -> WorkerExit:
        logger.info("sweep.start genesis_epoch=%s", self.state.genesis_epoch)
        while True:
            await asyncio.sleep(self._step_delay_seconds)
            outcome = await self.step()
            if outcome is not None:
                return outcome

    async def step(self) -> Optional[WorkerExit]:
        """Pay the current epoch once. Returns None while the sweep should continue."""
        epoch = self.state.current_epoch
        set_gauge_best_effort(SWEEP_CURRENT_EPOCH, epoch)
        result = classify_pay_debt(await self._client.pay_debt(epoch))

        if isinstance(result, RetryableFailure):
            self.retries += 1
            logger.warning("sweep.retry epoch=%s retries=%s err=%s", epoch, self.retries, result.reason)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="retry")
            return None

        if isinstance(result, TerminalFailure):
            logger.info("sweep.completed epoch=%s", epoch)
            await self._notifier.post_debt_summary(self.state.summary())
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="exhausted")
            return WorkerExit.NORMAL

        if isinstance(result, UnexpectedFailure):
            logger.error("sweep.unexpected_error epoch=%s err=%r", epoch, result.reason)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="unexpected_error")
            return WorkerExit.FAULTED

        batch = result.payload
        self.state.absorb(batch)
        set_gauge_best_effort(SWEEP_TOTAL_DEBT, self.state.total_debt)
        set_gauge_best_effort(SWEEP_TOTAL_PAID, self.state.total_paid)
        logger.info(
            "sweep.epoch_completed epoch=%s validators=%s insufficient_funds=%s total_debt=%s total_paid=%s",
            epoch,
            batch.total_validators,
            batch.insufficient_funds_count,
            self.state.total_debt,
            self.state.total_paid,
        )
        return None
