from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from debt_scheduler.core.settlement.client import SettlementClient
from debt_scheduler.core.settlement.models import Err
from debt_scheduler.core.workers.base import Worker, WorkerExit
from debt_scheduler.utils.metrics import WORKER_EVENTS_TOTAL
from debt_scheduler.utils.observability import emit_best_effort

logger = logging.getLogger(__name__)

# Calculations that must succeed for the same epoch before it is finalized.
# The settlement service compares each run with the previous ones; only the
# last run posts to the notification channel.
REQUIRED_CONSISTENT_RUNS = 3


class CalculatorPhase(str, Enum):
    RESOLVE_EPOCH = "resolve_epoch"
    CALCULATING = "calculating"
    FINALIZING = "finalizing"
    STOPPED = "stopped"


@dataclass
class CalculationState:
    target_epoch: int
    consistent_run_count: int = 0

    @property
    def is_confirmation_run(self) -> bool:
        return self.consistent_run_count == REQUIRED_CONSISTENT_RUNS - 1

    @property
    def confirmed(self) -> bool:
        return self.consistent_run_count >= REQUIRED_CONSISTENT_RUNS


class DistributionCalculatorWorker(Worker):
    """Calculates and finalizes the distribution of the most recently closed epoch.

    The live epoch is never calculated. Finalization is irreversible, so it
    only happens after three successful calculation calls for the same epoch;
    any failure before that stops the worker and leaves the retry to the next
    scheduled run.
    """

    name = "calculate_distribution"

    def __init__(self, *, client: SettlementClient) -> None:
        self._client = client
        self.phase = CalculatorPhase.RESOLVE_EPOCH
        self.state: Optional[CalculationState] = None

    def _fault(self, event: str) -> WorkerExit:
        self.phase = CalculatorPhase.STOPPED
        emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event=event)
        return WorkerExit.FAULTED

    async def run(self) -> WorkerExit:
        current = await self._client.current_epoch()
        if isinstance(current, Err):
            logger.error("calculate_distribution.epoch_unavailable err=%r", current.reason)
            return self._fault("epoch_unavailable")
        if current.value < 1:
            logger.error("calculate_distribution.no_closed_epoch current_epoch=%s", current.value)
            return self._fault("no_closed_epoch")

        state = CalculationState(target_epoch=current.value - 1)
        self.state = state
        self.phase = CalculatorPhase.CALCULATING

        while not state.confirmed:
            post_to_channel = state.is_confirmation_run
            result = await self._client.calculate_distribution(
                state.target_epoch, post_to_channel=post_to_channel
            )
            if isinstance(result, Err):
                logger.error(
                    "calculate_distribution.failed epoch=%s run=%s err=%r",
                    state.target_epoch,
                    state.consistent_run_count + 1,
                    result.reason,
                )
                return self._fault("calculation_failed")
            state.consistent_run_count += 1
            logger.info(
                "calculate_distribution.run_completed epoch=%s run=%s",
                state.target_epoch,
                state.consistent_run_count,
            )

        self.phase = CalculatorPhase.FINALIZING
        logger.info("calculate_distribution.finalizing epoch=%s", state.target_epoch)
        result = await self._client.finalize_distribution(state.target_epoch)
        if isinstance(result, Err):
            logger.error(
                "calculate_distribution.finalize_failed epoch=%s err=%r", state.target_epoch, result.reason
            )
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="finalize_failed")
        else:
            logger.info("calculate_distribution.finalized epoch=%s", state.target_epoch)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="finalized")

        self.phase = CalculatorPhase.STOPPED
        return WorkerExit.NORMAL
