from __future__ import annotations

import logging

from debt_scheduler.core.settlement.client import SettlementClient
from debt_scheduler.core.settlement.models import Err
from debt_scheduler.core.workers.base import Worker, WorkerExit
from debt_scheduler.utils.metrics import WORKER_EVENTS_TOTAL
from debt_scheduler.utils.observability import emit_best_effort

logger = logging.getLogger(__name__)


class CollectAllDebtWorker(Worker):
    """Asks the settlement service to collect debt for every completed epoch in one call."""

    name = "collect_all_debt"

    def __init__(self, *, client: SettlementClient) -> None:
        self._client = client

    async def run(self) -> WorkerExit:
        result = await self._client.collect_all_debt()
        if isinstance(result, Err):
            logger.error("collect_all_debt.failed err=%r", result.reason)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="error")
            return WorkerExit.FAULTED

        logger.info("collect_all_debt.completed")
        emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="completed")
        return WorkerExit.NORMAL
