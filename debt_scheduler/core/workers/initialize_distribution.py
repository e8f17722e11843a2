from __future__ import annotations

import logging

from debt_scheduler.core.settlement.classification import classify_initialize_failure
from debt_scheduler.core.settlement.client import SettlementClient
from debt_scheduler.core.settlement.models import Err
from debt_scheduler.core.workers.base import Worker, WorkerExit
from debt_scheduler.utils.metrics import WORKER_EVENTS_TOTAL
from debt_scheduler.utils.observability import emit_best_effort

logger = logging.getLogger(__name__)


class DistributionInitializerWorker(Worker):
    """Single initialize attempt per trigger; the next trigger is the retry."""

    name = "initialize_distribution"

    def __init__(self, *, client: SettlementClient) -> None:
        self._client = client

    async def run(self) -> WorkerExit:
        result = await self._client.initialize_distribution()
        if isinstance(result, Err):
            kind = classify_initialize_failure(result.reason)
            logger.error("initialize_distribution.failed kind=%s err=%r", kind.value, result.reason)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event=kind.value)
        else:
            logger.info("initialize_distribution.completed msg=%s", result.value)
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=self.name, event="completed")
        return WorkerExit.NORMAL
