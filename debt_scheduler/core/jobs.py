from __future__ import annotations

from typing import Any

from debt_scheduler.core.notifications.slack import DebtSummaryNotifier
from debt_scheduler.core.schedule import parse_optional
from debt_scheduler.core.settlement.client import SettlementClient
from debt_scheduler.core.supervisor import Job, Supervisor
from debt_scheduler.core.workers.calculate_distribution import DistributionCalculatorWorker
from debt_scheduler.core.workers.collect_all_debt import CollectAllDebtWorker
from debt_scheduler.core.workers.initialize_distribution import DistributionInitializerWorker
from debt_scheduler.core.workers.pay_debt import DebtSweepWorker


def build_jobs(settings: Any, *, client: SettlementClient, notifier: DebtSummaryNotifier) -> list[Job]:
    genesis_epoch = int(settings.GENESIS_EPOCH)
    step_delay_seconds = settings.pay_debt_step_delay_seconds

    jobs = [
        Job(
            name=DebtSweepWorker.name,
            factory=lambda: DebtSweepWorker(
                client=client,
                notifier=notifier,
                genesis_epoch=genesis_epoch,
                step_delay_seconds=step_delay_seconds,
            ),
            schedule=parse_optional(settings.PAY_DEBT_SCHEDULE),
            run_on_startup=bool(settings.PAY_DEBT_ON_STARTUP),
        ),
        Job(
            name=DistributionInitializerWorker.name,
            factory=lambda: DistributionInitializerWorker(client=client),
            schedule=parse_optional(settings.INITIALIZE_DISTRIBUTION_SCHEDULE),
        ),
        Job(
            name=DistributionCalculatorWorker.name,
            factory=lambda: DistributionCalculatorWorker(client=client),
            schedule=parse_optional(settings.CALCULATE_DISTRIBUTION_SCHEDULE),
        ),
    ]

    collect_schedule = parse_optional(settings.COLLECT_ALL_DEBT_SCHEDULE)
    if collect_schedule is not None:
        jobs.append(
            Job(
                name=CollectAllDebtWorker.name,
                factory=lambda: CollectAllDebtWorker(client=client),
                schedule=collect_schedule,
            )
        )
    return jobs


def build_supervisor(settings: Any, *, client: SettlementClient, notifier: DebtSummaryNotifier) -> Supervisor:
    return Supervisor(
        build_jobs(settings, client=client, notifier=notifier),
        max_restarts=settings.SUPERVISOR_MAX_RESTARTS,
        restart_window_seconds=settings.SUPERVISOR_RESTART_WINDOW_SECONDS,
        restart_delay_seconds=settings.SUPERVISOR_RESTART_DELAY_SECONDS,
        tick_seconds=settings.SUPERVISOR_TICK_SECONDS,
    )
