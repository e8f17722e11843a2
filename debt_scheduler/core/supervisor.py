from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from debt_scheduler.core.schedule import CronSchedule
from debt_scheduler.core.workers.base import Worker, WorkerExit
from debt_scheduler.utils.metrics import WORKER_EVENTS_TOTAL
from debt_scheduler.utils.observability import emit_best_effort

logger = logging.getLogger(__name__)

# Missed minutes replayed after a stalled tick (e.g. event loop blocked, host suspended).
_MAX_CATCH_UP = timedelta(minutes=59)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


@dataclass
class Job:
    name: str
    factory: Callable[[], Worker]
    schedule: Optional[CronSchedule] = None
    run_on_startup: bool = False


@dataclass
class JobHealth:
    name: str
    schedule: str = ""
    running: bool = False
    runs: int = 0
    restarts: int = 0
    skipped_triggers: int = 0
    last_exit: Optional[str] = None
    last_error: str = ""
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "schedule": self.schedule,
            "running": self.running,
            "runs": self.runs,
            "restarts": self.restarts,
            "skipped_triggers": self.skipped_triggers,
            "last_exit": self.last_exit,
            "last_error": self.last_error,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
        }


@dataclass
class _RestartBudget:
    max_restarts: int
    window_seconds: float
    _times: deque = field(default_factory=deque)

    def try_consume(self, now: float) -> bool:
        while self._times and now - self._times[0] > self.window_seconds:
            self._times.popleft()
        if len(self._times) >= self.max_restarts:
            return False
        self._times.append(now)
        return True


class Supervisor:
    """Runs scheduled workers, one task per worker, with one-for-one restarts.

    - A trigger starts a new worker instance unless one for the same job is
      still running (then the trigger is skipped).
    - A worker that crashes is replaced by a fresh instance, up to
      ``max_restarts`` within ``restart_window_seconds``.
    - NORMAL and FAULTED exits are final for that run; the job's next trigger
      starts it again from scratch.
    """

    def __init__(
        self,
        jobs: Iterable[Job],
        *,
        max_restarts: int = 3,
        restart_window_seconds: float = 5.0,
        restart_delay_seconds: float = 1.0,
        tick_seconds: float = 1.0,
        utc_now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        for job in jobs:
            if job.name in self._jobs:
                raise ValueError(f"Duplicate job name: {job.name}")
            self._jobs[job.name] = job

        self._max_restarts = max_restarts
        self._restart_window_seconds = restart_window_seconds
        self._restart_delay_seconds = restart_delay_seconds
        self._tick_seconds = tick_seconds
        self._utc_now = utc_now

        self.health: dict[str, JobHealth] = {
            name: JobHealth(name=name, schedule=str(job.schedule or "")) for name, job in self._jobs.items()
        }
        self._tasks: dict[str, asyncio.Task] = {}
        self._stop_event: Optional[asyncio.Event] = None
        self._schedule_task: Optional[asyncio.Task] = None
        self._last_tick_minute: Optional[datetime] = None

    @property
    def jobs(self) -> list[str]:
        return list(self._jobs)

    async def start(self) -> None:
        if self._schedule_task is not None:
            return
        self._stop_event = asyncio.Event()
        # The boot minute itself is still due: the first tick evaluates it.
        self._last_tick_minute = _minute(self._utc_now()) - timedelta(minutes=1)
        self._refresh_next_runs(self._last_tick_minute)

        for job in self._jobs.values():
            if job.run_on_startup:
                self.trigger(job.name, reason="startup")

        self._schedule_task = asyncio.create_task(self._schedule_loop(), name="supervisor-schedule")
        logger.info("supervisor.started jobs=%s", ",".join(self._jobs))

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

        tasks = [t for t in [self._schedule_task, *self._tasks.values()] if t is not None]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._schedule_task = None
        self._tasks = {}
        for h in self.health.values():
            h.running = False
        logger.info("supervisor.stopped")

    def is_running(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    async def wait(self, name: str) -> Optional[WorkerExit]:
        """Wait for the current run of ``name`` (including restarts) to finish."""
        task = self._tasks.get(name)
        if task is None:
            return None
        return await task

    def trigger(self, name: str, *, reason: str = "manual") -> bool:
        job = self._jobs[name]
        health = self.health[name]
        if self.is_running(name):
            health.skipped_triggers += 1
            logger.info("supervisor.trigger_skipped job=%s reason=%s already_running=true", name, reason)
            return False

        logger.info("supervisor.trigger job=%s reason=%s", name, reason)
        self._tasks[name] = asyncio.create_task(self._supervise(job), name=f"worker:{name}")
        return True

    def tick(self, now: datetime) -> list[str]:
        """Fire every job whose schedule matches a minute elapsed since the last tick."""
        minute = _minute(now)
        last = self._last_tick_minute
        if last is None:
            last = minute - timedelta(minutes=1)
        if minute <= last:
            return []

        fired: list[str] = []
        seen: set[str] = set()
        candidate = max(last + timedelta(minutes=1), minute - _MAX_CATCH_UP)
        while candidate <= minute:
            for job in self._jobs.values():
                if job.schedule is None or job.name in seen:
                    continue
                if job.schedule.matches(candidate):
                    seen.add(job.name)
                    if self.trigger(job.name, reason=f"schedule '{job.schedule}'"):
                        fired.append(job.name)
            candidate += timedelta(minutes=1)

        self._last_tick_minute = minute
        self._refresh_next_runs(minute)
        return fired

    def _refresh_next_runs(self, after: datetime) -> None:
        for job in self._jobs.values():
            if job.schedule is not None:
                self.health[job.name].next_run_at = job.schedule.next_after(after)

    async def _schedule_loop(self) -> None:
        stop_event = self._stop_event
        assert stop_event is not None

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._tick_seconds)
                break
            except asyncio.TimeoutError:
                pass

            try:
                self.tick(self._utc_now())
            except Exception:
                logger.exception("supervisor.tick_failed")

    async def _run_worker(self, name: str, worker: Worker) -> tuple[WorkerExit, str]:
        try:
            return await worker.run(), ""
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("supervisor.worker_crashed job=%s", name)
            return WorkerExit.CRASHED, f"{exc.__class__.__name__}: {exc}"

    async def _supervise(self, job: Job) -> WorkerExit:
        health = self.health[job.name]
        budget = _RestartBudget(self._max_restarts, self._restart_window_seconds)

        while True:
            # Fresh instance on every start and restart: workers never resume.
            worker = job.factory()
            health.running = True
            health.runs += 1
            health.last_started_at = self._utc_now()
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=job.name, event="start")

            exit_kind, error = await self._run_worker(job.name, worker)

            health.running = False
            health.last_exit = exit_kind.value
            health.last_error = error
            health.last_finished_at = self._utc_now()
            emit_best_effort(WORKER_EVENTS_TOTAL, worker=job.name, event=f"exit_{exit_kind.value}")

            if exit_kind is WorkerExit.NORMAL:
                logger.info("supervisor.worker_exited job=%s exit=normal", job.name)
                return exit_kind
            if exit_kind is WorkerExit.FAULTED:
                logger.warning("supervisor.worker_exited job=%s exit=faulted", job.name)
                return exit_kind

            if not budget.try_consume(time.monotonic()):
                logger.error(
                    "supervisor.restart_intensity_exceeded job=%s max_restarts=%s window_seconds=%s",
                    job.name,
                    self._max_restarts,
                    self._restart_window_seconds,
                )
                emit_best_effort(WORKER_EVENTS_TOTAL, worker=job.name, event="gave_up")
                return exit_kind

            health.restarts += 1
            logger.warning("supervisor.restarting job=%s restarts=%s", job.name, health.restarts)
            await asyncio.sleep(self._restart_delay_seconds)

    def snapshot(self) -> dict[str, Any]:
        return {
            "running": self._schedule_task is not None and not self._schedule_task.done(),
            "jobs": [h.as_dict() for h in self.health.values()],
        }
