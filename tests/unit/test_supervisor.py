from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from debt_scheduler.core.schedule import CronSchedule
from debt_scheduler.core.supervisor import Job, Supervisor
from debt_scheduler.core.workers.base import Worker, WorkerExit


class _Returns(Worker):
    name = "returns"

    def __init__(self, exit_kind: WorkerExit = WorkerExit.NORMAL) -> None:
        self.exit_kind = exit_kind

    async def run(self) -> WorkerExit:
        return self.exit_kind


class _CrashesFirst(Worker):
    """Crashes on the first instance only; instances are counted by the factory."""

    name = "crashes_first"

    def __init__(self, instance_no: int) -> None:
        self.instance_no = instance_no

    async def run(self) -> WorkerExit:
        if self.instance_no == 1:
            raise RuntimeError("settlement bridge panicked")
        return WorkerExit.NORMAL


class _AlwaysCrashes(Worker):
    name = "always_crashes"

    async def run(self) -> WorkerExit:
        raise ValueError("bad payload")


class _Blocks(Worker):
    name = "blocks"

    def __init__(self, release: asyncio.Event) -> None:
        self.release = release

    async def run(self) -> WorkerExit:
        await self.release.wait()
        return WorkerExit.NORMAL


def _supervisor(*jobs: Job, **kwargs) -> Supervisor:
    kwargs.setdefault("restart_delay_seconds", 0)
    kwargs.setdefault("tick_seconds", 0.01)
    return Supervisor(list(jobs), **kwargs)


def _at(hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(2026, 10, 18, hour, minute, second, tzinfo=timezone.utc)


def test_duplicate_job_names_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate job name"):
        Supervisor([Job("a", _Returns), Job("a", _Returns)])


@pytest.mark.asyncio
async def test_trigger_runs_worker_to_completion() -> None:
    sup = _supervisor(Job("job", _Returns))

    assert sup.trigger("job") is True
    assert await sup.wait("job") is WorkerExit.NORMAL

    health = sup.health["job"]
    assert health.runs == 1
    assert health.restarts == 0
    assert health.last_exit == "normal"
    assert health.running is False


@pytest.mark.asyncio
async def test_crashed_worker_is_restarted_from_a_fresh_instance() -> None:
    instances: list[_CrashesFirst] = []

    def factory() -> Worker:
        worker = _CrashesFirst(len(instances) + 1)
        instances.append(worker)
        return worker

    sup = _supervisor(Job("job", factory))
    sup.trigger("job")

    assert await sup.wait("job") is WorkerExit.NORMAL
    assert len(instances) == 2
    assert instances[0] is not instances[1]
    assert sup.health["job"].restarts == 1
    assert sup.health["job"].runs == 2


@pytest.mark.asyncio
async def test_restart_intensity_limit_gives_up() -> None:
    sup = _supervisor(Job("job", _AlwaysCrashes), max_restarts=2, restart_window_seconds=60)
    sup.trigger("job")

    assert await sup.wait("job") is WorkerExit.CRASHED
    health = sup.health["job"]
    assert health.runs == 3
    assert health.restarts == 2
    assert health.last_error == "ValueError: bad payload"


@pytest.mark.asyncio
@pytest.mark.parametrize("exit_kind", [WorkerExit.NORMAL, WorkerExit.FAULTED])
async def test_normal_and_faulted_exits_are_not_restarted(exit_kind: WorkerExit) -> None:
    sup = _supervisor(Job("job", lambda: _Returns(exit_kind)))
    sup.trigger("job")

    assert await sup.wait("job") is exit_kind
    assert sup.health["job"].runs == 1
    assert sup.health["job"].restarts == 0


@pytest.mark.asyncio
async def test_trigger_is_skipped_while_job_is_running() -> None:
    release = asyncio.Event()
    sup = _supervisor(Job("job", lambda: _Blocks(release)))

    assert sup.trigger("job") is True
    await asyncio.sleep(0)
    assert sup.is_running("job")
    assert sup.trigger("job") is False
    assert sup.health["job"].skipped_triggers == 1

    release.set()
    assert await sup.wait("job") is WorkerExit.NORMAL
    assert sup.trigger("job") is True
    await sup.wait("job")
    assert sup.health["job"].runs == 2


@pytest.mark.asyncio
async def test_failure_in_one_job_does_not_affect_another() -> None:
    sup = _supervisor(
        Job("bad", _AlwaysCrashes),
        Job("good", _Returns),
        max_restarts=0,
    )
    sup.trigger("bad")
    sup.trigger("good")

    assert await sup.wait("bad") is WorkerExit.CRASHED
    assert await sup.wait("good") is WorkerExit.NORMAL


@pytest.mark.asyncio
async def test_tick_fires_jobs_whose_schedule_matches() -> None:
    sup = _supervisor(
        Job("every_two", _Returns, schedule=CronSchedule.parse("*/2 * * * *")),
        Job("hourly", _Returns, schedule=CronSchedule.parse("0 * * * *")),
        Job("manual", _Returns),
    )

    assert sup.tick(_at(10, 1, 5)) == []
    assert sup.tick(_at(10, 1, 50)) == []
    assert sup.tick(_at(10, 2, 0)) == ["every_two"]
    await sup.wait("every_two")

    assert sup.tick(_at(11, 0, 1)) == ["every_two", "hourly"]
    await sup.wait("every_two")
    await sup.wait("hourly")
    assert sup.health["manual"].runs == 0


@pytest.mark.asyncio
async def test_tick_catches_up_missed_minutes_once() -> None:
    sup = _supervisor(Job("at_three", _Returns, schedule=CronSchedule.parse("3 * * * *")))

    sup.tick(_at(9, 0))
    assert sup.tick(_at(9, 5)) == ["at_three"]
    await sup.wait("at_three")
    assert sup.tick(_at(9, 6)) == []


@pytest.mark.asyncio
async def test_start_runs_startup_jobs_and_stop_cancels_them() -> None:
    release = asyncio.Event()
    sup = _supervisor(
        Job("long_lived", lambda: _Blocks(release), run_on_startup=True),
        Job("scheduled_only", _Returns, schedule=CronSchedule.parse("0 0 1 1 *")),
    )

    await sup.start()
    await asyncio.sleep(0)

    assert sup.is_running("long_lived")
    assert not sup.is_running("scheduled_only")
    assert sup.snapshot()["running"] is True

    await sup.stop()

    assert not sup.is_running("long_lived")
    snapshot = sup.snapshot()
    assert snapshot["running"] is False
    assert {j["name"]: j["running"] for j in snapshot["jobs"]} == {"long_lived": False, "scheduled_only": False}


@pytest.mark.asyncio
async def test_schedule_loop_triggers_from_clock() -> None:
    now = {"value": _at(12, 0, 59)}
    sup = _supervisor(
        Job("every_minute", _Returns, schedule=CronSchedule.parse("* * * * *")),
        utc_now=lambda: now["value"],
    )

    await sup.start()
    now["value"] = _at(12, 1, 0)
    for _ in range(100):
        if sup.health["every_minute"].runs:
            break
        await asyncio.sleep(0.01)
    await sup.stop()

    assert sup.health["every_minute"].runs >= 1


@pytest.mark.asyncio
async def test_schedule_matching_the_boot_minute_still_fires() -> None:
    sup = _supervisor(
        Job("hourly", _Returns, schedule=CronSchedule.parse("0 * * * *")),
        tick_seconds=60,
        utc_now=lambda: _at(12, 0, 20),
    )

    await sup.start()
    try:
        assert sup.tick(_at(12, 0, 50)) == ["hourly"]
        assert await sup.wait("hourly") is WorkerExit.NORMAL
        assert sup.tick(_at(12, 0, 55)) == []
    finally:
        await sup.stop()


@pytest.mark.asyncio
async def test_health_reports_next_scheduled_run() -> None:
    sup = _supervisor(
        Job("every_two", _Returns, schedule=CronSchedule.parse("*/2 * * * *")),
        Job("manual", _Returns),
    )

    sup.tick(_at(10, 2, 0))
    await sup.wait("every_two")

    assert sup.health["every_two"].next_run_at == _at(10, 4)
    assert sup.health["manual"].next_run_at is None
    jobs = {j["name"]: j for j in sup.snapshot()["jobs"]}
    assert jobs["every_two"]["next_run_at"] == "2026-10-18T10:04:00+00:00"
    assert jobs["manual"]["next_run_at"] is None
