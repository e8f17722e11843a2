from __future__ import annotations

from enum import Enum
from typing import ClassVar


class WorkerExit(str, Enum):
    # Finished its unit of work (including "nothing left to do").
    NORMAL = "normal"
    # Stopped on a classified failure; surfaced to the supervisor, not retried in-process.
    FAULTED = "faulted"
    # An exception escaped run(); the supervisor restarts a fresh instance.
    CRASHED = "crashed"


class Worker:
    """One restartable unit of work.

    A worker owns all of its state; the supervisor builds a new instance for
    every run and every restart, so nothing survives a stop.
    """

    name: ClassVar[str] = "worker"

    async def run(self) -> WorkerExit:
        raise NotImplementedError
