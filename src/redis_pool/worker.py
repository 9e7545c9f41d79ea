"""
Pool Worker

A Worker wraps exactly one open connection handle and carries the state the
pool needs to lease, return, probe and retire it.
"""

import itertools
import time
from enum import Enum
from typing import Any

_worker_ids = itertools.count(1)


class WorkerState(Enum):
    """Lifecycle states of a worker"""
    CREATED = "created"
    IDLE = "idle"
    LEASED = "leased"
    CLOSING = "closing"  # terminal


class Worker:
    """One lease-able pool slot owning one connection handle"""

    def __init__(self, handle: Any, pool_name: str):
        self.id = next(_worker_ids)
        self.handle = handle
        self.pool_name = pool_name
        self.state = WorkerState.CREATED
        self.purpose: str | None = None
        self.created_at = time.monotonic()
        self.last_used = self.created_at
        self.lease_count = 0
        self.error_count = 0

    def __repr__(self) -> str:
        return f"<Worker {self.pool_name}#{self.id} {self.state.value}>"

    @property
    def idle_time(self) -> float:
        """Seconds since the worker was last returned"""
        return time.monotonic() - self.last_used

    @property
    def is_closing(self) -> bool:
        return self.state is WorkerState.CLOSING

    def mark_idle(self) -> None:
        self.state = WorkerState.IDLE
        self.purpose = None
        self.last_used = time.monotonic()

    def mark_leased(self, purpose: str) -> None:
        self.state = WorkerState.LEASED
        self.purpose = purpose
        self.lease_count += 1

    def mark_closing(self) -> None:
        self.state = WorkerState.CLOSING
        self.purpose = None
