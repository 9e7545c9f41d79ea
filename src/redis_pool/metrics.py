"""
Prometheus metrics for Redis pools.

Metric families are process-wide and labelled by pool name; PoolMetrics
binds the labels for one pool.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

WORKERS_CREATED = Counter(
    "redis_pool_workers_created_total",
    "Connections opened by the pool",
    ["pool"],
)
WORKERS_DESTROYED = Counter(
    "redis_pool_workers_destroyed_total",
    "Connections closed by the pool",
    ["pool", "reason"],
)
WORKER_CREATE_FAILURES = Counter(
    "redis_pool_worker_create_failures_total",
    "Failed attempts to open a pooled connection",
    ["pool", "kind"],
)
LEASES = Counter(
    "redis_pool_leases_total",
    "Workers leased from the pool",
    ["pool", "purpose"],
)
LEASE_TIMEOUTS = Counter(
    "redis_pool_lease_timeouts_total",
    "Lease requests that timed out waiting for a worker",
    ["pool"],
)
LEASE_WAIT = Histogram(
    "redis_pool_lease_wait_seconds",
    "Time spent waiting for a worker",
    ["pool"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)
HEALTH_CHECK_FAILURES = Counter(
    "redis_pool_health_check_failures_total",
    "Workers removed by the liveness probe",
    ["pool", "reason"],
)
COMMANDS = Counter(
    "redis_pool_command_attempts_total",
    "Command or pipeline sends attempted",
    ["pool", "operation"],
)
COMMAND_ERRORS = Counter(
    "redis_pool_command_errors_total",
    "Failed command executions by error kind",
    ["pool", "kind"],
)
COMMAND_RETRIES = Counter(
    "redis_pool_command_retries_total",
    "Command executions retried after a transport fault",
    ["pool"],
)
IDLE_WORKERS = Gauge("redis_pool_idle_workers", "Idle workers", ["pool"])
LEASED_WORKERS = Gauge("redis_pool_leased_workers", "Leased workers", ["pool"])
WAITING_REQUESTS = Gauge("redis_pool_waiting_requests", "Pending lease requests", ["pool"])


class PoolMetrics:
    """Prometheus metrics bound to one pool"""

    def __init__(self, pool_name: str):
        self.pool_name = pool_name

    def worker_created(self) -> None:
        WORKERS_CREATED.labels(pool=self.pool_name).inc()

    def worker_destroyed(self, reason: str) -> None:
        WORKERS_DESTROYED.labels(pool=self.pool_name, reason=reason).inc()

    def worker_create_failed(self, kind: str) -> None:
        WORKER_CREATE_FAILURES.labels(pool=self.pool_name, kind=kind).inc()

    def leased(self, purpose: str, wait_seconds: float) -> None:
        LEASES.labels(pool=self.pool_name, purpose=purpose).inc()
        LEASE_WAIT.labels(pool=self.pool_name).observe(wait_seconds)

    def lease_timed_out(self) -> None:
        LEASE_TIMEOUTS.labels(pool=self.pool_name).inc()

    def health_check_failed(self, reason: str) -> None:
        HEALTH_CHECK_FAILURES.labels(pool=self.pool_name, reason=reason).inc()

    def command_attempted(self, operation: str) -> None:
        COMMANDS.labels(pool=self.pool_name, operation=operation).inc()

    def command_failed(self, kind: str) -> None:
        COMMAND_ERRORS.labels(pool=self.pool_name, kind=kind).inc()

    def command_retried(self) -> None:
        COMMAND_RETRIES.labels(pool=self.pool_name).inc()

    def update_sizes(self, idle: int, leased: int, waiting: int) -> None:
        IDLE_WORKERS.labels(pool=self.pool_name).set(idle)
        LEASED_WORKERS.labels(pool=self.pool_name).set(leased)
        WAITING_REQUESTS.labels(pool=self.pool_name).set(waiting)
