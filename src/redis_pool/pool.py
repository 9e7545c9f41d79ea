"""
Redis Connection Pool Implementation

Keeps up to ``pool_size`` live workers, each owning one Redis connection,
and arbitrates exclusive access to them. Lease requests that find no idle
worker wait in a FIFO queue with a timeout. Idle workers are probed on a
background schedule and replaced when they fail.

All bookkeeping (worker set, idle deque, wait queue) is changed only by
synchronous code running on the pool's event loop, so every lease, return
and health-check transition is atomic with respect to the others.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from .classifier import classify, is_retryable
from .config import PoolConfig, redact_url
from .errors import LeaseTimeoutError, RedisPoolError, pool_error
from .health import ProbeResult, probe
from .metrics import PoolMetrics
from .protocol import ProtocolClient, RedisProtocolClient
from .worker import Worker, WorkerState

logger = logging.getLogger(__name__)

HEALTH_CHECK_PURPOSE = "health_check"

_Waiter = tuple[asyncio.Future, str]


class RedisConnectionPool:
    """Fixed-size Redis connection pool with health checking"""

    def __init__(self, config: PoolConfig, client: ProtocolClient | None = None):
        config.validate()
        self.config = config
        self.name = config.name
        self.client = client or RedisProtocolClient.from_config(config)

        self._workers: set[Worker] = set()
        self._idle: deque[Worker] = deque()
        self._waiters: deque[_Waiter] = deque()
        self._provisioning = 0
        self._started = False
        self._closed = False

        # Background work owned by the pool
        self._health_check_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

        # Metrics
        self._metrics = PoolMetrics(config.name)
        self.total_workers_created = 0
        self.total_workers_destroyed = 0
        self.total_leases = 0
        self.total_lease_timeouts = 0
        self.total_health_check_failures = 0

    def __repr__(self) -> str:
        return f"<RedisConnectionPool {self.name!r} size={self.pool_size} url={redact_url(self.config.url)}>"

    async def __aenter__(self) -> "RedisConnectionPool":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    # -- state -----------------------------------------------------------

    @property
    def pool_size(self) -> int:
        return self.config.pool_size

    @property
    def is_running(self) -> bool:
        return self._started and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def workers(self) -> list[Worker]:
        """Snapshot of the live workers"""
        return list(self._workers)

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def leased_count(self) -> int:
        return sum(1 for worker in self._workers if worker.state is WorkerState.LEASED)

    @property
    def waiting_count(self) -> int:
        return sum(1 for future, _ in self._waiters if not future.done())

    def _vacancies(self) -> int:
        return self.config.pool_size - len(self._workers) - self._provisioning

    def _record_sizes(self) -> None:
        self._metrics.update_sizes(self.idle_count, self.leased_count, self.waiting_count)

    def _ensure_running(self) -> None:
        if self._closed:
            raise pool_error(f"Redis pool '{self.name}' is stopped")
        if not self._started:
            raise pool_error(f"Redis pool '{self.name}' is not started")

    # -- lifecycle -------------------------------------------------------

    async def start(self) -> "RedisConnectionPool":
        """Open every worker connection and start health checking"""
        if self._closed:
            raise pool_error(f"Redis pool '{self.name}' has been stopped and cannot be restarted")
        if self._started:
            return self

        self._started = True
        try:
            for _ in range(self.config.pool_size):
                self._checkin(await self._provision())
        except BaseException:
            self._started = False
            await self._close_workers("start_failed")
            raise

        self._start_health_checker()
        logger.info(
            f"Redis pool '{self.name}' started with {self.config.pool_size} connections "
            f"to {redact_url(self.config.url)}",
            extra={"pool_name": self.name},
        )
        return self

    async def stop(self) -> None:
        """Close every connection and release pool resources"""
        if self._closed:
            return
        self._closed = True

        tasks = [task for task in (self._health_check_task, *self._tasks) if task is not None]
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(task for task in tasks if task is not current), return_exceptions=True)
        self._tasks.clear()

        stopped = pool_error(f"Redis pool '{self.name}' stopped while waiting for a worker")
        while self._waiters:
            future, _ = self._waiters.popleft()
            if not future.done():
                future.set_exception(stopped)

        await self._close_workers("pool_stopped")
        self._record_sizes()
        logger.info(f"Redis pool '{self.name}' stopped", extra={"pool_name": self.name})

    # -- leasing ---------------------------------------------------------

    async def lease(self, purpose: str = "command", timeout: float | None = None) -> Worker:
        """Lease an idle worker, waiting at most `timeout` seconds.

        Raises LeaseTimeoutError when no worker frees up in time. The expired
        request leaves the wait queue, so it is never granted late. Requests
        are served in arrival order, including workers opened for vacant
        slots; an open that fails is raised to the oldest waiter.
        """
        if timeout is None:
            timeout = self.config.lease_timeout

        started = time.monotonic()
        while True:
            self._ensure_running()
            remaining = max(0.0, timeout - (time.monotonic() - started))
            worker = await self._acquire(purpose, remaining, timeout)
            if not self.config.health_check_on_lease:
                break
            try:
                verified = await self._verify(worker)
            except BaseException:
                await self.release(worker, discard=True)
                raise
            if verified:
                break

        self.total_leases += 1
        self._metrics.leased(purpose, time.monotonic() - started)
        self._record_sizes()
        return worker

    async def release(self, worker: Worker, discard: bool = False) -> None:
        """Return a leased worker.

        With `discard` the worker's connection is closed and a replacement
        is opened in the background.
        """
        if worker.state is WorkerState.CLOSING:
            # Already closed by stop() or a health check
            return
        if worker not in self._workers or worker.state is not WorkerState.LEASED:
            raise pool_error(f"Worker {worker!r} is not leased from Redis pool '{self.name}'")

        if self._closed:
            await self._retire(worker, "pool_stopped")
        elif discard:
            worker.error_count += 1
            await self._retire(worker, "discarded")
            self._schedule_replacement()
        else:
            self._checkin(worker)

    @asynccontextmanager
    async def connection(self, purpose: str = "command", timeout: float | None = None) -> AsyncIterator[Any]:
        """Lease a worker for the duration of a block and yield its handle.

        The worker is discarded when the block fails with a transport fault.
        """
        worker = await self.lease(purpose, timeout)
        discard = False
        try:
            yield worker.handle
        except Exception as e:
            discard = is_retryable(classify(e))
            raise
        except BaseException:
            discard = True
            raise
        finally:
            await self.release(worker, discard=discard)

    async def _acquire(self, purpose: str, remaining: float, timeout: float) -> Worker:
        worker = self._take_idle(purpose)
        if worker is not None:
            return worker

        # Queue behind earlier requests; a vacant slot is opened for the
        # oldest waiter, not for whoever arrived last
        loop = asyncio.get_running_loop()
        waiter: _Waiter = (loop.create_future(), purpose)
        self._waiters.append(waiter)
        self._record_sizes()
        if self._vacancies() > 0:
            self._schedule_replacement()
        timer = loop.call_later(remaining, self._expire_waiter, waiter, timeout)
        try:
            return await waiter[0]
        except asyncio.CancelledError:
            self._abandon_waiter(waiter)
            raise
        finally:
            timer.cancel()

    def _take_idle(self, purpose: str) -> Worker | None:
        if not self._idle:
            return None
        worker = self._idle.popleft()
        worker.mark_leased(purpose)
        return worker

    def _next_waiter(self) -> _Waiter | None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter[0].done():
                return waiter
        return None

    def _checkin(self, worker: Worker) -> None:
        """Hand a worker to the oldest live waiter or park it as idle"""
        waiter = self._next_waiter()
        if waiter is not None:
            future, purpose = waiter
            worker.mark_leased(purpose)
            future.set_result(worker)
        else:
            worker.mark_idle()
            self._idle.append(worker)
        self._record_sizes()

    def _expire_waiter(self, waiter: _Waiter, timeout: float) -> None:
        future, _ = waiter
        if future.done():
            return
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        self.total_lease_timeouts += 1
        self._metrics.lease_timed_out()
        self._record_sizes()
        future.set_exception(
            LeaseTimeoutError(
                f"Timed out after {timeout}s waiting for a connection from Redis pool '{self.name}'"
            )
        )

    def _abandon_waiter(self, waiter: _Waiter) -> None:
        future, _ = waiter
        if future.done() and not future.cancelled() and future.exception() is None:
            # Granted in the same loop iteration as the cancellation
            self._checkin(future.result())
            return
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        self._record_sizes()

    # -- worker lifecycle ------------------------------------------------

    async def _provision(self) -> Worker:
        """Open one connection and register it as a worker"""
        self._provisioning += 1
        try:
            handle = await self.client.open(self.config.url)
        except Exception as e:
            error = classify(e)
            self._metrics.worker_create_failed(error.kind.value)
            logger.debug(f"Failed to open connection for Redis pool '{self.name}': {error}")
            if error is e:
                raise
            raise error from e
        finally:
            self._provisioning -= 1

        worker = Worker(handle, self.name)
        self._workers.add(worker)
        self.total_workers_created += 1
        self._metrics.worker_created()
        logger.debug(f"Created {worker!r} in Redis pool '{self.name}'")
        return worker

    def _detach(self, worker: Worker, reason: str) -> bool:
        if worker.state is WorkerState.CLOSING:
            return False
        worker.mark_closing()
        self._workers.discard(worker)
        try:
            self._idle.remove(worker)
        except ValueError:
            pass
        self.total_workers_destroyed += 1
        self._metrics.worker_destroyed(reason)
        return True

    async def _retire(self, worker: Worker, reason: str) -> None:
        if self._detach(worker, reason):
            self._record_sizes()
            await self._close_handle(worker)

    async def _close_workers(self, reason: str) -> None:
        workers = [worker for worker in list(self._workers) if self._detach(worker, reason)]
        await asyncio.gather(*(self._close_handle(worker) for worker in workers))

    async def _close_handle(self, worker: Worker) -> None:
        try:
            await self.client.close(worker.handle)
            logger.debug(f"Destroyed {worker!r} in Redis pool '{self.name}'")
        except Exception as e:
            logger.warning(f"Error closing Redis connection in pool '{self.name}': {e}")

    def _schedule_replacement(self) -> None:
        if self._closed:
            return
        task = asyncio.create_task(self._replace())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _replace(self) -> Worker | None:
        """Fill one vacant slot for the oldest waiter or the idle set.

        A failed open is reported to the oldest waiter, if any, and the next
        waiter gets a fresh attempt. With nobody waiting the failure is
        logged and the slot stays vacant until the next lease or health cycle.
        """
        if self._closed or self._vacancies() <= 0:
            return None
        try:
            worker = await self._provision()
        except RedisPoolError as e:
            if not self._closed:
                self._replacement_failed(e)
            return None
        if self._closed:
            await self._retire(worker, "pool_stopped")
            return None
        self._checkin(worker)
        return worker

    def _replacement_failed(self, error: RedisPoolError) -> None:
        waiter = self._next_waiter()
        if waiter is None:
            logger.error(
                f"Failed to replace connection in Redis pool '{self.name}': {error}",
                extra={"pool_name": self.name},
            )
            return

        logger.warning(
            f"Failed to open connection for a waiting lease on Redis pool '{self.name}': {error}",
            extra={"pool_name": self.name},
        )
        waiter[0].set_exception(error)
        self._record_sizes()
        if self.waiting_count:
            self._schedule_replacement()

    async def _replenish(self) -> None:
        for _ in range(max(0, self._vacancies())):
            if await self._replace() is None:
                break

    # -- health checking -------------------------------------------------

    async def health_check(self, worker: Worker) -> bool:
        """Probe an idle worker; replace it when the probe fails.

        Returns False when the worker was removed. Leased workers are never
        probed.
        """
        if worker.state is WorkerState.LEASED:
            return True
        if worker.state is not WorkerState.IDLE or worker not in self._workers:
            return False

        self._idle.remove(worker)
        worker.mark_leased(HEALTH_CHECK_PURPOSE)
        try:
            result = await probe(self.client, worker.handle, self.config.health_check_timeout)
        except BaseException:
            # A PING reply may still be in flight on this connection
            await self._retire(worker, HEALTH_CHECK_PURPOSE)
            self._schedule_replacement()
            raise

        if worker.state is not WorkerState.LEASED:
            # Closed by stop() while probing
            return False
        if result.healthy:
            self._checkin(worker)
            return True

        self._record_probe_failure(worker, result)
        await self._retire(worker, HEALTH_CHECK_PURPOSE)
        await self._replace()
        return False

    async def check_idle_workers(self) -> int:
        """Probe workers idle past the idle timeout and top up vacancies.

        Returns the number of workers removed.
        """
        due = [worker for worker in self._idle if worker.idle_time >= self.config.idle_timeout]
        removed = 0
        for worker in due:
            if self._closed:
                break
            if not await self.health_check(worker):
                removed += 1
        if not self._closed:
            await self._replenish()
        return removed

    async def _verify(self, worker: Worker) -> bool:
        result = await probe(self.client, worker.handle, self.config.health_check_timeout)
        if worker.state is not WorkerState.LEASED:
            return False
        if result.healthy:
            return True
        self._record_probe_failure(worker, result)
        await self._retire(worker, HEALTH_CHECK_PURPOSE)
        self._schedule_replacement()
        return False

    def _record_probe_failure(self, worker: Worker, result: ProbeResult) -> None:
        reason = result.reason.value if result.reason else "unknown"
        self.total_health_check_failures += 1
        self._metrics.health_check_failed(reason)
        logger.warning(
            f"Removing {worker!r} from Redis pool '{self.name}' after failed health check: {reason}"
            + (f" ({result.error})" if result.error is not None else "")
        )

    def _start_health_checker(self) -> None:
        """Start background health checking task"""
        if self.config.idle_timeout > 0:
            self._health_check_task = asyncio.create_task(self._health_check_loop())

    async def _health_check_loop(self) -> None:
        """Background health check loop"""
        while not self._closed:
            try:
                await asyncio.sleep(self.config.idle_timeout)
                await self.check_idle_workers()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Redis health check error in pool '{self.name}': {e}")

    # -- metrics ---------------------------------------------------------

    def get_metrics(self) -> dict[str, Any]:
        """Get pool metrics"""
        return {
            "pool_name": self.name,
            "pool_size": self.config.pool_size,
            "total_workers": len(self._workers),
            "idle_workers": self.idle_count,
            "leased_workers": self.leased_count,
            "waiting_requests": self.waiting_count,
            "provisioning": self._provisioning,
            "total_workers_created": self.total_workers_created,
            "total_workers_destroyed": self.total_workers_destroyed,
            "total_leases": self.total_leases,
            "total_lease_timeouts": self.total_lease_timeouts,
            "total_health_check_failures": self.total_health_check_failures,
            "running": self.is_running,
        }
