"""
Command Executor

Runs a single command or a pipeline against one leased worker. Command-level
failures are raised without retry. Transport faults discard the worker and
are retried on a fresh lease while the retry budget lasts. Lease timeouts are
never retried.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from .classifier import classify, is_retryable
from .config import ExecuteOptions
from .errors import LeaseTimeoutError, RedisPoolError, command_error
from .metrics import PoolMetrics
from .pool import RedisConnectionPool
from .protocol import Command

logger = logging.getLogger(__name__)

_VALID_ARG_TYPES = (str, bytes, memoryview, int, float)


def validate_command(command: Any) -> tuple:
    """Check a command's shape before it reaches the wire"""
    if isinstance(command, (str, bytes)) or not isinstance(command, Sequence):
        raise command_error("Command must be a sequence of arguments", command)
    if not command:
        raise command_error("Command must not be empty", command)
    for arg in command:
        if isinstance(arg, bool) or not isinstance(arg, _VALID_ARG_TYPES):
            raise command_error(f"Invalid command argument {arg!r}", command)
    return tuple(command)


class CommandExecutor:
    """Execute commands against a pool with bounded retries"""

    def __init__(self, pool: RedisConnectionPool, options: ExecuteOptions | None = None):
        self.pool = pool
        self.options = options or ExecuteOptions()
        self._metrics = PoolMetrics(pool.name)

        # Metrics
        self.total_attempts = 0
        self.total_retries = 0
        self.total_errors = 0

    async def execute(self, command: Command, options: ExecuteOptions | None = None, **overrides: Any) -> Any:
        """Execute one command and return its reply"""
        command = validate_command(command)
        options = (options or self.options).merged(**overrides)

        async def send(handle: Any) -> Any:
            return await self.pool.client.send(handle, command)

        return await self._run("command", send, options)

    async def execute_batch(
        self,
        commands: Sequence[Command],
        options: ExecuteOptions | None = None,
        **overrides: Any,
    ) -> list[Any]:
        """Execute commands in one round trip.

        Replies come back in command order. A command rejected by the server
        yields a command_error in its position; the other replies are kept.
        """
        if isinstance(commands, (str, bytes)) or not isinstance(commands, Sequence) or not commands:
            raise command_error("Pipeline must contain at least one command", commands)
        batch = [validate_command(command) for command in commands]
        options = (options or self.options).merged(**overrides)

        async def send(handle: Any) -> list[Any]:
            replies = await self.pool.client.send_batch(handle, batch)
            if len(replies) != len(batch):
                raise RuntimeError(f"Pipeline returned {len(replies)} replies for {len(batch)} commands")
            return [classify(reply) if isinstance(reply, Exception) else reply for reply in replies]

        return await self._run("pipeline", send, options)

    async def _run(
        self,
        operation: str,
        send: Callable[[Any], Awaitable[Any]],
        options: ExecuteOptions,
    ) -> Any:
        retries_left = options.retry_count
        attempt = 0

        while True:
            attempt += 1
            try:
                worker = await self.pool.lease(operation, options.lease_timeout)
            except RedisPoolError as error:
                # A lease that failed while opening a connection is a transport
                # fault; waiting for a busy pool is not
                if isinstance(error, LeaseTimeoutError) or not is_retryable(error) or retries_left <= 0:
                    self._record_failure(error)
                    raise
                retries_left -= 1
                await self._before_retry(operation, attempt, error, options)
                continue

            discard = False
            try:
                self.total_attempts += 1
                self._metrics.command_attempted(operation)
                return await send(worker.handle)
            except asyncio.CancelledError:
                discard = True
                raise
            except Exception as e:
                error = classify(e)
                discard = is_retryable(error)
                if not discard or retries_left <= 0:
                    self._record_failure(error)
                    if error is e:
                        raise
                    raise error from e
                retries_left -= 1
            finally:
                await self.pool.release(worker, discard=discard)

            await self._before_retry(operation, attempt, error, options)

    async def _before_retry(self, operation: str, attempt: int, error: RedisPoolError, options: ExecuteOptions) -> None:
        self.total_retries += 1
        self._metrics.command_retried()
        delay = options.backoff(attempt)
        logger.warning(
            f"Redis {operation} failed on pool '{self.pool.name}' ({error}), "
            f"retrying{f' in {delay}s' if delay else ''}"
        )
        if delay:
            await asyncio.sleep(delay)

    def _record_failure(self, error: RedisPoolError) -> None:
        self.total_errors += 1
        self._metrics.command_failed(error.kind.value)

    def get_metrics(self) -> dict[str, Any]:
        return {
            "pool_name": self.pool.name,
            "total_attempts": self.total_attempts,
            "total_retries": self.total_retries,
            "total_errors": self.total_errors,
        }
