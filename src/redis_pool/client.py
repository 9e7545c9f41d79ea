"""
Public pool API.

Module level functions start and stop pools and run commands against an
explicit pool handle. RedisPool is the base class applications subclass to
get a named pool with ``command`` and ``pipeline`` methods.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict
from typing import Any, ClassVar

from .config import ExecuteOptions, PoolConfig
from .errors import pool_error
from .executor import CommandExecutor
from .pool import RedisConnectionPool
from .protocol import Command, ProtocolClient

logger = logging.getLogger(__name__)


def _as_config(config: PoolConfig | Mapping[str, Any]) -> PoolConfig:
    if isinstance(config, PoolConfig):
        return config
    return PoolConfig.from_dict(config)


async def start(config: PoolConfig | Mapping[str, Any], client: ProtocolClient | None = None) -> RedisConnectionPool:
    """Validate a config, open the pool and return its handle"""
    pool = RedisConnectionPool(_as_config(config), client=client)
    return await pool.start()


async def stop(pool: RedisConnectionPool) -> None:
    """Close every connection of a pool"""
    await pool.stop()


async def execute(pool: RedisConnectionPool, command: Command, **options: Any) -> Any:
    """Run one command; options are ExecuteOptions fields"""
    return await CommandExecutor(pool).execute(command, **options)


async def execute_batch(pool: RedisConnectionPool, commands: Sequence[Command], **options: Any) -> list[Any]:
    """Run commands as one pipeline; options are ExecuteOptions fields"""
    return await CommandExecutor(pool).execute_batch(commands, **options)


class RedisPool:
    """Base class for application Redis pools.

    Subclass it, optionally set ``default_config`` and override ``init`` to
    adjust the configuration when the pool starts::

        class SessionStore(RedisPool):
            default_config = {"pool_size": 5}

            def init(self, config):
                return config.with_overrides(lease_timeout=1.0)

        store = SessionStore(url="redis://localhost:6379/0")
        async with store:
            await store.command(["SET", "session:1", "data"])
    """

    default_config: ClassVar[Mapping[str, Any]] = {}

    def __init__(
        self,
        config: PoolConfig | Mapping[str, Any] | None = None,
        *,
        client: ProtocolClient | None = None,
        options: ExecuteOptions | None = None,
        **overrides: Any,
    ):
        if isinstance(config, PoolConfig):
            settings = {**self.default_config, **asdict(config), **overrides}
        else:
            settings = {**self.default_config, **(config or {}), **overrides}
        settings.setdefault("name", type(self).__name__)
        self._settings = settings
        self._client = client
        self._options = options
        self._pool: RedisConnectionPool | None = None
        self._executor: CommandExecutor | None = None

    def init(self, config: PoolConfig) -> PoolConfig:
        """Hook to adjust the configuration before the pool starts"""
        return config

    @property
    def name(self) -> str:
        return self._pool.name if self._pool else self._settings["name"]

    @property
    def pool(self) -> RedisConnectionPool:
        if self._pool is None:
            raise pool_error(f"Redis pool '{self._settings['name']}' is not started")
        return self._pool

    @property
    def executor(self) -> CommandExecutor:
        if self._executor is None:
            raise pool_error(f"Redis pool '{self._settings['name']}' is not started")
        return self._executor

    async def start(self) -> "RedisPool":
        if self._pool is not None and self._pool.is_running:
            return self
        config = self.init(PoolConfig.from_dict(self._settings))
        pool = RedisConnectionPool(config, client=self._client)
        await pool.start()
        self._pool = pool
        self._executor = CommandExecutor(pool, self._options)
        return self

    async def stop(self) -> None:
        if self._pool is not None:
            await self._pool.stop()

    async def command(self, command: Command, **options: Any) -> Any:
        return await self.executor.execute(command, **options)

    async def pipeline(self, commands: Sequence[Command], **options: Any) -> list[Any]:
        return await self.executor.execute_batch(commands, **options)

    async def ping(self) -> Any:
        return await self.command(["PING"])

    async def __aenter__(self) -> "RedisPool":
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
