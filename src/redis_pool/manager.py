"""
Redis Pool Manager

Owns several named Redis pools built from configuration and manages their
lifecycle together. Pools are looked up on the manager instance that
created them; there is no process-wide registry.
"""

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .config import PoolConfig, load_pool_configs
from .errors import RedisPoolError, pool_error
from .executor import CommandExecutor
from .pool import RedisConnectionPool
from .protocol import ProtocolClient

logger = logging.getLogger(__name__)


class RedisPoolManager:
    """Centralized manager for named Redis pools"""

    def __init__(self, client: ProtocolClient | None = None):
        self._client = client
        self._pools: dict[str, RedisConnectionPool] = {}
        self._executors: dict[str, CommandExecutor] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

        self.total_pools_created = 0
        self.total_pools_destroyed = 0

    @classmethod
    async def from_file(cls, path: str | Path, client: ProtocolClient | None = None) -> "RedisPoolManager":
        """Create a manager and start every pool defined in a YAML file"""
        manager = cls(client=client)
        await manager.initialize(load_pool_configs(path))
        return manager

    async def initialize(self, configs: Iterable[PoolConfig]) -> None:
        """Start a pool for each configuration.

        If any pool fails to start, the pools already started are stopped
        and the error is raised.
        """
        async with self._lock:
            if self._initialized:
                logger.warning("Redis pool manager already initialized")
                return

            try:
                for config in configs:
                    await self._create_pool(config)
            except BaseException:
                await self._close_pools()
                raise

            self._initialized = True
            logger.info(f"Redis pool manager initialized with {len(self._pools)} pools")

    async def _create_pool(self, config: PoolConfig) -> RedisConnectionPool:
        if config.name in self._pools:
            raise pool_error(f"Redis pool '{config.name}' already exists")
        pool = RedisConnectionPool(config, client=self._client)
        try:
            await pool.start()
        except RedisPoolError as e:
            logger.error(f"Failed to create Redis pool '{config.name}': {e}")
            raise
        self._pools[config.name] = pool
        self._executors[config.name] = CommandExecutor(pool)
        self.total_pools_created += 1
        return pool

    async def add_pool(self, config: PoolConfig) -> RedisConnectionPool:
        """Start and register a new pool"""
        async with self._lock:
            return await self._create_pool(config)

    async def remove_pool(self, name: str) -> None:
        """Stop and forget a pool"""
        async with self._lock:
            pool = self._pools.pop(name, None)
            self._executors.pop(name, None)
            if pool is None:
                logger.warning(f"Redis pool '{name}' not found for removal")
                return
            await pool.stop()
            self.total_pools_destroyed += 1
            logger.info(f"Removed Redis pool '{name}'")

    def get_pool(self, name: str) -> RedisConnectionPool:
        pool = self._pools.get(name)
        if pool is None:
            raise pool_error(f"Redis pool '{name}' not found")
        return pool

    def get_executor(self, name: str) -> CommandExecutor:
        executor = self._executors.get(name)
        if executor is None:
            raise pool_error(f"Redis pool '{name}' not found")
        return executor

    async def command(self, name: str, command: Any, **options: Any) -> Any:
        return await self.get_executor(name).execute(command, **options)

    async def pipeline(self, name: str, commands: Any, **options: Any) -> list[Any]:
        return await self.get_executor(name).execute_batch(commands, **options)

    @property
    def pool_names(self) -> list[str]:
        return list(self._pools)

    def get_metrics(self) -> dict[str, Any]:
        """Get metrics for the manager and every pool"""
        return {
            "manager": {
                "initialized": self._initialized,
                "total_pools": len(self._pools),
                "total_pools_created": self.total_pools_created,
                "total_pools_destroyed": self.total_pools_destroyed,
            },
            "pools": {
                name: {**pool.get_metrics(), **self._executors[name].get_metrics()}
                for name, pool in self._pools.items()
            },
        }

    def health_check(self) -> dict[str, Any]:
        """Summarize pool health from worker counts"""
        results: dict[str, Any] = {"pools": {}, "overall_status": "healthy"}
        unhealthy = 0

        for name, pool in self._pools.items():
            metrics = pool.get_metrics()
            if not pool.is_running or (pool.pool_size and metrics["total_workers"] == 0):
                status = "unhealthy"
                unhealthy += 1
            elif metrics["total_workers"] < pool.pool_size:
                status = "degraded"
            else:
                status = "healthy"
            results["pools"][name] = {
                "status": status,
                "total_workers": metrics["total_workers"],
                "pool_size": pool.pool_size,
            }

        if unhealthy:
            results["overall_status"] = "degraded" if unhealthy < len(self._pools) else "unhealthy"
        elif any(entry["status"] == "degraded" for entry in results["pools"].values()):
            results["overall_status"] = "degraded"
        return results

    async def _close_pools(self) -> None:
        for name, pool in list(self._pools.items()):
            try:
                await pool.stop()
            except Exception as e:
                logger.error(f"Error closing Redis pool '{name}': {e}")
            self.total_pools_destroyed += 1
        self._pools.clear()
        self._executors.clear()

    async def close(self) -> None:
        """Stop every pool"""
        async with self._lock:
            await self._close_pools()
            self._initialized = False
            logger.info("Redis pool manager closed")

    async def __aenter__(self) -> "RedisPoolManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
