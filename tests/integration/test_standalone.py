"""
Integration tests against a real Redis server.
"""

import asyncio

import pytest

from redis_pool import (
    CommandExecutor,
    ErrorKind,
    PoolConfig,
    RedisConnectionPool,
    RedisPool,
    RedisPoolError,
    execute,
    execute_batch,
    start,
    stop,
)

pytestmark = pytest.mark.integration


@pytest.fixture
async def live_pool(redis_url):
    pool = await start(PoolConfig(name="integration", url=redis_url, pool_size=3, idle_timeout=0))
    await execute(pool, ["FLUSHDB"])
    yield pool
    await stop(pool)


class TestStandaloneRedis:
    """Test command execution against Redis."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self, live_pool):
        assert await execute(live_pool, ["GET", "missing"]) is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, live_pool):
        assert await execute(live_pool, ["SET", "greeting", "hello"]) == "OK"
        assert await execute(live_pool, ["GET", "greeting"]) == "hello"

    @pytest.mark.asyncio
    async def test_pipeline(self, live_pool):
        replies = await execute_batch(live_pool, [
            ["SET", "counter", "10"],
            ["INCR", "counter"],
            ["NOT_A_COMMAND"],
            ["GET", "counter"],
        ])

        assert replies[:2] == ["OK", 11]
        assert isinstance(replies[2], RedisPoolError)
        assert replies[2].kind is ErrorKind.COMMAND_ERROR
        assert replies[3] == "11"

    @pytest.mark.asyncio
    async def test_command_errors(self, live_pool):
        for command in (["NOT_A_COMMAND"], ["SET"]):
            with pytest.raises(RedisPoolError) as exc_info:
                await execute(live_pool, command)
            assert exc_info.value.kind is ErrorKind.COMMAND_ERROR

        assert live_pool.idle_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_increments(self, live_pool):
        executor = CommandExecutor(live_pool)

        results = await asyncio.gather(*(executor.execute(["INCR", "hits"]) for _ in range(50)))

        assert sorted(results) == list(range(1, 51))
        assert live_pool.leased_count == 0

    @pytest.mark.asyncio
    async def test_health_check_probes_live_server(self, live_pool):
        assert await live_pool.check_idle_workers() == 0
        assert len(live_pool.workers) == 3

    @pytest.mark.asyncio
    async def test_killed_connection_is_replaced(self, live_pool):
        executor = CommandExecutor(live_pool)
        await executor.execute(["CLIENT", "KILL", "TYPE", "normal", "SKIPME", "yes"])

        assert await executor.execute(["PING"], retry_count=3) == "PONG"

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        with pytest.raises(RedisPoolError) as exc_info:
            await start(PoolConfig(name="down", url="redis://127.0.0.1:1/0", pool_size=1, connect_timeout=1.0))

        assert exc_info.value.kind in (ErrorKind.CONNECTION_ERROR, ErrorKind.TIMEOUT_ERROR)

    @pytest.mark.asyncio
    async def test_redis_pool_subclass(self, redis_url):
        class Cache(RedisPool):
            default_config = {"pool_size": 2, "idle_timeout": 0}

        async with Cache(url=redis_url) as cache:
            assert await cache.ping() == "PONG"
            assert isinstance(cache.pool, RedisConnectionPool)
