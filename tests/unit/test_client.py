"""
Tests for the public pool API and the RedisPool base class.
"""

import pytest

from redis_pool import (
    ErrorKind,
    PoolConfig,
    RedisPool,
    RedisPoolError,
    execute,
    execute_batch,
    start,
    stop,
)
from tests.fakes import TEST_URL


class SessionStore(RedisPool):
    default_config = {"pool_size": 2, "idle_timeout": 0}

    def init(self, config):
        return config.with_overrides(lease_timeout=0.25)


class TestModuleApi:
    """Test start/execute/stop against an explicit pool handle."""

    @pytest.mark.asyncio
    async def test_round_trip(self, fake_client):
        pool = await start({"name": "app", "url": TEST_URL, "pool_size": 2, "idle_timeout": 0}, client=fake_client)
        try:
            assert pool.is_running
            assert await execute(pool, ["SET", "user:1", "alice"]) == "OK"
            assert await execute(pool, ["GET", "user:1"]) == "alice"
            assert await execute_batch(pool, [["GET", "user:1"], ["GET", "user:2"]]) == ["alice", None]
        finally:
            await stop(pool)

        assert pool.is_closed
        assert fake_client.live_connections == []

    @pytest.mark.asyncio
    async def test_invalid_config(self, fake_client):
        with pytest.raises(RedisPoolError) as exc_info:
            await start({"name": "app", "url": "localhost:6379"}, client=fake_client)

        assert exc_info.value.kind is ErrorKind.POOL_ERROR
        assert fake_client.opened == []

    @pytest.mark.asyncio
    async def test_unreachable_server(self, fake_client):
        fake_client.open_failures = [ConnectionRefusedError(111, "Connection refused")]

        with pytest.raises(RedisPoolError) as exc_info:
            await start(PoolConfig(name="app", url=TEST_URL, pool_size=1, idle_timeout=0), client=fake_client)

        assert exc_info.value.kind is ErrorKind.CONNECTION_ERROR

    @pytest.mark.asyncio
    async def test_execute_options(self, fake_client):
        pool = await start(PoolConfig(name="app", url=TEST_URL, pool_size=1, idle_timeout=0), client=fake_client)
        try:
            with pytest.raises(RedisPoolError) as exc_info:
                await execute(pool, ["PING"], max_retries=1)
            assert exc_info.value.kind is ErrorKind.POOL_ERROR
        finally:
            await stop(pool)


class TestRedisPool:
    """Test application pools built on the RedisPool base class."""

    @pytest.mark.asyncio
    async def test_subclass_defaults_and_init_hook(self, fake_client):
        async with SessionStore(url=TEST_URL, client=fake_client) as store:
            assert store.name == "SessionStore"
            assert store.pool.pool_size == 2
            assert store.pool.config.lease_timeout == 0.25

            assert await store.command(["SET", "session:1", "data"]) == "OK"
            assert await store.pipeline([["GET", "session:1"], ["DEL", "session:1"]]) == ["data", 1]
            assert await store.ping() == "PONG"

        assert store.pool.is_closed

    @pytest.mark.asyncio
    async def test_overrides_take_precedence(self, fake_client):
        store = SessionStore({"pool_size": 4, "url": TEST_URL}, client=fake_client, pool_size=1, name="sessions")
        await store.start()
        try:
            assert store.name == "sessions"
            assert store.pool.pool_size == 1
            assert await store.start() is store
            assert len(fake_client.opened) == 1
        finally:
            await store.stop()

    @pytest.mark.asyncio
    async def test_from_pool_config(self, fake_client):
        config = PoolConfig(name="cache", url=TEST_URL, pool_size=1, idle_timeout=0)
        async with RedisPool(config, client=fake_client) as cache:
            assert cache.name == "cache"
            assert await cache.command(["GET", "nothing"]) is None

    @pytest.mark.asyncio
    async def test_not_started(self, fake_client):
        store = SessionStore(url=TEST_URL, client=fake_client)

        with pytest.raises(RedisPoolError) as exc_info:
            await store.command(["PING"])
        assert exc_info.value.kind is ErrorKind.POOL_ERROR

        await store.stop()
