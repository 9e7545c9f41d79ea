"""
Global pytest configuration and fixtures for redis-pool testing.
"""

import pytest

from redis_pool import PoolConfig, RedisConnectionPool
from tests.fakes import TEST_URL, FakeProtocolClient, FakeRedisServer


@pytest.fixture
def fake_server() -> FakeRedisServer:
    return FakeRedisServer()


@pytest.fixture
def fake_client(fake_server: FakeRedisServer) -> FakeProtocolClient:
    return FakeProtocolClient(fake_server)


@pytest.fixture
def pool_config() -> PoolConfig:
    """Small pool with the background health loop disabled"""
    return PoolConfig(name="test", url=TEST_URL, pool_size=3, idle_timeout=0, lease_timeout=1.0)


@pytest.fixture
async def pool(pool_config: PoolConfig, fake_client: FakeProtocolClient):
    """A started pool backed by the fake client"""
    pool = RedisConnectionPool(pool_config, client=fake_client)
    await pool.start()
    yield pool
    await pool.stop()
