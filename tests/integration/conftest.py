"""
Integration test fixtures.

Integration tests run the pool against a real Redis server started in a
container and are skipped when no Docker daemon is reachable.
"""

from collections.abc import Iterator

import docker
import pytest
from docker.errors import DockerException
from testcontainers.redis import RedisContainer


def _docker_available() -> bool:
    try:
        client = docker.from_env()
        client.ping()
        client.close()
        return True
    except DockerException:
        return False


@pytest.fixture(scope="session")
def redis_container() -> Iterator[RedisContainer]:
    """Provide a Redis container for integration tests."""
    if not _docker_available():
        pytest.skip("Docker is not available")
    with RedisContainer("redis:7-alpine") as redis:
        yield redis


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"
