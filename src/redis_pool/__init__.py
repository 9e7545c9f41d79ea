"""
Redis Connection Pool

Managed pool of persistent Redis connections with bounded concurrency,
health-checked recycling, pipelined execution and a structured error
taxonomy.
"""

from .classifier import classify, is_retryable
from .client import RedisPool, execute, execute_batch, start, stop
from .config import ExecuteOptions, PoolConfig, load_pool_configs
from .errors import (
    ConfigurationError,
    LeaseTimeoutError,
    ErrorKind,
    RedisPoolError,
    authentication_error,
    command_error,
    connection_error,
    network_error,
    pool_error,
    timeout_error,
    unknown_error,
)
from .executor import CommandExecutor
from .health import ProbeResult, RemovalReason, probe
from .logging import configure_logging
from .manager import RedisPoolManager
from .pool import RedisConnectionPool
from .protocol import Command, ProtocolClient, RedisProtocolClient
from .worker import Worker, WorkerState

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandExecutor",
    "ConfigurationError",
    "LeaseTimeoutError",
    "ErrorKind",
    "ExecuteOptions",
    "PoolConfig",
    "ProbeResult",
    "ProtocolClient",
    "RedisConnectionPool",
    "RedisPool",
    "RedisPoolError",
    "RedisPoolManager",
    "RedisProtocolClient",
    "RemovalReason",
    "Worker",
    "WorkerState",
    "authentication_error",
    "classify",
    "command_error",
    "configure_logging",
    "connection_error",
    "execute",
    "execute_batch",
    "is_retryable",
    "load_pool_configs",
    "network_error",
    "pool_error",
    "probe",
    "start",
    "stop",
    "timeout_error",
    "unknown_error",
]
