"""
Protocol Client

The pool talks to Redis through a ProtocolClient: open a single connection,
send one command or a batch of commands over it, close it. The default
implementation drives one redis-py asyncio Connection per handle and returns
the server's replies without redis-py's per-command post-processing.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Union

from redis.asyncio import ConnectionPool
from redis.asyncio.connection import AbstractConnection
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import ResponseError

from .config import redact_url

if TYPE_CHECKING:
    from .config import PoolConfig

logger = logging.getLogger(__name__)

CommandArg = Union[str, bytes, int, float]
Command = Sequence[CommandArg]


class ProtocolClient(ABC):
    """Connection-level operations the pool depends on"""

    @abstractmethod
    async def open(self, url: str) -> Any:
        """Open one connection and return its handle"""

    @abstractmethod
    async def send(self, handle: Any, command: Command) -> Any:
        """Send one command and return its reply.

        Server-side rejections raise; the caller classifies them.
        """

    @abstractmethod
    async def send_batch(self, handle: Any, commands: Sequence[Command]) -> list[Any]:
        """Send commands in one round trip.

        Returns one reply per command, in order. A command rejected by the
        server yields its exception in place of the reply; connection
        failures raise.
        """

    @abstractmethod
    async def close(self, handle: Any) -> None:
        """Close a connection handle"""


class RedisProtocolClient(ProtocolClient):
    """ProtocolClient backed by redis-py asyncio connections"""

    def __init__(
        self,
        *,
        decode_responses: bool = True,
        connect_timeout: float | None = 10.0,
        socket_timeout: float | None = None,
    ):
        self.decode_responses = decode_responses
        self.connect_timeout = connect_timeout
        self.socket_timeout = socket_timeout

    @classmethod
    def from_config(cls, config: "PoolConfig") -> "RedisProtocolClient":
        return cls(
            decode_responses=config.decode_responses,
            connect_timeout=config.connect_timeout or None,
            socket_timeout=config.socket_timeout,
        )

    def _build_connection(self, url: str) -> AbstractConnection:
        # from_url only parses the URL; the connection is built by hand so
        # that each handle owns exactly one socket
        template = ConnectionPool.from_url(
            url,
            decode_responses=self.decode_responses,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.socket_timeout,
            retry=Retry(NoBackoff(), 0),
        )
        return template.connection_class(**template.connection_kwargs)

    async def open(self, url: str) -> AbstractConnection:
        connection = self._build_connection(url)
        try:
            await connection.connect()
        except BaseException:
            await connection.disconnect(nowait=True)
            raise
        logger.debug(f"Opened Redis connection to {redact_url(url)}")
        return connection

    async def send(self, handle: AbstractConnection, command: Command) -> Any:
        await handle.send_command(*command)
        return await handle.read_response()

    async def send_batch(self, handle: AbstractConnection, commands: Sequence[Command]) -> list[Any]:
        await handle.send_packed_command(handle.pack_commands([tuple(command) for command in commands]))
        replies: list[Any] = []
        for _ in commands:
            try:
                replies.append(await handle.read_response())
            except ResponseError as e:
                replies.append(e)
        return replies

    async def close(self, handle: AbstractConnection) -> None:
        await handle.disconnect()
