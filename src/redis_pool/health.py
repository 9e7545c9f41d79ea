"""
Worker Health Probing

Liveness probe for pooled connections. A probe sends PING through the
worker's handle and reports why the worker must be removed, or None when the
connection answered PONG in time.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

from redis import exceptions as redis_exceptions

from .classifier import classify
from .errors import ErrorKind
from .protocol import ProtocolClient

PING_COMMAND = ("PING",)
PONG_REPLIES = ("PONG", b"PONG")


class RemovalReason(Enum):
    """Why a probed worker is removed"""
    INVALID_RESPONSE = "invalid_response"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT = "timeout"
    COMMAND_ERROR = "command_error"
    EXCEPTION = "exception"
    CONNECTION_CLOSED = "connection_closed"


@dataclass
class ProbeResult:
    """Outcome of a single liveness probe"""
    reason: RemovalReason | None = None
    reply: Any = None
    error: BaseException | None = None

    @property
    def healthy(self) -> bool:
        return self.reason is None


async def probe(client: ProtocolClient, handle: Any, timeout: float | None = None) -> ProbeResult:
    """Send PING through a handle and judge the reply"""
    try:
        if timeout:
            reply = await asyncio.wait_for(client.send(handle, PING_COMMAND), timeout)
        else:
            reply = await client.send(handle, PING_COMMAND)
    except asyncio.CancelledError:
        raise
    except (asyncio.TimeoutError, redis_exceptions.TimeoutError) as e:
        return ProbeResult(RemovalReason.TIMEOUT, error=e)
    except redis_exceptions.ResponseError as e:
        return ProbeResult(RemovalReason.COMMAND_ERROR, error=e)
    except Exception as e:
        return ProbeResult(_reason_for(e), error=e)

    if reply in PONG_REPLIES:
        return ProbeResult(reply=reply)
    return ProbeResult(RemovalReason.INVALID_RESPONSE, reply=reply)


def _reason_for(error: Exception) -> RemovalReason:
    kind = classify(error).kind
    if kind is ErrorKind.NETWORK_ERROR:
        return RemovalReason.CONNECTION_CLOSED
    if kind in (ErrorKind.CONNECTION_ERROR, ErrorKind.AUTHENTICATION_ERROR):
        return RemovalReason.CONNECTION_ERROR
    if kind is ErrorKind.TIMEOUT_ERROR:
        return RemovalReason.TIMEOUT
    if kind is ErrorKind.COMMAND_ERROR:
        return RemovalReason.COMMAND_ERROR
    return RemovalReason.EXCEPTION
