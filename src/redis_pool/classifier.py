"""
Error Classifier

Maps raw failures raised by the protocol client, the socket layer or the
event loop onto the closed RedisPoolError taxonomy. Classification never
raises: anything unrecognised becomes an unknown_error that keeps the raw
failure as its cause.
"""

import asyncio
import errno
import logging
import socket
from typing import Any

from redis import exceptions as redis_exceptions

from .errors import (
    ErrorKind,
    RedisPoolError,
    authentication_error,
    command_error,
    connection_error,
    network_error,
    timeout_error,
    unknown_error,
)

logger = logging.getLogger(__name__)

# Bare reason codes accepted in place of exceptions
_REASONS: dict[str, tuple[ErrorKind, str]] = {
    "timeout": (ErrorKind.TIMEOUT_ERROR, "Operation timed out"),
    "closed": (ErrorKind.NETWORK_ERROR, "Connection closed"),
    "noproc": (ErrorKind.NETWORK_ERROR, "Connection no longer exists"),
    "ehostunreach": (ErrorKind.NETWORK_ERROR, "Host unreachable"),
    "enetunreach": (ErrorKind.NETWORK_ERROR, "Network unreachable"),
    "econnrefused": (ErrorKind.CONNECTION_ERROR, "Connection refused"),
    "nxdomain": (ErrorKind.CONNECTION_ERROR, "Host name could not be resolved"),
    "invalid_uri": (ErrorKind.CONNECTION_ERROR, "Invalid Redis URL"),
    "unauthorized": (ErrorKind.AUTHENTICATION_ERROR, "Authentication failed"),
    "command_error": (ErrorKind.COMMAND_ERROR, "Command rejected by server"),
}

_AUTH_REPLY_PREFIXES = ("NOAUTH", "WRONGPASS", "INVALIDPASSWORD")

_UNREACHABLE_ERRNOS = frozenset(
    code for code in (
        getattr(errno, "EHOSTUNREACH", None),
        getattr(errno, "ENETUNREACH", None),
    ) if code is not None
)

_CLOSED_SOCKET_ERRORS = (
    BrokenPipeError,
    ConnectionResetError,
    ConnectionAbortedError,
    EOFError,  # includes asyncio.IncompleteReadError
)

_TIMEOUT_ERRORS = (redis_exceptions.TimeoutError, asyncio.TimeoutError, TimeoutError)


def classify(raw: Any) -> RedisPoolError:
    """Classify a raw failure into a RedisPoolError"""
    try:
        return _classify(raw)
    except Exception as e:  # str()/repr() of exotic objects can fail
        logger.debug(f"Failed to classify {type(raw).__name__}: {e}")
        return unknown_error("Unclassifiable failure", raw)


def is_retryable(error: RedisPoolError) -> bool:
    """Whether a classified failure may succeed on a fresh connection"""
    return error.kind in (
        ErrorKind.CONNECTION_ERROR,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.TIMEOUT_ERROR,
        ErrorKind.UNKNOWN_ERROR,
    )


def _classify(raw: Any) -> RedisPoolError:
    if isinstance(raw, RedisPoolError):
        return raw

    if isinstance(raw, str):
        kind, message = _REASONS.get(raw.lower(), (ErrorKind.UNKNOWN_ERROR, "Unknown failure"))
        return RedisPoolError(kind, message, raw)

    if isinstance(raw, (redis_exceptions.AuthenticationError, redis_exceptions.AuthorizationError)):
        return authentication_error("Redis authentication failed", raw)

    if isinstance(raw, redis_exceptions.ResponseError):
        if str(raw).upper().startswith(_AUTH_REPLY_PREFIXES):
            return authentication_error("Redis authentication failed", raw)
        return command_error(f"Redis command error: {raw}", raw)

    if isinstance(raw, redis_exceptions.DataError):
        return command_error(f"Invalid command arguments: {raw}", raw)

    if isinstance(raw, _TIMEOUT_ERRORS):
        return timeout_error("Redis operation timed out", raw)

    if isinstance(raw, redis_exceptions.ConnectionError):
        return _classify_redis_connection_error(raw)

    if isinstance(raw, BaseException):
        return _classify_os_error(raw) or unknown_error(
            f"Unexpected error: {type(raw).__name__}: {raw}", raw
        )

    return unknown_error("Unknown failure", raw)


def _classify_redis_connection_error(raw: redis_exceptions.ConnectionError) -> RedisPoolError:
    # redis-py wraps socket errors; the underlying OSError is the cause
    underlying = raw.__cause__ or raw.__context__
    if isinstance(underlying, _TIMEOUT_ERRORS):
        return timeout_error("Redis operation timed out", raw)
    if isinstance(underlying, BaseException):
        classified = _classify_os_error(underlying)
        if classified is not None:
            return RedisPoolError(classified.kind, classified.message, raw)

    text = str(raw).lower()
    if "closed" in text:
        return network_error("Redis connection closed", raw)
    if "refused" in text:
        return connection_error("Redis connection refused", raw)
    if "not known" in text or "name resolution" in text or "nodename" in text:
        return connection_error("Redis host name could not be resolved", raw)
    return connection_error(f"Redis connection error: {raw}", raw)


def _classify_os_error(raw: BaseException) -> RedisPoolError | None:
    if isinstance(raw, _TIMEOUT_ERRORS):
        return timeout_error("Redis operation timed out", raw)
    if isinstance(raw, _CLOSED_SOCKET_ERRORS):
        return network_error("Redis connection closed", raw)
    if isinstance(raw, ConnectionRefusedError):
        return connection_error("Redis connection refused", raw)
    if isinstance(raw, socket.gaierror):
        return connection_error("Redis host name could not be resolved", raw)
    if isinstance(raw, OSError):
        if raw.errno in _UNREACHABLE_ERRNOS:
            return network_error("Redis host unreachable", raw)
        return connection_error(f"Redis connection error: {raw}", raw)
    return None
