"""
Redis Pool Error Types

Defines the closed error taxonomy used by the pool. Every failure raised by
the public pool API is a RedisPoolError carrying a kind, a human readable
message and the underlying cause.
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Closed set of error kinds"""
    CONNECTION_ERROR = "connection_error"
    COMMAND_ERROR = "command_error"
    TIMEOUT_ERROR = "timeout_error"
    NETWORK_ERROR = "network_error"
    AUTHENTICATION_ERROR = "authentication_error"
    POOL_ERROR = "pool_error"
    UNKNOWN_ERROR = "unknown_error"


class RedisPoolError(Exception):
    """Structured pool error.

    Attributes are read-only once the error is built; classification never
    mutates an existing error, it returns it unchanged.
    """

    def __init__(self, kind: ErrorKind, message: str, cause: Any = None):
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._cause = cause

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> Any:
        return self._cause

    def __str__(self) -> str:
        if self._cause is None:
            return f"[{self._kind.value}] {self._message}"
        return f"[{self._kind.value}] {self._message} (cause: {self._cause!r})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self._kind.value!r}, message={self._message!r}, cause={self._cause!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RedisPoolError):
            return NotImplemented
        return (
            self._kind is other._kind and
            self._message == other._message and
            self._cause == other._cause
        )

    def __hash__(self) -> int:
        return hash((self._kind, self._message))

    def __reduce__(self):
        return (type(self), (self._kind, self._message, self._cause))

    def to_dict(self) -> dict[str, Any]:
        """Render the error for logs and API responses"""
        return {
            "kind": self._kind.value,
            "message": self._message,
            "cause": None if self._cause is None else repr(self._cause),
        }


class ConfigurationError(RedisPoolError):
    """Invalid pool configuration"""

    def __init__(self, message: str, cause: Any = None):
        super().__init__(ErrorKind.POOL_ERROR, message, cause)

    def __reduce__(self):
        return (type(self), (self.message, self.cause))


class LeaseTimeoutError(RedisPoolError):
    """No worker became available within the lease timeout.

    Unlike a timeout while opening or using a connection, this says the pool
    is busy, so it is never retried.
    """

    def __init__(self, message: str, cause: Any = None):
        super().__init__(ErrorKind.TIMEOUT_ERROR, message, cause)

    def __reduce__(self):
        return (type(self), (self.message, self.cause))


def connection_error(message: str, cause: Any = None) -> RedisPoolError:
    """Failure to establish or keep a connection"""
    return RedisPoolError(ErrorKind.CONNECTION_ERROR, message, cause)


def command_error(message: str, cause: Any = None) -> RedisPoolError:
    """Command rejected by the server"""
    return RedisPoolError(ErrorKind.COMMAND_ERROR, message, cause)


def timeout_error(message: str, cause: Any = None) -> RedisPoolError:
    """Operation or lease timed out"""
    return RedisPoolError(ErrorKind.TIMEOUT_ERROR, message, cause)


def network_error(message: str, cause: Any = None) -> RedisPoolError:
    """Socket closed or peer unreachable"""
    return RedisPoolError(ErrorKind.NETWORK_ERROR, message, cause)


def authentication_error(message: str, cause: Any = None) -> RedisPoolError:
    """Server rejected the credentials"""
    return RedisPoolError(ErrorKind.AUTHENTICATION_ERROR, message, cause)


def pool_error(message: str, cause: Any = None) -> RedisPoolError:
    """Pool misuse or pool lifecycle failure"""
    return RedisPoolError(ErrorKind.POOL_ERROR, message, cause)


def unknown_error(message: str, cause: Any = None) -> RedisPoolError:
    """Failure that matches no known shape"""
    return RedisPoolError(ErrorKind.UNKNOWN_ERROR, message, cause)
