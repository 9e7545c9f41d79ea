"""
Tests for mapping raw failures onto the error taxonomy.
"""

import asyncio
import errno
import socket

import pytest
from redis import exceptions as redis_exceptions

from redis_pool import ErrorKind, RedisPoolError, classify, command_error, is_retryable, pool_error


def _with_cause(error: BaseException, cause: BaseException) -> BaseException:
    error.__cause__ = cause
    return error


class _Unprintable(Exception):
    def __str__(self):
        raise RuntimeError("cannot render")


class TestClassify:
    """Test classification of raw failures."""

    @pytest.mark.parametrize(
        "raw,kind",
        [
            ("timeout", ErrorKind.TIMEOUT_ERROR),
            ("closed", ErrorKind.NETWORK_ERROR),
            ("noproc", ErrorKind.NETWORK_ERROR),
            ("ehostunreach", ErrorKind.NETWORK_ERROR),
            ("econnrefused", ErrorKind.CONNECTION_ERROR),
            ("nxdomain", ErrorKind.CONNECTION_ERROR),
            ("unauthorized", ErrorKind.AUTHENTICATION_ERROR),
            ("something_else", ErrorKind.UNKNOWN_ERROR),
        ],
    )
    def test_reason_codes(self, raw, kind):
        error = classify(raw)

        assert error.kind is kind
        assert error.cause == raw

    @pytest.mark.parametrize(
        "raw,kind",
        [
            (redis_exceptions.ResponseError("ERR unknown command 'FOO'"), ErrorKind.COMMAND_ERROR),
            (redis_exceptions.ResponseError("WRONGTYPE Operation against a key"), ErrorKind.COMMAND_ERROR),
            (redis_exceptions.ResponseError("WRONGPASS invalid username-password pair"), ErrorKind.AUTHENTICATION_ERROR),
            (redis_exceptions.ResponseError("NOAUTH Authentication required."), ErrorKind.AUTHENTICATION_ERROR),
            (redis_exceptions.AuthenticationError("invalid password"), ErrorKind.AUTHENTICATION_ERROR),
            (redis_exceptions.DataError("Invalid input of type: 'dict'"), ErrorKind.COMMAND_ERROR),
            (redis_exceptions.TimeoutError("Timeout reading from socket"), ErrorKind.TIMEOUT_ERROR),
            (asyncio.TimeoutError(), ErrorKind.TIMEOUT_ERROR),
            (redis_exceptions.ConnectionError("Connection closed by server."), ErrorKind.NETWORK_ERROR),
            (
                redis_exceptions.ConnectionError("Error 111 connecting to localhost:6379. Connection refused."),
                ErrorKind.CONNECTION_ERROR,
            ),
            (
                _with_cause(redis_exceptions.ConnectionError("Error while reading"), ConnectionResetError()),
                ErrorKind.NETWORK_ERROR,
            ),
            (
                _with_cause(redis_exceptions.ConnectionError("Error connecting"), socket.timeout()),
                ErrorKind.TIMEOUT_ERROR,
            ),
            (ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"), ErrorKind.CONNECTION_ERROR),
            (socket.gaierror(socket.EAI_NONAME, "Name or service not known"), ErrorKind.CONNECTION_ERROR),
            (BrokenPipeError(), ErrorKind.NETWORK_ERROR),
            (asyncio.IncompleteReadError(b"", 10), ErrorKind.NETWORK_ERROR),
            (OSError(errno.EHOSTUNREACH, "No route to host"), ErrorKind.NETWORK_ERROR),
            (OSError(errno.EACCES, "Permission denied"), ErrorKind.CONNECTION_ERROR),
            (ValueError("unexpected"), ErrorKind.UNKNOWN_ERROR),
        ],
    )
    def test_exceptions(self, raw, kind):
        error = classify(raw)

        assert error.kind is kind
        assert error.cause is raw

    def test_classified_error_is_returned_unchanged(self):
        error = pool_error("Pool stopped")

        assert classify(error) is error
        assert classify(classify(ValueError("x"))).kind is ErrorKind.UNKNOWN_ERROR

    @pytest.mark.parametrize("raw", [None, 42, object(), {"reason": "closed"}, _Unprintable()])
    def test_never_raises(self, raw):
        error = classify(raw)

        assert isinstance(error, RedisPoolError)
        assert error.kind is ErrorKind.UNKNOWN_ERROR
        assert error.cause is raw


class TestIsRetryable:
    """Test which kinds may succeed on a fresh connection."""

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (ErrorKind.CONNECTION_ERROR, True),
            (ErrorKind.NETWORK_ERROR, True),
            (ErrorKind.TIMEOUT_ERROR, True),
            (ErrorKind.UNKNOWN_ERROR, True),
            (ErrorKind.COMMAND_ERROR, False),
            (ErrorKind.AUTHENTICATION_ERROR, False),
            (ErrorKind.POOL_ERROR, False),
        ],
    )
    def test_retryable_kinds(self, kind, expected):
        assert is_retryable(RedisPoolError(kind, "x")) is expected

    def test_command_errors_are_final(self):
        assert not is_retryable(classify(redis_exceptions.ResponseError("ERR syntax error")))
        assert not is_retryable(command_error("x"))
