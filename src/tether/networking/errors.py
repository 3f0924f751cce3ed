"""Error types for the tether networking layer.

Every failure raised by the request executor or the poller carries a
machine-readable ``code`` and a ``context`` mapping. Callers are expected to
branch on the code (or the exception class), never on the message text.
Errors raised by a transport or by a probe are not wrapped.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Kinds of failure surfaced by the networking layer."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INSECURE_AUTHENTICATION = "INSECURE_AUTHENTICATION"
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    RETRY_LIMIT_EXCEEDED = "RETRY_LIMIT_EXCEEDED"


class NetworkingError(Exception):
    """Base class for errors raised by tether itself."""

    code: ClassVar[ErrorCode]

    def __init__(self, reason: str, **context: Any) -> None:
        super().__init__(reason)
        self.reason = reason
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return self.reason
        details = ", ".join(
            f"{key}={value!r}" for key, value in sorted(self.context.items())
        )
        return f"{self.reason} ({details})"


class InvalidArgumentError(NetworkingError, ValueError):
    """A connection descriptor or call argument is malformed."""

    code = ErrorCode.INVALID_ARGUMENT

    @property
    def argument(self) -> str | None:
        return self.context.get("argument")


class InsecureAuthenticationError(NetworkingError):
    """Credentials were supplied for a non-https URL."""

    code = ErrorCode.INSECURE_AUTHENTICATION


class RequestTimeoutError(NetworkingError, TimeoutError):
    """A single request did not complete within its timeout."""

    code = ErrorCode.TIMEOUT

    @property
    def timeout(self) -> float | None:
        return self.context.get("timeout")


class PollTimeoutError(NetworkingError, TimeoutError):
    """A poll run exceeded its overall deadline."""

    code = ErrorCode.TIMEOUT

    @property
    def timeout(self) -> float | None:
        return self.context.get("timeout")


class ServerError(NetworkingError):
    """The server answered with a failure status or an unusable body.

    ``reason`` tells the sub-cause apart: ``"bad response"`` for a
    non-success status, ``"invalid JSON"`` for a body that failed to parse
    and ``"processing response error"`` for a transform that raised.
    """

    code = ErrorCode.SERVER_ERROR

    @property
    def status(self) -> int | None:
        return self.context.get("status")

    @property
    def body(self) -> Any:
        return self.context.get("body")


class RetryLimitExceededError(NetworkingError):
    """A poll run used up its retry budget without a result."""

    code = ErrorCode.RETRY_LIMIT_EXCEEDED


_ERROR_TYPES: dict[ErrorCode, type[NetworkingError]] = {
    ErrorCode.INVALID_ARGUMENT: InvalidArgumentError,
    ErrorCode.INSECURE_AUTHENTICATION: InsecureAuthenticationError,
    ErrorCode.TIMEOUT: RequestTimeoutError,
    ErrorCode.SERVER_ERROR: ServerError,
    ErrorCode.RETRY_LIMIT_EXCEEDED: RetryLimitExceededError,
}


class ErrorFactory:
    """Build tagged networking errors.

    The factory is handed to the executor and the poller at construction so
    that callers can swap in their own subclass (for example to attach
    tracing ids to the context) without any module-level state.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def make_error(
        self,
        reason: str,
        code: ErrorCode,
        *,
        error_type: type[NetworkingError] | None = None,
        **context: Any,
    ) -> NetworkingError:
        """Return (not raise) an error of the type registered for ``code``.

        Args:
            reason: Short human-readable description.
            code: Error kind.
            error_type: Override the exception class, which must use ``code``.
            **context: Structured details stored on the error.
        """
        cls = error_type or _ERROR_TYPES[code]
        if cls.code is not code:
            raise ValueError(
                f"{cls.__name__} does not carry error code {code.value}"
            )
        error = cls(reason, **context)
        self._logger.debug("%s: %s", code.value, error)
        return error
