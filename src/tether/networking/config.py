"""Configuration models for requests, polls and the default transport."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Union

from .errors import InvalidArgumentError

logger = logging.getLogger(__name__)

HeaderValue = Union[str, int, float]

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_FLOOR_SECONDS = 0.0
DEFAULT_CEILING_SECONDS = 10.0
DEFAULT_INTERVAL_SECONDS = 0.25

_CAMEL_CASE_KEYS = {
    "allowInsecureAuthentication": "allow_insecure_authentication",
    "timeout": "timeout_seconds",
}


def _default_headers() -> Mapping[str, Any]:
    """Return immutable empty default headers mapping."""

    return MappingProxyType({})


def _redacted(values: Mapping[str, Any]) -> dict[str, Any]:
    redacted = dict(values)
    if redacted.get("password") is not None:
        redacted["password"] = "[REDACTED]"
    return redacted


@dataclass(frozen=True)
class ConnectionInfo:
    """Where and how to send one JSON request.

    A bare URL string is accepted anywhere a ``ConnectionInfo`` is; see
    :meth:`coerce`.
    """

    url: str
    user: str | None = None
    password: str | None = None
    allow_insecure_authentication: bool = False
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    headers: Mapping[str, HeaderValue] = field(default_factory=_default_headers)

    def __post_init__(self) -> None:
        if self.url is None:
            raise InvalidArgumentError(
                "missing URL", argument="connection.url", value=None
            )
        if self.timeout_seconds is None or self.timeout_seconds <= 0:
            raise InvalidArgumentError(
                "timeout must be > 0",
                argument="connection.timeout",
                value=self.timeout_seconds,
            )

        object.__setattr__(
            self, "headers", MappingProxyType(dict(self.headers or {}))
        )

    def __repr__(self) -> str:
        password = None if self.password is None else "[REDACTED]"
        return (
            f"ConnectionInfo(url={self.url!r}, user={self.user!r}, "
            f"password={password!r}, "
            f"allow_insecure_authentication="
            f"{self.allow_insecure_authentication!r}, "
            f"timeout_seconds={self.timeout_seconds!r}, "
            f"headers={dict(self.headers)!r})"
        )

    @property
    def has_credentials(self) -> bool:
        return self.user is not None and self.password is not None

    @classmethod
    def coerce(
        cls, connection: str | ConnectionInfo | Mapping[str, Any]
    ) -> ConnectionInfo:
        """Normalize the accepted connection shapes to a ``ConnectionInfo``.

        Mappings may use the dataclass field names or the camelCase keys
        ``allowInsecureAuthentication`` and ``timeout`` (seconds).
        """
        if isinstance(connection, ConnectionInfo):
            return connection
        if isinstance(connection, str):
            return cls(url=connection)
        if not isinstance(connection, Mapping):
            raise InvalidArgumentError(
                "invalid connection",
                argument="connection",
                value=type(connection).__name__,
            )

        values = {
            _CAMEL_CASE_KEYS.get(key, key): value
            for key, value in connection.items()
        }
        if values.get("url") is None:
            raise InvalidArgumentError(
                "missing URL",
                argument="connection.url",
                value=_redacted(values),
            )
        if values.get("timeout_seconds") is None:
            values.pop("timeout_seconds", None)
        known = {item.name for item in fields(cls)}
        ignored = sorted(key for key in values if key not in known)
        if ignored:
            logger.debug("Ignoring unknown connection keys: %s", ignored)
        return cls(**{key: values[key] for key in values if key in known})


OnceBlock = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class PollOptions:
    """Timing policy for one poll run.

    ``once_block`` replaces wall-clock backoff: when set, each "not ready"
    answer waits for the awaitable it returns instead of a timer.
    """

    timeout_seconds: float | None = None
    floor_seconds: float = DEFAULT_FLOOR_SECONDS
    ceiling_seconds: float = DEFAULT_CEILING_SECONDS
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    retry_limit: int | None = None
    once_block: OnceBlock | None = None

    def __post_init__(self) -> None:
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0 when provided")
        if self.floor_seconds < 0:
            raise ValueError("floor_seconds must be >= 0")
        if self.ceiling_seconds < self.floor_seconds:
            raise ValueError("ceiling_seconds must be >= floor_seconds")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.retry_limit is not None and self.retry_limit < 0:
            raise ValueError("retry_limit must be >= 0 when provided")
        if self.once_block is not None and not callable(self.once_block):
            raise ValueError("once_block must be callable")


@dataclass(frozen=True)
class TransportConfig:
    """Configuration for the default ``requests`` transport."""

    user_agent: str | None = None
    default_headers: Mapping[str, str] = field(default_factory=_default_headers)
    verify_tls: bool = True

    def __post_init__(self) -> None:
        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(dict(self.default_headers)),
        )
