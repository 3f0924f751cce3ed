"""Single-shot JSON request executor.

:class:`RequestExecutor` turns a connection descriptor and an optional JSON
body into exactly one HTTP round trip. It enforces a wall-clock timeout,
classifies the response, optionally transforms the parsed payload and
settles exactly once. There is no retrying here; wrap a call in
:func:`tether.networking.poll.poll` for that.
"""

from __future__ import annotations

import asyncio
import base64
import functools
import inspect
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping, NamedTuple, Union

from .config import ConnectionInfo, HeaderValue
from .errors import ErrorCode, ErrorFactory, InvalidArgumentError
from .transport import (
    RequestsTransport,
    Transport,
    TransportRequest,
    TransportResponse,
)

logger = logging.getLogger(__name__)

Connection = Union[str, ConnectionInfo, Mapping[str, Any]]

CONDITIONAL_HEADERS = frozenset({"if-none-match", "if-modified-since"})
SECURE_SCHEME_PREFIX = "https:"
NOT_MODIFIED = 304


class Header(NamedTuple):
    """Outgoing header with the capitalization it is sent with."""

    key: str
    value: str


@dataclass(frozen=True)
class ResponseEnvelope:
    """Response metadata handed to a transform function."""

    status_code: int
    status: str
    headers: Mapping[str, str]

    @classmethod
    def from_transport(cls, response: TransportResponse) -> ResponseEnvelope:
        headers: dict[str, str] = {}
        for key, value in response.headers:
            headers[key.lower()] = value
        return cls(
            status_code=response.status,
            status=response.status_text,
            headers=MappingProxyType(headers),
        )


Transform = Callable[[Any, ResponseEnvelope], Any]


@dataclass(frozen=True)
class NormalizedRequest:
    """Everything needed for one round trip, fixed before it starts."""

    url: str
    method: str
    headers: Mapping[str, Header]
    body: str | bytes | None
    allow_304: bool
    timeout_seconds: float
    mode: str = "cors"
    cache: str = "no-cache"
    credentials: str = "same-origin"
    redirect: str = "follow"
    referrer: str = "client"

    def flat_headers(self) -> dict[str, str]:
        return {header.key: header.value for header in self.headers.values()}

    def to_transport(self) -> TransportRequest:
        return TransportRequest(
            url=self.url,
            method=self.method,
            headers=MappingProxyType(self.flat_headers()),
            body=self.body,
            mode=self.mode,
            cache=self.cache,
            credentials=self.credentials,
            redirect=self.redirect,
            referrer=self.referrer,
            timeout_seconds=self.timeout_seconds,
        )


def _header_value(value: HeaderValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_request(
    connection: Connection,
    body: str | bytes | None = None,
    errors: ErrorFactory | None = None,
) -> NormalizedRequest:
    """Normalize a connection and body into a :class:`NormalizedRequest`.

    Raises:
        InvalidArgumentError: The connection has no URL or a bad timeout.
        InsecureAuthenticationError: Credentials were given for a URL that
            is not https and insecure authentication was not allowed.
    """
    errors = errors or ErrorFactory()
    try:
        info = ConnectionInfo.coerce(connection)
    except InvalidArgumentError as exc:
        raise errors.make_error(
            exc.reason, ErrorCode.INVALID_ARGUMENT, **exc.context
        ) from exc

    headers: dict[str, Header] = {}
    allow_304 = False
    for key, value in info.headers.items():
        lowered = key.lower()
        headers[lowered] = Header(key, _header_value(value))
        if lowered in CONDITIONAL_HEADERS:
            allow_304 = True

    if info.has_credentials:
        if (
            not info.url.startswith(SECURE_SCHEME_PREFIX)
            and info.allow_insecure_authentication is not True
        ):
            raise errors.make_error(
                "basic authentication requires a secure https url",
                ErrorCode.INSECURE_AUTHENTICATION,
                argument="url",
                url=info.url,
                user=info.user,
                password="[REDACTED]",
            )
        credentials = f"{info.user}:{info.password}".encode("utf-8")
        headers["authorization"] = Header(
            "Authorization",
            "Basic " + base64.b64encode(credentials).decode("ascii"),
        )

    method = "GET"
    if body:
        method = "POST"
        # Overrides any caller-supplied content type.
        headers["content-type"] = Header("Content-Type", "application/json")

    return NormalizedRequest(
        url=info.url,
        method=method,
        headers=MappingProxyType(headers),
        body=body or None,
        allow_304=allow_304,
        timeout_seconds=info.timeout_seconds,
    )


class RequestExecutor:
    """Perform single JSON requests over an injected transport."""

    def __init__(
        self,
        transport: Transport | None = None,
        errors: ErrorFactory | None = None,
    ) -> None:
        """Create a new RequestExecutor.

        Args:
            transport: Performs the HTTP round trip. Defaults to a
                :class:`RequestsTransport`.
            errors: Builds the errors raised by the executor.
        """
        self._transport = transport or RequestsTransport()
        self._errors = errors or ErrorFactory()

    async def execute(
        self,
        connection: Connection,
        body: str | bytes | None = None,
        transform: Transform | None = None,
    ) -> Any:
        """Send one request and return its parsed JSON payload.

        Args:
            connection: URL string, :class:`ConnectionInfo` or mapping.
            body: Raw JSON text. When given the request is a POST.
            transform: Called as ``transform(payload, envelope)``; its
                return value (awaited if awaitable) replaces the payload.

        Returns:
            The parsed (and transformed) payload. ``None`` stands for "not
            modified" when a conditional header was sent and the server
            answered 304.

        Raises:
            InvalidArgumentError, InsecureAuthenticationError: Before any
                network activity.
            RequestTimeoutError: The timeout elapsed first.
            ServerError: Failure status, invalid JSON or a failing transform.
            Exception: Transport errors, unchanged.
        """
        request = build_request(connection, body, errors=self._errors)

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[Any] = loop.create_future()
        timer = loop.call_later(
            request.timeout_seconds, self._expire, outcome, request
        )
        task = loop.create_task(self._round_trip(request, transform))
        task.add_done_callback(
            functools.partial(self._complete, outcome, timer, request)
        )
        try:
            return await outcome
        finally:
            timer.cancel()
            if outcome.cancelled():
                task.cancel()

    def _expire(
        self, outcome: asyncio.Future[Any], request: NormalizedRequest
    ) -> None:
        if outcome.done():
            return
        outcome.set_exception(
            self._errors.make_error(
                "timeout",
                ErrorCode.TIMEOUT,
                timeout=request.timeout_seconds,
                url=request.url,
            )
        )

    def _complete(
        self,
        outcome: asyncio.Future[Any],
        timer: asyncio.TimerHandle,
        request: NormalizedRequest,
        task: asyncio.Task[Any],
    ) -> None:
        timer.cancel()
        if task.cancelled():
            if not outcome.done():
                outcome.cancel()
            return

        error = task.exception()
        if outcome.done():
            logger.debug(
                "Discarding late completion of %s %s (error=%r)",
                request.method,
                request.url,
                error,
            )
            return
        if error is not None:
            outcome.set_exception(error)
        else:
            outcome.set_result(task.result())

    async def _round_trip(
        self, request: NormalizedRequest, transform: Transform | None
    ) -> Any:
        logger.debug("Sending %s %s", request.method, request.url)
        response = await self._transport.send(request.to_transport())
        logger.debug(
            "Received %s for %s %s",
            response.status,
            request.method,
            request.url,
        )
        return await self._handle_response(request, response, transform)

    async def _handle_response(
        self,
        request: NormalizedRequest,
        response: TransportResponse,
        transform: Transform | None,
    ) -> Any:
        body = response.body_text
        payload: Any = None

        if request.allow_304 and response.status == NOT_MODIFIED:
            pass
        elif not response.ok:
            raise self._errors.make_error(
                "bad response",
                ErrorCode.SERVER_ERROR,
                status=response.status,
                body=body,
                type=response.type,
                url=response.url or request.url,
            )
        else:
            try:
                payload = json.loads(body)
            except ValueError as exc:
                raise self._errors.make_error(
                    "invalid JSON",
                    ErrorCode.SERVER_ERROR,
                    body=body,
                    error=exc,
                    url=request.url,
                ) from exc

        if transform is None:
            return payload

        envelope = ResponseEnvelope.from_transport(response)
        try:
            processed = transform(payload, envelope)
            if inspect.isawaitable(processed):
                processed = await processed
        except Exception as exc:
            raise self._errors.make_error(
                "processing response error",
                ErrorCode.SERVER_ERROR,
                body=payload,
                error=exc,
            ) from exc
        return processed


async def fetch_json(
    connection: Connection,
    body: str | bytes | None = None,
    transform: Transform | None = None,
    *,
    transport: Transport | None = None,
) -> Any:
    """Run one request with a throwaway :class:`RequestExecutor`.

    When no transport is given a :class:`RequestsTransport` is created for
    this call and closed once its request has returned, even when the
    executor gave up on it first.
    """
    if transport is not None:
        return await RequestExecutor(transport).execute(
            connection, body, transform
        )

    owned = RequestsTransport()
    try:
        return await RequestExecutor(owned).execute(connection, body, transform)
    finally:
        owned.close()
