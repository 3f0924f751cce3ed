"""Transport capability used by the request executor.

The executor never talks to the network directly: it hands a fully built
:class:`TransportRequest` to an object implementing :class:`Transport` and
gets back a :class:`TransportResponse`. :class:`RequestsTransport` is the
default implementation, backed by a ``requests.Session``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

import requests

from .config import TransportConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportRequest:
    """One outgoing HTTP request, including the fetch-style transport policy."""

    url: str
    method: str
    headers: Mapping[str, str]
    body: str | bytes | None = None
    mode: str = "cors"
    cache: str = "no-cache"
    credentials: str = "same-origin"
    redirect: str = "follow"
    referrer: str = "client"
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class TransportResponse:
    """Raw outcome of one HTTP round trip.

    ``headers`` keeps the order and case the transport received them in;
    the executor normalizes them.
    """

    status: int
    status_text: str
    body_text: str
    headers: Sequence[tuple[str, str]] = field(default_factory=tuple)
    url: str | None = None
    type: str = "basic"

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299


class Transport(Protocol):
    async def send(self, request: TransportRequest) -> TransportResponse:
        """Perform one HTTP round trip.

        Any exception raised here reaches the executor's caller unchanged.
        """
        ...


class RequestsTransport:
    """Transport backed by ``requests``.

    The blocking call runs in a worker thread so the event loop is never
    blocked. The request timeout is passed to ``requests`` as well, so a
    request abandoned by the executor still frees its worker.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._session = session or requests.Session()
        if self._config.user_agent:
            self._session.headers["User-Agent"] = self._config.user_agent
        self._session.headers.update(self._config.default_headers)
        self._lock = threading.Lock()
        self._active = 0
        self._closing = False

    async def send(self, request: TransportRequest) -> TransportResponse:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self._send, request)
        )

    def _send(self, request: TransportRequest) -> TransportResponse:
        with self._lock:
            self._active += 1
        try:
            return self._round_trip(request)
        finally:
            with self._lock:
                self._active -= 1
                release = self._closing and self._active == 0
            if release:
                self._session.close()

    def _round_trip(self, request: TransportRequest) -> TransportResponse:
        headers = dict(request.headers)
        if request.cache == "no-cache" and not any(
            key.lower() == "cache-control" for key in headers
        ):
            headers["Cache-Control"] = "no-cache"

        logger.debug("%s %s", request.method, request.url)
        response = self._session.request(
            request.method,
            request.url,
            headers=headers,
            data=request.body,
            timeout=request.timeout_seconds,
            allow_redirects=request.redirect == "follow",
            verify=self._config.verify_tls,
        )
        logger.debug(
            "%s %s -> %s", request.method, request.url, response.status_code
        )
        return TransportResponse(
            status=response.status_code,
            status_text=response.reason or "",
            body_text=response.text,
            headers=tuple(response.headers.items()),
            url=response.url,
        )

    def close(self) -> None:
        """Close the session once no worker is using it.

        A request abandoned by the executor may still be running in its
        worker thread; the session is then closed when that call returns.
        """
        with self._lock:
            self._closing = True
            release = self._active == 0
        if release:
            self._session.close()
