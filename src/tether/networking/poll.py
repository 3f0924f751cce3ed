"""Poll an async probe until it produces a result.

A probe is a zero-argument coroutine function. Returning :data:`ABSENT`
means "not ready yet"; any other value, ``None`` included, ends the poll.
Between attempts the poller either waits a randomized exponential backoff
or, when :attr:`PollOptions.once_block` is set, waits for the next external
event.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import random as _random
from typing import Any, Awaitable, Callable, Generator

from .config import OnceBlock, PollOptions
from .errors import ErrorCode, ErrorFactory, PollTimeoutError

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]

# 2**64 intervals is past any usable ceiling; larger exponents only risk
# overflowing the float conversion.
_MAX_EXPONENT = 64


class _Absent:
    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()


def backoff_delay(
    attempt: int,
    options: PollOptions,
    random: Callable[[], float] = _random.random,
) -> float:
    """Return the delay before retry number ``attempt`` (1-based).

    The delay is ``interval * floor(random() * 2**attempt)`` clamped to
    ``[floor, ceiling]``.
    """
    spread = 2 ** min(attempt, _MAX_EXPONENT)
    delay = options.interval_seconds * math.floor(random() * spread)
    if delay < options.floor_seconds:
        delay = options.floor_seconds
    if delay > options.ceiling_seconds:
        delay = options.ceiling_seconds
    return delay


class PollRun:
    """State of one poll invocation.

    The run settles at most once. Every settling path goes through
    :meth:`_stop`, which flips ``done`` and releases the pending timers and
    the block waiter; whichever path reaches it first wins.
    """

    def __init__(
        self,
        probe: Probe,
        options: PollOptions,
        *,
        loop: asyncio.AbstractEventLoop,
        errors: ErrorFactory,
        delay_for: Callable[[int, PollOptions], float],
    ) -> None:
        self.attempt = 0
        self.done = False
        self._probe = probe
        self._options = options
        self._loop = loop
        self._errors = errors
        self._delay_for = delay_for
        self._result: asyncio.Future[Any] = loop.create_future()
        self._deadline: asyncio.TimerHandle | None = None
        self._retry: asyncio.TimerHandle | None = None
        self._waiter: asyncio.Future[Any] | None = None
        self._owns_waiter = False
        self._inflight: asyncio.Task[None] | None = None

    def __await__(self) -> Generator[Any, None, Any]:
        return self._result.__await__()

    @property
    def result(self) -> asyncio.Future[Any]:
        return self._result

    def start(self) -> None:
        if self._options.timeout_seconds is not None:
            self._deadline = self._loop.call_later(
                self._options.timeout_seconds, self._expire
            )
        self._check()

    def cancel(self) -> bool:
        """Abort the run; return False if it had already settled.

        The in-flight probe, if any, is cancelled and awaiting the run
        raises :class:`asyncio.CancelledError`.
        """
        if not self._stop():
            return False
        if self._inflight is not None:
            self._inflight.cancel()
        self._result.cancel()
        return True

    def _stop(self) -> bool:
        if self.done:
            return False
        self.done = True
        for handle in (self._deadline, self._retry):
            if handle is not None:
                handle.cancel()
        self._deadline = None
        self._retry = None
        self._release_waiter()
        return True

    def _resolve(self, value: Any) -> None:
        if not self._result.done():
            self._result.set_result(value)

    def _reject(self, error: BaseException) -> None:
        if not self._result.done():
            self._result.set_exception(error)

    def _expire(self) -> None:
        self._deadline = None
        if self._stop():
            self._reject(
                self._errors.make_error(
                    "timeout",
                    ErrorCode.TIMEOUT,
                    error_type=PollTimeoutError,
                    timeout=self._options.timeout_seconds,
                )
            )

    def _check(self) -> None:
        self._retry = None
        if self.done:
            return
        self._inflight = self._loop.create_task(self._attempt())

    async def _attempt(self) -> None:
        if self.done:
            return
        try:
            result = await self._probe()
        except asyncio.CancelledError:
            # Cancelled from inside the probe rather than through cancel().
            if self._stop():
                self._result.cancel()
            raise
        except Exception as error:
            if self._stop():
                self._reject(error)
            else:
                logger.debug("Discarding probe failure after settle: %r", error)
            return

        if result is not ABSENT:
            if self._stop():
                self._resolve(result)
            return
        if self.done:
            return

        if self._options.once_block is not None:
            self._wait_for_block(self._options.once_block)
            return

        self.attempt += 1
        retry_limit = self._options.retry_limit
        if retry_limit is not None and self.attempt > retry_limit:
            if self._stop():
                self._reject(
                    self._errors.make_error(
                        "retry limit reached",
                        ErrorCode.RETRY_LIMIT_EXCEEDED,
                        probes=self.attempt,
                        retry_limit=retry_limit,
                    )
                )
            return

        delay = self._delay_for(self.attempt, self._options)
        logger.debug(
            "Poll attempt %d not ready; retrying in %.3fs", self.attempt, delay
        )
        self._retry = self._loop.call_later(delay, self._check)

    def _wait_for_block(self, once_block: OnceBlock) -> None:
        try:
            source = once_block()
            waiter = asyncio.ensure_future(source)
        except Exception as error:
            if self._stop():
                self._reject(error)
            return
        # A future handed out by the event source may be shared with other
        # runs; only a task wrapped around a coroutine belongs to this run.
        self._waiter = waiter
        self._owns_waiter = waiter is not source
        waiter.add_done_callback(self._on_block)

    def _release_waiter(self) -> None:
        waiter, self._waiter = self._waiter, None
        if waiter is None:
            return
        waiter.remove_done_callback(self._on_block)
        if self._owns_waiter:
            waiter.cancel()

    def _on_block(self, waiter: asyncio.Future[Any]) -> None:
        if waiter is not self._waiter:
            return
        self._waiter = None
        if waiter.cancelled():
            # The event source went away; nothing will wake this run again.
            if self._stop():
                self._result.cancel()
            return
        error = waiter.exception()
        if error is not None:
            if self._stop():
                self._reject(error)
            return
        self._check()


class Poller:
    """Drive probes with backoff, deadlines and retry limits."""

    def __init__(
        self,
        errors: ErrorFactory | None = None,
        random: Callable[[], float] = _random.random,
    ) -> None:
        """Create a new Poller.

        Args:
            errors: Builds the timeout and retry-limit errors.
            random: Source of uniform floats in ``[0, 1)`` for the jitter.
        """
        self._errors = errors or ErrorFactory()
        self._random = random

    def backoff_delay(self, attempt: int, options: PollOptions) -> float:
        return backoff_delay(attempt, options, self._random)

    def start(self, probe: Probe, options: PollOptions | None = None) -> PollRun:
        """Start polling and return the run handle (awaitable, cancellable).

        Must be called with a running event loop.
        """
        run = PollRun(
            probe,
            options or PollOptions(),
            loop=asyncio.get_running_loop(),
            errors=self._errors,
            delay_for=self.backoff_delay,
        )
        run.start()
        return run

    async def poll(
        self, probe: Probe, options: PollOptions | None = None
    ) -> Any:
        """Invoke ``probe`` until it returns something other than ABSENT.

        Raises:
            PollTimeoutError: ``options.timeout_seconds`` elapsed.
            RetryLimitExceededError: More than ``options.retry_limit``
                retries were needed.
            Exception: Whatever the probe raised, unchanged.
        """
        run = self.start(probe, options)
        try:
            return await run
        finally:
            # Only does anything when the caller was cancelled.
            run.cancel()


async def poll(
    probe: Probe, options: PollOptions | None = None, **overrides: Any
) -> Any:
    """Poll ``probe`` with a default :class:`Poller`.

    Keyword overrides are applied on top of ``options``, e.g.
    ``await poll(probe, timeout_seconds=5, retry_limit=3)``.
    """
    if overrides:
        options = dataclasses.replace(options or PollOptions(), **overrides)
    return await Poller().poll(probe, options)
