"""One-shot notification source for event-driven polling."""

from __future__ import annotations

import asyncio
from typing import Any


class OnceBlockEmitter:
    """Wake waiters on the next occurrence of an external event.

    ``once`` is meant to be passed as :attr:`PollOptions.once_block`, so that
    a poll retries when, for example, a new chain block arrives instead of on
    a timer::

        emitter = OnceBlockEmitter()
        options = PollOptions(once_block=emitter.once)
        ...
        emitter.notify(block_number)  # from the event source
    """

    def __init__(self) -> None:
        self._waiters: list[asyncio.Future[Any]] = []

    def once(self) -> asyncio.Future[Any]:
        """Return a future completed by the next :meth:`notify`."""
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return waiter

    def notify(self, value: Any = None) -> int:
        """Complete every pending waiter with ``value``.

        Waiters registered while notifying wait for the next call. Returns
        the number of waiters woken.
        """
        waiters, self._waiters = self._waiters, []
        woken = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(value)
                woken += 1
        return woken

    def __len__(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())
