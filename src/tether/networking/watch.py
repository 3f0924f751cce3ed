"""Poll a JSON endpoint until it returns something."""

from __future__ import annotations

from typing import Any

from .client import Connection, RequestExecutor, Transform
from .config import PollOptions
from .poll import ABSENT, Poller


async def poll_json(
    connection: Connection,
    body: str | bytes | None = None,
    transform: Transform | None = None,
    options: PollOptions | None = None,
    *,
    executor: RequestExecutor | None = None,
    poller: Poller | None = None,
) -> Any:
    """Repeat a request until its payload is not ``None``.

    A 304 answer to a conditional request, or a transform returning
    ``None``, counts as "not ready yet". Request errors end the poll.
    """
    executor = executor or RequestExecutor()
    poller = poller or Poller()

    async def probe() -> Any:
        payload = await executor.execute(connection, body, transform)
        return ABSENT if payload is None else payload

    return await poller.poll(probe, options)
