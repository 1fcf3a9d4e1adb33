# discovery/utils/cancellation.py
from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Set, TypeVar
from fastapi import Request
from discovery.core.errors import DiscoveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

class ClientDisconnected(DiscoveryError):
    kind = "client_disconnected"
    status_code = 499


async def cancel_on_disconnect(request: Request, aw: Awaitable[T], poll_interval: float = 0.1) -> T:
    """
    Await a read-only call, cancelling it if the client goes away first so an
    abandoned search does not keep the index/store busy.
    """
    task = asyncio.ensure_future(aw)

    async def _watch() -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(poll_interval)

    watcher = asyncio.ensure_future(_watch())
    try:
        done, _ = await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        if task in done:
            return task.result()
        task.cancel()
        logger.info("client disconnected, cancelled in-flight call path=%s", request.url.path)
        raise ClientDisconnected("Client disconnected")
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()


# mutations that outlive their caller; held here so they are not garbage collected
_pending: Set[asyncio.Future] = set()


def _settle(task: asyncio.Future) -> None:
    _pending.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("shielded mutation failed", exc_info=task.exception())


async def run_to_completion(aw: Awaitable[T]) -> T:
    """
    Await a mutation shielded from request cancellation: once started it runs
    to the end even if the caller is cancelled. Failures are logged when the
    task settles, since a cancelled caller never sees them.
    """
    task = asyncio.ensure_future(aw)
    _pending.add(task)
    task.add_done_callback(_settle)
    return await asyncio.shield(task)
