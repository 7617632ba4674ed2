"""
Post-spawn ready checks.

A ReadyCheck runs after a child has been spawned and before its did-start
signal fires, so dependents wait until e.g. the sequencer's gRPC port
answers instead of merely until the binary has been exec'd.

Failure to become ready within the retry budget is logged and startup
continues; a slow service should not block the rest of the chain forever.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from devrunner.process.cancel import CancelScope

logger = logging.getLogger(__name__)

Poll = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class ReadyCheck:
    """
    Retry a poll until it reports ready.

    Attributes:
        name: Description used in log messages
        poll: Async callable returning True once the service is ready
        retry_count: Maximum number of poll attempts
        retry_interval: Seconds to wait between attempts
    """

    name: str
    poll: Poll
    retry_count: int = 10
    retry_interval: float = 0.1

    async def wait_until_ready(self, cancel: CancelScope | None = None) -> bool:
        """
        Call the poll until it succeeds, retries run out, or cancel fires.

        Returns:
            True if the poll succeeded, False otherwise
        """
        for attempt in range(1, self.retry_count + 1):
            if cancel is not None and cancel.cancelled:
                return False
            if await self.poll():
                logger.debug("ready check '%s' succeeded on attempt %d", self.name, attempt)
                return True
            logger.debug("ready check '%s' attempt %d failed, retrying", self.name, attempt)
            if attempt < self.retry_count:
                await _sleep_or_cancel(self.retry_interval, cancel)
        logger.warning(
            "ready check '%s' did not succeed after %d attempts; continuing startup",
            self.name,
            self.retry_count,
        )
        return False


async def _sleep_or_cancel(delay: float, cancel: CancelScope | None) -> None:
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass  # Normal retry interval


def http_poll(url: str, timeout: float = 2.0) -> Poll:
    """
    Build a poll that GETs url and treats HTTP 200 as ready.

    Args:
        url: Health endpoint, e.g. "http://127.0.0.1:8080/health"
        timeout: Request timeout in seconds
    """

    async def poll() -> bool:
        try:
            async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug("http poll %s failed: %s", url, e)
            return False
        if response.status_code != 200:
            logger.debug("http poll %s returned status %d", url, response.status_code)
            return False
        return True

    return poll


def tcp_poll(host: str, port: int, timeout: float = 2.0) -> Poll:
    """
    Build a poll that succeeds once a TCP connection can be established.

    Args:
        host: Host to connect to
        port: Port to connect to
        timeout: Connect timeout in seconds
    """

    async def poll() -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("tcp poll %s:%d failed: %s", host, port, e)
            return False
        writer.close()
        await writer.wait_closed()
        return True

    return poll
