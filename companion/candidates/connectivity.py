from __future__ import annotations

import asyncio
import socket
import time
from collections.abc import Callable

import structlog

logger = structlog.get_logger()

PROBE_HOST = "google.com"
PROBE_TIMEOUT_S = 5.0
CACHE_TTL_S = 60.0


class ConnectivityProbe:
    """Cached internet reachability check based on a DNS lookup.

    One instance is shared by every generator that needs the network, so the
    lookup runs at most once per TTL no matter how many of them ask.
    """

    def __init__(
        self,
        *,
        host: str = PROBE_HOST,
        timeout_s: float = PROBE_TIMEOUT_S,
        ttl_s: float = CACHE_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._host = host
        self._timeout_s = timeout_s
        self._ttl_s = ttl_s
        self._clock = clock
        self._cached: tuple[bool, float] | None = None

    async def check(self) -> bool:
        """Uncached lookup. False on any resolver error or timeout."""
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.getaddrinfo(self._host, None, type=socket.SOCK_STREAM),
                timeout=self._timeout_s,
            )
        except (OSError, TimeoutError) as e:
            logger.info("connectivity_check_failed", host=self._host, error=str(e))
            return False
        return True

    async def is_online(self) -> bool:
        now = self._clock()
        if self._cached is not None:
            status, checked_at = self._cached
            if now - checked_at < self._ttl_s:
                return status
        status = await self.check()
        self._cached = (status, now)
        return status
