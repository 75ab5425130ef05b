"""
services/probe_service.py

Responsibility: Checks whether a candidate address accepts a TCP connection
within a bounded time.
Does NOT: retry, read or send payload, or keep any state between probes.
"""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

_DEFAULT_PORT = 80


class ProbeService:
    """
    Active reachability prober used by FailoverService.

    A probe is a single TCP connect to (address, port). Success means the
    handshake completed inside the timeout; everything else is a failure.
    Retry policy belongs to the caller.
    """

    def __init__(self, port: int = _DEFAULT_PORT) -> None:
        """
        Args:
            port: TCP port to connect to on the probed address.
        """
        if not 0 < port < 65536:
            raise ValueError(f"probe port out of range: {port}")
        self._port = port

    @property
    def port(self) -> int:
        return self._port

    async def probe(self, address: str, timeout: float) -> bool:
        """
        Attempts one TCP connection to the address.

        Args:
            address: IPv4 or IPv6 address to probe.
            timeout: Hard deadline in seconds for the whole attempt.

        Returns:
            True if the connection was established, False otherwise.

        Raises:
            ValueError: If timeout is not positive.
        """
        if timeout <= 0:
            raise ValueError(f"probe timeout must be positive, got {timeout}")

        try:
            async with asyncio.timeout(timeout):
                _, writer = await asyncio.open_connection(address, self._port)
        except (OSError, TimeoutError) as exc:
            logger.debug("Probe of %s:%d failed: %r", address, self._port, exc)
            return False

        writer.close()
        try:
            async with asyncio.timeout(timeout):
                await writer.wait_closed()
        except (OSError, TimeoutError):
            # The connection already proved reachability.
            pass

        logger.debug("Probe of %s:%d succeeded.", address, self._port)
        return True
