"""
services/ip_service.py

Responsibility: Fetches the current public IP address of the host machine from
a list of plain-text "what is my IP" endpoints.
Does NOT: parse DNS records, decide failover, or read config files.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging

import httpx

from exceptions import IpFetchError

logger = logging.getLogger(__name__)

# NOTE: both endpoints return the caller's public address as plain text.
DEFAULT_ENDPOINTS = ("https://ifconfig.io/ip", "https://api.ipify.org")

_USER_AGENT = "ipfailover/1.0"

# Anything longer than this is not an IP address
_MAX_BODY_SIZE = 4096


class IpService:
    """
    Fetches the host machine's current public address.

    Endpoints are tried in order; the first one returning a valid IPv4 or
    IPv6 address wins. Uses an injected httpx.AsyncClient so the service is
    fully testable without real network calls (use respx.mock in tests).

    Collaborators:
        - httpx.AsyncClient: injected; must be kept alive externally
    """

    name = "http"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoints: list[str] | tuple[str, ...] = DEFAULT_ENDPOINTS,
        request_timeout: float = 10.0,
    ) -> None:
        """
        Initialises the service with a shared HTTP client.

        Args:
            http_client: A long-lived httpx.AsyncClient instance created
                         during application startup.
            endpoints: Ordered list of IP echo URLs.
            request_timeout: Per-endpoint timeout in seconds.
        """
        if not endpoints:
            raise ValueError("at least one IP check endpoint is required")
        self._client = http_client
        self._endpoints = list(endpoints)
        self._timeout = httpx.Timeout(request_timeout, connect=min(5.0, request_timeout))

    async def get_current_address(self, timeout: float | None = None) -> str:
        """
        Returns the current public address of the host machine.

        Args:
            timeout: Optional overall deadline in seconds across all endpoints.

        Returns:
            The public IP address as a plain string, e.g. "1.2.3.4".

        Raises:
            IpFetchError: If every endpoint fails or the deadline expires.
        """
        try:
            async with asyncio.timeout(timeout):
                return await self._try_endpoints()
        except TimeoutError as exc:
            raise IpFetchError(f"IP check exceeded deadline of {timeout}s") from exc

    async def _try_endpoints(self) -> str:
        last_error: Exception | None = None

        for attempt, endpoint in enumerate(self._endpoints, start=1):
            logger.debug("Checking IP endpoint %s (attempt %d)", endpoint, attempt)
            try:
                ip = await self._check_endpoint(endpoint)
            except IpFetchError as exc:
                logger.warning("IP check failed for %s: %s", endpoint, exc)
                last_error = exc
                continue

            logger.info("Current public IP: %s (via %s)", ip, endpoint)
            return ip

        raise IpFetchError(f"all IP check endpoints failed: {last_error}") from last_error

    async def _check_endpoint(self, endpoint: str) -> str:
        try:
            response = await self._client.get(
                endpoint,
                headers={"User-Agent": _USER_AGENT},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise IpFetchError(
                f"IP provider returned status {exc.response.status_code}."
            ) from exc
        except httpx.RequestError as exc:
            raise IpFetchError(f"Could not reach IP provider ({endpoint}): {exc}") from exc

        body = response.content
        if len(body) >= _MAX_BODY_SIZE:
            raise IpFetchError(f"response body exceeds maximum size limit of {_MAX_BODY_SIZE} bytes")

        ip = body.decode("utf-8", errors="replace").strip()
        validate_ip(ip)
        return ip


def validate_ip(value: str) -> str:
    """
    Checks that value is a valid IPv4 or IPv6 address.

    Returns:
        The value unchanged.

    Raises:
        IpFetchError: If value is empty or not an IP address.
    """
    if not value:
        raise IpFetchError("empty IP address")
    try:
        ipaddress.ip_address(value)
    except ValueError as exc:
        raise IpFetchError(f"invalid IP format: {value!r}") from exc
    return value
