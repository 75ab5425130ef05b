"""
providers/http_transport.py

Responsibility: Sends one HTTP request on behalf of a DNS provider and maps
httpx failures onto DnsProviderError with the right ErrorKind.
Does NOT: parse provider payloads, retry, or decide whether a failure is retryable.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError, ErrorKind

logger = logging.getLogger(__name__)


async def send(
    client: httpx.AsyncClient,
    provider: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """
    Sends a request through the shared client and raises on non-2xx.

    Args:
        client: The long-lived httpx.AsyncClient.
        provider: Provider name used in error messages, e.g. "hetzner".
        method: HTTP verb.
        url: Full endpoint URL.
        **kwargs: Passed through to httpx.AsyncClient.request().

    Returns:
        The successful httpx.Response.

    Raises:
        DnsProviderError: kind HTTP with status_code for status errors,
            kind TIMEOUT for timeouts, kind NETWORK for other transport errors.
    """
    logger.debug("%s %s (%s)", method, url, provider)
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DnsProviderError(
            f"{provider} API error {exc.response.status_code} for {method} {url}: "
            f"{exc.response.text[:512]}",
            provider=provider,
            status_code=exc.response.status_code,
            kind=ErrorKind.HTTP,
        ) from exc
    except httpx.TimeoutException as exc:
        raise DnsProviderError(
            f"Timed out calling {provider} API ({method} {url}): {exc}",
            provider=provider,
            kind=ErrorKind.TIMEOUT,
        ) from exc
    except httpx.RequestError as exc:
        raise DnsProviderError(
            f"Network error calling {provider} API ({method} {url}): {exc}",
            provider=provider,
            kind=ErrorKind.NETWORK,
        ) from exc

    return response


def json_body(response: httpx.Response, provider: str) -> Any:
    """
    Decodes a JSON response body.

    Raises:
        DnsProviderError: kind PROVIDER if the body is not valid JSON.
    """
    try:
        return response.json()
    except ValueError as exc:
        raise DnsProviderError(
            f"{provider} API returned a non-JSON body (status {response.status_code})",
            provider=provider,
        ) from exc
