"""
tests/unit/test_ip_service.py

Unit tests for services/ip_service.py.
Verifies endpoint fallback, address validation and typed error raising.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from exceptions import IpFetchError
from services.ip_service import IpService, validate_ip

_FIRST = "https://ip-one.example/ip"
_SECOND = "https://ip-two.example/ip"


@pytest.mark.asyncio
async def test_get_current_address_returns_ip(mock_http, http_client):
    """IpService must return the plain-text IP from the first endpoint."""
    mock_http.get(_FIRST).mock(return_value=httpx.Response(200, text="203.0.113.7"))

    service = IpService(http_client, endpoints=[_FIRST, _SECOND])

    assert await service.get_current_address() == "203.0.113.7"


@pytest.mark.asyncio
async def test_get_current_address_strips_whitespace(mock_http, http_client):
    mock_http.get(_FIRST).mock(return_value=httpx.Response(200, text="  203.0.113.7\n"))

    service = IpService(http_client, endpoints=[_FIRST])

    assert await service.get_current_address() == "203.0.113.7"


@pytest.mark.asyncio
async def test_accepts_ipv6(mock_http, http_client):
    mock_http.get(_FIRST).mock(return_value=httpx.Response(200, text="2001:db8::1"))

    service = IpService(http_client, endpoints=[_FIRST])

    assert await service.get_current_address() == "2001:db8::1"


@pytest.mark.asyncio
async def test_falls_back_to_next_endpoint_on_error(mock_http, http_client):
    """A failing endpoint is skipped and the next one is tried."""
    mock_http.get(_FIRST).mock(side_effect=httpx.ConnectError("refused"))
    mock_http.get(_SECOND).mock(return_value=httpx.Response(200, text="198.51.100.4"))

    service = IpService(http_client, endpoints=[_FIRST, _SECOND])

    assert await service.get_current_address() == "198.51.100.4"


@pytest.mark.asyncio
async def test_falls_back_on_invalid_body(mock_http, http_client):
    mock_http.get(_FIRST).mock(return_value=httpx.Response(200, text="<html>oops</html>"))
    mock_http.get(_SECOND).mock(return_value=httpx.Response(200, text="198.51.100.4"))

    service = IpService(http_client, endpoints=[_FIRST, _SECOND])

    assert await service.get_current_address() == "198.51.100.4"


@pytest.mark.asyncio
async def test_raises_when_all_endpoints_fail(mock_http, http_client):
    """IpService must raise IpFetchError when every upstream fails."""
    mock_http.get(_FIRST).mock(return_value=httpx.Response(503))
    mock_http.get(_SECOND).mock(side_effect=httpx.ConnectError("down"))

    service = IpService(http_client, endpoints=[_FIRST, _SECOND])

    with pytest.raises(IpFetchError):
        await service.get_current_address()


@pytest.mark.asyncio
async def test_raises_on_oversized_body(mock_http, http_client):
    mock_http.get(_FIRST).mock(return_value=httpx.Response(200, text="1" * 5000))

    service = IpService(http_client, endpoints=[_FIRST])

    with pytest.raises(IpFetchError):
        await service.get_current_address()


@pytest.mark.asyncio
async def test_overall_deadline(http_client, monkeypatch):
    async def slow(endpoint):
        await asyncio.sleep(1.0)
        return "203.0.113.7"

    service = IpService(http_client, endpoints=[_FIRST])
    monkeypatch.setattr(service, "_check_endpoint", slow)

    with pytest.raises(IpFetchError, match="deadline"):
        await service.get_current_address(timeout=0.05)


def test_requires_at_least_one_endpoint():
    with pytest.raises(ValueError):
        IpService(http_client=None, endpoints=[])


@pytest.mark.parametrize("value", ["", "not-an-ip", "256.1.1.1", "1.2.3"])
def test_validate_ip_rejects_garbage(value):
    with pytest.raises(IpFetchError):
        validate_ip(value)


def test_validate_ip_returns_value():
    assert validate_ip("192.0.2.1") == "192.0.2.1"
