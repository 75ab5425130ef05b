"""
tests/unit/test_reconcile_service.py

Unit tests for services/reconcile_service.py against the in-memory
FakeProvider from conftest.py.
"""

from __future__ import annotations

import pytest

from exceptions import DnsProviderError, ErrorKind, InvalidRecordError
from providers.dns_provider import DNSProvider, DnsRecord
from services.reconcile_service import ReconcileService


def _desired(value="203.0.113.10", record_type="A"):
    return DnsRecord(name="home.example.com", type=record_type, value=value, ttl=300)


def test_fake_provider_satisfies_protocol(fake_provider):
    assert isinstance(fake_provider(), DNSProvider)


@pytest.mark.asyncio
async def test_reconcile_creates_missing_record(fake_provider):
    provider = fake_provider()

    await ReconcileService().reconcile(provider, _desired())

    assert provider.calls == ["get", "create"]
    assert provider.records[("home.example.com", "A")].value == "203.0.113.10"


@pytest.mark.asyncio
async def test_reconcile_updates_existing_record(fake_provider):
    provider = fake_provider()
    provider.seed("home.example.com", "A", "198.51.100.20")

    await ReconcileService().reconcile(provider, _desired())

    assert provider.calls == ["get", "update"]
    assert provider.records[("home.example.com", "A")].value == "203.0.113.10"
    assert len(provider.records) == 1


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(fake_provider):
    provider = fake_provider()
    service = ReconcileService()

    await service.reconcile(provider, _desired())
    first = dict(provider.records)
    await service.reconcile(provider, _desired())

    assert provider.records.keys() == first.keys()
    assert provider.records[("home.example.com", "A")].value == "203.0.113.10"
    assert provider.calls == ["get", "create", "get", "update"]


@pytest.mark.asyncio
async def test_reconcile_leaves_other_types_alone(fake_provider):
    provider = fake_provider()
    provider.seed("home.example.com", "AAAA", "2001:db8::1")

    await ReconcileService().reconcile(provider, _desired())

    assert provider.records[("home.example.com", "AAAA")].value == "2001:db8::1"
    assert provider.records[("home.example.com", "A")].value == "203.0.113.10"


@pytest.mark.asyncio
@pytest.mark.parametrize("record_type", ["", "  "])
async def test_reconcile_requires_type(fake_provider, record_type):
    provider = fake_provider()

    with pytest.raises(InvalidRecordError):
        await ReconcileService().reconcile(provider, _desired(record_type=record_type))

    assert provider.calls == []


@pytest.mark.asyncio
async def test_reconcile_binds_provider_error_to_record(fake_provider):
    provider = fake_provider("cloudflare")
    provider.error = DnsProviderError("HTTP 500", kind=ErrorKind.HTTP, status_code=500)

    with pytest.raises(DnsProviderError) as exc_info:
        await ReconcileService().reconcile(provider, _desired())

    assert exc_info.value.provider == "cloudflare"
    assert exc_info.value.record == "home.example.com"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_reconcile_wraps_malformed_payload_error(fake_provider):
    provider = fake_provider("cloudflare")
    provider.error = KeyError("id")

    with pytest.raises(DnsProviderError) as exc_info:
        await ReconcileService().reconcile(provider, _desired())

    assert exc_info.value.provider == "cloudflare"
    assert exc_info.value.record == "home.example.com"
    assert exc_info.value.kind is ErrorKind.PROVIDER
    assert isinstance(exc_info.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_remove_wraps_malformed_payload_error(fake_provider):
    provider = fake_provider("namecheap")
    provider.error = ValueError("invalid literal for int() with base 10: 'abc'")

    with pytest.raises(DnsProviderError, match="ValueError"):
        await ReconcileService().remove(provider, "home.example.com", "A")


@pytest.mark.asyncio
async def test_reconcile_deadline_becomes_timeout_error(fake_provider):
    provider = fake_provider()
    provider.delay = 1.0

    with pytest.raises(DnsProviderError) as exc_info:
        await ReconcileService().reconcile(provider, _desired(), timeout=0.05)

    assert exc_info.value.kind is ErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_default_timeout_is_used(fake_provider):
    provider = fake_provider()
    provider.delay = 1.0

    with pytest.raises(DnsProviderError):
        await ReconcileService(default_timeout=0.05).reconcile(provider, _desired())


@pytest.mark.asyncio
async def test_remove_deletes_existing_record(fake_provider):
    provider = fake_provider()
    provider.seed("home.example.com", "A", "203.0.113.10")

    removed = await ReconcileService().remove(provider, "home.example.com", "A")

    assert removed is True
    assert provider.records == {}


@pytest.mark.asyncio
async def test_remove_absent_record_succeeds(fake_provider):
    provider = fake_provider()

    removed = await ReconcileService().remove(provider, "home.example.com", "A")

    assert removed is False
    assert provider.calls == ["get"]


@pytest.mark.asyncio
async def test_remove_requires_type(fake_provider):
    with pytest.raises(InvalidRecordError):
        await ReconcileService().remove(fake_provider(), "home.example.com", "")
