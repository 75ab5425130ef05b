"""
tests/conftest.py

Shared pytest fixtures used by both unit and integration test suites.
State fixtures write to pytest's tmp_path and all HTTP fixtures use
respx.mock, so no test touches the real config directory or the network.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from providers.dns_provider import DnsRecord
from repositories.state_repository import StateRepository


class FakeProvider:
    """
    In-memory DNSProvider used wherever a test needs a provider without HTTP.

    Records are keyed by (name, TYPE). Every call is appended to `calls`.
    Set `error` to make every call raise it, or `delay` to slow each call.
    """

    def __init__(self, name: str = "fake") -> None:
        self._name = name
        self.records: dict[tuple[str, str], DnsRecord] = {}
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay: float = 0.0
        self._next_id = 0

    @property
    def name(self) -> str:
        return self._name

    def seed(self, name: str, record_type: str, value: str, ttl: int = 300) -> DnsRecord:
        self._next_id += 1
        record = DnsRecord(name, record_type.upper(), value, ttl, provider=self._name, id=f"id-{self._next_id}")
        self.records[(name, record_type.upper())] = record
        return record

    async def _enter(self, call: str) -> None:
        self.calls.append(call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def get_record(self, record_name, record_type):
        await self._enter("get")
        return self.records.get((record_name, record_type.upper()))

    async def create_record(self, desired):
        await self._enter("create")
        self.seed(desired.name, desired.type, desired.value, desired.ttl)

    async def update_record(self, existing, desired):
        await self._enter("update")
        self.records[(existing.name, existing.type)] = DnsRecord(
            existing.name, existing.type, desired.value, desired.ttl, provider=self._name, id=existing.id
        )

    async def delete_record(self, existing):
        await self._enter("delete")
        self.records.pop((existing.name, existing.type), None)

    async def list_records(self):
        await self._enter("list")
        return list(self.records.values())

    async def validate(self):
        await self._enter("validate")


@pytest.fixture()
def fake_provider():
    """Factory fixture: fake_provider("cloudflare") returns a fresh FakeProvider."""
    return FakeProvider


# ---------------------------------------------------------------------------
# State fixtures: one JSON document per test under tmp_path
# ---------------------------------------------------------------------------


@pytest.fixture()
def state_file(tmp_path):
    """Path of a not-yet-existing state document, isolated per test."""
    return tmp_path / "ipfailover" / "state.json"


@pytest.fixture()
def state_repo(state_file):
    """A StateRepository backed by the per-test state_file."""
    return StateRepository(state_file)


# ---------------------------------------------------------------------------
# HTTP mock fixture: intercepts all httpx calls
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http():
    """
    Yields a respx router that intercepts all httpx.AsyncClient calls.

    No real network traffic is allowed during tests. Use this fixture
    wherever a service or client would normally make an outbound request.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# Shared httpx.AsyncClient fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
async def http_client():
    """
    Yields a real httpx.AsyncClient instance for use in tests.

    Pair with the mock_http fixture so all requests are intercepted by respx.
    The client is closed after each test.
    """
    async with httpx.AsyncClient() as client:
        yield client
