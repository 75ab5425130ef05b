"""
tests/unit/test_health_service.py

Unit tests for services/health_service.py.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from exceptions import IpFetchError, StateStoreError
from services.health_service import HealthService, HealthStatus


def _ip(address="203.0.113.10", error=None):
    ip = AsyncMock()
    if error is not None:
        ip.get_current_address.side_effect = error
    else:
        ip.get_current_address.return_value = address
    return ip


@pytest.mark.asyncio
async def test_ok_without_state_file(state_repo):
    report = await HealthService(_ip(), state_repo).check()

    assert report.status is HealthStatus.OK
    assert report.healthy is True
    assert report.components == {"ip_check": "ok (203.0.113.10)", "state": "ok (no state yet)"}


@pytest.mark.asyncio
async def test_ok_with_state_file(state_repo):
    await state_repo.set_last_applied_address("203.0.113.10")

    report = await HealthService(_ip(), state_repo).check()

    assert report.status is HealthStatus.OK
    assert report.components["state"] == "ok"


@pytest.mark.asyncio
async def test_ip_failure_is_unhealthy(state_repo):
    report = await HealthService(_ip(error=IpFetchError("all endpoints failed")), state_repo).check()

    assert report.status is HealthStatus.UNHEALTHY
    assert report.healthy is False
    assert report.components["ip_check"].startswith("error:")


@pytest.mark.asyncio
async def test_corrupted_state_is_degraded_by_default(state_repo, state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text("{{{", encoding="utf-8")

    report = await HealthService(_ip(), state_repo).check()

    assert report.status is HealthStatus.DEGRADED
    assert report.healthy is True
    assert report.components["state"].startswith("corrupted:")


@pytest.mark.asyncio
async def test_corrupted_state_can_be_fatal(state_repo, state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text("{{{", encoding="utf-8")

    report = await HealthService(_ip(), state_repo, fail_on_corrupt_state=True).check()

    assert report.status is HealthStatus.UNHEALTHY


@pytest.mark.asyncio
async def test_unreadable_state_is_unhealthy():
    repo = AsyncMock()
    repo.snapshot.side_effect = StateStoreError("snapshot", "permission denied")

    report = await HealthService(_ip(), repo).check()

    assert report.status is HealthStatus.UNHEALTHY
    assert report.components["state"].startswith("error:")


@pytest.mark.asyncio
async def test_report_to_dict(state_repo):
    report = await HealthService(_ip(), state_repo, check_timeout=2.0).check()

    payload = report.to_dict()

    assert payload["status"] == "ok"
    assert set(payload["components"]) == {"ip_check", "state"}
    assert "timestamp" in payload
