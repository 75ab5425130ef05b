"""
services/health_service.py

Responsibility: Runs the readiness check: one IP detection and one state read.
Does NOT: serve HTTP, probe the primary, or modify the state document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from exceptions import IpFetchError, StateCorruptedError, StateStoreError
from repositories.state_repository import StateRepository
from services.ip_service import IpService

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthReport:
    status: HealthStatus
    components: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def healthy(self) -> bool:
        return self.status is not HealthStatus.UNHEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "components": dict(self.components),
        }


class HealthService:
    """
    Readiness check shared by GET /ready and the --health-check CLI flag.

    A corrupted state document only degrades the service unless
    fail_on_corrupt_state is set: the update cycle self-heals it on the
    next write.

    Collaborators:
        - IpService: one detection round
        - StateRepository: one strict read
    """

    def __init__(
        self,
        ip_service: IpService,
        state_repo: StateRepository,
        fail_on_corrupt_state: bool = False,
        check_timeout: float | None = None,
    ) -> None:
        self._ip = ip_service
        self._state = state_repo
        self._fail_on_corrupt = fail_on_corrupt_state
        self._check_timeout = check_timeout

    async def check(self) -> HealthReport:
        components: dict[str, str] = {}
        statuses: list[HealthStatus] = []

        try:
            address = await self._ip.get_current_address(timeout=self._check_timeout)
            components["ip_check"] = f"ok ({address})"
            statuses.append(HealthStatus.OK)
        except IpFetchError as exc:
            logger.warning("Health check: IP detection failed: %s", exc)
            components["ip_check"] = f"error: {exc}"
            statuses.append(HealthStatus.UNHEALTHY)

        try:
            await self._state.snapshot()
            components["state"] = "ok" if self._state.file_path.exists() else "ok (no state yet)"
            statuses.append(HealthStatus.OK)
        except StateCorruptedError as exc:
            logger.warning("Health check: state document corrupted: %s", exc)
            components["state"] = f"corrupted: {exc}"
            statuses.append(HealthStatus.UNHEALTHY if self._fail_on_corrupt else HealthStatus.DEGRADED)
        except StateStoreError as exc:
            logger.warning("Health check: state unreadable: %s", exc)
            components["state"] = f"error: {exc}"
            statuses.append(HealthStatus.UNHEALTHY)

        if HealthStatus.UNHEALTHY in statuses:
            status = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.OK

        return HealthReport(status=status, components=components)
