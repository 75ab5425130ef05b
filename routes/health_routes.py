"""
routes/health_routes.py

Responsibility: Liveness, readiness and read-only status endpoints.
Does NOT: trigger update cycles, mutate state, or call DNS providers.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import get_health_service, get_state_repo, get_stats_service, get_update_service
from exceptions import StateCorruptedError, StateStoreError
from repositories.state_repository import StateRepository
from services.health_service import HealthService
from services.stats_service import StatsService
from services.update_service import UpdateService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: the process is up and serving requests."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(health_service: HealthService = Depends(get_health_service)) -> JSONResponse:
    """
    Readiness probe: one IP detection round and one state read.

    Returns:
        200 with the component report when healthy or degraded, 503 otherwise.
    """
    report = await health_service.check()
    return JSONResponse(report.to_dict(), status_code=200 if report.healthy else 503)


@router.get("/api/stats")
async def stats(
    stats_service: StatsService = Depends(get_stats_service),
    update_service: UpdateService = Depends(get_update_service),
) -> dict[str, Any]:
    """Returns the in-memory counters plus the outcome of the last cycle."""
    payload = stats_service.snapshot()
    last = update_service.last_report
    payload["last_cycle"] = last.to_dict() if last else None
    return payload


@router.get("/api/state")
async def state(state_repo: StateRepository = Depends(get_state_repo)) -> JSONResponse:
    """
    Returns the persisted state document.

    409 when the document is corrupted, 503 when it cannot be read at all.
    """
    try:
        snapshot = await state_repo.snapshot()
    except StateCorruptedError as exc:
        logger.warning("State requested but document is corrupted: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=409)
    except StateStoreError as exc:
        logger.warning("State requested but store is unavailable: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=503)
    return JSONResponse(snapshot.model_dump(mode="json"))
