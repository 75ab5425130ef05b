"""
dependencies.py

Responsibility: Declares all FastAPI Depends() provider functions for the
services and repositories built during the application lifespan.
Does NOT: construct services, contain business logic, or define routes.
"""

from __future__ import annotations

from fastapi import Request

from repositories.state_repository import StateRepository
from services.health_service import HealthService
from services.stats_service import StatsService
from services.update_service import UpdateService

# ---------------------------------------------------------------------------
# Repository providers
# ---------------------------------------------------------------------------


def get_state_repo(request: Request) -> StateRepository:
    """
    Provides the process-wide StateRepository.

    There must be exactly one instance per state file so its lock covers
    every reader and writer.
    """
    return request.app.state.state_repo


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats_service


def get_health_service(request: Request) -> HealthService:
    return request.app.state.health_service


def get_update_service(request: Request) -> UpdateService:
    return request.app.state.update_service
