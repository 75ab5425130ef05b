"""
app.py

Responsibility: Builds the FastAPI application, wires every service during the
lifespan, validates providers, and starts/stops the scheduler.
Does NOT: parse the command line, configure logging, or contain business logic.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from config import AppConfig
from exceptions import ConfigurationError, DnsProviderError
from providers.registry import RecordBinding, build_bindings, unique_providers
from repositories.state_repository import StateRepository
from routes.health_routes import router as health_router
from scheduler import create_scheduler
from services.failover_service import FailoverService
from services.health_service import HealthService
from services.ip_service import IpService
from services.probe_service import ProbeService
from services.reconcile_service import ReconcileService
from services.stats_service import StatsService
from services.update_service import UpdateService

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def create_http_client(config: AppConfig) -> httpx.AsyncClient:
    """
    Creates the long-lived httpx.AsyncClient shared by IP detection and all
    HTTP-based providers.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.provider_timeout, connect=min(5.0, config.provider_timeout)),
        headers={"User-Agent": f"ipfailover/{APP_VERSION}"},
        follow_redirects=True,
    )


def build_health_service(
    config: AppConfig,
    http_client: httpx.AsyncClient,
    state_repo: StateRepository | None = None,
) -> HealthService:
    """
    Builds the readiness checker on its own; used by the lifespan and by the
    --health-check command-line mode.
    """
    ip_service = IpService(http_client, endpoints=config.check_endpoints, request_timeout=config.check_timeout)
    return HealthService(
        ip_service=ip_service,
        state_repo=state_repo or StateRepository(config.state_file),
        fail_on_corrupt_state=config.health.fail_on_corrupt_state,
        check_timeout=config.check_timeout,
    )


async def validate_providers(bindings: list[RecordBinding], timeout: float) -> None:
    """
    Validates each distinct provider once (credentials, zone access).

    Raises:
        ConfigurationError: On the first provider that fails validation.
    """
    for provider in unique_providers(bindings):
        try:
            async with asyncio.timeout(timeout):
                await provider.validate()
        except DnsProviderError as exc:
            raise ConfigurationError(f"dns.{provider.name}", provider.name, f"validation failed: {exc}") from exc
        except TimeoutError as exc:
            raise ConfigurationError(
                f"dns.{provider.name}", provider.name, f"validation timed out after {timeout:.1f}s"
            ) from exc
        except Exception as exc:
            raise ConfigurationError(
                f"dns.{provider.name}", provider.name, f"validation failed: unexpected {type(exc).__name__}: {exc}"
            ) from exc
        logger.info("Provider %s validated.", provider.name)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    config: AppConfig,
    *,
    http_client: httpx.AsyncClient | None = None,
    bindings: list[RecordBinding] | None = None,
    start_scheduler: bool = True,
    validate_providers_on_startup: bool = True,
) -> FastAPI:
    """
    Creates the FastAPI application for the given config.

    Args:
        config: The validated application config.
        http_client: Optional pre-built client; when omitted the lifespan
                     creates one and closes it on shutdown.
        bindings: Optional pre-built record bindings (tests inject fakes).
        start_scheduler: Whether to start the periodic update job.
        validate_providers_on_startup: Whether to call validate() on every
                                       provider before serving.

    Returns:
        A FastAPI instance whose lifespan owns every long-lived service.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owns_client = http_client is None
        client = http_client or create_http_client(config)

        try:
            state_repo = StateRepository(config.state_file)
            stats_service = StatsService()
            ip_service = IpService(client, endpoints=config.check_endpoints, request_timeout=config.check_timeout)
            record_bindings = bindings if bindings is not None else build_bindings(config, client)

            if validate_providers_on_startup:
                await validate_providers(record_bindings, config.provider_timeout)

            failover_service = FailoverService(
                state_repo=state_repo,
                prober=ProbeService(config.probe_port),
                primary_ip=config.primary_ip,
                secondary_ip=config.secondary_ip,
                failover_retries=config.failover_retries,
                probe_timeout=config.probe_timeout,
                strategy=config.state_failure_strategy,
            )
            update_service = UpdateService(
                ip_service=ip_service,
                failover_service=failover_service,
                reconcile_service=ReconcileService(config.provider_timeout),
                state_repo=state_repo,
                stats_service=stats_service,
                bindings=record_bindings,
                check_timeout=config.check_timeout,
                provider_timeout=config.provider_timeout,
            )
            health_service = build_health_service(config, client, state_repo)
        except BaseException:
            if owns_client:
                await client.aclose()
            raise

        app.state.config = config
        app.state.http_client = client
        app.state.state_repo = state_repo
        app.state.stats_service = stats_service
        app.state.update_service = update_service
        app.state.health_service = health_service

        scheduler = None
        if start_scheduler:
            scheduler = create_scheduler(update_service, config.poll_interval)
            scheduler.start()
        app.state.scheduler = scheduler

        logger.info(
            "ipfailover %s started: primary %s, secondary %s, %d record(s), state file %s.",
            APP_VERSION,
            config.primary_ip,
            config.secondary_ip,
            len(record_bindings),
            config.state_file,
        )

        try:
            yield
        finally:
            logger.info("Shutting down.")
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            await update_service.cancel_in_flight()
            if owns_client:
                await client.aclose()

    app = FastAPI(title="ipfailover", version=APP_VERSION, lifespan=lifespan)
    app.include_router(health_router)
    return app
