"""
services/update_service.py

Responsibility: Runs one detection, decision and reconciliation cycle and
persists its outcome. Called by the scheduler on every tick.
Does NOT: schedule itself, make HTTP calls directly, or implement retry policy.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from db.models import PersistedState
from exceptions import (
    IpFailoverError,
    IpFetchError,
    ReconcileAggregateError,
    RecordFailure,
    StateStoreError,
    is_retryable,
)
from providers.registry import RecordBinding
from repositories.state_repository import StateRepository
from services.failover_service import FailoverDecision, FailoverService
from services.ip_service import IpService
from services.reconcile_service import ReconcileService
from services.stats_service import StatsService

logger = logging.getLogger(__name__)


class CycleStatus(str, Enum):
    DETECTION_FAILED = "detection_failed"
    DECISION_FAILED = "decision_failed"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class CycleReport:
    """Outcome of a single update cycle."""

    status: CycleStatus
    detected_address: str = ""
    decision: FailoverDecision | None = None
    updated: list[str] = field(default_factory=list)
    error: IpFailoverError | None = None

    @property
    def failures(self) -> list[RecordFailure]:
        if isinstance(self.error, ReconcileAggregateError):
            return self.error.failures
        return []

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "detected_address": self.detected_address,
            "decision": self.decision.to_dict() if self.decision else None,
            "updated": list(self.updated),
            "error": str(self.error) if self.error else None,
            "failures": [f.to_dict() for f in self.failures],
        }


class UpdateService:
    """
    Orchestrates one update cycle across every configured record binding.

    A cycle detects the public address, asks the decision engine for the
    target address, reconciles each record that has not yet converged to
    that target, and persists the result. Per-record failures never abort
    the cycle: they are aggregated into one ReconcileAggregateError carried
    on the returned CycleReport.

    Records are tracked individually in the state document, so a record that
    failed while others succeeded is retried on later cycles even though
    the global last applied address has already advanced.

    Collaborators:
        - IpService: detects the current public address
        - FailoverService: picks the target address
        - ReconcileService: converges one record at one provider
        - StateRepository: last applied address and per-record state
        - StatsService: in-memory counters
    """

    def __init__(
        self,
        ip_service: IpService,
        failover_service: FailoverService,
        reconcile_service: ReconcileService,
        state_repo: StateRepository,
        stats_service: StatsService,
        bindings: list[RecordBinding],
        check_timeout: float | None = None,
        provider_timeout: float | None = None,
    ) -> None:
        """
        Args:
            ip_service: Public address detector.
            failover_service: Decision engine.
            reconcile_service: Provider-agnostic reconciler.
            state_repo: Durable state store.
            stats_service: Metrics collector.
            bindings: (record, provider) pairs built at startup.
            check_timeout: Overall deadline in seconds for IP detection.
            provider_timeout: Deadline in seconds for one record's reconciliation.
        """
        self._ip = ip_service
        self._failover = failover_service
        self._reconciler = reconcile_service
        self._state = state_repo
        self._stats = stats_service
        self._bindings = list(bindings)
        self._check_timeout = check_timeout
        self._provider_timeout = provider_timeout

        self._in_flight: asyncio.Task | None = None
        self._last_report: CycleReport | None = None

    @property
    def bindings(self) -> list[RecordBinding]:
        return list(self._bindings)

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """
        Runs a single detection/decision/reconciliation cycle.

        Returns:
            A CycleReport describing what happened. Cycle-level errors are
            reported, not raised.
        """
        report = await self._run_cycle()
        self._last_report = report
        return report

    async def run_scheduled(self) -> CycleReport:
        """
        Entry point for the scheduler job; remembers the running task so
        shutdown can cancel a cycle that is still in flight.
        """
        self._in_flight = asyncio.current_task()
        try:
            return await self.run_cycle()
        finally:
            self._in_flight = None

    async def cancel_in_flight(self) -> None:
        """Cancels the running cycle, if any, and waits for it to unwind."""
        task = self._in_flight
        if task is None or task.done() or task is asyncio.current_task():
            return
        logger.info("Cancelling in-flight update cycle.")
        task.cancel()
        await asyncio.wait({task})

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _run_cycle(self) -> CycleReport:
        # 1. Detect
        self._stats.record_check()
        try:
            address = await self._ip.get_current_address(timeout=self._check_timeout)
        except IpFetchError as exc:
            self._stats.record_check_error()
            logger.error("IP detection failed; skipping this cycle: %s", exc)
            return CycleReport(CycleStatus.DETECTION_FAILED, error=exc)

        self._stats.set_current_address(address)
        try:
            await self._state.set_last_check_info(address)
        except StateStoreError as exc:
            logger.warning("Could not persist last check info: %s", exc)

        # 2. Decide
        try:
            decision = await self._failover.decide()
        except StateStoreError as exc:
            logger.error("Failover decision aborted: %s", exc)
            return CycleReport(CycleStatus.DECISION_FAILED, detected_address=address, error=exc)

        target = decision.address
        state = await self._load_state()
        pending = [b for b in self._bindings if state.applied_records.get(b.key) != target]

        if state.last_applied_address == target and not pending:
            logger.info("Target address %s already applied (%s); nothing to do.", target, decision.role)
            return CycleReport(CycleStatus.UNCHANGED, detected_address=address, decision=decision)

        logger.info(
            "Applying %s address %s to %d of %d record(s) (detected %s, last applied %s).",
            decision.role,
            target,
            len(pending),
            len(self._bindings),
            address,
            state.last_applied_address or "none",
        )

        # 3. Reconcile
        succeeded, failures = await self._reconcile_all(pending, target)

        error: IpFailoverError | None = None
        if failures:
            error = ReconcileAggregateError(failures)
            logger.error(
                "%s: %s",
                error,
                "; ".join(f"{f.provider}:{f.record} ({'retryable' if f.retryable else 'permanent'}) {f.message}"
                          for f in failures),
            )

        if pending and not succeeded:
            logger.warning("No record converged to %s; state left unchanged for retry.", target)
            return CycleReport(CycleStatus.FAILED, detected_address=address, decision=decision, error=error)

        # 4. Persist
        state_error = await self._persist(state, target, succeeded)
        status = CycleStatus.PARTIAL if failures else CycleStatus.UPDATED
        return CycleReport(
            status,
            detected_address=address,
            decision=decision,
            updated=list(succeeded),
            error=error or state_error,
        )

    async def _load_state(self) -> PersistedState:
        try:
            return await self._state.snapshot()
        except StateStoreError as exc:
            # NOTE: unknown state means every record is treated as pending.
            logger.warning("Could not read state, treating all records as pending: %s", exc)
            return PersistedState()

    async def _reconcile_all(
        self,
        pending: list[RecordBinding],
        target: str,
    ) -> tuple[dict[str, str], list[RecordFailure]]:
        succeeded: dict[str, str] = {}
        failures: list[RecordFailure] = []

        for binding in pending:
            provider_name = binding.provider.name
            record_name = binding.record.name
            try:
                await self._reconciler.reconcile(
                    binding.provider,
                    binding.desired(target),
                    timeout=self._provider_timeout,
                )
            except IpFailoverError as exc:
                self._stats.record_error(provider_name, record_name)
                failures.append(
                    RecordFailure(
                        provider=provider_name,
                        record=record_name,
                        message=str(exc),
                        retryable=is_retryable(exc),
                    )
                )
                continue

            self._stats.record_update(provider_name, record_name)
            succeeded[binding.key] = target

        return succeeded, failures

    async def _persist(
        self,
        state: PersistedState,
        target: str,
        succeeded: dict[str, str],
    ) -> StateStoreError | None:
        try:
            await self._state.set_applied_records(succeeded)
            if state.last_applied_address != target:
                written = await self._state.set_last_applied_address(target)
                self._stats.set_last_change(written.last_change_time)
        except StateStoreError as exc:
            logger.error("DNS updated to %s but state could not be saved: %s", target, exc)
            return exc
        return None
