"""
services/failover_service.py

Responsibility: Decides whether the primary or the secondary address should
be authoritative, based on an active probe of the primary and the persisted
consecutive-failure counter.
Does NOT: detect the public IP, call DNS providers, or write the applied address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from config import StateFailureStrategy
from exceptions import StateStoreError
from repositories.state_repository import StateRepository
from services.probe_service import ProbeService

logger = logging.getLogger(__name__)

ROLE_PRIMARY = "primary"
ROLE_SECONDARY = "secondary"


@dataclass(frozen=True)
class FailoverDecision:
    """Result of one decision: the address to publish and why."""

    address: str
    role: str
    failure_count: int
    primary_reachable: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "address": self.address,
            "role": self.role,
            "failure_count": self.failure_count,
            "primary_reachable": self.primary_reachable,
        }


class FailoverService:
    """
    Failover decision engine.

    Each call to decide() probes the primary exactly once. A successful probe
    resets the persisted failure counter and selects the primary. A failed
    probe increments the counter; the secondary is selected once the counter
    exceeds failover_retries, i.e. after failover_retries + 1 consecutive
    failures. Failing back to the primary needs a single successful probe.

    Collaborators:
        - StateRepository: persisted consecutive failure counter
        - ProbeService: TCP reachability check of the primary
    """

    def __init__(
        self,
        state_repo: StateRepository,
        prober: ProbeService,
        primary_ip: str,
        secondary_ip: str,
        failover_retries: int = 3,
        probe_timeout: float = 3.0,
        strategy: StateFailureStrategy = StateFailureStrategy.CONTINUE_WITH_WARNING,
    ) -> None:
        """
        Args:
            state_repo: Store holding the primary failure counter.
            prober: Reachability prober.
            primary_ip: Address preferred while the primary is reachable.
            secondary_ip: Address used after repeated primary failures.
            failover_retries: Consecutive failures tolerated before failover.
            probe_timeout: Deadline in seconds for each probe.
            strategy: Behaviour when the failure counter cannot be persisted.
        """
        if failover_retries < 0:
            raise ValueError(f"failover_retries must be >= 0, got {failover_retries}")
        self._state = state_repo
        self._prober = prober
        self._primary = primary_ip
        self._secondary = secondary_ip
        self._retries = failover_retries
        self._probe_timeout = probe_timeout
        self._strategy = StateFailureStrategy(strategy)

        # Fallback counter used only while the state store is unusable
        self._last_known_count = 0
        self._last_role: str | None = None

    @property
    def failover_retries(self) -> int:
        return self._retries

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def decide(self) -> FailoverDecision:
        """
        Probes the primary and returns the address that should be live.

        Returns:
            A FailoverDecision whose address is always either the primary or
            the secondary address.

        Raises:
            StateStoreError: Only with the fail_fast strategy, when the
                             failure counter cannot be read or written.
        """
        reachable = await self._prober.probe(self._primary, self._probe_timeout)

        if reachable:
            count = await self._record_success()
            decision = FailoverDecision(self._primary, ROLE_PRIMARY, count, True)
        else:
            count, forced = await self._record_failure()
            use_secondary = forced or count > self._retries
            decision = FailoverDecision(
                self._secondary if use_secondary else self._primary,
                ROLE_SECONDARY if use_secondary else ROLE_PRIMARY,
                count,
                False,
            )
            logger.warning(
                "Primary %s unreachable (consecutive failures: %d, tolerated: %d).",
                self._primary,
                count,
                self._retries,
            )

        self._log_transition(decision)
        return decision

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _record_success(self) -> int:
        try:
            await self._state.reset_primary_failure_count()
        except StateStoreError as exc:
            self._handle_state_failure(exc)
        self._last_known_count = 0
        return 0

    async def _record_failure(self) -> tuple[int, bool]:
        """Returns (failure count, whether failover is forced)."""
        try:
            count = await self._state.increment_primary_failure_count()
        except StateStoreError as exc:
            self._handle_state_failure(exc)
            count = self._last_known_count + 1
            self._last_known_count = count
            return count, self._strategy is StateFailureStrategy.IMMEDIATE_FAILOVER

        self._last_known_count = count
        return count, False

    def _handle_state_failure(self, exc: StateStoreError) -> None:
        if self._strategy is StateFailureStrategy.FAIL_FAST:
            logger.error("Failure counter unavailable, aborting decision: %s", exc)
            raise exc
        logger.warning(
            "Failure counter unavailable, continuing with in-memory count (%s): %s",
            self._strategy.value,
            exc,
        )

    def _log_transition(self, decision: FailoverDecision) -> None:
        if decision.role != self._last_role:
            if decision.role == ROLE_SECONDARY:
                logger.warning("Failing over to secondary address %s.", decision.address)
            elif self._last_role is not None:
                logger.info("Primary %s reachable again; failing back.", decision.address)
        self._last_role = decision.role
