"""
services/stats_service.py

Responsibility: Collects in-memory counters and gauges about IP checks and
DNS updates, and exposes them as a JSON-serialisable snapshot.
Does NOT: make HTTP calls, persist anything, or decide failover.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RecordStats:
    """Per (provider, record) update counters."""

    provider: str
    record: str
    updates: int = 0
    errors: int = 0
    last_updated: datetime | None = None
    last_error: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "record": self.record,
            "updates": self.updates,
            "errors": self.errors,
            "last_updated": _iso(self.last_updated),
            "last_error": _iso(self.last_error),
        }


class StatsService:
    """
    Thread-safe metrics collector for the update cycle.

    The cycle writes from the event loop while the stats route reads from a
    request handler; a single lock guards every counter.
    Values are served as JSON only; there is no Prometheus scrape endpoint.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._checks = 0
        self._check_errors = 0
        self._current_address = ""
        self._last_change: datetime | None = None
        self._records: dict[tuple[str, str], RecordStats] = {}

    # ---------------------------------------------------------------------------
    # Writers
    # ---------------------------------------------------------------------------

    def record_check(self) -> None:
        with self._lock:
            self._checks += 1

    def record_check_error(self) -> None:
        with self._lock:
            self._check_errors += 1
        logger.debug("Stats: IP check error recorded.")

    def record_update(self, provider: str, record: str) -> None:
        """
        Records a successful DNS update for (provider, record).

        Args:
            provider: Provider name, e.g. "cloudflare".
            record: The fully-qualified DNS name that was updated.
        """
        with self._lock:
            stats = self._stats_for(provider, record)
            stats.updates += 1
            stats.last_updated = _utcnow()
        logger.debug("Stats: update recorded for %s at %s.", record, provider)

    def record_error(self, provider: str, record: str) -> None:
        """
        Records a failed DNS update for (provider, record).
        """
        with self._lock:
            stats = self._stats_for(provider, record)
            stats.errors += 1
            stats.last_error = _utcnow()
        logger.debug("Stats: failure recorded for %s at %s.", record, provider)

    def set_current_address(self, address: str) -> None:
        with self._lock:
            self._current_address = address

    def set_last_change(self, when: datetime | None = None) -> None:
        with self._lock:
            self._last_change = when or _utcnow()

    # ---------------------------------------------------------------------------
    # Readers
    # ---------------------------------------------------------------------------

    def get_for_record(self, provider: str, record: str) -> RecordStats | None:
        with self._lock:
            stats = self._records.get((provider, record))
            return None if stats is None else RecordStats(**vars(stats))

    def snapshot(self) -> dict[str, Any]:
        """
        Returns every counter and gauge as a JSON-serialisable dict.
        """
        with self._lock:
            return {
                "checks": self._checks,
                "check_errors": self._check_errors,
                "current_address": self._current_address,
                "last_change": _iso(self._last_change),
                "records": [
                    stats.to_dict()
                    for _, stats in sorted(self._records.items())
                ],
            }

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _stats_for(self, provider: str, record: str) -> RecordStats:
        key = (provider, record)
        stats = self._records.get(key)
        if stats is None:
            stats = RecordStats(provider=provider, record=record)
            self._records[key] = stats
        return stats


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
