"""
db/models.py

Responsibility: Defines the pydantic model of the persisted state document.
Does NOT: read or write files, take locks, or contain failover logic.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# PersistedState: the single JSON document owned by StateRepository
# ---------------------------------------------------------------------------


class PersistedState(BaseModel):
    """
    The complete application state, written as one document on every change.

    Only StateRepository constructs, mutates, and serialises this model.
    Callers receive copies (see StateRepository.snapshot()).
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    # Address currently believed live in DNS; empty until the first update
    last_applied_address: str = Field(default="")

    # Wall-clock time (UTC) of the last successful address change
    last_change_time: datetime | None = Field(default=None)

    # Most recent detection result, applied or not
    last_check_address: str = Field(default="")
    last_check_time: datetime | None = Field(default=None)

    # Incremented exactly once per set_last_applied_address() call
    update_count: int = Field(default=0, ge=0)

    # Consecutive reachability-probe failures of the primary address
    primary_failure_count: int = Field(default=0, ge=0)

    # Per-record convergence: "provider:name:type" -> address last applied
    applied_records: dict[str, str] = Field(default_factory=dict)
