"""
repositories/state_repository.py

Responsibility: Provides the only read/write access to the persisted failover
state (last applied address, last check info, update counter, primary failure
counter) under a single process-wide reader/writer lock.
Does NOT: decide failover, probe addresses, or talk to DNS providers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

from db.models import PersistedState
from db.storage import (
    DocumentCorrupted,
    DocumentMissing,
    DocumentUnreadable,
    read_document,
    write_document,
)
from exceptions import StateCorruptedError, StateStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _ReadWriteLock:
    """
    Async reader/writer lock: many concurrent readers, one exclusive writer.

    Waiting writers block new readers so a steady stream of health-check
    reads cannot starve the update cycle.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class StateRepository:
    """
    Durable store for the single PersistedState document.

    Every public method loads the document, applies at most one mutation,
    and (for writes) replaces the whole document atomically, all inside one
    lock scope. Reads share the lock; writes are exclusive.

    Read paths surface a corrupted document as StateCorruptedError so
    monitoring can distinguish "never run" (empty state) from "storage
    corrupted". Write paths self-heal: a corrupted or unreadable document is
    treated as empty state and overwritten.

    Collaborators:
        - db.storage: file-level read and atomic replace
    """

    def __init__(self, file_path: Path | str, default_timeout: float | None = 5.0) -> None:
        """
        Initialises the repository for a given state file.

        Args:
            file_path: Canonical location of the JSON state document.
            default_timeout: Deadline in seconds applied to every operation
                when the caller does not pass one. None disables it.
        """
        self._path = Path(file_path)
        self._default_timeout = default_timeout
        self._lock = _ReadWriteLock()

    @property
    def file_path(self) -> Path:
        return self._path

    # ---------------------------------------------------------------------------
    # Read operations
    # ---------------------------------------------------------------------------

    async def get_last_applied_address(self, timeout: float | None = None) -> str:
        """
        Returns the address last pushed to DNS, or "" if none was ever applied.

        Raises:
            StateCorruptedError: If the document exists but cannot be parsed.
            StateStoreError: On any other I/O failure or deadline expiry.
        """
        state = await self._read("get_last_applied_address", timeout)
        return state.last_applied_address

    async def get_last_change_time(self, timeout: float | None = None) -> datetime | None:
        state = await self._read("get_last_change_time", timeout)
        return state.last_change_time

    async def get_last_check_info(self, timeout: float | None = None) -> tuple[str, datetime | None]:
        """
        Returns the most recent detection result.

        Returns:
            A tuple of (address, check time); ("", None) if never checked.
        """
        state = await self._read("get_last_check_info", timeout)
        return state.last_check_address, state.last_check_time

    async def get_primary_failure_count(self, timeout: float | None = None) -> int:
        state = await self._read("get_primary_failure_count", timeout)
        return state.primary_failure_count

    async def get_update_count(self, timeout: float | None = None) -> int:
        state = await self._read("get_update_count", timeout)
        return state.update_count

    async def get_applied_record_address(self, key: str, timeout: float | None = None) -> str:
        """
        Returns the address last converged for one record key, or "".

        Args:
            key: Record key in the form "provider:name:type".
        """
        state = await self._read("get_applied_record_address", timeout)
        return state.applied_records.get(key, "")

    async def snapshot(self, timeout: float | None = None) -> PersistedState:
        """
        Returns a detached copy of the full state document.

        Raises:
            StateCorruptedError: If the document exists but cannot be parsed.
        """
        state = await self._read("snapshot", timeout)
        return state.model_copy(deep=True)

    # ---------------------------------------------------------------------------
    # Write operations
    # ---------------------------------------------------------------------------

    async def set_last_applied_address(self, address: str, timeout: float | None = None) -> PersistedState:
        """
        Records a successful address change.

        Stamps last_change_time with the current UTC time and increments
        update_count by exactly one, in the same atomic write as the address.

        Args:
            address: The address now live in DNS.

        Returns:
            A copy of the state that was written.
        """

        def mutate(state: PersistedState) -> None:
            state.last_applied_address = address
            state.last_change_time = _utcnow()
            state.update_count += 1

        state = await self._write("set_last_applied_address", mutate, timeout)
        logger.info(
            "State updated: last_applied_address=%s update_count=%d",
            state.last_applied_address,
            state.update_count,
        )
        return state

    async def set_last_check_info(
        self,
        address: str,
        checked_at: datetime | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Records the most recent detection result.

        Args:
            address: The detected public address.
            checked_at: Detection time; defaults to now (UTC).
        """
        when = checked_at or _utcnow()

        def mutate(state: PersistedState) -> None:
            state.last_check_address = address
            state.last_check_time = when

        await self._write("set_last_check_info", mutate, timeout)

    async def set_primary_failure_count(self, count: int, timeout: float | None = None) -> None:
        """
        Overwrites the consecutive primary failure counter.

        Raises:
            ValueError: If count is negative.
        """
        if count < 0:
            raise ValueError(f"primary failure count must be >= 0, got {count}")

        def mutate(state: PersistedState) -> None:
            state.primary_failure_count = count

        await self._write("set_primary_failure_count", mutate, timeout)

    async def reset_primary_failure_count(self, timeout: float | None = None) -> None:
        await self.set_primary_failure_count(0, timeout=timeout)

    async def increment_primary_failure_count(self, timeout: float | None = None) -> int:
        """
        Atomically adds one to the primary failure counter.

        Returns:
            The counter value after the increment.
        """

        def mutate(state: PersistedState) -> None:
            state.primary_failure_count += 1

        state = await self._write("increment_primary_failure_count", mutate, timeout)
        return state.primary_failure_count

    async def set_applied_records(self, records: dict[str, str], timeout: float | None = None) -> None:
        """
        Merges per-record applied addresses into the document.

        Args:
            records: Mapping of record key to the address just converged.
        """
        if not records:
            return

        def mutate(state: PersistedState) -> None:
            merged = dict(state.applied_records)
            merged.update(records)
            state.applied_records = merged

        await self._write("set_applied_records", mutate, timeout)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _read(self, operation: str, timeout: float | None) -> PersistedState:
        async def run() -> PersistedState:
            async with self._lock.read():
                return await _run_to_completion(self._load_strict, operation)

        return await self._with_deadline(operation, run(), timeout)

    async def _write(
        self,
        operation: str,
        mutate: Callable[[PersistedState], None],
        timeout: float | None,
    ) -> PersistedState:
        async def run() -> PersistedState:
            async with self._lock.write():
                return await _run_to_completion(self._load_mutate_save, operation, mutate)

        return await self._with_deadline(operation, run(), timeout)

    async def _with_deadline(self, operation: str, coro: Awaitable[T], timeout: float | None) -> T:
        deadline = timeout if timeout is not None else self._default_timeout
        try:
            if deadline is None:
                return await coro
            async with asyncio.timeout(deadline):
                return await coro
        except TimeoutError as exc:
            raise StateStoreError(operation, f"deadline of {deadline}s exceeded") from exc

    def _load_strict(self, operation: str) -> PersistedState:
        try:
            return read_document(self._path)
        except DocumentMissing:
            return PersistedState()
        except DocumentCorrupted as exc:
            raise StateCorruptedError(operation, str(exc)) from exc
        except DocumentUnreadable as exc:
            raise StateStoreError(operation, str(exc)) from exc

    def _load_mutate_save(
        self,
        operation: str,
        mutate: Callable[[PersistedState], None],
    ) -> PersistedState:
        try:
            state = read_document(self._path)
        except DocumentMissing:
            state = PersistedState()
        except (DocumentCorrupted, DocumentUnreadable) as exc:
            # NOTE: write paths self-heal; the corrupted document is replaced.
            logger.warning("State document unusable during %s, starting from empty state: %s", operation, exc)
            state = PersistedState()

        mutate(state)

        try:
            write_document(self._path, state)
        except OSError as exc:
            raise StateStoreError(operation, f"failed to write state file: {exc}") from exc

        return state.model_copy(deep=True)


async def _run_to_completion(func: Callable[..., T], *args: object) -> T:
    """
    Runs blocking file I/O in a worker thread and keeps the caller's lock
    held until the thread finishes, even if the caller is cancelled.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        # The thread cannot be interrupted; wait so no second writer overlaps it.
        await asyncio.wait({future})
        raise


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
