"""
tests/unit/test_state_repository.py

Unit tests for repositories/state_repository.py and db/storage.py.
Every test writes to its own tmp_path; nothing touches the real config dir.
"""

from __future__ import annotations

import asyncio
import json
import os
import threading
import time

import pytest

from db.storage import read_document, write_document
from exceptions import StateCorruptedError, StateStoreError
from repositories import state_repository
from repositories.state_repository import StateRepository


@pytest.mark.asyncio
async def test_empty_state_when_document_missing(state_repo, state_file):
    """A repository with no document yet reports empty state, not an error."""
    assert not state_file.exists()
    assert await state_repo.get_last_applied_address() == ""
    assert await state_repo.get_update_count() == 0
    assert await state_repo.get_primary_failure_count() == 0
    assert await state_repo.get_last_check_info() == ("", None)


@pytest.mark.asyncio
async def test_set_last_applied_address_round_trips(state_repo, state_file):
    written = await state_repo.set_last_applied_address("203.0.113.10")

    assert written.last_applied_address == "203.0.113.10"
    assert written.update_count == 1
    assert written.last_change_time is not None

    reopened = StateRepository(state_file)
    assert await reopened.get_last_applied_address() == "203.0.113.10"
    assert await reopened.get_last_change_time() == written.last_change_time


@pytest.mark.asyncio
async def test_update_count_increments_once_per_apply(state_repo):
    await state_repo.set_last_applied_address("203.0.113.10")
    await state_repo.set_last_applied_address("198.51.100.20")
    await state_repo.set_last_applied_address("203.0.113.10")

    assert await state_repo.get_update_count() == 3


@pytest.mark.asyncio
async def test_check_info_does_not_touch_update_count(state_repo):
    await state_repo.set_last_check_info("192.0.2.1")

    address, checked_at = await state_repo.get_last_check_info()
    assert address == "192.0.2.1"
    assert checked_at is not None
    assert await state_repo.get_update_count() == 0


@pytest.mark.asyncio
async def test_primary_failure_counter(state_repo):
    assert await state_repo.increment_primary_failure_count() == 1
    assert await state_repo.increment_primary_failure_count() == 2

    await state_repo.reset_primary_failure_count()

    assert await state_repo.get_primary_failure_count() == 0


@pytest.mark.asyncio
async def test_negative_failure_count_rejected(state_repo):
    with pytest.raises(ValueError):
        await state_repo.set_primary_failure_count(-1)


@pytest.mark.asyncio
async def test_applied_records_are_merged(state_repo):
    await state_repo.set_applied_records({"cloudflare:a.example.com:A": "203.0.113.10"})
    await state_repo.set_applied_records({"hetzner:b.example.com:A": "203.0.113.10"})

    snapshot = await state_repo.snapshot()
    assert snapshot.applied_records == {
        "cloudflare:a.example.com:A": "203.0.113.10",
        "hetzner:b.example.com:A": "203.0.113.10",
    }
    assert await state_repo.get_applied_record_address("hetzner:b.example.com:A") == "203.0.113.10"
    assert await state_repo.get_applied_record_address("route53:c.example.com:A") == ""


@pytest.mark.asyncio
async def test_snapshot_is_detached_copy(state_repo):
    await state_repo.set_applied_records({"k": "v"})

    snapshot = await state_repo.snapshot()
    snapshot.applied_records["k"] = "changed"

    assert (await state_repo.snapshot()).applied_records["k"] == "v"


@pytest.mark.asyncio
async def test_corrupted_document_raises_on_read(state_repo, state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(StateCorruptedError):
        await state_repo.get_last_applied_address()


@pytest.mark.asyncio
async def test_corrupted_document_is_overwritten_on_write(state_repo, state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text("garbage", encoding="utf-8")

    await state_repo.set_last_applied_address("203.0.113.10")

    assert await state_repo.get_last_applied_address() == "203.0.113.10"
    assert await state_repo.get_update_count() == 1


@pytest.mark.asyncio
async def test_document_is_plain_json(state_repo, state_file):
    await state_repo.set_last_applied_address("203.0.113.10")

    data = json.loads(state_file.read_text(encoding="utf-8"))
    assert data["last_applied_address"] == "203.0.113.10"
    assert data["update_count"] == 1


@pytest.mark.asyncio
async def test_failed_replace_keeps_old_document(state_repo, state_file, monkeypatch):
    """A failure during the atomic replace leaves the previous document intact."""
    await state_repo.set_last_applied_address("203.0.113.10")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(StateStoreError):
        await state_repo.set_last_applied_address("198.51.100.20")

    monkeypatch.undo()
    assert await state_repo.get_last_applied_address() == "203.0.113.10"
    assert await state_repo.get_update_count() == 1
    assert [p.name for p in state_file.parent.iterdir()] == [state_file.name]


@pytest.mark.asyncio
async def test_concurrent_increments_are_serialised(state_repo):
    await asyncio.gather(*(state_repo.increment_primary_failure_count() for _ in range(10)))

    assert await state_repo.get_primary_failure_count() == 10


@pytest.mark.asyncio
async def test_cancelled_write_leaves_whole_document(state_repo, state_file, monkeypatch):
    """Cancelling the caller mid-write never exposes a half-written document."""
    await state_repo.set_last_applied_address("203.0.113.10")
    started = threading.Event()

    def slow_write(path, state):
        started.set()
        time.sleep(0.2)
        write_document(path, state)

    monkeypatch.setattr(state_repository, "write_document", slow_write)
    task = asyncio.create_task(state_repo.set_last_applied_address("198.51.100.20"))
    while not started.is_set():
        await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    state = read_document(state_file)
    assert (state.last_applied_address, state.update_count) in {
        ("203.0.113.10", 1),
        ("198.51.100.20", 2),
    }
    assert [p.name for p in state_file.parent.iterdir()] == [state_file.name]
