"""
tests/unit/test_logger.py

Unit tests for logger.py.
"""

from __future__ import annotations

import logging

import pytest

from logger import resolve_level, setup_logging, uvicorn_level


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.parametrize(
    ("name", "level"),
    [("debug", logging.DEBUG), ("INFO", logging.INFO), ("warn", logging.WARNING),
     ("warning", logging.WARNING), ("error", logging.ERROR), ("bogus", logging.INFO)],
)
def test_resolve_level(name, level):
    assert resolve_level(name) == level


def test_uvicorn_level_maps_warn():
    assert uvicorn_level("warn") == "warning"
    assert uvicorn_level("debug") == "debug"


def test_setup_logging_installs_one_handler():
    setup_logging("debug")
    setup_logging("warn")

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING
