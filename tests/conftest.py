"""
Shared pytest fixtures for restore-pages tests.

Snapshot fixtures build a real directory tree under tmp_path; remote
collaborators come from tests.helpers.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable, List

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.append(ROOT)

from pages_restore.config import RestoreConfig  # noqa: E402
from tests.helpers import FakeShell, make_content_paths, populate_snapshot  # noqa: E402


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """A backup data dir with an empty snapshot linked as ``current``."""
    root = tmp_path / "data"
    snapshot = root / "20261001T020000"
    snapshot.mkdir(parents=True)
    (root / "current").symlink_to(snapshot.name)
    return root


@pytest.fixture
def config(data_dir) -> RestoreConfig:
    return RestoreConfig(data_dir=data_dir)


@pytest.fixture
def cluster_config(config) -> RestoreConfig:
    return replace(config, cluster=True)


@pytest.fixture
def shell(tmp_path) -> FakeShell:
    return FakeShell(tmp_path / "remote")


@pytest.fixture
def snapshot_factory(data_dir) -> Callable[[int], List[str]]:
    """Fill the current snapshot with ``n`` content items and return their paths."""

    def factory(count: int) -> List[str]:
        paths = make_content_paths(count)
        populate_snapshot(data_dir / "current", paths)
        return paths

    return factory


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo handler/propagation changes made by CLI runs so caplog keeps working."""
    logger = logging.getLogger("pages_restore")
    handlers = list(logger.handlers)
    propagate = logger.propagate
    level = logger.level
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.propagate = propagate
    logger.setLevel(level)
