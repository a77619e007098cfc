"""Shared fixtures for syncfolders tests."""

import logging

import pytest

from syncfolders import MirrorConfig, MirrorExecutor


@pytest.fixture
def roots(tmp_path):
    """Create empty source and target roots."""
    base = tmp_path.resolve()
    src = base / "src"
    dst = base / "dst"
    src.mkdir()
    dst.mkdir()
    return src, dst


@pytest.fixture
def logger():
    """A logger that propagates to caplog."""
    return logging.getLogger("tests.syncfolders")


@pytest.fixture
def config(roots):
    src, dst = roots
    return MirrorConfig(source_root=src, target_root=dst, perform_initial_sync=False, debounce_sec=0)


@pytest.fixture
def executor(config, logger):
    return MirrorExecutor(config, logger)

