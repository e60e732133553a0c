"""Shared test fixtures for unit tests."""

import logging

import pytest

from polyflow.core.config import clear_config_cache
from tests.unit.workflow_fixtures import FakeBackend


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def backend_factory(fake_backend):
    """Factory that knows only the ``fake`` backend."""
    backends = {"fake": fake_backend}
    return backends.get


@pytest.fixture(autouse=True)
def _reset_config_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def _reset_polyflow_logger():
    """Drop handlers the CLI installs so later tests log through caplog."""
    yield
    logger = logging.getLogger("polyflow")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
