"""Pytest configuration and fixtures."""

import io

import pytest
from rich.console import Console

from nwlab.config import Settings


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-db",
        action="store_true",
        default=False,
        help="Run tests that require live PostgreSQL, MongoDB and Neo4j",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "db: mark test as requiring live backends")


def pytest_collection_modifyitems(config, items):
    """Skip db tests unless --run-db is provided."""
    if config.getoption("--run-db"):
        # --run-db given: do not skip db tests
        return

    skip_db = pytest.mark.skip(reason="Need --run-db option to run database tests")
    for item in items:
        if "db" in item.keywords:
            item.add_marker(skip_db)


@pytest.fixture
def settings(tmp_path):
    """Settings with a private staging dir, no containers and instant polling."""
    return Settings(
        data_dir=tmp_path / "data",
        compose_enabled=False,
        ready_max_attempts=3,
        ready_interval=0,
    )


@pytest.fixture
def quiet_console():
    return Console(file=io.StringIO(), width=160)
