from __future__ import annotations

from pathlib import Path
import shutil

import pytest


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with the Spanner client mocked out")
    config.addinivalue_line("markers", "integration: tests that need a live Cloud Spanner database")
    config.addinivalue_line("markers", "slow: tests that wait on schema operations")


@pytest.fixture
def temp_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Provide a scratch directory removed after the test."""
    path = tmp_path_factory.mktemp("spanner_cli")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
