"""Conftest for integration tests - run the CLI as a separate process."""

from collections.abc import Callable
import os
from pathlib import Path
import subprocess
import sys

import pytest


SRC_DIR = Path(__file__).resolve().parents[2] / "src"


def pytest_collection_modifyitems(config, items):
    """Automatically mark all tests in the integration directory as integration tests."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def run_cli(tmp_path: Path) -> Callable[..., subprocess.CompletedProcess]:
    """Invoke ``python -m csv_indexer`` with a clean environment."""
    env = {key: value for key, value in os.environ.items() if not key.upper().startswith("CSV_INDEXER_")}
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))

    def _run(*args: str, extra_env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, "-m", "csv_indexer", *args],
            cwd=tmp_path,
            env={**env, **(extra_env or {})},
            capture_output=True,
            text=True,
            timeout=60,
            check=False,
        )

    return _run
