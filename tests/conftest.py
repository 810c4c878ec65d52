"""Pytest configuration ensuring local packages are importable."""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from stepshot.config import RunnerConfig  # noqa: E402
from stepshot.models import Run  # noqa: E402


@pytest.fixture
def fast_config() -> RunnerConfig:
    return RunnerConfig(
        backend="simulated",
        simulated_min_delay_ms=0,
        simulated_max_delay_ms=5,
        seed_example=False,
    )


def wait_for_terminal(service, run_id: str, timeout: float = 5.0) -> Run:
    deadline = time.monotonic() + timeout
    run = service.get_run(run_id)
    while run is not None and not run.status.is_terminal:
        if time.monotonic() > deadline:
            raise AssertionError(f"run {run_id} still {run.status.value} after {timeout}s")
        time.sleep(0.01)
        run = service.get_run(run_id)
    assert run is not None
    return run


@pytest.fixture
def wait_terminal():
    return wait_for_terminal
