"""Pytest configuration and shared fixtures for the tile generator tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np
import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


@pytest.fixture
def step_values() -> np.ndarray:
    """64 x 64 height grid: 0 for x < 20, 200 for x >= 20."""
    values = np.zeros((64, 64), dtype=np.float32)
    values[:, 20:] = 200.0
    return values


@pytest.fixture
def small_config(tmp_path: Path):
    """Generator config with small tiles writing under a temp directory."""
    from core_engine.constants import GeneratorConfig, with_overrides

    return with_overrides(
        GeneratorConfig(),
        tiles={"albedo_tile_size": 64, "elevation_tile_size": 16},
        shadows={"num_threads": 4},
        gradient={"margin_px": 8},
        output={"root": str(tmp_path / "out")},
    )
