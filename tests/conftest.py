"""Shared pytest setup."""

import os

# GPU tests run on numba's CUDA simulator; must be set before numba.cuda loads
os.environ.setdefault("NUMBA_ENABLE_CUDASIM", "1")

import numpy as np
import pytest

from terramarch.density import DensityFieldSettings


@pytest.fixture
def small_settings():
    """Low-res settings for fast testing."""
    return DensityFieldSettings(size=8, frequency=1.5, octaves=3)


@pytest.fixture
def single_corner_field():
    """N=4 field: -1 everywhere except +1 at cell (0, 0, 0)."""
    values = np.full(4 ** 3, -1.0, dtype=np.float32)
    values[0] = 1.0
    return values
