"""
Tests for the GPU density backend and its CPU fallback.

GPU tests run on numba's CUDA simulator (enabled in conftest.py) and are
skipped when no CUDA target can be imported.
"""

import numpy as np
import pytest

from terramarch.density import (
    BackendStatus,
    DensityFieldSettings,
    create_density_field,
    generate,
    release_density_field,
)
from terramarch.gpu import GPUBackendError, GPUDensityBackend, gpu_available

requires_gpu = pytest.mark.skipif(not gpu_available(), reason="No CUDA target available")


# ============== Fakes ==============

def failing_factory(size):
    raise GPUBackendError("device lost")


class FlakyBackend:
    """Initialises fine, fails on first evaluation."""

    def __init__(self, size):
        self.size = size
        self.released = False
        self.calls = 0

    def evaluate(self, settings, shape, time, perm, out):
        self.calls += 1
        raise GPUBackendError("kernel launch failed")

    def release(self):
        self.released = True


@pytest.fixture
def gpu_settings():
    """Tiny grid so the simulator stays quick."""
    return DensityFieldSettings(size=5, frequency=1.5, octaves=2)


# ============== Fallback ==============

class TestFallback:
    def test_failed_init_matches_cpu_only(self, small_settings):
        forced = create_density_field(small_settings, backend_factory=failing_factory)
        cpu = create_density_field(small_settings, use_gpu=False)
        assert forced.status is BackendStatus.UNINITIALIZED

        for t in (0.0, 0.5, 1.0):
            generate(forced, t)
            generate(cpu, t)
            np.testing.assert_array_equal(forced.values, cpu.values)
        assert forced.status is BackendStatus.UNAVAILABLE
        assert forced.gpu is None

    def test_failed_evaluation_falls_back_permanently(self, small_settings):
        backends = []

        def factory(size):
            backend = FlakyBackend(size)
            backends.append(backend)
            return backend

        state = create_density_field(small_settings, backend_factory=factory)
        cpu = create_density_field(small_settings, use_gpu=False)
        generate(state, 0.25)
        generate(cpu, 0.25)

        np.testing.assert_array_equal(state.values, cpu.values)
        assert state.status is BackendStatus.UNAVAILABLE
        assert len(backends) == 1
        assert backends[0].released

        generate(state, 0.5)
        assert backends[0].calls == 1

    def test_release_without_gpu_is_noop(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        release_density_field(state)
        release_density_field(state)
        assert state.status is BackendStatus.UNAVAILABLE


# ============== Backend ==============

@requires_gpu
class TestGPUBackend:
    def test_matches_cpu(self, gpu_settings):
        gpu = create_density_field(gpu_settings)
        cpu = create_density_field(gpu_settings, use_gpu=False)
        generate(gpu, 0.8)
        generate(cpu, 0.8)

        assert gpu.status is BackendStatus.ACTIVE
        np.testing.assert_allclose(gpu.values, cpu.values, atol=1e-3)
        release_density_field(gpu)

    def test_sphere_matches_cpu(self):
        gpu = create_density_field(size=4, mode="sphere")
        cpu = create_density_field(size=4, mode="sphere", use_gpu=False)
        generate(gpu, 0.0)
        generate(cpu, 0.0)
        np.testing.assert_allclose(gpu.values, cpu.values, atol=1e-5)
        release_density_field(gpu)

    def test_texture_layout(self):
        backend = GPUDensityBackend(4)
        state = create_density_field(size=4, mode="sphere", use_gpu=False)
        out = np.zeros(64, dtype=np.float32)
        backend.evaluate(state.settings, state.shape, 0.0, state.perm, out)

        assert backend.staging.shape == (16, 4, 4)
        np.testing.assert_allclose(backend.staging[:, :, 1:], np.tile([0.0, 0.0, 1.0], (16, 4, 1)))
        np.testing.assert_array_equal(out, backend.staging[:, :, 0].reshape(-1))
        backend.release()

    def test_release_is_idempotent(self):
        backend = GPUDensityBackend(3)
        backend.release()
        backend.release()
        assert backend.released
        with pytest.raises(GPUBackendError):
            backend.evaluate(DensityFieldSettings(size=3), None, 0.0,
                             np.zeros(512, dtype=np.int32), np.zeros(27, dtype=np.float32))

    def test_release_drops_backend(self, gpu_settings):
        state = create_density_field(gpu_settings)
        generate(state, 0.0)
        backend = state.gpu
        release_density_field(state)
        assert backend.released
        assert state.gpu is None
        assert state.status is BackendStatus.UNAVAILABLE
