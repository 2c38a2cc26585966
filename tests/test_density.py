"""
Tests for the density field generator (CPU path).

Tests cover:
- Settings validation
- Field creation and layout
- Determinism and time dependence
- Shape variants
- Seed changes
"""

import numpy as np
import pytest

from terramarch.density import (
    BackendStatus,
    DensityFieldSettings,
    SphereShape,
    TerrainShape,
    create_density_field,
    generate,
    index_of,
    resolve_shape,
)


# ============== Settings ==============

class TestSettings:
    def test_defaults(self):
        s = DensityFieldSettings()
        assert s.size == 48
        assert s.frequency == pytest.approx(0.1)
        assert s.octaves == 4
        assert s.ridge_sharpness == pytest.approx(0.6)
        assert s.time_scale == pytest.approx(0.35)

    @pytest.mark.parametrize("overrides", [
        {"size": 1},
        {"size": 0},
        {"size": 4.5},
        {"octaves": -1},
        {"octaves": 9},
        {"frequency": float("nan")},
        {"lacunarity": float("inf")},
        {"ridge_sharpness": 0.0},
        {"ridge_sharpness": -0.5},
    ])
    def test_invalid_settings_raise(self, overrides):
        with pytest.raises(ValueError):
            create_density_field(use_gpu=False, **overrides)

    def test_copy_is_independent(self):
        s = DensityFieldSettings()
        c = s.copy()
        c.size = 10
        assert s.size == 48

    def test_to_dict(self):
        d = DensityFieldSettings(seed=7).to_dict()
        assert d["seed"] == 7
        assert set(d) >= {"size", "frequency", "octaves", "time_scale"}


# ============== Creation ==============

class TestCreation:
    def test_buffer_length(self):
        state = create_density_field(size=6, use_gpu=False)
        assert state.values.shape == (216,)
        assert state.values.dtype == np.float32
        assert state.grid.shape == (6, 6, 6)

    def test_cpu_only_state(self):
        state = create_density_field(size=4, use_gpu=False)
        assert state.status is BackendStatus.UNAVAILABLE
        assert state.gpu is None

    def test_settings_are_copied(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        small_settings.frequency = 9.0
        assert state.settings.frequency == pytest.approx(1.5)

    def test_index_layout(self):
        state = create_density_field(size=5, use_gpu=False)
        assert index_of(state, 1, 2, 3) == 1 + 5 * (2 + 5 * 3)
        state.values[index_of(state, 1, 2, 3)] = 7.0
        assert state.grid[3, 2, 1] == 7.0


# ============== Generation ==============

class TestGeneration:
    def test_deterministic(self, small_settings):
        a = create_density_field(small_settings, use_gpu=False)
        b = create_density_field(small_settings, use_gpu=False)
        generate(a, 1.25)
        generate(b, 1.25)
        np.testing.assert_array_equal(a.values, b.values)

    def test_repeated_calls_identical(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        generate(state, 0.7)
        first = state.values.copy()
        generate(state, 0.7)
        np.testing.assert_array_equal(first, state.values)

    def test_time_changes_field(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        generate(state, 0.0)
        first = state.values.copy()
        generate(state, 3.0)
        assert not np.array_equal(first, state.values)

    def test_values_finite(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        generate(state, 2.0)
        assert np.isfinite(state.values).all()

    def test_zero_octaves_is_pure_gradient(self):
        state = create_density_field(size=6, octaves=0, use_gpu=False)
        generate(state, 0.0)
        # fbm = 0 -> ridge = 1, density = 1 - 1.2 * py
        for y in range(6):
            py = (y - 3) / 6
            np.testing.assert_allclose(state.grid[:, y, :], 1.0 - 1.2 * py, rtol=1e-6)

    def test_seed_change_rebuilds_permutation(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        generate(state, 0.0)
        first = state.values.copy()
        state.settings.seed = 1234
        generate(state, 0.0)
        assert state.perm_seed == 1234
        assert not np.array_equal(first, state.values)


# ============== Shapes ==============

class TestShapes:
    def test_resolve_names(self):
        assert isinstance(resolve_shape("terrain"), TerrainShape)
        assert isinstance(resolve_shape("sphere"), SphereShape)
        shape = SphereShape(radius=0.2)
        assert resolve_shape(shape) is shape

    def test_unknown_mode_raises(self):
        with pytest.raises(ValueError, match="terrain"):
            resolve_shape("cube")

    def test_sphere_is_signed_distance(self):
        state = create_density_field(size=8, mode="sphere", use_gpu=False)
        generate(state, 0.0)
        # Cell (4, 4, 4) is the exact center
        assert state.grid[4, 4, 4] == pytest.approx(-0.35)
        assert state.grid[4, 4, 0] == pytest.approx(0.5 - 0.35)

    def test_sphere_ignores_time(self):
        state = create_density_field(size=6, mode="sphere", use_gpu=False)
        generate(state, 0.0)
        first = state.values.copy()
        generate(state, 5.0)
        np.testing.assert_array_equal(first, state.values)

    def test_mode_switch_on_generate(self, small_settings):
        state = create_density_field(small_settings, use_gpu=False)
        generate(state, 0.0, mode="sphere")
        assert state.shape.name == "sphere"
        assert state.grid[4, 4, 4] == pytest.approx(-0.35)
