"""
Tests for isosurface extraction.

Tests cover:
- Empty results for constant fields
- Single-corner scenario on a 4³ grid
- Degenerate interpolation
- Output invariants on a generated terrain
- Bounding volumes of the reference sphere
"""

import numpy as np
import pytest

from terramarch.density import create_density_field, generate
from terramarch.marching_cubes import (
    MarchingCubesExtractor,
    TerrainMesh,
    _interpolate_edge,
    extract,
)


# ============== Fixtures ==============

@pytest.fixture
def sphere_field():
    state = create_density_field(size=24, mode="sphere", use_gpu=False)
    generate(state, 0.0)
    return state


@pytest.fixture
def terrain_field(small_settings):
    state = create_density_field(small_settings, use_gpu=False)
    generate(state, 0.5)
    return state


# ============== Empty fields ==============

class TestEmptyFields:
    @pytest.mark.parametrize("value", [-1.0, 1.0, 0.0])
    def test_constant_field_is_empty(self, value):
        field = np.full(5 ** 3, value, dtype=np.float32)
        mesh = extract(field, 5, 0.5)
        assert mesh.is_empty
        assert mesh.positions.size == 0
        assert mesh.normals.size == 0
        assert mesh.bounding_box is None
        assert mesh.bounding_sphere is None

    def test_reused_mesh_is_cleared(self, single_corner_field):
        mesh = extract(single_corner_field, 4, 0.0)
        assert not mesh.is_empty
        extract(np.ones(4 ** 3, dtype=np.float32), 4, 0.0, mesh)
        assert mesh.is_empty
        assert mesh.bounding_sphere is None

    def test_wrong_length_raises(self):
        extractor = MarchingCubesExtractor(4)
        with pytest.raises(ValueError):
            extractor.extract(np.zeros(10, dtype=np.float32))

    def test_size_below_two_raises(self):
        with pytest.raises(ValueError):
            MarchingCubesExtractor(1)


# ============== Single corner ==============

class TestSingleCorner:
    def test_exactly_one_triangle(self, single_corner_field):
        mesh = extract(single_corner_field, 4, 0.0)
        assert mesh.triangle_count == 1
        assert mesh.positions.shape == (9,)
        assert mesh.normals.shape == (9,)
        assert np.isfinite(mesh.positions).all()
        assert np.isfinite(mesh.normals).all()

    def test_vertices_are_edge_midpoints(self, single_corner_field):
        mesh = extract(single_corner_field, 4, 0.0)
        vertices = sorted(map(tuple, mesh.triangles()[0].round(6)))
        assert vertices == [(0.0, 0.0, 0.5), (0.0, 0.5, 0.0), (0.5, 0.0, 0.0)]

    def test_normals_are_identical_unit_vectors(self, single_corner_field):
        mesh = extract(single_corner_field, 4, 0.0)
        normals = mesh.normals.reshape(3, 3)
        np.testing.assert_allclose(normals[0], normals[1])
        np.testing.assert_allclose(normals[0], normals[2])
        np.testing.assert_allclose(np.abs(normals[0]), np.full(3, 1 / np.sqrt(3)), atol=1e-6)

    def test_extractor_is_reusable(self, single_corner_field):
        extractor = MarchingCubesExtractor(4)
        first = extractor.extract(single_corner_field).positions.copy()
        second = extractor.extract(single_corner_field).positions.copy()
        np.testing.assert_array_equal(first, second)


# ============== Degenerate interpolation ==============

class TestDegenerateInterpolation:
    def test_corner_on_iso_level(self):
        field = np.full(3 ** 3, -1.0, dtype=np.float32)
        field[0] = 0.0
        mesh = extract(field, 3, 0.0)
        assert np.isfinite(mesh.positions).all()
        assert np.isfinite(mesh.normals).all()

    def test_nearly_equal_values_straddling_iso(self):
        field = np.full(3 ** 3, -5e-7, dtype=np.float32)
        field[::2] = 4e-7
        mesh = extract(field, 3, 0.0)
        assert np.isfinite(mesh.positions).all()
        assert np.isfinite(mesh.normals).all()
        assert mesh.positions.size % 9 == 0

    def test_flat_edge_takes_first_corner(self):
        out = np.full(3, np.nan)
        p1 = np.array([2.0, 1.0, 3.0])
        p2 = np.array([3.0, 1.0, 3.0])
        _interpolate_edge(out, p1, p2, 0.5, 0.5, 0.0)
        assert np.isfinite(out).all()
        np.testing.assert_array_equal(out, p1)

    def test_endpoint_on_iso_level_wins(self):
        out = np.zeros(3)
        p1 = np.array([0.0, 0.0, 0.0])
        p2 = np.array([0.0, 1.0, 0.0])
        _interpolate_edge(out, p1, p2, -1.0, 0.25, 0.25)
        np.testing.assert_array_equal(out, p2)


# ============== Non-finite input ==============

class TestNonFiniteField:
    @pytest.fixture
    def nan_field(self):
        field = np.full(4 ** 3, -1.0, dtype=np.float32)
        field[0] = np.nan
        field[1] = 1.0
        return field

    def test_nan_corner_gives_empty_mesh(self, nan_field):
        mesh = extract(nan_field, 4, 0.0)
        assert mesh.is_empty
        assert mesh.positions.size == 0
        assert mesh.normals.size == 0
        assert mesh.bounding_box is None
        assert mesh.bounding_sphere is None

    def test_stale_bounds_are_dropped(self, nan_field, single_corner_field):
        extractor = MarchingCubesExtractor(4)
        mesh = extractor.extract(single_corner_field, 0.0)
        assert mesh.bounding_sphere is not None

        extractor.extract(nan_field, 0.0, mesh)
        assert mesh.is_empty
        assert mesh.bounding_box is None
        assert mesh.bounding_sphere is None


# ============== Output invariants ==============

class TestOutputInvariants:
    def test_lengths(self, terrain_field):
        mesh = extract(terrain_field.values, terrain_field.size, 0.6)
        assert not mesh.is_empty
        assert mesh.positions.size == mesh.normals.size
        assert mesh.positions.size % 9 == 0
        assert mesh.vertex_count == 3 * mesh.triangle_count

    def test_vertices_inside_grid(self, terrain_field):
        mesh = extract(terrain_field.values, terrain_field.size, 0.6)
        assert mesh.positions.min() >= 0.0
        assert mesh.positions.max() <= terrain_field.size - 1

    def test_normals_unit_or_zero(self, terrain_field):
        mesh = extract(terrain_field.values, terrain_field.size, 0.6)
        lengths = np.linalg.norm(mesh.normals.reshape(-1, 3), axis=1)
        assert np.all((np.abs(lengths - 1.0) < 1e-4) | (lengths < 1e-4))

    def test_mesh_is_rebuilt_not_appended(self, terrain_field):
        extractor = MarchingCubesExtractor(terrain_field.size)
        mesh = TerrainMesh()
        extractor.extract(terrain_field.values, 0.6, mesh)
        count = mesh.triangle_count
        extractor.extract(terrain_field.values, 0.6, mesh)
        assert mesh.triangle_count == count


# ============== Bounds ==============

class TestBounds:
    def test_sphere_bounds(self, sphere_field):
        mesh = extract(sphere_field.values, sphere_field.size, 0.0)
        size = sphere_field.size
        # Surface sits where |i - N/2| = 0.35 N in grid units
        expected_radius = 0.35 * size

        assert mesh.bounding_sphere is not None
        np.testing.assert_allclose(mesh.bounding_sphere.center, [size / 2] * 3, atol=0.5)
        assert abs(mesh.bounding_sphere.radius - expected_radius) < np.sqrt(3)

    def test_box_contains_all_vertices(self, sphere_field):
        mesh = extract(sphere_field.values, sphere_field.size, 0.0)
        points = mesh.positions.reshape(-1, 3)
        assert np.all(points >= mesh.bounding_box.minimum - 1e-5)
        assert np.all(points <= mesh.bounding_box.maximum + 1e-5)
