"""Tests for the terrain scene lifecycle."""

import numpy as np
import pytest

from terramarch.config import TerrainParams
from terramarch.density import BackendStatus
from terramarch.scene import RenderContext, TerrainScene


@pytest.fixture
def params():
    """Small terrain whose surface always crosses the grid at iso 0.6."""
    return TerrainParams(size=8, frequency=1.5, octaves=3, iso_level=0.6)


@pytest.fixture
def scene(params):
    s = TerrainScene(params, use_gpu=False)
    yield s
    s.dispose()


class TestTerrainScene:
    def test_render_returns_mesh(self, scene):
        mesh = scene.render(RenderContext(elapsed=0.0))
        assert not mesh.is_empty
        assert scene.frame_count == 1
        assert scene.last_frame_ms >= 0.0
        assert scene.field.status is BackendStatus.UNAVAILABLE

    def test_mesh_object_is_reused(self, scene):
        first = scene.render(RenderContext(elapsed=0.0))
        second = scene.render(RenderContext(elapsed=1.0))
        assert first is second
        assert scene.frame_count == 2

    def test_static_scene_builds_once(self, scene):
        scene.params.animate = False
        scene.render(RenderContext(elapsed=0.0))
        scene.render(RenderContext(elapsed=1.0))
        assert scene.frame_count == 1

    def test_static_scene_rebuilds_on_mode_change(self, scene):
        scene.params.animate = False
        scene.render(RenderContext(elapsed=0.0))
        scene.params.mode = "sphere"
        scene.params.iso_level = 0.0
        mesh = scene.render(RenderContext(elapsed=0.0))
        assert scene.frame_count == 2
        assert scene.field.shape.name == "sphere"
        np.testing.assert_allclose(mesh.bounding_sphere.center, [4.0] * 3, atol=0.5)

    def test_static_scene_rebuilds_on_tunable_change(self, scene):
        scene.params.animate = False
        scene.render(RenderContext(elapsed=0.0))
        scene.params.frequency = 3.0
        scene.render(RenderContext(elapsed=0.0))
        assert scene.frame_count == 2
        assert scene.field.settings.frequency == pytest.approx(3.0)
        scene.render(RenderContext(elapsed=0.0))
        assert scene.frame_count == 2

    def test_regenerate_trigger_is_one_shot(self, scene):
        scene.params.animate = False
        scene.render(RenderContext(elapsed=0.0))
        scene.params.regenerate = True
        scene.render(RenderContext(elapsed=2.0))
        assert scene.frame_count == 2
        assert scene.params.regenerate is False
        scene.render(RenderContext(elapsed=3.0))
        assert scene.frame_count == 2

    def test_params_apply_between_frames(self, scene):
        scene.render(RenderContext(elapsed=0.0))
        scene.params.seed = 99
        scene.render(RenderContext(elapsed=0.0))
        assert scene.field.settings.seed == 99
        assert scene.field.perm_seed == 99

    def test_size_change_recreates_field(self, scene):
        scene.render(RenderContext(elapsed=0.0))
        old_field = scene.field
        scene.params.size = 6
        scene.render(RenderContext(elapsed=0.0))
        assert scene.field is not old_field
        assert scene.field.values.shape == (216,)
        assert scene.extractor.size == 6
        assert scene.mesh.positions.max() <= 5

    def test_mode_switch(self, scene):
        scene.params.mode = "sphere"
        scene.params.iso_level = 0.0
        mesh = scene.render(RenderContext(elapsed=0.0))
        assert scene.field.shape.name == "sphere"
        np.testing.assert_allclose(mesh.bounding_sphere.center, [4.0] * 3, atol=0.5)

    def test_render_after_dispose_raises(self, params):
        scene = TerrainScene(params, use_gpu=False)
        scene.dispose()
        scene.dispose()
        with pytest.raises(RuntimeError):
            scene.render(RenderContext(elapsed=0.0))

    def test_lifecycle_hooks(self, scene):
        scene.resize(800, 400)
        assert scene.aspect == pytest.approx(2.0)
        scene.on_activate()
        assert scene.active
        scene.on_deactivate()
        assert not scene.active
