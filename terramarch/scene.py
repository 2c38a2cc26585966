"""Scene-module contract and the marching-cubes terrain scene."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from .config import TerrainParams
from .density import (
    DensityFieldState,
    create_density_field,
    generate,
    release_density_field,
)
from .marching_cubes import MarchingCubesExtractor, TerrainMesh

logger = logging.getLogger(__name__)


@dataclass
class RenderContext:
    """Per-frame input handed to a scene by the scheduler."""
    elapsed: float
    delta: float = 0.0
    pointer: Tuple[float, float] = (0.0, 0.0)


class SceneModule(Protocol):
    name: str

    def render(self, context: RenderContext): ...


class TerrainScene:
    """
    Animated isosurface terrain.

    Each rebuilt frame regenerates the density field for ``context.elapsed``
    and then re-extracts the mesh from it. The mesh object is reused across
    frames and returned from ``render``.
    """

    name = "Marching"

    def __init__(self, params: Optional[TerrainParams] = None, use_gpu: Optional[bool] = None):
        self.params = params or TerrainParams()
        self.use_gpu = use_gpu
        self.mesh = TerrainMesh()
        self.aspect = 1.0
        self.active = False
        self.frame_count = 0
        self.last_frame_ms = 0.0
        self._disposed = False
        self._built_from = None

        self.field: DensityFieldState = create_density_field(
            self.params.to_settings(), mode=self.params.mode, use_gpu=use_gpu
        )
        self.extractor = MarchingCubesExtractor(self.field.size)

    def _recreate_field(self) -> None:
        old_size = self.field.size
        release_density_field(self.field)
        self.field = create_density_field(
            self.params.to_settings(), mode=self.params.mode, use_gpu=self.use_gpu
        )
        self.extractor = MarchingCubesExtractor(self.field.size)
        logger.info(f"Recreated density field: {old_size}³ -> {self.field.size}³")

    def _build_key(self):
        return (
            tuple(self.field.settings.to_dict().items()),
            self.params.mode,
            self.params.iso_level,
        )

    def render(self, context: RenderContext) -> TerrainMesh:
        if self._disposed:
            raise RuntimeError("Cannot render a disposed scene")

        if self.params.size != self.field.size:
            self._recreate_field()
        else:
            self.params.apply_to(self.field.settings)

        # Static scenes still rebuild when a tunable changed since the last build
        built_from = self._build_key()
        if self.params.animate or self.params.regenerate or built_from != self._built_from:
            start = time.perf_counter()
            generate(self.field, context.elapsed, mode=self.params.mode)
            self.extractor.extract(self.field.values, self.params.iso_level, self.mesh)
            self.last_frame_ms = (time.perf_counter() - start) * 1000.0
            self.frame_count += 1
            self.params.regenerate = False
            self._built_from = built_from

        return self.mesh

    def resize(self, width: int, height: int) -> None:
        self.aspect = width / max(1, height)

    def on_activate(self) -> None:
        self.active = True

    def on_deactivate(self) -> None:
        self.active = False

    def dispose(self) -> None:
        if self._disposed:
            return
        release_density_field(self.field)
        self.mesh.clear()
        self._disposed = True
