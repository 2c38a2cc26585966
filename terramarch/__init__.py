"""Terramarch public API."""

from .density import (
    BackendStatus,
    DensityFieldSettings,
    DensityFieldState,
    SphereShape,
    TerrainShape,
    create_density_field,
    generate,
    index_of,
    release_density_field,
)
from .marching_cubes import (
    MarchingCubesExtractor,
    TerrainMesh,
    extract,
)
from .gpu import GPUBackendError, gpu_available
from .heightmap import (
    HeightmapSettings,
    HeightmapState,
    as_grid,
    create_heightmap,
    regenerate_heightmap,
)
from .config import PRESETS, TerrainParams, preset_params
from .scene import RenderContext, SceneModule, TerrainScene
from .simplex_noise import SimplexNoise

__all__ = [
    "BackendStatus",
    "DensityFieldSettings",
    "DensityFieldState",
    "SphereShape",
    "TerrainShape",
    "create_density_field",
    "generate",
    "index_of",
    "release_density_field",
    "MarchingCubesExtractor",
    "TerrainMesh",
    "extract",
    "GPUBackendError",
    "gpu_available",
    "HeightmapSettings",
    "HeightmapState",
    "as_grid",
    "create_heightmap",
    "regenerate_heightmap",
    "PRESETS",
    "TerrainParams",
    "preset_params",
    "RenderContext",
    "SceneModule",
    "TerrainScene",
    "SimplexNoise",
]

__version__ = "0.1.0"
