"""Small writers for density slices and extracted meshes, no extra deps."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np

from .marching_cubes import TerrainMesh


def _ensure_rgb(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        image = np.repeat(image[:, :, None], 3, axis=2)
    if image.shape[2] == 1:
        image = np.repeat(image, 3, axis=2)
    if image.shape[2] >= 3:
        return image[:, :, :3]
    raise ValueError("Unsupported image shape for RGB conversion.")


def _normalize_to_uint8(image: np.ndarray, stretch: bool) -> np.ndarray:
    img = image.astype(np.float32)
    if img.size == 0:
        return img.astype(np.uint8)
    min_val = float(img.min())
    max_val = float(img.max())
    # Density values are signed, so anything outside [0, 1] is rescaled too
    if (stretch or min_val < 0.0 or max_val > 1.0) and max_val > min_val:
        img = (img - min_val) / (max_val - min_val)
    img = np.clip(img, 0.0, 1.0)
    return (img * 255.0 + 0.5).astype(np.uint8)


def save_ppm(image: np.ndarray, path, stretch: bool = False) -> None:
    """Save an image to binary PPM (P6) format."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _normalize_to_uint8(_ensure_rgb(image), stretch=stretch)
    height, width, _ = data.shape
    header = f"P6\n{width} {height}\n255\n".encode("ascii")
    with path.open("wb") as f:
        f.write(header)
        f.write(data.tobytes())


def save_volume_slice(
    values: np.ndarray,
    size: int,
    path,
    axis: int = 1,
    index: Optional[int] = None,
    stretch: bool = False,
) -> None:
    """
    Save one axis-aligned slice of a flat N³ density field.

    ``axis`` follows grid coordinates: 0 = x, 1 = y (a horizontal cut
    through the terrain), 2 = z. The middle slice is used by default.
    """
    if axis not in (0, 1, 2):
        raise ValueError(f"Axis must be 0, 1 or 2, got {axis}")
    grid = np.asarray(values).reshape(size, size, size)  # (z, y, x)
    if index is None:
        index = size // 2
    if not 0 <= index < size:
        raise ValueError(f"Slice index {index} out of range for size {size}")

    if axis == 0:
        slice_img = grid[:, :, index]
    elif axis == 1:
        slice_img = grid[:, index, :]
    else:
        slice_img = grid[index]

    save_ppm(slice_img, path, stretch=stretch)


def save_obj(mesh: TerrainMesh, path) -> None:
    """Write the triangle soup as Wavefront OBJ with per-vertex normals."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    positions = mesh.positions.reshape(-1, 3)
    normals = mesh.normals.reshape(-1, 3)

    with path.open("w") as f:
        f.write(f"# {mesh.triangle_count} triangles\n")
        for x, y, z in positions:
            f.write(f"v {x:.6f} {y:.6f} {z:.6f}\n")
        for x, y, z in normals:
            f.write(f"vn {x:.6f} {y:.6f} {z:.6f}\n")
        for t in range(mesh.triangle_count):
            a, b, c = 3 * t + 1, 3 * t + 2, 3 * t + 3
            f.write(f"f {a}//{a} {b}//{b} {c}//{c}\n")
