# terramarch/marching_cubes.py
"""
Извлечение изоповерхности методом marching cubes

Скалярное поле N³ (индекс x + N * (y + N * z)) и уровень изоповерхности
превращаются в треугольный суп: позиции и плоские нормали, по 9 float
на треугольник, без общих вершин. Сетка перестраивается целиком на
каждом вызове. Вершины задаются в координатах индексов сетки.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numba import jit

from .tables import CORNER_OFFSETS, EDGE_CORNERS, EDGE_TABLE, TRI_COUNTS, TRI_TABLE

logger = logging.getLogger(__name__)

INTERPOLATION_EPSILON = 1e-6
MIN_NORMAL_LENGTH = 1e-6

# ----------------------------------------------------------------------
# Выходная сетка
# ----------------------------------------------------------------------

@dataclass
class BoundingBox:
    """Ограничивающий параллелепипед"""
    minimum: np.ndarray
    maximum: np.ndarray

    @property
    def center(self) -> np.ndarray:
        return (self.minimum + self.maximum) * 0.5

    @property
    def extent(self) -> np.ndarray:
        return self.maximum - self.minimum


@dataclass
class BoundingSphere:
    """Ограничивающая сфера с центром в центре параллелепипеда"""
    center: np.ndarray
    radius: float


class TerrainMesh:
    """
    Треугольный суп для рендерера

    positions и normals - виды на внутренние буферы float32, которые
    перезаписываются (не дополняются) на каждом кадре. Длины равны и
    кратны 9. Пустая или испорченная сетка не имеет ограничивающих объемов.
    """

    def __init__(self):
        self._position_buffer = np.zeros(0, dtype=np.float32)
        self._normal_buffer = np.zeros(0, dtype=np.float32)
        self._float_count = 0
        self.bounding_box: Optional[BoundingBox] = None
        self.bounding_sphere: Optional[BoundingSphere] = None

    @property
    def positions(self) -> np.ndarray:
        return self._position_buffer[:self._float_count]

    @property
    def normals(self) -> np.ndarray:
        return self._normal_buffer[:self._float_count]

    @property
    def vertex_count(self) -> int:
        return self._float_count // 3

    @property
    def triangle_count(self) -> int:
        return self._float_count // 9

    @property
    def is_empty(self) -> bool:
        return self._float_count == 0

    def triangles(self) -> np.ndarray:
        """Позиции в форме (T, 3, 3)"""
        return self.positions.reshape(-1, 3, 3)

    def face_normals(self) -> np.ndarray:
        """Нормаль каждого треугольника, форма (T, 3)"""
        return self.normals.reshape(-1, 3, 3)[:, 0, :]

    def reserve(self, triangle_count: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Подготовка буферов под triangle_count треугольников

        Емкость только растет; возвращаются виды нужной длины.
        """
        needed = triangle_count * 9
        if needed > self._position_buffer.size:
            capacity = max(needed, int(self._position_buffer.size * 1.5))
            self._position_buffer = np.zeros(capacity, dtype=np.float32)
            self._normal_buffer = np.zeros(capacity, dtype=np.float32)
        self._float_count = needed
        self.bounding_box = None
        self.bounding_sphere = None
        return self.positions, self.normals

    def clear(self) -> None:
        """Пустая сетка без ограничивающих объемов"""
        self._float_count = 0
        self.bounding_box = None
        self.bounding_sphere = None

    def compute_bounds(self) -> None:
        """Пересчет параллелепипеда и сферы по позициям"""
        if self.is_empty:
            self.bounding_box = None
            self.bounding_sphere = None
            return

        points = self.positions.reshape(-1, 3).astype(np.float64)
        box = BoundingBox(minimum=points.min(axis=0), maximum=points.max(axis=0))
        center = box.center
        radius = float(np.sqrt(np.max(np.sum((points - center) ** 2, axis=1))))

        self.bounding_box = box
        self.bounding_sphere = BoundingSphere(center=center, radius=radius)

# ----------------------------------------------------------------------
# Ядра (numba)
# ----------------------------------------------------------------------

@jit(nopython=True, cache=True)
def _interpolate_edge(out, p1, p2, v1, v2, iso_level):
    """Точка пересечения ребра с изоповерхностью"""
    if abs(iso_level - v1) < INTERPOLATION_EPSILON:
        mu = 0.0
    elif abs(iso_level - v2) < INTERPOLATION_EPSILON:
        mu = 1.0
    elif abs(v1 - v2) < INTERPOLATION_EPSILON:
        # Почти плоское ребро: деление на ~0
        mu = 0.0
    else:
        mu = (iso_level - v1) / (v2 - v1)

    for axis in range(3):
        out[axis] = p1[axis] + mu * (p2[axis] - p1[axis])


@jit(nopython=True, cache=True)
def _classify_cells(values, size, iso_level, corner_offsets, edge_table, tri_counts,
                    cube_indices):
    """Первый проход: индекс куба для каждой ячейки и число треугольников"""
    cells = size - 1
    total = 0
    cell = 0

    for z in range(cells):
        for y in range(cells):
            for x in range(cells):
                cube_index = 0
                for i in range(8):
                    vx = x + corner_offsets[i, 0]
                    vy = y + corner_offsets[i, 1]
                    vz = z + corner_offsets[i, 2]
                    if values[vx + size * (vy + size * vz)] < iso_level:
                        cube_index |= 1 << i

                cube_indices[cell] = cube_index
                if edge_table[cube_index] != 0:
                    total += tri_counts[cube_index]
                cell += 1

    return total


@jit(nopython=True, cache=True)
def _emit_triangles(values, size, iso_level, cube_indices, corner_offsets, edge_table,
                    tri_table, edge_corners, corner_positions, corner_values,
                    edge_points, positions, normals):
    """Второй проход: интерполяция рёбер и запись треугольников"""
    cells = size - 1
    cell = 0
    offset = 0

    for z in range(cells):
        for y in range(cells):
            for x in range(cells):
                cube_index = cube_indices[cell]
                cell += 1

                edges = edge_table[cube_index]
                if edges == 0:
                    continue

                # Углы: бит 0 -> +x, бит 1 -> +y, бит 2 -> +z
                for i in range(8):
                    vx = x + corner_offsets[i, 0]
                    vy = y + corner_offsets[i, 1]
                    vz = z + corner_offsets[i, 2]
                    corner_positions[i, 0] = vx
                    corner_positions[i, 1] = vy
                    corner_positions[i, 2] = vz
                    corner_values[i] = values[vx + size * (vy + size * vz)]

                for e in range(12):
                    if edges & (1 << e):
                        a = edge_corners[e, 0]
                        b = edge_corners[e, 1]
                        _interpolate_edge(
                            edge_points[e], corner_positions[a], corner_positions[b],
                            corner_values[a], corner_values[b], iso_level,
                        )

                k = 0
                while k < 16 and tri_table[cube_index, k] != -1:
                    p1 = edge_points[tri_table[cube_index, k]]
                    p2 = edge_points[tri_table[cube_index, k + 1]]
                    p3 = edge_points[tri_table[cube_index, k + 2]]

                    ax = p2[0] - p1[0]
                    ay = p2[1] - p1[1]
                    az = p2[2] - p1[2]
                    bx = p3[0] - p1[0]
                    by = p3[1] - p1[1]
                    bz = p3[2] - p1[2]

                    nx = ay * bz - az * by
                    ny = az * bx - ax * bz
                    nz = ax * by - ay * bx
                    inv_len = 1.0 / max(np.sqrt(nx * nx + ny * ny + nz * nz),
                                        MIN_NORMAL_LENGTH)
                    nx *= inv_len
                    ny *= inv_len
                    nz *= inv_len

                    for axis in range(3):
                        positions[offset + axis] = p1[axis]
                        positions[offset + 3 + axis] = p2[axis]
                        positions[offset + 6 + axis] = p3[axis]
                    for vertex in range(3):
                        normals[offset + vertex * 3] = nx
                        normals[offset + vertex * 3 + 1] = ny
                        normals[offset + vertex * 3 + 2] = nz

                    offset += 9
                    k += 3

    return offset

# ----------------------------------------------------------------------
# Экстрактор
# ----------------------------------------------------------------------

class MarchingCubesExtractor:
    """
    Экстрактор с собственными рабочими буферами

    Буферы углов (8) и точек рёбер (12) выделяются один раз и
    переиспользуются для каждой ячейки.
    """

    def __init__(self, size: int):
        if size < 2:
            raise ValueError(f"Grid size must be at least 2, got {size}")
        self.size = size
        self._corner_positions = np.zeros((8, 3), dtype=np.float64)
        self._corner_values = np.zeros(8, dtype=np.float64)
        self._edge_points = np.zeros((12, 3), dtype=np.float64)
        self._cube_indices = np.zeros((size - 1) ** 3, dtype=np.uint8)

    def extract(self, scalar_field: np.ndarray, iso_level: float = 0.0,
                mesh: Optional[TerrainMesh] = None) -> TerrainMesh:
        """
        Построение сетки по полю

        Args:
            scalar_field: Плоский массив длиной N³
            iso_level: Уровень изоповерхности
            mesh: Сетка для перезаписи; None - новая

        Returns:
            Сетка: либо полностью корректная, либо пустая без ограничивающих объемов
        """
        mesh = mesh if mesh is not None else TerrainMesh()
        values = np.ascontiguousarray(scalar_field, dtype=np.float32).reshape(-1)
        expected = self.size ** 3
        if values.size != expected:
            raise ValueError(
                f"Scalar field holds {values.size} values, expected {expected} "
                f"for a {self.size}³ grid"
            )

        iso_level = float(iso_level)
        triangle_count = _classify_cells(
            values, self.size, iso_level, CORNER_OFFSETS, EDGE_TABLE, TRI_COUNTS,
            self._cube_indices,
        )
        positions, normals = mesh.reserve(triangle_count)
        _emit_triangles(
            values, self.size, iso_level, self._cube_indices, CORNER_OFFSETS, EDGE_TABLE,
            TRI_TABLE, EDGE_CORNERS, self._corner_positions, self._corner_values,
            self._edge_points, positions, normals,
        )

        if triangle_count == 0:
            mesh.clear()
        elif not (np.isfinite(positions).all() and np.isfinite(normals).all()):
            logger.debug("Discarding mesh with non-finite vertices")
            mesh.clear()
        else:
            mesh.compute_bounds()

        logger.debug(f"Extracted {mesh.triangle_count} triangles at iso={iso_level}")
        return mesh


def extract(scalar_field: np.ndarray, grid_size: int, iso_level: float = 0.0,
            out_mesh: Optional[TerrainMesh] = None) -> TerrainMesh:
    """Однократное извлечение изоповерхности с временным экстрактором"""
    return MarchingCubesExtractor(grid_size).extract(scalar_field, iso_level, out_mesh)
