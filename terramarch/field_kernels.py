# terramarch/field_kernels.py
"""
Формула поля плотности, общая для CPU и GPU

fbm по 4D симплекс-шуму, складка в хребты (ridge) и вертикальный
градиент, формирующий "землю" без явного пола. Функции собираются
фабрикой под конкретную цель компиляции.
"""

import math
from dataclasses import dataclass
from typing import Callable, Tuple

# Предел цикла октав (фиксирован для GPU-ядра, применяется и на CPU)
MAX_OCTAVES = 8

# Коды режимов формы, передаваемые в ядра
SPHERE_MODE = 0
TERRAIN_MODE = 1

DEFAULT_SPHERE_RADIUS = 0.35
DEFAULT_VERTICAL_GRADIENT = 1.2


@dataclass
class DensityUniforms:
    """Зеркало настроек в виде скалярных аргументов ядра"""
    size: int = 0
    mode: int = TERRAIN_MODE
    radius: float = DEFAULT_SPHERE_RADIUS
    gradient: float = DEFAULT_VERTICAL_GRADIENT
    time: float = 0.0
    frequency: float = 0.1
    amplitude: float = 1.0
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0
    ridge_sharpness: float = 0.6
    time_scale: float = 0.35

    def update(self, settings, shape, time: float, size: int) -> "DensityUniforms":
        """Перенос настроек, формы и времени в униформы"""
        mode, radius, gradient = shape.kernel_parameters()
        self.size = int(size)
        self.mode = int(mode)
        self.radius = float(radius)
        self.gradient = float(gradient)
        self.time = float(time)
        self.frequency = float(settings.frequency)
        self.amplitude = float(settings.amplitude)
        self.octaves = int(min(settings.octaves, MAX_OCTAVES))
        self.persistence = float(settings.persistence)
        self.lacunarity = float(settings.lacunarity)
        self.ridge_sharpness = float(settings.ridge_sharpness)
        self.time_scale = float(settings.time_scale)
        return self

    def as_arguments(self) -> Tuple:
        """Аргументы в порядке сигнатуры cell_density (после x, y, z)"""
        return (
            self.size, self.mode, self.radius, self.gradient, self.time,
            self.frequency, self.amplitude, self.octaves, self.persistence,
            self.lacunarity, self.ridge_sharpness, self.time_scale,
        )


def build_density_kernels(compile_fn: Callable, noise4: Callable) -> Callable:
    """
    Сборка функции плотности ячейки

    Args:
        compile_fn: Декоратор компиляции (CPU или устройство CUDA)
        noise4: 4D шум, скомпилированный той же целью

    Returns:
        cell_density(x, y, z, size, mode, radius, gradient, time,
                     frequency, amplitude, octaves, persistence,
                     lacunarity, ridge_sharpness, time_scale, perm)
    """
    max_octaves = MAX_OCTAVES
    sphere_mode = SPHERE_MODE

    @compile_fn
    def fbm(x, y, z, time, frequency, amplitude, octaves,
            persistence, lacunarity, time_scale, perm):
        amp = amplitude
        freq = frequency
        value = 0.0
        w = time * time_scale

        for i in range(max_octaves):
            if i >= octaves:
                break
            value += noise4(x * freq, y * freq, z * freq, w, perm) * amp
            amp *= persistence
            freq *= lacunarity

        return value

    @compile_fn
    def ridge(value, sharpness):
        r = max(0.0, 1.0 - abs(value))
        return r ** sharpness

    @compile_fn
    def cell_density(x, y, z, size, mode, radius, gradient, time,
                     frequency, amplitude, octaves, persistence,
                     lacunarity, ridge_sharpness, time_scale, perm):
        # Центрированная нормированная позиция ячейки
        half = size / 2.0
        px = (x - half) / size
        py = (y - half) / size
        pz = (z - half) / size

        if mode == sphere_mode:
            return math.sqrt(px * px + py * py + pz * pz) - radius

        base = fbm(px, py, pz, time, frequency, amplitude, octaves,
                   persistence, lacunarity, time_scale, perm)
        return ridge(base, ridge_sharpness) - py * gradient

    return cell_density
