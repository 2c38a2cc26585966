# terramarch/heightmap.py
"""
2D фрактальная карта высот

Плоская карта float32 длиной width * height (индекс x + width * y),
заполняемая fBm по 2D симплекс-шуму. Значения не нормализуются.
"""

import math
from dataclasses import dataclass, replace

import numpy as np
from numba import jit, prange

from .simplex_noise import permutation_table, simplex_noise_2d


@dataclass
class HeightmapSettings:
    """Параметры карты высот"""
    width: int = 256
    height: int = 256
    frequency: float = 1.2
    amplitude: float = 8.0
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0
    seed: int = 1

    def validate(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(
                f"Heightmap dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.octaves < 0:
            raise ValueError(f"Octave count must be non-negative, got {self.octaves}")
        for name in ("frequency", "amplitude", "persistence", "lacunarity"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be finite, got {getattr(self, name)!r}")


@dataclass(eq=False)
class HeightmapState:
    settings: HeightmapSettings
    values: np.ndarray


@jit(nopython=True, parallel=True, cache=True)
def _fill_heightmap(values, width, height, frequency, amplitude, octaves,
                    persistence, lacunarity, perm):
    for y in prange(height):
        for x in range(width):
            amp = amplitude
            freq = frequency
            value = 0.0
            for _ in range(octaves):
                sample_x = (x / width) * freq
                sample_y = (y / height) * freq
                value += simplex_noise_2d(sample_x, sample_y, perm) * amp
                amp *= persistence
                freq *= lacunarity
            values[x + width * y] = value


def create_heightmap(settings: HeightmapSettings = None, **overrides) -> HeightmapState:
    """
    Создание карты высот (значения - нули до regenerate_heightmap)

    Raises:
        ValueError: Недопустимые настройки
    """
    merged = replace(settings or HeightmapSettings(), **overrides)
    merged.validate()
    values = np.zeros(merged.width * merged.height, dtype=np.float32)
    return HeightmapState(settings=merged, values=values)


def regenerate_heightmap(state: HeightmapState) -> np.ndarray:
    """Заполнение state.values и возврат их же"""
    s = state.settings
    s.validate()
    if state.values.size != s.width * s.height:
        state.values = np.zeros(s.width * s.height, dtype=np.float32)
    _fill_heightmap(
        state.values, int(s.width), int(s.height), float(s.frequency),
        float(s.amplitude), int(s.octaves), float(s.persistence),
        float(s.lacunarity), permutation_table(s.seed),
    )
    return state.values


def as_grid(state: HeightmapState) -> np.ndarray:
    """Вид значений как массив (height, width)"""
    return state.values.reshape(state.settings.height, state.settings.width)
