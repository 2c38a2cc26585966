# terramarch/gpu.py
"""
GPU-бэкенд поля плотности на numba.cuda

Поле хранится на устройстве как RGBA-текстура шириной N и высотой N²
(значение в канале 0). Две текстуры используются попеременно как цель
записи (ping-pong). Вычисление синхронное: запуск, ожидание, чтение
в промежуточный буфер и копирование канала 0 в плоский массив.
"""

import logging
import math
from typing import List, Optional

import numpy as np

try:
    from numba import cuda
except ImportError:  # цель CUDA не установлена
    cuda = None

from .field_kernels import DensityUniforms, build_density_kernels
from .simplex_noise import build_simplex_4d

logger = logging.getLogger(__name__)

_density_kernel = None


class GPUBackendError(RuntimeError):
    """Ошибка инициализации или работы GPU-бэкенда"""


def gpu_available() -> bool:
    """Есть ли устройство CUDA для вычислений"""
    if cuda is None:
        return False
    try:
        return bool(cuda.is_available())
    except Exception as e:
        logger.debug(f"CUDA availability check failed: {e}")
        return False


def _get_density_kernel():
    """Компиляция ядра плотности (один раз на процесс)"""
    global _density_kernel
    if _density_kernel is not None:
        return _density_kernel

    device = cuda.jit(device=True)
    noise4 = build_simplex_4d(device)
    cell_density = build_density_kernels(device, noise4)

    @cuda.jit
    def density_kernel(target, size, mode, radius, gradient, time, frequency,
                       amplitude, octaves, persistence, lacunarity,
                       ridge_sharpness, time_scale, perm):
        tx, ty = cuda.grid(2)
        plane = size * size
        if tx >= size or ty >= plane:
            return

        # Линейный индекс тексела -> координаты сетки
        index = tx + ty * size
        z = index // plane
        rem = index - z * plane
        y = rem // size
        x = rem - y * size

        target[ty, tx, 0] = cell_density(
            x, y, z, size, mode, radius, gradient, time, frequency,
            amplitude, octaves, persistence, lacunarity,
            ridge_sharpness, time_scale, perm,
        )
        target[ty, tx, 1] = 0.0
        target[ty, tx, 2] = 0.0
        target[ty, tx, 3] = 1.0

    _density_kernel = density_kernel
    return _density_kernel


class GPUDensityBackend:
    """
    Владелец ресурсов устройства для поля плотности

    Наружу доступен только evaluate(); текстуры устройства закрыты.
    """

    threads_per_block = (8, 8)

    def __init__(self, size: int):
        """
        Args:
            size: Длина ребра сетки N

        Raises:
            GPUBackendError: Нет устройства или не удалось выделить ресурсы
        """
        if not gpu_available():
            raise GPUBackendError("CUDA device is not available")

        self.size = size
        self.width = size
        self.height = size * size
        self.uniforms = DensityUniforms(size=size)

        texture_shape = (self.height, self.width, 4)
        try:
            self._kernel = _get_density_kernel()
            self._targets: List = [
                cuda.device_array(texture_shape, dtype=np.float32)
                for _ in range(2)
            ]
        except Exception as e:
            raise GPUBackendError(f"Failed to allocate density textures: {e}") from e

        self._current = 0
        self._perm_host: Optional[np.ndarray] = None
        self._perm_device = None
        self.staging = np.zeros(texture_shape, dtype=np.float32)
        self.released = False

    def _blocks(self):
        tx, ty = self.threads_per_block
        return (math.ceil(self.width / tx), math.ceil(self.height / ty))

    def evaluate(self, settings, shape, time: float, perm: np.ndarray,
                 out: np.ndarray) -> np.ndarray:
        """
        Вычисление поля на устройстве и чтение в out

        Args:
            settings: DensityFieldSettings
            shape: Вариант формы
            time: Время кадра
            perm: Таблица перестановок (512)
            out: Плоский массив длиной N³

        Returns:
            out
        """
        if self.released:
            raise GPUBackendError("GPU density backend has been released")
        if out.size != self.width * self.height:
            raise GPUBackendError(
                f"Output holds {out.size} values, expected {self.width * self.height}"
            )

        self.uniforms.update(settings, shape, time, self.size)
        if perm is not self._perm_host:
            self._perm_device = cuda.to_device(perm)
            self._perm_host = perm

        target_index = 1 - self._current
        target = self._targets[target_index]
        self._kernel[self._blocks(), self.threads_per_block](
            target, *self.uniforms.as_arguments(), self._perm_device
        )
        cuda.synchronize()
        self._current = target_index

        target.copy_to_host(self.staging)
        out[:] = self.staging[:, :, 0].reshape(-1)
        return out

    def release(self) -> None:
        """Освобождение текстур и буферов устройства"""
        if self.released:
            return
        self._targets = []
        self._perm_device = None
        self._perm_host = None
        self.released = True
        logger.debug(f"Released GPU density textures ({self.width}x{self.height})")
