# terramarch/density.py
"""
Генератор поля плотности для объемного рельефа

Поле - плоский массив float32 длиной N³ с индексом x + N * (y + N * z).
Значения перезаписываются целиком на каждом кадре; размер буфера
после создания не меняется. Вычисление идет на GPU (numba.cuda),
если он доступен, иначе - параллельным ядром numba на CPU.
"""

import logging
import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

import numpy as np
from numba import jit, prange

from .field_kernels import (
    DEFAULT_SPHERE_RADIUS,
    DEFAULT_VERTICAL_GRADIENT,
    MAX_OCTAVES,
    SPHERE_MODE,
    TERRAIN_MODE,
    DensityUniforms,
    build_density_kernels,
)
from .gpu import GPUDensityBackend, gpu_available
from .simplex_noise import permutation_table, simplex_noise_4d

logger = logging.getLogger(__name__)

# ----------------------------------------------------------------------
# Настройки и режимы формы
# ----------------------------------------------------------------------

@dataclass
class DensityFieldSettings:
    """Параметры поля плотности (изменяемые, действуют со следующей генерации)"""
    size: int = 48               # Длина ребра сетки N (N³ ячеек)
    frequency: float = 0.1       # Базовая частота шума
    amplitude: float = 1.0       # Амплитуда первой октавы
    octaves: int = 4             # Количество октав fBm
    persistence: float = 0.5     # Сохранение амплитуды между октавами
    lacunarity: float = 2.0      # Множитель частоты между октавами
    ridge_sharpness: float = 0.6 # Показатель степени для хребтов
    time_scale: float = 0.35     # Скорость течения времени в шуме
    seed: int = 42               # Семя таблицы перестановок

    def validate(self) -> None:
        """Проверка конфигурации до выделения буферов"""
        if isinstance(self.size, bool) or not isinstance(self.size, (int, np.integer)):
            raise ValueError(f"Grid size must be an integer, got {self.size!r}")
        if self.size < 2:
            raise ValueError(f"Grid size must be at least 2, got {self.size}")
        if isinstance(self.octaves, bool) or not isinstance(self.octaves, (int, np.integer)):
            raise ValueError(f"Octave count must be an integer, got {self.octaves!r}")
        if not 0 <= self.octaves <= MAX_OCTAVES:
            raise ValueError(
                f"Octave count must be in [0, {MAX_OCTAVES}], got {self.octaves}"
            )
        for name in ("frequency", "amplitude", "persistence", "lacunarity",
                     "ridge_sharpness", "time_scale"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"{name} must be finite, got {value!r}")
        if self.ridge_sharpness <= 0:
            raise ValueError(
                f"ridge_sharpness must be positive, got {self.ridge_sharpness}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> "DensityFieldSettings":
        return replace(self)


@dataclass(frozen=True)
class TerrainShape:
    """Рельеф: хребтовый fBm плюс вертикальный градиент"""
    vertical_gradient: float = DEFAULT_VERTICAL_GRADIENT
    name: str = field(default="terrain", init=False)

    def kernel_parameters(self) -> Tuple[int, float, float]:
        return TERRAIN_MODE, 0.0, self.vertical_gradient


@dataclass(frozen=True)
class SphereShape:
    """Эталонная сфера (поле расстояния со знаком) для проверки экстрактора"""
    radius: float = DEFAULT_SPHERE_RADIUS
    name: str = field(default="sphere", init=False)

    def kernel_parameters(self) -> Tuple[int, float, float]:
        return SPHERE_MODE, self.radius, 0.0


ShapeMode = Union[TerrainShape, SphereShape]

SHAPE_MODES = {
    "terrain": TerrainShape,
    "sphere": SphereShape,
}


def resolve_shape(mode: Union[str, ShapeMode]) -> ShapeMode:
    """
    Приведение режима к варианту формы

    Args:
        mode: Вариант формы или его имя ('terrain' | 'sphere')
    """
    if isinstance(mode, (TerrainShape, SphereShape)):
        return mode
    if isinstance(mode, str) and mode in SHAPE_MODES:
        return SHAPE_MODES[mode]()
    raise ValueError(
        f"Unknown shape mode {mode!r}. Available: {', '.join(SHAPE_MODES)}"
    )

# ----------------------------------------------------------------------
# Состояние поля
# ----------------------------------------------------------------------

class BackendStatus(Enum):
    """Состояние вычислительного бэкенда поля"""
    UNINITIALIZED = 1   # GPU доступен, но еще не запускался
    ACTIVE = 2          # GPU-бэкенд инициализирован и используется
    UNAVAILABLE = 3     # Навсегда только CPU (нет устройства или сбой)


@dataclass(eq=False)
class DensityFieldState:
    """Поле плотности и ресурсы, которыми оно владеет"""
    settings: DensityFieldSettings
    size: int
    values: np.ndarray
    shape: ShapeMode
    status: BackendStatus
    perm: np.ndarray
    perm_seed: int
    gpu: Optional[GPUDensityBackend] = None
    backend_factory: Callable[[int], GPUDensityBackend] = GPUDensityBackend

    @property
    def grid(self) -> np.ndarray:
        """Вид значений как массив (z, y, x)"""
        return self.values.reshape(self.size, self.size, self.size)


def create_density_field(
    settings: Optional[DensityFieldSettings] = None,
    mode: Union[str, ShapeMode] = "terrain",
    use_gpu: Optional[bool] = None,
    backend_factory: Optional[Callable[[int], GPUDensityBackend]] = None,
    **overrides,
) -> DensityFieldState:
    """
    Создание поля плотности

    Доступность GPU проверяется только здесь. Отсутствие устройства -
    штатная конфигурация: поле работает на CPU.

    Args:
        settings: Базовые настройки (копируются)
        mode: Режим формы
        use_gpu: False - только CPU; None/True - GPU при наличии
        backend_factory: Конструктор GPU-бэкенда по размеру сетки
        **overrides: Переопределение отдельных полей настроек

    Raises:
        ValueError: Недопустимая конфигурация (до выделения памяти)
    """
    merged = replace(settings or DensityFieldSettings(), **overrides)
    merged.validate()
    shape = resolve_shape(mode)

    factory = backend_factory or GPUDensityBackend
    if use_gpu is False:
        status = BackendStatus.UNAVAILABLE
    elif backend_factory is not None or gpu_available():
        status = BackendStatus.UNINITIALIZED
    else:
        if use_gpu:
            logger.info("GPU compute requested but no CUDA device found; using CPU")
        status = BackendStatus.UNAVAILABLE

    size = int(merged.size)
    state = DensityFieldState(
        settings=merged,
        size=size,
        values=np.zeros(size * size * size, dtype=np.float32),
        shape=shape,
        status=status,
        perm=permutation_table(merged.seed),
        perm_seed=merged.seed,
        backend_factory=factory,
    )
    logger.debug(f"Created {size}³ density field ({shape.name}, {status.name})")
    return state


def index_of(state: DensityFieldState, x: int, y: int, z: int) -> int:
    """Линейный индекс ячейки (x, y, z)"""
    return x + state.size * (y + state.size * z)

# ----------------------------------------------------------------------
# CPU-ядро (numba)
# ----------------------------------------------------------------------

_cell_density = build_density_kernels(jit(nopython=True), simplex_noise_4d)


@jit(nopython=True, parallel=True)
def _fill_density(values, size, mode, radius, gradient, time, frequency,
                  amplitude, octaves, persistence, lacunarity,
                  ridge_sharpness, time_scale, perm):
    """Заполнение поля по слоям z параллельно"""
    plane = size * size
    for z in prange(size):
        for y in range(size):
            for x in range(size):
                values[x + size * y + plane * z] = _cell_density(
                    x, y, z, size, mode, radius, gradient, time, frequency,
                    amplitude, octaves, persistence, lacunarity,
                    ridge_sharpness, time_scale, perm,
                )


def _generate_cpu(state: DensityFieldState, elapsed_time: float) -> None:
    uniforms = DensityUniforms().update(
        state.settings, state.shape, elapsed_time, state.size
    )
    _fill_density(state.values, *uniforms.as_arguments(), state.perm)

# ----------------------------------------------------------------------
# Управление GPU-бэкендом
# ----------------------------------------------------------------------

def _activate_gpu(state: DensityFieldState) -> None:
    try:
        state.gpu = state.backend_factory(state.size)
    except Exception as e:
        logger.warning(f"Failed to initialize GPU density field, using CPU: {e}")
        state.gpu = None
        state.status = BackendStatus.UNAVAILABLE
        return
    state.status = BackendStatus.ACTIVE
    logger.info(f"GPU density backend active for {state.size}³ grid")


def _disable_gpu(state: DensityFieldState) -> None:
    if state.gpu is not None:
        state.gpu.release()
        state.gpu = None
    state.status = BackendStatus.UNAVAILABLE


def release_density_field(state: DensityFieldState) -> None:
    """Освобождение ресурсов устройства при разрушении сцены"""
    if state.gpu is not None:
        logger.debug("Releasing GPU density backend")
    _disable_gpu(state)

# ----------------------------------------------------------------------
# Генерация
# ----------------------------------------------------------------------

def generate(state: DensityFieldState, elapsed_time: float,
             mode: Optional[Union[str, ShapeMode]] = None) -> None:
    """
    Обновление state.values для момента времени elapsed_time

    Одинаковые (настройки, время, режим) дают побитово одинаковый
    результат на CPU. Сбой GPU не доходит до вызывающего: бэкенд
    отключается навсегда, кадр считается на CPU.

    Args:
        state: Состояние поля (изменяется на месте)
        elapsed_time: Время с начала, секунды
        mode: Новый режим формы; None - оставить текущий
    """
    if mode is not None:
        state.shape = resolve_shape(mode)
    state.settings.validate()

    if state.perm_seed != state.settings.seed:
        state.perm = permutation_table(state.settings.seed)
        state.perm_seed = state.settings.seed

    if state.status is BackendStatus.UNINITIALIZED:
        _activate_gpu(state)

    if state.status is BackendStatus.ACTIVE:
        try:
            state.gpu.evaluate(state.settings, state.shape, elapsed_time,
                               state.perm, state.values)
            return
        except Exception as e:
            logger.warning(f"GPU density evaluation failed, using CPU: {e}")
            _disable_gpu(state)

    _generate_cpu(state, elapsed_time)
